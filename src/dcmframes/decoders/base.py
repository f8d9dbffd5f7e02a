# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Bind the compressed transfer syntaxes to pydicom's pixel data decoders.

Each compressed *Transfer Syntax UID* has one :class:`Decompressor`, which
hands a single frame's codestream to the corresponding
:func:`pydicom.pixels.get_decoder` instance and its decoding plugins.
Unsupported syntaxes are rejected up front by :func:`get_decompressor`, and
JPEG-LS Lossless codestreams are patched before decoding.
"""

import logging
from typing import Any, BinaryIO, NamedTuple

import numpy as np

from pydicom.encaps import encapsulate
from pydicom.pixels import get_decoder
from pydicom.pixels.decoders.base import Decoder
from pydicom.uid import UID, JPEGLSLossless

from dcmframes import config
from dcmframes.errors import UnsupportedTransferSyntax
from dcmframes.geometry import FrameGeometry
from dcmframes.jpegls import patch_jpegls
from dcmframes.misc import warn_and_log


LOGGER = logging.getLogger(__name__)


class DecodedFrame(NamedTuple):
    """A decoded frame and the layout reported by the decoder."""

    #: The unsigned samples, shaped (rows, columns) or (rows, columns, samples)
    array: np.ndarray
    photometric_interpretation: str
    bits_allocated: int


class Decompressor:
    """Decoder for the frames of one compressed transfer syntax.

    Parameters
    ----------
    decoder : pydicom.pixels.decoders.base.Decoder
        The pydicom decoder for the transfer syntax.
    """

    def __init__(self, decoder: Decoder) -> None:
        self._decoder = decoder

    def __repr__(self) -> str:
        return f"Decompressor({self.UID.name})"

    @property
    def UID(self) -> UID:
        """Return the corresponding *Transfer Syntax UID*."""
        return self._decoder.UID

    @property
    def available_plugins(self) -> tuple[str, ...]:
        """Return the labels of the decoding plugins that can be used."""
        return self._decoder.available_plugins

    @property
    def is_available(self) -> bool:
        """Return ``True`` if at least one decoding plugin can be used."""
        return self._decoder.is_available

    @property
    def missing_dependencies(self) -> list[str]:
        """Return the plugins that can't be used and what they require."""
        return self._decoder.missing_dependencies

    def decode(
        self,
        src: bytes | BinaryIO,
        geometry: FrameGeometry,
        *,
        index: int = 0,
        as_rgb: bool = False,
        decoding_plugin: str = "",
    ) -> DecodedFrame:
        """Decode one frame of compressed pixel data.

        Parameters
        ----------
        src : bytes | BinaryIO
            The frame's encoded codestream, or a stream to read it from.
        geometry : dcmframes.geometry.FrameGeometry
            The geometry of the frame.
        index : int, optional
            The index of the frame, used for logging.
        as_rgb : bool, optional
            If ``True`` then YBR frames are converted to RGB (default
            ``False``).
        decoding_plugin : str, optional
            The label of the plugin to use, default is to try each available
            plugin in turn.

        Returns
        -------
        DecodedFrame
            The decoded frame.

        Raises
        ------
        RuntimeError
            If no plugin is available or all the plugins failed to decode the
            frame.
        ValueError
            If `decoding_plugin` isn't one of the decoder's plugins.
        """
        if not isinstance(src, bytes | bytearray):
            src = src.read()

        src = bytes(src)
        if self.UID == JPEGLSLossless:
            src = patch_jpegls(src, config.settings.jpegls_patch)

        LOGGER.debug(f"Decoding frame {index} ({len(src)} bytes) as '{self.UID.name}'")
        arr, properties = self._decoder.as_array(
            encapsulate([src]),
            index=0,
            raw=not as_rgb,
            decoding_plugin=decoding_plugin,
            **decode_options(geometry),
        )
        LOGGER.debug(f"Decoded frame {index}")

        pmi = str(properties["photometric_interpretation"])
        if pmi != geometry.photometric_interpretation:
            LOGGER.debug(
                f"The decoded frame's photometric interpretation is '{pmi}' "
                f"(was '{geometry.photometric_interpretation}')"
            )

        # Signed samples keep their two's complement bits
        arr = arr.view(f"u{arr.dtype.itemsize}")
        bits_allocated = 8 * arr.dtype.itemsize
        if bits_allocated > 16:
            warn_and_log(
                f"The decoded frame uses {bits_allocated} bits per sample, "
                "values have been truncated to 16 bits"
            )
            arr = arr.astype("u2")
            bits_allocated = 16

        return DecodedFrame(arr, pmi, bits_allocated)

    def dispose(self) -> None:
        """Does nothing.

        Decompressors are shared module-level objects that keep no per-reader
        state, so there's nothing to release.
        """


def decode_options(geometry: FrameGeometry) -> dict[str, Any]:
    """Return the pydicom decoding options for a single frame of `geometry`."""
    return {
        "rows": geometry.rows,
        "columns": geometry.columns,
        "samples_per_pixel": geometry.samples_per_pixel,
        "bits_allocated": geometry.bits_allocated,
        "bits_stored": geometry.bits_stored,
        "pixel_representation": geometry.pixel_representation,
        "photometric_interpretation": geometry.photometric_interpretation,
        "planar_configuration": int(geometry.banded),
        "number_of_frames": 1,
    }


# Frame decompressors, keyed by transfer syntax
_DECOMPRESSORS: dict[UID, Decompressor] = {}


def get_decompressor(uid: str) -> Decompressor | None:
    """Return the frame decompressor corresponding to `uid`.

    Parameters
    ----------
    uid : str
        The *Transfer Syntax UID* of the pixel data.

    Returns
    -------
    Decompressor | None
        The decompressor, or ``None`` for the native (uncompressed) transfer
        syntaxes, which are read directly.

    Raises
    ------
    dcmframes.errors.UnsupportedTransferSyntax
        If `uid` isn't a supported transfer syntax.
    """
    uid = UID(uid)
    if uid.is_transfer_syntax and not uid.is_encapsulated:
        return None

    if uid not in _DECOMPRESSORS:
        try:
            decoder = get_decoder(uid)
        except NotImplementedError:
            raise UnsupportedTransferSyntax(uid=uid) from None

        _DECOMPRESSORS[uid] = Decompressor(decoder)

    return _DECOMPRESSORS[uid]
