# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""dcmframes configuration options."""

# doc strings following items are picked up by sphinx for documentation

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from dcmframes.jpegls import PatchJPEGLS


# Logging system and debug function to change logging level
logger = logging.getLogger("dcmframes")
logger.addHandler(logging.NullHandler())


class Settings:
    """Collection of several configuration values.
    Accessed via the singleton :attr:`settings`.

    The values are used as defaults by
    :meth:`~dcmframes.reader.FrameReader.read_image` and can be overridden
    per call using the corresponding read options.
    """

    def __init__(self) -> None:
        self._overlay_activation_mask = 0xF
        self._overlay_grayscale_value = 0xFFFF
        self._destination_bits = 8
        self.auto_windowing = True
        """Derive a window from the frame's pixel values when no modality LUT,
        VOI LUT or window is available (default ``True``)."""
        self.prefer_window = True
        """Use (0028,1050) *Window Center* and (0028,1051) *Window Width*
        rather than a *VOI LUT Sequence* when both are present (default
        ``True``)."""
        self.decoding_plugin = ""
        """The label of the decoding plugin to use for compressed frames, or
        ``""`` (default) to use the first plugin that succeeds."""

        from dcmframes.jpegls import PatchJPEGLS

        self.jpegls_patch: "PatchJPEGLS | None" = PatchJPEGLS.JAI2ISO
        """The patch applied to *JPEG-LS Lossless* codestreams before they
        are decoded, or ``None`` to decode them unchanged (default
        ``PatchJPEGLS.JAI2ISO``)."""

    @property
    def overlay_activation_mask(self) -> int:
        """Get or set the bitmask of the overlay groups (60xx) that are
        burned into monochrome images, bit 0 is group 6000 and bit 15 is
        group 601E (default ``0xF``).
        """
        return self._overlay_activation_mask

    @overlay_activation_mask.setter
    def overlay_activation_mask(self, value: int) -> None:
        if not 0 <= value <= 0xFFFF:
            raise ValueError(
                "The overlay activation mask must be in the range (0, 0xFFFF)"
            )

        self._overlay_activation_mask = value

    @property
    def overlay_grayscale_value(self) -> int:
        """Get or set the 16-bit grayscale value used to burn in overlays
        when no presentation state is supplied (default ``0xFFFF``).
        """
        return self._overlay_grayscale_value

    @overlay_grayscale_value.setter
    def overlay_grayscale_value(self, value: int) -> None:
        if not 0 <= value <= 0xFFFF:
            raise ValueError(
                "The overlay grayscale value must be in the range (0, 0xFFFF)"
            )

        self._overlay_grayscale_value = value

    @property
    def destination_bits(self) -> int:
        """Get or set the number of bits per sample of monochrome images
        returned for display, one of ``8`` (default) or ``16``.
        """
        return self._destination_bits

    @destination_bits.setter
    def destination_bits(self, value: int) -> None:
        if value not in (8, 16):
            raise ValueError("The destination bits must be 8 or 16")

        self._destination_bits = value


settings = Settings()
"""The global configuration object of type :class:`Settings` to access some
of the settings. More settings may move here in later versions.
"""

debugging: bool


def debug(debug_on: bool = True, default_handler: bool = True) -> None:
    """Turn on/off debugging of frame reading and decoding.

    When debugging is on, the progress of frame addressing and decoding is
    logged to the 'dcmframes' logger using Python's :mod:`logging` module.

    Parameters
    ----------
    debug_on : bool, optional
        If ``True`` (default) then turn on debugging, ``False`` to turn off.
    default_handler : bool, optional
        If ``True`` (default) then use :class:`logging.StreamHandler` as the
        handler for log messages.
    """
    global logger, debugging

    if default_handler:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    if debug_on:
        logger.setLevel(logging.DEBUG)
        debugging = True
    else:
        logger.setLevel(logging.WARNING)
        debugging = False


# force level=WARNING, in case logging default is set differently (issue 103)
debug(False, False)
