# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Resolve the geometry of the frames of pixel data from the *Image Pixel*
module attributes.
"""

from dataclasses import dataclass
from math import ceil

from pydicom.dataset import Dataset
from pydicom.pixels.common import PhotometricInterpretation as PI
from pydicom.uid import UID, ExplicitVRBigEndian, ExplicitVRLittleEndian

from dcmframes import attrs
from dcmframes.config import logger
from dcmframes.encaps import FragmentList
from dcmframes.errors import (
    MalformedPixelData,
    MissingFileMetaInformation,
    MissingPixelData,
    UnsupportedTransferSyntax,
)
from dcmframes.locator import ContiguousBlob, PixelDataRef
from dcmframes.misc import warn_and_log


MONOCHROME = (PI.MONOCHROME1, PI.MONOCHROME2)
# The number of encoded samples per pixel for subsampled color data
_SUBSAMPLED = {
    PI.YBR_FULL_422: 2,
    PI.YBR_PARTIAL_422: 2,
    PI.YBR_PARTIAL_420: 1.5,
}


def is_monochrome(photometric_interpretation: str) -> bool:
    """Return ``True`` for the MONOCHROME1 and MONOCHROME2 interpretations."""
    return photometric_interpretation in MONOCHROME


def is_ybr(photometric_interpretation: str) -> bool:
    """Return ``True`` for the YBR interpretations."""
    return photometric_interpretation.startswith("YBR")


def frame_length(
    photometric_interpretation: str,
    rows: int,
    columns: int,
    samples_per_pixel: int,
    bits_allocated: int,
) -> int:
    """Return the number of bytes used by one native frame of pixel data.

    Subsampled YBR data packs fewer samples per pixel than it decodes to and
    single bit data is rounded up to a whole number of bytes.
    """
    samples = _SUBSAMPLED.get(photometric_interpretation, samples_per_pixel)
    nr_bits = rows * columns * samples * bits_allocated
    return ceil(nr_bits / 8)


@dataclass(frozen=True)
class FrameGeometry:
    """The shape and encoding of each frame of pixel data.

    All the frames of a dataset share the same geometry.
    """

    frames: int
    columns: int
    rows: int
    samples_per_pixel: int
    #: ``True`` if the samples are encoded color-by-plane
    banded: bool
    bits_allocated: int
    bits_stored: int
    pixel_representation: int
    #: The NumPy dtype string of the raw samples, ``"u1"`` or ``"u2"``
    dtype: str
    photometric_interpretation: str
    #: The length of a native frame in bytes, ``-1`` if compressed
    frame_length: int
    transfer_syntax: UID
    #: ``True`` if the pixel data is big endian encoded
    big_endian: bool = False
    pixel_data_vr: str = "OW"

    @property
    def is_compressed(self) -> bool:
        return self.frame_length == -1

    @property
    def is_monochrome(self) -> bool:
        return is_monochrome(self.photometric_interpretation)

    @property
    def is_signed(self) -> bool:
        return self.pixel_representation == 1

    @property
    def pixels_per_frame(self) -> int:
        return self.rows * self.columns

    @property
    def native_length(self) -> int:
        """Return the length of a frame as if it were native encoded."""
        return frame_length(
            self.photometric_interpretation,
            self.rows,
            self.columns,
            self.samples_per_pixel,
            self.bits_allocated,
        )


def resolve_geometry(
    ds: Dataset,
    pixel_ref: PixelDataRef | None,
    *,
    transfer_syntax: UID | str | None = None,
    big_endian: bool = False,
    pixel_data_vr: str | None = None,
) -> FrameGeometry:
    """Return the frame geometry for the pixel data of `ds`.

    Parameters
    ----------
    ds : pydicom.dataset.Dataset
        The dataset containing the *Image Pixel* module.
    pixel_ref : PixelDataRef | None
        The location of the pixel data, or ``None`` if there's no pixel data.
    transfer_syntax : pydicom.uid.UID | str | None, optional
        The *Transfer Syntax UID* from the File Meta Information, if any.
        Required for encapsulated pixel data.
    big_endian : bool, optional
        ``True`` if the dataset is encoded big endian, only used with native
        pixel data when `transfer_syntax` is unavailable.
    pixel_data_vr : str | None, optional
        The VR of the *Pixel Data* element as encoded, if known.

    Returns
    -------
    FrameGeometry
        The geometry of the frames.

    Raises
    ------
    dcmframes.errors.MissingPixelData
        If there's no pixel data.
    dcmframes.errors.MissingFileMetaInformation
        If the pixel data is encapsulated and there's no transfer syntax.
    dcmframes.errors.UnsupportedTransferSyntax
        If the transfer syntax is not a known syntax.
    dcmframes.errors.MalformedPixelData
        If the image attributes are invalid or inconsistent with the length
        of the pixel data.
    """
    if pixel_ref is None:
        raise MissingPixelData()

    frames = attrs.get_int(ds, "NumberOfFrames", 1)
    columns = attrs.get_int(ds, "Columns", 0)
    rows = attrs.get_int(ds, "Rows", 0)
    samples = attrs.get_int(ds, "SamplesPerPixel", 1)
    banded = samples > 1 and attrs.get_int(ds, "PlanarConfiguration", 0) != 0
    bits_allocated = attrs.get_int(ds, "BitsAllocated", 8)
    bits_stored = attrs.get_int(ds, "BitsStored", bits_allocated)
    pixel_representation = attrs.get_int(ds, "PixelRepresentation", 0)
    pmi = attrs.get_string(ds, "PhotometricInterpretation", PI.MONOCHROME2)

    try:
        pmi = PI(pmi)
    except ValueError:
        raise MalformedPixelData(
            f"Unknown (0028,0004) 'Photometric Interpretation' value '{pmi}'"
        )

    if bits_allocated not in (1, 8, 16):
        raise MalformedPixelData(
            f"A (0028,0100) 'Bits Allocated' value of '{bits_allocated}' is not "
            "supported, must be 1, 8 or 16"
        )

    if not 0 < bits_stored <= bits_allocated:
        raise MalformedPixelData(
            f"The (0028,0101) 'Bits Stored' value '{bits_stored}' is invalid "
            f"for a (0028,0100) 'Bits Allocated' value of '{bits_allocated}'"
        )

    tsyntax = UID(transfer_syntax) if transfer_syntax else None
    if isinstance(pixel_ref, FragmentList):
        if tsyntax is None:
            raise MissingFileMetaInformation()

        if not tsyntax.is_transfer_syntax or not tsyntax.is_encapsulated:
            raise UnsupportedTransferSyntax(uid=tsyntax)

        length = -1
        big_endian = False
    else:
        if tsyntax is not None and tsyntax.is_transfer_syntax:
            if tsyntax.is_encapsulated:
                raise MalformedPixelData(
                    f"The transfer syntax '{tsyntax.name}' is for encapsulated "
                    "pixel data but the (7FE0,0010) 'Pixel Data' isn't encapsulated"
                )

            big_endian = not tsyntax.is_little_endian
        else:
            tsyntax = ExplicitVRBigEndian if big_endian else ExplicitVRLittleEndian

        length = frame_length(pmi, rows, columns, samples, bits_allocated)
        nr_samples = rows * columns * samples
        _check_length(pixel_ref, frames, length, bits_allocated, nr_samples)

    geometry = FrameGeometry(
        frames=frames,
        columns=columns,
        rows=rows,
        samples_per_pixel=samples,
        banded=banded,
        bits_allocated=bits_allocated,
        bits_stored=bits_stored,
        pixel_representation=pixel_representation,
        dtype="u1" if bits_allocated <= 8 else "u2",
        photometric_interpretation=str(pmi),
        frame_length=length,
        transfer_syntax=tsyntax,
        big_endian=big_endian,
        pixel_data_vr=pixel_data_vr or ("OB" if bits_allocated <= 8 else "OW"),
    )
    logger.debug(f"Resolved frame geometry: {geometry}")

    return geometry


def _check_length(
    pixel_ref: ContiguousBlob,
    frames: int,
    length: int,
    bits_allocated: int,
    samples_per_frame: int,
) -> None:
    """Check the native pixel data is long enough for all the frames."""
    if bits_allocated == 1:
        # Single bit frames are packed without padding between frames
        expected = ceil(frames * samples_per_frame / 8)
    else:
        expected = frames * length

    actual = pixel_ref.length
    if actual < expected:
        raise MalformedPixelData(
            f"The length of the pixel data ({actual} bytes) doesn't match the "
            f"expected length ({expected} bytes) for {frames} frame(s) of "
            f"{length} bytes"
        )

    # Allow a single trailing padding byte for odd length data
    if actual > expected + expected % 2:
        warn_and_log(
            f"The pixel data is {actual} bytes long, which indicates it contains "
            f"{actual - expected} bytes of excess padding to be ignored"
        )
