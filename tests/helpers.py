# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Helpers for building test datasets in memory."""

from io import BytesIO, RawIOBase
from struct import pack

from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.encaps import encapsulate, encapsulate_extended
from pydicom.uid import (
    ExplicitVRLittleEndian,
    RLELossless,
    SecondaryCaptureImageStorage,
    generate_uid,
)


def make_dataset(
    pixel_data: bytes | None = b"",
    *,
    rows: int = 4,
    columns: int = 4,
    frames: int = 1,
    bits_allocated: int = 8,
    bits_stored: int | None = None,
    samples_per_pixel: int = 1,
    photometric_interpretation: str = "MONOCHROME2",
    pixel_representation: int = 0,
    planar_configuration: int = 0,
    transfer_syntax: str = ExplicitVRLittleEndian,
) -> Dataset:
    """Return a dataset with an Image Pixel module and File Meta Information."""
    ds = Dataset()
    ds.SOPClassUID = SecondaryCaptureImageStorage
    ds.SOPInstanceUID = generate_uid()
    ds.Rows = rows
    ds.Columns = columns
    ds.NumberOfFrames = frames
    ds.BitsAllocated = bits_allocated
    ds.BitsStored = bits_stored or bits_allocated
    ds.HighBit = ds.BitsStored - 1
    ds.SamplesPerPixel = samples_per_pixel
    ds.PhotometricInterpretation = photometric_interpretation
    ds.PixelRepresentation = pixel_representation
    if samples_per_pixel > 1:
        ds.PlanarConfiguration = planar_configuration

    if pixel_data is not None:
        ds.PixelData = pixel_data

    ds.file_meta = FileMetaDataset()
    ds.file_meta.TransferSyntaxUID = transfer_syntax

    return ds


def to_bytes(ds: Dataset) -> bytes:
    """Return `ds` encoded in the DICOM File Format."""
    buffer = BytesIO()
    ds.save_as(buffer, enforce_file_format=True)
    return buffer.getvalue()


def rle_segment(data: bytes) -> bytes:
    """Return `data` encoded as PackBits literal runs."""
    out = bytearray()
    for start in range(0, len(data), 128):
        run = data[start : start + 128]
        out.append(len(run) - 1)
        out.extend(run)

    if len(out) % 2:
        out.append(0x80)

    return bytes(out)


def rle_frame(*segments: bytes) -> bytes:
    """Return an RLE Lossless frame with the given raw segment data."""
    encoded = [rle_segment(s) for s in segments]
    offsets = []
    offset = 64
    for segment in encoded:
        offsets.append(offset)
        offset += len(segment)

    header = pack(f"<{1 + len(offsets)}L", len(offsets), *offsets)
    header += b"\x00" * (64 - len(header))
    return header + b"".join(encoded)


def rle_dataset(
    frames: list[bytes],
    *,
    number_of_frames: int | None = None,
    has_bot: bool = True,
    extended: bool = False,
) -> Dataset:
    """Return a 4 x 4 8-bit RLE Lossless dataset for the raw `frames`.

    If `extended` then the frames are located by an Extended Offset Table
    rather than the Basic Offset Table.
    """
    ds = make_dataset(
        None,
        frames=number_of_frames or len(frames),
        transfer_syntax=RLELossless,
    )
    encoded = [rle_frame(f) for f in frames]
    if extended:
        data, offsets, lengths = encapsulate_extended(encoded)
        ds.ExtendedOffsetTable = offsets
        ds.ExtendedOffsetTableLengths = lengths
        ds.PixelData = data
    else:
        ds.PixelData = encapsulate(encoded, has_bot=has_bot)

    ds["PixelData"].VR = "OB"
    ds["PixelData"].is_undefined_length = True

    return ds


class NonSeekable(RawIOBase):
    """A readable stream that can't seek, like a pipe or socket."""

    def __init__(self, data: bytes) -> None:
        self._buffer = BytesIO(data)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def readinto(self, b) -> int:  # type: ignore[no-untyped-def]
        data = self._buffer.read(len(b))
        b[: len(data)] = data
        return len(data)
