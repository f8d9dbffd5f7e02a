# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Locate the (7FE0,0010) *Pixel Data* value of a dataset."""

from dataclasses import dataclass, field
from struct import unpack
from typing import BinaryIO, NamedTuple

from pydicom.dataelem import DataElement, RawDataElement
from pydicom.dataset import Dataset
from pydicom.fileutil import buffer_length

from dcmframes import attrs
from dcmframes.config import logger
from dcmframes.encaps import FragmentList, UNDEFINED_LENGTH, scan_fragments
from dcmframes.errors import MalformedPixelData
from dcmframes.misc import warn_and_log
from dcmframes.sources import SourceType, open_source


PIXEL_DATA_TAG = 0x7FE00010
# VRs using a 4 byte reserved + length field in explicit VR encoding
_LONG_VRS = {
    b"OB", b"OD", b"OF", b"OL", b"OV", b"OW", b"SQ", b"UC", b"UN", b"UR", b"UT"
}


@dataclass(frozen=True)
class ContiguousBlob:
    """The location of native (uncompressed) pixel data."""

    #: The offset to the first byte of the pixel data in `source`
    offset: int
    #: The length of the pixel data, excluding any trailing padding
    length: int
    #: The buffer, path or file-like containing the pixel data
    source: SourceType = field(repr=False, compare=False)


PixelDataRef = ContiguousBlob | FragmentList

ExtendedOffsets = tuple[list[int], list[int]]


def extended_offsets(
    ds: Dataset | None, little_endian: bool = True
) -> ExtendedOffsets | None:
    """Return the (offsets, lengths) of the *Extended Offset Table* of `ds`.

    Parameters
    ----------
    ds : pydicom.dataset.Dataset | None
        The dataset containing the (7FE0,0001) *Extended Offset Table* and
        (7FE0,0002) *Extended Offset Table Lengths* elements.
    little_endian : bool, optional
        ``True`` (default) if the 64-bit values are little endian encoded.

    Returns
    -------
    tuple[list[int], list[int]] | None
        The offset to the item tag of each frame's fragment, relative to the
        first fragment, and the length of each frame, or ``None`` if there's
        no usable table.
    """
    offsets = attrs.get_bytes(ds, "ExtendedOffsetTable")
    lengths = attrs.get_bytes(ds, "ExtendedOffsetTableLengths")
    if not offsets or not lengths:
        return None

    if len(offsets) % 8 or len(lengths) % 8 or len(offsets) != len(lengths):
        warn_and_log(
            "The number of items in (7FE0,0001) 'Extended Offset Table' and "
            "(7FE0,0002) 'Extended Offset Table Lengths' don't match - the "
            "extended offset table will be ignored"
        )
        return None

    fmt = f"{'<' if little_endian else '>'}{len(offsets) // 8}Q"
    return list(unpack(fmt, offsets)), list(unpack(fmt, lengths))


class PixelDataHeader(NamedTuple):
    """The header of an encoded (7FE0,0010) *Pixel Data* element."""

    vr: str
    length: int
    #: The offset to the first byte of the value
    value_offset: int

    @property
    def is_undefined_length(self) -> bool:
        return self.length == UNDEFINED_LENGTH


def read_pixel_data_header(
    fp: BinaryIO, implicit_vr: bool, little_endian: bool
) -> PixelDataHeader | None:
    """Read the header of the *Pixel Data* element at the current position.

    Parameters
    ----------
    fp : BinaryIO
        The file-like, positioned at the first byte of the element's tag, as
        left by ``dcmread(..., stop_before_pixels=True)``.
    implicit_vr : bool
        ``True`` if the dataset is encoded using implicit VR.
    little_endian : bool
        ``True`` if the dataset is encoded as little endian.

    Returns
    -------
    PixelDataHeader | None
        The element header, or ``None`` if there's no (7FE0,0010) element at
        the current position. `fp` is positioned at the start of the value.
    """
    endianness = "<" if little_endian else ">"
    start = fp.tell()
    data = fp.read(8)
    if len(data) < 8:
        return None

    group, elem = unpack(f"{endianness}HH", data[:4])
    if group << 16 | elem != PIXEL_DATA_TAG:
        logger.debug(
            f"No (7FE0,0010) 'Pixel Data' found, element at offset {start} is "
            f"({group:04X},{elem:04X})"
        )
        return None

    if implicit_vr:
        # Implicit VR pixel data is always OW, PS3.5 Section A.1
        length = unpack(f"{endianness}L", data[4:])[0]
        return PixelDataHeader("OW", length, start + 8)

    vr = data[4:6]
    if vr in _LONG_VRS:
        extra = fp.read(4)
        if len(extra) < 4:
            raise MalformedPixelData(
                "The (7FE0,0010) 'Pixel Data' header is truncated"
            )

        length = unpack(f"{endianness}L", extra)[0]
        return PixelDataHeader(vr.decode("ascii"), length, start + 12)

    # Shouldn't happen for pixel data, but handle the short form anyway
    length = unpack(f"{endianness}H", data[6:])[0]
    return PixelDataHeader(vr.decode("ascii", errors="replace"), length, start + 8)


def locate_in_file(
    fp: BinaryIO,
    header: PixelDataHeader,
    *,
    source: SourceType,
    little_endian: bool = True,
    ds: Dataset | None = None,
) -> PixelDataRef:
    """Return the location of the pixel data following `header` in the
    seekable `fp`.

    The *Extended Offset Table* of `ds`, if any, is used to map encapsulated
    fragments to frames.
    """
    if header.is_undefined_length:
        endianness = "<" if little_endian else ">"
        return scan_fragments(
            fp,
            header.value_offset,
            source=source,
            endianness=endianness,
            extended_offsets=extended_offsets(ds, little_endian),
        )

    return ContiguousBlob(header.value_offset, header.length, source)


def locate_pixel_data(ds: Dataset, filename: str | None = None) -> PixelDataRef | None:
    """Return the location of the pixel data of a parsed dataset.

    Parameters
    ----------
    ds : pydicom.dataset.Dataset
        The dataset, which may contain the pixel data value or, if read with
        deferred reading, only the location of the value in the file it was
        read from.
    filename : str, optional
        The path to the file `ds` was read from, defaults to ``ds.filename``.
        Required for deferred values.

    Returns
    -------
    PixelDataRef | None
        The location of the pixel data, or ``None`` if `ds` has no pixel
        data.
    """
    elem: DataElement | RawDataElement | None = ds.get_item(
        PIXEL_DATA_TAG, keep_deferred=True
    )
    if elem is None:
        return None

    value = elem.value
    if isinstance(elem, RawDataElement):
        undefined = elem.length == UNDEFINED_LENGTH
    else:
        undefined = elem.is_undefined_length

    tsyntax = attrs.get_value(getattr(ds, "file_meta", None), "TransferSyntaxUID")
    if tsyntax is not None and tsyntax.is_transfer_syntax:
        undefined = undefined or tsyntax.is_encapsulated
        little_endian = tsyntax.is_little_endian
    else:
        little_endian = attrs.is_little_endian(ds)

    endianness = "<" if little_endian else ">"
    extended = extended_offsets(ds, little_endian)

    if value is None and isinstance(elem, RawDataElement):
        # Deferred read: the value is in the file at `value_tell`
        filename = filename or getattr(ds, "filename", None)
        if not isinstance(filename, str):
            raise MalformedPixelData(
                "Unable to locate the deferred (7FE0,0010) 'Pixel Data' value as "
                "the dataset has no filename"
            )

        if not undefined:
            return ContiguousBlob(elem.value_tell, elem.length, filename)

        with open_source(filename) as fp:
            return scan_fragments(
                fp,
                elem.value_tell,
                source=filename,
                endianness=endianness,
                extended_offsets=extended,
            )

    if value is None:
        return None

    if hasattr(value, "read"):
        # A buffered element value
        source = value
        length = buffer_length(value)
    else:
        source = value if isinstance(value, bytes | bytearray) else bytes(value)
        length = len(source)

    if not length:
        return None

    if undefined:
        with open_source(source) as fp:
            return scan_fragments(
                fp,
                0,
                source=source,
                endianness=endianness,
                extended_offsets=extended,
            )

    return ContiguousBlob(0, length, source)
