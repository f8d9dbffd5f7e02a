# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Assemble the frames of native (uncompressed) *Pixel Data*."""

from math import ceil, prod
from typing import BinaryIO, NamedTuple

import numpy as np

from pydicom.pixels import pack_bits, unpack_bits
from pydicom.pixels.common import PhotometricInterpretation as PI
from pydicom.pixels.utils import expand_ybr422

from dcmframes.config import logger
from dcmframes.errors import MalformedPixelData
from dcmframes.geometry import FrameGeometry
from dcmframes.sources import read_exactly, read_into


class FrameSpan(NamedTuple):
    """The bytes to read for one native frame."""

    #: The offset to the first byte to read, relative to the pixel data
    offset: int
    #: The number of bytes to read
    length: int
    #: The number of leading bytes read before the frame's first byte
    lead: int = 0
    #: The bit offset to the frame's first pixel, single bit data only
    bit_offset: int = 0


def needs_byte_swap(geometry: FrameGeometry) -> bool:
    """Return ``True`` if the bytes of each word of the frame must be swapped
    after reading.

    Big endian OW data is encoded as 16-bit words, so 8-bit and 1-bit samples
    must be swapped in pairs to restore their order.
    """
    return (
        geometry.big_endian
        and geometry.pixel_data_vr == "OW"
        and geometry.bits_allocated in (1, 8)
    )


def frame_span(geometry: FrameGeometry, index: int) -> FrameSpan:
    """Return the bytes to read for frame `index` of the native pixel data.

    Frame ``i`` occupies ``[i * frame_length, (i + 1) * frame_length)``,
    except for single bit data where frames are packed without padding and
    may start part way through a byte. When the data must be byte swapped the
    span is widened to whole words.
    """
    if geometry.bits_allocated == 1:
        nr_bits = geometry.pixels_per_frame * geometry.samples_per_pixel
        start, bit_offset = divmod(index * nr_bits, 8)
        end = ceil((index + 1) * nr_bits / 8)
    else:
        start, bit_offset = index * geometry.frame_length, 0
        end = start + geometry.frame_length

    lead = 0
    if needs_byte_swap(geometry):
        lead = start % 2
        start -= lead
        end += end % 2

    return FrameSpan(start, end - start, lead, bit_offset)


def _frame_shape(geometry: FrameGeometry) -> tuple[int, ...]:
    rows, columns = geometry.rows, geometry.columns
    samples = geometry.samples_per_pixel
    if samples == 1:
        return (rows, columns)

    if geometry.banded:
        return (samples, rows, columns)

    return (rows, columns, samples)


def _is_subsampled(geometry: FrameGeometry) -> bool:
    return geometry.photometric_interpretation in (
        PI.YBR_FULL_422,
        PI.YBR_PARTIAL_422,
    )


def stored_shape(geometry: FrameGeometry) -> tuple[int, ...]:
    """Return the shape of a native frame in its stored layout.

    Single bit frames are packed, eight pixels to a byte, and subsampled YBR
    frames have two samples per pixel (Y Y Cb Cr for each pair of pixels).
    """
    if geometry.bits_allocated == 1:
        return (geometry.frame_length,)

    if _is_subsampled(geometry):
        return (geometry.rows, 2 * geometry.columns)

    return _frame_shape(geometry)


def _source_dtype(geometry: FrameGeometry) -> np.dtype:
    """Return the dtype of the samples as encoded."""
    if geometry.bits_allocated == 16:
        return np.dtype(">u2" if geometry.big_endian else "<u2")

    return np.dtype("u1")


def assemble_frame(
    data: bytes | bytearray, geometry: FrameGeometry, span: FrameSpan | None = None
) -> np.ndarray:
    """Return the native frame in `data` as an unsigned :class:`numpy.ndarray`.

    Parameters
    ----------
    data : bytes | bytearray
        The bytes read for the frame's `span`.
    geometry : dcmframes.geometry.FrameGeometry
        The geometry of the frame.
    span : FrameSpan, optional
        The span used to read `data`, default is a span starting at the
        first byte of the frame.

    Returns
    -------
    numpy.ndarray
        The samples of the frame in native byte order and in their stored
        layout, see :func:`stored_shape`. The array uses exactly
        ``geometry.frame_length`` bytes.
    """
    span = span or FrameSpan(0, len(data))
    if len(data) < span.length:
        raise MalformedPixelData(
            f"Expected {span.length} bytes of pixel data but only {len(data)} "
            "bytes are available"
        )

    if needs_byte_swap(geometry):
        data = np.frombuffer(data, dtype="<u2").byteswap().tobytes()

    data = data[span.lead :]
    if geometry.bits_allocated == 1:
        # Realign the frame to start at the first bit of the first byte
        nr_pixels = geometry.pixels_per_frame * geometry.samples_per_pixel
        bits = unpack_bits(data)[span.bit_offset : span.bit_offset + nr_pixels]
        packed = pack_bits(bits, pad=False)
        return np.frombuffer(packed, dtype="u1").copy()

    pmi = geometry.photometric_interpretation
    if pmi == PI.YBR_PARTIAL_420:
        raise MalformedPixelData(
            f"A (0028,0004) 'Photometric Interpretation' of '{pmi}' is only "
            "valid for compressed pixel data"
        )

    shape = stored_shape(geometry)
    arr = np.frombuffer(data, dtype=_source_dtype(geometry), count=prod(shape))

    return arr.astype(arr.dtype.newbyteorder("=")).reshape(shape)


def expand_frame(arr: np.ndarray, geometry: FrameGeometry) -> np.ndarray:
    """Return a native frame in its stored layout with one value per sample.

    Single bit frames are unpacked to one byte per pixel and subsampled YBR
    frames are expanded to full resolution interleaved samples. Other frames
    are returned unchanged.

    Parameters
    ----------
    arr : numpy.ndarray
        The frame, as returned by :func:`read_native_frame`.
    geometry : dcmframes.geometry.FrameGeometry
        The geometry of the frame.

    Returns
    -------
    numpy.ndarray
        The frame shaped (rows, columns) for single sample data, otherwise
        (samples, rows, columns) if banded or (rows, columns, samples).
    """
    if geometry.bits_allocated == 1:
        nr_pixels = geometry.pixels_per_frame * geometry.samples_per_pixel
        bits = unpack_bits(arr.tobytes())[:nr_pixels]
        return bits.astype("u1").reshape(_frame_shape(geometry))

    if _is_subsampled(geometry):
        data = expand_ybr422(arr.tobytes(), geometry.bits_allocated)
        shape = (geometry.rows, geometry.columns, geometry.samples_per_pixel)
        return np.frombuffer(data, dtype=arr.dtype).reshape(shape).copy()

    return arr


def read_native_frame(
    fp: BinaryIO, geometry: FrameGeometry, span: FrameSpan | None = None
) -> np.ndarray:
    """Read a native frame from the current position of `fp`.

    `fp` must be positioned at ``span.offset`` from the start of the pixel
    data. When the frame can be read directly each band (or the whole frame
    if interleaved) is filled from `fp` into a preallocated array, otherwise
    the span is read and then converted by :func:`assemble_frame`.

    Returns
    -------
    numpy.ndarray
        The frame in its stored layout, see :func:`stored_shape`.

    Raises
    ------
    dcmframes.errors.MalformedPixelData
        If the pixel data ends before the frame is complete.
    """
    span = span or FrameSpan(0, geometry.frame_length)
    direct = (
        not span.lead
        and geometry.bits_allocated in (8, 16)
        and not needs_byte_swap(geometry)
        and geometry.photometric_interpretation != PI.YBR_PARTIAL_420
    )
    if not direct:
        return assemble_frame(read_exactly(fp, span.length), geometry, span)

    dtype = _source_dtype(geometry)
    arr = np.empty(stored_shape(geometry), dtype=dtype)
    if geometry.banded:
        logger.debug(f"Reading {geometry.samples_per_pixel} banks of pixel data")
        for bank in arr:
            read_into(fp, bank.reshape(-1).view("u1"))
    else:
        read_into(fp, arr.reshape(-1).view("u1"))

    return arr.astype(dtype.newbyteorder("="), copy=False)
