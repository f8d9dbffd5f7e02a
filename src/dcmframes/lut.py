# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Lookup tables for the grayscale rendering pipeline.

A :class:`LookupTable` maps the stored values of a frame (or the output of
a preceding table) to output values of a given bit depth. Tables are
combined so the modality, VOI and presentation transforms are applied to the
frame in a single lookup.
"""

from math import log2
from typing import Any

import numpy as np

from pydicom.dataset import Dataset

from dcmframes import attrs


class StoredValue:
    """The range and signedness of a frame's stored values.

    Parameters
    ----------
    bits_stored : int
        The number of bits used by each stored value.
    signed : bool, optional
        ``True`` if the values are two's complement signed integers.
    """

    def __init__(self, bits_stored: int, signed: bool = False) -> None:
        if not 0 < bits_stored <= 32:
            raise ValueError(f"Invalid number of bits stored '{bits_stored}'")

        self.bits_stored = bits_stored
        self.signed = signed
        self._mask = (1 << bits_stored) - 1

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, StoredValue):
            return NotImplemented

        return (self.bits_stored, self.signed) == (other.bits_stored, other.signed)

    def __repr__(self) -> str:
        kind = "Signed" if self.signed else "Unsigned"
        return f"StoredValue({kind}, {self.bits_stored})"

    @property
    def min_value(self) -> int:
        """Return the smallest stored value."""
        return -(1 << (self.bits_stored - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        """Return the largest stored value."""
        if self.signed:
            return (1 << (self.bits_stored - 1)) - 1

        return self._mask

    def value_of(self, arr: np.ndarray | int) -> np.ndarray:
        """Return the stored values of `arr` as :class:`numpy.int64`.

        Bits above the stored bits (such as embedded overlay planes) are
        discarded and signed values are sign extended.
        """
        values = np.asarray(arr).astype(np.int64) & self._mask
        if self.signed:
            sign = 1 << (self.bits_stored - 1)
            values = (values ^ sign) - sign

        return values


class LookupTable:
    """A lookup table mapping input values to `out_bits` output values.

    Inputs below `offset` map to the first entry and inputs past the end of
    the table map to the last entry.

    Parameters
    ----------
    in_bits : StoredValue
        The range of the input values.
    out_bits : int
        The number of bits of each output value.
    offset : int
        The input value corresponding to the first entry.
    data : numpy.ndarray
        The table entries.
    """

    def __init__(
        self, in_bits: StoredValue, out_bits: int, offset: int, data: np.ndarray
    ) -> None:
        if not len(data):
            raise ValueError("A lookup table must have at least one entry")

        self.in_bits = in_bits
        self.out_bits = out_bits
        self.offset = offset
        self.data = np.asarray(data, dtype=np.uint32)

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return (
            f"LookupTable(in_bits={self.in_bits}, out_bits={self.out_bits}, "
            f"offset={self.offset}, length={len(self)})"
        )

    @property
    def dtype(self) -> np.dtype:
        """Return the smallest unsigned dtype that holds the output values."""
        return np.dtype("u1" if self.out_bits <= 8 else "u2")

    def lookup(self, arr: np.ndarray | int) -> np.ndarray:
        """Return the output values for the input values in `arr`."""
        index = self.in_bits.value_of(arr) - self.offset
        np.clip(index, 0, len(self.data) - 1, out=index)

        return self.data[index].astype(self.dtype)

    def adjust_out_bits(self, out_bits: int) -> "LookupTable":
        """Rescale the output values to `out_bits` and return the table."""
        diff = out_bits - self.out_bits
        if diff > 0:
            self.data <<= diff
        elif diff < 0:
            self.data >>= -diff

        self.out_bits = out_bits
        return self

    def inverse(self) -> None:
        """Invert the output values."""
        max_out = (1 << self.out_bits) - 1
        self.data = max_out - np.minimum(self.data, max_out)

    def combine(self, other: "LookupTable") -> "LookupTable":
        """Return a table equivalent to applying this table then `other`."""
        data = other.lookup(self.data)
        return LookupTable(self.in_bits, other.out_bits, self.offset, data)


def ramp(
    in_bits: StoredValue, out_bits: int, offset: int, size: int, flip: bool = False
) -> LookupTable:
    """Return a linear table of `size` entries spanning ``[0, 2**out_bits)``.

    Parameters
    ----------
    in_bits : StoredValue
        The range of the input values.
    out_bits : int
        The number of bits of the output values.
    offset : int
        The input value that maps to the first entry.
    size : int
        The number of entries, must be at least 2.
    flip : bool, optional
        ``True`` for a descending ramp.
    """
    if size < 2:
        raise ValueError("A ramp requires at least 2 entries")

    max_out = (1 << out_bits) - 1
    entries = np.arange(size, dtype=np.int64)
    data = (entries * max_out + (size - 1) // 2) // (size - 1)
    if flip:
        data = data[::-1]

    return LookupTable(in_bits, out_bits, offset, data)


def lut_descriptor(item: Dataset | None) -> tuple[int, int, int] | None:
    """Return the (entries, first mapped value, bits per entry) of the (0028,3002)
    *LUT Descriptor* in `item`, or ``None`` if absent or invalid.

    A number of entries of 0 means 2**16 entries.
    """
    desc = attrs.get_ints(item, "LUTDescriptor")
    if desc is None or len(desc) != 3:
        return None

    return desc[0] or 0x10000, desc[1], desc[2]


def _lut_data(item: Dataset, nr_entries: int, out_bits: int) -> np.ndarray | None:
    """Return the (0028,3006) *LUT Data* entries of `item`."""
    value = attrs.get_value(item, "LUTData")
    if value is None:
        return None

    if not isinstance(value, bytes | bytearray):
        # US values have already been decoded
        data = np.asarray(attrs.get_ints(item, "LUTData"), dtype=np.int64)
        return data & ((1 << out_bits) - 1) if out_bits <= 8 else data

    endianness = "<" if attrs.is_little_endian(item) else ">"
    if len(value) == 2 * nr_entries and out_bits > 8:
        return np.frombuffer(value, dtype=f"{endianness}u2").astype(np.int64)

    if len(value) == 2 * nr_entries:
        # 8-bit entries padded to 16 bits, use the low byte of each word
        start = 0 if endianness == "<" else 1
        return np.frombuffer(value, dtype="u1")[start::2].astype(np.int64)

    return np.frombuffer(value, dtype="u1").astype(np.int64)


def from_lut_item(in_bits: StoredValue, item: Dataset | None) -> LookupTable | None:
    """Return the lookup table in a *Modality LUT Sequence* or *VOI LUT
    Sequence* `item`, or ``None`` if it has no valid table.

    The first mapped value of the *LUT Descriptor* is signed only when the
    input values are signed.
    """
    desc = lut_descriptor(item)
    if desc is None:
        return None

    nr_entries, first, out_bits = desc
    if out_bits > 16:
        return None

    if in_bits.signed and first >= 0x8000:
        first -= 0x10000

    data = _lut_data(item, nr_entries, out_bits)  # type: ignore[arg-type]
    if data is None or not len(data):
        return None

    return LookupTable(in_bits, out_bits, first, data)


def from_presentation_item(item: Dataset | None) -> LookupTable | None:
    """Return the lookup table in a *Presentation LUT Sequence* `item`.

    The input range of the table is ``[0, number of entries)``, the first
    mapped value is ignored.
    """
    desc = lut_descriptor(item)
    if desc is None:
        return None

    nr_entries, _, out_bits = desc
    data = _lut_data(item, nr_entries, out_bits)  # type: ignore[arg-type]
    if data is None or not len(data):
        return None

    return LookupTable(StoredValue(int(log2(nr_entries))), out_bits, 0, data)
