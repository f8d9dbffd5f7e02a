# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Typed accessors for the attributes of a :class:`~pydicom.dataset.Dataset`.

Element values that are empty are treated the same as absent elements. Tags
may be given either as an element keyword or as an integer tag, the latter is
required for repeating groups such as the overlay planes (60xx).
"""

from typing import Any

from pydicom.dataelem import DataElement
from pydicom.dataset import Dataset
from pydicom.multival import MultiValue
from pydicom.tag import BaseTag, Tag


TagType = int | str | BaseTag


def _element(ds: Dataset | None, tag: TagType) -> DataElement | None:
    """Return the non-empty element for `tag` or ``None``."""
    if ds is None:
        return None

    tag = Tag(tag)
    if tag not in ds:
        return None

    elem = ds[tag]
    return None if elem.is_empty else elem


def contains_value(ds: Dataset | None, tag: TagType) -> bool:
    """Return ``True`` if `ds` contains a non-empty value for `tag`."""
    return _element(ds, tag) is not None


def get_value(ds: Dataset | None, tag: TagType) -> Any:
    """Return the value for `tag` or ``None`` if absent or empty."""
    elem = _element(ds, tag)
    return None if elem is None else elem.value


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, MultiValue | list | tuple):
        return list(value)

    return [value]


def get_sequence(ds: Dataset | None, tag: TagType) -> list[Dataset] | None:
    """Return the items of the sequence `tag` or ``None`` if absent or empty."""
    value = get_value(ds, tag)
    if value is None:
        return None

    return list(value)


def get_nested(ds: Dataset | None, tag: TagType, index: int = 0) -> Dataset | None:
    """Return the item at `index` in the sequence `tag`, or ``None``."""
    items = get_sequence(ds, tag)
    if items is None or not 0 <= index < len(items):
        return None

    return items[index]


def get_ints(ds: Dataset | None, tag: TagType) -> list[int] | None:
    """Return all the values of `tag` as :class:`int`, or ``None``."""
    value = get_value(ds, tag)
    if value is None:
        return None

    return [int(v) for v in _as_list(value)]


def get_int(
    ds: Dataset | None, tag: TagType, default: Any = None, index: int = 0
) -> int | Any:
    """Return the value at `index` of `tag` as :class:`int`, or `default`."""
    values = get_ints(ds, tag)
    if not values:
        return default

    return values[index] if index < len(values) else values[0]


def get_floats(ds: Dataset | None, tag: TagType) -> list[float] | None:
    """Return all the values of `tag` as :class:`float`, or ``None``."""
    value = get_value(ds, tag)
    if value is None:
        return None

    return [float(v) for v in _as_list(value)]


def get_float(
    ds: Dataset | None, tag: TagType, default: Any = None, index: int = 0
) -> float | Any:
    """Return the value at `index` of `tag` as :class:`float`, or `default`.

    If `tag` has fewer than ``index + 1`` values the first value is used.
    """
    values = get_floats(ds, tag)
    if not values:
        return default

    return values[index] if index < len(values) else values[0]


def get_string(
    ds: Dataset | None, tag: TagType, default: Any = None, index: int = 0
) -> str | Any:
    """Return the value at `index` of `tag` as a stripped :class:`str`, or
    `default`.
    """
    value = get_value(ds, tag)
    if value is None:
        return default

    values = _as_list(value)
    value = values[index] if index < len(values) else values[0]
    return str(value).strip()


def get_bytes(ds: Dataset | None, tag: TagType) -> bytes | None:
    """Return the value of `tag` as :class:`bytes`, or ``None``.

    Only elements with a binary value (OB, OW, UN, ...) are supported.
    """
    value = get_value(ds, tag)
    if value is None:
        return None

    if not isinstance(value, bytes | bytearray | memoryview):
        raise TypeError(f"The value of {Tag(tag)} is not binary")

    return bytes(value)


def element_vr(ds: Dataset | None, tag: TagType) -> str | None:
    """Return the VR of `tag`, or ``None`` if absent or empty."""
    elem = _element(ds, tag)
    return None if elem is None else elem.VR


def is_little_endian(ds: Dataset) -> bool:
    """Return ``True`` if the values of `ds` were encoded little endian.

    Nested items inherit the encoding of the dataset they were read from,
    datasets created in memory are little endian.
    """
    encoding = getattr(ds, "original_encoding", (None, None))
    if encoding[1] is not None:
        return bool(encoding[1])

    file_meta = getattr(ds, "file_meta", None)
    tsyntax = get_value(file_meta, "TransferSyntaxUID")
    if tsyntax is not None and tsyntax.is_transfer_syntax:
        return bool(tsyntax.is_little_endian)

    return True

