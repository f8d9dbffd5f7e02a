# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Byte sources for the frame reader.

A frame reader is bound to one of three kinds of input:

* a readable stream that can't seek (a pipe or socket), which is wrapped in a
  :class:`ForwardOnlySource` so it can only be moved forward,
* a seekable binary file-like or a path to a file, which is accessed
  directly by position,
* a parsed :class:`~pydicom.dataset.Dataset`.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from io import BufferedIOBase, BytesIO
import os
from typing import Any, BinaryIO

from dcmframes.config import logger
from dcmframes.errors import MalformedPixelData, SequentialAccessViolation


Buffer = bytes | bytearray | memoryview
# An in-memory buffer, a path to a file or an open file-like
SourceType = Buffer | str | BinaryIO

_CHUNK_SIZE = 65536


class ForwardOnlySource(BufferedIOBase):
    """A read-only wrapper for a non-seekable stream that may only move
    forward.

    Everything read from the wrapped stream since the last call to
    :meth:`flush` is retained, so the position may be moved backwards within
    that range (as required to parse the data set header). Seeking before
    the flushed position raises :class:`~dcmframes.errors.SequentialAccessViolation`.
    Seeking past the data read so far reads (and retains) the intervening
    data, use :meth:`skip` to move forward without retaining it.
    """

    def __init__(self, stream: BinaryIO) -> None:
        """Create a new ``ForwardOnlySource``.

        Parameters
        ----------
        stream : BinaryIO
            The stream to read from, must have a ``read()`` method.
        """
        if not hasattr(stream, "read"):
            raise TypeError(
                "A forward-only source requires a stream with a 'read()' method"
            )

        self._stream = stream
        # Data read from the stream since the last flush()
        self._retained = bytearray()
        # The absolute offset of the first byte in `_retained`
        self._flushed = 0
        # The absolute offset of the current position
        self._offset = 0

    @property
    def flushed_position(self) -> int:
        """Return the position before which no data can be read."""
        return self._flushed

    def flush(self) -> None:
        """Discard the retained data preceding the current position."""
        del self._retained[: self._offset - self._flushed]
        self._flushed = self._offset

    @property
    def name(self) -> str | None:
        """Return the name of the wrapped stream, if any."""
        return getattr(self._stream, "name", None)

    def _fill(self, size: int) -> None:
        """Read up to `size` bytes from the stream into the retained data."""
        while size > 0:
            data = self._stream.read(min(size, _CHUNK_SIZE))
            if not data:
                break

            self._retained.extend(data)
            size -= len(data)

    def read(self, size: int | None = -1, /) -> bytes:
        """Return up to `size` bytes from the current position, or all the
        remaining data if `size` is negative or ``None``.
        """
        end = self._flushed + len(self._retained)
        if size is None or size < 0:
            self._retained.extend(self._stream.read())
            end = self._flushed + len(self._retained)
            size = end - self._offset
        elif self._offset + size > end:
            self._fill(self._offset + size - end)

        start = self._offset - self._flushed
        data = bytes(self._retained[start : start + size])
        self._offset += len(data)

        return data

    def readable(self) -> bool:
        return True

    def seek(self, offset: int, whence: int = os.SEEK_SET, /) -> int:
        """Change the position to the given byte `offset`, relative to the
        position indicated by `whence` and return the new absolute position.
        """
        if whence == os.SEEK_SET:
            position = offset
        elif whence == os.SEEK_CUR:
            position = self._offset + offset
        else:
            raise ValueError(
                "A forward-only source only supports seeking relative to the "
                "start or the current position"
            )

        if position < self._flushed:
            raise SequentialAccessViolation(
                f"Unable to seek to offset {position} as the stream has already "
                f"been read up to offset {self._flushed}"
            )

        end = self._flushed + len(self._retained)
        if position > end:
            self._fill(position - end)
            end = self._flushed + len(self._retained)

        self._offset = min(position, end)
        return self._offset

    def seekable(self) -> bool:
        """Return ``False``, only limited seeking is supported."""
        return False

    def skip(self, length: int) -> None:
        """Flush the retained data and move forward `length` bytes without
        retaining them.

        Raises
        ------
        dcmframes.errors.MalformedPixelData
            If the end of the stream is reached first.
        """
        self.flush()
        remaining = length
        # Skip any data that's already been read
        ahead = min(remaining, len(self._retained))
        del self._retained[:ahead]
        remaining -= ahead

        while remaining > 0:
            data = self._stream.read(min(remaining, _CHUNK_SIZE))
            if not data:
                raise MalformedPixelData(
                    f"The end of the stream was reached while skipping {length} bytes"
                )

            remaining -= len(data)

        self._offset += length
        self._flushed = self._offset

    def tell(self) -> int:
        """Return the current absolute position."""
        return self._offset


def is_forward_only(fp: Any) -> bool:
    """Return ``True`` if the file-like `fp` can't seek."""
    if isinstance(fp, ForwardOnlySource):
        return True

    try:
        return not fp.seekable()
    except (AttributeError, ValueError):
        return not hasattr(fp, "seek")


def read_exactly(fp: BinaryIO, length: int) -> bytes:
    """Read `length` bytes from the current position of `fp`.

    Raises
    ------
    dcmframes.errors.MalformedPixelData
        If fewer than `length` bytes are available.
    """
    data = fp.read(length)
    if len(data) != length:
        raise MalformedPixelData(
            f"Expected {length} bytes of pixel data but only {len(data)} bytes "
            "are available"
        )

    return data


def read_into(fp: BinaryIO, buffer: bytearray | memoryview) -> None:
    """Fill `buffer` from the current position of `fp`.

    Raises
    ------
    dcmframes.errors.MalformedPixelData
        If the data ends before `buffer` is full.
    """
    view = memoryview(buffer).cast("B")
    nr_read = 0
    while nr_read < len(view):
        n = fp.readinto(view[nr_read:])  # type: ignore[attr-defined]
        if not n:
            raise MalformedPixelData(
                f"Expected {len(view)} bytes of pixel data but only {nr_read} "
                "bytes are available"
            )

        nr_read += n


@contextmanager
def open_source(source: SourceType) -> Iterator[BinaryIO]:
    """Context manager for reading from `source`.

    Paths are opened for the duration of the context and closed on exit,
    whether or not an exception occurred. Buffers are wrapped in a
    :class:`io.BytesIO` and file-likes are returned as-is (they're owned by
    the caller).
    """
    if isinstance(source, str):
        logger.debug(f"Opening '{source}' to read pixel data")
        with open(source, "rb") as f:
            yield f
    elif isinstance(source, bytes | bytearray | memoryview):
        yield BytesIO(source)  # type: ignore[arg-type]
    else:
        yield source
