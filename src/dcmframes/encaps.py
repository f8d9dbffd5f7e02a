# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Functions for addressing the frames of encapsulated (compressed) pixel
data.

Encapsulated *Pixel Data* is a sequence of items: the Basic Offset Table
followed by one or more fragments. A frame may be split over several
fragments, and there are several ways of working out which fragments belong
to which frame:

* the Basic Offset Table, or the *Extended Offset Table*, if present,
* a single frame uses all the fragments,
* the same number of fragments as frames means one fragment per frame,
* more fragments than frames requires searching for the JPEG EOI/EOC marker
  at the end of each frame's codestream.
"""

from bisect import bisect_right
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from io import BufferedIOBase
import os
from struct import unpack
from typing import BinaryIO

from pydicom.encaps import parse_basic_offsets
from pydicom.tag import Tag

from dcmframes.config import logger
from dcmframes.errors import InsufficientFragments, MalformedPixelData
from dcmframes.misc import warn_and_log
from dcmframes.sources import ForwardOnlySource, SourceType, open_source


ITEM_TAG = 0xFFFEE000
SEQUENCE_DELIMITER_TAG = 0xFFFEE0DD
UNDEFINED_LENGTH = 0xFFFFFFFF
# JPEG EOI and JPEG 2000 EOC markers
EOI_MARKER = b"\xff\xd9"


@dataclass(frozen=True)
class Fragment:
    """The location of the value of a single fragment item."""

    #: The offset to the first byte of the item value in `source`
    offset: int
    #: The length of the item value
    length: int
    #: The buffer, path or file-like containing the fragment
    source: SourceType = field(repr=False, compare=False)


@dataclass
class FragmentList:
    """The fragments of encapsulated *Pixel Data*.

    When the pixel data is read from a forward-only stream the fragments
    are discovered while the frames are read and `fragments` is empty.
    """

    fragments: list[Fragment]
    #: The Basic Offset Table values, may be empty
    basic_offsets: list[int] = field(default_factory=list)
    #: The (offsets, lengths) of the Extended Offset Table, if any
    extended_offsets: tuple[list[int], list[int]] | None = None
    #: The offset to the item tag of the first fragment in the source
    first_item: int = 0
    streamed: bool = False
    _frames: list[list[Fragment]] | None = field(default=None, init=False, repr=False)

    def frame_fragments(self, index: int, number_of_frames: int) -> list[Fragment]:
        """Return the fragments for the frame at `index`.

        Parameters
        ----------
        index : int
            The index of the frame.
        number_of_frames : int
            The expected number of frames.

        Raises
        ------
        dcmframes.errors.InsufficientFragments
            If there are fewer frames available than required.
        """
        if self._frames is None:
            self._frames = group_fragments(
                self.fragments,
                number_of_frames,
                self.basic_offsets,
                extended_offsets=self.extended_offsets,
                first_item=self.first_item,
                read_tail=read_fragment_tail,
            )
            logger.debug(
                f"Mapped {len(self.fragments)} fragment(s) to {len(self._frames)} "
                "frame(s)"
            )

        if index >= len(self._frames):
            raise InsufficientFragments(available=len(self._frames))

        return self._frames[index]


def _read_item_header(fp: BinaryIO, endianness: str) -> tuple[int, int] | None:
    """Return the (tag, length) of the next item, or ``None`` if at the end
    of the data.
    """
    header = fp.read(8)
    if len(header) < 8:
        return None

    group, elem, length = unpack(f"{endianness}HHL", header)
    return group << 16 | elem, length


def scan_fragments(
    fp: BinaryIO,
    offset: int,
    *,
    source: SourceType,
    endianness: str = "<",
    extended_offsets: tuple[list[int], list[int]] | None = None,
) -> FragmentList:
    """Return the locations of the fragments of encapsulated pixel data.

    Only the item headers are read, the fragment data is skipped over.

    Parameters
    ----------
    fp : BinaryIO
        A seekable file-like containing the encapsulated pixel data.
    offset : int
        The offset in `fp` to the first byte of the Basic Offset Table item.
    source : SourceType
        The source the fragment locations refer to.
    endianness : str, optional
        ``"<"`` (default) for little endian encoding, ``">"`` for big endian.
    extended_offsets : tuple[list[int], list[int]], optional
        The offsets and lengths from the dataset's *Extended Offset Table*.

    Returns
    -------
    FragmentList
        The fragments, in the order they're encoded.
    """
    fp.seek(offset)
    try:
        basic_offsets = parse_basic_offsets(fp, endianness=endianness)
    except ValueError as exc:
        raise MalformedPixelData(str(exc)) from exc

    first_item = fp.tell()
    fragments = []
    while (header := _read_item_header(fp, endianness)) is not None:
        tag, length = header
        if tag == SEQUENCE_DELIMITER_TAG:
            break

        if tag != ITEM_TAG:
            raise MalformedPixelData(
                f"Unexpected tag '{Tag(tag)}' at offset {fp.tell() - 8} when "
                "parsing the encapsulated pixel data fragment items"
            )

        if length == UNDEFINED_LENGTH:
            raise MalformedPixelData(
                f"Undefined item length at offset {fp.tell() - 4} when parsing "
                "the encapsulated pixel data fragments"
            )

        fragments.append(Fragment(fp.tell(), length, source))
        fp.seek(length, os.SEEK_CUR)

    return FragmentList(
        fragments,
        basic_offsets,
        extended_offsets=extended_offsets,
        first_item=first_item,
    )


def read_fragment_tail(fragment: Fragment, size: int = 10) -> bytes:
    """Return up to the last `size` bytes of `fragment`."""
    size = min(size, fragment.length)
    with open_source(fragment.source) as fp:
        fp.seek(fragment.offset + fragment.length - size)
        return fp.read(size)


def group_fragments(
    fragments: list[Fragment],
    number_of_frames: int,
    basic_offsets: list[int] | None = None,
    *,
    extended_offsets: tuple[list[int], list[int]] | None = None,
    first_item: int = 0,
    read_tail: Callable[[Fragment], bytes] | None = None,
) -> list[list[Fragment]]:
    """Return the fragments grouped by frame.

    Parameters
    ----------
    fragments : list[Fragment]
        The fragments of the encapsulated pixel data, in encoded order.
    number_of_frames : int
        The expected number of frames.
    basic_offsets : list[int], optional
        The Basic Offset Table values.
    extended_offsets : tuple[list[int], list[int]], optional
        The Extended Offset Table offsets and lengths.
    first_item : int, optional
        The offset to the item tag of the first fragment, used to convert
        the fragment offsets to the offsets used by the offset tables.
    read_tail : Callable[[Fragment], bytes], optional
        A callable returning the final bytes of a fragment. Required to split
        the fragments into frames when there are more fragments than frames
        and no offset table, otherwise each fragment is used as a frame.

    Returns
    -------
    list[list[Fragment]]
        The fragments for each frame found, which may be fewer than
        `number_of_frames`.
    """
    if not fragments:
        return []

    def relative(fragment: Fragment) -> int:
        # Offset to the fragment's item tag from the first fragment's item tag
        return fragment.offset - 8 - first_item

    if extended_offsets:
        by_offset = {relative(f): f for f in fragments}
        frames = []
        for offset in extended_offsets[0]:
            if offset not in by_offset:
                break

            frames.append([by_offset[offset]])

        return frames

    if basic_offsets:
        frames = [[] for _ in basic_offsets]
        for fragment in fragments:
            index = max(bisect_right(basic_offsets, relative(fragment)) - 1, 0)
            frames[index].append(fragment)

        return [frame for frame in frames if frame]

    nr_fragments = len(fragments)
    if number_of_frames <= 1:
        return [list(fragments)]

    if nr_fragments <= number_of_frames or read_tail is None:
        return [[fragment] for fragment in fragments]

    frames = []
    frame: list[Fragment] = []
    for fragment in fragments:
        frame.append(fragment)
        if EOI_MARKER in read_tail(fragment):
            frames.append(frame)
            frame = []

    if frame:
        warn_and_log(
            "The end of the encapsulated pixel data has been reached but no "
            "JPEG EOI/EOC marker was found, the final frame may be invalid"
        )
        frames.append(frame)

    return frames


class SegmentedFrameStream(BufferedIOBase):
    """A read-only stream over the fragments of a single frame.

    The fragment data is read from `fp` on demand as if it were one
    contiguous codestream.
    """

    def __init__(self, fp: BinaryIO, fragments: list[Fragment]) -> None:
        """Create a new ``SegmentedFrameStream``.

        Parameters
        ----------
        fp : BinaryIO
            A seekable file-like containing the fragments.
        fragments : list[Fragment]
            The fragments of the frame, in order.
        """
        self._fp = fp
        self._fragments = fragments
        # The offsets of the start of each fragment within the frame
        self._starts = [0]
        for fragment in fragments:
            self._starts.append(self._starts[-1] + fragment.length)

        self._offset = 0

    @property
    def length(self) -> int:
        """Return the total length of the frame's codestream."""
        return self._starts[-1]

    def read(self, size: int | None = -1, /) -> bytes:
        """Read up to `size` bytes, or all the remaining data if `size` is
        negative or ``None``.
        """
        if size is None or size < 0:
            size = self.length - self._offset

        out = bytearray()
        while size > 0 and self._offset < self.length:
            index = bisect_right(self._starts, self._offset) - 1
            fragment = self._fragments[index]
            within = self._offset - self._starts[index]
            nr_bytes = min(size, fragment.length - within)

            self._fp.seek(fragment.offset + within)
            data = self._fp.read(nr_bytes)
            if len(data) != nr_bytes:
                raise MalformedPixelData(
                    "The end of the pixel data was reached while reading a "
                    f"{fragment.length} byte fragment at offset {fragment.offset}"
                )

            out.extend(data)
            self._offset += nr_bytes
            size -= nr_bytes

        return bytes(out)

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
        elif whence == os.SEEK_END:
            position = self.length + offset
        else:
            raise ValueError("Invalid 'whence' value, should be 0, 1 or 2")

        self._offset = max(position, 0)
        return self._offset

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._offset


class EncapsulatedFrameStream:
    """Forward-only access to the frames of encapsulated pixel data.

    The stream has a frame cursor, starting at frame 0. The current frame
    can be read any number of times, but moving to a later frame means
    walking the fragment items of each intervening frame in turn, so the
    cost of :meth:`seek_frame` grows with the distance moved. Once the cursor
    has moved past a frame it can't be read again.
    """

    def __init__(
        self,
        fp: ForwardOnlySource,
        number_of_frames: int,
        *,
        endianness: str = "<",
        split_on_eoi: bool = True,
    ) -> None:
        """Create a new ``EncapsulatedFrameStream``.

        Parameters
        ----------
        fp : dcmframes.sources.ForwardOnlySource
            The source, positioned at the start of the Basic Offset Table item.
        number_of_frames : int
            The expected number of frames.
        endianness : str, optional
            ``"<"`` (default) for little endian encoding, ``">"`` for big
            endian.
        split_on_eoi : bool, optional
            When there's no Basic Offset Table and more than one frame,
            ``True`` (default) to end each frame at the first fragment
            finishing with a JPEG EOI/EOC marker, ``False`` to use one
            fragment per frame.
        """
        self._fp = fp
        self._endianness = endianness
        self._nr_frames = number_of_frames
        self._split_on_eoi = split_on_eoi
        try:
            self.basic_offsets = parse_basic_offsets(fp, endianness=endianness)
        except ValueError as exc:
            raise MalformedPixelData(str(exc)) from exc

        self._first_item = fp.tell()
        self._frame_start = self._first_item
        #: The index of the current frame
        self.frame_index = 0
        fp.flush()

    def _frame_ended(self, item_offset: int, tail: bytes, nr_fragments: int) -> bool:
        """Return ``True`` if the current frame ends before the fragment
        whose item tag is at `item_offset`.
        """
        if self.basic_offsets:
            index = self.frame_index + 1
            if index >= len(self.basic_offsets):
                return False

            return item_offset - self._first_item >= self.basic_offsets[index]

        if self._nr_frames <= 1 or not nr_fragments:
            return False

        if self._split_on_eoi:
            return EOI_MARKER in tail

        return True

    def _walk_frame(self, read_data: bool) -> tuple[list[bytes], int]:
        """Walk the fragments of the current frame from its start.

        Returns the fragment data (if `read_data`) and the number of
        fragments. The position is left at the item tag that follows the
        frame.
        """
        fp = self._fp
        fp.seek(self._frame_start)
        data: list[bytes] = []
        tail = b""
        nr_fragments = 0
        while True:
            item_offset = fp.tell()
            if self._frame_ended(item_offset, tail, nr_fragments):
                break

            header = _read_item_header(fp, self._endianness)
            if header is None or header[0] == SEQUENCE_DELIMITER_TAG:
                break

            tag, length = header
            if tag != ITEM_TAG or length == UNDEFINED_LENGTH:
                raise MalformedPixelData(
                    f"Invalid item '{Tag(tag)}' with length {length} at offset "
                    f"{item_offset} in the encapsulated pixel data"
                )

            if read_data:
                fragment = fp.read(length)
                if len(fragment) != length:
                    raise MalformedPixelData(
                        "The end of the stream was reached while reading a "
                        f"{length} byte fragment"
                    )

                data.append(fragment)
                tail = fragment[-10:]
            else:
                fp.seek(max(length - 10, 0), os.SEEK_CUR)
                tail = fp.read(min(length, 10))

            nr_fragments += 1

        # Step back over the next item's header, if it was read
        fp.seek(item_offset)
        return data, nr_fragments

    def seek_current_frame(self) -> None:
        """Position the stream at the start of the current frame."""
        self._fp.seek(self._frame_start)

    def seek_next_frame(self) -> bool:
        """Move the cursor to the next frame.

        Returns
        -------
        bool
            ``True`` if successful, ``False`` if there are no more frames, in
            which case the cursor remains on the current frame.
        """
        self._walk_frame(read_data=False)
        next_start = self._fp.tell()
        header = _read_item_header(self._fp, self._endianness)
        if header is None or header[0] != ITEM_TAG:
            self.seek_current_frame()
            return False

        self._fp.seek(next_start)
        # The previous frame can no longer be reached
        self._fp.flush()
        self._frame_start = next_start
        self.frame_index += 1
        logger.debug(f"Encapsulated frame cursor moved to frame {self.frame_index}")

        return True

    def seek_frame(self, index: int) -> None:
        """Move the cursor forward to the frame at `index`.

        Raises
        ------
        dcmframes.errors.InsufficientFragments
            If the fragments run out before `index` is reached, the cursor is
            left on the last frame found.
        """
        while self.frame_index < index:
            if not self.seek_next_frame():
                raise InsufficientFragments(available=self.frame_index + 1)

        if self.frame_index > index:
            # Checked by the reader before the cursor is moved
            raise ValueError(
                f"Frame {index} precedes the current frame {self.frame_index}"
            )

        self.seek_current_frame()

    def read_frame(self) -> bytes:
        """Return the encoded data of the current frame.

        Raises
        ------
        dcmframes.errors.InsufficientFragments
            If the current frame has no fragments.
        """
        data, nr_fragments = self._walk_frame(read_data=True)
        if not nr_fragments:
            raise InsufficientFragments(available=self.frame_index)

        return b"".join(data)
