# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Module for dcmframes exception classes"""


class FrameReaderError(Exception):
    """Base class for the exceptions raised while reading pixel data frames."""

    default_message = "Unable to read the pixel data frame"

    def __init__(self, *args: object) -> None:
        if not args:
            args = (self.default_message,)
        Exception.__init__(self, *args)


class NoInputBound(FrameReaderError, RuntimeError):
    """Raised when a frame is requested before an input has been bound."""

    default_message = "No input has been bound to the frame reader"


class MissingPixelData(FrameReaderError):
    """Raised when the bound dataset has no (7FE0,0010) *Pixel Data*."""

    default_message = "The dataset contains no Pixel Data"


class FrameIndexOutOfRange(FrameReaderError, IndexError):
    """Raised when a frame index is outside ``[0, number of frames)``."""

    default_message = "The frame index is out of range"


class SequentialAccessViolation(FrameReaderError):
    """Raised when a forward-only input would have to seek backwards.

    The frame reader only moves forward through a non-seekable stream, so
    a frame that precedes the frames already read can no longer be reached.
    """

    default_message = (
        "The input stream is already positioned after the requested frame"
    )


class InsufficientFragments(FrameReaderError):
    """Raised when the encapsulated pixel data contains fewer frames than
    requested.

    Attributes
    ----------
    available : int | None
        The number of frames actually found in the pixel data fragments.
    """

    default_message = "The pixel data fragments contain fewer frames than expected"

    def __init__(self, *args: object, available: int | None = None) -> None:
        if not args and available is not None:
            args = (f"The pixel data fragments only contain {available} frames",)

        super().__init__(*args)
        self.available = available


class MissingFileMetaInformation(FrameReaderError):
    """Raised when compressed pixel data has no resolvable transfer syntax."""

    default_message = (
        "Missing File Meta Information for a dataset with compressed Pixel Data"
    )


class UnsupportedTransferSyntax(FrameReaderError, NotImplementedError):
    """Raised when no decoder is known for a transfer syntax.

    Attributes
    ----------
    uid : str | None
        The unsupported *Transfer Syntax UID*.
    """

    default_message = "Unsupported Transfer Syntax"

    def __init__(self, *args: object, uid: str | None = None) -> None:
        if not args and uid is not None:
            args = (f"Unsupported Transfer Syntax: {uid}",)

        super().__init__(*args)
        self.uid = uid


class MalformedPixelData(FrameReaderError, ValueError):
    """Raised when the pixel data is inconsistent with the image geometry."""

    default_message = "The pixel data is inconsistent with the image geometry"
