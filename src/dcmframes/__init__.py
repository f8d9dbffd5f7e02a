# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""dcmframes -- read and render the frames of DICOM pixel data.

-----------
Quick Start
-----------

1. Read the first frame of a dataset rendered for display::

    from dcmframes import FrameReader
    with FrameReader("CT_small.dcm") as reader:
        image = reader.read_image(0)
        image.to_pil().save("frame.png")

2. Read the frames of a dataset arriving on a non-seekable stream, in
   order::

    reader = FrameReader(sys.stdin.buffer)
    for image in reader.iter_images(window_center=40, window_width=400):
        ...

3. Get the stored sample values of a frame without any rendering::

    arr = reader.read_raster(0)

"""

from dcmframes.config import settings, debug
from dcmframes.errors import (
    FrameReaderError,
    FrameIndexOutOfRange,
    InsufficientFragments,
    MalformedPixelData,
    MissingFileMetaInformation,
    MissingPixelData,
    NoInputBound,
    SequentialAccessViolation,
    UnsupportedTransferSyntax,
)
from dcmframes.geometry import FrameGeometry
from dcmframes.imagetype import FrameImage, ImageType
from dcmframes.reader import FrameReader, ReadOptions

from ._version import __version__, __version_info__

__all__ = [
    "FrameGeometry",
    "FrameImage",
    "FrameIndexOutOfRange",
    "FrameReader",
    "FrameReaderError",
    "ImageType",
    "InsufficientFragments",
    "MalformedPixelData",
    "MissingFileMetaInformation",
    "MissingPixelData",
    "NoInputBound",
    "ReadOptions",
    "SequentialAccessViolation",
    "UnsupportedTransferSyntax",
    "debug",
    "settings",
    "__version__",
    "__version_info__",
]
