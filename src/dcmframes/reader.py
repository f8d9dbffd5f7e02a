# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Read and render the frames of DICOM *Pixel Data*."""

from collections.abc import Iterator
from contextlib import ExitStack
import os
from types import TracebackType
from typing import Any, BinaryIO, TypedDict

import numpy as np

from pydicom import dcmread
from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.uid import DeflatedExplicitVRLittleEndian, RLELossless

from dcmframes import attrs
from dcmframes.config import logger, settings
from dcmframes.decoders.base import DecodedFrame, Decompressor, get_decompressor
from dcmframes.encaps import EncapsulatedFrameStream, FragmentList, SegmentedFrameStream
from dcmframes.errors import (
    FrameIndexOutOfRange,
    MissingPixelData,
    NoInputBound,
    SequentialAccessViolation,
)
from dcmframes.geometry import FrameGeometry, resolve_geometry
from dcmframes.imagetype import FrameImage, ImageType, image_type_for
from dcmframes.imagetype import image_type_from_geometry
from dcmframes.locator import (
    ContiguousBlob,
    PixelDataRef,
    locate_in_file,
    locate_pixel_data,
    read_pixel_data_header,
)
from dcmframes.lut import StoredValue
from dcmframes.native import expand_frame, frame_span, read_native_frame
from dcmframes.overlays import burn_overlays
from dcmframes.sources import ForwardOnlySource, is_forward_only, open_source
from dcmframes.sources import read_exactly
from dcmframes.windowing import create_frame_lut


class ReadOptions(TypedDict, total=False):
    """Options accepted by :meth:`FrameReader.read_image`.

    Options that aren't given use the corresponding value from
    :attr:`dcmframes.config.settings`.
    """

    #: The bits per sample of rendered monochrome frames, 8 or 16
    destination_bits: int
    #: A presentation state replacing the image's rendering attributes
    presentation_state: Dataset | None
    window_center: float
    #: A non-zero width overrides the image's VOI attributes
    window_width: float
    window_index: int
    voi_lut_index: int
    prefer_window: bool
    auto_windowing: bool
    overlay_activation_mask: int
    overlay_grayscale_value: int
    #: Convert YBR color frames to RGB
    as_rgb: bool
    decoding_plugin: str


def _resolve_options(options: dict[str, Any]) -> ReadOptions:
    """Return `options` with the defaults from the settings added."""
    unknown = sorted(set(options) - set(ReadOptions.__annotations__))
    if unknown:
        raise ValueError(f"Unknown read option(s): {', '.join(unknown)}")

    opts: ReadOptions = {
        "destination_bits": settings.destination_bits,
        "presentation_state": None,
        "window_center": 0.0,
        "window_width": 0.0,
        "window_index": 0,
        "voi_lut_index": 0,
        "prefer_window": settings.prefer_window,
        "auto_windowing": settings.auto_windowing,
        "overlay_activation_mask": settings.overlay_activation_mask,
        "overlay_grayscale_value": settings.overlay_grayscale_value,
        "as_rgb": False,
        "decoding_plugin": settings.decoding_plugin,
    }
    opts.update(options)  # type: ignore[typeddict-item]
    if opts["destination_bits"] not in (8, 16):
        raise ValueError("The destination bits must be 8 or 16")

    return opts


class FrameReader:
    """Read the frames of the *Pixel Data* of a DICOM dataset.

    A reader is bound to a single input at a time, one of:

    * a readable stream that can't seek, such as a pipe or socket. The frames
      must then be read in increasing order and a frame that precedes the
      last frame read can't be read again (with the exception of the current
      frame of encapsulated pixel data),
    * a seekable binary file-like, a path to a file or a buffer, whose frames
      may be read in any order,
    * a parsed :class:`~pydicom.dataset.Dataset`.

    The dataset is parsed and the frame geometry resolved the first time
    it's needed, after which it's cached until the next call to :meth:`bind`.

    Examples
    --------

    >>> from dcmframes import FrameReader
    >>> with FrameReader("CT_small.dcm") as reader:
    ...     image = reader.read_image(0, window_center=40, window_width=400)
    ...     image.pixels.shape
    (128, 128)
    """

    def __init__(self, src: Any = None, *, force: bool = False) -> None:
        """Create a new frame reader.

        Parameters
        ----------
        src : Any, optional
            The input to bind to, see :meth:`bind`.
        force : bool, optional
            Passed to :func:`~pydicom.filereader.dcmread` when parsing the
            input, if ``True`` then read files without a DICOM preamble.
        """
        self._reset()
        if src is not None:
            self.bind(src, force=force)

    def __enter__(self) -> "FrameReader":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.dispose()

    def _reset(self) -> None:
        self._bound = False
        self._force = False
        # The bound input and how it's accessed
        self._src: Any = None
        self._fp: BinaryIO | None = None
        self._streamed = False
        # Session state, resolved on first use
        self._resolved = False
        self._dataset: Dataset | None = None
        self._pixel_ref: PixelDataRef | None = None
        self._geometry: FrameGeometry | None = None
        self._decompressor: Decompressor | None = None
        # The offset to the native pixel data value in a stream
        self._value_offset = 0
        # The number of frames read from a native stream
        self._flushed_frames = 0
        self._frame_stream: EncapsulatedFrameStream | None = None

    def bind(self, src: Any, *, force: bool = False) -> None:
        """Bind the reader to a new input, discarding any previous state.

        Parameters
        ----------
        src : Any
            One of:

            * a :class:`~pydicom.dataset.Dataset`,
            * a :class:`str` or :class:`os.PathLike` path to a DICOM file,
            * a :class:`bytes`, :class:`bytearray` or :class:`memoryview`
              containing a DICOM file,
            * a readable binary file-like, seekable or not.
        force : bool, optional
            If ``True`` then read files without a DICOM preamble.
        """
        self.dispose()
        if isinstance(src, os.PathLike):
            src = os.fspath(src)

        if isinstance(src, Dataset | str | bytes | bytearray | memoryview):
            self._src = src
        elif hasattr(src, "read"):
            self._src = src
            self._streamed = is_forward_only(src)
            if self._streamed and not isinstance(src, ForwardOnlySource):
                self._fp = ForwardOnlySource(src)
            else:
                self._fp = src
        else:
            raise TypeError(
                f"Unable to bind to an input of type '{type(src).__name__}'"
            )

        self._bound = True
        self._force = force
        logger.debug(f"Bound to input of type '{type(src).__name__}'")

    def dispose(self) -> None:
        """Release the resources held by the reader and unbind its input.

        File-likes passed to :meth:`bind` are owned by the caller and aren't
        closed. May be called more than once.
        """
        if self._decompressor is not None:
            self._decompressor.dispose()

        self._reset()

    def _check_bound(self) -> None:
        if not self._bound:
            raise NoInputBound()

    def _resolve(self) -> None:
        """Parse the dataset and resolve the frame geometry."""
        self._check_bound()
        if self._resolved:
            return

        src = self._src
        pixel_vr = None
        if isinstance(src, Dataset):
            self._dataset = src
            self._pixel_ref = locate_pixel_data(src)
            pixel_vr = self._dataset_pixel_vr(src)
        elif isinstance(src, str | bytes | bytearray | memoryview):
            with open_source(src) as fp:
                pixel_vr = self._parse(fp, src)
        else:
            pixel_vr = self._parse(self._fp, self._fp)  # type: ignore[arg-type]

        ds = self._dataset
        file_meta = getattr(ds, "file_meta", None)
        self._geometry = resolve_geometry(
            ds,  # type: ignore[arg-type]
            self._pixel_ref,
            transfer_syntax=attrs.get_value(file_meta, "TransferSyntaxUID"),
            big_endian=not attrs.is_little_endian(ds),  # type: ignore[arg-type]
            pixel_data_vr=pixel_vr,
        )
        if self._geometry.is_compressed:
            # Resolved once, unknown syntaxes fail here rather than per frame
            self._decompressor = get_decompressor(self._geometry.transfer_syntax)

        if isinstance(self._pixel_ref, FragmentList) and self._pixel_ref.streamed:
            little_endian = attrs.is_little_endian(ds)  # type: ignore[arg-type]
            endianness = "<" if little_endian else ">"
            self._frame_stream = EncapsulatedFrameStream(
                self._fp,  # type: ignore[arg-type]
                self._geometry.frames,
                endianness=endianness,
                split_on_eoi=self._geometry.transfer_syntax != RLELossless,
            )

        self._resolved = True

    @staticmethod
    def _dataset_pixel_vr(ds: Dataset) -> str | None:
        elem = ds.get_item(0x7FE00010, keep_deferred=True)
        vr = getattr(elem, "VR", None)
        if vr in ("OB", "OW"):
            return str(vr)

        if elem is not None and vr is None:
            # Deferred implicit VR element
            return "OW"

        return None

    def _parse(self, fp: BinaryIO, source: Any) -> str | None:
        """Parse the dataset in `fp` and locate its pixel data.

        Returns the VR of the *Pixel Data* element.
        """
        start = fp.tell()
        ds = dcmread(fp, stop_before_pixels=True, force=self._force)
        tsyntax = attrs.get_value(ds.file_meta, "TransferSyntaxUID")
        if tsyntax == DeflatedExplicitVRLittleEndian:
            # The whole dataset is compressed so parse it all
            logger.debug("Reading the deflated dataset in full")
            fp.seek(start)
            ds = dcmread(fp, force=self._force)
            self._dataset = ds
            self._pixel_ref = locate_pixel_data(ds)
            self._streamed = False
            return self._dataset_pixel_vr(ds)

        self._dataset = ds
        implicit_vr, little_endian = ds.original_encoding
        header = read_pixel_data_header(
            fp, bool(implicit_vr), little_endian is not False
        )
        if header is None:
            self._pixel_ref = None
            return None

        if self._streamed:
            self._value_offset = header.value_offset
            if header.is_undefined_length:
                self._pixel_ref = FragmentList([], streamed=True)
            else:
                self._pixel_ref = ContiguousBlob(header.value_offset, header.length, fp)

            self._fp.flush()  # type: ignore[union-attr]
        else:
            self._pixel_ref = locate_in_file(
                fp,
                header,
                source=source,
                little_endian=little_endian is not False,
                ds=ds,
            )

        return header.vr

    @property
    def dataset(self) -> Dataset:
        """Return the parsed dataset, excluding any streamed pixel data."""
        self._resolve()
        return self._dataset  # type: ignore[return-value]

    @property
    def file_meta(self) -> FileMetaDataset | None:
        """Return the File Meta Information of the dataset, if any."""
        return getattr(self.dataset, "file_meta", None)

    @property
    def geometry(self) -> FrameGeometry:
        """Return the frame geometry."""
        self._resolve()
        return self._geometry  # type: ignore[return-value]

    @property
    def pixel_data(self) -> PixelDataRef:
        """Return the location of the pixel data."""
        self._resolve()
        if self._pixel_ref is None:
            raise MissingPixelData()

        return self._pixel_ref

    @property
    def decompressor(self) -> Decompressor | None:
        """Return the frame decompressor, or ``None`` for native pixel data."""
        self._resolve()
        return self._decompressor

    def _check_index(self, index: int) -> FrameGeometry:
        geometry = self.geometry
        if not 0 <= index < geometry.frames:
            raise FrameIndexOutOfRange(
                f"Frame index {index} is out of range for pixel data with "
                f"{geometry.frames} frame(s)"
            )

        return geometry

    def frame_count(self) -> int:
        """Return the number of frames in the pixel data."""
        return self.geometry.frames

    def frame_width(self, index: int = 0) -> int:
        """Return the number of columns in the frame at `index`."""
        return self._check_index(index).columns

    def frame_height(self, index: int = 0) -> int:
        """Return the number of rows in the frame at `index`."""
        return self._check_index(index).rows

    def raw_pixel_layout(self, index: int = 0) -> ImageType:
        """Return the encoding of the stored samples of the frame at `index`."""
        return image_type_from_geometry(self._check_index(index), for_display=False)

    def image_type(
        self, index: int = 0, destination_bits: int | None = None
    ) -> ImageType:
        """Return the encoding of the frame at `index` as returned by
        :meth:`read_image`.
        """
        bits = destination_bits or settings.destination_bits
        return image_type_from_geometry(
            self._check_index(index), destination_bits=bits
        )

    def _seek_stream(self, target: int) -> BinaryIO:
        """Move the forward-only stream to the absolute offset `target`."""
        fp: ForwardOnlySource = self._fp  # type: ignore[assignment]
        position = fp.tell()
        if target < position:
            fp.seek(target)
        else:
            fp.skip(target - position)

        return fp

    def _check_stream_order(self, index: int) -> None:
        """Raise if the frame at `index` can no longer be reached."""
        if not self._streamed:
            return

        if self._frame_stream is not None:
            current = self._frame_stream.frame_index
        else:
            current = self._flushed_frames

        if index < current:
            raise SequentialAccessViolation(
                f"Unable to read frame {index} as the input stream is already "
                f"positioned after it (frame {current})"
            )

    def _encapsulated_frame(self, index: int) -> bytes:
        """Return the encoded data for the frame at `index`."""
        if self._frame_stream is not None:
            stream = self._frame_stream
            if index == stream.frame_index:
                logger.debug(f"Reading the current encapsulated frame {index}")
            else:
                logger.debug(
                    f"Moving the encapsulated frame cursor from frame "
                    f"{stream.frame_index} to frame {index}"
                )
                stream.seek_frame(index)

            return stream.read_frame()

        fragments_ref: FragmentList = self._pixel_ref  # type: ignore[assignment]
        fragments = fragments_ref.frame_fragments(index, self.geometry.frames)
        with ExitStack() as stack:
            fp = stack.enter_context(open_source(fragments[0].source))
            return SegmentedFrameStream(fp, fragments).read()

    def _native_frame(self, index: int, raw_bytes: bool = False) -> Any:
        """Return the native frame at `index` as an array or, if `raw_bytes`,
        the encoded bytes.
        """
        geometry = self.geometry
        ref: ContiguousBlob = self._pixel_ref  # type: ignore[assignment]
        span = frame_span(geometry, index)
        with ExitStack() as stack:
            if self._streamed:
                fp = self._seek_stream(self._value_offset + span.offset)
                self._flushed_frames = index + 1
            else:
                fp = stack.enter_context(open_source(ref.source))
                fp.seek(ref.offset + span.offset)

            if raw_bytes:
                return read_exactly(fp, span.length)[span.lead :]

            return read_native_frame(fp, geometry, span)

    def read_frame_raw(self, index: int) -> bytes:
        """Return the encoded data of the frame at `index`.

        For encapsulated pixel data this is the frame's codestream, for
        native pixel data the bytes of the frame (single bit frames may start
        part way through the first byte).
        """
        geometry = self._check_index(index)
        self._check_stream_order(index)
        if geometry.is_compressed:
            return self._encapsulated_frame(index)

        return self._native_frame(index, raw_bytes=True)

    def _read_stored(
        self, index: int, opts: ReadOptions
    ) -> tuple[np.ndarray, ImageType]:
        """Return the stored samples of the frame at `index` and their
        encoding.
        """
        geometry = self._check_index(index)
        self._check_stream_order(index)
        if not geometry.is_compressed:
            logger.debug(f"Reading native frame {index}")
            arr = self._native_frame(index)
            return arr, image_type_from_geometry(geometry, for_display=False)

        src = self._encapsulated_frame(index)
        decompressor: Decompressor = self._decompressor  # type: ignore[assignment]
        frame: DecodedFrame = decompressor.decode(
            src,
            geometry,
            index=index,
            as_rgb=opts["as_rgb"],
            decoding_plugin=opts["decoding_plugin"],
        )
        layout = image_type_for(
            min(geometry.bits_stored, frame.bits_allocated),
            frame.bits_allocated,
            geometry.samples_per_pixel,
            False,
            frame.photometric_interpretation,
            for_display=False,
        )
        return frame.array, layout

    def read_raster(self, index: int, **options: Any) -> np.ndarray:
        """Return the stored samples of the frame at `index`.

        Parameters
        ----------
        index : int
            The index of the frame, starting at 0.
        **options
            The read options, see :class:`ReadOptions`. Only `as_rgb` and
            `decoding_plugin` affect the stored samples.

        Returns
        -------
        numpy.ndarray
            The unsigned samples, shaped (rows, columns) for single sample
            data, otherwise (rows, columns, samples) or, if banded,
            (samples, rows, columns). Native frames keep their stored layout
            and use exactly ``frame_length`` bytes: single bit frames are
            returned packed as a 1D array of bytes and subsampled YBR frames
            are shaped (rows, 2 * columns). Decoded frames are always
            interleaved.
        """
        opts = _resolve_options(options)
        return self._read_stored(index, opts)[0]

    def read_image(self, index: int, **options: Any) -> FrameImage:
        """Return the frame at `index` rendered for display.

        Monochrome frames are passed through the modality, VOI and
        presentation transforms and have their active overlays burned in.
        Color frames are returned as stored, or converted to RGB if the
        `as_rgb` option is used.

        Parameters
        ----------
        index : int
            The index of the frame, starting at 0.
        **options
            The read options, see :class:`ReadOptions`.

        Returns
        -------
        dcmframes.imagetype.FrameImage
            The rendered frame.
        """
        opts = _resolve_options(options)
        raw, layout = self._read_stored(index, opts)
        geometry = self.geometry
        if not geometry.is_compressed:
            raw = expand_frame(raw, geometry)

        ds = self.dataset
        if not layout.is_monochrome:
            image = FrameImage(raw, layout, ds)
            if opts["as_rgb"] and layout.photometric_interpretation.startswith("YBR"):
                rgb = image.to_rgb()
                layout = layout._replace(banded=False, photometric_interpretation="RGB")
                image = FrameImage(rgb, layout, ds)

            return image

        out_bits = opts["destination_bits"]
        stored_value = StoredValue(layout.bits, geometry.is_signed)
        lut = create_frame_lut(
            ds,
            stored_value,
            index,
            raw,
            out_bits,
            presentation_state=opts["presentation_state"],
            window_center=opts["window_center"],
            window_width=opts["window_width"],
            window_index=opts["window_index"],
            voi_lut_index=opts["voi_lut_index"],
            prefer_window=opts["prefer_window"],
            auto_windowing=opts["auto_windowing"],
        )
        display = lut.lookup(raw)
        burn_overlays(
            display,
            raw,
            ds,
            geometry.bits_stored,
            index,
            out_bits,
            presentation_state=opts["presentation_state"],
            activation_mask=opts["overlay_activation_mask"],
            grayscale_value=opts["overlay_grayscale_value"],
        )
        logger.debug(f"Rendered frame {index} with {lut}")

        return FrameImage(display, self.image_type(index, out_bits), ds)

    def iter_images(self, **options: Any) -> Iterator[FrameImage]:
        """Yield each frame in turn, rendered by :meth:`read_image`.

        Frames are read in increasing order, so this may be used with
        forward-only inputs.
        """
        for index in range(self.frame_count()):
            yield self.read_image(index, **options)
