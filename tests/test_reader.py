# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Tests for the dcmframes.reader module."""

from io import BytesIO

import numpy as np
import pytest

from pydicom import dcmread, examples
from pydicom.pixels import pack_bits, unpack_bits
from pydicom.uid import DeflatedExplicitVRLittleEndian, RLELossless

from dcmframes import (
    FrameImage,
    FrameReader,
    FrameIndexOutOfRange,
    ImageType,
    InsufficientFragments,
    MissingPixelData,
    NoInputBound,
    SequentialAccessViolation,
    UnsupportedTransferSyntax,
    settings,
)
from dcmframes.encaps import FragmentList
from dcmframes.locator import ContiguousBlob
from .helpers import NonSeekable, make_dataset, rle_dataset, to_bytes


FRAMES = [bytes(range(16)), bytes(range(16, 32)), bytes(range(32, 48))]


def native_file(**kwargs):
    """Return a 3 frame 4 x 4 8-bit native file"""
    return to_bytes(make_dataset(b"".join(FRAMES), frames=3, **kwargs))


def frame_values(index):
    return list(FRAMES[index])


@pytest.fixture
def native_path(tmp_path):
    path = tmp_path / "native.dcm"
    path.write_bytes(native_file())
    return path


class TestBind:
    """Tests for binding inputs"""

    def test_no_input(self):
        reader = FrameReader()
        with pytest.raises(NoInputBound, match="No input has been bound"):
            reader.frame_count()

    def test_invalid_input(self):
        with pytest.raises(TypeError, match="Unable to bind to an input of type 'int'"):
            FrameReader(1234)

    def test_path(self, native_path):
        for src in (native_path, str(native_path)):
            reader = FrameReader(src)
            assert reader.frame_count() == 3
            assert reader.read_raster(1).ravel().tolist() == frame_values(1)
            assert isinstance(reader.pixel_data, ContiguousBlob)

    def test_buffer(self):
        data = native_file()
        for src in (data, bytearray(data), memoryview(data)):
            reader = FrameReader(src)
            assert reader.read_raster(2).ravel().tolist() == frame_values(2)

    def test_file_like(self):
        """Test a seekable file-like is read in any order and left open"""
        fp = BytesIO(native_file())
        with FrameReader(fp) as reader:
            assert reader.read_raster(2).ravel().tolist() == frame_values(2)
            assert reader.read_raster(0).ravel().tolist() == frame_values(0)

        assert not fp.closed

    def test_dataset(self):
        ds = make_dataset(b"".join(FRAMES), frames=3)
        reader = FrameReader(ds)
        assert reader.dataset is ds
        assert reader.read_raster(1).ravel().tolist() == frame_values(1)

    def test_rebind(self):
        """Test binding a new input discards the previous state"""
        reader = FrameReader(native_file())
        assert reader.frame_count() == 3
        reader.bind(make_dataset(bytes(16)))
        assert reader.frame_count() == 1

    def test_dispose(self):
        reader = FrameReader(native_file())
        reader.frame_count()
        reader.dispose()
        reader.dispose()
        with pytest.raises(NoInputBound):
            reader.frame_count()

    def test_context_manager(self):
        with FrameReader(native_file()) as reader:
            assert reader.frame_count() == 3

        with pytest.raises(NoInputBound):
            reader.geometry

    def test_force(self):
        """Test a dataset without a preamble requires force"""
        ds = make_dataset(b"".join(FRAMES), frames=3)
        del ds.file_meta
        buffer = BytesIO()
        ds.save_as(buffer, implicit_vr=False, little_endian=True)
        reader = FrameReader(buffer.getvalue(), force=True)
        assert reader.read_raster(0).ravel().tolist() == frame_values(0)


class TestMetadata:
    """Tests for the frame metadata"""

    def test_geometry(self):
        reader = FrameReader(native_file())
        assert reader.frame_width() == 4
        assert reader.frame_height(2) == 4
        assert reader.raw_pixel_layout() == ImageType(8, "u1", 1, False, "MONOCHROME2")
        assert reader.image_type(0, 16) == ImageType(16, "u2", 1, False, "MONOCHROME2")
        assert reader.decompressor is None
        assert reader.file_meta is not None

    def test_out_of_range(self):
        reader = FrameReader(native_file())
        msg = "Frame index 3 is out of range for pixel data with 3 frame"
        with pytest.raises(FrameIndexOutOfRange, match=msg):
            reader.read_raster(3)

        with pytest.raises(IndexError):
            reader.frame_width(-1)

    def test_missing_pixel_data(self):
        reader = FrameReader(to_bytes(make_dataset(None)))
        with pytest.raises(MissingPixelData):
            reader.frame_count()

        with pytest.raises(MissingPixelData):
            FrameReader(make_dataset(None)).pixel_data

    def test_unsupported_transfer_syntax(self):
        ds = rle_dataset(FRAMES[:1])
        ds.file_meta.TransferSyntaxUID = "1.2.840.10008.1.2.4.100"
        with pytest.raises(UnsupportedTransferSyntax):
            FrameReader(ds).frame_count()


class TestStream:
    """Tests for reading from forward-only streams"""

    def test_native_sequential(self):
        reader = FrameReader(NonSeekable(native_file()))
        assert reader.frame_count() == 3
        assert reader.read_raster(0).ravel().tolist() == frame_values(0)
        assert reader.read_raster(2).ravel().tolist() == frame_values(2)

    def test_native_backwards(self):
        reader = FrameReader(NonSeekable(native_file()))
        reader.read_raster(1)
        msg = "Unable to read frame 0 as the input stream is already positioned"
        with pytest.raises(SequentialAccessViolation, match=msg):
            reader.read_raster(0)

    def test_out_of_range_keeps_position(self):
        """Test an invalid index doesn't move the stream"""
        reader = FrameReader(NonSeekable(native_file()))
        with pytest.raises(FrameIndexOutOfRange):
            reader.read_raster(5)

        assert reader.read_raster(0).ravel().tolist() == frame_values(0)

    def test_raw_bytes(self):
        reader = FrameReader(NonSeekable(native_file()))
        assert reader.read_frame_raw(1) == FRAMES[1]

    def test_encapsulated_sequential(self):
        reader = FrameReader(NonSeekable(to_bytes(rle_dataset(FRAMES))))
        assert isinstance(reader.pixel_data, FragmentList)
        assert reader.pixel_data.streamed
        assert reader.read_raster(0).ravel().tolist() == frame_values(0)
        # The current frame may be read again
        assert reader.read_raster(0).ravel().tolist() == frame_values(0)
        assert reader.read_raster(2).ravel().tolist() == frame_values(2)

        with pytest.raises(SequentialAccessViolation):
            reader.read_raster(1)

    def test_encapsulated_without_offsets(self):
        ds = rle_dataset(FRAMES, has_bot=False)
        reader = FrameReader(NonSeekable(to_bytes(ds)))
        assert reader.read_raster(1).ravel().tolist() == frame_values(1)
        assert reader.read_raster(2).ravel().tolist() == frame_values(2)

    def test_insufficient_fragments(self):
        ds = rle_dataset(FRAMES[:2], number_of_frames=3, has_bot=False)
        reader = FrameReader(NonSeekable(to_bytes(ds)))
        assert reader.read_raster(1).ravel().tolist() == frame_values(1)
        msg = "The pixel data fragments only contain 2 frames"
        with pytest.raises(InsufficientFragments, match=msg):
            reader.read_raster(2)

    def test_iter_images(self):
        reader = FrameReader(NonSeekable(native_file()))
        images = list(reader.iter_images(auto_windowing=False))
        assert len(images) == 3
        assert all(isinstance(image, FrameImage) for image in images)
        assert images[2].pixels.ravel().tolist() == frame_values(2)


class TestEncapsulated:
    """Tests for random access to encapsulated pixel data"""

    @pytest.mark.parametrize("has_bot", [True, False])
    def test_random_access(self, has_bot):
        reader = FrameReader(to_bytes(rle_dataset(FRAMES, has_bot=has_bot)))
        assert reader.decompressor.UID == RLELossless
        assert reader.read_raster(2).ravel().tolist() == frame_values(2)
        assert reader.read_raster(0).ravel().tolist() == frame_values(0)

    def test_extended_offsets(self):
        """Test frames are located with the Extended Offset Table"""
        ds = rle_dataset(FRAMES, extended=True)
        for src in (ds, to_bytes(ds)):
            reader = FrameReader(src)
            fragments = reader.pixel_data
            assert not fragments.basic_offsets
            offsets, lengths = fragments.extended_offsets
            assert len(offsets) == len(lengths) == 3
            assert fragments.frame_fragments(1, 3)[0].length == lengths[1]
            assert reader.read_raster(2).ravel().tolist() == frame_values(2)
            assert reader.read_raster(0).ravel().tolist() == frame_values(0)

    def test_dataset(self):
        reader = FrameReader(rle_dataset(FRAMES))
        assert reader.read_raster(1).ravel().tolist() == frame_values(1)
        assert reader.read_frame_raw(1)[:4] == b"\x01\x00\x00\x00"

    def test_insufficient_fragments(self):
        ds = rle_dataset(FRAMES[:2], number_of_frames=3, has_bot=False)
        reader = FrameReader(to_bytes(ds))
        with pytest.raises(InsufficientFragments):
            reader.read_raster(2)

    def test_unknown_plugin(self):
        reader = FrameReader(rle_dataset(FRAMES))
        with pytest.raises(ValueError, match="No plugin named 'foo'"):
            reader.read_raster(0, decoding_plugin="foo")


class TestReadImage:
    """Tests for FrameReader.read_image()"""

    def test_monochrome(self):
        reader = FrameReader(native_file())
        image = reader.read_image(0, auto_windowing=False)
        assert image.pixels.dtype == np.uint8
        assert image.shape == (4, 4)
        assert image.pixels.ravel().tolist() == frame_values(0)
        assert image.image_type == ImageType(8, "u1", 1, False, "MONOCHROME2")

    def test_destination_bits(self):
        reader = FrameReader(native_file())
        image = reader.read_image(0, destination_bits=16, auto_windowing=False)
        assert image.pixels.dtype == np.uint16
        assert image.pixels[0, 1] == 257

        settings.destination_bits = 16
        assert reader.read_image(0).pixels.dtype == np.uint16

    def test_window(self):
        ds = make_dataset(bytes(range(0, 256, 16)))
        reader = FrameReader(ds)
        image = reader.read_image(0, window_center=128, window_width=256)
        assert image.pixels.ravel().tolist() == list(range(0, 256, 16))

    def test_monochrome1(self):
        ds = make_dataset(bytes(16), photometric_interpretation="MONOCHROME1")
        image = FrameReader(ds).read_image(0, auto_windowing=False)
        assert image.pixels.ravel().tolist() == [255] * 16
        assert image.image_type.photometric_interpretation == "MONOCHROME2"

    def test_invalid_options(self):
        reader = FrameReader(native_file())
        with pytest.raises(ValueError, match="Unknown read option"):
            reader.read_image(0, windows_center=10)

        with pytest.raises(ValueError, match="destination bits must be 8 or 16"):
            reader.read_image(0, destination_bits=12)

    def test_color(self):
        pixels = bytes(range(48))
        ds = make_dataset(pixels, samples_per_pixel=3, photometric_interpretation="RGB")
        image = FrameReader(ds).read_image(0)
        assert image.image_type == ImageType(8, "u1", 3, False, "RGB")
        assert image.shape == (4, 4, 3)
        assert image.pixels[0, 0].tolist() == [0, 1, 2]

    def test_ybr_as_rgb(self):
        ds = make_dataset(
            bytes([128] * 48),
            samples_per_pixel=3,
            photometric_interpretation="YBR_FULL",
        )
        image = FrameReader(ds).read_image(0, as_rgb=True)
        assert image.image_type.photometric_interpretation == "RGB"
        assert np.allclose(image.pixels, 128, atol=1)

    def test_deflated(self):
        data = native_file(transfer_syntax=DeflatedExplicitVRLittleEndian)
        for src in (data, NonSeekable(data)):
            reader = FrameReader(src)
            assert reader.read_raster(2).ravel().tolist() == frame_values(2)
            assert reader.read_raster(0).ravel().tolist() == frame_values(0)


class TestExample:
    """Tests using the CT example dataset"""

    def test_raster(self):
        path = examples.get_path("ct")
        ds = dcmread(path)
        reader = FrameReader(path)
        raster = reader.read_raster(0)
        assert raster.dtype == np.uint16
        assert np.array_equal(raster.view(np.int16), ds.pixel_array)

    def test_image(self):
        with FrameReader(examples.get_path("ct")) as reader:
            image = reader.read_image(0, window_center=40, window_width=400)
            assert image.shape == (128, 128)
            assert image.pixels.dtype == np.uint8
            assert reader.geometry.is_signed


class TestProperties:
    """Tests for the frame reader's guarantees"""

    def test_raster_length(self):
        """Test native rasters hold exactly one frame"""
        frames = 2
        ds = make_dataset(bytes(64), frames=frames, bits_allocated=16, bits_stored=12)
        reader = FrameReader(to_bytes(ds))
        for index in range(frames):
            raster = reader.read_raster(index)
            assert raster.nbytes == reader.geometry.frame_length == 32

    def test_raster_length_single_bit(self):
        """Test single bit rasters stay packed and are unpacked for display"""
        frames = np.zeros((3, 4, 4), dtype="u1")
        frames[1, 0] = 1
        ds = make_dataset(pack_bits(frames), frames=3, bits_allocated=1)
        reader = FrameReader(to_bytes(ds))
        raster = reader.read_raster(1)
        assert raster.nbytes == reader.geometry.frame_length == 2
        unpacked = unpack_bits(raster.tobytes())
        assert unpacked.reshape(4, 4).tolist() == frames[1].tolist()

        image = reader.read_image(1)
        assert image.shape == (4, 4)
        assert image.pixels[0, 0] > image.pixels[1, 0]

    def test_raster_length_ybr_422(self):
        """Test subsampled rasters keep their stored layout"""
        # Y1 Y2 Cb Cr for each pair of pixels
        ds = make_dataset(
            bytes([1, 2, 100, 200] * 8),
            samples_per_pixel=3,
            photometric_interpretation="YBR_FULL_422",
        )
        reader = FrameReader(to_bytes(ds))
        raster = reader.read_raster(0)
        assert raster.nbytes == reader.geometry.frame_length == 32
        assert raster.shape == (4, 8)

        image = reader.read_image(0, as_rgb=False)
        assert image.shape == (4, 4, 3)
        assert image.pixels[0, 0].tolist() == [1, 100, 200]
        assert image.pixels[0, 1].tolist() == [2, 100, 200]

    def test_deterministic(self):
        ds = make_dataset(bytes(range(16)))
        ds.WindowCenter = 7
        ds.WindowWidth = 10
        reader = FrameReader(ds)
        first = reader.read_image(0).pixels
        assert first.tobytes() == reader.read_image(0).pixels.tobytes()

    def test_window_end_to_end(self):
        """Test a 12-bit stored value of 2048 is displayed as 128"""
        arr = np.full((512, 512), 2048, dtype="<u2")
        ds = make_dataset(
            arr.tobytes(), rows=512, columns=512, bits_allocated=16, bits_stored=12
        )
        ds.RescaleSlope = 1
        ds.RescaleIntercept = 0
        ds.WindowCenter = 2048
        ds.WindowWidth = 4096
        image = FrameReader(to_bytes(ds)).read_image(0)
        assert image.pixels.dtype == np.uint8
        assert image.shape == (512, 512)
        assert np.all(image.pixels == 128)
