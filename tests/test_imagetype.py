# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Tests for the dcmframes.imagetype module."""

import numpy as np
import pytest

from dcmframes.imagetype import (
    FrameImage,
    ImageType,
    image_type_for,
    image_type_from_geometry,
)
from dcmframes.geometry import resolve_geometry
from dcmframes.locator import ContiguousBlob
from .helpers import make_dataset


class TestImageType:
    """Tests for image_type_for()"""

    def test_monochrome_display(self):
        image_type = image_type_for(12, 16, 1, False, "MONOCHROME1")
        assert image_type == ImageType(8, "u1", 1, False, "MONOCHROME2")
        assert image_type.is_monochrome
        assert image_type.shape_order == "rows, columns"

        image_type = image_type_for(
            12, 16, 1, False, "MONOCHROME1", destination_bits=16
        )
        assert image_type == ImageType(16, "u2", 1, False, "MONOCHROME2")

    def test_monochrome_raw(self):
        image_type = image_type_for(12, 16, 1, False, "MONOCHROME1", for_display=False)
        assert image_type == ImageType(12, "u2", 1, False, "MONOCHROME1")

    def test_color(self):
        """Test color frames keep their stored encoding"""
        image_type = image_type_for(8, 8, 3, True, "RGB")
        assert image_type == ImageType(8, "u1", 3, True, "RGB")
        assert not image_type.is_monochrome
        assert image_type.shape_order == "samples, rows, columns"

        image_type = image_type_for(8, 8, 3, False, "YBR_FULL")
        assert image_type.shape_order == "rows, columns, samples"

    def test_from_geometry(self):
        ds = make_dataset(bits_allocated=16, bits_stored=10)
        geometry = resolve_geometry(ds, ContiguousBlob(0, 32, b"\x00" * 32))
        assert image_type_from_geometry(geometry).dtype == "u1"
        raw = image_type_from_geometry(geometry, for_display=False)
        assert raw == ImageType(10, "u2", 1, False, "MONOCHROME2")


class TestFrameImage:
    """Tests for FrameImage"""

    def test_interleaved(self):
        pixels = np.arange(12, dtype="u1").reshape(3, 2, 2)
        image = FrameImage(pixels, ImageType(8, "u1", 3, True, "RGB"))
        assert image.shape == (3, 2, 2)
        assert image.interleaved().shape == (2, 2, 3)
        assert image.interleaved()[0, 0].tolist() == [0, 4, 8]
        assert image.to_rgb()[0, 1].tolist() == [1, 5, 9]
        assert "FrameImage(shape=(3, 2, 2)" in repr(image)

    def test_monochrome_to_rgb(self):
        pixels = np.array([[0, 255]], dtype="u1")
        image = FrameImage(pixels, ImageType(8, "u1", 1, False, "MONOCHROME2"))
        assert image.to_rgb().tolist() == [[[0, 0, 0], [255, 255, 255]]]

    def test_ybr_to_rgb(self):
        pixels = np.array([[[128, 128, 128]]], dtype="u1")
        image = FrameImage(pixels, ImageType(8, "u1", 3, False, "YBR_FULL"))
        assert np.allclose(image.to_rgb(), 128, atol=1)

    def test_unsupported_conversion(self):
        pixels = np.zeros((1, 1, 3), dtype="u1")
        image = FrameImage(pixels, ImageType(8, "u1", 3, False, "YBR_ICT"))
        with pytest.raises(NotImplementedError, match="'YBR_ICT' to RGB"):
            image.to_rgb()

    def test_palette_requires_dataset(self):
        pixels = np.zeros((1, 1), dtype="u1")
        image = FrameImage(pixels, ImageType(8, "u1", 1, False, "PALETTE COLOR"))
        with pytest.raises(ValueError, match="image dataset is required"):
            image.to_rgb()

    def test_to_pil(self):
        pytest.importorskip("PIL")
        pixels = np.array([[0, 255]], dtype="u1")
        image = FrameImage(pixels, ImageType(8, "u1", 1, False, "MONOCHROME2"))
        assert image.to_pil().mode == "L"

        pixels = np.zeros((2, 2, 3), dtype="u1")
        image = FrameImage(pixels, ImageType(8, "u1", 3, False, "RGB"))
        assert image.to_pil().mode == "RGB"
