# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""The pixel encoding of delivered frames."""

from typing import TYPE_CHECKING, NamedTuple

import numpy as np

from pydicom.dataset import Dataset
from pydicom.pixels import apply_color_lut, convert_color_space
from pydicom.pixels.common import PhotometricInterpretation as PI

from dcmframes.geometry import FrameGeometry, is_monochrome, is_ybr

if TYPE_CHECKING:  # pragma: no cover
    from PIL import Image


class ImageType(NamedTuple):
    """The encoding of the pixels of a frame."""

    #: The number of significant bits per sample
    bits: int
    #: The NumPy dtype string of the samples, ``"u1"`` or ``"u2"``
    dtype: str
    samples_per_pixel: int
    #: ``True`` if the samples are color-by-plane
    banded: bool
    photometric_interpretation: str

    @property
    def is_monochrome(self) -> bool:
        return is_monochrome(self.photometric_interpretation)

    @property
    def shape_order(self) -> str:
        """Return the order of the array dimensions, such as ``"rows, columns"``."""
        if self.samples_per_pixel == 1:
            return "rows, columns"

        return "samples, rows, columns" if self.banded else "rows, columns, samples"


def image_type_for(
    bits_stored: int,
    bits_allocated: int,
    samples_per_pixel: int,
    banded: bool,
    photometric_interpretation: str,
    *,
    for_display: bool = True,
    destination_bits: int = 8,
) -> ImageType:
    """Return the encoding of a frame's pixels.

    Monochrome frames rendered for display are single sample
    ``destination_bits`` MONOCHROME2 data. Raw frames and color frames keep the
    bit depth, sample count and banding of the stored data.

    Parameters
    ----------
    bits_stored : int
        The number of significant bits per stored sample.
    bits_allocated : int
        The number of bits allocated per stored sample.
    samples_per_pixel : int
        The number of samples per pixel.
    banded : bool
        ``True`` if the samples are color-by-plane.
    photometric_interpretation : str
        The photometric interpretation of the samples.
    for_display : bool, optional
        ``True`` (default) for the encoding after rendering, ``False`` for
        the raw encoding.
    destination_bits : int, optional
        The bits per sample of rendered monochrome frames, 8 (default) or 16.
    """
    if for_display and is_monochrome(photometric_interpretation):
        return ImageType(
            destination_bits,
            "u1" if destination_bits <= 8 else "u2",
            1,
            False,
            str(PI.MONOCHROME2),
        )

    return ImageType(
        bits_stored,
        "u1" if bits_allocated <= 8 else "u2",
        samples_per_pixel,
        banded and samples_per_pixel > 1,
        str(photometric_interpretation),
    )


def image_type_from_geometry(
    geometry: FrameGeometry, *, for_display: bool = True, destination_bits: int = 8
) -> ImageType:
    """Return the encoding of the frames described by `geometry`."""
    return image_type_for(
        geometry.bits_stored,
        geometry.bits_allocated,
        geometry.samples_per_pixel,
        geometry.banded,
        geometry.photometric_interpretation,
        for_display=for_display,
        destination_bits=destination_bits,
    )


class FrameImage:
    """A delivered frame and the encoding of its pixels.

    Parameters
    ----------
    pixels : numpy.ndarray
        The frame's samples.
    image_type : ImageType
        The encoding of `pixels`.
    dataset : pydicom.dataset.Dataset, optional
        The image dataset, required to apply a color palette.
    """

    def __init__(
        self, pixels: np.ndarray, image_type: ImageType, dataset: Dataset | None = None
    ) -> None:
        self.pixels = pixels
        self.image_type = image_type
        self._dataset = dataset

    def __repr__(self) -> str:
        return f"FrameImage(shape={self.pixels.shape}, image_type={self.image_type})"

    @property
    def shape(self) -> tuple[int, ...]:
        return self.pixels.shape

    def interleaved(self) -> np.ndarray:
        """Return the samples ordered (rows, columns[, samples])."""
        if self.image_type.banded:
            return np.moveaxis(self.pixels, 0, -1)

        return self.pixels

    def to_rgb(self) -> np.ndarray:
        """Return the frame as interleaved RGB samples.

        YBR frames are converted to RGB, PALETTE COLOR frames have their
        color palette applied and monochrome frames are replicated to three
        samples.
        """
        pmi = self.image_type.photometric_interpretation
        arr = self.interleaved()
        if pmi == PI.RGB:
            return arr

        if is_ybr(pmi):
            if pmi not in (PI.YBR_FULL, PI.YBR_FULL_422):
                raise NotImplementedError(
                    f"Conversion from '{pmi}' to RGB is not supported"
                )

            return convert_color_space(arr, pmi, PI.RGB)

        if pmi == PI.PALETTE_COLOR:
            if self._dataset is None:
                raise ValueError(
                    "The image dataset is required to apply the color palette"
                )

            return apply_color_lut(arr, self._dataset)

        if self.image_type.is_monochrome:
            return np.repeat(arr[..., np.newaxis], 3, axis=-1)

        raise NotImplementedError(f"Conversion from '{pmi}' to RGB is not supported")

    def to_pil(self) -> "Image.Image":
        """Return the frame as a :class:`PIL.Image.Image`.

        Monochrome frames are returned as 'L' or 'I;16' images and all other
        frames are converted to RGB.
        """
        from PIL import Image

        if self.image_type.is_monochrome:
            arr = self.pixels
        else:
            arr = self.to_rgb()
            if arr.dtype != np.uint8:
                arr = (arr >> (8 * arr.dtype.itemsize - 8)).astype(np.uint8)

        return Image.fromarray(np.ascontiguousarray(arr))
