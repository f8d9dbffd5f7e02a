# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Extract overlay planes and burn them into rendered monochrome frames.

A dataset may contain up to 16 overlay planes in the repeating groups
(6000,eeee) to (601E,eeee). The data for a plane is either stored in its own
(60xx,3000) *Overlay Data* element (a standalone overlay, with an *Overlay
Bits Allocated* of 1) or embedded in an unused bit of the stored pixel
samples.
"""

from dataclasses import dataclass

import numpy as np

from pydicom.dataset import Dataset
from pydicom.pixels import unpack_bits

from dcmframes import attrs
from dcmframes.config import logger


NR_OVERLAY_GROUPS = 16

OVERLAY_ROWS = 0x60000010
OVERLAY_COLUMNS = 0x60000011
OVERLAY_TYPE = 0x60000040
NUMBER_OF_FRAMES_IN_OVERLAY = 0x60000015
OVERLAY_ORIGIN = 0x60000050
IMAGE_FRAME_ORIGIN = 0x60000051
OVERLAY_BITS_ALLOCATED = 0x60000100
OVERLAY_BIT_POSITION = 0x60000102
OVERLAY_ACTIVATION_LAYER = 0x60001001
OVERLAY_DATA = 0x60003000


def group_offset(index: int) -> int:
    """Return the offset added to a (6000,eeee) tag for overlay `index`."""
    if not 0 <= index < NR_OVERLAY_GROUPS:
        raise ValueError(f"Invalid overlay index {index}, must be in [0, 15]")

    return index << 17


@dataclass(frozen=True)
class OverlayGroup:
    """The attributes of one overlay plane."""

    #: The index of the overlay, 0 for group 6000 up to 15 for group 601E
    index: int
    rows: int
    columns: int
    bits_allocated: int
    bit_position: int
    #: The (row, column) of the top left overlay pixel, starting at 1
    origin: tuple[int, int] = (1, 1)
    overlay_type: str = "G"
    number_of_frames: int = 1
    #: The image frame number of the first overlay frame, starting at 1
    image_frame_origin: int = 1

    @property
    def offset(self) -> int:
        return group_offset(self.index)

    @property
    def group(self) -> int:
        """Return the overlay group number, such as ``0x6002``."""
        return 0x6000 + 2 * self.index

    @property
    def is_embedded(self) -> bool:
        """Return ``True`` if the overlay is stored in the pixel samples."""
        return self.bits_allocated != 1

    @classmethod
    def from_dataset(cls, ds: Dataset | None, index: int) -> "OverlayGroup | None":
        """Return the overlay with `index` in `ds`, or ``None`` if absent."""
        offset = group_offset(index)
        rows = attrs.get_int(ds, OVERLAY_ROWS + offset)
        if rows is None:
            return None

        origin = attrs.get_ints(ds, OVERLAY_ORIGIN + offset) or [1, 1]
        return cls(
            index=index,
            rows=rows,
            columns=attrs.get_int(ds, OVERLAY_COLUMNS + offset, 0),
            bits_allocated=attrs.get_int(ds, OVERLAY_BITS_ALLOCATED + offset, 1),
            bit_position=attrs.get_int(ds, OVERLAY_BIT_POSITION + offset, 0),
            origin=(origin[0], origin[-1]),
            overlay_type=attrs.get_string(ds, OVERLAY_TYPE + offset, "G"),
            number_of_frames=attrs.get_int(ds, NUMBER_OF_FRAMES_IN_OVERLAY + offset, 1),
            image_frame_origin=attrs.get_int(ds, IMAGE_FRAME_ORIGIN + offset, 1),
        )


def active_overlay_groups(
    ds: Dataset, presentation_state: Dataset | None = None, activation_mask: int = 0xF
) -> list[int]:
    """Return the indices of the overlays to burn in.

    With a presentation state the active overlays are those with a (60xx,1001)
    *Overlay Activation Layer* in the presentation state, otherwise they're
    the overlays in `ds` whose bit is set in `activation_mask`.
    """
    if presentation_state is not None:
        return [
            index
            for index in range(NR_OVERLAY_GROUPS)
            if attrs.contains_value(
                presentation_state, OVERLAY_ACTIVATION_LAYER + group_offset(index)
            )
        ]

    return [
        index
        for index in range(NR_OVERLAY_GROUPS)
        if activation_mask & (1 << index)
        and attrs.contains_value(ds, OVERLAY_ROWS + group_offset(index))
    ]


def overlay_source(
    ds: Dataset, presentation_state: Dataset | None, index: int
) -> Dataset:
    """Return the dataset holding the attributes of overlay `index`.

    A presentation state's own overlay is used if it contains *Overlay Data*.
    """
    if presentation_state is not None and attrs.contains_value(
        presentation_state, OVERLAY_DATA + group_offset(index)
    ):
        return presentation_state

    return ds


def recommended_grayscale_value(
    presentation_state: Dataset | None, index: int, default: int
) -> int:
    """Return the 16-bit grayscale value used to display overlay `index`.

    The value comes from the *Graphic Layer Sequence* item of the
    presentation state that matches the overlay's activation layer, if any.
    """
    layer = attrs.get_string(
        presentation_state, OVERLAY_ACTIVATION_LAYER + group_offset(index)
    )
    if layer is None:
        return default

    for item in attrs.get_sequence(presentation_state, "GraphicLayerSequence") or []:
        if attrs.get_string(item, "GraphicLayer") == layer:
            return attrs.get_int(
                item, "GraphicLayerRecommendedDisplayGrayscaleValue", default
            )

    return default


def extract_embedded(
    raw: np.ndarray, overlay: OverlayGroup, bits_stored: int
) -> np.ndarray | None:
    """Return the overlay plane embedded in the stored samples `raw`.

    Returns ``None`` if the overlay's bit position is within the stored
    bits, as it can't be told apart from the pixel data.
    """
    if overlay.bit_position < bits_stored:
        logger.info(
            f"Ignore embedded overlay #{overlay.index + 1} from bit "
            f"#{overlay.bit_position} < bits stored: {bits_stored}"
        )
        return None

    mask = 1 << overlay.bit_position
    return (raw.astype(np.uint32) & mask) != 0


def extract_standalone(
    ds: Dataset, overlay: OverlayGroup, frame_index: int = 0
) -> np.ndarray | None:
    """Return the standalone overlay plane for image frame `frame_index`, or
    ``None`` if the overlay doesn't apply to the frame or its *Overlay Data*
    is too short.
    """
    data = attrs.get_bytes(ds, OVERLAY_DATA + overlay.offset)
    if data is None:
        return None

    overlay_frame = frame_index + 1 - overlay.image_frame_origin
    if not 0 <= overlay_frame < overlay.number_of_frames:
        return None

    nr_pixels = overlay.rows * overlay.columns
    start = overlay_frame * nr_pixels
    # Only unpack the bytes that hold the frame's bits
    first_byte, bit_offset = divmod(start, 8)
    last_byte = (start + nr_pixels + 7) // 8
    if len(data) < last_byte:
        logger.warning(
            f"The (60{2 * overlay.index:02X},3000) 'Overlay Data' is too short for "
            f"overlay frame {overlay_frame}, the overlay will be skipped"
        )
        return None

    bits = unpack_bits(data[first_byte:last_byte])
    plane = bits[bit_offset : bit_offset + nr_pixels]
    return plane.reshape(overlay.rows, overlay.columns).astype(bool)


def apply_overlay(
    display: np.ndarray, plane: np.ndarray, origin: tuple[int, int], value: int
) -> None:
    """Set the pixels of `display` covered by `plane` to `value`.

    The overlay's top left pixel is at `origin` (row, column), starting at 1,
    and the parts of the overlay outside the image are clipped.
    """
    row0, col0 = origin[0] - 1, origin[1] - 1
    rows, columns = display.shape[:2]
    top, left = max(row0, 0), max(col0, 0)
    bottom = min(row0 + plane.shape[0], rows)
    right = min(col0 + plane.shape[1], columns)
    if top >= bottom or left >= right:
        return

    region = plane[top - row0 : bottom - row0, left - col0 : right - col0]
    display[top:bottom, left:right][region] = value


def burn_overlays(
    display: np.ndarray,
    raw: np.ndarray,
    ds: Dataset,
    bits_stored: int,
    frame_index: int,
    out_bits: int,
    *,
    presentation_state: Dataset | None = None,
    activation_mask: int = 0xF,
    grayscale_value: int = 0xFFFF,
) -> np.ndarray:
    """Burn the active overlays into the rendered frame `display`.

    Parameters
    ----------
    display : numpy.ndarray
        The rendered frame, modified in place.
    raw : numpy.ndarray
        The frame's stored samples, before rendering.
    ds : pydicom.dataset.Dataset
        The image dataset.
    bits_stored : int
        The image's *Bits Stored*.
    frame_index : int
        The index of the frame.
    out_bits : int
        The number of bits of the rendered values.
    presentation_state : pydicom.dataset.Dataset, optional
        A presentation state selecting the overlays and their display value.
    activation_mask : int, optional
        The bitmask of the overlays to burn in when there's no presentation
        state, bit 0 is group 6000.
    grayscale_value : int, optional
        The 16-bit value used to display the overlays when not set by the
        presentation state.

    Returns
    -------
    numpy.ndarray
        `display`.
    """
    for index in active_overlay_groups(ds, presentation_state, activation_mask):
        source = overlay_source(ds, presentation_state, index)
        overlay = OverlayGroup.from_dataset(source, index)
        if overlay is None:
            continue

        if overlay.is_embedded:
            plane = extract_embedded(raw, overlay, bits_stored)
        else:
            plane = extract_standalone(source, overlay, frame_index)

        if plane is None:
            continue

        value = recommended_grayscale_value(presentation_state, index, grayscale_value)
        value >>= 16 - out_bits
        logger.debug(f"Burning in overlay #{index + 1} with value {value}")
        apply_overlay(display, plane, overlay.origin, value)

    return display


def overlay_array(
    ds: Dataset,
    index: int = 0,
    frame_index: int = 0,
    raw: np.ndarray | None = None,
) -> np.ndarray | None:
    """Return overlay plane `index` as a boolean :class:`numpy.ndarray`.

    Parameters
    ----------
    ds : pydicom.dataset.Dataset
        The dataset containing the overlay.
    index : int, optional
        The index of the overlay, 0 (default) for group 6000.
    frame_index : int, optional
        The index of the image frame, used with multi-frame overlays.
    raw : numpy.ndarray, optional
        The stored samples of the frame, required for embedded overlays.

    Returns
    -------
    numpy.ndarray | None
        The overlay plane, or ``None`` if there's no such overlay or it
        doesn't apply to the frame.
    """
    overlay = OverlayGroup.from_dataset(ds, index)
    if overlay is None:
        return None

    if not overlay.is_embedded:
        return extract_standalone(ds, overlay, frame_index)

    if raw is None:
        raise ValueError(
            f"The stored samples are required to extract embedded overlay #{index + 1}"
        )

    return extract_embedded(raw, overlay, attrs.get_int(ds, "BitsStored", 8))
