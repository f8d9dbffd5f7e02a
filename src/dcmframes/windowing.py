# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""The grayscale rendering pipeline for monochrome frames.

Stored values are converted to display values by the modality transform
(rescale or *Modality LUT*), then the VOI transform (window or *VOI LUT*)
and finally the presentation transform (*Presentation LUT* or inversion).
:class:`LUTFactory` collects the parameters for each transform and combines
them into a single :class:`~dcmframes.lut.LookupTable`.
"""

import numpy as np

from pydicom.dataset import Dataset
from pydicom.pixels.common import PhotometricInterpretation as PI

from dcmframes import attrs
from dcmframes.config import logger
from dcmframes.lut import LookupTable, StoredValue, from_lut_item
from dcmframes.lut import from_presentation_item, ramp
from dcmframes.misc import round_half_up


VOI_LUT_FUNCTIONS = ("LINEAR", "LINEAR_EXACT", "SIGMOID")


class LUTFactory:
    """Build the lookup table that renders the stored values of a frame.

    Parameters
    ----------
    stored_value : dcmframes.lut.StoredValue
        The range of the frame's stored values.
    """

    def __init__(self, stored_value: StoredValue) -> None:
        self.stored_value = stored_value
        self.rescale_slope = 1.0
        self.rescale_intercept = 0.0
        self.modality_lut: LookupTable | None = None
        self.voi_lut: LookupTable | None = None
        self.window_center = 0.0
        #: A width of 0 means no window has been set
        self.window_width = 0.0
        self.voi_function = "LINEAR"
        self.presentation_lut: LookupTable | None = None
        self.inverse = False

    def set_modality_lut(self, ds: Dataset | None) -> None:
        """Set the modality transform from the *Modality LUT* module
        attributes in `ds`.
        """
        self.rescale_intercept = attrs.get_float(ds, "RescaleIntercept", 0.0)
        self.rescale_slope = attrs.get_float(ds, "RescaleSlope", 1.0)
        if self.rescale_slope == 0:
            logger.warning("Ignoring a (0028,1053) 'Rescale Slope' of 0")
            self.rescale_slope = 1.0

        item = attrs.get_nested(ds, "ModalityLUTSequence")
        self.modality_lut = from_lut_item(self.stored_value, item)

    def set_window(self, center: float, width: float, function: str = "LINEAR") -> None:
        """Set the VOI window.

        Parameters
        ----------
        center : float
            The window center, in modality output units.
        width : float
            The window width, ``0`` to unset the window.
        function : str, optional
            The *VOI LUT Function*, one of ``"LINEAR"`` (default),
            ``"LINEAR_EXACT"`` or ``"SIGMOID"``.
        """
        function = function.upper()
        if function not in VOI_LUT_FUNCTIONS:
            logger.warning(
                f"Unsupported (0028,1056) 'VOI LUT Function' value '{function}', "
                "using 'LINEAR'"
            )
            function = "LINEAR"

        self.window_center = center
        self.window_width = width
        self.voi_function = function

    def _voi_in_bits(self) -> StoredValue:
        """Return the range of the input to the VOI transform."""
        if self.modality_lut is not None:
            return StoredValue(self.modality_lut.out_bits)

        return self.stored_value

    def set_voi(
        self,
        ds: Dataset | None,
        window_index: int = 0,
        voi_lut_index: int = 0,
        prefer_window: bool = True,
    ) -> None:
        """Set the VOI transform from the *VOI LUT* module attributes in `ds`.

        Parameters
        ----------
        ds : pydicom.dataset.Dataset | None
            The dataset or item containing the VOI attributes.
        window_index : int, optional
            The index of the window to use when there are alternatives, the
            first window is used if out of range.
        voi_lut_index : int, optional
            The index of the *VOI LUT Sequence* item to use.
        prefer_window : bool, optional
            If ``True`` (default) use a window rather than a VOI LUT when both
            are present.
        """
        if ds is None:
            return

        item = attrs.get_nested(ds, "VOILUTSequence", voi_lut_index)
        if prefer_window or item is None:
            centers = attrs.get_floats(ds, "WindowCenter")
            widths = attrs.get_floats(ds, "WindowWidth")
            if centers and widths:
                nr_windows = min(len(centers), len(widths))
                index = window_index if window_index < nr_windows else 0
                function = attrs.get_string(ds, "VOILUTFunction", "LINEAR")
                self.set_window(centers[index], widths[index], function)
                return

        if item is not None:
            self.voi_lut = from_lut_item(self._voi_in_bits(), item)

    def auto_windowing(self, ds: Dataset | None, raster: np.ndarray) -> bool:
        """Derive a window from the range of the stored values.

        The range is taken from (0028,0106) *Smallest Image Pixel Value* and
        (0028,0107) *Largest Image Pixel Value*, or by scanning `raster` if
        the largest value is absent or 0.

        Returns
        -------
        bool
            ``True`` if a window was set, ``False`` if a modality LUT, VOI LUT
            or window was already available.
        """
        if (
            self.modality_lut is not None
            or self.voi_lut is not None
            or self.window_width != 0
        ):
            return False

        smallest = attrs.get_int(ds, "SmallestImagePixelValue", 0)
        largest = attrs.get_int(ds, "LargestImagePixelValue", 0)
        if largest == 0:
            values = self.stored_value.value_of(raster)
            smallest, largest = int(values.min()), int(values.max())

        slope, intercept = self.rescale_slope, self.rescale_intercept
        self.window_center = int((smallest + largest + 1) / 2) * slope + intercept
        self.window_width = abs((largest + 1 - smallest) * slope)
        self.voi_function = "LINEAR"
        logger.debug(
            f"Auto windowing from stored values [{smallest}, {largest}]: center "
            f"{self.window_center}, width {self.window_width}"
        )

        return True

    def set_presentation_lut(self, ds: Dataset | None) -> None:
        """Set the presentation transform from `ds`.

        A *Presentation LUT Sequence* takes precedence, otherwise the output
        is inverted if the *Presentation LUT Shape* is ``"INVERSE"`` or, when
        there's no shape, the *Photometric Interpretation* is MONOCHROME1.
        """
        item = attrs.get_nested(ds, "PresentationLUTSequence")
        if item is not None:
            self.presentation_lut = from_presentation_item(item)
            return

        shape = attrs.get_string(ds, "PresentationLUTShape")
        if shape is not None:
            self.inverse = shape.upper() == "INVERSE"
        else:
            pmi = attrs.get_string(ds, "PhotometricInterpretation")
            self.inverse = pmi == PI.MONOCHROME1

    def _window_function_lut(self, out_bits: int) -> LookupTable:
        """Return the VOI table for a LINEAR_EXACT or SIGMOID window, covering
        every input value.
        """
        in_bits = self._voi_in_bits()
        values = np.arange(in_bits.min_value, in_bits.max_value + 1, dtype=np.float64)
        if self.modality_lut is None:
            values = values * self.rescale_slope + self.rescale_intercept

        center, width = self.window_center, self.window_width
        max_out = (1 << out_bits) - 1
        if self.voi_function == "SIGMOID":
            out = max_out / (1 + np.exp(-4 * (values - center) / width))
        else:
            out = ((values - center) / width + 0.5) * max_out

        data = np.floor(np.clip(out, 0, max_out) + 0.5).astype(np.int64)
        return LookupTable(in_bits, out_bits, in_bits.min_value, data)

    def _modality_voi_lut(self, out_bits: int) -> LookupTable:
        """Return the combined modality and VOI table."""
        slope, intercept = self.rescale_slope, self.rescale_intercept
        modality_lut = self.modality_lut
        lut = self.voi_lut
        if lut is not None:
            lut = lut.adjust_out_bits(out_bits)
        else:
            center, width = self.window_center, self.window_width
            if width == 0 and modality_lut is not None:
                return modality_lut.adjust_out_bits(out_bits)

            in_bits = self._voi_in_bits()
            if width > 0 and self.voi_function != "LINEAR":
                lut = self._window_function_lut(out_bits)
            else:
                if width != 0:
                    size = max(2, abs(round_half_up(width / slope)))
                    offset = round_half_up((center - intercept) / slope) - size // 2
                else:
                    offset = in_bits.min_value
                    size = in_bits.max_value - in_bits.min_value + 1

                lut = ramp(in_bits, out_bits, offset, size, flip=slope < 0)

        return modality_lut.combine(lut) if modality_lut is not None else lut

    def create_lut(self, out_bits: int) -> LookupTable:
        """Return the table rendering stored values as `out_bits` values."""
        presentation_lut = self.presentation_lut
        if presentation_lut is not None:
            lut = self._modality_voi_lut(presentation_lut.in_bits.bits_stored)
            return lut.combine(presentation_lut.adjust_out_bits(out_bits))

        lut = self._modality_voi_lut(out_bits)
        if self.inverse:
            lut.inverse()

        return lut


def select_functional_group(
    ds: Dataset, frame_index: int, tag: attrs.TagType
) -> Dataset:
    """Return the functional group macro `tag` that applies to a frame.

    The item in the frame's *Per-frame Functional Groups Sequence* is used
    first, then the *Shared Functional Groups Sequence*, otherwise `ds`
    itself.
    """
    per_frame = attrs.get_nested(ds, "PerFrameFunctionalGroupsSequence", frame_index)
    group = attrs.get_nested(per_frame, tag)
    if group is None:
        shared = attrs.get_nested(ds, "SharedFunctionalGroupsSequence")
        group = attrs.get_nested(shared, tag)

    return group if group is not None else ds


def select_voi_lut(
    ps: Dataset, sop_instance_uid: str | None, frame_number: int
) -> Dataset | None:
    """Return the *Softcopy VOI LUT Sequence* item in the presentation
    state `ps` that applies to a frame, or ``None``.

    An item applies if it has no *Referenced Image Sequence*, or references
    the instance with either no *Referenced Frame Number* or one matching
    `frame_number`. The first matching item is used.

    Parameters
    ----------
    ps : pydicom.dataset.Dataset
        The presentation state.
    sop_instance_uid : str | None
        The *SOP Instance UID* of the image.
    frame_number : int
        The frame number, starting at 1.
    """
    for item in attrs.get_sequence(ps, "SoftcopyVOILUTSequence") or []:
        references = attrs.get_sequence(item, "ReferencedImageSequence")
        if not references:
            return item

        for ref in references:
            if attrs.get_string(ref, "ReferencedSOPInstanceUID") != sop_instance_uid:
                continue

            frames = attrs.get_ints(ref, "ReferencedFrameNumber")
            if not frames or frame_number in frames:
                return item

    return None


def create_frame_lut(
    ds: Dataset,
    stored_value: StoredValue,
    frame_index: int,
    raster: np.ndarray,
    out_bits: int,
    *,
    presentation_state: Dataset | None = None,
    window_center: float | None = None,
    window_width: float | None = None,
    window_index: int = 0,
    voi_lut_index: int = 0,
    prefer_window: bool = True,
    auto_windowing: bool = True,
) -> LookupTable:
    """Return the lookup table rendering the stored values of a frame.

    Parameters
    ----------
    ds : pydicom.dataset.Dataset
        The image dataset.
    stored_value : dcmframes.lut.StoredValue
        The range of the frame's stored values.
    frame_index : int
        The index of the frame.
    raster : numpy.ndarray
        The frame's stored values, used for auto windowing.
    out_bits : int
        The number of bits of the rendered values.
    presentation_state : pydicom.dataset.Dataset, optional
        A presentation state whose modality, VOI and presentation transforms
        replace those of `ds`.
    window_center : float, optional
        An explicit window center, used with `window_width`.
    window_width : float, optional
        An explicit window width, takes precedence over the VOI attributes of
        `ds` when non-zero. Ignored if `presentation_state` is used.
    window_index : int, optional
        The index of the window to use when there are alternatives.
    voi_lut_index : int, optional
        The index of the *VOI LUT Sequence* item to use.
    prefer_window : bool, optional
        Use a window rather than a *VOI LUT* when both are present.
    auto_windowing : bool, optional
        Derive a window from the stored values when there's no modality LUT,
        VOI LUT or window.

    Returns
    -------
    dcmframes.lut.LookupTable
        The combined modality, VOI and presentation table.
    """
    factory = LUTFactory(stored_value)
    if presentation_state is not None:
        factory.set_modality_lut(presentation_state)
        sop_instance_uid = attrs.get_string(ds, "SOPInstanceUID")
        voi = select_voi_lut(presentation_state, sop_instance_uid, frame_index + 1)
        factory.set_voi(voi, 0, 0, prefer_window=False)
        factory.set_presentation_lut(presentation_state)
    else:
        factory.set_modality_lut(
            select_functional_group(ds, frame_index, "PixelValueTransformationSequence")
        )
        if window_width:
            factory.set_window(window_center or 0.0, window_width)
        else:
            factory.set_voi(
                select_functional_group(ds, frame_index, "FrameVOILUTSequence"),
                window_index,
                voi_lut_index,
                prefer_window,
            )

        if auto_windowing:
            factory.auto_windowing(ds, raster)

        factory.set_presentation_lut(ds)

    return factory.create_lut(out_bits)
