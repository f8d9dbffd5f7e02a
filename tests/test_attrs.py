# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Tests for the dataset attribute accessors."""

import pytest

from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.sequence import Sequence
from pydicom.uid import ExplicitVRBigEndian

from dcmframes import attrs


@pytest.fixture
def ds():
    ds = Dataset()
    ds.Rows = 10
    ds.WindowCenter = [40, 400]
    ds.WindowWidth = "350"
    ds.PatientName = ""
    ds.PhotometricInterpretation = "MONOCHROME2 "
    ds.add_new(0x60020010, "US", 12)
    ds.add_new(0x60023000, "OW", b"\x01\x02")
    item = Dataset()
    item.WindowCenter = 100
    ds.FrameVOILUTSequence = Sequence([item, Dataset()])
    return ds


class TestAccessors:
    """Tests for the get_*() functions"""

    def test_absent_and_empty(self, ds):
        """Test empty values are treated as absent"""
        assert attrs.get_value(ds, "Columns") is None
        assert attrs.get_value(ds, "PatientName") is None
        assert not attrs.contains_value(ds, "PatientName")
        assert attrs.contains_value(ds, "Rows")
        assert attrs.get_value(None, "Rows") is None

    def test_get_int(self, ds):
        """Test getting integer values"""
        assert attrs.get_int(ds, "Rows") == 10
        assert attrs.get_int(ds, "Columns", 5) == 5
        assert attrs.get_int(ds, 0x60020010) == 12
        assert attrs.get_ints(ds, "WindowCenter") == [40, 400]

    def test_get_float(self, ds):
        """Test getting float values, falling back to the first value"""
        assert attrs.get_float(ds, "WindowCenter", index=1) == 400.0
        assert attrs.get_float(ds, "WindowWidth", index=1) == 350.0
        assert attrs.get_float(ds, "RescaleSlope", 1.0) == 1.0

    def test_get_string(self, ds):
        """Test string values are stripped"""
        assert attrs.get_string(ds, "PhotometricInterpretation") == "MONOCHROME2"
        assert attrs.get_string(ds, "Modality", "OT") == "OT"

    def test_get_bytes(self, ds):
        """Test getting binary values"""
        assert attrs.get_bytes(ds, 0x60023000) == b"\x01\x02"
        with pytest.raises(TypeError, match="is not binary"):
            attrs.get_bytes(ds, "Rows")

    def test_get_nested(self, ds):
        """Test getting sequence items"""
        assert attrs.get_nested(ds, "FrameVOILUTSequence").WindowCenter == 100
        assert attrs.get_nested(ds, "FrameVOILUTSequence", 1) is not None
        assert attrs.get_nested(ds, "FrameVOILUTSequence", 2) is None
        assert attrs.get_nested(ds, "ModalityLUTSequence") is None

    def test_element_vr(self, ds):
        assert attrs.element_vr(ds, 0x60023000) == "OW"
        assert attrs.element_vr(ds, "Columns") is None


class TestIsLittleEndian:
    """Tests for is_little_endian()"""

    def test_in_memory(self):
        """Test datasets created in memory are little endian"""
        assert attrs.is_little_endian(Dataset())

    def test_file_meta(self):
        """Test the transfer syntax is used"""
        ds = Dataset()
        ds.file_meta = FileMetaDataset()
        ds.file_meta.TransferSyntaxUID = ExplicitVRBigEndian
        assert not attrs.is_little_endian(ds)

    def test_original_encoding(self):
        """Test the original encoding takes precedence"""
        ds = Dataset()
        ds.set_original_encoding(False, False)
        assert not attrs.is_little_endian(ds)
