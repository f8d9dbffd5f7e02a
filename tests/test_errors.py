# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Tests for the dcmframes exception classes."""

import pytest

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


ALL_ERRORS = [
    NoInputBound,
    MissingPixelData,
    FrameIndexOutOfRange,
    SequentialAccessViolation,
    InsufficientFragments,
    MissingFileMetaInformation,
    UnsupportedTransferSyntax,
    MalformedPixelData,
]


class TestErrors:
    """Tests for the exception hierarchy"""

    @pytest.mark.parametrize("cls", ALL_ERRORS)
    def test_default_message(self, cls):
        """Test each exception has a default message"""
        exc = cls()
        assert isinstance(exc, FrameReaderError)
        assert str(exc) == cls.default_message

    def test_custom_message(self):
        """Test a custom message replaces the default"""
        assert str(MissingPixelData("No pixels here")) == "No pixels here"

    def test_builtin_bases(self):
        """Test the exceptions can be caught as their builtin equivalents"""
        assert isinstance(FrameIndexOutOfRange(), IndexError)
        assert isinstance(MalformedPixelData(), ValueError)
        assert isinstance(UnsupportedTransferSyntax(), NotImplementedError)
        assert isinstance(NoInputBound(), RuntimeError)

    def test_insufficient_fragments(self):
        """Test the number of available frames is kept"""
        exc = InsufficientFragments(available=2)
        assert exc.available == 2
        assert "only contain 2 frames" in str(exc)

        exc = InsufficientFragments()
        assert exc.available is None
        assert str(exc) == InsufficientFragments.default_message

    def test_unsupported_transfer_syntax(self):
        """Test the transfer syntax UID is kept"""
        exc = UnsupportedTransferSyntax(uid="1.2.3.4")
        assert exc.uid == "1.2.3.4"
        assert str(exc) == "Unsupported Transfer Syntax: 1.2.3.4"

        with pytest.raises(FrameReaderError, match="Unsupported Transfer"):
            raise exc
