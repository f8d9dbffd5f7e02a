# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Unit tests for the dcmframes.config module."""

import logging

import pytest

from dcmframes import config
from dcmframes.config import settings
from dcmframes.jpegls import PatchJPEGLS


class TestSettings:
    """Tests for the global settings"""

    def test_defaults(self):
        """Test the default values"""
        assert settings.overlay_activation_mask == 0xF
        assert settings.overlay_grayscale_value == 0xFFFF
        assert settings.destination_bits == 8
        assert settings.auto_windowing is True
        assert settings.prefer_window is True
        assert settings.decoding_plugin == ""
        assert settings.jpegls_patch == PatchJPEGLS.JAI2ISO

    def test_destination_bits(self):
        """Test only 8 and 16 bits are allowed"""
        settings.destination_bits = 16
        assert settings.destination_bits == 16

        msg = "The destination bits must be 8 or 16"
        with pytest.raises(ValueError, match=msg):
            settings.destination_bits = 12

        assert settings.destination_bits == 16

    @pytest.mark.parametrize(
        "name", ["overlay_activation_mask", "overlay_grayscale_value"]
    )
    def test_16_bit_values(self, name):
        """Test the overlay settings must fit in 16 bits"""
        setattr(settings, name, 0)
        assert getattr(settings, name) == 0

        with pytest.raises(ValueError, match="must be in the range"):
            setattr(settings, name, 0x10000)

        with pytest.raises(ValueError, match="must be in the range"):
            setattr(settings, name, -1)


class TestDebug:
    """Tests for config.debug()"""

    def test_debug_on_off(self, no_debugging):
        """Test turning debugging on and off"""
        config.debug(True, False)
        assert config.logger.level == logging.DEBUG
        assert config.debugging

        config.debug(False, False)
        assert config.logger.level == logging.WARNING
        assert not config.debugging

    def test_default_handler(self, no_debugging):
        """Test a stream handler is added"""
        handlers = list(config.logger.handlers)
        config.debug(True, True)
        try:
            added = [h for h in config.logger.handlers if h not in handlers]
            assert len(added) == 1
            assert isinstance(added[0], logging.StreamHandler)
        finally:
            for handler in config.logger.handlers:
                if handler not in handlers:
                    config.logger.removeHandler(handler)
