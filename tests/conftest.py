# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Fixtures used in different tests."""

import pytest

from dcmframes import config


@pytest.fixture(autouse=True)
def restore_settings():
    """Restore the global settings after each test."""
    settings = config.settings
    original = {
        "overlay_activation_mask": settings.overlay_activation_mask,
        "overlay_grayscale_value": settings.overlay_grayscale_value,
        "destination_bits": settings.destination_bits,
        "auto_windowing": settings.auto_windowing,
        "prefer_window": settings.prefer_window,
        "decoding_plugin": settings.decoding_plugin,
        "jpegls_patch": settings.jpegls_patch,
    }
    yield
    for name, value in original.items():
        setattr(settings, name, value)


@pytest.fixture
def no_debugging():
    yield
    config.debug(False, False)
