# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Decoding of the frames of compressed *Pixel Data*."""

from dcmframes.decoders.base import (
    DecodedFrame,
    Decompressor,
    decode_options,
    get_decompressor,
)
