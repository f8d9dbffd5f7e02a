# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Patch JPEG-LS codestreams with a precision above 12 bits.

Early JPEG-LS encoders (notably the JAI ImageIO codec) derived the default
preset coding parameters for images with more than 12 bits per sample
differently from ISO/IEC 14495-1. Such codestreams carry no LSE segment, so
a conformant decoder reconstructs them with the wrong thresholds. Inserting
an explicit LSE segment ahead of the scan header fixes the decoding.
"""

from enum import Enum
import logging
from struct import pack, unpack_from
from typing import NamedTuple


LOGGER = logging.getLogger(__name__)

SOI = 0xFFD8
SOF55 = 0xFFF7
LSE = 0xFFF8
SOS = 0xFFDA
COM = 0xFFFE
APPN = range(0xFFE0, 0xFFF0)

# Markers without a length field
_STANDALONE = {0xFF01} | set(range(0xFFD0, 0xFFD9))


class PatchJPEGLS(Enum):
    """The patch to apply to JPEG-LS codestreams with a precision above 12.

    ``JAI2ISO``
        Insert the coding parameters used by the JAI encoder so an ISO
        conformant decoder reproduces the encoded values.
    ``ISO2JAI``
        Insert the ISO default coding parameters so the JAI decoder can read
        conformant codestreams.
    ``ISO2JAI_IF_APP_OR_COM``
        As ``ISO2JAI``, but only when the codestream contains APPn or COM
        segments.
    """

    JAI2ISO = "JAI2ISO"
    ISO2JAI = "ISO2JAI"
    ISO2JAI_IF_APP_OR_COM = "ISO2JAI_IF_APP_OR_COM"


class CodingParameters(NamedTuple):
    """JPEG-LS preset coding parameters, ISO/IEC 14495-1 C.2.4.1.1"""

    max_val: int
    t1: int
    t2: int
    t3: int
    reset: int = 64

    @classmethod
    def default(cls, max_val: int, clamped: int, near: int) -> "CodingParameters":
        """Return the default thresholds for `max_val` and `near`.

        `clamped` is the value the threshold factor is derived from, the ISO
        default clamps it to 4095 while the JAI encoder uses `max_val`.
        """
        factor = (clamped + 128) >> 8
        t1 = factor + 2 + 3 * near
        if t1 > max_val or t1 < near + 1:
            t1 = near + 1

        t2 = factor * 4 + 3 + 5 * near
        if t2 > max_val or t2 < t1:
            t2 = t1

        t3 = factor * 17 + 4 + 7 * near
        if t3 > max_val or t3 < t2:
            t3 = t2

        return cls(max_val, t1, t2, t3)

    def encode(self) -> bytes:
        """Return the LSE marker segment for the parameters."""
        # Segment length 13, ID 1: preset coding parameters
        return pack(">HHB5H", LSE, 13, 1, *self)


def find_markers(src: bytes) -> dict[int, int]:
    """Return the offsets of the markers preceding the first scan in `src`.

    Parameters
    ----------
    src : bytes
        A JPEG-LS codestream, starting with the SOI marker.

    Returns
    -------
    dict[int, int]
        The marker mapped to the offset of its first byte, the first
        occurrence of each marker is kept. Parsing stops after the SOS marker
        or on the first byte that isn't a marker.
    """
    markers: dict[int, int] = {}
    if len(src) < 2 or unpack_from(">H", src)[0] != SOI:
        return markers

    markers[SOI] = 0
    offset = 2
    while offset + 4 <= len(src):
        marker = unpack_from(">H", src, offset)[0]
        if marker >> 8 != 0xFF:
            break

        markers.setdefault(marker, offset)
        if marker == SOS:
            break

        if marker in _STANDALONE:
            offset += 2
        else:
            offset += 2 + unpack_from(">H", src, offset + 2)[0]

    return markers


def coding_parameters(src: bytes, mode: PatchJPEGLS) -> CodingParameters | None:
    """Return the coding parameters to insert into `src`, or ``None`` if the
    codestream doesn't need patching.
    """
    markers = find_markers(src)
    if SOF55 not in markers or LSE in markers or SOS not in markers:
        return None

    if mode == PatchJPEGLS.ISO2JAI_IF_APP_OR_COM:
        if not any(m == COM or m in APPN for m in markers):
            return None

    # SOF55: marker, Lf (2), P (1)
    precision = src[markers[SOF55] + 4]
    if precision <= 12:
        return None

    max_val = (1 << precision) - 1
    if mode == PatchJPEGLS.JAI2ISO:
        return CodingParameters.default(max_val, max_val, 0)

    # SOS: marker, Ls (2), Ns (1), Ns * (Ci, Tmi), NEAR (1)
    sos = markers[SOS]
    near = src[sos + 5 + 2 * src[sos + 4]]

    return CodingParameters.default(max_val, min(max_val, 4095), near)


def patch_jpegls(src: bytes, mode: PatchJPEGLS | None) -> bytes:
    """Return `src` with a LSE segment inserted before the scan header if
    required.

    Parameters
    ----------
    src : bytes
        A single frame of JPEG-LS encoded data.
    mode : PatchJPEGLS | None
        The patch to apply, or ``None`` to return `src` unchanged.

    Returns
    -------
    bytes
        The (possibly) patched codestream.
    """
    if mode is None:
        return src

    params = coding_parameters(src, mode)
    if params is None:
        return src

    sos = find_markers(src)[SOS]
    LOGGER.debug(
        f"Patching JPEG-LS codestream ({mode.value}): inserting LSE segment {params}"
    )

    return b"".join((src[:sos], params.encode(), src[sos:]))
