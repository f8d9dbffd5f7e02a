# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Miscellaneous helper functions"""

import math
import warnings

from dcmframes.config import logger


def warn_and_log(
    msg: str, category: type[Warning] | None = None, stacklevel: int = 1
) -> None:
    """Send warning message `msg` to the logger.

    Parameters
    ----------
    msg : str
        The warning message.
    category : type[Warning] | None, optional
        The warning category class, defaults to ``UserWarning``.
    stacklevel : int, optional
        The stack level to refer to, relative to where `warn_and_log` is used.
    """
    logger.warning(msg)
    warnings.warn(msg, category, stacklevel=stacklevel + 1)


def round_half_up(value: float) -> int:
    """Return `value` rounded to the nearest integer with halves rounded up.

    Unlike :func:`round` this never rounds half to even, so ``2.5 -> 3`` and
    ``-2.5 -> -2``.
    """
    return math.floor(value + 0.5)
