# Copyright 2008-2024 pydicom authors. See LICENSE file for details.
"""Pure python version information"""

import re
from typing import cast
from re import Match


__version__: str = "0.1.0"

result = cast(Match[str], re.match(r"(\d+\.\d+\.\d+).*", __version__))
__version_info__ = tuple(result.group(1).split("."))
