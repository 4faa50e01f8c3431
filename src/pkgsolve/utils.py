"""
Utility functions
"""

from __future__ import annotations

import functools
import re

from packaging.version import Version


@functools.lru_cache(maxsize=1024)
def parse_version(version: str) -> Version:
    return Version(version)


def normalize_name(name: str, lowercase: bool = True) -> str:
    name = re.sub(r"[-_.]+", "-", name)
    return name.lower() if lowercase else name
