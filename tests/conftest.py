from __future__ import annotations

import os
from pathlib import Path

import pytest

from tests import FIXTURES

os.environ.update(CI="1", PKGSOLVE_NON_INTERACTIVE="1")

pytest_plugins = [
    "pkgsolve.pytest",
]


@pytest.fixture
def repository_pypi_json() -> Path:
    return FIXTURES / "pypi.json"
