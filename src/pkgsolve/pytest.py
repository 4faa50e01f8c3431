"""
Some reusable fixtures for `pytest`.

To enable them in your test, add `pkgsolve.pytest` as a plugin.
You can do so in your root `conftest.py`:

```python title="conftest.py"
pytest_plugins = [
    ...
    "pkgsolve.pytest",
    ...
]
```
"""

from __future__ import annotations

import collections
import json
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Generator, MutableMapping

import httpx
import pytest

from pkgsolve.config import Config
from pkgsolve.models.markers import Environment
from pkgsolve.models.repositories import InMemoryRepository
from pkgsolve.models.session import PkgsolveSession
from pkgsolve.resolver import resolve as _resolve
from pkgsolve.utils import normalize_name, parse_version

if TYPE_CHECKING:
    from typing import Protocol

    from packaging.version import Version

    from pkgsolve._types import CandidateMetadata
    from pkgsolve.models.requirements import Requirement
    from pkgsolve.resolver import Resolution

    class ResolveCallable(Protocol):
        """The resolve fixture callable signature"""

        def __call__(
            self, requirements: list[str | Requirement], environment: Environment | None = None, **kwargs: Any
        ) -> Resolution: ...


class RepositoryData:
    """The fake PyPI data, in the form of
    ``{name: {version: {"requires_python": ..., "dependencies": [...]}}}``.
    """

    def __init__(self, pypi_json: Path | None = None) -> None:
        self.pypi_data: dict[str, dict[str, dict[str, Any]]] = self.load_fixtures(pypi_json) if pypi_json else {}

    @staticmethod
    def load_fixtures(pypi_json: Path) -> dict[str, Any]:
        return json.loads(pypi_json.read_text())

    def add_candidate(self, name: str, version: str, requires_python: str = "") -> None:
        pypi_data = self.pypi_data.setdefault(normalize_name(name), {}).setdefault(version, {})
        pypi_data["requires_python"] = requires_python

    def add_dependencies(self, name: str, version: str, requirements: list[str]) -> None:
        pypi_data = self.pypi_data[normalize_name(name)][version]
        pypi_data.setdefault("dependencies", []).extend(requirements)


class TestRepository(InMemoryRepository):
    """An in-memory repository recording how many times each item is fetched."""

    __test__ = False

    def __init__(self, pypi_data: dict[str, dict[str, dict[str, Any]]]) -> None:
        super().__init__(pypi_data)
        self.version_calls: collections.Counter[str] = collections.Counter()
        self.metadata_calls: collections.Counter[tuple[str, str]] = collections.Counter()
        self._lock = threading.Lock()

    def get_versions(self, name: str) -> list[Version]:
        with self._lock:
            self.version_calls[normalize_name(name)] += 1
        return super().get_versions(name)

    def get_dependencies(self, name: str, version: Version) -> CandidateMetadata:
        with self._lock:
            self.metadata_calls[(normalize_name(name), str(version))] += 1
        return super().get_dependencies(name, version)


class PyPIJSONTransport(httpx.BaseTransport):
    """
    A transport serving the PyPI JSON API out of a :class:`RepositoryData`.

    Allows to test the HTTP repository without network access.
    """

    def __init__(self, repository: RepositoryData, overrides: dict[str, httpx.Response] | None = None) -> None:
        super().__init__()
        self.repository = repository
        self.overrides = overrides if overrides is not None else {}

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path in self.overrides:
            return self.overrides[path]
        parts = path.strip("/").split("/")
        if len(parts) < 3 or parts[0] != "pypi" or parts[-1] != "json":
            return httpx.Response(404)
        project = self.repository.pypi_data.get(normalize_name(parts[1]))
        if project is None:
            return httpx.Response(404)
        if len(parts) == 3:
            releases = {version: [{"yanked": False}] for version in project}
            return httpx.Response(200, json={"info": {"name": parts[1]}, "releases": releases})
        for version, data in project.items():
            if parse_version(version) == parse_version(parts[2]):
                info = {
                    "name": parts[1],
                    "version": version,
                    "requires_python": data.get("requires_python") or None,
                    "requires_dist": data.get("dependencies") or None,
                }
                return httpx.Response(200, json={"info": info})
        return httpx.Response(404)


@pytest.fixture(autouse=True)
def temp_env() -> Generator[MutableMapping[str, str]]:
    old_env = os.environ.copy()
    try:
        yield os.environ
    finally:
        os.environ.clear()
        os.environ.update(old_env)


@pytest.fixture
def repository_pypi_json() -> Path | None:
    """
    The test repository fake PyPI definition path as a fixture

    Override to provides your own definition path.

    Returns:
        The path to a fake PyPI repository JSON definition
    """
    return None


@pytest.fixture
def repository(repository_pypi_json: Path | None) -> RepositoryData:
    """
    A fixture providing the data of a mock PyPI repository

    Returns:
        A mock repository data
    """
    return RepositoryData(repository_pypi_json)


@pytest.fixture
def fake_repository(repository: RepositoryData) -> TestRepository:
    """The repository the resolver reads, backed by the ``repository`` data."""
    return TestRepository(repository.pypi_data)


@pytest.fixture
def pypi_session(repository: RepositoryData) -> Generator[PkgsolveSession]:
    """An HTTP session answering PyPI JSON API requests from the ``repository`` data."""
    with PkgsolveSession(transport=PyPIJSONTransport(repository)) as session:
        yield session


@pytest.fixture
def environment() -> Environment:
    """A fixed Linux CPython 3.10 environment."""
    return Environment.for_python(
        "3.10.12",
        sys_platform="linux",
        platform_system="Linux",
        os_name="posix",
        implementation_name="cpython",
        platform_python_implementation="CPython",
    )


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(tmp_path / "config.toml")


@pytest.fixture
def resolve(fake_repository: TestRepository, environment: Environment) -> ResolveCallable:
    """Resolve requirements against the test repository in the fixed environment."""

    default_environment = environment

    def caller(
        requirements: list[str | Requirement], environment: Environment | None = None, **kwargs: Any
    ) -> Resolution:
        return _resolve(requirements, fake_repository, environment or default_environment, **kwargs)

    return caller


__all__ = [
    "PyPIJSONTransport",
    "RepositoryData",
    "TestRepository",
    "config",
    "environment",
    "fake_repository",
    "pypi_session",
    "repository",
    "repository_pypi_json",
    "resolve",
    "temp_env",
]
