from __future__ import annotations

import json
import warnings
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
from packaging.version import InvalidVersion

from pkgsolve._types import CandidateMetadata
from pkgsolve.exceptions import (
    AuthenticationError,
    CandidateNotFound,
    InvalidMetadata,
    MetadataTransportError,
    PackageWarning,
)
from pkgsolve.models.caches import EmptyMetadataCache, MetadataCache
from pkgsolve.termui import logger
from pkgsolve.utils import normalize_name, parse_version

if TYPE_CHECKING:
    from typing import Any

    from packaging.version import Version


class BaseRepository:
    """A Repository acts as the source of packages and metadata.

    Both methods may be called from worker threads concurrently, implementations
    must be thread safe. Failures are reported with the :class:`MetadataError`
    subclasses: ``CandidateNotFound`` and ``MetadataTransportError`` only make the
    package or version unavailable, other errors abort the resolution.
    """

    def get_versions(self, name: str) -> list[Version]:
        """Return all available versions of the project, in ascending order."""
        raise NotImplementedError

    def get_dependencies(self, name: str, version: Version) -> CandidateMetadata:
        """Get the raw requirement lines and ``Requires-Python`` of the given version.

        Requirements gated by ``extra`` markers are included as is.
        """
        raise NotImplementedError


class InMemoryRepository(BaseRepository):
    """A repository backed by a dictionary of the form::

        {"<name>": {"<version>": {"requires_python": "...", "dependencies": [...]}}}
    """

    def __init__(self, pypi_data: dict[str, dict[str, dict[str, Any]]] | None = None) -> None:
        self._pypi_data = pypi_data if pypi_data is not None else {}

    @classmethod
    def from_json(cls, path: Path | str) -> InMemoryRepository:
        return cls(json.loads(Path(path).read_text("utf-8")))

    def add_candidate(self, name: str, version: str, requires_python: str = "") -> None:
        pypi_data = self._pypi_data.setdefault(normalize_name(name), {}).setdefault(version, {})
        pypi_data["requires_python"] = requires_python

    def add_dependencies(self, name: str, version: str, requirements: list[str]) -> None:
        pypi_data = self._pypi_data[normalize_name(name)][version]
        pypi_data.setdefault("dependencies", []).extend(requirements)

    def _get_project(self, name: str) -> dict[str, dict[str, Any]]:
        try:
            return self._pypi_data[normalize_name(name)]
        except KeyError:
            raise CandidateNotFound(f"Unable to find candidates for {name}") from None

    def get_versions(self, name: str) -> list[Version]:
        return sorted(parse_version(version) for version in self._get_project(name))

    def get_dependencies(self, name: str, version: Version) -> CandidateMetadata:
        for key, data in self._get_project(name).items():
            if parse_version(key) == version:
                return CandidateMetadata(list(data.get("dependencies", [])), data.get("requires_python", ""))
        raise CandidateNotFound(f"No metadata found for {name}=={version}")


class PyPIRepository(BaseRepository):
    """Get package and metadata from the JSON API of a PyPI-compatible index."""

    DEFAULT_INDEX_URL = "https://pypi.org/simple"

    def __init__(
        self,
        session: httpx.Client,
        url: str = DEFAULT_INDEX_URL,
        metadata_cache: MetadataCache | None = None,
    ) -> None:
        self.session = session
        url = url.rstrip("/")
        # Strip "/simple".
        self.url_prefix = url[:-7] if url.endswith("/simple") else url
        self._metadata_cache = metadata_cache or EmptyMetadataCache()

    def _get_json(self, url: str) -> Any:
        try:
            resp = self.session.get(url)
        except httpx.TransportError as e:
            raise MetadataTransportError(f"Failed to fetch {url}: {e}") from e
        if resp.status_code == 404:
            raise CandidateNotFound(f"{url} is not found on the index")
        if resp.status_code in (401, 403):
            raise AuthenticationError(f"Access to {url} is denied ({resp.status_code}), check the credentials")
        if resp.is_error:
            raise MetadataTransportError(f"Failed to fetch {url}: HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            raise InvalidMetadata(f"Invalid JSON returned from {url}: {e}") from e

    def get_versions(self, name: str) -> list[Version]:
        url = f"{self.url_prefix}/pypi/{normalize_name(name)}/json"
        releases = self._get_json(url).get("releases") or {}
        result: list[Version] = []
        for version, files in releases.items():
            if files and all(f.get("yanked", False) for f in files):
                logger.debug("Skipping yanked release %s==%s", name, version)
                continue
            try:
                result.append(parse_version(version))
            except InvalidVersion:
                warnings.warn(f"Skipping invalid version {name}=={version}", PackageWarning, stacklevel=2)
        return sorted(result)

    def get_dependencies(self, name: str, version: Version) -> CandidateMetadata:
        key = (normalize_name(name), str(version))
        try:
            return self._metadata_cache.get(key)
        except KeyError:
            pass
        url = f"{self.url_prefix}/pypi/{key[0]}/{key[1]}/json"
        data = self._get_json(url)
        try:
            info = data["info"]
            requires_python = info["requires_python"] or ""
            requirement_lines = info.get("requires_dist") or []
        except (KeyError, TypeError) as e:
            raise InvalidMetadata(f"Malformed metadata for {name}=={version}: missing {e}") from e
        result = CandidateMetadata(list(requirement_lines), requires_python)
        self._metadata_cache.set(key, result)
        return result
