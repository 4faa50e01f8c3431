from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from packaging.version import Version

from pkgsolve.exceptions import MetadataError
from pkgsolve.models.caches import InFlightCache
from pkgsolve.models.packages import Distribution, Platform, Root
from pkgsolve.resolver.dependencies import Adjustments, Dependencies, from_metadata, from_requirements
from pkgsolve.resolver.incompatibility import Unavailable
from pkgsolve.termui import logger
from pkgsolve.utils import normalize_name

if TYPE_CHECKING:
    from typing import Iterable, Mapping

    from pkgsolve._types import CandidateMetadata
    from pkgsolve.models.markers import Environment
    from pkgsolve.models.packages import Package
    from pkgsolve.models.repositories import BaseRepository
    from pkgsolve.models.requirements import Requirement

ROOT_VERSION = Version("0")


class MetadataProvider:
    """Provide versions and dependencies of packages to the solver.

    Fetches run on a thread pool. Each project's version list and each
    ``(name, version)`` metadata are fetched at most once per session, concurrent
    requests for the same key share a single pending fetch. Fetches started by
    :meth:`prefetch` and :meth:`prefetch_versions` only warm the cache.

    Failures that only concern one project or version are turned into "no
    versions" or :class:`Unavailable`, the others are raised to the caller.
    """

    def __init__(
        self,
        repository: BaseRepository,
        environment: Environment,
        requirements: Iterable[Requirement],
        *,
        requires_python: str | None = None,
        allow_prereleases: bool | None = None,
        preferences: Mapping[str, Version | str] | None = None,
        constraints: Iterable[Requirement | str] = (),
        overrides: Iterable[Requirement | str] = (),
        max_workers: int | None = None,
    ) -> None:
        self.repository = repository
        self.environment = environment
        self.requirements = list(requirements)
        self.adjustments = Adjustments.build(environment, constraints, overrides)
        self.requires_python = requires_python
        self.allow_prereleases = allow_prereleases
        self.preferences = {
            normalize_name(name): Version(str(version)) for name, version in (preferences or {}).items()
        }
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pkgsolve-fetch")
        self._versions: InFlightCache[str, list[Version]] = InFlightCache(self._executor, "versions of")
        self._metadata: InFlightCache[tuple[str, Version], CandidateMetadata] = InFlightCache(
            self._executor, "metadata of"
        )
        self._dependencies: dict[tuple[Package, Version], Dependencies | Unavailable] = {}
        self._prereleases: set[str] = set()

    def shutdown(self) -> None:
        """Stop accepting fetches. Running ones complete in the background."""
        pending = self._versions.pending() + self._metadata.pending()
        if pending:
            logger.debug("Leaving %d fetches running in the background", pending)
        self._executor.shutdown(wait=False)

    def __enter__(self) -> MetadataProvider:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    def prefetch_versions(self, package: Package) -> None:
        if isinstance(package, Distribution):
            self._versions.submit(package.name, self.repository.get_versions, package.name)

    def prefetch(self, package: Package, version: Version) -> None:
        if isinstance(package, Distribution):
            key = (package.name, version)
            self._metadata.submit(key, self.repository.get_dependencies, package.name, version)

    def get_versions(self, package: Package) -> list[Version]:
        """Return the known versions of the package in ascending order."""
        if isinstance(package, Root):
            return [ROOT_VERSION]
        if isinstance(package, Platform):
            return [self.environment.python_version]
        try:
            return self._versions.get(package.name, self.repository.get_versions, package.name)
        except MetadataError as e:
            if not e.recoverable:
                raise
            logger.warning("Unable to get versions of %s: %s", package, e)
            return []

    def allows_prerelease(self, package: Package) -> bool | None:
        """``True``/``False`` to always/never allow pre-releases, ``None`` to decide by the versions."""
        if not isinstance(package, Distribution):
            return True
        if self.allow_prereleases is not None:
            return self.allow_prereleases
        return True if package.name in self._prereleases else None

    def get_dependencies(self, package: Package, version: Version) -> Dependencies | Unavailable:
        key = (package, version)
        if key not in self._dependencies:
            self._dependencies[key] = self._get_dependencies(package, version)
        return self._dependencies[key]

    def _get_dependencies(self, package: Package, version: Version) -> Dependencies | Unavailable:
        if isinstance(package, Root):
            result = from_requirements(self.requirements, self.environment, self.requires_python, self.adjustments)
        elif isinstance(package, Platform):
            result = Dependencies()
        else:
            try:
                metadata = self._metadata.get(
                    (package.name, version), self.repository.get_dependencies, package.name, version
                )
            except MetadataError as e:
                if not e.recoverable:
                    raise
                logger.warning("Unable to get metadata of %s==%s: %s", package, version, e)
                return Unavailable(str(e))
            result = from_metadata(package, version, metadata, self.environment, self.adjustments)
        self._prereleases.update(result.prereleases)
        return result

    def fetch_count(self) -> int:
        return len(self._versions) + len(self._metadata)
