from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Union

from packaging.version import Version

from pkgsolve.exceptions import MetadataError
from pkgsolve.models.markers import Environment
from pkgsolve.models.packages import Distribution, Root
from pkgsolve.models.requirements import Requirement, filter_requirements_with_extras, parse_requirement
from pkgsolve.resolver.dependencies import Adjustments, Dependencies
from pkgsolve.resolver.provider import MetadataProvider
from pkgsolve.resolver.solver import Solver
from pkgsolve.termui import logger
from pkgsolve.utils import normalize_name

if TYPE_CHECKING:
    from typing import Iterable, Mapping

    from pkgsolve.models.repositories import BaseRepository
    from pkgsolve.resolver.reporters import BaseReporter


@dataclasses.dataclass
class ResolvedPackage:
    """A package pinned by the resolution."""

    name: str
    version: Version
    #: The extras whose dependencies were pulled in
    extras: tuple[str, ...] = ()
    #: The requirements of this version that apply to the environment
    dependencies: list[Requirement] = dataclasses.field(default_factory=list)

    def as_line(self) -> str:
        extras = f"[{','.join(self.extras)}]" if self.extras else ""
        return f"{self.name}{extras}=={self.version}"


@dataclasses.dataclass
class Resolution:
    packages: list[ResolvedPackage]
    environment: Environment

    def __getitem__(self, name: str) -> ResolvedPackage:
        key = normalize_name(name)
        for package in self.packages:
            if package.name == key:
                return package
        raise KeyError(name)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and any(p.name == normalize_name(name) for p in self.packages)

    @property
    def mapping(self) -> dict[str, Version]:
        return {package.name: package.version for package in self.packages}


def _as_requirements(requirements: Iterable[Requirement | str]) -> list[Requirement]:
    return [parse_requirement(req) if isinstance(req, str) else req for req in requirements]


def resolve(
    requirements: Iterable[Requirement | str],
    repository: BaseRepository,
    environment: Environment | None = None,
    *,
    requires_python: str | None = None,
    project_name: str | None = None,
    allow_prereleases: bool | None = None,
    preferences: Mapping[str, Version | str] | None = None,
    constraints: Iterable[Requirement | str] = (),
    overrides: Iterable[Requirement | str] = (),
    max_rounds: int = 10000,
    max_workers: int | None = None,
    prefetch: bool = True,
    reporter: BaseReporter | None = None,
) -> Resolution:
    """Core function to perform the actual resolve process.

    Find one version for each package required, directly or transitively, by
    ``requirements`` in the given environment. Extras are merged into their
    base package and the result is sorted by package name.

    ``constraints`` narrow the versions of a package only if something requires
    it, ``overrides`` replace every requirement on their package, including the
    ones found in metadata.

    :raises ResolutionImpossible: if the requirements can't be satisfied, the
        exception carries the explanation.
    :raises ResolutionTooDeep: if ``max_rounds`` decisions were not enough.
    :raises MetadataError: when the metadata of a package can't be retrieved
        for a reason that is not specific to that package.
    """
    environment = environment or Environment()
    reqs = _as_requirements(requirements)
    provider = MetadataProvider(
        repository,
        environment,
        reqs,
        requires_python=requires_python,
        allow_prereleases=allow_prereleases,
        preferences=preferences,
        constraints=constraints,
        overrides=overrides,
        max_workers=max_workers,
    )
    try:
        solver = Solver(provider, Root(project_name), reporter, max_rounds=max_rounds, prefetch=prefetch)
        decisions = solver.solve()
        packages: dict[str, ResolvedPackage] = {}
        # Base packages sort before their extras, so the base entry always exists first.
        for package, version in sorted(decisions.items(), key=lambda item: item[0].sort_key()):
            if not isinstance(package, Distribution):
                continue
            dependencies = provider.get_dependencies(package, version)
            assert isinstance(dependencies, Dependencies)
            resolved = packages.setdefault(package.name, ResolvedPackage(package.name, version))
            if package.extra is not None:
                resolved.extras += (package.extra,)
            resolved.dependencies.extend(dependencies.requirements)
        logger.debug("%d metadata fetches issued", provider.fetch_count())
    finally:
        provider.shutdown()
    return Resolution(list(packages.values()), environment)


@dataclasses.dataclass(frozen=True)
class Fresh:
    """The installed packages already satisfy the requirements."""


@dataclasses.dataclass(frozen=True)
class Unsatisfied:
    """The first requirement found not satisfied by the installed packages."""

    requirement: Requirement


SatisfactionResult = Union[Fresh, Unsatisfied]


def check_satisfied(
    installed: Mapping[str, Version | str],
    requirements: Iterable[Requirement | str],
    repository: BaseRepository,
    environment: Environment | None = None,
    *,
    constraints: Iterable[Requirement | str] = (),
    overrides: Iterable[Requirement | str] = (),
) -> SatisfactionResult:
    """Check whether the installed versions satisfy the requirements and, transitively,
    the dependencies of those installed versions. Nothing is resolved.

    Constraints and overrides are applied the same way :func:`resolve` does.
    A package whose metadata can't be found counts as not satisfied.
    """
    environment = environment or Environment()
    adjustments = Adjustments.build(environment, constraints, overrides)
    versions = {normalize_name(name): Version(str(version)) for name, version in installed.items()}
    pending = list(adjustments.apply(_as_requirements(requirements), environment))
    seen: set[tuple[str, Version, frozenset[str]]] = set()
    while pending:
        requirement = pending.pop(0)
        version = versions.get(requirement.key)
        if (
            version is None
            or version not in requirement.version_range
            or not adjustments.allows(requirement.key, version)
        ):
            logger.debug("Requirement %s is not satisfied by %s", requirement.as_line(), version)
            return Unsatisfied(requirement)
        extras = frozenset(requirement.extras or ())
        if (requirement.key, version, extras) in seen:
            continue
        seen.add((requirement.key, version, extras))
        try:
            metadata = repository.get_dependencies(requirement.key, version)
        except MetadataError as e:
            if not e.recoverable:
                raise
            logger.warning("Unable to get metadata of %s==%s: %s", requirement.key, version, e)
            return Unsatisfied(requirement)
        dependencies = filter_requirements_with_extras(metadata.dependencies, sorted(extras), include_default=True)
        pending.extend(adjustments.apply(dependencies, environment))
    return Fresh()
