"""
Turn requirements into the version constraints of a package's dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Iterator, Sequence

from pkgsolve.exceptions import InvalidMetadata, RequirementError
from pkgsolve.models.packages import Distribution, Package, Platform
from pkgsolve.models.ranges import VersionRange
from pkgsolve.models.requirements import Requirement, filter_requirements_with_extras, parse_requirement
from pkgsolve.models.specifiers import get_range, mentions_prerelease

if TYPE_CHECKING:
    from packaging.version import Version

    from pkgsolve._types import CandidateMetadata
    from pkgsolve.models.markers import Environment


@dataclass
class Dependencies:
    """The dependencies of one version of a package.

    ``constraints`` maps each dependency to the intersection of the ranges of
    all requirements on it, ``requirements`` keeps the requirements they come
    from, with extras markers stripped and environment markers evaluated.
    """

    constraints: dict[Package, VersionRange] = field(default_factory=dict)
    requirements: list[Requirement] = field(default_factory=list)
    #: Names of the dependencies whose specifiers mention a pre-release
    prereleases: set[str] = field(default_factory=set)

    def add_constraint(self, package: Package, version_range: VersionRange) -> None:
        if package in self.constraints:
            self.constraints[package] = self.constraints[package] & version_range
        else:
            self.constraints[package] = version_range

    def add_requirement(self, requirement: Requirement, constraints: Sequence[Requirement] = ()) -> None:
        """Add a requirement, narrowed by the given constraints on the same project."""
        version_range = requirement.version_range
        for constraint in constraints:
            version_range = version_range & constraint.version_range
        self.requirements.append(requirement)
        self.add_constraint(Distribution(requirement.key), version_range)
        for extra in sorted(requirement.extras or ()):
            self.add_constraint(Distribution(requirement.key, extra), version_range)
        if any(mentions_prerelease(req.specifier) for req in (requirement, *constraints)):
            self.prereleases.add(requirement.key)


def _group_by_key(requirements: Iterable[Requirement | str]) -> dict[str, list[Requirement]]:
    result: dict[str, list[Requirement]] = {}
    for req in requirements:
        requirement = parse_requirement(req) if isinstance(req, str) else req
        result.setdefault(requirement.key, []).append(requirement)
    return result


@dataclass
class Adjustments:
    """Constraints and overrides given by the user, applied to every set of requirements.

    A constraint narrows the range of a project only when something else
    requires it, and only if its marker matches the environment. An override
    replaces every requirement on its project wherever it appears, an override
    whose marker doesn't match drops the requirement altogether.
    """

    constraints: dict[str, list[Requirement]] = field(default_factory=dict)
    overrides: dict[str, list[Requirement]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        environment: Environment,
        constraints: Iterable[Requirement | str] = (),
        overrides: Iterable[Requirement | str] = (),
    ) -> Adjustments:
        active_constraints = {
            key: [req for req in reqs if environment.evaluate(req.marker)]
            for key, reqs in _group_by_key(constraints).items()
        }
        return cls(active_constraints, _group_by_key(overrides))

    def apply(self, requirements: Iterable[Requirement], environment: Environment) -> Iterator[Requirement]:
        """Yield the requirements matching the environment, the overridden ones replaced."""
        for requirement in requirements:
            if not environment.evaluate(requirement.marker):
                continue
            for replacement in self.overrides.get(requirement.key, [requirement]):
                if replacement is requirement or environment.evaluate(replacement.marker):
                    yield replacement

    def constraints_on(self, key: str) -> list[Requirement]:
        return self.constraints.get(key, [])

    def allows(self, key: str, version: Version) -> bool:
        return all(version in constraint.version_range for constraint in self.constraints_on(key))


def from_requirements(
    requirements: Iterable[Requirement],
    environment: Environment,
    requires_python: str | None = None,
    adjustments: Adjustments | None = None,
) -> Dependencies:
    """Build the dependencies of the root package from the user's requirements."""
    adjustments = adjustments or Adjustments()
    result = Dependencies()
    result.add_constraint(Platform(), get_range(requires_python))
    for requirement in adjustments.apply(requirements, environment):
        result.add_requirement(requirement, adjustments.constraints_on(requirement.key))
    return result


def from_metadata(
    package: Distribution,
    version: Version,
    metadata: CandidateMetadata,
    environment: Environment,
    adjustments: Adjustments | None = None,
) -> Dependencies:
    """Build the dependencies of a distribution from its raw metadata.

    A distribution scoped to an extra depends on its base distribution at the
    same version, and only on the requirements gated by that extra.
    """
    adjustments = adjustments or Adjustments()
    result = Dependencies()
    try:
        if package.extra is not None:
            result.add_constraint(package.base, VersionRange.singleton(version))
            requirements = filter_requirements_with_extras(metadata.dependencies, [package.extra])
        else:
            requirements = filter_requirements_with_extras(metadata.dependencies, ())
        if metadata.requires_python:
            result.add_constraint(Platform(), get_range(metadata.requires_python))
    except RequirementError as e:
        raise InvalidMetadata(f"Invalid metadata of {package}=={version}: {e}") from e
    for requirement in adjustments.apply(requirements, environment):
        result.add_requirement(requirement, adjustments.constraints_on(requirement.key))
    return result
