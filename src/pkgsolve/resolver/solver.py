"""
The PubGrub version solver.

See https://github.com/dart-lang/pub/blob/master/doc/solver.md for a
description of the algorithm. One solve session owns the incompatibility
store, the partial solution and the package priorities; only metadata
fetching runs on other threads, through the provider.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Union

from pkgsolve.exceptions import ResolutionImpossible, ResolutionTooDeep, SolverInvariantError
from pkgsolve.models.packages import Distribution, Root
from pkgsolve.models.ranges import VersionRange, after_local_versions
from pkgsolve.resolver.incompatibility import (
    ConflictDerived,
    Incompatibility,
    IncompatibilityStore,
    SetRelation,
    Unavailable,
    format_package_range,
)
from pkgsolve.resolver.partial_solution import PartialSolution
from pkgsolve.resolver.priority import PackagePriorities
from pkgsolve.resolver.provider import ROOT_VERSION
from pkgsolve.resolver.report import format_report
from pkgsolve.resolver.reporters import BaseReporter
from pkgsolve.termui import logger

if TYPE_CHECKING:
    from typing import Iterator

    from packaging.version import Version

    from pkgsolve.models.packages import Package
    from pkgsolve.resolver.dependencies import Dependencies
    from pkgsolve.resolver.provider import MetadataProvider


class _Conflict:
    pass


_conflict = _Conflict()
PropagationResult = Union["Package", _Conflict, None]


class Solver:
    """Find one version for every package required by the root, or prove there is none."""

    def __init__(
        self,
        provider: MetadataProvider,
        root: Root | None = None,
        reporter: BaseReporter | None = None,
        *,
        max_rounds: int = 10000,
        prefetch: bool = True,
    ) -> None:
        self.provider = provider
        self.root = root or Root()
        self.reporter = reporter or BaseReporter()
        self.max_rounds = max_rounds
        self.prefetch = prefetch
        self.store = IncompatibilityStore()
        self.solution = PartialSolution()
        self.priorities = PackagePriorities()
        # Incompatibilities that can't derive anything until the solution is
        # rolled back, keyed by the decision level they were found at.
        self._contradicted: set[int] = set()
        self._contradicted_by_level: dict[int, set[int]] = {}
        self._rounds = 0
        # Dependency incompatibilities already added to the store, per version.
        self._known_dependencies: dict[tuple[Package, Version], list[Incompatibility]] = {}

    def solve(self) -> dict[Package, Version]:
        """Run the solver and return the decided version of every package.

        :raises ResolutionImpossible: when no solution exists.
        :raises ResolutionTooDeep: when more than ``max_rounds`` decisions are tried.
        """
        start = time.time()
        self.reporter.starting()
        self._add_incompatibility(Incompatibility.not_root(self.root, ROOT_VERSION))
        decisions: dict[Package, Version] | None = None
        try:
            next_package: Package | None = self.root
            while next_package is not None:
                self._propagate(next_package)
                next_package = self._choose_package_version()
            decisions = self.solution.decisions
            return decisions
        finally:
            self.reporter.ending(decisions)
            logger.info(
                "Version solving took %.3f seconds, tried %d solutions and hit %d conflicts.",
                time.time() - start,
                self.solution.attempted_solutions,
                self.priorities.conflict_count(),
            )

    def _add_incompatibility(self, incompatibility: Incompatibility) -> None:
        self.store.add(incompatibility)
        self.reporter.adding_incompatibility(incompatibility)

    def _set_contradicted(self, incompatibility: Incompatibility) -> None:
        self._contradicted.add(incompatibility.id)
        self._contradicted_by_level.setdefault(self.solution.decision_level, set()).add(incompatibility.id)

    def _propagate(self, package: Package) -> None:
        """Perform unit propagation on the incompatibilities related to ``package``
        until nothing more can be derived.
        """
        # An insertion-ordered dict keeps the propagation order deterministic.
        changed: dict[Package, None] = {package: None}
        while changed:
            package, _ = changed.popitem()
            # Newer incompatibilities tend to be more general, look at them first.
            for incompatibility in reversed(self.store.for_package(package)):
                if incompatibility.id in self._contradicted:
                    continue
                result = self._propagate_incompatibility(incompatibility)
                if result is _conflict:
                    # The conflict is resolved into an incompatibility that, after
                    # backjumping, is almost satisfied. Backjumping erased the
                    # assignments behind the pending changes, start over from it.
                    root_cause = self._resolve_conflict(incompatibility)
                    changed.clear()
                    result = self._propagate_incompatibility(root_cause)
                    if result is None or isinstance(result, _Conflict):
                        raise SolverInvariantError(
                            f"{root_cause} is not almost satisfied after backjumping", self.solution.dump()
                        )
                    changed[result] = None
                    break
                if result is not None:
                    assert not isinstance(result, _Conflict)
                    changed[result] = None

    def _propagate_incompatibility(self, incompatibility: Incompatibility) -> PropagationResult:
        """If all but one term of the incompatibility are satisfied, derive the
        negation of the last one.

        Return ``_conflict`` if all terms are satisfied, the package of the derived
        term if a derivation is made, ``None`` otherwise.
        """
        unsatisfied = None
        for term in incompatibility:
            relation = self.solution.relation(term)
            if relation is SetRelation.CONTRADICTED:
                self._set_contradicted(incompatibility)
                return None
            elif relation is SetRelation.INCONCLUSIVE:
                if unsatisfied is not None:
                    return None
                unsatisfied = term

        if unsatisfied is None:
            return _conflict

        self._set_contradicted(incompatibility)
        logger.debug("derived: %s", unsatisfied.inverse)
        self.solution.derive(unsatisfied.inverse, incompatibility)
        return unsatisfied.package

    def _resolve_conflict(self, incompatibility: Incompatibility) -> Incompatibility:
        """Derive the root cause of a conflict and backjump to where it can be
        used to derive new assignments.

        The returned incompatibility is registered in the store.
        """
        self.reporter.conflict(incompatibility)
        self.priorities.record_conflict(incompatibility)

        new_incompatibility = False
        while not incompatibility.is_terminal():
            # The term of the incompatibility most recently satisfied by the solution,
            # the assignment that satisfied it and the part of that assignment
            # outside of the term.
            most_recent_term = None
            most_recent_satisfier = None
            difference = None
            # Root is decided at level 1, never backjump further than that.
            previous_satisfier_level = 1

            for term in incompatibility:
                satisfier = self.solution.satisfier(term)
                if most_recent_satisfier is None:
                    most_recent_term, most_recent_satisfier = term, satisfier
                elif most_recent_satisfier.index < satisfier.index:
                    previous_satisfier_level = max(previous_satisfier_level, most_recent_satisfier.decision_level)
                    most_recent_term, most_recent_satisfier = term, satisfier
                    difference = None
                else:
                    previous_satisfier_level = max(previous_satisfier_level, satisfier.decision_level)

                if most_recent_term is term:
                    difference = most_recent_satisfier.term.difference(most_recent_term)
                    if difference is not None:
                        previous_satisfier_level = max(
                            previous_satisfier_level,
                            self.solution.satisfier(difference.inverse).decision_level,
                        )

            assert most_recent_term is not None and most_recent_satisfier is not None
            if (
                previous_satisfier_level < most_recent_satisfier.decision_level
                or most_recent_satisfier.cause is None
            ):
                self._backjump(previous_satisfier_level)
                if new_incompatibility:
                    self._add_incompatibility(incompatibility)
                return incompatibility

            # Resolve the incompatibility with the cause of the satisfier, the
            # result is guaranteed to hold as well and is closer to the root cause.
            cause = most_recent_satisfier.cause
            new_terms = [term for term in incompatibility if term.package != most_recent_term.package]
            new_terms.extend(term for term in cause if term.package != most_recent_satisfier.package)
            if difference is not None:
                new_terms.append(difference.inverse)

            partially = "" if difference is None else " partially"
            incompatibility = self.store.allocate(
                Incompatibility(new_terms, ConflictDerived(incompatibility.id, cause.id))
            )
            new_incompatibility = True
            logger.debug("! %s is%s satisfied by %s", most_recent_term, partially, most_recent_satisfier)
            logger.debug('! which is caused by "%s"', cause)
            logger.debug("! thus: %s", incompatibility)
            self.priorities.record_conflict(incompatibility)

        if new_incompatibility:
            self._add_incompatibility(incompatibility)
        raise ResolutionImpossible(incompatibility, self.store, format_report(incompatibility, self.store))

    def _backjump(self, decision_level: int) -> None:
        self.reporter.backjumping(decision_level)
        for level in range(self.solution.decision_level, decision_level, -1):
            self._contradicted.difference_update(self._contradicted_by_level.pop(level, ()))
        self.solution.backtrack(decision_level)

    def _allowed_versions(self, package: Package, version_range: VersionRange) -> list[Version]:
        versions = list(version_range.filter(self.provider.get_versions(package)))
        policy = self.provider.allows_prerelease(package)
        if policy is True:
            return versions
        finals = [version for version in versions if not version.is_prerelease]
        if policy is False or finals:
            return finals
        return versions

    def _candidates(self, package: Package) -> list[Version]:
        term = self.solution.term_for(package)
        assert term is not None and term.positive
        return self._allowed_versions(package, term.range)

    def _pick_version(self, package: Package, candidates: list[Version]) -> Version:
        if isinstance(package, Distribution):
            preferred = self.provider.preferences.get(package.name)
            if preferred is not None and preferred in candidates:
                return preferred
        return max(candidates)

    def _choose_package_version(self) -> Package | None:
        """Pick the next package and try its best version.

        Return the package whose incompatibilities should be propagated next, or
        ``None`` when every required package is decided.
        """
        unsatisfied = self.solution.unsatisfied()
        if not unsatisfied:
            return None

        self._rounds += 1
        if self._rounds > self.max_rounds:
            raise ResolutionTooDeep(self.max_rounds)

        if self.prefetch:
            for package in unsatisfied:
                self.provider.prefetch_versions(package)
        candidates = {package: self._candidates(package) for package in unsatisfied}
        if self.prefetch:
            for package, versions in candidates.items():
                if versions:
                    self.provider.prefetch(package, self._pick_version(package, versions))
        package = self.priorities.choose(unsatisfied, lambda p: len(candidates[p]))
        if not candidates[package]:
            term = self.solution.term_for(package)
            assert term is not None
            self._add_incompatibility(Incompatibility.no_versions(package, term.range))
            return package

        version = self._pick_version(package, candidates[package])
        key = (package, version)
        if key not in self._known_dependencies:
            self._known_dependencies[key] = list(self._dependency_incompatibilities(package, version))
            for incompatibility in self._known_dependencies[key]:
                self._add_incompatibility(incompatibility)
        # If an incompatibility is already satisfied, selecting the version would
        # cause a conflict. Propagation will find a better version instead.
        conflict = any(
            all(term.package == package or self.solution.satisfies(term) for term in incompatibility)
            for incompatibility in self._known_dependencies[key]
        )

        if not conflict:
            self.solution.decide(package, version)
            self.reporter.deciding(package, version)
            if self.prefetch:
                self._prefetch_dependencies(package, version)
        return package

    def _version_range(self, package: Package, version: Version) -> VersionRange:
        """The versions sharing the dependencies of ``version``.

        Local variants of a public version may declare different dependencies,
        the whole public version is only covered when the index has none.
        """
        if isinstance(package, Root) or version.local is not None:
            return VersionRange.singleton(version)
        for other in self.provider.get_versions(package):
            if other.local is not None and other.public == version.public:
                return VersionRange.singleton(version)
        return VersionRange.between(version, after_local_versions(version))

    def _dependency_incompatibilities(self, package: Package, version: Version) -> Iterator[Incompatibility]:
        versions = self._version_range(package, version)
        dependencies = self.provider.get_dependencies(package, version)
        if isinstance(dependencies, Unavailable):
            yield Incompatibility.unavailable(package, versions, dependencies.reason)
            return

        for dependency, version_range in dependencies.constraints.items():
            if dependency == package and version in version_range:
                continue
            if dependency == package:
                reason = f"it depends on {format_package_range(dependency, version_range)}"
            elif version_range.is_empty():
                reason = _conflicting_requirements(dependency, dependencies)
            else:
                continue
            yield Incompatibility.unavailable(package, versions, reason)
            return
        for dependency, version_range in dependencies.constraints.items():
            if dependency != package:
                yield Incompatibility.from_dependency(package, versions, dependency, version_range)

    def _prefetch_dependencies(self, package: Package, version: Version) -> None:
        """Start fetching what the next decisions will most likely need."""
        dependencies = self.provider.get_dependencies(package, version)
        if isinstance(dependencies, Unavailable):
            return
        for dependency in dependencies.constraints:
            self.provider.prefetch_versions(dependency)


def _conflicting_requirements(dependency: Package, dependencies: Dependencies) -> str:
    specifiers = [
        str(req.specifier) or "*"
        for req in dependencies.requirements
        if isinstance(dependency, Distribution) and req.key == dependency.name
    ]
    reason = f"conflicting requirements on {dependency}"
    return f"{reason}: {' and '.join(specifiers)}" if specifiers else reason
