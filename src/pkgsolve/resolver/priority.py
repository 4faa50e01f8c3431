from __future__ import annotations

import enum
from typing import TYPE_CHECKING

from pkgsolve.models.packages import Platform, Root

if TYPE_CHECKING:
    from typing import Callable, Iterable

    from pkgsolve.models.packages import Package
    from pkgsolve.resolver.incompatibility import Incompatibility


class PriorityTier(enum.IntEnum):
    """Lower tiers are decided first."""

    ROOT = 0
    PLATFORM = 1
    CONFLICTED = 2
    DEFAULT = 3


class PackagePriorities:
    """Decide which undecided package to pick next.

    The root and the platform are pinned first. Packages that took part in a
    conflict come before the others. Within a tier the package with the fewest
    candidate versions left wins, then the one that conflicted most recently,
    and the package name breaks the remaining ties.
    """

    def __init__(self) -> None:
        self._last_conflict: dict[Package, int] = {}
        self._conflicts = 0

    def record_conflict(self, incompatibility: Incompatibility) -> None:
        self._conflicts += 1
        for package in incompatibility.terms:
            self._last_conflict[package] = self._conflicts

    def conflict_count(self) -> int:
        return self._conflicts

    def tier(self, package: Package) -> PriorityTier:
        if isinstance(package, Root):
            return PriorityTier.ROOT
        if isinstance(package, Platform):
            return PriorityTier.PLATFORM
        if package in self._last_conflict:
            return PriorityTier.CONFLICTED
        return PriorityTier.DEFAULT

    def key(self, package: Package, candidate_count: int) -> tuple[PriorityTier, int, int, tuple[int, str, str]]:
        return (
            self.tier(package),
            candidate_count,
            -self._last_conflict.get(package, 0),
            package.sort_key(),
        )

    def choose(self, packages: Iterable[Package], count_candidates: Callable[[Package], int]) -> Package:
        """Return the package to decide next, ``packages`` must not be empty."""
        return min(packages, key=lambda package: self.key(package, count_candidates(package)))
