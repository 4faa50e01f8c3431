"""
Version sets used both for requirement constraints and for what the solver
has learned about a package so far.

A :class:`VersionRange` is a union of disjoint intervals kept in normalized
form (merged, non-overlapping, ascending), so equality and emptiness checks
never need any set reasoning.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, NamedTuple, Optional, Union

from packaging.version import Version

from pkgsolve.utils import parse_version

if TYPE_CHECKING:
    from typing import Any, Iterator

VersionLike = Union[Version, str]


def _release_prefix(version: Version, release: tuple[int, ...] | None = None) -> str:
    epoch = f"{version.epoch}!" if version.epoch else ""
    return epoch + ".".join(map(str, release if release is not None else version.release))


def lowest_of_release(version: Version, release: tuple[int, ...] | None = None) -> Version:
    """The smallest version of the given release series, i.e. its first dev release."""
    return Version(f"{_release_prefix(version, release)}.dev0")


def after_local_versions(version: Version) -> Version:
    """Return the smallest version greater than ``version`` and all of its local variants.

    ``1.0+cpu`` sorts after ``1.0`` but before ``1.0.post0.dev0``, so the latter
    bounds everything that shares the public version ``1.0``.
    """
    base = _release_prefix(version)
    if version.pre is not None:
        base += f"{version.pre[0]}{version.pre[1]}"
    if version.dev is not None:
        if version.post is not None:
            base += f".post{version.post}"
        return Version(f"{base}.dev{version.dev + 1}")
    if version.post is not None:
        return Version(f"{base}.post{version.post + 1}.dev0")
    return Version(f"{base}.post0.dev0")


#: Post-release number standing for "after every post-release", no real version uses it.
_LAST_POST = 2**63


def after_post_releases(version: Version) -> Version:
    """Return a bound above ``version`` and every post-release of it, the lower bound of ``>V``.

    Only meaningful for a version that is neither a post nor a dev release.
    """
    base = _release_prefix(version)
    if version.pre is not None:
        base += f"{version.pre[0]}{version.pre[1]}"
    return Version(f"{base}.post{_LAST_POST}.dev0")


def _before_post_releases(bound: Version) -> Version | None:
    if bound.post != _LAST_POST or bound.dev != 0 or bound.local is not None:
        return None
    base = _release_prefix(bound)
    if bound.pre is not None:
        base += f"{bound.pre[0]}{bound.pre[1]}"
    return Version(base)


def _before_local_versions(bound: Version) -> Version | None:
    """The inverse of :func:`after_local_versions` for bounds without a dev part of their own."""
    if bound.dev != 0 or bound.post is None or bound.local is not None:
        return None
    base = _release_prefix(bound)
    if bound.pre is not None:
        base += f"{bound.pre[0]}{bound.pre[1]}"
    version = Version(base if bound.post == 0 else f"{base}.post{bound.post - 1}")
    return version if after_local_versions(version) == bound else None


def _format_lower(version: Version, inclusive: bool) -> str:
    if inclusive:
        previous = _before_post_releases(version)
        if previous is not None:
            return f">{previous}"
        previous = _before_local_versions(version)
        if previous is not None and previous.is_postrelease:
            return f">{previous}"
        if previous is not None:
            # >V would also drop the post-releases of V
            return f">={previous},!={previous}"
    return f"{'>=' if inclusive else '>'}{version}"


def _format_upper(version: Version, inclusive: bool) -> str:
    if not inclusive:
        previous = _before_post_releases(version)
        if previous is not None:
            return f"<={previous}.post*"
        previous = _before_local_versions(version)
        if previous is not None:
            return f"<={previous}"
        if version == lowest_of_release(version):
            return f"<{_release_prefix(version)}"
    return f"{'<=' if inclusive else '<'}{version}"


class Interval(NamedTuple):
    """A contiguous set of versions, ``None`` bounds are unbounded."""

    min: Optional[Version]
    max: Optional[Version]
    include_min: bool = True
    include_max: bool = False

    def is_valid(self) -> bool:
        if self.min is None or self.max is None:
            return True
        if self.min < self.max:
            return True
        return self.min == self.max and self.include_min and self.include_max

    def contains(self, version: Version) -> bool:
        if self.min is not None and (version < self.min or version == self.min and not self.include_min):
            return False
        if self.max is not None and (version > self.max or version == self.max and not self.include_max):
            return False
        return True

    @property
    def is_singleton(self) -> bool:
        return self.min is not None and self.min == self.max

    @property
    def public_version(self) -> Version | None:
        """The version if the interval is a version and all of its local variants."""
        if self.min is None or self.max is None or not self.include_min or self.include_max:
            return None
        return self.min if self.min.local is None and after_local_versions(self.min) == self.max else None

    def __str__(self) -> str:
        if self.is_singleton:
            return f"=={self.min}"
        public = self.public_version
        if public is not None:
            return f"=={public}"
        parts: list[str] = []
        if self.min is not None:
            parts.append(_format_lower(self.min, self.include_min))
        if self.max is not None:
            parts.append(_format_upper(self.max, self.include_max))
        return ",".join(parts) or "*"


def _lower_key(interval: Interval) -> tuple:
    if interval.min is None:
        return (0,)
    return (1, interval.min, 0 if interval.include_min else 1)


def _upper_key(interval: Interval) -> tuple:
    if interval.max is None:
        return (1,)
    return (0, interval.max, 1 if interval.include_max else 0)


def _canonical(interval: Interval) -> Interval:
    # Inclusivity of an unbounded side carries no meaning, pin it so that
    # equal sets always compare equal.
    if interval.min is None and interval.include_min or interval.max is None and interval.include_max:
        return Interval(
            interval.min,
            interval.max,
            interval.include_min and interval.min is not None,
            interval.include_max and interval.max is not None,
        )
    return interval


def _touches(left: Interval, right: Interval) -> bool:
    """Whether two intervals sorted by lower bound overlap or are adjacent."""
    if left.max is None or right.min is None:
        return True
    if right.min < left.max:
        return True
    return right.min == left.max and (left.include_max or right.include_min)


def _normalize(intervals: Iterable[Interval]) -> tuple[Interval, ...]:
    merged: list[Interval] = []
    for interval in sorted((_canonical(i) for i in intervals if i.is_valid()), key=_lower_key):
        if merged and _touches(merged[-1], interval):
            last = merged[-1]
            upper = max(last, interval, key=_upper_key)
            merged[-1] = Interval(last.min, upper.max, last.include_min, upper.include_max)
        else:
            merged.append(interval)
    return tuple(merged)


def _coerce(version: VersionLike) -> Version:
    return parse_version(version) if isinstance(version, str) else version


class VersionRange:
    """An immutable set of versions closed under union, intersection and complement."""

    __slots__ = ("_intervals",)

    def __init__(self, intervals: Iterable[Interval] = ()) -> None:
        self._intervals = _normalize(intervals)

    @classmethod
    def full(cls) -> VersionRange:
        return cls([Interval(None, None, False, False)])

    @classmethod
    def empty(cls) -> VersionRange:
        return cls()

    @classmethod
    def singleton(cls, version: VersionLike) -> VersionRange:
        v = _coerce(version)
        return cls([Interval(v, v, True, True)])

    @classmethod
    def exact_not(cls, version: VersionLike) -> VersionRange:
        return cls.singleton(version).complement()

    @classmethod
    def at_least(cls, version: VersionLike, inclusive: bool = True) -> VersionRange:
        return cls([Interval(_coerce(version), None, inclusive, False)])

    @classmethod
    def at_most(cls, version: VersionLike, inclusive: bool = True) -> VersionRange:
        return cls([Interval(None, _coerce(version), False, inclusive)])

    @classmethod
    def between(
        cls,
        min: VersionLike,
        max: VersionLike,
        include_min: bool = True,
        include_max: bool = False,
    ) -> VersionRange:
        return cls([Interval(_coerce(min), _coerce(max), include_min, include_max)])

    @property
    def intervals(self) -> tuple[Interval, ...]:
        return self._intervals

    def is_empty(self) -> bool:
        return not self._intervals

    def is_any(self) -> bool:
        return len(self._intervals) == 1 and self._intervals[0].min is None and self._intervals[0].max is None

    def contains(self, version: VersionLike) -> bool:
        v = _coerce(version)
        return any(interval.contains(v) for interval in self._intervals)

    def union(self, other: VersionRange) -> VersionRange:
        return type(self)(self._intervals + other._intervals)

    def intersect(self, other: VersionRange) -> VersionRange:
        result: list[Interval] = []
        for left in self._intervals:
            for right in other._intervals:
                lower = max(left, right, key=_lower_key)
                upper = min(left, right, key=_upper_key)
                result.append(Interval(lower.min, upper.max, lower.include_min, upper.include_max))
        return type(self)(result)

    def complement(self) -> VersionRange:
        result: list[Interval] = []
        lower: Version | None = None
        include_lower = False
        for interval in self._intervals:
            if interval.min is not None:
                result.append(Interval(lower, interval.min, include_lower, not interval.include_min))
            if interval.max is None:
                break
            lower, include_lower = interval.max, not interval.include_max
        else:
            result.append(Interval(lower, None, include_lower, False))
        return type(self)(result)

    def is_disjoint(self, other: VersionRange) -> bool:
        return self.intersect(other).is_empty()

    def is_subset(self, other: VersionRange) -> bool:
        return self.intersect(other) == self

    def filter(self, versions: Iterable[VersionLike]) -> Iterator[Version]:
        """Yield the given versions that lie in the range, preserving order."""
        for version in versions:
            v = _coerce(version)
            if self.contains(v):
                yield v

    def __contains__(self, version: object) -> bool:
        if not isinstance(version, (Version, str)):
            return False
        return self.contains(version)

    def __and__(self, other: Any) -> VersionRange:
        if not isinstance(other, VersionRange):
            return NotImplemented
        return self.intersect(other)

    def __or__(self, other: Any) -> VersionRange:
        if not isinstance(other, VersionRange):
            return NotImplemented
        return self.union(other)

    def __invert__(self) -> VersionRange:
        return self.complement()

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, VersionRange):
            return NotImplemented
        return self._intervals == other._intervals

    def __hash__(self) -> int:
        return hash(self._intervals)

    def __repr__(self) -> str:
        return f"<VersionRange {self}>"

    def __str__(self) -> str:
        if self.is_empty():
            return "<empty>"
        if self.is_any():
            return "*"
        intervals = self._intervals
        if len(intervals) == 1:
            return str(intervals[0])
        holes = [_hole(left, right) for left, right in zip(intervals, intervals[1:])]
        if all(hole is not None for hole in holes):
            # A single range with some excluded versions, e.g. >=1.0,!=1.5,<2.0
            first, last = intervals[0], intervals[-1]
            parts: list[str] = []
            if first.min is not None:
                parts.append(_format_lower(first.min, first.include_min))
            parts.extend(f"!={hole}" for hole in holes)
            if last.max is not None:
                parts.append(_format_upper(last.max, last.include_max))
            return ",".join(parts)
        return " || ".join(map(str, intervals))


def _hole(left: Interval, right: Interval) -> Version | None:
    """The version excluded between two adjacent intervals, if that is all they exclude."""
    if left.max is None or right.min is None or left.include_max:
        return None
    if left.max == right.min and not right.include_min:
        return left.max
    if right.include_min and left.max.local is None and after_local_versions(left.max) == right.min:
        return left.max
    return None
