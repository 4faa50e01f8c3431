"""
Terms, incompatibilities and the arena that stores them.

An incompatibility is a set of terms that must not all be true at the same
time. Its cause records where the fact comes from, derived incompatibilities
refer to the two incompatibilities they were resolved from by their index in
:class:`IncompatibilityStore`, so the derivation graph can share nodes freely.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, Iterator, Union

from pkgsolve.models.packages import Distribution, Package, Platform, Root
from pkgsolve.models.ranges import VersionRange

if TYPE_CHECKING:
    from packaging.version import Version


class SetRelation(enum.Enum):
    #: The partial solution satisfies the term
    SATISFIED = "satisfied"
    #: The partial solution contradicts the term
    CONTRADICTED = "contradicted"
    #: Neither of the above
    INCONCLUSIVE = "inconclusive"


def format_package_range(package: Package, version_range: VersionRange) -> str:
    if isinstance(package, Root) or version_range.is_any():
        return str(package)
    if version_range.is_empty():
        return f"{package}<empty>"
    # Ranges with holes render as one clause, e.g. foo>=1.0,!=1.5
    return " || ".join(f"{package}{part}" for part in str(version_range).split(" || "))


@dataclass(frozen=True)
class Term:
    """An assertion that the version of a package lies (or doesn't) in a range.

    A negative term is also true when the package isn't selected at all.
    """

    package: Package
    range: VersionRange
    positive: bool = True

    @classmethod
    def any(cls, package: Package) -> Term:
        """The term that is always true."""
        return cls(package, VersionRange.empty(), False)

    @classmethod
    def empty(cls, package: Package) -> Term:
        """The term that is never true."""
        return cls(package, VersionRange.empty(), True)

    @classmethod
    def exact(cls, package: Package, version: Version) -> Term:
        return cls(package, VersionRange.singleton(version), True)

    @property
    def inverse(self) -> Term:
        return Term(self.package, self.range, not self.positive)

    def is_any(self) -> bool:
        return not self.positive and self.range.is_empty()

    def is_empty(self) -> bool:
        return self.positive and self.range.is_empty()

    def intersect(self, other: Term) -> Term:
        if self.package != other.package:
            raise ValueError(f"Can't intersect terms of {self.package} and {other.package}")
        if self.positive and other.positive:
            return Term(self.package, self.range & other.range, True)
        if self.positive:
            return Term(self.package, self.range & ~other.range, True)
        if other.positive:
            return Term(self.package, other.range & ~self.range, True)
        return Term(self.package, self.range | other.range, False)

    def union(self, other: Term) -> Term:
        return self.inverse.intersect(other.inverse).inverse

    def difference(self, other: Term) -> Term | None:
        """The part of this term not covered by ``other``, ``None`` if nothing is left."""
        result = self.intersect(other.inverse)
        return None if result.is_empty() else result

    def satisfies(self, other: Term) -> bool:
        """Whether this term is a subset of ``other``, terms on other packages never are."""
        return self.package == other.package and self.intersect(other) == self

    def is_disjoint(self, other: Term) -> bool:
        return self.intersect(other).is_empty()

    def relation(self, other: Term) -> SetRelation:
        """The relation of ``other`` seen from this term, the accumulated knowledge."""
        if self.satisfies(other):
            return SetRelation.SATISFIED
        if self.is_disjoint(other):
            return SetRelation.CONTRADICTED
        return SetRelation.INCONCLUSIVE

    def __str__(self) -> str:
        text = format_package_range(self.package, self.range)
        return text if self.positive else f"not {text}"


@dataclass(frozen=True)
class NotRoot:
    """The root package must be selected."""


@dataclass(frozen=True)
class RootDependency:
    """A requirement given by the user."""


@dataclass(frozen=True)
class FromDependencyOf:
    """A version of a package depends on a range of another package."""

    package: Package


@dataclass(frozen=True)
class NoVersions:
    """No available version lies in the range."""


@dataclass(frozen=True)
class Unavailable:
    """A single version can't be used, for a reason that is not a dependency."""

    reason: str


@dataclass(frozen=True)
class ConflictDerived:
    """Derived by resolving two incompatibilities, referenced by their ids."""

    left: int
    right: int


Cause = Union[NotRoot, RootDependency, FromDependencyOf, NoVersions, Unavailable, ConflictDerived]
DEPENDENCY_CAUSES = (RootDependency, FromDependencyOf)


class Incompatibility:
    """A set of terms on distinct packages that can't all be true at once."""

    def __init__(self, terms: Iterable[Term], cause: Cause) -> None:
        by_package: dict[Package, Term] = {}
        for term in terms:
            if term.package in by_package:
                by_package[term.package] = by_package[term.package].intersect(term)
            else:
                by_package[term.package] = term
        if isinstance(cause, ConflictDerived) and len(by_package) > 1:
            # "root is selected" is implied by the root decision, keep only the
            # terms that tell something about the other packages.
            by_package = {
                package: term
                for package, term in by_package.items()
                if not (isinstance(package, Root) and term.positive)
            } or by_package
        self.terms: dict[Package, Term] = {
            package: term
            for package, term in sorted(by_package.items(), key=lambda item: item[0].sort_key())
            if not term.is_any()
        }
        self.cause = cause
        self.id = -1

    @classmethod
    def not_root(cls, root: Root, version: Version) -> Incompatibility:
        return cls([Term(root, VersionRange.singleton(version), False)], NotRoot())

    @classmethod
    def from_dependency(
        cls, package: Package, versions: VersionRange, dependency: Package, version_range: VersionRange
    ) -> Incompatibility:
        """``versions`` of ``package`` depend on ``version_range`` of ``dependency``."""
        cause: Cause = RootDependency() if isinstance(package, Root) else FromDependencyOf(package)
        return cls([Term(package, versions, True), Term(dependency, version_range, False)], cause)

    @classmethod
    def no_versions(cls, package: Package, version_range: VersionRange) -> Incompatibility:
        return cls([Term(package, version_range, True)], NoVersions())

    @classmethod
    def unavailable(cls, package: Package, versions: VersionRange, reason: str) -> Incompatibility:
        return cls([Term(package, versions, True)], Unavailable(reason))

    @property
    def packages(self) -> list[Package]:
        return list(self.terms)

    def get(self, package: Package) -> Term | None:
        return self.terms.get(package)

    def __iter__(self) -> Iterator[Term]:
        return iter(self.terms.values())

    def __len__(self) -> int:
        return len(self.terms)

    def is_terminal(self) -> bool:
        """Whether the incompatibility proves that no solution exists."""
        if not self.terms:
            return True
        if len(self.terms) > 1:
            return False
        (term,) = self.terms.values()
        return isinstance(term.package, Root) and term.positive

    def is_derived(self) -> bool:
        return isinstance(self.cause, ConflictDerived)

    def __repr__(self) -> str:
        return f"<Incompatibility #{self.id} {self}>"

    # Human readable descriptions, these follow the phrasing of pub's solver.
    def __str__(self) -> str:
        if self.is_terminal() and (self.is_derived() or not self.terms):
            return "version solving failed"
        cause = self.cause
        terms = list(self.terms.values())
        if isinstance(cause, DEPENDENCY_CAUSES) and len(terms) == 2:
            depender = next((term for term in terms if term.positive), None)
            dependee = next((term for term in terms if not term.positive), None)
            if depender is not None and dependee is not None:
                if isinstance(dependee.package, Platform):
                    return f"{_terse(depender, True)} requires {_terse(dependee)}"
                return f"{_terse(depender, True)} depends on {_terse(dependee)}"
        if isinstance(cause, NoVersions) and len(terms) == 1:
            term = terms[0]
            if isinstance(term.package, Platform):
                return f"the target Python doesn't satisfy {term.range}"
            if term.range.is_any():
                return f"no versions of {term.package} are available"
            return f"no versions of {term.package} match {term.range}"
        if isinstance(cause, Unavailable) and len(terms) == 1:
            if isinstance(terms[0].package, Root):
                return f"{terms[0].package} has {cause.reason}"
            return f"{_terse(terms[0])} is unavailable: {cause.reason}"

        if len(terms) == 1:
            term = terms[0]
            return f"{_terse(term, True)} is {'forbidden' if term.positive else 'required'}"
        if len(terms) == 2:
            term1, term2 = terms
            if term1.positive == term2.positive:
                if term1.positive:
                    return f"{_terse(term1, True)} is incompatible with {_terse(term2, True)}"
                return f"either {_terse(term1)} or {_terse(term2)}"

        positive = [_terse(term) for term in terms if term.positive]
        negative = [_terse(term) for term in terms if not term.positive]
        if positive and negative:
            if len(positive) == 1:
                positive_term = next(term for term in terms if term.positive)
                return f"{_terse(positive_term, True)} requires {' or '.join(negative)}"
            return f"if {' and '.join(positive)} then {' or '.join(negative)}"
        elif positive:
            return f"one of {' or '.join(positive)} must be false"
        return f"one of {' or '.join(negative)} must be true"

    def and_to_string(self, other: Incompatibility, this_line: int | None, other_line: int | None) -> str:
        """Describe this incompatibility and ``other`` as one sentence."""
        requires_both = self._try_requires_both(other, this_line, other_line)
        if requires_both is not None:
            return requires_both

        requires_through = self._try_requires_through(other, this_line, other_line)
        if requires_through is not None:
            return requires_through

        requires_forbidden = self._try_requires_forbidden(other, this_line, other_line)
        if requires_forbidden is not None:
            return requires_forbidden

        buffer = [str(self)]
        if this_line:
            buffer.append(f" ({this_line})")
        buffer.append(f" and {other}")
        if other_line:
            buffer.append(f" ({other_line})")
        return "".join(buffer)

    def _single_term_where(self, predicate: Callable[[Term], bool]) -> Term | None:
        found = None
        for term in self.terms.values():
            if not predicate(term):
                continue
            if found is not None:
                return None
            found = term
        return found

    def _verb(self) -> str:
        if not isinstance(self.cause, DEPENDENCY_CAUSES):
            return "requires"
        platform = any(isinstance(term.package, Platform) and not term.positive for term in self)
        return "requires" if platform else "depends on"

    def _try_requires_both(self, other: Incompatibility, this_line: int | None, other_line: int | None) -> str | None:
        if len(self) == 1 or len(other) == 1:
            return None
        this_positive = self._single_term_where(lambda term: term.positive)
        if this_positive is None:
            return None
        other_positive = other._single_term_where(lambda term: term.positive)
        if other_positive is None or this_positive.package != other_positive.package:
            return None

        this_negatives = " or ".join(_terse(term) for term in self if not term.positive)
        other_negatives = " or ".join(_terse(term) for term in other if not term.positive)
        verb = "depends on" if self._verb() == other._verb() == "depends on" else "requires"
        buffer = [f"{_terse(this_positive, True)} {verb} both {this_negatives}"]
        if this_line:
            buffer.append(f" ({this_line})")
        buffer.append(f" and {other_negatives}")
        if other_line:
            buffer.append(f" ({other_line})")
        return "".join(buffer)

    def _try_requires_through(
        self, other: Incompatibility, this_line: int | None, other_line: int | None
    ) -> str | None:
        if len(self) == 1 or len(other) == 1:
            return None
        this_negative = self._single_term_where(lambda term: not term.positive)
        other_negative = other._single_term_where(lambda term: not term.positive)
        if this_negative is None and other_negative is None:
            return None
        this_positive = self._single_term_where(lambda term: term.positive)
        other_positive = other._single_term_where(lambda term: term.positive)

        if (
            this_negative is not None
            and other_positive is not None
            and this_negative.package == other_positive.package
            and this_negative.inverse.satisfies(other_positive)
        ):
            prior, prior_negative, prior_line = self, this_negative, this_line
            latter, latter_line = other, other_line
        elif (
            other_negative is not None
            and this_positive is not None
            and other_negative.package == this_positive.package
            and other_negative.inverse.satisfies(this_positive)
        ):
            prior, prior_negative, prior_line = other, other_negative, other_line
            latter, latter_line = self, this_line
        else:
            return None

        prior_positives = [term for term in prior if term.positive]
        buffer: list[str] = []
        if len(prior_positives) > 1:
            buffer.append(f"if {' or '.join(map(_terse, prior_positives))} then ")
        else:
            buffer.append(f"{_terse(prior_positives[0], True)} {prior._verb()} ")
        buffer.append(_terse(prior_negative))
        if prior_line:
            buffer.append(f" ({prior_line})")
        buffer.append(f" which {latter._verb()} ")
        buffer.append(" or ".join(_terse(term) for term in latter if not term.positive))
        if latter_line:
            buffer.append(f" ({latter_line})")
        return "".join(buffer)

    def _try_requires_forbidden(
        self, other: Incompatibility, this_line: int | None, other_line: int | None
    ) -> str | None:
        if len(self) != 1 and len(other) != 1:
            return None
        if len(self) == 1:
            prior, latter, prior_line, latter_line = other, self, other_line, this_line
        else:
            prior, latter, prior_line, latter_line = self, other, this_line, other_line

        negative = prior._single_term_where(lambda term: not term.positive)
        if negative is None:
            return None
        (latter_term,) = latter.terms.values()
        if not negative.inverse.satisfies(latter_term):
            return None

        positives = [term for term in prior if term.positive]
        buffer: list[str] = []
        if len(positives) > 1:
            buffer.append(f"if {' or '.join(map(_terse, positives))} then ")
        elif positives:
            buffer.append(f"{_terse(positives[0], True)} {prior._verb()} ")
        else:
            return None
        buffer.append(f"{_terse(latter_term)} ")
        if prior_line:
            buffer.append(f"({prior_line}) ")
        if isinstance(latter.cause, NoVersions):
            if isinstance(latter_term.package, Platform):
                buffer.append("which doesn't match the target Python")
            else:
                buffer.append("which doesn't match any versions")
        elif isinstance(latter.cause, Unavailable):
            buffer.append(f"which is unavailable ({latter.cause.reason})")
        else:
            buffer.append("which is forbidden")
        if latter_line:
            buffer.append(f" ({latter_line})")
        return "".join(buffer)


def _terse(term: Term, allow_every: bool = False) -> str:
    if allow_every and term.range.is_any() and isinstance(term.package, Distribution):
        return f"every version of {term.package}"
    return format_package_range(term.package, term.range)


class IncompatibilityStore:
    """The append-only arena of all incompatibilities known to a solve session.

    Only the incompatibilities registered with ``add()`` take part in unit
    propagation, intermediate results of conflict resolution are only
    allocated so that the derivation graph can refer to them.
    """

    def __init__(self) -> None:
        self._arena: list[Incompatibility] = []
        self._by_package: dict[Package, list[Incompatibility]] = {}

    def allocate(self, incompatibility: Incompatibility) -> Incompatibility:
        if incompatibility.id < 0:
            incompatibility.id = len(self._arena)
            self._arena.append(incompatibility)
        return incompatibility

    def add(self, incompatibility: Incompatibility) -> Incompatibility:
        self.allocate(incompatibility)
        for package in incompatibility.terms:
            incompatibilities = self._by_package.setdefault(package, [])
            if incompatibility not in incompatibilities:
                incompatibilities.append(incompatibility)
        return incompatibility

    def __getitem__(self, index: int) -> Incompatibility:
        return self._arena[index]

    def __len__(self) -> int:
        return len(self._arena)

    def __iter__(self) -> Iterator[Incompatibility]:
        return iter(self._arena)

    def for_package(self, package: Package) -> list[Incompatibility]:
        return self._by_package.get(package, [])

    def causes(self, incompatibility: Incompatibility) -> tuple[Incompatibility, Incompatibility]:
        """Return the two incompatibilities a derived one was resolved from."""
        cause = incompatibility.cause
        if not isinstance(cause, ConflictDerived):
            raise ValueError(f"{incompatibility!r} is not derived")
        return self._arena[cause.left], self._arena[cause.right]
