from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from pkgsolve.exceptions import SolverInvariantError
from pkgsolve.resolver.incompatibility import Incompatibility, SetRelation, Term

if TYPE_CHECKING:
    from packaging.version import Version

    from pkgsolve.models.packages import Package


@dataclass(frozen=True)
class Assignment:
    """A term of the partial solution, either a decision or a derivation.

    Decisions have no cause, derivations are caused by the incompatibility that
    forced them.
    """

    term: Term
    decision_level: int
    index: int
    cause: Optional[Incompatibility] = None

    @property
    def package(self) -> Package:
        return self.term.package

    @property
    def is_decision(self) -> bool:
        return self.cause is None

    def __str__(self) -> str:
        kind = "decision" if self.is_decision else "derivation"
        return f"[{self.index}] {kind}@{self.decision_level} {self.term}"


class PartialSolution:
    """The ordered list of assignments made so far.

    For every package the intersection of its assignments is kept up to date, so
    relation checks don't need to walk the assignment list.
    """

    def __init__(self) -> None:
        self._assignments: list[Assignment] = []
        self._decisions: dict[Package, Version] = {}
        self._terms: dict[Package, Term] = {}
        self._attempted_solutions = 1
        self._backtracking = False

    @property
    def decisions(self) -> dict[Package, Version]:
        return dict(self._decisions)

    @property
    def decision_level(self) -> int:
        return len(self._decisions)

    @property
    def attempted_solutions(self) -> int:
        return self._attempted_solutions

    def __len__(self) -> int:
        return len(self._assignments)

    def term_for(self, package: Package) -> Term | None:
        return self._terms.get(package)

    def unsatisfied(self) -> list[Package]:
        """Packages that must be selected but have no decision yet."""
        return [package for package, term in self._terms.items() if term.positive and package not in self._decisions]

    def decide(self, package: Package, version: Version) -> None:
        if package in self._decisions:
            raise SolverInvariantError(f"{package} is already decided", self.dump())
        term = self._terms.get(package)
        if term is None or not Term.exact(package, version).satisfies(term):
            raise SolverInvariantError(f"{package}=={version} is not allowed by {term}", self.dump())
        # A new decision after backtracking starts a new attempt.
        if self._backtracking:
            self._attempted_solutions += 1
        self._backtracking = False
        self._decisions[package] = version
        self._assign(Assignment(Term.exact(package, version), self.decision_level, len(self._assignments)))

    def derive(self, term: Term, cause: Incompatibility) -> None:
        self._assign(Assignment(term, self.decision_level, len(self._assignments), cause))

    def _assign(self, assignment: Assignment) -> None:
        self._assignments.append(assignment)
        self._register(assignment)

    def _register(self, assignment: Assignment) -> None:
        old = self._terms.get(assignment.package)
        self._terms[assignment.package] = assignment.term if old is None else old.intersect(assignment.term)

    def backtrack(self, decision_level: int) -> None:
        """Remove all assignments made after the given decision level."""
        if decision_level > self.decision_level:
            raise SolverInvariantError(
                f"Can't backtrack to level {decision_level} from level {self.decision_level}", self.dump()
            )
        self._backtracking = True
        packages: set[Package] = set()
        while self._assignments and self._assignments[-1].decision_level > decision_level:
            removed = self._assignments.pop()
            packages.add(removed.package)
            if removed.is_decision:
                del self._decisions[removed.package]

        for package in packages:
            self._terms.pop(package, None)
        for assignment in self._assignments:
            if assignment.package in packages:
                self._register(assignment)

    def relation(self, term: Term) -> SetRelation:
        accumulated = self._terms.get(term.package)
        if accumulated is None:
            return SetRelation.INCONCLUSIVE
        return accumulated.relation(term)

    def satisfies(self, term: Term) -> bool:
        return self.relation(term) is SetRelation.SATISFIED

    def satisfier(self, term: Term) -> Assignment:
        """Return the earliest assignment after which the solution satisfies ``term``."""
        assigned: Term | None = None
        for assignment in self._assignments:
            if assignment.package != term.package:
                continue
            assigned = assignment.term if assigned is None else assigned.intersect(assignment.term)
            if assigned.satisfies(term):
                return assignment
        raise SolverInvariantError(f"{term} is not satisfied by the partial solution", self.dump())

    def dump(self) -> str:
        return "\n".join(str(assignment) for assignment in self._assignments)
