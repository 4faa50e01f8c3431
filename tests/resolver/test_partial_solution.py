import pytest
from packaging.version import Version

from pkgsolve.exceptions import SolverInvariantError
from pkgsolve.models.packages import Distribution, Root
from pkgsolve.models.ranges import VersionRange
from pkgsolve.models.specifiers import get_range
from pkgsolve.resolver.incompatibility import Incompatibility, SetRelation, Term
from pkgsolve.resolver.partial_solution import PartialSolution
from pkgsolve.resolver.provider import ROOT_VERSION

ROOT = Root()
FOO = Distribution("foo")
BAR = Distribution("bar")


@pytest.fixture
def solution():
    solution = PartialSolution()
    cause = Incompatibility.not_root(ROOT, ROOT_VERSION)
    solution.derive(Term.exact(ROOT, ROOT_VERSION), cause)
    solution.decide(ROOT, ROOT_VERSION)
    return solution


def root_dependency(package, specifier):
    return Incompatibility.from_dependency(ROOT, VersionRange.singleton(ROOT_VERSION), package, get_range(specifier))


def test_derivations_accumulate(solution):
    solution.derive(Term(FOO, get_range(">=1.0")), root_dependency(FOO, ">=1.0"))
    solution.derive(Term(FOO, get_range("<2.0")), root_dependency(FOO, "<2.0"))

    assert solution.term_for(FOO) == Term(FOO, get_range(">=1.0,<2.0"))
    assert solution.unsatisfied() == [FOO]
    assert solution.relation(Term(FOO, get_range(">=0.5"))) is SetRelation.SATISFIED
    assert solution.relation(Term(FOO, get_range(">=3"))) is SetRelation.CONTRADICTED
    assert solution.relation(Term(FOO, get_range(">=1.5"))) is SetRelation.INCONCLUSIVE
    assert solution.relation(Term(BAR, VersionRange.full())) is SetRelation.INCONCLUSIVE


def test_negative_derivation_is_not_unsatisfied(solution):
    solution.derive(Term(FOO, get_range("==1.0"), False), Incompatibility.no_versions(FOO, get_range("==1.0")))
    assert solution.unsatisfied() == []
    assert solution.satisfies(Term(FOO, get_range("==1.0"), False))


def test_decide(solution):
    solution.derive(Term(FOO, get_range(">=1.0")), root_dependency(FOO, ">=1.0"))
    solution.decide(FOO, Version("1.5"))

    assert solution.decision_level == 2
    assert solution.decisions == {ROOT: ROOT_VERSION, FOO: Version("1.5")}
    assert solution.unsatisfied() == []
    assert solution.satisfies(Term.exact(FOO, Version("1.5")))


def test_decide_outside_of_the_derived_range(solution):
    solution.derive(Term(FOO, get_range(">=1.0")), root_dependency(FOO, ">=1.0"))
    with pytest.raises(SolverInvariantError):
        solution.decide(FOO, Version("0.5"))
    with pytest.raises(SolverInvariantError):
        solution.decide(BAR, Version("1.0"))


def test_decide_twice(solution):
    with pytest.raises(SolverInvariantError):
        solution.decide(ROOT, ROOT_VERSION)


def test_backtrack(solution):
    solution.derive(Term(FOO, get_range(">=1.0")), root_dependency(FOO, ">=1.0"))
    solution.decide(FOO, Version("1.5"))
    solution.derive(Term(BAR, get_range("<2")), root_dependency(BAR, "<2"))
    assert len(solution) == 5

    solution.backtrack(1)

    assert len(solution) == 3
    assert solution.decisions == {ROOT: ROOT_VERSION}
    assert solution.term_for(FOO) == Term(FOO, get_range(">=1.0"))
    assert solution.term_for(BAR) is None

    solution.decide(FOO, Version("1.0"))
    assert solution.attempted_solutions == 2


def test_backtrack_above_current_level(solution):
    with pytest.raises(SolverInvariantError):
        solution.backtrack(5)


def test_satisfier(solution):
    solution.derive(Term(FOO, get_range(">=1.0")), root_dependency(FOO, ">=1.0"))
    solution.derive(Term(FOO, get_range("<2.0")), root_dependency(FOO, "<2.0"))

    satisfier = solution.satisfier(Term(FOO, get_range("<3.0")))
    assert satisfier.index == 3
    assert not satisfier.is_decision
    assert solution.satisfier(Term(FOO, get_range(">=0.5"))).index == 2
    with pytest.raises(SolverInvariantError):
        solution.satisfier(Term(FOO, get_range(">=1.5")))
