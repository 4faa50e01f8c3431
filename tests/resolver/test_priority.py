from pkgsolve.models.packages import Distribution, Platform, Root
from pkgsolve.models.ranges import VersionRange
from pkgsolve.resolver.incompatibility import ConflictDerived, Incompatibility, Term
from pkgsolve.resolver.priority import PackagePriorities, PriorityTier


def test_root_and_platform_come_first():
    priorities = PackagePriorities()
    packages = [Distribution("foo"), Platform(), Root()]

    assert priorities.choose(packages, lambda package: 1) == Root()
    assert priorities.choose(packages[:2], lambda package: 1) == Platform()


def test_fewest_candidates_wins():
    priorities = PackagePriorities()
    counts = {Distribution("foo"): 5, Distribution("bar"): 2, Distribution("baz"): 2}

    assert priorities.choose(counts, counts.__getitem__) == Distribution("bar")


def test_conflicted_packages_are_preferred():
    priorities = PackagePriorities()
    foo, bar, baz = Distribution("foo"), Distribution("bar"), Distribution("baz")
    counts = {foo: 5, bar: 1, baz: 5}

    priorities.record_conflict(Incompatibility([Term(foo, VersionRange.full())], ConflictDerived(0, 1)))
    assert priorities.tier(foo) is PriorityTier.CONFLICTED
    assert priorities.tier(bar) is PriorityTier.DEFAULT
    assert priorities.choose(counts, counts.__getitem__) == foo

    # The most recent conflict wins between packages with the same count
    priorities.record_conflict(Incompatibility([Term(baz, VersionRange.full())], ConflictDerived(0, 1)))
    assert priorities.conflict_count() == 2
    assert priorities.choose(counts, counts.__getitem__) == baz
