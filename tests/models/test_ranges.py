import random

import pytest
from packaging.specifiers import SpecifierSet
from packaging.version import Version

from pkgsolve.models.ranges import Interval, VersionRange, after_local_versions
from pkgsolve.models.specifiers import get_range


@pytest.mark.parametrize(
    "specifier,expected",
    [
        ("", "*"),
        (">=1.0", ">=1.0"),
        (">=1.0,<2.0", ">=1.0,<2.0"),
        ("<2.0rc1", "<2.0rc1"),
        ("==1.0", "==1.0"),
        ("===1.0", "==1.0"),
        ("<=1.0", "<=1.0"),
        (">1.0", ">1.0"),
        ("!=1.5", "!=1.5"),
        (">=1.0,!=1.5,<2.0", ">=1.0,!=1.5,<2.0"),
        ("!=1.0,!=2.0", "!=1.0,!=2.0"),
        ("~=1.4.2", ">=1.4.2,<1.5"),
        (">=1.0,!=1.0", ">=1.0,!=1.0"),
        (">1.0a1", ">1.0a1"),
        (">1.0.post1", ">1.0.post1"),
        (">=1.0,<=1.0", "==1.0"),
        (">=2.0,<1.0", "<empty>"),
    ],
)
def test_range_str(specifier, expected):
    assert str(get_range(specifier)) == expected


def test_disjoint_range_str():
    version_range = get_range("<1.0") | get_range(">=2.0")
    assert str(version_range) == "<1.0 || >=2.0"


@pytest.mark.parametrize(
    "specifier,version,contained",
    [
        ("==1.0", "1.0+local", True),
        ("==1.0", "1.0.post1", False),
        ("===1.0", "1.0+local", False),
        ("!=1.5", "1.5+local", False),
        ("!=1.5", "1.5.1", True),
        ("<2.0", "2.0rc1", False),
        ("<2.0", "2.0.dev1", False),
        ("<2.0", "1.9", True),
        ("<2.0rc2", "2.0rc1", True),
        ("<=1.0", "1.0+local", True),
        (">1.0", "1.0+local", False),
        (">1.0", "1.0.1", True),
        (">1.0", "1.0.post1", False),
        (">1.0", "1.0.0.1", True),
        (">1.0a1", "1.0a1.post2", False),
        (">1.0a1", "1.0a2", True),
        (">1.0.post1", "1.0.post2", True),
        (">1.0.post1", "1.0.post1+local", False),
        (">=1.0,!=1.0", "1.0.post1", True),
        ("~=1.4", "1.9", True),
        ("~=1.4", "2.0", False),
        ("==1.*", "1.5", True),
        ("==1.*", "1.0a1", True),
        ("==1.*", "2.0", False),
        ("!=1.*", "2.0", True),
    ],
)
def test_range_contains(specifier, version, contained):
    assert (Version(version) in get_range(specifier)) is contained


@pytest.mark.parametrize(
    "specifier",
    ["", ">=1.0", "<2.0,!=1.5", "==1.0", "~=1.4", "!=1.*", ">1.0,<=3.0", ">=2.0,<1.0"],
)
def test_range_algebra(specifier):
    version_range = get_range(specifier)
    complement = ~version_range

    assert (version_range & complement).is_empty()
    assert (version_range | complement).is_any()
    assert ~complement == version_range
    assert version_range.is_disjoint(complement)
    assert version_range.is_subset(version_range | get_range(">=5"))


def test_de_morgan():
    left, right = get_range(">=1.0,<2.0"), get_range("!=1.5,<3")
    assert ~(left | right) == ~left & ~right
    assert ~(left & right) == ~left | ~right


def test_ranges_are_normalized():
    merged = VersionRange.between("1.0", "2.0") | VersionRange.between("1.5", "3.0")
    assert merged == VersionRange.between("1.0", "3.0")
    assert VersionRange.between("1.0", "2.0") | VersionRange.between("2.0", "3.0") == VersionRange.between(
        "1.0", "3.0"
    )
    assert len((VersionRange.at_most("1.0", inclusive=False) | VersionRange.at_least("1.0", False)).intervals) == 2
    assert VersionRange([Interval(Version("2.0"), Version("1.0"))]).is_empty()


def test_full_and_empty_ranges():
    assert VersionRange.full().is_any()
    assert VersionRange.empty().is_empty()
    assert ~VersionRange.full() == VersionRange.empty()
    assert ~VersionRange.empty() == VersionRange.full()


def test_singleton_range():
    version_range = VersionRange.singleton("1.0")
    assert version_range.contains("1.0")
    assert not version_range.contains("1.0+local")
    assert get_range("==1.0").contains("1.0+local")
    assert VersionRange.exact_not("1.0") == ~version_range


def test_filter_keeps_order():
    versions = ["3.0", "1.0", "2.5", "1.5"]
    assert list(get_range(">=1.5,<3").filter(versions)) == [Version("2.5"), Version("1.5")]


@pytest.mark.parametrize(
    "version,expected",
    [
        ("1.0", "1.0.post0.dev0"),
        ("1.0a1", "1.0a1.post0.dev0"),
        ("1.0.post2", "1.0.post3.dev0"),
        ("1.0.dev3", "1.0.dev4"),
        ("1!2.0", "1!2.0.post0.dev0"),
    ],
)
def test_after_local_versions(version, expected):
    result = after_local_versions(Version(version))
    assert result == Version(expected)
    assert Version(f"{version}+local") < result


def test_greater_than_complement_keeps_post_releases():
    complement = ~get_range(">1.0")
    assert Version("1.0.post3") in complement
    assert Version("1.0.1") not in complement
    assert str(complement) == "<=1.0.post*"


@pytest.mark.parametrize("first,second", [(">=2", ">=2.0"), (">=2.0", ">=2"), ("<3.0", "<3"), ("==1", "==1.0")])
def test_range_keeps_its_own_spelling(first, second):
    # Equal specifiers written differently must not share a cached range
    assert str(get_range(first)) == first
    assert str(get_range(second)) == second
    assert get_range(first) == get_range(second)


RELEASES = ["1.0", "1.1", "1.5", "2.0", "2.0.1", "3.0"]
OPERATORS = ["==", "!=", ">=", ">", "<=", "<", "~="]
SAMPLE_VERSIONS = [*RELEASES, "0.9", "1.0.post1", "2.0+local", "2.0rc1", "2.0.1.dev1", "4.0"]


def random_specifier(rng):
    clauses = rng.randint(1, 3)
    return ",".join(f"{rng.choice(OPERATORS)}{rng.choice(RELEASES)}" for _ in range(clauses))


@pytest.mark.parametrize("seed", range(20))
def test_random_range_identities(seed):
    rng = random.Random(seed)
    first, second = random_specifier(rng), random_specifier(rng)
    left, right = get_range(first), get_range(second)

    assert ~~left == left
    assert ~(left | right) == ~left & ~right
    assert ~(left & right) == ~left | ~right
    assert (left & right).is_subset(left)
    assert left.is_subset(left | right)
    assert (left & ~left).is_empty()
    for version in map(Version, SAMPLE_VERSIONS):
        assert (version in left & right) is (version in left and version in right)
        assert (version in left | right) is (version in left or version in right)
        assert (version in ~left) is (version not in left)
        assert (version in left) is SpecifierSet(first).contains(version, prereleases=True), (first, version)
