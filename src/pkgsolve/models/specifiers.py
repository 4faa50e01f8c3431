from __future__ import annotations

import re
import warnings
from functools import lru_cache, reduce
from typing import Match

from packaging.specifiers import InvalidSpecifier, Specifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from pkgsolve.exceptions import RequirementError
from pkgsolve.models.ranges import VersionRange, after_local_versions, after_post_releases, lowest_of_release
from pkgsolve.utils import parse_version


@lru_cache
def get_specifier(version_str: str | None) -> SpecifierSet:
    if not version_str or version_str == "*":
        return SpecifierSet()
    try:
        return SpecifierSet(fix_legacy_specifier(version_str))
    except InvalidSpecifier as e:
        raise RequirementError(f"Invalid specifier {version_str}: {e}") from None


_legacy_specifier_re = re.compile(r"(==|!=|<=|>=|<|>)(\s*)([^,;\s)]*)")


@lru_cache
def fix_legacy_specifier(specifier: str) -> str:
    """Since packaging 22.0, legacy specifiers like '>=4.*' are no longer
    supported. We try to normalize them to the new format.
    """

    def fix_wildcard(match: Match[str]) -> str:
        operator, _, version = match.groups()
        if operator in ("==", "!="):
            return match.group(0)
        if ".*" in version:
            warnings.warn(".* suffix can only be used with `==` or `!=` operators", FutureWarning, stacklevel=4)
            version = version.replace(".*", ".0")
            if operator in ("<", "<="):  # <4.* and <=4.* are equivalent to <4.0
                operator = "<"
            elif operator in (">", ">="):  # >4.* and >=4.* are equivalent to >=4.0
                operator = ">="
        elif "+" in version:  # Drop the local version
            warnings.warn(
                "Local version label can only be used with `==` or `!=` operators", FutureWarning, stacklevel=4
            )
            version = version.split("+")[0]
        return f"{operator}{version}"

    return _legacy_specifier_re.sub(fix_wildcard, specifier)


def _wildcard_range(version_str: str) -> VersionRange:
    prefix = parse_version(version_str[:-2])
    release = prefix.release
    upper = (*release[:-1], release[-1] + 1)
    return VersionRange.between(lowest_of_release(prefix), lowest_of_release(prefix, upper))


def _equal_range(version: Version) -> VersionRange:
    if version.local is not None:
        return VersionRange.singleton(version)
    return VersionRange.between(version, after_local_versions(version))


def _parse(op: str, version_str: str) -> Version:
    try:
        return parse_version(version_str)
    except InvalidVersion:
        raise RequirementError(f"Invalid version in specifier {op}{version_str}") from None


def specifier_to_range(specifier: Specifier) -> VersionRange:
    """Translate a single PEP 440 specifier clause into a version range."""
    # Specifier objects compare equal across spellings like 2 and 2.0,
    # the cache is keyed on the text so that each range keeps its own.
    return _clause_to_range(specifier.operator, specifier.version)


@lru_cache(maxsize=4096)
def _clause_to_range(op: str, version_str: str) -> VersionRange:
    if op in ("==", "!=") and version_str.endswith(".*"):
        result = _wildcard_range(version_str)
        return result if op == "==" else result.complement()
    version = _parse(op, version_str)
    if op == "==":
        return _equal_range(version)
    if op == "!=":
        return _equal_range(version).complement()
    if op == "===":
        return VersionRange.singleton(version)
    if op == ">=":
        return VersionRange.at_least(version)
    if op == ">":
        if version.is_postrelease or version.dev is not None:
            return VersionRange.at_least(after_local_versions(version))
        # >V doesn't allow post-releases of V itself
        return VersionRange.at_least(after_post_releases(version))
    if op == "<=":
        return VersionRange.at_most(after_local_versions(version), inclusive=False)
    if op == "<":
        if version.is_prerelease or version.is_postrelease:
            return VersionRange.at_most(version, inclusive=False)
        # <V doesn't allow pre-releases of V itself
        return VersionRange.at_most(lowest_of_release(version), inclusive=False)
    if op == "~=":
        release = version.release
        upper = (*release[:-2], release[-2] + 1)
        return VersionRange.at_least(version) & VersionRange.at_most(
            lowest_of_release(version, upper), inclusive=False
        )
    raise RequirementError(f"Unsupported specifier operator: {op}")


def specifierset_to_range(specifiers: SpecifierSet) -> VersionRange:
    """Intersect the ranges of every clause of a specifier set."""
    return reduce(VersionRange.intersect, map(specifier_to_range, specifiers), VersionRange.full())


@lru_cache(maxsize=1024)
def get_range(version_str: str | None) -> VersionRange:
    """Parse a specifier string like ``>=1.0,!=1.3`` into a version range."""
    return specifierset_to_range(get_specifier(version_str))


def mentions_prerelease(specifiers: SpecifierSet) -> bool:
    """Whether any clause explicitly names a pre-release version."""
    for spec in specifiers:
        version = spec.version[:-2] if spec.version.endswith(".*") else spec.version
        try:
            if parse_version(version).is_prerelease:
                return True
        except InvalidVersion:
            continue
    return False
