from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Sequence

from packaging.requirements import InvalidRequirement
from packaging.requirements import Requirement as PackageRequirement
from packaging.specifiers import SpecifierSet

from pkgsolve.exceptions import RequirementError
from pkgsolve.models.markers import Marker, get_marker
from pkgsolve.models.specifiers import fix_legacy_specifier, specifierset_to_range
from pkgsolve.utils import normalize_name

if TYPE_CHECKING:
    from pkgsolve.models.ranges import VersionRange

ALLOW_ANY = SpecifierSet()


@dataclasses.dataclass(eq=False)
class Requirement:
    """A named requirement on a package.

    It is a (virtual) specification of a package with constraints of version,
    extras and the environment marker it applies under.
    """

    name: str
    specifier: SpecifierSet = ALLOW_ANY
    extras: Sequence[str] | None = None
    marker: Marker | None = None

    @property
    def project_name(self) -> str:
        return normalize_name(self.name, lowercase=False)

    @property
    def key(self) -> str:
        return self.project_name.lower()

    @property
    def version_range(self) -> VersionRange:
        return specifierset_to_range(self.specifier)

    def _hash_key(self) -> tuple:
        return (
            self.key,
            str(self.specifier),
            frozenset(self.extras) if self.extras else None,
            str(self.marker) if self.marker else None,
        )

    def __hash__(self) -> int:
        return hash(self._hash_key())

    def __eq__(self, o: object) -> bool:
        return isinstance(o, Requirement) and self._hash_key() == o._hash_key()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.as_line()}>"

    def __str__(self) -> str:
        return self.as_line()

    @classmethod
    def from_pkg_requirement(cls, req: PackageRequirement) -> Requirement:
        if req.url:
            raise RequirementError(f"{req}: URL requirements are not supported")
        return cls(
            name=req.name,
            specifier=req.specifier,
            extras=tuple(sorted(req.extras)) or None,
            marker=get_marker(req.marker),
        )

    def as_line(self) -> str:
        extras = f"[{','.join(sorted(self.extras))}]" if self.extras else ""
        return f"{self.project_name}{extras}{self.specifier or ''}{self._format_marker()}"

    def _format_marker(self) -> str:
        if self.marker:
            return f"; {self.marker!s}"
        return ""


def filter_requirements_with_extras(
    requirement_lines: list[str], extras: Sequence[str], include_default: bool = False
) -> list[Requirement]:
    """Filter the requirements with extras.
    If extras are given, return those with matching extra markers.
    Otherwise, return those without extra markers.
    """
    result: list[Requirement] = []
    for req in requirement_lines:
        _r = parse_requirement(req)
        req_extras = get_marker("")
        if _r.marker:
            rest, req_extras = _r.marker.split_extras()
            _r.marker = rest if not rest.is_any() else None
            if not req_extras.evaluate({"extra": extras or ""}):
                continue
        # Add to the requirements if:
        # The requirement has no extras while requested extras are empty or include_default is True, or
        # The requirement has extras, in which case the `evaluate()` test must have been passed.
        if not req_extras.is_any() or include_default or not extras:
            result.append(_r)

    return result


def parse_as_pkg_requirement(line: str) -> PackageRequirement:
    """Parse a requirement line as packaging.requirement.Requirement"""
    try:
        return PackageRequirement(line)
    except InvalidRequirement:
        new_line = fix_legacy_specifier(line)
        return PackageRequirement(new_line)


def parse_requirement(line: str) -> Requirement:
    try:
        pkg_req = parse_as_pkg_requirement(line)
    except InvalidRequirement as e:
        raise RequirementError(f"{line}: {e}") from None
    return Requirement.from_pkg_requirement(pkg_req)
