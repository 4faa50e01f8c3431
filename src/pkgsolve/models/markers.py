from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Mapping, overload

from dep_logic.markers import BaseMarker, InvalidMarker, from_pkg_marker, parse_marker
from packaging.markers import Marker as PackageMarker
from packaging.markers import default_environment
from packaging.version import InvalidVersion, Version

from pkgsolve.exceptions import RequirementError
from pkgsolve.utils import parse_version

if TYPE_CHECKING:
    from typing import Iterable


@dataclass(frozen=True, unsafe_hash=True, repr=False)
class Marker:
    inner: BaseMarker

    def __and__(self, other: Any) -> Marker:
        if not isinstance(other, Marker):
            return NotImplemented
        return type(self)(self.inner & other.inner)

    def __or__(self, other: Any) -> Marker:
        if not isinstance(other, Marker):
            return NotImplemented
        return type(self)(self.inner | other.inner)

    def is_any(self) -> bool:
        return self.inner.is_any()

    def is_empty(self) -> bool:
        return self.inner.is_empty()

    def __str__(self) -> str:
        return str(self.inner)

    def __repr__(self) -> str:
        return f"<Marker {self.inner}>"

    def evaluate(self, environment: dict[str, Any] | None = None) -> bool:
        return self.inner.evaluate(environment)

    def split_extras(self) -> tuple[Marker, Marker]:
        """An element can be stripped from the marker only if all parts are connected
        with `and` operator. The rest part are returned as a string or `None` if all are
        stripped.
        """
        return type(self)(self.inner.without_extras()), type(self)(self.inner.only("extra"))


@overload
def get_marker(marker: None) -> None: ...


@overload
def get_marker(marker: PackageMarker | Marker | str) -> Marker: ...


def get_marker(marker: PackageMarker | Marker | str | None) -> Marker | None:
    if marker is None:
        return None
    if isinstance(marker, Marker):
        return marker
    elif isinstance(marker, PackageMarker):
        return Marker(from_pkg_marker(marker))
    return _parse_marker(marker)


@lru_cache(maxsize=1024)
def _parse_marker(marker: str) -> Marker:
    try:
        return Marker(parse_marker(marker))
    except InvalidMarker as e:
        raise RequirementError(f"Invalid marker {marker}: {e}") from e


class Environment:
    """The fixed marker context that requirements are evaluated against.

    It holds the PEP 508 environment values (``sys_platform``,
    ``python_full_version``, ``implementation_name`` and friends). Values that
    are not given default to the running interpreter's.
    """

    def __init__(self, markers: Mapping[str, str] | None = None, **overrides: str) -> None:
        values = dict(default_environment())
        values.update(markers or {})
        values.update(overrides)
        self._markers = values

    @classmethod
    def for_python(cls, python_version: str, **overrides: str) -> Environment:
        """Create an environment targeting the given interpreter version."""
        version = parse_version(python_version)
        return cls(
            python_full_version=str(version),
            python_version=".".join(map(str, version.release[:2])),
            **overrides,
        )

    def markers(self) -> dict[str, str]:
        return dict(self._markers)

    @property
    def python_version(self) -> Version:
        """The interpreter version, which is the version of the ``Platform`` package."""
        full_version = self._markers["python_full_version"]
        try:
            return parse_version(full_version)
        except InvalidVersion:
            # Development builds report versions like 3.13.0+
            return parse_version(full_version.rstrip("+"))

    def evaluate(self, marker: Marker | None, extras: Iterable[str] = ()) -> bool:
        if marker is None or marker.is_any():
            return True
        environment: dict[str, Any] = self.markers()
        environment["extra"] = set(extras) or ""
        return marker.evaluate(environment)

    def _key(self) -> tuple[tuple[str, str], ...]:
        return tuple(sorted(self._markers.items()))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Environment):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __repr__(self) -> str:
        return (
            f"<Environment python={self._markers['python_full_version']} "
            f"platform={self._markers.get('sys_platform')}>"
        )
