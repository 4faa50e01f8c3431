"""
The things the solver decides a version for.

The set of package kinds is closed: the root project, the target Python
platform and distributions (optionally scoped to one extra). Code that
branches on the kind matches all three with ``isinstance``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from pkgsolve.utils import normalize_name


@dataclass(frozen=True)
class Root:
    """The synthetic package holding the user's requirements."""

    name: Optional[str] = None

    def sort_key(self) -> tuple[int, str, str]:
        return (0, self.name or "", "")

    def __str__(self) -> str:
        return self.name or "root"


@dataclass(frozen=True)
class Platform:
    """The interpreter itself, versioned by the target Python version."""

    def sort_key(self) -> tuple[int, str, str]:
        return (1, "", "")

    def __str__(self) -> str:
        return "Python"


@dataclass(frozen=True)
class Distribution:
    """A distribution from the index.

    ``Distribution("foo")`` and ``Distribution("foo", "bar")`` are distinct
    identities that are bound to the same version by a dependency of the latter
    on the former.
    """

    name: str
    extra: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", normalize_name(self.name))
        if self.extra is not None:
            object.__setattr__(self, "extra", normalize_name(self.extra))

    @property
    def base(self) -> Distribution:
        return self if self.extra is None else Distribution(self.name)

    def sort_key(self) -> tuple[int, str, str]:
        return (2, self.name, self.extra or "")

    def __str__(self) -> str:
        return f"{self.name}[{self.extra}]" if self.extra else self.name


Package = Union[Root, Platform, Distribution]
