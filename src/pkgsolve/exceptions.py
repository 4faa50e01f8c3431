from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgsolve.resolver.incompatibility import Incompatibility, IncompatibilityStore


class PkgsolveException(Exception):
    pass


class PkgsolveUsageError(PkgsolveException):
    pass


class RequirementError(PkgsolveUsageError, ValueError):
    pass


class NoConfigError(PkgsolveUsageError, KeyError):
    def __str__(self) -> str:
        return f"No such config key: {self.args[0]!r}"


class MetadataError(PkgsolveException):
    """Base class of the failures raised when fetching package metadata."""

    #: Whether the failure only makes one version unavailable (soft) or
    #: must abort the whole resolution (hard).
    recoverable = False


class CandidateNotFound(MetadataError):
    recoverable = True


class MetadataTransportError(MetadataError):
    recoverable = True


class AuthenticationError(MetadataError):
    pass


class InvalidMetadata(MetadataError):
    pass


class ResolutionError(PkgsolveException):
    pass


class ResolutionImpossible(ResolutionError):
    def __init__(self, incompatibility: Incompatibility, store: IncompatibilityStore, report: list[str]) -> None:
        self.incompatibility = incompatibility
        self.store = store
        self.report = report
        super().__init__("\n".join(report))


class ResolutionTooDeep(ResolutionError):
    def __init__(self, max_rounds: int) -> None:
        self.max_rounds = max_rounds
        super().__init__(f"Resolution exceeded {max_rounds} rounds")


class SolverInvariantError(PkgsolveException, RuntimeError):
    def __init__(self, message: str, state: str = "") -> None:
        self.state = state
        super().__init__(f"{message}\n{state}" if state else message)


class PkgsolveWarning(Warning):
    pass


class PackageWarning(PkgsolveWarning):
    pass

