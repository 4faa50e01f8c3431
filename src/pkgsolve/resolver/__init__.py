from pkgsolve.resolver.core import (
    Fresh,
    Resolution,
    ResolvedPackage,
    SatisfactionResult,
    Unsatisfied,
    check_satisfied,
    resolve,
)
from pkgsolve.resolver.provider import MetadataProvider
from pkgsolve.resolver.solver import Solver

__all__ = [
    "Fresh",
    "MetadataProvider",
    "Resolution",
    "ResolvedPackage",
    "SatisfactionResult",
    "Solver",
    "Unsatisfied",
    "check_satisfied",
    "resolve",
]
