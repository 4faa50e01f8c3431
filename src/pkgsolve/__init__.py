from pkgsolve.__version__ import __version__
from pkgsolve.resolver import Resolution, ResolvedPackage, check_satisfied, resolve

__all__ = ["Resolution", "ResolvedPackage", "__version__", "check_satisfied", "resolve"]
