import importlib.metadata as importlib_metadata


def read_version() -> str:
    try:
        return importlib_metadata.version(__package__ or "pkgsolve")
    except importlib_metadata.PackageNotFoundError:
        return "UNKNOWN"


__version__ = read_version()
