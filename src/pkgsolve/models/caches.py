from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Generic, Hashable, TypeVar

from pkgsolve._types import CandidateMetadata
from pkgsolve.termui import logger

if TYPE_CHECKING:
    from concurrent.futures import Executor, Future
    from typing import Any


KT = TypeVar("KT", bound=Hashable)
VT = TypeVar("VT")


class JSONFileCache(Generic[KT, VT]):
    """A file cache that stores key-value pairs in a json file."""

    def __init__(self, cache_file: Path | str) -> None:
        self.cache_file = Path(cache_file)
        self._cache: dict[str, VT] = {}
        self._lock = threading.Lock()
        self._read_cache()

    def _read_cache(self) -> None:
        if not self.cache_file.exists():
            self._cache = {}
            return
        with self.cache_file.open() as fp:
            try:
                self._cache = json.load(fp)
            except json.JSONDecodeError:
                return

    def _write_cache(self) -> None:
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        with self.cache_file.open("w") as fp:
            json.dump(self._cache, fp)

    def __contains__(self, obj: KT) -> bool:
        return self._get_key(obj) in self._cache

    @classmethod
    def _get_key(cls, obj: KT) -> str:
        return str(obj)

    def get(self, obj: KT) -> VT:
        key = self._get_key(obj)
        return self._cache[key]

    def set(self, obj: KT, value: VT) -> None:
        key = self._get_key(obj)
        with self._lock:
            self._cache[key] = value
            self._write_cache()


class MetadataCache(JSONFileCache[tuple[str, str], CandidateMetadata]):
    """A cache manager that stores the
    (name, version) -> (dependencies, requires_python) mapping.

    Published versions never change, so entries are never invalidated.
    """

    @classmethod
    def _get_key(cls, obj: tuple[str, str]) -> str:
        name, version = obj
        return f"{name}-{version}"

    def get(self, obj: tuple[str, str]) -> CandidateMetadata:
        return CandidateMetadata(*super().get(obj))


class EmptyMetadataCache(MetadataCache):
    def __init__(self) -> None:
        pass

    def __contains__(self, obj: tuple[str, str]) -> bool:
        return False

    def get(self, obj: tuple[str, str]) -> CandidateMetadata:
        raise KeyError

    def set(self, obj: tuple[str, str], value: CandidateMetadata) -> None:
        pass


class InFlightCache(Generic[KT, VT]):
    """Memoize computations run on an executor, sharing one pending result per key.

    The first caller of a key submits the computation, later callers get the same
    :class:`~concurrent.futures.Future`, whether it is still running or done.
    Failures are memoized as well, the exception is re-raised by ``Future.result()``.
    """

    def __init__(self, executor: Executor, name: str = "") -> None:
        self._executor = executor
        self._futures: dict[KT, Future[VT]] = {}
        self._lock = threading.Lock()
        self.name = name

    def submit(self, key: KT, fn: Callable[..., VT], *args: Any) -> Future[VT]:
        with self._lock:
            future = self._futures.get(key)
            if future is None:
                logger.debug("Fetching %s %s", self.name, key)
                future = self._futures[key] = self._executor.submit(fn, *args)
        return future

    def get(self, key: KT, fn: Callable[..., VT], *args: Any) -> VT:
        """Return the result for ``key``, computing it if no one has asked before."""
        return self.submit(key, fn, *args).result()

    def __contains__(self, key: object) -> bool:
        return key in self._futures

    def __len__(self) -> int:
        return len(self._futures)

    def pending(self) -> int:
        """Number of computations that haven't completed yet."""
        with self._lock:
            return sum(1 for future in self._futures.values() if not future.done())
