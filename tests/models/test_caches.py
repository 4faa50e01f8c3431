import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from pkgsolve._types import CandidateMetadata
from pkgsolve.models.caches import InFlightCache, MetadataCache


@pytest.fixture
def executor():
    with ThreadPoolExecutor(max_workers=4) as executor:
        yield executor


def test_in_flight_cache_runs_once_per_key(executor):
    started = threading.Event()
    release = threading.Event()
    calls = []

    def fetch(key):
        calls.append(key)
        started.set()
        release.wait(5)
        return key.upper()

    cache = InFlightCache(executor, "test")
    futures = [cache.submit("foo", fetch, "foo") for _ in range(5)]
    started.wait(5)
    assert cache.pending() == 1
    release.set()

    assert all(future is futures[0] for future in futures)
    assert cache.get("foo", fetch, "foo") == "FOO"
    assert calls == ["foo"]
    assert "foo" in cache
    assert len(cache) == 1
    assert cache.pending() == 0


def test_in_flight_cache_memoizes_failures(executor):
    calls = []

    def fetch():
        calls.append(1)
        raise ValueError("boom")

    cache = InFlightCache(executor)
    for _ in range(2):
        with pytest.raises(ValueError, match="boom"):
            cache.get("key", fetch)
    assert calls == [1]


def test_metadata_cache_persists(tmp_path):
    cache_file = tmp_path / "cache" / "metadata.json"
    cache = MetadataCache(cache_file)
    assert ("foo", "1.0") not in cache

    cache.set(("foo", "1.0"), CandidateMetadata(["bar>=1"], ">=3.8"))

    cache = MetadataCache(cache_file)
    assert cache.get(("foo", "1.0")) == CandidateMetadata(["bar>=1"], ">=3.8")
    with pytest.raises(KeyError):
        cache.get(("foo", "2.0"))


def test_corrupted_metadata_cache_is_ignored(tmp_path):
    cache_file = tmp_path / "metadata.json"
    cache_file.write_text("{not json")
    assert ("foo", "1.0") not in MetadataCache(cache_file)
