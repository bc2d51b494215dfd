"""Tests for the compile session cache."""

import pytest

from chunkserve.domain.artifact import CompiledArtifact, CompileSession
from chunkserve.errors import CacheError, StaleSessionError
from chunkserve.storage.compile_cache import CompileCache


def _session(entry_id: str, request_id: str, *chunk_ids: str) -> CompileSession:
    return CompileSession(
        entry_id=entry_id,
        request_id=request_id,
        artifacts={c: CompiledArtifact(chunk_id=c, code=f"// {c}") for c in chunk_ids},
    )


@pytest.fixture
def cache():
    cache = CompileCache()
    cache.put(_session("main", "r1", "app", "a"))
    cache.put(_session("main", "r2", "app", "a"))
    cache.put(_session("other", "r1", "root"))
    return cache


class TestCompileCache:
    """Test session storage and eviction."""

    def test_lookup(self, cache):
        assert len(cache) == 3
        assert cache.get_artifact("main", "r1", "a").code == "// a"
        assert cache.get_artifact("main", "r1", "missing") is None
        assert cache.has_session("other", "r1")
        assert cache.session_ids("main") == ["r1", "r2"]

    def test_sessions_are_never_overwritten(self, cache):
        with pytest.raises(CacheError):
            cache.put(_session("main", "r1", "app"))

        assert cache.get_artifact("main", "r1", "a") is not None

    def test_stale_session(self, cache):
        with pytest.raises(StaleSessionError) as exc_info:
            cache.get_session("main", "unknown")

        assert exc_info.value.request_id == "unknown"

    def test_request_ids_are_scoped_by_entry(self, cache):
        with pytest.raises(StaleSessionError):
            cache.get_session("other", "r2")

    def test_evict_one_session(self, cache):
        assert cache.evict("main", "r1") == 1

        assert not cache.has_session("main", "r1")
        assert cache.has_session("main", "r2")
        assert cache.has_session("other", "r1")

    def test_evict_entry(self, cache):
        assert cache.evict("main") == 2
        assert cache.evict("main") == 0

        assert cache.session_ids("main") == []
        assert len(cache) == 1

    def test_clear(self, cache):
        cache.clear()

        assert len(cache) == 0


class TestCompileSession:
    """Test session immutability."""

    def test_artifacts_are_read_only(self):
        session = _session("main", "r1", "app")

        with pytest.raises(TypeError):
            session.artifacts["b"] = CompiledArtifact(chunk_id="b", code="")

        assert session.get("app").code == "// app"
        assert session.get("b") is None
