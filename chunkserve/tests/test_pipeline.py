"""Tests for compile-once/serve-many orchestration."""

import asyncio
import json
import os
import threading
from dataclasses import replace
from unittest.mock import Mock

import pytest

from chunkserve.errors import (
    AmbiguousAncestorError,
    ConfigError,
    CycleError,
    GraphError,
    StaleSessionError,
)
from chunkserve.pipeline import pipeline as pipeline_module
from chunkserve.pipeline.deps import DependencyGraph
from chunkserve.pipeline.pipeline import ChunkPipeline
from chunkserve.pipeline.split import split


def _src(js_project, name: str) -> str:
    return str((js_project / "src" / name).resolve())


class TestPlan:
    """Test split planning and its memo."""

    def test_shared_file_lands_in_root(self, pipeline, js_project):
        entry = pipeline.load_entry("main")

        plan = asyncio.run(pipeline.plan(entry))

        assert plan.placement.sorted_ids == ("app", "a", "b")
        assert plan.placement.chunks["app"] == (
            _src(js_project, "util.js"),
            _src(js_project, "app.js"),
            _src(js_project, "shared.js"),
        )
        assert plan.placement.chunks["a"] == (_src(js_project, "a.js"),)
        assert plan.placement.chunks["b"] == (_src(js_project, "b.js"),)

    def test_cyclic_entry_fails_before_scanning(self, pipeline, monkeypatch):
        scan = Mock(side_effect=AssertionError("files were scanned"))
        monkeypatch.setattr(DependencyGraph, "from_entry", scan)
        entry = pipeline.load_entry("cyclic")

        with pytest.raises(CycleError):
            asyncio.run(pipeline.plan(entry))

        scan.assert_not_called()

    def test_plan_is_memoized_per_identity(self, pipeline, monkeypatch):
        scan = Mock(wraps=DependencyGraph.from_entry)
        monkeypatch.setattr(DependencyGraph, "from_entry", scan)

        first = asyncio.run(pipeline.plan(pipeline.load_entry("main")))
        second = asyncio.run(pipeline.plan(pipeline.load_entry("main")))
        asyncio.run(pipeline.plan(pipeline.load_entry("main", mode="ADVANCED")))

        assert first is second
        assert scan.call_count == 2

    def test_entry_without_paths_scans_inputs_root(self, pipeline, js_project):
        (js_project / "entries" / "rooted.json").write_text(
            '{"modules": {"app": {"inputs": ["../src/b.js"], "deps": []}}}',
            encoding="utf-8",
        )

        entry = pipeline.load_entry("rooted")
        plan = asyncio.run(pipeline.plan(entry))

        assert entry.paths == (str(js_project / "src"),)
        assert plan.placement.chunks["app"] == (
            _src(js_project, "util.js"),
            _src(js_project, "shared.js"),
            _src(js_project, "b.js"),
        )

    def test_page_entry_has_no_plan(self, pipeline):
        with pytest.raises(ConfigError):
            asyncio.run(pipeline.plan(pipeline.load_entry("page")))

    def test_split_runs_off_the_event_loop(self, pipeline, monkeypatch):
        threads = []

        def record_thread(*args, **kwargs):
            threads.append(threading.current_thread())
            return split(*args, **kwargs)

        monkeypatch.setattr(pipeline_module, "split", record_thread)

        async def plan_from_loop():
            loop_thread = threading.current_thread()
            await pipeline.plan(pipeline.load_entry("main"))
            return loop_thread

        loop_thread = asyncio.run(plan_from_loop())

        assert len(threads) == 1
        assert threads[0] is not loop_thread

    def test_strict_lca_from_server_config(self, server_config, fake_compiler, js_project):
        (js_project / "src" / "x.js").write_text("goog.provide('x');\n", encoding="utf-8")
        (js_project / "src" / "y.js").write_text("goog.provide('y');\n", encoding="utf-8")
        (js_project / "entries" / "crossed.json").write_text(
            json.dumps(
                {
                    "paths": ["../src"],
                    "modules": {
                        "app": {"inputs": ["../src/util.js"], "deps": []},
                        "x": {"inputs": ["../src/x.js"], "deps": ["app"]},
                        "y": {"inputs": ["../src/y.js"], "deps": ["app"]},
                        "a": {"inputs": ["../src/a.js"], "deps": ["x", "y"]},
                        "b": {"inputs": ["../src/b.js"], "deps": ["x", "y"]},
                    },
                }
            ),
            encoding="utf-8",
        )
        lenient = ChunkPipeline(server_config, compiler=fake_compiler)
        strict = ChunkPipeline(replace(server_config, strict_lca=True), compiler=fake_compiler)

        plan = asyncio.run(lenient.plan(lenient.load_entry("crossed")))
        assert plan.placement.chunk_of(_src(js_project, "shared.js")) == "y"

        with pytest.raises(AmbiguousAncestorError):
            asyncio.run(strict.plan(strict.load_entry("crossed")))


class TestServe:
    """Test the /compile request flow."""

    def test_root_request_compiles_and_caches(self, pipeline, fake_compiler):
        result = asyncio.run(pipeline.serve("main"))

        assert result.artifact.chunk_id == "app"
        assert result.artifact.code == "// chunk app"
        assert result.request_id is not None
        assert not result.cached
        assert len(fake_compiler.calls) == 1
        assert pipeline.cache.has_session("main", result.request_id)

    def test_manifest_points_back_at_the_session(self, pipeline):
        result = asyncio.run(pipeline.serve("main"))

        manifest = result.manifest.to_dict()
        assert manifest["moduleInfo"] == {"app": [], "a": ["app"], "b": ["app"]}
        uri = manifest["moduleUris"]["a"][0]
        assert uri.startswith("http://localhost:9810/compile?")
        assert "id=main" in uri
        assert "chunk=a" in uri
        assert f"parentRequest={result.request_id}" in uri
        assert "mode=SIMPLE" in uri

    def test_follow_up_chunk_is_served_from_cache(self, pipeline, fake_compiler):
        root = asyncio.run(pipeline.serve("main"))

        result = asyncio.run(pipeline.serve("main", chunk="b", parent_request=root.request_id))

        assert result.cached
        assert result.artifact.code == "// chunk b"
        assert result.request_id == root.request_id
        assert len(fake_compiler.calls) == 1

    def test_each_root_request_starts_a_new_session(self, pipeline, fake_compiler):
        first = asyncio.run(pipeline.serve("main"))
        second = asyncio.run(pipeline.serve("main"))

        assert first.request_id != second.request_id
        assert len(fake_compiler.calls) == 2
        assert len(pipeline.cache) == 2
        assert len(pipeline.split_cache) == 1

    def test_requested_chunk_on_first_request(self, pipeline):
        result = asyncio.run(pipeline.serve("main", chunk="a"))

        assert result.artifact.chunk_id == "a"

    def test_unknown_chunk_is_rejected_before_compiling(self, pipeline, fake_compiler):
        with pytest.raises(GraphError):
            asyncio.run(pipeline.serve("main", chunk="nope"))

        assert fake_compiler.calls == []

    def test_unknown_chunk_in_cached_session(self, pipeline):
        root = asyncio.run(pipeline.serve("main"))

        with pytest.raises(GraphError):
            asyncio.run(pipeline.serve("main", chunk="nope", parent_request=root.request_id))

    def test_stale_parent_request(self, pipeline, fake_compiler):
        with pytest.raises(StaleSessionError):
            asyncio.run(pipeline.serve("main", chunk="a", parent_request="deadbeef"))

        assert fake_compiler.calls == []

    def test_evicted_session_is_stale(self, pipeline):
        root = asyncio.run(pipeline.serve("main"))
        pipeline.cache.evict("main", root.request_id)

        with pytest.raises(StaleSessionError):
            asyncio.run(pipeline.serve("main", chunk="a", parent_request=root.request_id))

    def test_parent_request_requires_chunk(self, pipeline):
        with pytest.raises(ConfigError):
            asyncio.run(pipeline.serve("main", parent_request="r1"))

    def test_page_entry(self, pipeline, fake_compiler):
        result = asyncio.run(pipeline.serve("page"))

        assert result.artifact.code == "// page page"
        assert result.request_id is None
        assert result.manifest is None
        assert fake_compiler.calls[0].dependency_mode == "PRUNE"
        assert fake_compiler.calls[0].compilation_level == "ADVANCED"
        assert len(pipeline.cache) == 0

    def test_mode_override(self, pipeline, fake_compiler):
        asyncio.run(pipeline.serve("main", mode="WHITESPACE"))

        assert fake_compiler.calls[0].compilation_level == "WHITESPACE"


class TestBuild:
    """Test production builds."""

    def test_chunk_build_writes_each_chunk(self, pipeline, js_project, fake_compiler):
        outputs = asyncio.run(pipeline.build(pipeline.load_entry("main")))

        out = js_project / "out"
        assert sorted(outputs) == sorted(str(out / f"{c}.js") for c in ("app", "a", "b"))
        assert (out / "a.js").read_text(encoding="utf-8") == "// chunk a"
        root_wrapper = fake_compiler.calls[0].chunk_wrapper[0]
        assert str(out / "b.js") in root_wrapper
        assert "parentRequest" not in root_wrapper

    def test_page_build(self, pipeline, js_project):
        outputs = asyncio.run(pipeline.build(pipeline.load_entry("page")))

        path = str(js_project / "out" / "page.js")
        assert list(outputs) == [path]
        assert os.path.exists(path)

    def test_build_requires_output_path(self, pipeline, js_project):
        (js_project / "entries" / "nopath.json").write_text(
            '{"modules": {"app": {"inputs": ["../src/app.js"], "deps": []}}, "paths": ["../src"]}',
            encoding="utf-8",
        )

        with pytest.raises(ConfigError):
            asyncio.run(pipeline.build(pipeline.load_entry("nopath")))


class TestServeRaw:
    """Test uncompiled RAW mode replies."""

    def test_chunk_loader_loads_every_input_from_root(self, raw_pipeline, fake_compiler):
        result = asyncio.run(raw_pipeline.serve("main", mode="RAW"))

        lines = result.artifact.code.splitlines()
        assert result.artifact.chunk_id == "app"
        assert result.request_id is None
        assert fake_compiler.calls == []
        assert lines[0] == (
            "document.write('<script src=\"http://localhost:9810/closure/goog/base.js\"></script>');"
        )
        assert lines[1] == (
            "document.write('<script src=\"http://localhost:9810/deps.js?id=main\"></script>');"
        )
        assert 'var PLOVR_MODULE_INFO = {"app": [], "a": ["app"], "b": ["app"]};' in lines[2]
        uris = [f"http://localhost:9810/inputs/{name}.js" for name in ("app", "a", "b")]
        assert f'var PLOVR_MODULE_URIS = {json.dumps({"app": uris, "a": [], "b": []})};' in lines[3]
        assert "var PLOVR_MODULE_USE_DEBUG_MODE = false;" in lines[4]
        assert lines[5:] == [f"document.write('<script src=\"{uri}\"></script>');" for uri in uris]

    def test_raw_entry_mode_is_not_compiled(self, raw_pipeline, fake_compiler, js_project):
        (js_project / "entries" / "rawpage.json").write_text(
            '{"mode": "RAW", "paths": ["../src"], "inputs": ["../src/b.js"], "debug": true}',
            encoding="utf-8",
        )

        result = asyncio.run(raw_pipeline.serve("rawpage"))

        assert fake_compiler.calls == []
        assert result.artifact.chunk_id == "rawpage"
        assert result.artifact.code.splitlines()[-1] == (
            "document.write('<script src=\"http://localhost:9810/inputs/b.js\"></script>');"
        )

    def test_base_url_is_taken_from_the_request(self, raw_pipeline):
        result = asyncio.run(raw_pipeline.serve("page", mode="RAW", base_url="http://dev.test/"))

        assert "http://dev.test/closure/goog/base.js" in result.artifact.code
        assert "http://dev.test/inputs/b.js" in result.artifact.code

    def test_raw_requires_closure_library(self, pipeline, fake_compiler):
        with pytest.raises(ConfigError):
            asyncio.run(pipeline.serve("main", mode="RAW"))

        assert fake_compiler.calls == []

    def test_deps_js_lists_only_project_files(self, raw_pipeline):
        text = asyncio.run(raw_pipeline.deps_js("main"))

        lines = text.splitlines()
        assert lines == [
            "goog.addDependency('../../inputs/a.js', ['a'], ['app', 'shared'], {});",
            "goog.addDependency('../../inputs/app.js', ['app'], ['util'], {});",
            "goog.addDependency('../../inputs/b.js', ['b'], ['shared'], {});",
            "goog.addDependency('../../inputs/shared.js', ['shared'], ['util'], {});",
            "goog.addDependency('../../inputs/util.js', ['util'], [], {});",
        ]

    def test_deps_js_marks_goog_modules(self, raw_pipeline, js_project):
        (js_project / "src" / "mod.js").write_text(
            "goog.module('my.mod');\nconst util = goog.require('util');\n", encoding="utf-8"
        )

        text = asyncio.run(raw_pipeline.deps_js("main"))

        assert (
            "goog.addDependency('../../inputs/mod.js', ['my.mod'], ['util'], {'module': 'goog'});"
            in text.splitlines()
        )
