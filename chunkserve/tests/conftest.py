"""Pytest configuration for chunkserve tests."""

import json
import sys
from dataclasses import replace
from pathlib import Path

import pytest

# Add project root to path for imports
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from chunkserve.config import ServerConfig  # noqa: E402
from chunkserve.domain.artifact import CompiledArtifact  # noqa: E402
from chunkserve.pipeline.pipeline import ChunkPipeline  # noqa: E402


SOURCES = {
    "util.js": "goog.provide('util');\n",
    "shared.js": "goog.provide('shared');\ngoog.require('util');\n",
    "app.js": "goog.provide('app');\ngoog.require('util');\n",
    "a.js": "goog.provide('a');\ngoog.require('app');\ngoog.require('shared');\n",
    "b.js": "goog.provide('b');\ngoog.require('shared');\n",
}


@pytest.fixture
def js_project(tmp_path):
    """A small Closure-style project with an app/a/b chunk entry.

    ``shared.js`` is required by both ``a`` and ``b`` and must land in ``app``.
    """
    src = tmp_path / "src"
    src.mkdir()
    for name, text in SOURCES.items():
        (src / name).write_text(text, encoding="utf-8")

    entries = tmp_path / "entries"
    entries.mkdir()
    (entries / "main.json").write_text(
        json.dumps(
            {
                "id": "main",
                "mode": "SIMPLE",
                "paths": ["../src"],
                "modules": {
                    "app": {"inputs": ["../src/app.js"], "deps": []},
                    "a": {"inputs": ["../src/a.js"], "deps": ["app"]},
                    "b": {"inputs": ["../src/b.js"], "deps": ["app"]},
                },
                "module-output-path": str(tmp_path / "out" / "%s.js"),
            }
        ),
        encoding="utf-8",
    )
    (entries / "page.yaml").write_text(
        "id: page\n"
        "mode: ADVANCED\n"
        "paths: [../src]\n"
        "inputs: [../src/b.js]\n"
        f"output-file: {tmp_path / 'out' / 'page.js'}\n",
        encoding="utf-8",
    )
    (entries / "cyclic.json").write_text(
        json.dumps(
            {
                "id": "cyclic",
                "paths": ["../src"],
                "modules": {
                    "a": {"inputs": ["../src/a.js"], "deps": ["b"]},
                    "b": {"inputs": ["../src/b.js"], "deps": ["a"]},
                },
            }
        ),
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def server_config(js_project):
    """Server config pointing at the js_project entry directory."""
    return ServerConfig(
        entry_config_dir=str(js_project / "entries"),
        inputs_root=str(js_project / "src"),
        compiler_command=["google-closure-compiler"],
    )


class FakeCompiler:
    """Stands in for ClosureCompiler and records every invocation."""

    def __init__(self):
        self.calls = []

    async def compile_chunks(self, options, sorted_ids):
        self.calls.append(options)
        return {
            chunk_id: CompiledArtifact(chunk_id=chunk_id, code=f"// chunk {chunk_id}")
            for chunk_id in sorted_ids
        }

    async def compile_page(self, options, page_id):
        self.calls.append(options)
        return CompiledArtifact(chunk_id=page_id, code=f"// page {page_id}")


@pytest.fixture
def fake_compiler():
    return FakeCompiler()


@pytest.fixture
def pipeline(server_config, fake_compiler):
    """ChunkPipeline over js_project with the fake compiler."""
    return ChunkPipeline(server_config, compiler=fake_compiler)


CLOSURE_DEPS = (
    "// This file was autogenerated.\n"
    "goog.addDependency('dom/dom.js', ['goog.dom'], ['goog.array'], {});\n"
    "goog.addDependency('array/array.js', ['goog.array'], [], {'lang': 'es6', 'module': 'goog'});\n"
)


@pytest.fixture
def closure_library(tmp_path):
    """Minimal Closure Library checkout with base.js and a deps.js."""
    goog = tmp_path / "closure-library" / "closure" / "goog"
    goog.mkdir(parents=True)
    (goog / "base.js").write_text("/** @provideGoog */\nvar goog = {};\n", encoding="utf-8")
    (goog / "deps.js").write_text(CLOSURE_DEPS, encoding="utf-8")
    return tmp_path / "closure-library"


@pytest.fixture
def raw_pipeline(server_config, closure_library, fake_compiler):
    """ChunkPipeline with a Closure Library configured for RAW mode."""
    config = replace(server_config, closure_library_dir=str(closure_library))
    return ChunkPipeline(config, compiler=fake_compiler)
