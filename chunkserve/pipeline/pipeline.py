"""Compile-once/serve-many orchestration of chunked entry points."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field, replace
from pathlib import Path
from urllib.parse import urlencode, urljoin

from chunkserve.config import ServerConfig
from chunkserve.domain.artifact import CompiledArtifact, CompileSession
from chunkserve.errors import ConfigError, GraphError
from chunkserve.pipeline.compile import ClosureCompiler
from chunkserve.pipeline.config import EntryConfig, PlovrMode, load_entry_config
from chunkserve.pipeline.dag import ChunkDag
from chunkserve.pipeline.deps import DependencyGraph
from chunkserve.pipeline.options import (
    chunk_output_paths,
    convert_module_infos,
    create_options_for_chunks,
    create_options_for_page,
)
from chunkserve.pipeline.raw import render_deps_js, render_raw_chunks, render_raw_page
from chunkserve.pipeline.split import SplitCache, SplitPlan, split
from chunkserve.storage.compile_cache import CompileCache

logger = logging.getLogger(__name__)

COMPILE_URL_PATH = "/compile"


@dataclass(frozen=True)
class Manifest:
    """Chunk loading manifest handed to the browser's module loader."""

    module_info: dict[str, list[str]] = field(default_factory=dict)
    module_uris: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"moduleInfo": self.module_info, "moduleUris": self.module_uris}


@dataclass(frozen=True)
class ServeResult:
    """Reply to one ``/compile`` request."""

    artifact: CompiledArtifact
    request_id: str | None = None
    manifest: Manifest | None = None
    cached: bool = False


class ChunkPipeline:
    """Splits, compiles and serves entry points.

    The first request for an entry compiles the whole chunk DAG once and
    caches every artifact under a fresh request id; later chunk requests
    carrying that id are answered from the cache.
    """

    def __init__(
        self,
        config: ServerConfig,
        compiler: ClosureCompiler | None = None,
        cache: CompileCache | None = None,
        split_cache: SplitCache | None = None,
    ):
        """Initialize pipeline.

        Args:
            config: Server configuration
            compiler: Compiler runner (built from config if not provided)
            cache: Compile session cache (a fresh one if not provided)
            split_cache: Split plan memo (a fresh one if not provided)
        """
        self._config = config
        self._compiler = compiler or ClosureCompiler(
            config.compiler_command, config.max_concurrent_compiles
        )
        self.cache = cache or CompileCache()
        self.split_cache = split_cache or SplitCache()

    def load_entry(self, entry_id: str, mode: str | None = None) -> EntryConfig:
        """Load an entry config; entries without "paths" are scanned under inputs_root."""
        entry = load_entry_config(entry_id, self._config.entry_config_dir, {"mode": mode})
        if not entry.paths:
            entry = replace(entry, paths=(self._config.inputs_root,))
        return entry

    async def plan(self, entry: EntryConfig) -> SplitPlan:
        """Build (or reuse) the chunk DAG and file placement for an entry.

        The DAG is built before any file is scanned, so a cyclic chunk
        declaration fails without touching the filesystem. Scanning and
        splitting run in a worker thread.
        """
        if entry.modules is None:
            raise ConfigError(f'Entry "{entry.id}" has no "modules"')
        identity = entry.identity()
        cached = self.split_cache.get(entry.id, identity)
        if cached is not None:
            return cached

        dag = ChunkDag.build(entry.modules)
        plan = await asyncio.to_thread(self._build_plan, entry, dag)
        self.split_cache.put(entry.id, identity, plan)
        return plan

    def _build_plan(self, entry: EntryConfig, dag: ChunkDag) -> SplitPlan:
        graph = DependencyGraph.from_entry(entry, self._config.closure_library_dir)
        placement = split(dag, graph, strict_lca=self._config.strict_lca)
        return SplitPlan(dag=dag, placement=placement)

    async def serve(
        self,
        entry_id: str,
        chunk: str | None = None,
        parent_request: str | None = None,
        mode: str | None = None,
        base_url: str | None = None,
    ) -> ServeResult:
        """Answer a ``/compile`` request.

        Raises:
            StaleSessionError: If ``parent_request`` is not cached
            ConfigError: For malformed entry configs or missing parameters
            GraphError: For chunk graph problems or an unknown chunk
            CompilerError: If the compiler fails
        """
        if parent_request is not None:
            if not chunk:
                raise ConfigError('"chunk" is required together with "parentRequest"')
            return self.serve_cached(entry_id, chunk, parent_request)

        entry = self.load_entry(entry_id, mode)
        base_url = base_url or self._config.base_url
        if entry.mode == PlovrMode.RAW:
            return ServeResult(artifact=self.serve_raw(entry, base_url))
        if entry.modules is None:
            artifact = await self.compile_page(entry)
            return ServeResult(artifact=artifact)
        return await self.compile_session(entry, chunk, base_url)

    def serve_raw(self, entry: EntryConfig, base_url: str) -> CompiledArtifact:
        """Uncompiled loader; the root chunk script loads every chunk's inputs."""
        self._require_closure_library()
        inputs_root = self._config.inputs_root
        if entry.modules is None:
            code = render_raw_page(entry, inputs_root, base_url)
            return CompiledArtifact(chunk_id=entry.id, code=code)
        dag = ChunkDag.build(entry.modules)
        code = render_raw_chunks(entry, dag, inputs_root, base_url)
        return CompiledArtifact(chunk_id=dag.root_id, code=code)

    async def deps_js(self, entry_id: str, mode: str | None = None) -> str:
        """deps.js text for the entry's own files, used by RAW loaders."""
        self._require_closure_library()
        entry = self.load_entry(entry_id, mode)
        graph = await asyncio.to_thread(
            DependencyGraph.from_entry, entry, self._config.closure_library_dir
        )
        return render_deps_js(
            graph.nodes(), self._config.inputs_root, self._config.closure_library_dir
        )

    def _require_closure_library(self) -> None:
        if not self._config.closure_library_dir:
            raise ConfigError("RAW mode requires closure_library_dir in the server config")

    def serve_cached(self, entry_id: str, chunk: str, parent_request: str) -> ServeResult:
        artifact = self.cache.get_artifact(entry_id, parent_request, chunk)
        if artifact is None:
            raise GraphError(f"Unexpected requested chunk: {chunk}")
        return ServeResult(artifact=artifact, request_id=parent_request, cached=True)

    async def compile_session(
        self,
        entry: EntryConfig,
        chunk: str | None,
        base_url: str,
    ) -> ServeResult:
        """Compile every chunk once and cache the session under a new id."""
        plan = await self.plan(entry)
        request_id = uuid.uuid4().hex
        compile_url = urljoin(base_url, COMPILE_URL_PATH)

        def create_module_uris(chunk_id: str) -> list[str]:
            params = {"id": entry.id, "chunk": chunk_id, "parentRequest": request_id}
            if "mode" in entry.raw:
                params["mode"] = entry.mode.value
            return [f"{compile_url}?{urlencode(params)}"]

        requested = chunk or plan.dag.root_id
        if requested not in plan.dag:
            raise GraphError(f"Unexpected requested chunk: {requested}")

        options = create_options_for_chunks(entry, plan.placement, create_module_uris)
        artifacts = await self._compiler.compile_chunks(options, plan.placement.sorted_ids)
        self.cache.put(CompileSession(entry_id=entry.id, request_id=request_id, artifacts=artifacts))
        logger.info(f"New session {request_id} for entry '{entry.id}'")

        module_info, module_uris = convert_module_infos(entry, create_module_uris)
        return ServeResult(
            artifact=artifacts[requested],
            request_id=request_id,
            manifest=Manifest(module_info=module_info, module_uris=module_uris),
        )

    async def compile_page(self, entry: EntryConfig) -> CompiledArtifact:
        """Compile a single-page entry; the result is not cached."""
        return await self._compiler.compile_page(create_options_for_page(entry), entry.id)

    async def build(self, entry: EntryConfig) -> dict[str, CompiledArtifact]:
        """Compile an entry for production and write the output files.

        Returns:
            Mapping of written file path -> artifact
        """
        if entry.modules is None:
            if not entry.output_file:
                raise ConfigError('entryConfig["output-file"] must be specified')
            outputs = {entry.output_file: await self.compile_page(entry)}
        else:
            plan = await self.plan(entry)
            paths = chunk_output_paths(entry, plan.placement.sorted_ids)

            def create_module_uris(chunk_id: str) -> list[str]:
                if entry.module_production_uri:
                    return [entry.module_production_uri.replace("%s", chunk_id)]
                return [paths[chunk_id]]

            options = create_options_for_chunks(entry, plan.placement, create_module_uris)
            artifacts = await self._compiler.compile_chunks(options, plan.placement.sorted_ids)
            outputs = {paths[chunk_id]: artifacts[chunk_id] for chunk_id in plan.placement.sorted_ids}

        for path, artifact in outputs.items():
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            Path(path).write_text(artifact.code, encoding="utf-8")
            logger.info(f"Wrote {path}")
        return outputs
