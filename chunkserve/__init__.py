"""Chunk splitting and compile-once/serve-many chunk server."""

__version__ = "0.1.0"

# Domain entities
from chunkserve.domain.chunk import Chunk, PlacementResult
from chunkserve.domain.file_node import FileNode
from chunkserve.domain.artifact import CompiledArtifact, CompileSession

# Errors
from chunkserve.errors import (
    ChunkServeError,
    ConfigError,
    GraphError,
    CycleError,
    AmbiguousAncestorError,
    CompilerError,
    StaleSessionError,
)

# Storage adapters
from chunkserve.storage.compile_cache import CompileCache

# Pipeline components
from chunkserve.pipeline.config import EntryConfig, load_entry_config
from chunkserve.pipeline.dag import ChunkDag
from chunkserve.pipeline.deps import DependencyGraph
from chunkserve.pipeline.split import SplitCache, split
from chunkserve.pipeline.pipeline import ChunkPipeline

__all__ = [
    # Domain
    "Chunk",
    "PlacementResult",
    "FileNode",
    "CompiledArtifact",
    "CompileSession",
    # Errors
    "ChunkServeError",
    "ConfigError",
    "GraphError",
    "CycleError",
    "AmbiguousAncestorError",
    "CompilerError",
    "StaleSessionError",
    # Storage
    "CompileCache",
    # Pipeline
    "EntryConfig",
    "load_entry_config",
    "ChunkDag",
    "DependencyGraph",
    "SplitCache",
    "split",
    "ChunkPipeline",
]
