"""Chunk splitting and compiling pipeline components."""

from chunkserve.pipeline.config import EntryConfig, PlovrMode, load_entry_config
from chunkserve.pipeline.dag import ChunkDag
from chunkserve.pipeline.deps import DependencyGraph
from chunkserve.pipeline.split import SplitCache, SplitPlan, split
from chunkserve.pipeline.options import CompilerOptions
from chunkserve.pipeline.compile import ClosureCompiler
from chunkserve.pipeline.pipeline import ChunkPipeline, Manifest, ServeResult

__all__ = [
    # Configuration
    "EntryConfig",
    "PlovrMode",
    "load_entry_config",
    # Graphs
    "ChunkDag",
    "DependencyGraph",
    # Splitting
    "SplitCache",
    "SplitPlan",
    "split",
    # Compiling and serving
    "CompilerOptions",
    "ClosureCompiler",
    "ChunkPipeline",
    "Manifest",
    "ServeResult",
]
