"""Domain entities for chunk splitting and serving.

This module contains immutable data structures that represent core concepts
in the chunk splitting and compile-serving pipeline.
"""

from chunkserve.domain.chunk import Chunk, PlacementResult
from chunkserve.domain.file_node import FileNode
from chunkserve.domain.artifact import CompiledArtifact, CompileSession

__all__ = ["Chunk", "PlacementResult", "FileNode", "CompiledArtifact", "CompileSession"]
