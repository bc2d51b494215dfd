"""Compiled artifact and compile session entities."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True, slots=True)
class CompiledArtifact:
    """Output of the external compiler for a single chunk.

    Attributes:
        chunk_id: Chunk this code belongs to
        code: Compiled JavaScript
        source_map: Source map JSON text (may be empty)
    """

    chunk_id: str
    code: str
    source_map: str = ""


@dataclass(frozen=True)
class CompileSession:
    """One full-DAG compile, the unit of caching.

    The artifact mapping is read-only once the session exists.
    """

    entry_id: str
    request_id: str
    artifacts: Mapping[str, CompiledArtifact] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "artifacts", MappingProxyType(dict(self.artifacts)))

    def get(self, chunk_id: str) -> CompiledArtifact | None:
        return self.artifacts.get(chunk_id)
