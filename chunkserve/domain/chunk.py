"""Chunk entity and placement result."""

from dataclasses import dataclass, asdict, field


@dataclass(frozen=True, slots=True)
class Chunk:
    """Immutable chunk declaration.

    Represents a named output bundle and the chunks that must be loaded
    before it.

    Attributes:
        id: Unique chunk identifier (e.g., "app")
        inputs: Entry files whose closure this chunk needs
        deps: Parent chunk ids that must load first
    """

    id: str
    inputs: tuple[str, ...] = ()
    deps: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PlacementResult:
    """Final assignment of files to chunks.

    Attributes:
        sorted_ids: Chunk ids in topological order
        chunks: Mapping chunk id -> ordered, deduplicated file list
    """

    sorted_ids: tuple[str, ...]
    chunks: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def files(self) -> list[str]:
        """All placed files, chunk by chunk in topological order."""
        return [path for chunk_id in self.sorted_ids for path in self.chunks[chunk_id]]

    def chunk_of(self, path: str) -> str | None:
        """Return the chunk a file was placed in, or None."""
        for chunk_id in self.sorted_ids:
            if path in self.chunks[chunk_id]:
                return chunk_id
        return None

    def to_dict(self) -> dict:
        """Convert placement to dictionary for serialization."""
        return asdict(self)
