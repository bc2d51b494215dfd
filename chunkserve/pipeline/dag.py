"""Chunk DAG: topological ordering and lowest-common-ancestor queries."""

from __future__ import annotations

import heapq
from typing import Iterable

from chunkserve.domain.chunk import Chunk
from chunkserve.errors import AmbiguousAncestorError, ConfigError, CycleError, GraphError


class ChunkDag:
    """Directed acyclic graph of chunks.

    Edges run parent -> child for every id listed in a chunk's ``deps``.
    Nodes are plain string ids with explicit adjacency in both directions,
    so ancestor sets are computed as explicit sets and intersected.
    """

    def __init__(self, chunks: Iterable[Chunk]):
        """Build the DAG.

        Args:
            chunks: Chunk declarations in declaration order

        Raises:
            ConfigError: On duplicate ids or a dep naming an unknown chunk
            CycleError: If the declared deps are cyclic
        """
        self._chunks: dict[str, Chunk] = {}
        for chunk in chunks:
            if chunk.id in self._chunks:
                raise ConfigError(f"Duplicate chunk id: {chunk.id}")
            self._chunks[chunk.id] = chunk

        self._order = {chunk_id: i for i, chunk_id in enumerate(self._chunks)}
        self._parents: dict[str, list[str]] = {chunk_id: [] for chunk_id in self._chunks}
        self._children: dict[str, list[str]] = {chunk_id: [] for chunk_id in self._chunks}
        for chunk in self._chunks.values():
            for parent_id in chunk.deps:
                if parent_id not in self._chunks:
                    raise ConfigError(f"Chunk '{chunk.id}' depends on unknown chunk '{parent_id}'")
                if parent_id in self._parents[chunk.id]:
                    continue
                self._parents[chunk.id].append(parent_id)
                self._children[parent_id].append(chunk.id)

        self._sorted_ids = self._sort()
        self._position = {chunk_id: i for i, chunk_id in enumerate(self._sorted_ids)}
        self._ancestor_cache: dict[str, frozenset[str]] = {}

    @classmethod
    def build(cls, chunks: Iterable[Chunk] | dict[str, Chunk]) -> "ChunkDag":
        if isinstance(chunks, dict):
            chunks = chunks.values()
        return cls(chunks)

    def _sort(self) -> list[str]:
        # Kahn's algorithm; the heap keeps ready chunks in declaration order.
        indegree = {chunk_id: len(parents) for chunk_id, parents in self._parents.items()}
        ready = [(self._order[c], c) for c, degree in indegree.items() if degree == 0]
        heapq.heapify(ready)
        result: list[str] = []
        while ready:
            _, chunk_id = heapq.heappop(ready)
            result.append(chunk_id)
            for child in self._children[chunk_id]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    heapq.heappush(ready, (self._order[child], child))
        if len(result) != len(self._chunks):
            remaining = [c for c in self._chunks if c not in set(result)]
            raise CycleError(remaining)
        return result

    def __contains__(self, chunk_id: str) -> bool:
        return chunk_id in self._chunks

    def __len__(self) -> int:
        return len(self._chunks)

    @property
    def root_id(self) -> str:
        return self._sorted_ids[0]

    def get_chunk(self, chunk_id: str) -> Chunk:
        self._check(chunk_id)
        return self._chunks[chunk_id]

    def get_sorted_ids(self) -> list[str]:
        """Chunk ids with every chunk after all of its ancestors."""
        return list(self._sorted_ids)

    def parents(self, chunk_id: str) -> list[str]:
        self._check(chunk_id)
        return list(self._parents[chunk_id])

    def children(self, chunk_id: str) -> list[str]:
        self._check(chunk_id)
        return list(self._children[chunk_id])

    def ancestors(self, chunk_id: str, inclusive: bool = True) -> frozenset[str]:
        """Return every chunk reachable by following deps from ``chunk_id``."""
        self._check(chunk_id)
        if chunk_id not in self._ancestor_cache:
            seen = {chunk_id}
            stack = [chunk_id]
            while stack:
                for parent in self._parents[stack.pop()]:
                    if parent not in seen:
                        seen.add(parent)
                        stack.append(parent)
            self._ancestor_cache[chunk_id] = frozenset(seen)
        closure = self._ancestor_cache[chunk_id]
        return closure if inclusive else closure - {chunk_id}

    def is_ancestor(self, ancestor_id: str, chunk_id: str) -> bool:
        """True if ``ancestor_id`` is ``chunk_id`` or one of its ancestors."""
        return ancestor_id in self.ancestors(chunk_id)

    def get_lca_node(self, *ids: str, strict: bool = False) -> Chunk:
        """Return the deepest chunk that is an ancestor-or-self of every id.

        When the common ancestors have several incomparable deepest members,
        the one latest in :meth:`get_sorted_ids` order is returned, or
        :class:`AmbiguousAncestorError` is raised if ``strict`` is set.

        Raises:
            GraphError: If ``ids`` is empty, names an unknown chunk, or the
                chunks share no common ancestor
        """
        if not ids:
            raise GraphError("get_lca_node() requires at least one chunk id")
        if len(ids) == 1:
            return self.get_chunk(ids[0])

        common = set(self.ancestors(ids[0]))
        for chunk_id in ids[1:]:
            common &= self.ancestors(chunk_id)
        if not common:
            raise GraphError(f"Chunks {list(ids)} have no common ancestor")

        # A member is maximal if none of its strict descendants is also common.
        maximal = [
            c for c in common
            if not any(c != other and self.is_ancestor(c, other) for other in common)
        ]
        maximal.sort(key=self._position.__getitem__)
        if len(maximal) > 1 and strict:
            raise AmbiguousAncestorError(list(ids), maximal)
        return self._chunks[maximal[-1]]

    def _check(self, chunk_id: str) -> None:
        if chunk_id not in self._chunks:
            raise GraphError(f"Unknown chunk id: {chunk_id}")
