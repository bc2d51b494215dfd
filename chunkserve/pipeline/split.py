"""Splitting engine: assign every required file to exactly one chunk."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from chunkserve.domain.chunk import PlacementResult
from chunkserve.errors import MissingEntryPointError, OrderingError
from chunkserve.pipeline.dag import ChunkDag
from chunkserve.pipeline.deps import DependencyGraph

logger = logging.getLogger(__name__)


def find_transitive_deps(dag: ChunkDag, graph: DependencyGraph) -> dict[str, list[str]]:
    """Closure of each chunk's inputs, keyed by chunk id in sorted order.

    Raises:
        MissingEntryPointError: If a chunk input is not in the graph
    """
    transitive: dict[str, list[str]] = {}
    for chunk_id in dag.get_sorted_ids():
        chunk = dag.get_chunk(chunk_id)
        for path in chunk.inputs:
            if path not in graph:
                raise MissingEntryPointError(chunk_id, path)
        transitive[chunk_id] = [node.path for node in graph.closure(chunk.inputs)]
    return transitive


def split_deps_into_chunks(
    dag: ChunkDag,
    transitive: dict[str, list[str]],
    strict_lca: bool = False,
) -> dict[str, list[str]]:
    """Place each path in the LCA of the chunks whose closure contains it.

    Chunks are visited in topological order and each closure in its own
    order; the first insertion of a path wins.
    """
    requiring: dict[str, list[str]] = {}
    for chunk_id, paths in transitive.items():
        for path in paths:
            requiring.setdefault(path, []).append(chunk_id)

    # dicts double as insertion-ordered sets
    placed: dict[str, dict[str, None]] = {chunk_id: {} for chunk_id in dag.get_sorted_ids()}
    for chunk_id in dag.get_sorted_ids():
        for path in transitive[chunk_id]:
            target = dag.get_lca_node(*requiring[path], strict=strict_lca)
            placed[target.id].setdefault(path, None)
    return {chunk_id: list(paths) for chunk_id, paths in placed.items()}


def assert_dependency_order(chunks: dict[str, list[str]], graph: DependencyGraph) -> None:
    """Check that in-chunk dependencies precede their dependents.

    Raises:
        OrderingError: On the first violation found
    """
    for chunk_id, paths in chunks.items():
        position = {path: i for i, path in enumerate(paths)}
        for i, path in enumerate(paths):
            for dep in graph.direct_dependencies(path):
                if position.get(dep, -1) > i:
                    raise OrderingError(chunk_id, path, dep)


def split(dag: ChunkDag, graph: DependencyGraph, strict_lca: bool = False) -> PlacementResult:
    """Run the full splitting engine.

    Pure function of its inputs; memoize with :class:`SplitCache`.
    """
    transitive = find_transitive_deps(dag, graph)
    chunks = split_deps_into_chunks(dag, transitive, strict_lca=strict_lca)
    assert_dependency_order(chunks, graph)
    result = PlacementResult(
        sorted_ids=tuple(dag.get_sorted_ids()),
        chunks={chunk_id: tuple(paths) for chunk_id, paths in chunks.items()},
    )
    logger.info(
        f"Split {sum(len(p) for p in chunks.values())} files into {len(chunks)} chunks"
    )
    return result


@dataclass(frozen=True)
class SplitPlan:
    """A built chunk DAG together with its placement."""

    dag: ChunkDag
    placement: PlacementResult


class SplitCache:
    """Memo of split plans keyed by entry id and configuration identity.

    Entries never expire on source changes; call :meth:`evict` or
    :meth:`clear` after files change.
    """

    def __init__(self):
        self._plans: dict[str, tuple[str, SplitPlan]] = {}

    def get(self, entry_id: str, identity: str) -> SplitPlan | None:
        cached = self._plans.get(entry_id)
        if cached is None or cached[0] != identity:
            return None
        return cached[1]

    def put(self, entry_id: str, identity: str, plan: SplitPlan) -> None:
        self._plans[entry_id] = (identity, plan)

    def evict(self, entry_id: str) -> bool:
        return self._plans.pop(entry_id, None) is not None

    def clear(self) -> None:
        self._plans.clear()

    def __len__(self) -> int:
        return len(self._plans)
