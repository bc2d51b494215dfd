"""Exception hierarchy for chunk splitting, compiling and serving.

Errors are grouped by blast radius:

- ``ConfigError``: malformed entry configuration, fatal for the whole request.
- ``GraphError``: chunk or file graph problems, fatal for one entry point.
- ``CompilerError``: the external compiler failed, surfaced verbatim.
- ``CacheError``: compile-session lookups, recoverable by restarting from the
  root chunk.
"""

from __future__ import annotations


class ChunkServeError(Exception):
    """Base class for all chunkserve errors."""


# ========== Configuration ==========


class ConfigError(ChunkServeError):
    """Malformed entry or server configuration."""


class MissingEntryPointError(ConfigError):
    """A chunk declares an input file that the dependency graph does not know."""

    def __init__(self, chunk_id: str, path: str):
        super().__init__(
            f"Chunk '{chunk_id}' declares input '{path}' which is not in the dependency graph"
        )
        self.chunk_id = chunk_id
        self.path = path


# ========== Graph ==========


class GraphError(ChunkServeError):
    """Invalid chunk DAG or file dependency graph."""


class CycleError(GraphError):
    """The declared chunk dependencies contain a cycle."""

    def __init__(self, chunk_ids: list[str]):
        super().__init__(f"Chunk dependencies are cyclic: {', '.join(chunk_ids)}")
        self.chunk_ids = chunk_ids


class AmbiguousAncestorError(GraphError):
    """Several incomparable deepest common ancestors exist."""

    def __init__(self, ids: list[str], candidates: list[str]):
        super().__init__(
            f"No unique lowest common ancestor for {ids}: candidates {candidates}"
        )
        self.ids = ids
        self.candidates = candidates


class UnresolvedRequireError(GraphError):
    """A file requires a symbol that no file provides."""

    def __init__(self, path: str, symbol: str):
        super().__init__(f"'{path}' requires '{symbol}' but nothing provides it")
        self.path = path
        self.symbol = symbol


class OrderingError(GraphError):
    """A chunk lists a file before one of its in-chunk dependencies."""

    def __init__(self, chunk_id: str, path: str, dependency: str):
        super().__init__(
            f"Chunk '{chunk_id}' places '{path}' before its dependency '{dependency}'"
        )
        self.chunk_id = chunk_id
        self.path = path
        self.dependency = dependency


# ========== Collaborators ==========


class ParseError(ChunkServeError):
    """One or more source files could not be scanned for provides/requires."""

    def __init__(self, errors: list[str]):
        super().__init__(f"Fatal parse error in {len(errors)} file(s): " + "; ".join(errors))
        self.errors = errors


class CompilerError(ChunkServeError):
    """The external compiler exited nonzero or reported diagnostics."""

    def __init__(self, exit_code: int, diagnostics: str):
        super().__init__(diagnostics or f"Compiler exited with code {exit_code}")
        self.exit_code = exit_code
        self.diagnostics = diagnostics


# ========== Cache ==========


class CacheError(ChunkServeError):
    """Compile cache misuse or miss."""


class StaleSessionError(CacheError):
    """The referenced compile session is not (or no longer) cached."""

    def __init__(self, entry_id: str, request_id: str):
        super().__init__(
            f"No compile session '{request_id}' for entry '{entry_id}'; "
            "request the root chunk again"
        )
        self.entry_id = entry_id
        self.request_id = request_id
