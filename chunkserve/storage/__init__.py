"""Storage adapters for chunkserve."""

from chunkserve.storage.compile_cache import CompileCache

__all__ = ["CompileCache"]
