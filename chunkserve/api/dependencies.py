"""FastAPI dependencies for dependency injection."""

import os
from functools import lru_cache

from chunkserve.config import ServerConfig, load_server_config
from chunkserve.pipeline.pipeline import ChunkPipeline


@lru_cache
def get_config() -> ServerConfig:
    """Get cached server configuration.

    Reads the file named by ``CHUNKSERVE_CONFIG`` when set, otherwise
    defaults plus ``CHUNKSERVE_*`` environment variables.
    """
    return load_server_config(os.getenv("CHUNKSERVE_CONFIG") or None)


# ========== Pipeline Dependency ==========

_pipeline_instance: ChunkPipeline | None = None


def get_pipeline() -> ChunkPipeline:
    """Get the process-wide ChunkPipeline, which owns the compile cache."""
    global _pipeline_instance

    if _pipeline_instance is None:
        _pipeline_instance = ChunkPipeline(get_config())

    return _pipeline_instance


def set_pipeline(pipeline: ChunkPipeline | None) -> None:
    """Replace the pipeline instance (used by the CLI and tests)."""
    global _pipeline_instance
    _pipeline_instance = pipeline
