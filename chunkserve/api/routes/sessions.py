"""Scoped eviction of cached compile sessions."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from chunkserve.api.dependencies import get_pipeline
from chunkserve.api.schemas import EvictResponse
from chunkserve.pipeline.pipeline import ChunkPipeline

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.delete("/{entry_id}", response_model=EvictResponse)
async def evict_sessions(
    entry_id: str,
    request_id: Optional[str] = Query(None, alias="requestId"),
    pipeline: ChunkPipeline = Depends(get_pipeline),
) -> EvictResponse:
    """Drop one compile session, or all sessions and the split plan of an entry."""
    evicted = pipeline.cache.evict(entry_id, request_id)
    if request_id is None:
        pipeline.split_cache.evict(entry_id)
    return EvictResponse(entry_id=entry_id, evicted=evicted)
