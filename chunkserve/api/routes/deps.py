"""deps.js endpoint for RAW mode loaders."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from chunkserve.api.dependencies import get_pipeline
from chunkserve.api.schemas import CompileMode
from chunkserve.pipeline.pipeline import ChunkPipeline
from chunkserve.pipeline.raw import DEPS_URL_PATH

router = APIRouter(tags=["raw"])


@router.get(DEPS_URL_PATH, response_class=Response)
async def deps_js(
    id: str = Query(..., min_length=1, description="Entry config id"),
    mode: Optional[CompileMode] = Query(None, description="Override the entry's mode"),
    pipeline: ChunkPipeline = Depends(get_pipeline),
) -> Response:
    """Return goog.addDependency() records for the entry's own files."""
    content = await pipeline.deps_js(id, mode.value if mode else None)
    return Response(content=content, media_type="application/javascript")
