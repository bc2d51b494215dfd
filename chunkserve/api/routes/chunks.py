"""Compile endpoint serving chunk and page scripts."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from chunkserve.api.dependencies import get_pipeline
from chunkserve.api.schemas import CompileMode
from chunkserve.pipeline.pipeline import ChunkPipeline, COMPILE_URL_PATH

router = APIRouter(prefix=COMPILE_URL_PATH, tags=["compile"])

JAVASCRIPT = "application/javascript"


@router.get("", response_class=Response)
async def compile_entry(
    request: Request,
    id: str = Query(..., min_length=1, description="Entry config id"),
    mode: Optional[CompileMode] = Query(None, description="Override the entry's mode"),
    chunk: Optional[str] = Query(None, description="Chunk to return"),
    parent_request: Optional[str] = Query(
        None, alias="parentRequest", description="Request id of the root compile"
    ),
    pipeline: ChunkPipeline = Depends(get_pipeline),
) -> Response:
    """Return a compiled script.

    Without ``parentRequest`` the whole entry is compiled and the root chunk
    (or ``chunk``) is returned; with it, the chunk comes from the cached
    session. Errors are mapped to status codes by the app's handlers.
    """
    result = await pipeline.serve(
        entry_id=id,
        chunk=chunk,
        parent_request=parent_request,
        mode=mode.value if mode else None,
        base_url=str(request.base_url),
    )
    headers = {}
    if result.request_id:
        headers["X-Request-Id"] = result.request_id
    return Response(content=result.artifact.code, media_type=JAVASCRIPT, headers=headers)
