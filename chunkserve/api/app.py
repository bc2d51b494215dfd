"""FastAPI application factory."""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from chunkserve.api.dependencies import get_config
from chunkserve.api.routes import chunks, deps, sessions
from chunkserve.api.schemas import ErrorResponse
from chunkserve.config import ServerConfig
from chunkserve.errors import (
    CacheError,
    ChunkServeError,
    CompilerError,
    ConfigError,
    GraphError,
    ParseError,
    StaleSessionError,
)
from chunkserve.pipeline.raw import CLOSURE_LIBRARY_URL_PATH, INPUTS_URL_PATH

logger = logging.getLogger(__name__)

# Most specific first; the first matching class wins.
STATUS_CODES: list[tuple[type[ChunkServeError], int]] = [
    (StaleSessionError, 410),
    (CacheError, 409),
    (ConfigError, 400),
    (GraphError, 422),
    (ParseError, 422),
    (CompilerError, 500),
]


def status_code_for(error: ChunkServeError) -> int:
    for error_class, status_code in STATUS_CODES:
        if isinstance(error, error_class):
            return status_code
    return 500


async def handle_chunkserve_error(request: Request, exc: ChunkServeError) -> JSONResponse:
    """Render a chunkserve error as JSON with its mapped status code."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.url.path}: {type(exc).__name__}: {exc}")
    body = ErrorResponse(
        error=type(exc).__name__,
        detail=str(exc),
        exit_code=exc.exit_code if isinstance(exc, CompilerError) else None,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app(config: ServerConfig | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        config: Server configuration (loaded via get_config if not provided)

    Returns:
        Configured FastAPI application
    """
    config = config or get_config()
    app = FastAPI(
        title="chunkserve",
        description="Compile-once/serve-many chunk server for Closure Compiler builds",
        version="0.1.0",
    )

    # CORS middleware; chunk scripts are loaded cross-origin during development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET", "DELETE"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ChunkServeError, handle_chunkserve_error)

    # Include routers
    app.include_router(chunks.router)
    app.include_router(sessions.router)
    app.include_router(deps.router)

    # Uncompiled sources for RAW mode loaders
    app.mount(
        INPUTS_URL_PATH,
        StaticFiles(directory=config.inputs_root, check_dir=False),
        name="inputs",
    )
    if config.closure_library_dir:
        app.mount(
            CLOSURE_LIBRARY_URL_PATH,
            StaticFiles(directory=os.path.join(config.closure_library_dir, "closure"), check_dir=False),
            name="closure",
        )

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app
