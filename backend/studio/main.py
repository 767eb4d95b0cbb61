"""
FastAPI application entry point.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from studio import __version__
from studio.config import settings
from studio.routes import (
    sessions_router,
    templates_router,
    viewport_router,
    render_router,
)
from studio.services.layers import LayerNotFoundError
from studio.services.render import RenderServiceError
from studio.services.session import SessionNotFoundError, session_registry

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def purge_expired_sessions(interval: float) -> None:
    """Drop expired editing sessions every ``interval`` seconds."""
    while True:
        await asyncio.sleep(interval)
        removed = session_registry.purge_expired()
        if removed:
            logger.info(f"Purged {removed} expired session(s), {len(session_registry)} active")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(f"Starting Layer Studio Editor v{__version__}")
    logger.info(f"Templates directory: {settings.templates_dir.absolute()}")
    logger.info(f"Images directory: {settings.images_dir.absolute()}")
    logger.info(f"Renderer: {settings.render_service_url}")
    settings.templates_dir.mkdir(parents=True, exist_ok=True)

    purger = asyncio.create_task(purge_expired_sessions(settings.session_purge_interval_seconds))

    yield

    logger.info(f"Shutting down, closing {len(session_registry)} session(s)...")
    purger.cancel()
    with suppress(asyncio.CancelledError):
        await purger
    session_registry.clear()


app = FastAPI(
    title="Layer Studio Editor",
    description="API for layer-based image transform editing: sessions, templates, viewport placement and render payloads",
    version=__version__,
    lifespan=lifespan,
    docs_url=f"{settings.api_v1_prefix}/docs",
    redoc_url=f"{settings.api_v1_prefix}/redoc",
    openapi_url=f"{settings.api_v1_prefix}/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": {"code": code, "message": message}},
    )


# Domain errors that escape a route without being translated
@app.exception_handler(SessionNotFoundError)
async def session_not_found_handler(request: Request, exc: SessionNotFoundError):
    return error_response(404, "SESSION_NOT_FOUND", str(exc))


@app.exception_handler(LayerNotFoundError)
async def layer_not_found_handler(request: Request, exc: LayerNotFoundError):
    return error_response(404, "LAYER_NOT_FOUND", str(exc))


@app.exception_handler(RenderServiceError)
async def render_error_handler(request: Request, exc: RenderServiceError):
    logger.error(f"Renderer error on {request.url.path}: {exc.code} {exc.message}")
    return error_response(502, exc.code, exc.message)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            }
        },
    )


for router in (sessions_router, templates_router, viewport_router, render_router):
    app.include_router(router, prefix=settings.api_v1_prefix)


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {
        "ok": True,
        "status": "healthy",
        "version": __version__,
        "sessions": len(session_registry),
    }


@app.get("/", include_in_schema=False)
async def root():
    """Service info and documentation link."""
    return {
        "message": "Layer Studio Editor API",
        "version": __version__,
        "docs": f"{settings.api_v1_prefix}/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "studio.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
