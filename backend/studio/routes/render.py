"""
Render endpoints: the renderer payload for a session's state, and URL
generation through the remote renderer.
"""

import logging

from fastapi import APIRouter, HTTPException, Query, status

from studio.config import settings
from studio.models.responses import ErrorResponse, RenderUrlResponse
from studio.models.state import ImageSize
from studio.routes.sessions import get_session_or_404
from studio.services.render import RenderParams, RenderServiceError, build_render_params, render_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["render"])


def _session_params(session_id: str, preview: bool):
    session = get_session_or_404(session_id)
    params = build_render_params(
        session.state,
        original=session.original_dimensions,
        for_preview=preview,
        preview_max=ImageSize(width=settings.preview_max_width, height=settings.preview_max_height),
    )
    return session, params


@router.get("/{session_id}/render/params", response_model=RenderParams)
async def get_render_params(
    session_id: str,
    preview: bool = Query(default=False, description="Build preview params (WebP, size-capped)"),
) -> RenderParams:
    """Renderer payload for the session's current state."""
    _, params = _session_params(session_id, preview)
    return params


@router.post(
    "/{session_id}/render",
    response_model=RenderUrlResponse,
    responses={502: {"model": ErrorResponse, "description": "Renderer failed"}},
)
async def render(
    session_id: str,
    preview: bool = Query(default=False),
) -> RenderUrlResponse:
    """Ask the remote renderer for a URL serving the session's current state."""
    session, params = _session_params(session_id, preview)
    try:
        url = await render_client.generate_url(session.image_path, params)
    except RenderServiceError as e:
        logger.error(f"Render failed for session {session_id}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"code": e.code, "message": e.message},
        )
    return RenderUrlResponse(url=url, path=params.to_path(session.image_path))
