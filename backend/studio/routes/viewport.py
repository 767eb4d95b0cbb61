"""
Viewport geometry and zoom endpoints.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status

from studio.models.responses import ErrorResponse, ScaleReport, SessionResponse, ZoomRequest
from studio.models.viewport import (
    FIT,
    DisplayPosition,
    DisplayPositionRequest,
    LayerImageSizeRequest,
    LayerPlacement,
    PlacementRequest,
    Size,
    ViewportBounds,
    ViewportInput,
    ZoomValue,
)
from studio.routes.sessions import build_session_response, get_session_or_404
from studio.services.viewport import (
    calculate_layer_display_position,
    calculate_layer_image_dimensions,
    viewport_service,
)
from studio.services.zoom import get_effective_zoom_levels

logger = logging.getLogger(__name__)

router = APIRouter(tags=["viewport"])


@router.post("/viewport/bounds", response_model=ViewportBounds)
async def viewport_bounds(viewport: ViewportInput) -> ViewportBounds:
    """Visible part of the canvas, in output pixels."""
    return viewport_service.calculate_viewport_bounds(viewport)


@router.post("/viewport/placement", response_model=LayerPlacement)
async def layer_placement(request: PlacementRequest) -> LayerPlacement:
    """Where a new layer of the given size would be placed in the current view."""
    return viewport_service.calculate_layer_position_for_current_view(
        zoom=request.zoom,
        layer_dimensions=request.layer_dimensions,
        output_dimensions=request.output_dimensions,
        container=request.container,
        preview_dimensions=request.preview_dimensions,
        scale_factor=request.scale_factor,
        positioning=request.positioning,
    )


@router.post("/viewport/display-position", response_model=DisplayPosition)
async def display_position(request: DisplayPositionRequest) -> DisplayPosition:
    """Layer offset as percentages of the base canvas."""
    return calculate_layer_display_position(request.x, request.y, request.layer_size, request.base_size)


@router.post("/viewport/layer-image-size", response_model=Size)
async def layer_image_size(request: LayerImageSizeRequest) -> Size:
    """Layer image size recovered from its size on the canvas."""
    return calculate_layer_image_dimensions(
        request.display_size, request.padding, request.rotation, request.fill
    )


@router.get("/zoom/levels", response_model=List[ZoomValue])
async def zoom_levels(
    fit_scale: float = Query(gt=0, description="Scale at which the output fills the viewer"),
) -> List[ZoomValue]:
    """Selectable zoom levels for a given fit scale."""
    return get_effective_zoom_levels(fit_scale)


# ============================================================
# Session Zoom
# ============================================================

@router.post(
    "/sessions/{session_id}/zoom",
    response_model=SessionResponse,
    responses={422: {"model": ErrorResponse, "description": "Invalid zoom"}},
)
async def change_zoom(session_id: str, request: ZoomRequest) -> SessionResponse:
    """Zoom in/out one level, or set an explicit zoom."""
    session = get_session_or_404(session_id)
    selector = session.zoom

    if request.action == "in":
        selector.zoom_in()
    elif request.action == "out":
        selector.zoom_out()
    else:
        zoom: Optional[ZoomValue] = request.zoom if request.zoom is not None else FIT
        try:
            selector.set_zoom(zoom)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={"code": "INVALID_ZOOM", "message": str(e)},
            )
    return build_session_response(session)


@router.post("/sessions/{session_id}/zoom/scale", response_model=SessionResponse)
async def report_scale(session_id: str, report: ScaleReport) -> SessionResponse:
    """Viewer reports its live preview-to-output scale."""
    session = get_session_or_404(session_id)
    session.report_scale(report.live_scale)
    return build_session_response(session)
