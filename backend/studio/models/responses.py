"""
API request/response models.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from studio.models.base import StudioModel
from studio.models.state import BlendMode, EditorState, ImageSize, LayerPosition
from studio.models.viewport import ScrollContainer, Size, ZoomValue


# ============================================================
# Session Models
# ============================================================

class CreateSessionRequest(StudioModel):
    """Request body for POST /api/v1/sessions."""
    image_path: str = Field(min_length=1, description="Storage key of the image to edit")
    original_dimensions: Optional[ImageSize] = Field(
        default=None,
        description="Image size; read from the image file when omitted",
    )
    state: Optional[EditorState] = Field(default=None, description="Initial state (default: fresh)")
    location_url: str = Field(default="", description="Page URL; a ?state= parameter seeds the state")


class BreadcrumbResponse(BaseModel):
    id: str
    name: str


class HistoryStatus(BaseModel):
    can_undo: bool
    can_redo: bool
    size: int


class ZoomStatus(BaseModel):
    zoom: ZoomValue
    levels: List[ZoomValue]
    fit_scale: float
    can_zoom_in: bool
    can_zoom_out: bool


class SessionResponse(BaseModel):
    """Response describing an editing session."""
    session_id: str
    image_path: str
    original_dimensions: Optional[ImageSize] = None
    created_at: datetime
    expires_at: datetime
    ttl_seconds: int

    state: EditorState
    context_path: List[str]
    breadcrumbs: List[BreadcrumbResponse]
    history: HistoryStatus
    zoom: ZoomStatus

    location_url: str = ""
    preview_url: Optional[str] = None
    preview_error: Optional[str] = None


class StateUpdateRequest(BaseModel):
    """
    Field changes applied to the composition at the current context.

    ``commit=False`` shows the change without recording it in history
    (use while a slider is being dragged).
    """
    changes: Dict[str, Any] = Field(default_factory=dict)
    commit: bool = True


class ContextSwitchRequest(StudioModel):
    """Enter a layer (layer_id) or go up one level (null)."""
    layer_id: Optional[str] = None


class UrlStateResponse(BaseModel):
    encoded: str
    location_url: str


class UrlStateRequest(StudioModel):
    """Load the state carried by a URL (``?state=`` or legacy ``#fragment``)."""
    url: str


# ============================================================
# Layer Models
# ============================================================

class AddLayerRequest(StudioModel):
    """
    Request body for adding a layer at the current context.

    When x/y are omitted and the layer size is known, the layer is placed
    inside the part of the canvas currently visible in the viewer.
    """
    image_path: str = Field(min_length=1)
    name: str = ""
    original_dimensions: Optional[ImageSize] = None
    x: Optional[LayerPosition] = None
    y: Optional[LayerPosition] = None
    alpha: int = Field(default=0, ge=0, le=100)
    blend_mode: BlendMode = BlendMode.NORMAL
    container: Optional[ScrollContainer] = None
    preview_dimensions: Optional[Size] = None


class AddLayerResponse(BaseModel):
    layer_id: str
    session: SessionResponse


class LayerUpdateRequest(BaseModel):
    changes: Dict[str, Any] = Field(default_factory=dict)
    commit: bool = True


class MoveLayerRequest(BaseModel):
    index: int


# ============================================================
# Zoom / Render Models
# ============================================================

class ZoomRequest(StudioModel):
    """Zoom action: 'in', 'out' or 'set' (with zoom)."""
    action: str = Field(pattern="^(in|out|set)$")
    zoom: Optional[ZoomValue] = None


class ScaleReport(StudioModel):
    live_scale: float = Field(gt=0)


class RenderUrlResponse(BaseModel):
    url: str
    path: str


# ============================================================
# Error Models
# ============================================================

class ErrorDetail(BaseModel):
    """Detailed error information."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: ErrorDetail
