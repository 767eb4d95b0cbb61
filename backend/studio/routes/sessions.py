"""
Editing session endpoints: state updates, history, context navigation and
layers.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_snake

from studio.models.responses import (
    AddLayerRequest,
    AddLayerResponse,
    BreadcrumbResponse,
    ContextSwitchRequest,
    CreateSessionRequest,
    ErrorResponse,
    HistoryStatus,
    LayerUpdateRequest,
    MoveLayerRequest,
    SessionResponse,
    StateUpdateRequest,
    UrlStateRequest,
    UrlStateResponse,
    ZoomStatus,
)
from studio.models.state import Dimensions, EditorState, Layer
from studio.models.viewport import Size
from studio.services import layers
from studio.services.metadata import metadata_service
from studio.services.session import EditorSession, SessionNotFoundError, session_registry
from studio.services.url_state import state_from_url
from studio.services.viewport import viewport_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def get_session_or_404(session_id: str) -> EditorSession:
    """Look up a live session or raise 404."""
    try:
        return session_registry.get(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "SESSION_NOT_FOUND", "message": str(e)},
        )


def build_session_response(session: EditorSession) -> SessionResponse:
    """Snapshot a session for the API."""
    now = datetime.now(timezone.utc)
    state = session.state
    zoom = session.zoom
    return SessionResponse(
        session_id=session.session_id,
        image_path=session.image_path,
        original_dimensions=session.original_dimensions,
        created_at=session.created_at,
        expires_at=session.expires_at,
        ttl_seconds=max(0, int((session.expires_at - now).total_seconds())),
        state=state,
        context_path=list(session.context_path),
        breadcrumbs=[
            BreadcrumbResponse(id=crumb.id, name=crumb.name)
            for crumb in session.navigator.breadcrumbs(state)
        ],
        history=HistoryStatus(
            can_undo=session.history.can_undo,
            can_redo=session.history.can_redo,
            size=session.history.size,
        ),
        zoom=ZoomStatus(
            zoom=zoom.zoom,
            levels=zoom.effective_levels,
            fit_scale=zoom.fit_scale,
            can_zoom_in=zoom.can_zoom_in,
            can_zoom_out=zoom.can_zoom_out,
        ),
        location_url=session.location_url,
        preview_url=session.preview_url,
        preview_error=session.preview_error,
    )


def merge_changes(model: BaseModel, changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize a partial update against ``model``.

    Keys may be camelCase or snake_case. Nested objects are merged one
    level deep, so ``{"effects": {"brightness": 20}}`` keeps the other
    effects.

    Raises:
        HTTPException: 422 for unknown fields
    """
    fields = type(model).model_fields
    merged: Dict[str, Any] = {}
    for key, value in changes.items():
        name = to_snake(key)
        if name not in fields or fields[name].exclude:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={"code": "UNKNOWN_FIELD", "message": f"Unknown field '{key}'"},
            )
        current = getattr(model, name)
        if isinstance(value, dict) and isinstance(current, BaseModel):
            value = {**current.model_dump(), **{to_snake(k): v for k, v in value.items()}}
        merged[name] = value
    return merged


def apply_update(session: EditorSession, update, commit: bool = True) -> None:
    """Dispatch an update, translating domain errors into HTTP errors."""
    try:
        session.dispatch(update, commit=commit)
    except layers.LayerNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "LAYER_NOT_FOUND", "message": str(e)},
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "INVALID_UPDATE", "message": e.errors()[0]["msg"]},
        )


# ============================================================
# Sessions
# ============================================================

@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_session(request: CreateSessionRequest) -> SessionResponse:
    """
    Open an image for editing.

    The initial state is, in order of preference: the request's state, the
    state carried by ``location_url``, or a fresh state sized to the image.
    """
    original = request.original_dimensions or metadata_service.get_dimensions(request.image_path)

    initial = request.state
    if initial is None and request.location_url:
        initial = state_from_url(request.location_url)

    session = session_registry.create(
        image_path=request.image_path,
        original_dimensions=original,
        initial_state=initial,
        location_url=request.location_url,
    )
    return build_session_response(session)


@router.get(
    "/{session_id}",
    response_model=SessionResponse,
    responses={404: {"model": ErrorResponse, "description": "Session not found"}},
)
async def get_session(session_id: str) -> SessionResponse:
    """Get the current state and editor status of a session."""
    return build_session_response(get_session_or_404(session_id))


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str) -> None:
    """Discard a session and everything pending for it."""
    get_session_or_404(session_id)
    session_registry.delete(session_id)


@router.patch(
    "/{session_id}/state",
    response_model=SessionResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
        422: {"model": ErrorResponse, "description": "Invalid update"},
    },
)
async def update_state(session_id: str, request: StateUpdateRequest) -> SessionResponse:
    """Apply field changes to the composition at the current context."""
    session = get_session_or_404(session_id)
    path = session.context_path
    changes = merge_changes(session.context_state, request.changes)
    apply_update(session, lambda state: layers.update_context_state(state, path, **changes), request.commit)
    return build_session_response(session)


@router.put("/{session_id}/state", response_model=SessionResponse)
async def replace_state(session_id: str, state: EditorState) -> SessionResponse:
    """Replace the whole state (committed)."""
    session = get_session_or_404(session_id)
    apply_update(session, state)
    return build_session_response(session)


@router.post("/{session_id}/commit", response_model=SessionResponse)
async def commit_draft(session_id: str) -> SessionResponse:
    """Record the transient (uncommitted) state in history."""
    session = get_session_or_404(session_id)
    session.commit_draft()
    return build_session_response(session)


@router.post("/{session_id}/undo", response_model=SessionResponse)
async def undo(session_id: str) -> SessionResponse:
    session = get_session_or_404(session_id)
    session.undo()
    return build_session_response(session)


@router.post("/{session_id}/redo", response_model=SessionResponse)
async def redo(session_id: str) -> SessionResponse:
    session = get_session_or_404(session_id)
    session.redo()
    return build_session_response(session)


@router.post("/{session_id}/context", response_model=SessionResponse)
async def switch_context(session_id: str, request: ContextSwitchRequest) -> SessionResponse:
    """
    Enter a layer's sub-composition, or go up one level.

    Unknown layer ids are ignored.
    """
    session = get_session_or_404(session_id)
    session.switch_context(request.layer_id)
    return build_session_response(session)


# ============================================================
# URL State
# ============================================================

@router.get("/{session_id}/url", response_model=UrlStateResponse)
async def get_url_state(session_id: str) -> UrlStateResponse:
    """Encoded state and the page URL carrying it."""
    session = get_session_or_404(session_id)
    session.sync_url()
    return UrlStateResponse(encoded=session.encoded_state, location_url=session.location_url)


@router.put(
    "/{session_id}/url",
    response_model=SessionResponse,
    responses={400: {"model": ErrorResponse, "description": "URL carries no valid state"}},
)
async def load_url_state(session_id: str, request: UrlStateRequest) -> SessionResponse:
    """Restore the state carried by a shared link."""
    session = get_session_or_404(session_id)
    state = state_from_url(request.url)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_STATE", "message": "URL does not carry a valid editor state"},
        )
    session.location_url = request.url
    apply_update(session, state)
    return build_session_response(session)


# ============================================================
# Layers
# ============================================================

def _output_size(session: EditorSession) -> Optional[Size]:
    """Output canvas size of the composition being edited."""
    dimensions = session.context_state.dimensions
    if dimensions.width and dimensions.height:
        return Size(width=dimensions.width, height=dimensions.height)

    path = session.context_path
    if not path:
        original = session.original_dimensions
    else:
        layer = layers.find_layer(session.state, path[:-1], path[-1])
        original = layer.original_dimensions if layer is not None else None

    if original is None:
        return None
    return Size(width=original.width, height=original.height)


def _new_layer(session: EditorSession, request: AddLayerRequest) -> Layer:
    x = request.x if request.x is not None else 0
    y = request.y if request.y is not None else 0
    transforms = EditorState()

    output = _output_size(session)
    original = request.original_dimensions
    if (request.x is None or request.y is None) and original is not None and output is not None:
        placement = viewport_service.calculate_layer_position_for_current_view(
            zoom=session.zoom.zoom,
            layer_dimensions=Size(width=original.width, height=original.height),
            output_dimensions=output,
            container=request.container,
            preview_dimensions=request.preview_dimensions,
        )
        x = placement.x if request.x is None else request.x
        y = placement.y if request.y is None else request.y
        transforms = EditorState(dimensions=Dimensions(width=placement.width, height=placement.height))

    return Layer(
        id="new",
        name=request.name or request.image_path.rsplit("/", 1)[-1],
        image_path=request.image_path,
        x=x,
        y=y,
        alpha=request.alpha,
        blend_mode=request.blend_mode,
        original_dimensions=original,
        transforms=transforms,
    )


@router.post(
    "/{session_id}/layers",
    response_model=AddLayerResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_layer(session_id: str, request: AddLayerRequest) -> AddLayerResponse:
    """Add a layer on top of the current composition."""
    session = get_session_or_404(session_id)
    path = session.context_path
    layer = _new_layer(session, request)

    assigned = []

    def _add(state: EditorState) -> EditorState:
        new_state, layer_id = layers.add_layer(state, path, layer)
        assigned.append(layer_id)
        return new_state

    apply_update(session, _add)
    logger.info(f"Session {session_id}: added layer {assigned[0]} ({request.image_path})")
    return AddLayerResponse(layer_id=assigned[0], session=build_session_response(session))


@router.patch(
    "/{session_id}/layers/{layer_id}",
    response_model=SessionResponse,
    responses={404: {"model": ErrorResponse, "description": "Layer not found"}},
)
async def update_layer(session_id: str, layer_id: str, request: LayerUpdateRequest) -> SessionResponse:
    """Change fields of a layer at the current context."""
    session = get_session_or_404(session_id)
    path = session.context_path
    layer = layers.find_layer(session.state, path, layer_id)
    if layer is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "LAYER_NOT_FOUND", "message": f"Layer '{layer_id}' not found"},
        )
    changes = merge_changes(layer, request.changes)
    apply_update(session, lambda state: layers.update_layer(state, path, layer_id, **changes), request.commit)
    return build_session_response(session)


@router.delete("/{session_id}/layers/{layer_id}", response_model=SessionResponse)
async def remove_layer(session_id: str, layer_id: str) -> SessionResponse:
    """Remove a layer (and its sub-composition)."""
    session = get_session_or_404(session_id)
    path = session.context_path
    apply_update(session, lambda state: layers.remove_layer(state, path, layer_id))
    return build_session_response(session)


@router.post("/{session_id}/layers/{layer_id}/move", response_model=SessionResponse)
async def move_layer(session_id: str, layer_id: str, request: MoveLayerRequest) -> SessionResponse:
    """Reorder a layer within its list (index 0 is the bottom)."""
    session = get_session_or_404(session_id)
    path = session.context_path
    apply_update(session, lambda state: layers.move_layer(state, path, layer_id, request.index))
    return build_session_response(session)


@router.post(
    "/{session_id}/layers/{layer_id}/duplicate",
    response_model=AddLayerResponse,
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_layer(session_id: str, layer_id: str) -> AddLayerResponse:
    """Copy a layer directly above the original."""
    session = get_session_or_404(session_id)
    path = session.context_path
    assigned = []

    def _duplicate(state: EditorState) -> EditorState:
        new_state, copy_id = layers.duplicate_layer(state, path, layer_id)
        assigned.append(copy_id)
        return new_state

    apply_update(session, _duplicate)
    return AddLayerResponse(layer_id=assigned[0], session=build_session_response(session))
