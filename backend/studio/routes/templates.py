"""
Template endpoints: save the session state as a template, list, inspect and
apply stored templates.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from studio.models.responses import ErrorResponse, SessionResponse
from studio.models.state import ImageSize
from studio.models.template import (
    ApplyTemplateRequest,
    SaveTemplateRequest,
    TemplateListResponse,
    TemplateLoadResult,
    TemplateSaveResponse,
)
from studio.routes.sessions import apply_update, build_session_response, get_session_or_404
from studio.services.session import EditorSession
from studio.services.storage import TemplateStorageError, template_store
from studio.services.templates import apply_template, template_codec

logger = logging.getLogger(__name__)

router = APIRouter(tags=["templates"])

_STORAGE_ERROR_STATUS = {
    "INVALID_NAME": status.HTTP_400_BAD_REQUEST,
    "INVALID_PATH": status.HTTP_400_BAD_REQUEST,
    "TEMPLATE_EXISTS": status.HTTP_409_CONFLICT,
    "TEMPLATE_NOT_FOUND": status.HTTP_404_NOT_FOUND,
}


class ApplyTemplateResponse(BaseModel):
    result: TemplateLoadResult
    session: SessionResponse


def _storage_http_error(e: TemplateStorageError) -> HTTPException:
    detail = {"code": e.code, "message": e.message}
    if e.template_path:
        detail["details"] = {"template_path": e.template_path}
    return HTTPException(
        status_code=_STORAGE_ERROR_STATUS.get(e.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=detail,
    )


def _current_dimensions(session: EditorSession):
    dimensions = session.state.dimensions
    if dimensions.width and dimensions.height:
        return ImageSize(width=dimensions.width, height=dimensions.height)
    return session.original_dimensions


@router.post(
    "/sessions/{session_id}/templates",
    response_model=TemplateSaveResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid template name or path"},
        404: {"model": ErrorResponse, "description": "Session not found"},
        409: {"model": ErrorResponse, "description": "Template already exists"},
    },
)
async def save_template(session_id: str, request: SaveTemplateRequest) -> TemplateSaveResponse:
    """Save the session's current state as a template file."""
    session = get_session_or_404(session_id)

    try:
        template = template_codec.save(
            session.state,
            name=request.name,
            description=request.description,
            dimension_mode=request.dimension_mode,
            current_dimensions=_current_dimensions(session),
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "MISSING_DIMENSIONS", "message": str(e)},
        )

    try:
        template_path = template_store.save_template(template, request.save_path, request.overwrite)
    except TemplateStorageError as e:
        raise _storage_http_error(e)

    return TemplateSaveResponse(success=True, template_path=template_path, template=template)


@router.get("/templates", response_model=TemplateListResponse)
async def list_templates(
    folder: str = Query(default="", description="Folder under the templates root"),
) -> TemplateListResponse:
    """List stored templates."""
    try:
        templates = template_store.list_templates(folder)
    except TemplateStorageError as e:
        raise _storage_http_error(e)
    return TemplateListResponse(templates=templates, total=len(templates))


@router.get(
    "/templates/file",
    response_model=TemplateLoadResult,
    responses={404: {"model": ErrorResponse, "description": "Template not found"}},
)
async def read_template(path: str = Query(description="Storage path of the template")) -> TemplateLoadResult:
    """Load a stored template, reporting any repairs as warnings."""
    try:
        raw = template_store.read_template(path)
    except TemplateStorageError as e:
        raise _storage_http_error(e)
    return template_codec.load(raw)


@router.post("/templates/validate", response_model=TemplateLoadResult)
async def validate_template(document: Dict[str, Any]) -> TemplateLoadResult:
    """Check an uploaded template document without storing it."""
    return template_codec.load(document)


@router.post(
    "/sessions/{session_id}/templates/apply",
    response_model=ApplyTemplateResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Session or template not found"},
        422: {"model": ErrorResponse, "description": "Template could not be read"},
    },
)
async def apply_template_to_session(session_id: str, request: ApplyTemplateRequest) -> ApplyTemplateResponse:
    """
    Apply a template to the session's image.

    Adaptive templates keep the image's dimensions; predefined ones impose
    their own. The result is committed to history, so it can be undone.
    """
    session = get_session_or_404(session_id)

    if request.template_path is not None:
        try:
            raw = template_store.read_template(request.template_path)
        except TemplateStorageError as e:
            raise _storage_http_error(e)
    else:
        raw = request.document

    result = template_codec.load(raw)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "INVALID_TEMPLATE", "message": result.warnings[0].message},
        )

    state = apply_template(result.template, session.original_dimensions)
    apply_update(session, state)
    session.navigator.reset()
    logger.info(f"Session {session_id}: applied template '{result.template.name}'")
    return ApplyTemplateResponse(result=result, session=build_session_response(session))
