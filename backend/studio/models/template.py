"""
Template models.

A template is a named, versioned, reusable bundle of an EditorState plus a
dimension-handling policy. Templates are stored as ``.imagor.json`` files.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from studio.models.base import StudioModel
from studio.models.state import EditorState, ImageSize


TEMPLATE_VERSION = "1.0"
TEMPLATE_FILE_SUFFIX = ".imagor.json"


class DimensionMode(str, Enum):
    """How dimensions are handled when a template is applied."""
    ADAPTIVE = "adaptive"        # Re-adapt to whatever image it is applied to
    PREDEFINED = "predefined"    # Impose the frozen width/height


class TemplateMetadata(StudioModel):
    """Template bookkeeping."""
    created_at: datetime = Field(description="UTC creation timestamp")


class Template(StudioModel):
    """Template file contents."""
    version: str = Field(default=TEMPLATE_VERSION, description="Format version tag")
    name: str = Field(min_length=1)
    description: Optional[str] = None
    dimension_mode: DimensionMode = DimensionMode.ADAPTIVE
    predefined_dimensions: Optional[ImageSize] = Field(
        default=None,
        description="Locked dimensions, present iff dimension_mode is predefined",
    )
    transformations: EditorState = Field(default_factory=EditorState)
    metadata: TemplateMetadata

    @model_validator(mode="after")
    def _check_dimension_mode(self) -> "Template":
        is_predefined = self.dimension_mode == DimensionMode.PREDEFINED
        if is_predefined != (self.predefined_dimensions is not None):
            raise ValueError("predefined_dimensions must be set iff dimension_mode is predefined")
        return self


# ============================================================
# Load Results
# ============================================================

class TemplateWarningType(str, Enum):
    """Kinds of non-fatal problems found while loading a template."""
    MISSING_LAYER = "missing-layer"
    INVALID_FILTER = "invalid-filter"
    VERSION_MISMATCH = "version-mismatch"
    INVALID_JSON = "invalid-json"


class TemplateWarning(StudioModel):
    """Warning encountered when loading a template."""
    type: TemplateWarningType
    message: str
    substitution: Optional[str] = Field(default=None, description="Value used instead, if any")


class TemplateLoadResult(StudioModel):
    """Best-effort result of loading a template."""
    success: bool
    warnings: List[TemplateWarning] = Field(default_factory=list)
    template: Optional[Template] = None
    applied_state: Optional[EditorState] = None


# ============================================================
# API Models
# ============================================================

class SaveTemplateRequest(StudioModel):
    """Request body for saving the session state as a template."""
    name: str = Field(min_length=1)
    description: Optional[str] = None
    dimension_mode: DimensionMode = DimensionMode.ADAPTIVE
    save_path: str = Field(default="", description="Folder under the templates root")
    overwrite: bool = False


class TemplateSaveResponse(BaseModel):
    """Response from saving a template."""
    success: bool
    template_path: str
    template: Template
    message: str = "Template saved successfully"


class TemplateSummary(BaseModel):
    """Listing entry for a stored template."""
    template_path: str
    name: str
    description: Optional[str] = None
    dimension_mode: DimensionMode
    created_at: Optional[datetime] = None


class TemplateListResponse(BaseModel):
    """Response from listing templates."""
    templates: List[TemplateSummary]
    total: int


class ApplyTemplateRequest(StudioModel):
    """Apply a stored template (template_path) or an inline document."""
    template_path: Optional[str] = None
    document: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _check_source(self) -> "ApplyTemplateRequest":
        if (self.template_path is None) == (self.document is None):
            raise ValueError("exactly one of template_path or document is required")
        return self
