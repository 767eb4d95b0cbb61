"""
Pydantic models for editor state and request/response schemas.
"""

from studio.models.state import (
    BlendMode,
    PositionKeyword,
    ResizeMode,
    OutputFormat,
    ImageSize,
    CropBox,
    Padding,
    Effects,
    Dimensions,
    OutputOptions,
    Layer,
    EditorState,
    default_state,
)
from studio.models.template import (
    DimensionMode,
    Template,
    TemplateWarning,
    TemplateWarningType,
    TemplateLoadResult,
)
from studio.models.viewport import (
    FIT,
    ScrollContainer,
    ViewportInput,
    ViewportBounds,
    LayerPlacement,
)
from studio.models.responses import (
    SessionResponse,
    ErrorDetail,
    ErrorResponse,
)

__all__ = [
    "BlendMode",
    "PositionKeyword",
    "ResizeMode",
    "OutputFormat",
    "ImageSize",
    "CropBox",
    "Padding",
    "Effects",
    "Dimensions",
    "OutputOptions",
    "Layer",
    "EditorState",
    "default_state",
    "DimensionMode",
    "Template",
    "TemplateWarning",
    "TemplateWarningType",
    "TemplateLoadResult",
    "FIT",
    "ScrollContainer",
    "ViewportInput",
    "ViewportBounds",
    "LayerPlacement",
    "SessionResponse",
    "ErrorDetail",
    "ErrorResponse",
]
