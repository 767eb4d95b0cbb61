"""
Business logic services.
"""

from studio.services.history import HistoryManager
from studio.services.layers import ContextNavigator, LayerNotFoundError
from studio.services.metadata import ImageMetadataService
from studio.services.render import RenderClient, RenderServiceError, build_render_params
from studio.services.scheduler import CancellationToken, Debouncer
from studio.services.session import EditorSession, SessionNotFoundError, SessionRegistry
from studio.services.storage import TemplateStorageError, TemplateStore
from studio.services.templates import TemplateCodec, apply_template, sanitize_template_name
from studio.services.url_state import decode_state, encode_state
from studio.services.viewport import ViewportService
from studio.services.zoom import ZoomLevelSelector, get_effective_zoom_levels

__all__ = [
    "HistoryManager",
    "ContextNavigator",
    "LayerNotFoundError",
    "ImageMetadataService",
    "RenderClient",
    "RenderServiceError",
    "build_render_params",
    "CancellationToken",
    "Debouncer",
    "EditorSession",
    "SessionNotFoundError",
    "SessionRegistry",
    "TemplateStorageError",
    "TemplateStore",
    "TemplateCodec",
    "apply_template",
    "sanitize_template_name",
    "decode_state",
    "encode_state",
    "ViewportService",
    "ZoomLevelSelector",
    "get_effective_zoom_levels",
]
