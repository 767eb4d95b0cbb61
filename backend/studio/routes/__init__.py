"""
API route modules.
"""

from studio.routes.sessions import router as sessions_router
from studio.routes.templates import router as templates_router
from studio.routes.viewport import router as viewport_router
from studio.routes.render import router as render_router

__all__ = [
    "sessions_router",
    "templates_router",
    "viewport_router",
    "render_router",
]
