"""
Application configuration settings.
"""

from pathlib import Path
from typing import List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # API Settings
    api_v1_prefix: str = "/api/v1"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = ["*"]

    # Image Storage (source images opened in the editor)
    images_dir: Path = Path("./images")

    # Template Storage
    templates_dir: Path = Path("./templates")

    # Remote Renderer
    render_service_url: str = "http://127.0.0.1:8000/api/render"
    render_timeout_seconds: float = 30.0

    # Session Settings
    session_ttl_hours: int = 8
    session_purge_interval_seconds: float = 600.0
    history_limit: int = 100  # Max undo snapshots kept per session (0 = unbounded)

    # ============================================================
    # DEBOUNCE SETTINGS (milliseconds)
    # ============================================================

    url_debounce_ms: int = 300       # URL re-encode while dragging a control
    preview_debounce_ms: int = 500   # Preview render after a state change
    resize_debounce_ms: int = 150    # Viewport width recomputation on resize

    # ============================================================
    # VIEWPORT SETTINGS
    # ============================================================

    # Fixed padding of the preview container on every side
    container_padding_px: int = 8

    # Fraction of the visible area a newly placed layer may occupy
    default_layer_scale_factor: float = 0.9

    # Preview renders are scaled down to fit within these bounds
    preview_max_width: int = 1200
    preview_max_height: int = 1200

    # ============================================================
    # ZOOM SETTINGS
    # ============================================================

    # Candidate multipliers, ascending
    zoom_levels: List[float] = [0.25, 0.5, 0.75, 1.0, 1.5, 2.0]

    # Levels closer than this to the fit scale are hidden
    zoom_min_distance: float = 0.05

    @property
    def url_debounce_seconds(self) -> float:
        return self.url_debounce_ms / 1000

    @property
    def preview_debounce_seconds(self) -> float:
        return self.preview_debounce_ms / 1000

    @property
    def resize_debounce_seconds(self) -> float:
        return self.resize_debounce_ms / 1000

    class Config:
        env_prefix = "STUDIO_"
        env_file = ".env"
        extra = "ignore"


# Global settings instance
settings = Settings()
