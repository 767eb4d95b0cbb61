"""
Render payload builder and remote render client.

The editor never touches pixels. It translates EditorState into the
transform-parameters payload understood by the remote renderer, and asks
the renderer for a URL that serves the transformed image.
"""

import logging
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import BaseModel, Field

from studio.config import settings
from studio.models.base import StudioModel
from studio.models.state import BlendMode, EditorState, ImageSize, Layer, PositionKeyword, ResizeMode
from studio.services.scheduler import CancellationToken

logger = logging.getLogger(__name__)


class RenderFilter(BaseModel):
    """A single renderer filter, e.g. brightness(20)."""
    name: str
    args: str = ""


class RenderLayer(StudioModel):
    """Structured description of one composited layer."""
    image_path: str
    x: Union[int, float, str]
    y: Union[int, float, str]
    alpha: int = 0
    blend_mode: BlendMode = BlendMode.NORMAL
    params: "RenderParams"


class RenderParams(StudioModel):
    """Transform-parameters payload sent to the renderer."""
    width: Optional[int] = None
    height: Optional[int] = None

    crop_left: Optional[int] = None
    crop_top: Optional[int] = None
    crop_right: Optional[int] = None
    crop_bottom: Optional[int] = None

    fit_in: bool = False
    stretch: bool = False
    smart: bool = False

    padding_left: Optional[int] = None
    padding_top: Optional[int] = None
    padding_right: Optional[int] = None
    padding_bottom: Optional[int] = None

    h_flip: bool = False
    v_flip: bool = False

    filters: List[RenderFilter] = Field(default_factory=list)
    layers: List[RenderLayer] = Field(default_factory=list)

    def to_path(self, image_path: str) -> str:
        """
        Render the params as a renderer URL path.

        Order: crop / fit-in / stretch / [-]WxH / padding / smart / filters / image
        """
        parts: List[str] = []

        if self.crop_left is not None:
            parts.append(f"{self.crop_left}x{self.crop_top}:{self.crop_right}x{self.crop_bottom}")
        if self.fit_in:
            parts.append("fit-in")
        if self.stretch:
            parts.append("stretch")

        width = self.width or 0
        height = self.height or 0
        if width or height or self.h_flip or self.v_flip:
            h_sign = "-" if self.h_flip else ""
            v_sign = "-" if self.v_flip else ""
            parts.append(f"{h_sign}{width}x{v_sign}{height}")

        if self.padding_left is not None:
            parts.append(
                f"{self.padding_left}x{self.padding_top}:{self.padding_right}x{self.padding_bottom}"
            )
        if self.smart:
            parts.append("smart")
        if self.filters:
            parts.append("filters:" + ":".join(f"{f.name}({f.args})" for f in self.filters))

        parts.append(image_path.lstrip("/"))
        return "/" + "/".join(parts)


RenderLayer.model_rebuild()


# ============================================================
# Payload Construction
# ============================================================

def _format_number(value: Union[int, float]) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def _format_position(value: Union[int, float, PositionKeyword]) -> str:
    if isinstance(value, PositionKeyword):
        return value.value
    return _format_number(value)


def _fit_within(width: int, height: int, max_size: ImageSize) -> tuple:
    """Scale (width, height) down proportionally to fit max_size."""
    if width <= max_size.width and height <= max_size.height:
        return width, height
    scale = min(max_size.width / width, max_size.height / height)
    return round(width * scale), round(height * scale)


def build_render_params(
    state: EditorState,
    original: Optional[ImageSize] = None,
    for_preview: bool = False,
    preview_max: Optional[ImageSize] = None,
) -> RenderParams:
    """
    Translate an EditorState into renderer params.

    Args:
        state: State to render
        original: Source image dimensions (fallback for unset width/height)
        for_preview: Force WebP output and apply preview size constraints
        preview_max: Bounds for preview renders

    Returns:
        RenderParams including one image filter per visible layer
    """
    width = state.dimensions.width
    height = state.dimensions.height

    if for_preview and preview_max is not None:
        target_width = width or (original.width if original else None)
        target_height = height or (original.height if original else None)
        if target_width and target_height:
            width, height = _fit_within(target_width, target_height, preview_max)

    data: Dict[str, Any] = {
        "width": width,
        "height": height,
        "fit_in": state.dimensions.mode == ResizeMode.FIT_IN,
        "stretch": state.dimensions.mode == ResizeMode.STRETCH,
        "smart": state.dimensions.mode == ResizeMode.SMART,
        "h_flip": state.h_flip,
        "v_flip": state.v_flip,
    }

    if state.crop is not None:
        data.update(
            crop_left=state.crop.left,
            crop_top=state.crop.top,
            crop_right=state.crop.right,
            crop_bottom=state.crop.bottom,
        )

    if state.padding is not None and not state.padding.is_empty:
        data.update(
            padding_left=state.padding.left,
            padding_top=state.padding.top,
            padding_right=state.padding.right,
            padding_bottom=state.padding.bottom,
        )

    filters: List[RenderFilter] = []
    effects = state.effects
    for name in ("brightness", "contrast", "saturation", "hue", "blur", "sharpen"):
        value = getattr(effects, name)
        if value:
            filters.append(RenderFilter(name=name, args=_format_number(value)))
    if effects.grayscale:
        filters.append(RenderFilter(name="grayscale"))

    if state.rotation:
        filters.append(RenderFilter(name="rotate", args=str(state.rotation)))

    if state.auto_trim:
        tolerance = state.trim_tolerance
        filters.append(RenderFilter(name="trim", args=str(tolerance) if tolerance and tolerance != 1 else ""))

    if state.fill:
        filters.append(RenderFilter(name="fill", args=state.fill))

    layers: List[RenderLayer] = []
    for layer in state.layers:
        if not layer.visible:
            continue
        render_layer = build_render_layer(layer)
        layers.append(render_layer)
        filters.append(RenderFilter(name="image", args=image_filter_args(render_layer)))

    output = state.output
    if for_preview:
        filters.append(RenderFilter(name="format", args="webp"))
    elif output.format is not None:
        filters.append(RenderFilter(name="format", args=output.format.value))

    # Quality and size caps only make sense with an explicit encoding
    if output.quality and (for_preview or output.format):
        filters.append(RenderFilter(name="quality", args=str(output.quality)))
    if output.max_bytes and (for_preview or output.format or output.quality):
        filters.append(RenderFilter(name="max_bytes", args=str(output.max_bytes)))

    data["filters"] = filters
    data["layers"] = layers
    return RenderParams(**data)


def build_render_layer(layer: Layer) -> RenderLayer:
    """Build the structured layer entry with its nested params."""
    params = build_render_params(layer.transforms, original=layer.original_dimensions)
    if params.width is None and params.height is None and layer.original_dimensions is not None:
        params = params.model_copy(
            update={"width": layer.original_dimensions.width, "height": layer.original_dimensions.height}
        )
    return RenderLayer(
        image_path=layer.image_path,
        x=_format_position(layer.x) if isinstance(layer.x, PositionKeyword) else layer.x,
        y=_format_position(layer.y) if isinstance(layer.y, PositionKeyword) else layer.y,
        alpha=layer.alpha,
        blend_mode=layer.blend_mode,
        params=params,
    )


def image_filter_args(layer: RenderLayer) -> str:
    """
    Arguments of the image() filter: path,x,y[,alpha[,blend]].

    Trailing defaults are omitted; alpha is kept whenever the blend mode
    is not normal.
    """
    args = [
        layer.params.to_path(layer.image_path),
        _format_position(layer.x),
        _format_position(layer.y),
    ]
    if layer.blend_mode != BlendMode.NORMAL:
        args += [str(layer.alpha), layer.blend_mode.value]
    elif layer.alpha:
        args.append(str(layer.alpha))
    return ",".join(args)


# ============================================================
# Remote Client
# ============================================================

class RenderServiceError(Exception):
    """Error reported by, or while reaching, the remote renderer."""

    def __init__(self, code: str, message: str, details: dict = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class RenderClient:
    """
    Async client for the remote renderer.

    Requests can carry a CancellationToken; a result that arrives after its
    token was cancelled is discarded and None is returned instead.
    No retries are attempted.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.render_service_url).rstrip("/")
        self.timeout = timeout or settings.render_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            raise RenderServiceError(
                "RENDER_FAILED",
                f"Renderer returned status {e.response.status_code}",
                {"status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise RenderServiceError("RENDER_UNAVAILABLE", str(e)) from e
        except ValueError as e:
            raise RenderServiceError("RENDER_BAD_RESPONSE", f"Invalid renderer response: {e}") from e

        if not isinstance(body, dict):
            raise RenderServiceError(
                "RENDER_BAD_RESPONSE",
                f"Renderer response must be a JSON object, got {type(body).__name__}",
            )
        return body

    async def generate_url(
        self,
        image_path: str,
        params: RenderParams,
        token: Optional[CancellationToken] = None,
    ) -> Optional[str]:
        """Ask the renderer for a URL serving ``image_path`` with ``params``."""
        if token is not None and token.cancelled:
            return None

        body = await self._post(
            self.base_url,
            {"imagePath": image_path, "params": params.model_dump(mode="json", by_alias=True)},
        )

        if token is not None and token.cancelled:
            logger.debug(f"Discarding stale render URL for {image_path}")
            return None

        url = body.get("url")
        if not isinstance(url, str):
            raise RenderServiceError("RENDER_BAD_RESPONSE", "Renderer response has no url")
        return url

    async def generate_urls(
        self,
        image_path: str,
        params_list: List[RenderParams],
        token: Optional[CancellationToken] = None,
    ) -> Optional[List[str]]:
        """Bulk variant of ``generate_url``."""
        if token is not None and token.cancelled:
            return None

        body = await self._post(
            f"{self.base_url}/bulk",
            {
                "imagePath": image_path,
                "paramsList": [p.model_dump(mode="json", by_alias=True) for p in params_list],
            },
        )

        if token is not None and token.cancelled:
            logger.debug(f"Discarding stale bulk render URLs for {image_path}")
            return None

        urls = body.get("urls")
        if not isinstance(urls, list) or len(urls) != len(params_list):
            raise RenderServiceError("RENDER_BAD_RESPONSE", "Renderer returned an unexpected url list")
        return urls


# Global client instance
render_client = RenderClient()
