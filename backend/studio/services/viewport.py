"""
Viewport mapping service.

Maps the visible part of the preview viewer to output-pixel geometry so new
layers can be auto-placed inside whatever portion of the canvas the user is
currently looking at.

Preview layout model: when zoomed, the image sits inside a scrollable
wrapper that pads it by 50% of the wrapper on every side, i.e. the image
occupies the middle half of the wrapper in each dimension and starts at 25%
of the wrapper size. The container itself has a fixed padding.
"""

import logging
from typing import Optional, Union

from studio.config import settings
from studio.models.state import Padding, PositionKeyword
from studio.models.viewport import (
    FIT,
    DisplayPosition,
    LayerPlacement,
    Placement,
    ScrollContainer,
    Size,
    ViewportBounds,
    ViewportInput,
    ZoomValue,
)

logger = logging.getLogger(__name__)

# Image starts at this fraction of the wrapper size
WRAPPER_IMAGE_OFFSET = 0.25


class ViewportService:
    """Coordinate mapping between the preview viewer and output space."""

    def __init__(
        self,
        container_padding: Optional[float] = None,
        default_scale_factor: Optional[float] = None,
    ):
        self.container_padding = (
            container_padding if container_padding is not None else settings.container_padding_px
        )
        self.default_scale_factor = default_scale_factor or settings.default_layer_scale_factor

    def calculate_viewport_bounds(self, viewport: ViewportInput) -> ViewportBounds:
        """
        Calculate the visible rectangle of the image in output coordinates.

        Algorithm:
        1. scale = output width / preview width
        2. Shrink the visible client rectangle by the container padding
        3. Locate the image inside the wrapper (starts at 25% of wrapper size)
        4. Intersect the two rectangles
        5. Convert back to preview-image coordinates, clamped to the image
        6. Multiply by scale and round

        Args:
            viewport: Scroll state, preview size and output size

        Returns:
            ViewportBounds in output pixels (width/height never negative)
        """
        container = viewport.container
        preview = viewport.preview_dimensions
        output = viewport.output_dimensions
        padding = self.container_padding

        scale = output.width / preview.width

        # Visible area in container coordinates
        visible_left = container.scroll_left + padding
        visible_top = container.scroll_top + padding
        visible_right = container.scroll_left + container.client_width - padding
        visible_bottom = container.scroll_top + container.client_height - padding

        # Image rectangle within the wrapper
        image_left = container.scroll_width * WRAPPER_IMAGE_OFFSET
        image_top = container.scroll_height * WRAPPER_IMAGE_OFFSET
        image_right = image_left + preview.width
        image_bottom = image_top + preview.height

        # Intersection in container coordinates
        left = max(visible_left, image_left)
        top = max(visible_top, image_top)
        right = min(visible_right, image_right)
        bottom = min(visible_bottom, image_bottom)

        # Back to preview-image coordinates
        preview_left = max(0.0, left - image_left)
        preview_top = max(0.0, top - image_top)
        preview_right = min(preview.width, right - image_left)
        preview_bottom = min(preview.height, bottom - image_top)

        bounds = ViewportBounds(
            left=round(preview_left * scale),
            top=round(preview_top * scale),
            width=round(max(0.0, preview_right - preview_left) * scale),
            height=round(max(0.0, preview_bottom - preview_top) * scale),
        )

        logger.debug(f"Viewport bounds (scale={scale:.4f}): {bounds}")
        return bounds

    def calculate_layer_position_in_viewport(
        self,
        layer_dimensions: Size,
        viewport_bounds: ViewportBounds,
        scale_factor: Optional[float] = None,
        positioning: Placement = Placement.TOP_LEFT,
    ) -> LayerPlacement:
        """
        Fit a layer inside ``scale_factor`` of the viewport.

        Aspect ratio is preserved and the layer is never upscaled beyond
        its native size.
        """
        scale_factor = scale_factor or self.default_scale_factor

        target_width = viewport_bounds.width * scale_factor
        target_height = viewport_bounds.height * scale_factor

        scale = min(
            target_width / layer_dimensions.width,
            target_height / layer_dimensions.height,
            1.0,
        )

        width = round(layer_dimensions.width * scale)
        height = round(layer_dimensions.height * scale)

        if positioning == Placement.CENTER:
            x = viewport_bounds.left + (viewport_bounds.width - width) / 2
            y = viewport_bounds.top + (viewport_bounds.height - height) / 2
        else:
            x = viewport_bounds.left
            y = viewport_bounds.top

        return LayerPlacement(x=round(x), y=round(y), width=width, height=height)

    def calculate_layer_position_for_current_view(
        self,
        zoom: ZoomValue,
        layer_dimensions: Size,
        output_dimensions: Size,
        container: Optional[ScrollContainer] = None,
        preview_dimensions: Optional[Size] = None,
        scale_factor: Optional[float] = None,
        positioning: Placement = Placement.TOP_LEFT,
    ) -> LayerPlacement:
        """
        Place a new layer inside the currently visible part of the canvas.

        In fit mode the whole output canvas is the viewport. A numeric zoom
        needs a live container and the preview dimensions; without either it
        falls back to fit behaviour.
        """
        if zoom == FIT or container is None or preview_dimensions is None:
            if zoom != FIT:
                logger.debug(f"Zoom {zoom} without live viewport, using fit placement")
            bounds = ViewportBounds(
                left=0,
                top=0,
                width=round(output_dimensions.width),
                height=round(output_dimensions.height),
            )
        else:
            bounds = self.calculate_viewport_bounds(
                ViewportInput(
                    container=container,
                    preview_dimensions=preview_dimensions,
                    output_dimensions=output_dimensions,
                )
            )

        return self.calculate_layer_position_in_viewport(
            layer_dimensions, bounds, scale_factor, positioning
        )


# ============================================================
# Layer Display Helpers
# ============================================================

def rotate_padding(padding: Padding, rotation: int) -> Padding:
    """
    Rotate padding edges to follow an image rotation.

    90: top->left, right->top, bottom->right, left->bottom (and so on).
    """
    if rotation == 90:
        return Padding(left=padding.top, top=padding.right, right=padding.bottom, bottom=padding.left)
    if rotation == 180:
        return Padding(left=padding.right, top=padding.bottom, right=padding.left, bottom=padding.top)
    if rotation == 270:
        return Padding(left=padding.bottom, top=padding.left, right=padding.top, bottom=padding.right)
    return padding


def calculate_layer_image_dimensions(
    display_size: Size,
    padding: Optional[Padding],
    rotation: int,
    fill: Optional[str] = None,
) -> Size:
    """
    Recover a layer's image size from its on-canvas size.

    Padding is only part of the displayed size when a fill colour is set.
    Quarter turns swap width and height back.
    """
    width, height = display_size.width, display_size.height
    if fill is not None and padding is not None:
        rotated = rotate_padding(padding, rotation)
        width -= rotated.left + rotated.right
        height -= rotated.top + rotated.bottom

    if rotation in (90, 270):
        width, height = height, width
    return Size(width=max(width, 1), height=max(height, 1))


def _axis_offset(
    value: Union[int, float, PositionKeyword],
    start: PositionKeyword,
    end: PositionKeyword,
    layer_size: float,
    base_size: float,
) -> float:
    if value == start or value == PositionKeyword.REPEAT:
        return 0.0
    if value == PositionKeyword.CENTER:
        return (base_size - layer_size) / 2
    if value == end:
        return base_size - layer_size
    if value < 0:
        # Negative numbers are offsets from the far edge
        return base_size + value - layer_size
    return float(value)


def calculate_layer_display_position(
    x: Union[int, float, PositionKeyword],
    y: Union[int, float, PositionKeyword],
    layer_size: Size,
    base_size: Size,
) -> DisplayPosition:
    """Layer offset as percentages of the base canvas."""
    left = _axis_offset(x, PositionKeyword.LEFT, PositionKeyword.RIGHT, layer_size.width, base_size.width)
    top = _axis_offset(y, PositionKeyword.TOP, PositionKeyword.BOTTOM, layer_size.height, base_size.height)
    return DisplayPosition(
        left_percent=left / base_size.width * 100,
        top_percent=top / base_size.height * 100,
    )


# Global service instance
viewport_service = ViewportService()
