"""
Viewport geometry models.

Preview coordinates are the rendered (on-screen) image pixels; output
coordinates are pixels of the final rendered image that layers are
positioned in.
"""

from enum import Enum
from typing import Literal, Optional, Union

from pydantic import Field, field_validator

from studio.models.base import StudioModel
from studio.models.state import LayerPosition, Padding


FIT = "fit"

# Either the symbol "fit" or a positive multiplier
ZoomValue = Union[Literal["fit"], float]


class Placement(str, Enum):
    """Where a new layer is anchored inside the viewport."""
    TOP_LEFT = "top-left"
    CENTER = "center"


class Size(StudioModel):
    """Possibly fractional on-screen dimensions."""
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class ScrollContainer(StudioModel):
    """Scroll state of the live preview container."""
    scroll_left: float = Field(default=0, ge=0)
    scroll_top: float = Field(default=0, ge=0)
    client_width: float = Field(ge=0, description="Visible width of the container")
    client_height: float = Field(ge=0, description="Visible height of the container")
    scroll_width: float = Field(ge=0, description="Full scrollable width of the wrapper")
    scroll_height: float = Field(ge=0, description="Full scrollable height of the wrapper")


class ViewportInput(StudioModel):
    """Everything needed to map the visible viewer area to output space."""
    container: ScrollContainer
    preview_dimensions: Size = Field(description="Rendered preview image size")
    output_dimensions: Size = Field(description="Final output image size")


class ViewportBounds(StudioModel):
    """Visible rectangle in output-pixel space."""
    left: int = 0
    top: int = 0
    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)


class LayerPlacement(StudioModel):
    """Position and size for a newly placed layer, in output pixels."""
    x: int
    y: int
    width: int
    height: int


class DisplayPosition(StudioModel):
    """Layer offset as percentages of the base canvas, for overlay rendering."""
    left_percent: float
    top_percent: float


class PlacementRequest(StudioModel):
    """Request body for computing a layer placement for the current view."""
    zoom: ZoomValue = FIT
    layer_dimensions: Size
    output_dimensions: Size
    container: Optional[ScrollContainer] = None
    preview_dimensions: Optional[Size] = None
    scale_factor: Optional[float] = Field(default=None, gt=0, le=1)
    positioning: Placement = Placement.TOP_LEFT

    @field_validator("zoom")
    @classmethod
    def _check_zoom(cls, value):
        if value != FIT and value <= 0:
            raise ValueError("zoom must be 'fit' or a positive multiplier")
        return value


class DisplayPositionRequest(StudioModel):
    """Request body for converting a layer position to display percentages."""
    x: LayerPosition = 0
    y: LayerPosition = 0
    layer_size: Size
    base_size: Size


class LayerImageSizeRequest(StudioModel):
    """Request body for recovering a layer's image size from its canvas size."""
    display_size: Size
    padding: Optional[Padding] = None
    rotation: int = 0
    fill: Optional[str] = None
