"""
Editor state models for the layer-based transform editor.

An EditorState is the full transform-parameter set for one compositable
image. Layers own a nested EditorState of their own, so a composition is a
recursive tree of immutable records. Updates never mutate in place: every
change produces a new tree, which keeps snapshots trivially shareable
between the undo history, the URL codec and templates.
"""

from enum import Enum
from typing import Optional, Tuple, Union

from pydantic import Field, field_validator, model_validator

from studio.models.base import StudioModel, revise


class BlendMode(str, Enum):
    """Compositing blend modes supported by the renderer."""
    NORMAL = "normal"
    MULTIPLY = "multiply"
    SCREEN = "screen"
    OVERLAY = "overlay"
    SOFT_LIGHT = "soft-light"
    HARD_LIGHT = "hard-light"
    COLOR_BURN = "color-burn"
    COLOR_DODGE = "color-dodge"
    DARKEN = "darken"
    LIGHTEN = "lighten"
    ADD = "add"
    DIFFERENCE = "difference"
    EXCLUSION = "exclusion"
    MASK = "mask"
    MASK_OUT = "mask-out"


BLEND_MODE_VALUES = frozenset(mode.value for mode in BlendMode)


class PositionKeyword(str, Enum):
    """Symbolic layer positions, resolved against the parent canvas."""
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    TOP = "top"
    BOTTOM = "bottom"
    REPEAT = "repeat"


X_KEYWORDS = frozenset({PositionKeyword.LEFT, PositionKeyword.CENTER, PositionKeyword.RIGHT, PositionKeyword.REPEAT})
Y_KEYWORDS = frozenset({PositionKeyword.TOP, PositionKeyword.CENTER, PositionKeyword.BOTTOM, PositionKeyword.REPEAT})

# Numeric pixel offset or keyword. Negative numbers are offsets from the
# right/bottom edge of the parent canvas.
LayerPosition = Union[int, float, PositionKeyword]


class ResizeMode(str, Enum):
    """How the image is fitted into the target dimensions."""
    FIT_IN = "fit-in"
    STRETCH = "stretch"
    SMART = "smart"


class OutputFormat(str, Enum):
    """Output encodings; None on OutputOptions keeps the source format."""
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    GIF = "gif"
    AVIF = "avif"


RIGHT_ANGLES = (0, 90, 180, 270)

# Fields that only matter to the live editor UI and never leave the session
UI_ONLY_FIELDS = frozenset({"visual_crop_enabled"})


# ============================================================
# Leaf Models
# ============================================================

class ImageSize(StudioModel):
    """Integer pixel dimensions."""
    width: int = Field(ge=1, description="Width in pixels")
    height: int = Field(ge=1, description="Height in pixels")


class CropBox(StudioModel):
    """Crop rectangle as absolute pixel offsets in original-image space."""
    left: int = Field(default=0, ge=0)
    top: int = Field(default=0, ge=0)
    right: int = Field(default=0, ge=0)
    bottom: int = Field(default=0, ge=0)

    def clamped(self, width: int, height: int) -> "CropBox":
        """Clamp every edge to [0, dimension], keeping right >= left and bottom >= top."""
        left = min(max(0, self.left), width)
        top = min(max(0, self.top), height)
        right = min(max(left, self.right), width)
        bottom = min(max(top, self.bottom), height)
        return CropBox(left=left, top=top, right=right, bottom=bottom)

    @property
    def width(self) -> int:
        return max(0, self.right - self.left)

    @property
    def height(self) -> int:
        return max(0, self.bottom - self.top)


class Padding(StudioModel):
    """Canvas padding around the image, painted with the fill colour."""
    left: int = Field(default=0, ge=0)
    top: int = Field(default=0, ge=0)
    right: int = Field(default=0, ge=0)
    bottom: int = Field(default=0, ge=0)

    @property
    def is_empty(self) -> bool:
        return not (self.left or self.top or self.right or self.bottom)


class Effects(StudioModel):
    """Colour and detail filters. Zero / False means "not applied"."""
    brightness: float = Field(default=0, ge=-100, le=100)
    contrast: float = Field(default=0, ge=-100, le=100)
    saturation: float = Field(default=0, ge=-100, le=100)
    hue: float = Field(default=0, ge=-360, le=360)
    blur: float = Field(default=0, ge=0, le=150)
    sharpen: float = Field(default=0, ge=0, le=100)
    grayscale: bool = False


class Dimensions(StudioModel):
    """Resize target. Missing width/height keeps the source dimension."""
    width: Optional[int] = Field(default=None, ge=1)
    height: Optional[int] = Field(default=None, ge=1)
    mode: ResizeMode = ResizeMode.FIT_IN


class OutputOptions(StudioModel):
    """Output encoding settings."""
    format: Optional[OutputFormat] = None
    quality: Optional[int] = Field(default=None, ge=1, le=100)
    max_bytes: Optional[int] = Field(default=None, ge=1)


# ============================================================
# Recursive Composition Models
# ============================================================

class Layer(StudioModel):
    """A positioned, blended sub-composition drawn over its parent canvas."""
    id: str = Field(min_length=1, description="Identifier, unique among siblings")
    name: str = Field(default="", description="Human-readable layer name")
    image_path: str = Field(default="", description="Storage key of the layer image")
    x: LayerPosition = 0
    y: LayerPosition = 0
    alpha: int = Field(default=0, ge=0, le=100, description="Transparency percentage (0 = opaque)")
    blend_mode: BlendMode = BlendMode.NORMAL
    visible: bool = True
    original_dimensions: Optional[ImageSize] = None
    transforms: "EditorState" = Field(default_factory=lambda: EditorState())

    @field_validator("x")
    @classmethod
    def _check_x_keyword(cls, value):
        if isinstance(value, PositionKeyword) and value not in X_KEYWORDS:
            raise ValueError(f"'{value.value}' is not a horizontal position")
        return value

    @field_validator("y")
    @classmethod
    def _check_y_keyword(cls, value):
        if isinstance(value, PositionKeyword) and value not in Y_KEYWORDS:
            raise ValueError(f"'{value.value}' is not a vertical position")
        return value


class EditorState(StudioModel):
    """
    Complete transform-parameter set for one compositable image.

    Layers are ordered bottom to top; each owns a nested EditorState.
    """
    crop: Optional[CropBox] = None
    auto_trim: bool = False
    trim_tolerance: Optional[int] = Field(default=None, ge=1, le=50)
    rotation: int = 0
    h_flip: bool = False
    v_flip: bool = False
    fill: Optional[str] = Field(default=None, description="Fill colour for padding/background")
    padding: Optional[Padding] = None
    effects: Effects = Field(default_factory=Effects)
    dimensions: Dimensions = Field(default_factory=Dimensions)
    output: OutputOptions = Field(default_factory=OutputOptions)
    layers: Tuple[Layer, ...] = ()

    # UI-only: excluded from every serialization
    visual_crop_enabled: bool = Field(default=False, exclude=True)

    @field_validator("rotation", mode="before")
    @classmethod
    def _normalize_rotation(cls, value):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value % 90:
            raise ValueError("rotation must be a multiple of 90 degrees")
        return int(value) % 360

    @model_validator(mode="after")
    def _check_unique_layer_ids(self) -> "EditorState":
        seen = set()
        for layer in self.layers:
            if layer.id in seen:
                raise ValueError(f"duplicate layer id '{layer.id}'")
            seen.add(layer.id)
        return self

    @property
    def layer_ids(self) -> Tuple[str, ...]:
        return tuple(layer.id for layer in self.layers)

    def with_crop(self, crop: Optional[CropBox], original: ImageSize) -> "EditorState":
        """Set the crop box, clamped to the original image bounds."""
        if crop is not None:
            crop = crop.clamped(original.width, original.height)
        return revise(self, crop=crop)

    def rotated(self, clockwise: bool = True) -> "EditorState":
        """Rotate by one right angle."""
        step = 90 if clockwise else -90
        return revise(self, rotation=self.rotation + step)


Layer.model_rebuild()


def default_state(original: Optional[ImageSize] = None) -> EditorState:
    """Initial state for a freshly opened image."""
    if original is None:
        return EditorState()
    return EditorState(dimensions=Dimensions(width=original.width, height=original.height))


def strip_ui_only(state: EditorState) -> EditorState:
    """Reset UI-only fields to their defaults."""
    return state.model_copy(
        update={name: EditorState.model_fields[name].default for name in UI_ONLY_FIELDS}
    )
