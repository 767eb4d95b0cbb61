"""
Unit tests for the editor state models.
"""

import pytest
from pydantic import ValidationError

from studio.models.base import revise
from studio.models.state import (
    BlendMode,
    CropBox,
    EditorState,
    ImageSize,
    Layer,
    PositionKeyword,
    default_state,
    strip_ui_only,
)


class TestRotation:
    """Tests for rotation normalization."""

    def test_right_angles_are_kept(self):
        """Test that right angles pass through unchanged."""
        for angle in (0, 90, 180, 270):
            assert EditorState(rotation=angle).rotation == angle

    def test_multiples_of_90_are_normalized(self):
        """Test that full turns are folded back into [0, 360)."""
        assert EditorState(rotation=450).rotation == 90
        assert EditorState(rotation=-90).rotation == 270
        assert EditorState(rotation=360).rotation == 0

    def test_non_right_angle_rejected(self):
        """Test that arbitrary angles are rejected."""
        with pytest.raises(ValidationError):
            EditorState(rotation=45)

    def test_bool_rejected(self):
        """Test that booleans are not accepted as angles."""
        with pytest.raises(ValidationError):
            EditorState(rotation=True)

    def test_rotated_steps_one_quarter_turn(self):
        """Test rotating clockwise and counter-clockwise."""
        state = EditorState()
        assert state.rotated().rotation == 90
        assert state.rotated(clockwise=False).rotation == 270
        assert state.rotated().rotated().rotated().rotated().rotation == 0


class TestCrop:
    """Tests for crop clamping."""

    def test_clamped_inside_bounds(self):
        """Test that a crop inside the image is unchanged."""
        crop = CropBox(left=10, top=20, right=110, bottom=220)
        assert crop.clamped(1000, 1000) == crop

    def test_clamped_to_image(self):
        """Test that edges beyond the image are pulled back."""
        crop = CropBox(left=50, top=0, right=5000, bottom=900).clamped(800, 600)

        assert crop == CropBox(left=50, top=0, right=800, bottom=600)
        assert crop.width == 750
        assert crop.height == 600

    def test_inverted_crop_collapses(self):
        """Test that right < left collapses to an empty box."""
        crop = CropBox(left=300, top=300, right=100, bottom=100).clamped(800, 600)

        assert crop.width == 0
        assert crop.height == 0

    def test_with_crop_uses_original_dimensions(self):
        """Test that EditorState.with_crop clamps against the original image."""
        state = EditorState().with_crop(CropBox(right=9999, bottom=9999), ImageSize(width=640, height=480))

        assert state.crop == CropBox(left=0, top=0, right=640, bottom=480)


class TestLayer:
    """Tests for the Layer model."""

    def test_defaults(self):
        """Test layer defaults: opaque, normal blend, visible, empty sub-composition."""
        layer = Layer(id="l1")

        assert layer.alpha == 0
        assert layer.blend_mode == BlendMode.NORMAL
        assert layer.visible is True
        assert layer.transforms == EditorState()

    def test_keyword_positions(self):
        """Test that position keywords are parsed per axis."""
        layer = Layer(id="l1", x="center", y="bottom")

        assert layer.x == PositionKeyword.CENTER
        assert layer.y == PositionKeyword.BOTTOM

    def test_vertical_keyword_on_x_rejected(self):
        """Test that 'top' is not a horizontal position."""
        with pytest.raises(ValidationError):
            Layer(id="l1", x="top")

    def test_horizontal_keyword_on_y_rejected(self):
        """Test that 'left' is not a vertical position."""
        with pytest.raises(ValidationError):
            Layer(id="l1", y="left")

    def test_alpha_range(self):
        """Test alpha bounds."""
        with pytest.raises(ValidationError):
            Layer(id="l1", alpha=101)

    def test_camel_case_input(self):
        """Test that camelCase keys are accepted."""
        layer = Layer.model_validate({"id": "l1", "blendMode": "soft-light", "imagePath": "a.jpg"})

        assert layer.blend_mode == BlendMode.SOFT_LIGHT
        assert layer.image_path == "a.jpg"


class TestEditorState:
    """Tests for EditorState invariants and serialization."""

    def test_duplicate_sibling_ids_rejected(self):
        """Test that sibling layer ids must be unique."""
        with pytest.raises(ValidationError):
            EditorState(layers=(Layer(id="a"), Layer(id="a")))

    def test_same_id_at_different_depths_allowed(self):
        """Test that uniqueness is only among siblings."""
        child = EditorState(layers=(Layer(id="a"),))
        state = EditorState(layers=(Layer(id="a", transforms=child),))

        assert state.layer_ids == ("a",)

    def test_frozen(self):
        """Test that states cannot be mutated in place."""
        state = EditorState()
        with pytest.raises(ValidationError):
            state.rotation = 90

    def test_revise_validates(self):
        """Test that revise re-runs validation on the new values."""
        state = EditorState()

        assert revise(state, rotation=-180).rotation == 180
        with pytest.raises(ValidationError):
            revise(state, effects={"blur": -1})

    def test_ui_only_field_never_serialized(self):
        """Test that visual_crop_enabled is excluded from dumps."""
        state = EditorState(visual_crop_enabled=True, h_flip=True)

        data = state.model_dump(by_alias=True)
        assert "visualCropEnabled" not in data
        assert "visual_crop_enabled" not in data
        assert data["hFlip"] is True

    def test_strip_ui_only(self):
        """Test resetting UI-only fields."""
        state = EditorState(visual_crop_enabled=True, v_flip=True)
        stripped = strip_ui_only(state)

        assert stripped.visual_crop_enabled is False
        assert stripped.v_flip is True

    def test_default_state_seeds_dimensions(self):
        """Test that a new state is sized to the original image."""
        state = default_state(ImageSize(width=1920, height=1080))

        assert state.dimensions.width == 1920
        assert state.dimensions.height == 1080
        assert default_state() == EditorState()
