"""
Unit tests for the template codec and template storage.
"""

import json

import pytest

from studio.models.state import BlendMode, EditorState, Effects, ImageSize, Layer
from studio.models.template import DimensionMode, TemplateWarningType
from studio.services.storage import TemplateStorageError, TemplateStore
from studio.services.templates import TemplateCodec, apply_template, sanitize_template_name


@pytest.fixture
def codec():
    return TemplateCodec()


@pytest.fixture
def layered_state() -> EditorState:
    return EditorState(
        rotation=90,
        effects=Effects(brightness=50, contrast=30),
        visual_crop_enabled=True,
        layers=(
            Layer(
                id="l1",
                name="Overlay",
                image_path="overlay.jpg",
                x="center",
                y="top",
                alpha=80,
                blend_mode=BlendMode.MULTIPLY,
                original_dimensions=ImageSize(width=800, height=600),
            ),
        ),
    )


def template_document(**overrides):
    document = {
        "version": "1.0",
        "name": "Test Template",
        "dimensionMode": "adaptive",
        "transformations": {"effects": {"brightness": 50}},
        "metadata": {"createdAt": "2024-05-01T12:00:00Z"},
    }
    document.update(overrides)
    return document


class TestSanitizeTemplateName:
    """Tests for sanitize_template_name."""

    def test_basic(self):
        """Test trimming, hyphenation and lowercasing."""
        assert sanitize_template_name("  My Template ") == "my-template"

    def test_special_characters_removed(self):
        """Test that only [a-z0-9_-] survive."""
        assert sanitize_template_name("Sale! 50% off (v2)") == "sale-50-off-v2"

    def test_trailing_separators_stripped(self):
        """Test that trailing hyphens/underscores are removed."""
        assert sanitize_template_name("draft_- ") == "draft"

    def test_length_limit(self):
        """Test the 100 character cap."""
        assert len(sanitize_template_name("a" * 150)) == 100

    def test_nothing_usable(self):
        """Test names with no usable characters."""
        assert sanitize_template_name("   ") == ""
        assert sanitize_template_name("!!!") == ""


class TestTemplateSave:
    """Tests for TemplateCodec.save / dumps."""

    def test_adaptive_round_trip(self, codec, layered_state):
        """Test that save -> dumps -> load reproduces the transformations."""
        template = codec.save(layered_state, "Layered", description="With overlay")
        result = codec.load(codec.dumps(template))

        assert result.success is True
        assert result.warnings == []
        assert result.template.transformations == layered_state.model_copy(update={"visual_crop_enabled": False})
        assert result.template.dimension_mode == DimensionMode.ADAPTIVE
        assert result.template.predefined_dimensions is None

    def test_ui_only_fields_stripped(self, codec, layered_state):
        """Test that UI-only fields never reach the template file."""
        document = json.loads(codec.dumps(codec.save(layered_state, "Layered")))

        assert "visualCropEnabled" not in document["transformations"]
        assert "predefinedDimensions" not in document
        assert document["version"] == "1.0"
        assert document["dimensionMode"] == "adaptive"

    def test_predefined_freezes_dimensions(self, codec, layered_state):
        """Test that predefined templates store the current size."""
        template = codec.save(
            layered_state, "Fixed", dimension_mode=DimensionMode.PREDEFINED,
            current_dimensions=ImageSize(width=800, height=600),
        )

        assert template.predefined_dimensions == ImageSize(width=800, height=600)
        assert template.metadata.created_at.tzinfo is not None

    def test_predefined_requires_dimensions(self, codec, layered_state):
        """Test that predefined mode needs the current size."""
        with pytest.raises(ValueError):
            codec.save(layered_state, "Fixed", dimension_mode=DimensionMode.PREDEFINED)


class TestTemplateLoad:
    """Tests for best-effort template loading."""

    def test_valid_document(self, codec):
        """Test a clean document loads without warnings."""
        result = codec.load(json.dumps(template_document()))

        assert result.success is True
        assert result.warnings == []
        assert result.applied_state.effects.brightness == 50

    def test_invalid_json(self, codec):
        """Test that unparseable text fails with a single invalid-json warning."""
        result = codec.load("invalid json {")

        assert result.success is False
        assert len(result.warnings) == 1
        assert result.warnings[0].type == TemplateWarningType.INVALID_JSON
        assert result.template is None
        assert result.applied_state is None

    def test_not_an_object(self, codec):
        """Test that JSON arrays are rejected."""
        result = codec.load("[1, 2]")

        assert result.success is False
        assert result.warnings[0].type == TemplateWarningType.INVALID_JSON

    def test_missing_required_fields(self, codec):
        """Test that name and transformations are required."""
        result = codec.load({"version": "1.0"})

        assert result.success is False
        assert result.warnings[0].type == TemplateWarningType.INVALID_JSON

    def test_version_mismatch_proceeds(self, codec):
        """Test that a future version loads with a warning."""
        result = codec.load(template_document(version="2.0"))

        assert result.success is True
        assert [w.type for w in result.warnings] == [TemplateWarningType.VERSION_MISMATCH]
        assert result.template.version == "2.0"

    def test_invalid_blend_mode_substituted(self, codec):
        """Test that unknown blend modes are replaced by normal, even when nested."""
        document = template_document(transformations={
            "layers": [{
                "id": "outer",
                "blendMode": "sparkle",
                "transforms": {"layers": [{"id": "inner", "blendMode": "glow"}]},
            }],
        })

        result = codec.load(document)

        assert result.success is True
        assert [w.type for w in result.warnings] == [TemplateWarningType.INVALID_FILTER] * 2
        assert all(w.substitution == "normal" for w in result.warnings)
        outer = result.applied_state.layers[0]
        assert outer.blend_mode == BlendMode.NORMAL
        assert outer.transforms.layers[0].blend_mode == BlendMode.NORMAL

    def test_broken_layers_dropped(self, codec):
        """Test that id-less, non-object and duplicate layers are dropped."""
        document = template_document(transformations={
            "layers": [
                {"id": "keep", "name": "Keep"},
                {"name": "no id"},
                "not a layer",
                {"id": "keep", "name": "Duplicate"},
                {"id": "bad", "transforms": "nope"},
            ],
        })

        result = codec.load(document)

        assert result.success is True
        assert [layer.name for layer in result.applied_state.layers] == ["Keep"]
        assert len(result.warnings) == 4
        assert {w.type for w in result.warnings} == {TemplateWarningType.MISSING_LAYER}

    def test_unknown_fields_ignored(self, codec):
        """Test that unknown keys are ignored at every level."""
        document = template_document(
            futureField=True,
            transformations={"effects": {"brightness": 10}, "roundCornerRadius": 12},
        )

        result = codec.load(document)

        assert result.success is True
        assert result.warnings == []

    def test_ui_only_field_in_file_ignored(self, codec):
        """Test that a stray visualCropEnabled does not leak into the state."""
        result = codec.load(template_document(transformations={"visualCropEnabled": True}))

        assert result.applied_state.visual_crop_enabled is False

    def test_predefined_without_dimensions_uses_transformations(self, codec):
        """Test falling back to the dimensions stored in the transformations."""
        document = template_document(
            dimensionMode="predefined",
            transformations={"dimensions": {"width": 1920, "height": 1080}},
        )

        result = codec.load(document)

        assert result.success is True
        assert result.warnings == []
        assert result.template.predefined_dimensions == ImageSize(width=1920, height=1080)

    def test_predefined_without_any_dimensions_degrades(self, codec):
        """Test degrading to adaptive when no dimensions can be found."""
        result = codec.load(template_document(dimensionMode="predefined"))

        assert result.success is True
        assert result.template.dimension_mode == DimensionMode.ADAPTIVE
        assert result.warnings[0].substitution == "adaptive"

    def test_partially_corrupt_layers_survive(self, codec):
        """Test that one out-of-range layer does not discard its valid siblings."""
        document = template_document(transformations={
            "layers": [
                {"id": "good", "blendMode": "multiply"},
                {"id": "bad", "alpha": 150},
            ],
        })

        result = codec.load(document)

        assert result.success is True
        good, bad = result.applied_state.layers
        assert (good.id, good.blend_mode) == ("good", BlendMode.MULTIPLY)
        assert (bad.id, bad.alpha) == ("bad", 100)
        assert [w.type for w in result.warnings] == [TemplateWarningType.INVALID_FILTER]
        assert result.warnings[0].substitution == "100"

    def test_invalid_layer_position_reset(self, codec):
        """Test that a horizontal keyword on y falls back to the default offset."""
        document = template_document(transformations={
            "layers": [{"id": "logo", "x": "right", "y": "left", "alpha": 20}],
        })

        result = codec.load(document)

        assert result.success is True
        layer = result.applied_state.layers[0]
        assert (layer.x, layer.y, layer.alpha) == ("right", 0, 20)
        assert result.warnings[0].type == TemplateWarningType.INVALID_FILTER
        assert result.warnings[0].substitution is None

    def test_invalid_state_fields_reset(self, codec):
        """Test that bad top-level values are reset or clamped, keeping the rest."""
        document = template_document(transformations={
            "rotation": 45,
            "crop": {"left": -20, "top": 10, "right": 400, "bottom": 300},
            "effects": {"brightness": 50, "blur": "heavy"},
            "layers": [{"id": "keep"}],
        })

        result = codec.load(document)

        assert result.success is True
        state = result.applied_state
        assert state.rotation == 0
        assert (state.crop.left, state.crop.top, state.crop.right) == (0, 10, 400)
        assert (state.effects.brightness, state.effects.blur) == (50, 0)
        assert state.layer_ids == ("keep",)
        assert len(result.warnings) == 3
        assert {w.type for w in result.warnings} == {TemplateWarningType.INVALID_FILTER}

    def test_nested_layer_values_repaired(self, codec):
        """Test that invalid values inside a layer's own transforms are repaired in place."""
        document = template_document(transformations={
            "layers": [{
                "id": "outer",
                "transforms": {
                    "rotation": 33,
                    "layers": [{"id": "inner", "alpha": -5}],
                },
            }],
        })

        result = codec.load(document)

        assert result.success is True
        outer = result.applied_state.layers[0]
        assert outer.transforms.rotation == 0
        assert outer.transforms.layers[0].alpha == 0
        assert all("outer" in w.message for w in result.warnings)

    def test_caller_document_not_modified(self, codec):
        """Test that repairing a template leaves the caller's dict untouched."""
        document = template_document(transformations={"crop": {"left": -1}})

        codec.load(document)

        assert document["transformations"] == {"crop": {"left": -1}}

    def test_non_string_name_fails(self, codec):
        """Test that a document whose name is not text is unusable."""
        result = codec.load(template_document(name=42))

        assert result.success is False
        assert result.warnings[0].type == TemplateWarningType.INVALID_JSON

    def test_bad_metadata_replaced(self, codec):
        """Test that an unreadable creation date is replaced rather than failing."""
        result = codec.load(template_document(metadata={"createdAt": "yesterday"}))

        assert result.success is True
        assert result.template.metadata.created_at is not None


class TestApplyTemplate:
    """Tests for apply_template dimension handling."""

    def test_adaptive_uses_current_image(self, codec):
        """Test that adaptive templates adapt to the image."""
        template = codec.load(template_document()).template
        state = apply_template(template, ImageSize(width=3840, height=2160))

        assert (state.dimensions.width, state.dimensions.height) == (3840, 2160)
        assert state.effects.brightness == 50

    def test_predefined_imposes_dimensions(self, codec):
        """Test that predefined templates keep their size on any image."""
        template = codec.load(template_document(
            dimensionMode="predefined",
            predefinedDimensions={"width": 1024, "height": 768},
        )).template

        for image in (ImageSize(width=640, height=480), ImageSize(width=3840, height=2160)):
            state = apply_template(template, image)
            assert (state.dimensions.width, state.dimensions.height) == (1024, 768)


class TestTemplateStore:
    """Tests for filesystem template storage."""

    @pytest.fixture
    def store(self, tmp_path):
        return TemplateStore(base_dir=tmp_path)

    @pytest.fixture
    def template(self, codec, layered_state):
        return codec.save(layered_state, "My Template")

    def test_save_and_read(self, store, template, codec):
        """Test writing a template file and reading it back."""
        path = store.save_template(template, save_path="brand")

        assert path == "brand/my-template.imagor.json"
        assert (store.base_dir / "brand" / "my-template.imagor.json").is_file()
        result = codec.load(store.read_template(path))
        assert result.template == template

    def test_refuses_overwrite(self, store, template):
        """Test that an existing template is not replaced by default."""
        store.save_template(template)

        with pytest.raises(TemplateStorageError) as exc_info:
            store.save_template(template)
        assert exc_info.value.code == "TEMPLATE_EXISTS"

        assert store.save_template(template, overwrite=True) == "my-template.imagor.json"

    def test_invalid_name(self, store, codec):
        """Test that names without usable characters are rejected."""
        with pytest.raises(TemplateStorageError) as exc_info:
            store.save_template(codec.save(EditorState(), "!!!"))
        assert exc_info.value.code == "INVALID_NAME"

    def test_path_escape_rejected(self, store, template):
        """Test that '..' cannot leave the templates root."""
        with pytest.raises(TemplateStorageError) as exc_info:
            store.save_template(template, save_path="../outside")
        assert exc_info.value.code == "INVALID_PATH"

    def test_read_missing(self, store):
        """Test reading a template that does not exist."""
        with pytest.raises(TemplateStorageError) as exc_info:
            store.read_template("nope.imagor.json")
        assert exc_info.value.code == "TEMPLATE_NOT_FOUND"

    def test_list_templates(self, store, template, codec):
        """Test listing skips unreadable files."""
        store.save_template(template)
        store.save_template(codec.save(EditorState(), "Second"), save_path="sub")
        (store.base_dir / "broken.imagor.json").write_text("{", encoding="utf-8")

        summaries = store.list_templates()

        assert [s.template_path for s in summaries] == [
            "my-template.imagor.json",
            "sub/second.imagor.json",
        ]
        assert summaries[0].name == "My Template"
