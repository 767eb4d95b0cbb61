"""
Template codec: EditorState <-> versioned ``.imagor.json`` documents.

Saving is strict. Loading is best effort: recoverable problems are
repaired and reported as warnings, and only unusable documents fail.
"""

import copy
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel, to_snake

from studio.models.base import revise
from studio.models.state import BLEND_MODE_VALUES, BlendMode, EditorState, ImageSize, Layer, strip_ui_only
from studio.models.template import (
    TEMPLATE_VERSION,
    DimensionMode,
    Template,
    TemplateLoadResult,
    TemplateMetadata,
    TemplateWarning,
    TemplateWarningType,
)

logger = logging.getLogger(__name__)

MAX_TEMPLATE_NAME_LENGTH = 100

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9\-_]")

# Upper bound on validate-and-repair rounds for one record
MAX_REPAIR_PASSES = 20

# Bound violations that are clamped to the bound instead of reset
_BOUND_ERRORS = {"less_than_equal": "le", "greater_than_equal": "ge"}


def sanitize_template_name(name: str) -> str:
    """
    Turn a display name into a safe file stem.

    "  My Template! " -> "my-template". Returns "" if nothing usable remains.
    """
    name = (name or "").strip()
    if not name:
        return ""
    name = name.replace(" ", "-")
    name = _UNSAFE_NAME_CHARS.sub("", name)
    name = name.lower()[:MAX_TEMPLATE_NAME_LENGTH]
    return name.rstrip("-_")


def apply_template(template: Template, current_dimensions: Optional[ImageSize] = None) -> EditorState:
    """
    Produce the state a template yields for a given image.

    Predefined templates impose their frozen dimensions; adaptive templates
    take the dimensions of the image they are applied to.
    """
    state = strip_ui_only(template.transformations)

    if template.dimension_mode == DimensionMode.PREDEFINED:
        size = template.predefined_dimensions
    else:
        size = current_dimensions

    if size is None:
        return state
    dimensions = revise(state.dimensions, width=size.width, height=size.height)
    return revise(state, dimensions=dimensions)


def _get(data: Dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def _find_key(container: Dict[str, Any], part: str) -> Optional[str]:
    for key in (part, to_snake(part), to_camel(part)):
        if key in container:
            return key
    return None


def _repair_value(data: Dict[str, Any], error: Dict[str, Any]) -> Optional[Tuple[str, Optional[str]]]:
    """
    Fix the input value a validation error points at, in place.

    Out-of-range numbers are clamped to the violated bound; anything else
    is removed so the field falls back to its default. Returns the dotted
    path and the substituted value, or None if nothing could be changed.
    """
    parent, key, path = None, None, []
    container: Any = data
    for part in error["loc"]:
        if isinstance(part, int):
            # Items of a sequence are repaired individually
            return None
        if not isinstance(container, dict):
            break
        found = _find_key(container, part)
        if found is None:
            break
        parent, key = container, found
        path.append(found)
        container = container[found]
    if parent is None:
        return None

    bound = _BOUND_ERRORS.get(error["type"])
    limit = (error.get("ctx") or {}).get(bound) if bound else None
    if isinstance(limit, (int, float)) and parent[key] != limit:
        parent[key] = limit
        return ".".join(path), str(limit)

    del parent[key]
    return ".".join(path), None


class TemplateCodec:
    """Serializes and parses template documents."""

    # ============================================================
    # Save
    # ============================================================

    def save(
        self,
        state: EditorState,
        name: str,
        description: Optional[str] = None,
        dimension_mode: DimensionMode = DimensionMode.ADAPTIVE,
        current_dimensions: Optional[ImageSize] = None,
    ) -> Template:
        """
        Snapshot ``state`` as a template.

        Predefined mode freezes ``current_dimensions`` (required); adaptive
        mode omits them.

        Raises:
            ValueError: If predefined mode is requested without dimensions
        """
        predefined = None
        if dimension_mode == DimensionMode.PREDEFINED:
            if current_dimensions is None:
                raise ValueError("predefined templates need the current image dimensions")
            predefined = ImageSize(width=current_dimensions.width, height=current_dimensions.height)

        return Template(
            version=TEMPLATE_VERSION,
            name=name,
            description=description,
            dimension_mode=dimension_mode,
            predefined_dimensions=predefined,
            transformations=strip_ui_only(state),
            metadata=TemplateMetadata(created_at=datetime.now(timezone.utc)),
        )

    def dumps(self, template: Template, indent: Optional[int] = 2) -> str:
        """JSON text of a template (camelCase keys, unset optionals omitted)."""
        return template.model_dump_json(by_alias=True, exclude_none=True, indent=indent)

    # ============================================================
    # Load
    # ============================================================

    def load(self, raw: Union[str, bytes, Dict[str, Any]]) -> TemplateLoadResult:
        """
        Parse a template document, repairing what can be repaired.

        Never raises for bad input; see TemplateLoadResult.
        """
        data = self._parse(raw)
        if isinstance(data, TemplateWarning):
            logger.warning(f"Template rejected: {data.message}")
            return TemplateLoadResult(success=False, warnings=[data])

        warnings: List[TemplateWarning] = []

        version = data.get("version")
        if version != TEMPLATE_VERSION:
            warnings.append(TemplateWarning(
                type=TemplateWarningType.VERSION_MISMATCH,
                message=f"Template version '{version}' differs from supported version '{TEMPLATE_VERSION}'",
            ))

        transformations = self._clean_state(data["transformations"], "transformations", warnings)
        mode, predefined = self._resolve_dimension_mode(data, transformations, warnings)

        metadata = data.get("metadata")
        try:
            metadata = TemplateMetadata.model_validate(metadata)
        except ValidationError:
            metadata = TemplateMetadata(created_at=datetime.now(timezone.utc))

        description = data.get("description")
        if description is not None and not isinstance(description, str):
            description = None

        try:
            template = Template.model_validate({
                "version": str(version) if version is not None else TEMPLATE_VERSION,
                "name": data["name"],
                "description": description,
                "dimension_mode": mode,
                "predefined_dimensions": predefined,
                "transformations": transformations,
                "metadata": metadata,
            })
        except ValidationError as e:
            logger.warning(f"Template failed validation: {e.error_count()} error(s)")
            return TemplateLoadResult(
                success=False,
                warnings=[TemplateWarning(
                    type=TemplateWarningType.INVALID_JSON,
                    message=f"Template contents are invalid: {e.errors()[0]['msg']}",
                )],
            )

        for warning in warnings:
            logger.warning(f"Template '{template.name}': {warning.message}")

        return TemplateLoadResult(
            success=True,
            warnings=warnings,
            template=template,
            applied_state=apply_template(template),
        )

    def _parse(self, raw: Union[str, bytes, Dict[str, Any]]) -> Union[Dict[str, Any], TemplateWarning]:
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except (ValueError, UnicodeDecodeError) as e:
                return TemplateWarning(type=TemplateWarningType.INVALID_JSON, message=f"Invalid JSON: {e}")

        if not isinstance(raw, dict):
            return TemplateWarning(
                type=TemplateWarningType.INVALID_JSON,
                message="Template must be a JSON object",
            )

        missing = [
            field for field in ("name", "transformations")
            if raw.get(field) in (None, "")
        ]
        if missing:
            return TemplateWarning(
                type=TemplateWarningType.INVALID_JSON,
                message=f"Missing required field(s): {', '.join(missing)}",
            )
        if not isinstance(raw["name"], str):
            return TemplateWarning(
                type=TemplateWarningType.INVALID_JSON,
                message="name must be a string",
            )
        if not isinstance(raw["transformations"], dict):
            return TemplateWarning(
                type=TemplateWarningType.INVALID_JSON,
                message="transformations must be an object",
            )
        return raw

    def _clean_state(self, raw: Dict[str, Any], where: str, warnings: List[TemplateWarning]) -> Dict[str, Any]:
        """Strip UI-only keys, repair the layer list and reset invalid fields, recursively."""
        state = {
            key: value for key, value in raw.items()
            if key not in ("visualCropEnabled", "visual_crop_enabled")
        }

        raw_layers = state.pop("layers", None)
        if raw_layers is not None and not isinstance(raw_layers, list):
            warnings.append(TemplateWarning(
                type=TemplateWarningType.MISSING_LAYER,
                message=f"{where}: layers is not a list and was ignored",
            ))
        elif raw_layers is not None:
            state["layers"] = self._clean_layers(raw_layers, where, warnings)

        repaired = self._repair(EditorState, state, where, warnings)
        return state if repaired is None else repaired

    def _clean_layers(self, raw_layers: List[Any], where: str, warnings: List[TemplateWarning]) -> List[Dict[str, Any]]:
        layers = []
        seen = set()
        for index, entry in enumerate(raw_layers):
            layer_id = entry.get("id") if isinstance(entry, dict) else None
            if not isinstance(layer_id, str) or not layer_id:
                warnings.append(TemplateWarning(
                    type=TemplateWarningType.MISSING_LAYER,
                    message=f"{where}: layer #{index} has no id and was dropped",
                ))
                continue
            if layer_id in seen:
                warnings.append(TemplateWarning(
                    type=TemplateWarningType.MISSING_LAYER,
                    message=f"{where}: duplicate layer '{layer_id}' was dropped",
                ))
                continue

            layer = dict(entry)
            transforms = layer.get("transforms")
            if transforms is not None and not isinstance(transforms, dict):
                warnings.append(TemplateWarning(
                    type=TemplateWarningType.MISSING_LAYER,
                    message=f"{where}: layer '{layer_id}' has unreadable transforms and was dropped",
                ))
                continue
            if transforms is not None:
                layer["transforms"] = self._clean_state(transforms, f"{where} > {layer_id}", warnings)

            blend_key = "blendMode" if "blendMode" in layer else "blend_mode"
            blend = layer.get(blend_key)
            if blend is not None and blend not in BLEND_MODE_VALUES:
                warnings.append(TemplateWarning(
                    type=TemplateWarningType.INVALID_FILTER,
                    message=f"{where}: layer '{layer_id}' has unknown blend mode '{blend}'",
                    substitution=BlendMode.NORMAL.value,
                ))
                layer[blend_key] = BlendMode.NORMAL.value

            layer = self._repair(Layer, layer, f"{where} > {layer_id}", warnings)
            if layer is None:
                warnings.append(TemplateWarning(
                    type=TemplateWarningType.MISSING_LAYER,
                    message=f"{where}: layer '{layer_id}' is invalid and was dropped",
                ))
                continue

            seen.add(layer_id)
            layers.append(layer)
        return layers

    def _repair(
        self,
        model: Type[BaseModel],
        data: Dict[str, Any],
        where: str,
        warnings: List[TemplateWarning],
    ) -> Optional[Dict[str, Any]]:
        """
        Validate ``data`` against ``model``, fixing the offending fields.

        Each invalid value is clamped or reset to its default and reported
        as an invalid-filter warning. Returns the repaired copy, or None if
        the record cannot be made valid.
        """
        for _ in range(MAX_REPAIR_PASSES):
            try:
                model.model_validate(data)
                return data
            except ValidationError as e:
                errors = e.errors()

            data = copy.deepcopy(data)
            changed = False
            for error in errors:
                fixed = _repair_value(data, error)
                if fixed is None:
                    continue
                path, substitution = fixed
                changed = True
                outcome = "reset to default" if substitution is None else f"clamped to {substitution}"
                warnings.append(TemplateWarning(
                    type=TemplateWarningType.INVALID_FILTER,
                    message=f"{where}: invalid {path} ({error['msg']}), {outcome}",
                    substitution=substitution,
                ))
            if not changed:
                return None
        return None

    def _resolve_dimension_mode(self, data: Dict[str, Any], transformations: Dict[str, Any], warnings: List[TemplateWarning]):
        """
        Returns (mode, predefined dimensions or None).

        A predefined template without usable dimensions falls back to the
        width/height stored in its transformations, then to adaptive.
        """
        mode = _get(data, "dimensionMode", "dimension_mode", DimensionMode.ADAPTIVE.value)
        if mode not in (DimensionMode.ADAPTIVE.value, DimensionMode.PREDEFINED.value):
            warnings.append(TemplateWarning(
                type=TemplateWarningType.INVALID_FILTER,
                message=f"Unknown dimension mode '{mode}'",
                substitution=DimensionMode.ADAPTIVE.value,
            ))
            return DimensionMode.ADAPTIVE, None

        if mode == DimensionMode.ADAPTIVE.value:
            return DimensionMode.ADAPTIVE, None

        for candidate in (
            _get(data, "predefinedDimensions", "predefined_dimensions"),
            transformations.get("dimensions"),
        ):
            if isinstance(candidate, dict):
                try:
                    return DimensionMode.PREDEFINED, ImageSize.model_validate(
                        {"width": candidate.get("width"), "height": candidate.get("height")}
                    )
                except ValidationError:
                    continue

        warnings.append(TemplateWarning(
            type=TemplateWarningType.INVALID_FILTER,
            message="Predefined template has no usable dimensions",
            substitution=DimensionMode.ADAPTIVE.value,
        ))
        return DimensionMode.ADAPTIVE, None


# Global codec instance
template_codec = TemplateCodec()
