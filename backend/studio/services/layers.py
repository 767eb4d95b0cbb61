"""
Layer tree operations and context navigation.

Every operation is a pure function over EditorState: the tree is rebuilt
along the addressed path (copy-on-write) and untouched branches are shared
with the previous state.

A context path is a sequence of layer ids naming the chain of nested layers
currently being edited; the empty path is the root composition. Reads
tolerate stale paths (e.g. after a layer was deleted) by truncating at the
last resolvable id. Writes through a stale path raise LayerNotFoundError.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from studio.models.base import revise
from studio.models.state import EditorState, ImageSize, Layer

logger = logging.getLogger(__name__)

ContextPath = Tuple[str, ...]


class LayerNotFoundError(LookupError):
    """Raised when a layer id or context path does not resolve."""

    def __init__(self, layer_id: str, context_path: Sequence[str] = ()):
        self.layer_id = layer_id
        self.context_path = tuple(context_path)
        super().__init__(
            f"Layer '{layer_id}' not found at context {'/'.join(self.context_path) or '<root>'}"
        )


@dataclass(frozen=True)
class Breadcrumb:
    """One resolved step of a context path."""
    id: str
    name: str


# ============================================================
# Lookup
# ============================================================

def _find(layers: Iterable[Layer], layer_id: str) -> Optional[Layer]:
    for layer in layers:
        if layer.id == layer_id:
            return layer
    return None


def resolve_context_path(state: EditorState, path: Sequence[str]) -> ContextPath:
    """Return the longest prefix of ``path`` that resolves from the root."""
    resolved: List[str] = []
    current = state
    for layer_id in path:
        layer = _find(current.layers, layer_id)
        if layer is None:
            break
        resolved.append(layer_id)
        current = layer.transforms
    return tuple(resolved)


def state_at_context(state: EditorState, path: Sequence[str]) -> EditorState:
    """
    Return the composition addressed by ``path``.

    Stale paths resolve to the deepest reachable composition.
    """
    current = state
    for layer_id in path:
        layer = _find(current.layers, layer_id)
        if layer is None:
            break
        current = layer.transforms
    return current


def layers_at_context(state: EditorState, path: Sequence[str]) -> Tuple[Layer, ...]:
    """Layer list of the composition addressed by ``path``."""
    return state_at_context(state, path).layers


def find_layer(state: EditorState, path: Sequence[str], layer_id: str) -> Optional[Layer]:
    """Find a layer by id in the list at ``path``."""
    return _find(layers_at_context(state, path), layer_id)


def resolve_breadcrumbs(state: EditorState, path: Sequence[str]) -> List[Breadcrumb]:
    """
    Resolve a context path into named breadcrumbs.

    Walks from the root layer list; for each id records the matching
    layer's name and descends into its own layers. Stops early, without
    error, at the first id that cannot be resolved.
    """
    crumbs: List[Breadcrumb] = []
    layers = state.layers
    for layer_id in path:
        layer = _find(layers, layer_id)
        if layer is None:
            logger.debug(f"Breadcrumb resolution stopped at stale id '{layer_id}'")
            break
        crumbs.append(Breadcrumb(id=layer.id, name=layer.name))
        layers = layer.transforms.layers
    return crumbs


# ============================================================
# Copy-on-write Updates
# ============================================================

def _update_at_path(
    state: EditorState,
    path: Sequence[str],
    fn: Callable[[EditorState], EditorState],
    walked: Tuple[str, ...] = (),
) -> EditorState:
    if not path:
        return fn(state)

    head, rest = path[0], path[1:]
    layer = _find(state.layers, head)
    if layer is None:
        raise LayerNotFoundError(head, walked)

    new_transforms = _update_at_path(layer.transforms, rest, fn, walked + (head,))
    new_layer = layer.model_copy(update={"transforms": new_transforms})
    new_layers = tuple(new_layer if item.id == head else item for item in state.layers)
    return state.model_copy(update={"layers": new_layers})


def generate_layer_id(existing: Iterable[str]) -> str:
    """Generate a layer id not present in ``existing``."""
    taken = set(existing)
    while True:
        candidate = f"layer-{uuid4().hex[:6]}"
        if candidate not in taken:
            return candidate


def add_layer(state: EditorState, path: Sequence[str], layer: Layer) -> Tuple[EditorState, str]:
    """
    Append ``layer`` on top of the list addressed by ``path``.

    The layer always receives a fresh id unique among its new siblings.

    Returns:
        Tuple of (new state, id assigned to the layer)
    """
    assigned: List[str] = []

    def _append(target: EditorState) -> EditorState:
        layer_id = generate_layer_id(target.layer_ids)
        assigned.append(layer_id)
        return target.model_copy(
            update={"layers": target.layers + (layer.model_copy(update={"id": layer_id}),)}
        )

    new_state = _update_at_path(state, path, _append)
    logger.debug(f"Added layer {assigned[0]} at context {tuple(path)}")
    return new_state, assigned[0]


def update_layer(state: EditorState, path: Sequence[str], layer_id: str, **changes) -> EditorState:
    """Replace fields of one layer. Changes are validated; the id cannot change."""
    changes.pop("id", None)

    def _update(target: EditorState) -> EditorState:
        layer = _find(target.layers, layer_id)
        if layer is None:
            raise LayerNotFoundError(layer_id, path)
        updated = revise(layer, **changes)
        return target.model_copy(
            update={"layers": tuple(updated if item.id == layer_id else item for item in target.layers)}
        )

    return _update_at_path(state, path, _update)


def remove_layer(state: EditorState, path: Sequence[str], layer_id: str) -> EditorState:
    """Remove one layer (and its whole sub-composition)."""

    def _remove(target: EditorState) -> EditorState:
        if _find(target.layers, layer_id) is None:
            raise LayerNotFoundError(layer_id, path)
        return target.model_copy(
            update={"layers": tuple(item for item in target.layers if item.id != layer_id)}
        )

    return _update_at_path(state, path, _remove)


def move_layer(state: EditorState, path: Sequence[str], layer_id: str, new_index: int) -> EditorState:
    """Move a layer to ``new_index`` within its list (clamped to the list bounds)."""

    def _move(target: EditorState) -> EditorState:
        layer = _find(target.layers, layer_id)
        if layer is None:
            raise LayerNotFoundError(layer_id, path)
        remaining = [item for item in target.layers if item.id != layer_id]
        index = min(max(0, new_index), len(remaining))
        remaining.insert(index, layer)
        return target.model_copy(update={"layers": tuple(remaining)})

    return _update_at_path(state, path, _move)


def duplicate_layer(state: EditorState, path: Sequence[str], layer_id: str) -> Tuple[EditorState, str]:
    """Insert a copy of a layer directly above the original."""
    assigned: List[str] = []

    def _duplicate(target: EditorState) -> EditorState:
        layer = _find(target.layers, layer_id)
        if layer is None:
            raise LayerNotFoundError(layer_id, path)
        copy_id = generate_layer_id(target.layer_ids)
        assigned.append(copy_id)
        copy = layer.model_copy(update={"id": copy_id, "name": f"{layer.name} (copy)".strip()})
        layers = list(target.layers)
        layers.insert(layers.index(layer) + 1, copy)
        return target.model_copy(update={"layers": tuple(layers)})

    new_state = _update_at_path(state, path, _duplicate)
    return new_state, assigned[0]


def update_context_state(state: EditorState, path: Sequence[str], **changes) -> EditorState:
    """Apply validated changes to the composition addressed by ``path``."""
    return _update_at_path(state, path, lambda target: revise(target, **changes))


def clamp_crops(state: EditorState, original: Optional[ImageSize]) -> EditorState:
    """
    Clamp every crop box in the tree to the image it applies to.

    The root crop is clamped to ``original`` and each layer's crop to that
    layer's own original dimensions. Crops over an image of unknown size
    are kept as they are. Returns ``state`` itself when nothing changed.
    """
    crop = state.crop
    if crop is not None and original is not None:
        crop = crop.clamped(original.width, original.height)

    changed = crop != state.crop
    new_layers = []
    for layer in state.layers:
        transforms = clamp_crops(layer.transforms, layer.original_dimensions)
        if transforms is not layer.transforms:
            layer = layer.model_copy(update={"transforms": transforms})
            changed = True
        new_layers.append(layer)

    if not changed:
        return state
    return state.model_copy(update={"crop": crop, "layers": tuple(new_layers)})


# ============================================================
# Context Navigation
# ============================================================

class ContextNavigator:
    """
    Stack of layer ids identifying the composition being edited.

    One navigator belongs to one editing session.
    """

    def __init__(self, path: Sequence[str] = ()):
        self._path: ContextPath = tuple(path)

    def get_context_path(self) -> ContextPath:
        return self._path

    def get_context_depth(self) -> int:
        return len(self._path)

    def switch_context(self, state: EditorState, layer_id: Optional[str]) -> bool:
        """
        Enter a child layer or go back up one level.

        Passing an id pushes it only if that layer exists at the current
        depth; passing None pops the last id. Both are no-ops otherwise.

        Returns:
            True if the path changed
        """
        if layer_id is None:
            if not self._path:
                return False
            self._path = self._path[:-1]
            return True

        if find_layer(state, self._path, layer_id) is None:
            logger.debug(f"Ignoring switch to unknown layer '{layer_id}' at {self._path}")
            return False

        self._path = self._path + (layer_id,)
        return True

    def reset(self) -> None:
        self._path = ()

    def prune(self, state: EditorState) -> bool:
        """Truncate the path to its resolvable prefix. Returns True if it changed."""
        resolved = resolve_context_path(state, self._path)
        if resolved == self._path:
            return False
        logger.info(f"Context path {self._path} truncated to {resolved}")
        self._path = resolved
        return True

    def breadcrumbs(self, state: EditorState) -> List[Breadcrumb]:
        return resolve_breadcrumbs(state, self._path)
