"""
URL-embeddable encoding of EditorState.

Format: compact JSON (camelCase keys, default values omitted) encoded as
URL-safe base64 ('+' -> '-', '/' -> '_', padding stripped). UI-only fields
never reach the URL.

Shareable links carry the state as ``?state=<encoded>``; old links that
used the ``#<encoded>`` fragment are still readable.
"""

import base64
import binascii
import logging
from typing import Optional, Tuple
from urllib.parse import parse_qs, parse_qsl, urlencode, urlsplit, urlunsplit

from studio.models.state import EditorState

logger = logging.getLogger(__name__)

STATE_PARAM = "state"


def encode_state(state: EditorState) -> str:
    """Serialize state to a URL-safe string. Deterministic for equal states."""
    payload = state.model_dump_json(by_alias=True, exclude_defaults=True)
    encoded = base64.urlsafe_b64encode(payload.encode("utf-8"))
    return encoded.rstrip(b"=").decode("ascii")


def decode_state(encoded: Optional[str]) -> Optional[EditorState]:
    """
    Parse a string produced by ``encode_state``.

    Returns None for empty or malformed input instead of raising.
    """
    if not encoded or not encoded.strip():
        return None

    text = encoded.strip()
    padded = text + "=" * (-len(text) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        return EditorState.model_validate_json(raw)
    except (ValueError, TypeError, binascii.Error, UnicodeError) as e:
        logger.debug(f"Ignoring malformed URL state: {e}")
        return None


# ============================================================
# Location Integration
# ============================================================

def read_state_param(url: str) -> str:
    """
    Extract the encoded state from a URL.

    The ``state`` query parameter wins; the legacy fragment is the fallback.
    """
    parts = urlsplit(url)
    values = parse_qs(parts.query).get(STATE_PARAM)
    if values and values[0]:
        return values[0]
    return parts.fragment


def state_from_url(url: str) -> Optional[EditorState]:
    """Decode the state carried by a URL, if any."""
    return decode_state(read_state_param(url))


def update_location_state(url: str, encoded: str) -> Tuple[str, bool]:
    """
    Rewrite ``url`` to carry ``encoded`` as its state parameter.

    An empty ``encoded`` removes the parameter. Any legacy fragment is
    cleared. Callers should replace (not push) the location, and only when
    the second element, ``changed``, is True. A URL that already carries
    exactly this state is returned untouched, whatever the encoding of its
    other parameters.

    Returns:
        Tuple of (new url, changed)
    """
    parts = urlsplit(url)
    current = parse_qs(parts.query, keep_blank_values=True).get(STATE_PARAM, [])
    if not parts.fragment and current == ([encoded] if encoded else []):
        return url, False

    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != STATE_PARAM]
    if encoded:
        query.append((STATE_PARAM, encoded))

    new_url = urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), ""))
    return new_url, new_url != url
