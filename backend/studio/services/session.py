"""
Editing sessions.

An EditorSession is the explicit context object for one image being
edited: it owns the state (through its history), the context navigator,
the zoom selector, the debounced URL re-encode and the debounced preview
render. Handlers dispatch pure updates to it; nothing about an editing
session lives in module-level state.
"""

import asyncio
import inspect
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Union

from studio.config import settings
from studio.models.state import EditorState, ImageSize, default_state
from studio.services.history import HistoryManager
from studio.services.layers import ContextNavigator, clamp_crops, state_at_context
from studio.services.render import RenderClient, RenderServiceError, build_render_params, render_client
from studio.services.scheduler import CancellationToken, Debouncer
from studio.services.url_state import encode_state, update_location_state
from studio.services.zoom import ZoomLevelSelector

logger = logging.getLogger(__name__)

StateUpdate = Union[EditorState, Callable[[EditorState], EditorState]]
Listener = Callable[[EditorState], None]


class SessionNotFoundError(LookupError):
    """Raised when a session id is unknown or expired."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session '{session_id}' does not exist or has expired")


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class EditorSession:
    """State container for one editing session (get / dispatch / subscribe)."""

    def __init__(
        self,
        session_id: str,
        image_path: str,
        original_dimensions: Optional[ImageSize] = None,
        initial_state: Optional[EditorState] = None,
        location_url: str = "",
        renderer: Optional[RenderClient] = None,
        ttl: Optional[timedelta] = None,
    ):
        self.session_id = session_id
        self.image_path = image_path
        self.original_dimensions = original_dimensions
        self.created_at = datetime.now(timezone.utc)
        self.expires_at = self.created_at + (ttl if ttl is not None else timedelta(hours=settings.session_ttl_hours))

        initial_state = initial_state or default_state(original_dimensions)
        self.history = HistoryManager(clamp_crops(initial_state, original_dimensions))
        self.navigator = ContextNavigator()
        self.zoom = ZoomLevelSelector()

        # Transient state shown while a control is being dragged
        self._draft: Optional[EditorState] = None
        self._listeners: List[Listener] = []

        self.location_url = location_url
        self.preview_url: Optional[str] = None
        self.preview_error: Optional[str] = None

        self._renderer = renderer or render_client
        self._preview_token: Optional[CancellationToken] = None
        self._preview_task: Optional[asyncio.Future] = None
        self._url_debouncer = Debouncer(f"{session_id[:8]}:url")
        self._preview_debouncer = Debouncer(f"{session_id[:8]}:preview")
        self._resize_debouncer = Debouncer(f"{session_id[:8]}:resize")

    # ============================================================
    # State Access
    # ============================================================

    @property
    def state(self) -> EditorState:
        return self._draft if self._draft is not None else self.history.current

    def get(self) -> EditorState:
        return self.state

    @property
    def context_path(self):
        return self.navigator.get_context_path()

    @property
    def context_state(self) -> EditorState:
        """The composition currently being edited."""
        return state_at_context(self.state, self.context_path)

    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) > self.expires_at

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with every new state. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ============================================================
    # Updates
    # ============================================================

    def dispatch(self, update: StateUpdate, commit: bool = True) -> EditorState:
        """
        Apply a pure update.

        ``update`` is either a full new state or a function of the current
        state. With ``commit=False`` the result is shown but not recorded in
        history; the next committed update (or ``commit_draft``) records it.
        """
        new_state = update(self.state) if callable(update) else update
        new_state = clamp_crops(new_state, self.original_dimensions)

        if commit:
            self._draft = None
            recorded = self.history.commit(new_state)
            if not recorded:
                logger.debug(f"Session {self.session_id}: update produced no change")
        else:
            self._draft = new_state

        self._after_change()
        return self.state

    def preview(self, update: StateUpdate) -> EditorState:
        """Transient update for continuous controls; see ``dispatch``."""
        return self.dispatch(update, commit=False)

    def commit_draft(self) -> EditorState:
        """Record the transient state (control released)."""
        if self._draft is None:
            return self.state
        return self.dispatch(self._draft)

    def undo(self) -> bool:
        self._draft = None
        if self.history.undo() is None:
            return False
        self._after_change()
        return True

    def redo(self) -> bool:
        self._draft = None
        if self.history.redo() is None:
            return False
        self._after_change()
        return True

    def switch_context(self, layer_id: Optional[str]) -> bool:
        """Enter a child layer, or go up one level with None."""
        return self.navigator.switch_context(self.state, layer_id)

    def reset(self, state: Optional[EditorState] = None) -> EditorState:
        """Start over from ``state`` (default: a fresh state for the image)."""
        self._draft = None
        self.history.reset(clamp_crops(state or default_state(self.original_dimensions), self.original_dimensions))
        self.navigator.reset()
        self._after_change()
        return self.state

    def _after_change(self) -> None:
        state = self.state
        self.navigator.prune(state)
        for listener in list(self._listeners):
            listener(state)
        self._schedule(self._url_debouncer, self.sync_url, settings.url_debounce_seconds)
        self._schedule(self._preview_debouncer, self.render_preview, settings.preview_debounce_seconds)

    def _schedule(self, debouncer: Debouncer, fn: Callable, delay: float) -> None:
        # Without an event loop (plain synchronous use) only the URL sync
        # runs, immediately; previews need the loop.
        if _loop_running():
            debouncer.schedule(fn, delay)
        elif not inspect.iscoroutinefunction(fn):
            fn()

    # ============================================================
    # URL / Viewer Sync
    # ============================================================

    @property
    def encoded_state(self) -> str:
        return encode_state(self.state)

    def sync_url(self) -> bool:
        """Re-encode the state into the location URL. Returns True if it changed."""
        new_url, changed = update_location_state(self.location_url, self.encoded_state)
        if changed:
            self.location_url = new_url
            logger.debug(f"Session {self.session_id}: location updated")
        return changed

    def report_scale(self, live_scale: float) -> None:
        """Viewer reports its current preview-to-output scale (debounced on resize)."""
        if _loop_running():
            self._resize_debouncer.schedule(lambda: self.zoom.measure(live_scale), settings.resize_debounce_seconds)
        else:
            self.zoom.measure(live_scale)

    # ============================================================
    # Preview Rendering
    # ============================================================

    async def render_preview(self) -> Optional[str]:
        """
        Ask the renderer for a preview URL of the current state.

        Starting a new render cancels the request still in flight for the
        previous one; a superseded result is dropped.
        """
        self._cancel_preview()
        token = CancellationToken()
        self._preview_token = token

        params = build_render_params(
            self.state,
            original=self.original_dimensions,
            for_preview=True,
            preview_max=ImageSize(width=settings.preview_max_width, height=settings.preview_max_height),
        )
        task = asyncio.ensure_future(self._renderer.generate_url(self.image_path, params, token))
        self._preview_task = task
        try:
            url = await task
        except asyncio.CancelledError:
            if not token.cancelled:
                raise
            logger.debug(f"Session {self.session_id}: superseded preview request cancelled")
            return None
        except RenderServiceError as e:
            if not token.cancelled:
                logger.warning(f"Session {self.session_id}: preview failed: {e.message}")
                self.preview_error = e.message
            return None
        finally:
            if self._preview_task is task:
                self._preview_task = None

        if url is None or token.cancelled:
            return None
        self.preview_url = url
        self.preview_error = None
        return url

    def _cancel_preview(self) -> None:
        if self._preview_token is not None:
            self._preview_token.cancel()
        if self._preview_task is not None and not self._preview_task.done():
            self._preview_task.cancel()
        self._preview_task = None

    async def flush(self) -> None:
        """Run pending URL and preview updates now and wait for them."""
        self._url_debouncer.flush()
        self._resize_debouncer.flush()
        self._preview_debouncer.flush()
        await self._preview_debouncer.drain()

    def close(self) -> None:
        """Cancel everything pending for this session."""
        self._url_debouncer.cancel()
        self._preview_debouncer.cancel()
        self._resize_debouncer.cancel()
        self._cancel_preview()
        self._listeners.clear()


class SessionRegistry:
    """In-memory registry of live editing sessions with TTL expiry."""

    def __init__(self, ttl_hours: Optional[float] = None, renderer: Optional[RenderClient] = None):
        self.ttl = timedelta(hours=ttl_hours if ttl_hours is not None else settings.session_ttl_hours)
        self._renderer = renderer
        self._sessions: Dict[str, EditorSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(
        self,
        image_path: str,
        original_dimensions: Optional[ImageSize] = None,
        initial_state: Optional[EditorState] = None,
        location_url: str = "",
    ) -> EditorSession:
        """Open a new editing session for an image."""
        session_id = str(uuid.uuid4())
        session = EditorSession(
            session_id=session_id,
            image_path=image_path,
            original_dimensions=original_dimensions,
            initial_state=initial_state,
            location_url=location_url,
            renderer=self._renderer,
            ttl=self.ttl,
        )
        self._sessions[session_id] = session
        logger.info(f"Created session {session_id} for {image_path}")
        return session

    def get(self, session_id: str) -> EditorSession:
        """
        Look up a live session.

        Raises:
            SessionNotFoundError: If the id is unknown or the session expired
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.is_expired:
            logger.warning(f"Session {session_id} has expired")
            self.delete(session_id)
            raise SessionNotFoundError(session_id)
        return session

    def delete(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        logger.info(f"Closed session {session_id}")
        return True

    def purge_expired(self) -> int:
        """Drop expired sessions. Returns how many were removed."""
        expired = [sid for sid, session in self._sessions.items() if session.is_expired]
        for session_id in expired:
            self.delete(session_id)
        return len(expired)

    def clear(self) -> None:
        for session_id in list(self._sessions):
            self.delete(session_id)


# Global registry instance
session_registry = SessionRegistry()
