"""
Unit tests for editing sessions, debouncing and image metadata.
"""

import asyncio

import pytest
from PIL import Image

from studio.models.state import CropBox, EditorState, ImageSize, Layer
from studio.services.layers import add_layer, remove_layer
from studio.services.metadata import ImageMetadataService
from studio.services.render import RenderServiceError
from studio.services.scheduler import Debouncer
from studio.services.session import EditorSession, SessionNotFoundError, SessionRegistry
from studio.services.url_state import decode_state, read_state_param


class FakeRenderer:
    """Renderer stand-in that honours cancellation tokens and records cancelled calls."""

    def __init__(self, delay: float = 0, error: RenderServiceError = None):
        self.delay = delay
        self.error = error
        self.calls = []
        self.cancelled = []

    async def generate_url(self, image_path, params, token=None):
        self.calls.append((image_path, params))
        number = len(self.calls)
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled.append(number)
            raise
        if self.error is not None:
            raise self.error
        if token is not None and token.cancelled:
            return None
        return f"https://cdn.test/preview-{number}.webp"


@pytest.fixture
def session():
    session = EditorSession(
        session_id="test-session",
        image_path="photo.jpg",
        original_dimensions=ImageSize(width=800, height=600),
        location_url="https://app.test/editor?img=photo.jpg",
        renderer=FakeRenderer(),
    )
    yield session
    session.close()


class TestDebouncer:
    """Tests for Debouncer."""

    def test_only_last_call_runs(self):
        """Test that a burst collapses into its last call."""
        calls = []

        async def scenario():
            debouncer = Debouncer("test")
            for value in range(3):
                debouncer.schedule(lambda value=value: calls.append(value), 0.01)
            assert debouncer.pending is True
            await asyncio.sleep(0.05)
            assert debouncer.pending is False

        asyncio.run(scenario())

        assert calls == [2]

    def test_cancel(self):
        """Test that a cancelled call never runs."""
        calls = []

        async def scenario():
            debouncer = Debouncer("test")
            debouncer.schedule(lambda: calls.append(1), 0.01)
            assert debouncer.cancel() is True
            assert debouncer.cancel() is False
            await asyncio.sleep(0.03)

        asyncio.run(scenario())

        assert calls == []

    def test_flush_runs_coroutine_now(self):
        """Test flushing a pending coroutine function."""
        calls = []

        async def work():
            calls.append("ran")
            return "done"

        async def scenario():
            debouncer = Debouncer("test")
            debouncer.schedule(work, 10)
            task = debouncer.flush()
            assert await task == "done"
            assert debouncer.flush() is None

        asyncio.run(scenario())

        assert calls == ["ran"]

    def test_failed_task_does_not_propagate(self):
        """Test that drain survives a failing scheduled coroutine."""
        async def boom():
            raise RuntimeError("boom")

        async def scenario():
            debouncer = Debouncer("test")
            debouncer.schedule(boom, 0)
            await asyncio.sleep(0.01)
            await debouncer.drain()

        asyncio.run(scenario())


class TestEditorSessionUpdates:
    """Tests for dispatching updates without an event loop."""

    def test_initial_state_seeded_from_image(self, session):
        """Test the default state carries the image size."""
        assert session.state.dimensions.width == 800
        assert session.state.dimensions.height == 600
        assert session.history.can_undo is False

    def test_dispatch_state_and_function(self, session):
        """Test both update forms."""
        session.dispatch(session.state.model_copy(update={"h_flip": True}))
        session.dispatch(lambda state: state.rotated())

        assert session.state.h_flip is True
        assert session.state.rotation == 90
        assert session.history.size == 3

    def test_dispatch_syncs_location(self, session):
        """Test that the URL is re-encoded immediately outside an event loop."""
        session.dispatch(lambda state: state.rotated())

        assert "img=photo.jpg" in session.location_url
        assert decode_state(read_state_param(session.location_url)) == session.state

    def test_dispatch_clamps_crop(self, session):
        """Test that every written crop is clamped to the original image."""
        session.dispatch(lambda state: state.model_copy(update={"crop": CropBox(left=10, right=5000, bottom=9000)}))
        session.preview(lambda state: state.model_copy(update={"crop": CropBox(top=700, bottom=800)}))

        assert session.history.current.crop == CropBox(left=10, top=0, right=800, bottom=600)
        assert session.state.crop == CropBox(left=0, top=600, right=0, bottom=600)

    def test_initial_crop_clamped(self):
        """Test that a seeded state is clamped like any other write."""
        session = EditorSession(
            "test-session",
            "photo.jpg",
            original_dimensions=ImageSize(width=800, height=600),
            initial_state=EditorState(crop=CropBox(right=1000, bottom=1000)),
            renderer=FakeRenderer(),
        )

        assert session.state.crop == CropBox(left=0, top=0, right=800, bottom=600)

    def test_preview_is_not_recorded(self, session):
        """Test transient updates and committing them."""
        for brightness in (10, 20, 30):
            session.preview(
                lambda state, b=brightness: state.model_copy(
                    update={"effects": state.effects.model_copy(update={"brightness": b})}
                )
            )

        assert session.state.effects.brightness == 30
        assert session.history.size == 1

        session.commit_draft()

        assert session.history.size == 2
        assert session.history.current.effects.brightness == 30

    def test_undo_redo(self, session):
        """Test undo/redo return values."""
        assert session.undo() is False

        session.dispatch(lambda state: state.rotated())

        assert session.undo() is True
        assert session.state.rotation == 0
        assert session.redo() is True
        assert session.state.rotation == 90
        assert session.redo() is False

    def test_undo_discards_draft(self, session):
        """Test that undo drops an uncommitted drag."""
        session.dispatch(lambda state: state.rotated())
        session.preview(lambda state: state.rotated())

        session.undo()

        assert session.state.rotation == 0

    def test_subscribe(self, session):
        """Test listeners and unsubscribing."""
        seen = []
        unsubscribe = session.subscribe(seen.append)

        session.dispatch(lambda state: state.rotated())
        unsubscribe()
        session.dispatch(lambda state: state.rotated())

        assert [state.rotation for state in seen] == [90]

    def test_context_pruned_when_layer_removed(self, session):
        """Test that deleting the edited layer moves the context up."""
        state, layer_id = add_layer(session.state, (), Layer(id="overlay", image_path="logo.png"))
        session.dispatch(state)
        assert session.switch_context(layer_id) is True
        assert session.context_path == (layer_id,)

        session.dispatch(lambda state: remove_layer(state, (), layer_id))

        assert session.context_path == ()

    def test_reset(self, session):
        """Test starting over."""
        session.dispatch(lambda state: state.rotated())

        session.reset()

        assert session.state.rotation == 0
        assert session.history.size == 1

    def test_report_scale_without_loop(self, session):
        """Test that the live scale is measured immediately."""
        session.report_scale(0.4)

        assert session.zoom.fit_scale == 0.4


class TestEditorSessionPreview:
    """Tests for preview rendering."""

    def test_flush_renders_preview(self, session):
        """Test that a state change eventually yields a preview URL."""
        async def scenario():
            session.dispatch(lambda state: state.rotated())
            await session.flush()

        asyncio.run(scenario())

        assert session.preview_url == "https://cdn.test/preview-1.webp"
        assert session.preview_error is None
        image_path, params = session._renderer.calls[0]
        assert image_path == "photo.jpg"
        assert params.filters[-1].args == "webp"

    def test_superseded_preview_cancelled(self):
        """Test that a new render cancels the request in flight and keeps only the newest result."""
        renderer = FakeRenderer(delay=0.05)
        session = EditorSession("test-session", "photo.jpg", renderer=renderer)

        async def scenario():
            first = asyncio.ensure_future(session.render_preview())
            while not renderer.calls:
                await asyncio.sleep(0)
            second = await session.render_preview()
            return await first, second

        first, second = asyncio.run(scenario())

        assert renderer.cancelled == [1]
        assert first is None
        assert second == "https://cdn.test/preview-2.webp"
        assert session.preview_url == second
        assert session.preview_error is None

    def test_close_cancels_preview_in_flight(self):
        """Test that closing a session abandons its running preview request."""
        renderer = FakeRenderer(delay=0.05)
        session = EditorSession("test-session", "photo.jpg", renderer=renderer)

        async def scenario():
            pending = asyncio.ensure_future(session.render_preview())
            while not renderer.calls:
                await asyncio.sleep(0)
            session.close()
            return await pending

        assert asyncio.run(scenario()) is None
        assert renderer.cancelled == [1]
        assert session.preview_url is None

    def test_caller_cancellation_propagates(self):
        """Test that cancelling the render itself is not swallowed."""
        renderer = FakeRenderer(delay=0.05)
        session = EditorSession("test-session", "photo.jpg", renderer=renderer)

        async def scenario():
            pending = asyncio.ensure_future(session.render_preview())
            while not renderer.calls:
                await asyncio.sleep(0)
            pending.cancel()
            with pytest.raises(asyncio.CancelledError):
                await pending

        asyncio.run(scenario())

        assert renderer.cancelled == [1]

    def test_preview_error_recorded(self):
        """Test that renderer failures are surfaced on the session."""
        renderer = FakeRenderer(error=RenderServiceError("RENDER_UNAVAILABLE", "renderer down"))
        session = EditorSession("test-session", "photo.jpg", renderer=renderer)

        assert asyncio.run(session.render_preview()) is None
        assert session.preview_error == "renderer down"


class TestSessionRegistry:
    """Tests for SessionRegistry."""

    def test_create_get_delete(self):
        """Test the session lifecycle."""
        registry = SessionRegistry(ttl_hours=1)
        session = registry.create("photo.jpg", ImageSize(width=10, height=10))

        assert registry.get(session.session_id) is session
        assert len(registry) == 1
        assert registry.delete(session.session_id) is True
        assert registry.delete(session.session_id) is False

        with pytest.raises(SessionNotFoundError):
            registry.get(session.session_id)

    def test_expired_session(self):
        """Test that expired sessions are dropped on access."""
        registry = SessionRegistry(ttl_hours=-1)
        session = registry.create("photo.jpg")

        with pytest.raises(SessionNotFoundError):
            registry.get(session.session_id)
        assert len(registry) == 0

    def test_purge_expired(self):
        """Test bulk expiry."""
        registry = SessionRegistry(ttl_hours=-1)
        registry.create("a.jpg")
        registry.create("b.jpg")

        assert registry.purge_expired() == 2
        assert len(registry) == 0

    def test_initial_state(self):
        """Test opening a session from a restored state."""
        registry = SessionRegistry(ttl_hours=1)
        restored = EditorState(rotation=180)

        session = registry.create("photo.jpg", initial_state=restored)

        assert session.state == restored


class TestImageMetadataService:
    """Tests for reading image dimensions."""

    def test_reads_dimensions(self, tmp_path):
        """Test a real image header."""
        Image.new("RGB", (320, 200), "white").save(tmp_path / "photo.png")
        service = ImageMetadataService(base_dir=tmp_path)

        assert service.get_dimensions("photo.png") == ImageSize(width=320, height=200)
        assert service.get_dimensions(tmp_path / "photo.png") == ImageSize(width=320, height=200)

    def test_missing_file(self, tmp_path):
        """Test that missing files yield None."""
        assert ImageMetadataService(base_dir=tmp_path).get_dimensions("missing.png") is None

    def test_not_an_image(self, tmp_path):
        """Test that unreadable files yield None."""
        (tmp_path / "notes.txt").write_text("hello", encoding="utf-8")

        assert ImageMetadataService(base_dir=tmp_path).get_dimensions("notes.txt") is None
