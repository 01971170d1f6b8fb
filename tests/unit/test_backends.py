"""
Unit tests for session backends.
"""

from typing import Any, Dict, Optional

from moa.state import NOT_FOUND, InMemorySessionBackend, Scope, SessionBackend, StateStore


class RecordingBackend(SessionBackend):
    """Backend that keeps sessions in a dict and records every call."""

    def __init__(self):
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.calls = []

    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("load", session_id))
        return self.sessions.get(session_id)

    def save(self, session_id: str, values: Dict[str, Any]) -> None:
        self.calls.append(("save", session_id))
        self.sessions[session_id] = values

    def delete(self, session_id: str) -> None:
        self.calls.append(("delete", session_id))
        self.sessions.pop(session_id, None)


class TestInMemorySessionBackend:
    """Tests for InMemorySessionBackend."""

    def test_load_unknown_session(self):
        """Test that an unknown session loads as None."""
        assert InMemorySessionBackend().load("nope") is None

    def test_save_load_delete(self):
        """Test the basic lifecycle."""
        backend = InMemorySessionBackend()
        backend.save("s1", {"name": "Ada"})

        assert "s1" in backend
        assert backend.load("s1") == {"name": "Ada"}

        backend.delete("s1")
        backend.delete("s1")
        assert "s1" not in backend
        assert len(backend) == 0

    def test_no_ttl_never_expires(self, clock):
        """Test that ttl=None keeps sessions forever."""
        backend = InMemorySessionBackend(ttl=None, clock=clock)
        backend.save("s1", {})

        clock.advance(10 ** 6)

        assert backend.load("s1") == {}
        assert backend.discard_expired() == 0

    def test_access_refreshes_idle_timer(self, clock):
        """Test that loading a session keeps it alive."""
        backend = InMemorySessionBackend(ttl=10, clock=clock)
        backend.save("s1", {})

        for _ in range(5):
            clock.advance(8)
            assert backend.load("s1") == {}

        clock.advance(11)
        assert backend.load("s1") is None

    def test_periodic_sweep_on_load(self, clock):
        """Test that loads sweep other expired sessions now and then."""
        backend = InMemorySessionBackend(ttl=5, cleanup_interval=60, clock=clock)
        backend.save("idle", {})
        backend.save("active", {})

        clock.advance(61)
        backend.load("active")

        assert "idle" not in backend


class TestCustomBackend:
    """Tests for plugging a custom backend into the store."""

    def test_store_uses_backend(self):
        """Test that session reads and writes go through the backend."""
        backend = RecordingBackend()
        store = StateStore(session_backend=backend)

        store.set(Scope.SESSION, "name", "Ada", session_id="s1")
        assert store.get(Scope.SESSION, "name", session_id="s1") == "Ada"
        store.clear_session("s1")

        assert ("save", "s1") in backend.calls
        assert ("delete", "s1") in backend.calls
        assert store.get(Scope.SESSION, "name", session_id="s1") is NOT_FOUND

    def test_default_discard_expired(self):
        """Test that a backend without expiry reports nothing purged."""
        store = StateStore(session_backend=RecordingBackend())

        assert store.purge_expired_sessions() == 0
