"""
Unit tests for the three-scope state store.
"""

import copy
import pytest

from moa.errors import MissingSessionContext
from moa.state import NOT_FOUND, InMemorySessionBackend, Scope, StateStore


class TestNotFound:
    """Tests for the NOT_FOUND sentinel."""

    def test_sentinel_is_falsy_singleton(self):
        """Test that the sentinel survives copying and is falsy."""
        assert not NOT_FOUND
        assert repr(NOT_FOUND) == "NOT_FOUND"
        assert copy.copy(NOT_FOUND) is NOT_FOUND
        assert copy.deepcopy(NOT_FOUND) is NOT_FOUND


class TestStateStoreReads:
    """Tests for reading and scope resolution."""

    def test_missing_key_is_not_found(self, store: StateStore):
        """Test that absence is a value, not an error."""
        assert store.get(Scope.GLOBAL, "missing") is NOT_FOUND
        assert store.get(Scope.SESSION, "missing", session_id="s1") is NOT_FOUND
        assert store.get(Scope.AUTO, "missing") is NOT_FOUND

    def test_session_read_without_session_id(self, store: StateStore):
        """Test that a session read with no session id yields NOT_FOUND."""
        assert store.get(Scope.SESSION, "name") is NOT_FOUND

    def test_auto_resolution_order(self, store: StateStore):
        """Test request → session → global resolution."""
        store.set(Scope.GLOBAL, "name", "global")
        state = store.scoped("s1")
        assert state.get("name") == "global"

        store.set(Scope.SESSION, "name", "session", session_id="s1")
        assert state.get("name") == "session"

        state.set(Scope.REQUEST, "name", "request")
        assert state.get("name") == "request"

    def test_auto_skips_session_without_id(self, store: StateStore):
        """Test that AUTO falls through to global when there is no session."""
        store.set(Scope.SESSION, "name", "session", session_id="s1")
        store.set(Scope.GLOBAL, "name", "global")

        assert store.scoped(None).get("name") == "global"

    def test_explicit_scope_reads_only_that_scope(self, store: StateStore):
        """Test that naming a scope disables fallback."""
        store.set(Scope.GLOBAL, "name", "global")
        state = store.scoped("s1")

        assert state.get("name", scope=Scope.SESSION) is NOT_FOUND
        assert state.get("name", scope=Scope.REQUEST) is NOT_FOUND
        assert state.get("name", scope=Scope.GLOBAL) == "global"

    def test_default(self, store: StateStore):
        """Test ScopedState.get default."""
        assert store.scoped().get("missing", default=0) == 0


class TestStateStoreWrites:
    """Tests for writes, copies and deletes."""

    def test_auto_is_not_a_write_target(self, store: StateStore):
        """Test that writes must name a scope."""
        with pytest.raises(ValueError):
            store.set(Scope.AUTO, "key", 1)
        with pytest.raises(ValueError):
            store.update(Scope.AUTO, "key", lambda v: v)

    def test_session_write_without_session(self, store: StateStore):
        """Test MissingSessionContext for session writes with no id."""
        with pytest.raises(MissingSessionContext):
            store.set(Scope.SESSION, "name", "Ada")
        with pytest.raises(MissingSessionContext):
            store.scoped(None).set(Scope.SESSION, "name", "Ada")

    def test_request_write_outside_run(self, store: StateStore):
        """Test that request scope only exists inside a run."""
        with pytest.raises(ValueError):
            store.set(Scope.REQUEST, "key", 1)

    def test_values_are_copied_on_write(self, store: StateStore):
        """Test that mutating the original does not change the stored value."""
        profile = {"tags": ["a"]}
        store.set(Scope.GLOBAL, "profile", profile)
        profile["tags"].append("b")

        assert store.get(Scope.GLOBAL, "profile") == {"tags": ["a"]}

    def test_values_are_copied_on_read(self, store: StateStore):
        """Test that mutating a read result does not change the store."""
        store.set(Scope.SESSION, "cart", ["apple"], session_id="s1")
        cart = store.get(Scope.SESSION, "cart", session_id="s1")
        cart.append("pear")

        assert store.get(Scope.SESSION, "cart", session_id="s1") == ["apple"]

    def test_request_values_are_copied(self, store: StateStore):
        """Test copy semantics also hold for request scope."""
        state = store.scoped()
        items = [1]
        state.set(Scope.REQUEST, "items", items)
        items.append(2)
        state.get("items").append(3)

        assert state.get("items") == [1]

    def test_delete(self, store: StateStore):
        """Test deleting from each scope, including absent keys."""
        state = store.scoped("s1")
        state.set(Scope.REQUEST, "k", 1)
        state.set(Scope.SESSION, "k", 2)
        state.set(Scope.GLOBAL, "k", 3)

        state.delete(Scope.REQUEST, "k")
        assert state.get("k") == 2
        state.delete(Scope.SESSION, "k")
        assert state.get("k") == 3
        state.delete(Scope.GLOBAL, "k")
        assert state.get("k") is NOT_FOUND

        state.delete(Scope.GLOBAL, "never-set")

    def test_update(self, store: StateStore):
        """Test read-modify-write with a default."""
        assert store.update(Scope.GLOBAL, "hits", lambda n: n + 1, default=0) == 1
        assert store.update(Scope.GLOBAL, "hits", lambda n: n + 1, default=0) == 2

        state = store.scoped("s1")
        state.update(Scope.SESSION, "cart", lambda c: c + ["apple"], default=[])
        assert state.get("cart") == ["apple"]


class TestSessions:
    """Tests for session isolation and lifecycle."""

    def test_sessions_are_isolated(self, store: StateStore):
        """Test that one session never sees another's values."""
        store.set(Scope.SESSION, "name", "Ada", session_id="s1")

        assert store.get(Scope.SESSION, "name", session_id="s2") is NOT_FOUND
        assert store.scoped("s2").get("name") is NOT_FOUND

    def test_clear_session_is_idempotent(self, store: StateStore):
        """Test clearing a session twice, and an unknown one."""
        store.set(Scope.SESSION, "name", "Ada", session_id="s1")

        store.clear_session("s1")
        store.clear_session("s1")
        store.clear_session("unknown")

        assert store.get(Scope.SESSION, "name", session_id="s1") is NOT_FOUND

    def test_scoped_clear_session(self, store: StateStore):
        """Test log-out through the per-run view."""
        state = store.scoped("s1")
        state.set(Scope.SESSION, "name", "Ada")
        state.clear_session()

        assert state.get("name") is NOT_FOUND
        store.scoped(None).clear_session()

    def test_session_ttl(self, clock):
        """Test that idle sessions expire."""
        store = StateStore(session_backend=InMemorySessionBackend(ttl=30, clock=clock))
        store.set(Scope.SESSION, "name", "Ada", session_id="s1")

        clock.advance(20)
        assert store.get(Scope.SESSION, "name", session_id="s1") == "Ada"

        clock.advance(20)
        assert store.get(Scope.SESSION, "name", session_id="s1") == "Ada"

        clock.advance(31)
        assert store.get(Scope.SESSION, "name", session_id="s1") is NOT_FOUND

    def test_purge_expired_sessions(self, clock):
        """Test the explicit sweep."""
        store = StateStore(session_backend=InMemorySessionBackend(ttl=10, clock=clock))
        store.set(Scope.SESSION, "k", 1, session_id="s1")
        store.set(Scope.SESSION, "k", 1, session_id="s2")

        clock.advance(11)

        assert store.purge_expired_sessions() == 2

    def test_injected_empty_backend_is_used(self, clock):
        """Test a backend with no sessions yet is kept, not replaced."""
        backend = InMemorySessionBackend(ttl=10, clock=clock)
        store = StateStore(session_backend=backend)

        store.set(Scope.SESSION, "k", 1, session_id="s1")

        assert "s1" in backend
        assert len(backend) == 1

    def test_session_lock_requires_session(self, store: StateStore):
        """Test that the per-run session lock needs a session id."""
        with pytest.raises(MissingSessionContext):
            with store.scoped(None).session_lock():
                pass

        with store.scoped("s1").session_lock():
            store.set(Scope.SESSION, "k", 1, session_id="s1")

    def test_invalid_stripe_count(self):
        """Test that at least one lock is required."""
        with pytest.raises(ValueError):
            StateStore(lock_stripes=0)


class TestScopedState:
    """Tests for the per-run view."""

    def test_release_empties_request_scope(self, store: StateStore):
        """Test that release() drops request values only."""
        state = store.scoped("s1")
        state.set(Scope.REQUEST, "temp", 1)
        state.set(Scope.SESSION, "kept", 2)

        assert state.request_keys == ["temp"]
        state.release()

        assert state.request_keys == []
        assert state.get("temp") is NOT_FOUND
        assert state.get("kept") == 2

    def test_request_scopes_are_independent(self, store: StateStore):
        """Test that two runs never share request values."""
        first, second = store.scoped(), store.scoped()
        first.set(Scope.REQUEST, "user", "ada")

        assert second.get("user") is NOT_FOUND
