"""
=============================================================================
STATE STORE
=============================================================================

Three scopes of key/value data, resolved by precedence.

=============================================================================
SCOPES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SCOPE LAYERS                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   get("theme", Scope.AUTO)                                          │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌──────────┐  hit?  ──► return                                    │
    │   │ REQUEST  │  one pipeline run, owned by one thread, no lock      │
    │   └────┬─────┘                                                       │
    │        ▼ miss                                                        │
    │   ┌──────────┐  hit?  ──► return                                    │
    │   │ SESSION  │  shared by runs with the same session id             │
    │   └────┬─────┘  (skipped when the request has no session)           │
    │        ▼ miss                                                        │
    │   ┌──────────┐  hit?  ──► return                                    │
    │   │ GLOBAL   │  shared by every run in the process                  │
    │   └────┬─────┘                                                       │
    │        ▼ miss                                                        │
    │     NOT_FOUND                                                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Reads may resolve automatically. Writes never do: every write names
exactly one scope.

=============================================================================
COPY SEMANTICS
=============================================================================

Values are deep-copied on the way in AND on the way out:

    cart = ["apple"]
    state.set(Scope.SESSION, "cart", cart)
    cart.append("pear")                   # store still holds ["apple"]

    got = state.get("cart")
    got.append("plum")                    # store still holds ["apple"]

Two stages can therefore never share a mutable object behind the
store's back. To change a stored value, write it back (or use update()).

=============================================================================
LOCKING
=============================================================================

    GLOBAL   one re-entrant lock
    SESSION  lock striping: session id → one of N re-entrant locks.
             Two runs with the same session id always take the same
             lock; unrelated sessions rarely collide. The stripe array
             never grows, so there is nothing to clean up when a
             session ends.
    REQUEST  none - only the run's own thread touches it

update() holds the lock across read → compute → write, so counters and
other read-modify-write sequences are atomic.

=============================================================================
"""

from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional
import copy
import logging
import threading
import zlib

from .backends import InMemorySessionBackend, SessionBackend
from ..errors import MissingSessionContext


logger = logging.getLogger(__name__)


class Scope(Enum):
    """Where a value lives. AUTO is only valid for reads."""

    AUTO = "auto"
    REQUEST = "request"
    SESSION = "session"
    GLOBAL = "global"


class _NotFound:
    """Sentinel for "no such key". Falsy, and distinct from a stored None."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


NOT_FOUND = _NotFound()

# Auto resolution order
_RESOLUTION_ORDER = (Scope.REQUEST, Scope.SESSION, Scope.GLOBAL)


class StateStore:
    """
    Global and session scopes, plus request-scope access for running pipelines.

    The store is constructed explicitly and handed to the Dispatcher; there
    is no module-level instance.

    Request scope belongs to a single run and is held by that run's
    ScopedState (see scoped()). The store's own methods take it as the
    ``request_values`` argument, which ScopedState fills in.

    Args:
        session_backend: Where session values are kept.
                         Defaults to an InMemorySessionBackend.
        session_ttl: Idle expiry for the default backend (seconds, None = never).
        lock_stripes: Number of session locks.
    """

    def __init__(
        self,
        session_backend: Optional[SessionBackend] = None,
        session_ttl: Optional[float] = None,
        lock_stripes: int = 64,
    ):
        if lock_stripes < 1:
            raise ValueError("lock_stripes must be >= 1")

        self._global: Dict[str, Any] = {}
        self._global_lock = threading.RLock()

        if session_backend is None:
            session_backend = InMemorySessionBackend(ttl=session_ttl)
        self._sessions = session_backend
        self._session_locks: List[threading.RLock] = [
            threading.RLock() for _ in range(lock_stripes)
        ]

    # =========================================================================
    # LOCKS
    # =========================================================================

    def _stripe(self, session_id: str) -> threading.RLock:
        # crc32 rather than hash(): stable across processes and PYTHONHASHSEED
        index = zlib.crc32(session_id.encode("utf-8")) % len(self._session_locks)
        return self._session_locks[index]

    @contextmanager
    def session_lock(self, session_id: str) -> Iterator[None]:
        """
        Hold a session's lock across several operations.

            with store.session_lock("s1"):
                total = store.get(Scope.SESSION, "total", "s1")
                store.set(Scope.SESSION, "total", total + 1, "s1")
        """
        with self._stripe(session_id):
            yield

    @contextmanager
    def global_lock(self) -> Iterator[None]:
        """Hold the global scope's lock across several operations."""
        with self._global_lock:
            yield

    # =========================================================================
    # READ
    # =========================================================================

    def get(
        self,
        scope: Scope,
        key: str,
        session_id: Optional[str] = None,
        request_values: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Read a value.

        Args:
            scope: An explicit scope, or Scope.AUTO for request → session → global
            key: Key to read
            session_id: Session of the current request, if any
            request_values: The running pipeline's request scope, if any

        Returns:
            A copy of the value, or NOT_FOUND. A missing key, a missing
            session and a missing session id all give NOT_FOUND.
        """
        scopes = _RESOLUTION_ORDER if scope is Scope.AUTO else (scope,)
        for candidate in scopes:
            value = self._read(candidate, key, session_id, request_values)
            if value is not NOT_FOUND:
                return value
        return NOT_FOUND

    def _read(
        self,
        scope: Scope,
        key: str,
        session_id: Optional[str],
        request_values: Optional[Dict[str, Any]],
    ) -> Any:
        """Read one scope, returning a private copy."""
        if scope is Scope.REQUEST:
            if request_values is None:
                return NOT_FOUND
            return copy.deepcopy(request_values.get(key, NOT_FOUND))

        if scope is Scope.SESSION:
            if session_id is None:
                return NOT_FOUND
            with self._stripe(session_id):
                values = self._sessions.load(session_id)
                if values is None:
                    return NOT_FOUND
                # Copy while still holding the lock
                return copy.deepcopy(values.get(key, NOT_FOUND))

        if scope is Scope.GLOBAL:
            with self._global_lock:
                return copy.deepcopy(self._global.get(key, NOT_FOUND))

        raise ValueError(f"Cannot read from {scope}")

    # =========================================================================
    # WRITE
    # =========================================================================

    def set(
        self,
        scope: Scope,
        key: str,
        value: Any,
        session_id: Optional[str] = None,
        request_values: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Write a copy of value into exactly one scope.

        Raises:
            ValueError: For Scope.AUTO, or REQUEST without a running pipeline.
            MissingSessionContext: For SESSION without a session id.
        """
        stored = copy.deepcopy(value)

        if scope is Scope.REQUEST:
            self._require_request(request_values)[key] = stored

        elif scope is Scope.SESSION:
            session_id = self._require_session(session_id, key)
            with self._stripe(session_id):
                values = dict(self._sessions.load(session_id) or {})
                values[key] = stored
                self._sessions.save(session_id, values)

        elif scope is Scope.GLOBAL:
            with self._global_lock:
                self._global[key] = stored

        else:
            raise ValueError("Writes must name an explicit scope, not AUTO")

    def update(
        self,
        scope: Scope,
        key: str,
        fn: Callable[[Any], Any],
        default: Any = None,
        session_id: Optional[str] = None,
        request_values: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Atomically replace a value with fn(current).

        ``current`` is a copy of the stored value, or ``default`` when the
        key is absent. The lock for the scope is held for the whole call,
        so concurrent updates of the same key never lose a write.

            hits = store.update(Scope.GLOBAL, "hits", lambda n: n + 1, default=0)

        Returns:
            A copy of the new value.
        """
        if scope is Scope.AUTO:
            raise ValueError("Writes must name an explicit scope, not AUTO")

        if scope is Scope.SESSION:
            session_id = self._require_session(session_id, key)
            lock = self._stripe(session_id)
        elif scope is Scope.GLOBAL:
            lock = self._global_lock
        else:
            self._require_request(request_values)
            lock = None

        def apply() -> Any:
            current = self._read(scope, key, session_id, request_values)
            if current is NOT_FOUND:
                current = default
            new_value = fn(current)
            self.set(scope, key, new_value, session_id, request_values)
            return copy.deepcopy(new_value)

        if lock is None:
            return apply()
        with lock:
            return apply()

    def delete(
        self,
        scope: Scope,
        key: str,
        session_id: Optional[str] = None,
        request_values: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Remove a key from one scope. Removing an absent key is a no-op."""
        if scope is Scope.REQUEST:
            self._require_request(request_values).pop(key, None)

        elif scope is Scope.SESSION:
            session_id = self._require_session(session_id, key)
            with self._stripe(session_id):
                values = self._sessions.load(session_id)
                if values is not None and key in values:
                    values = dict(values)
                    del values[key]
                    self._sessions.save(session_id, values)

        elif scope is Scope.GLOBAL:
            with self._global_lock:
                self._global.pop(key, None)

        else:
            raise ValueError("Writes must name an explicit scope, not AUTO")

    def clear_session(self, session_id: str) -> None:
        """Drop every value stored for a session. Idempotent."""
        with self._stripe(session_id):
            self._sessions.delete(session_id)
        logger.debug(f"Cleared session {session_id}")

    def purge_expired_sessions(self) -> int:
        """Ask the backend to drop expired sessions. Returns the count dropped."""
        return self._sessions.discard_expired()

    # =========================================================================
    # PER-RUN VIEW
    # =========================================================================

    def scoped(self, session_id: Optional[str] = None) -> "ScopedState":
        """Create the state view for one pipeline run."""
        return ScopedState(self, session_id)

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _require_request(request_values: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if request_values is None:
            raise ValueError("Request scope is only reachable through a ScopedState")
        return request_values

    @staticmethod
    def _require_session(session_id: Optional[str], key: str) -> str:
        if session_id is None:
            raise MissingSessionContext(key)
        return session_id


class ScopedState:
    """
    The store as one pipeline run sees it.

    Binds the run's session id and owns the run's request scope, so
    stages never pass either around:

        def load_name(request, response, state):
            name = state.get("name")                 # request → session → global
            state.set(Scope.REQUEST, "greeting_name", name)
            return CONTINUE

    The pipeline calls release() when the run ends, which empties the
    request scope.
    """

    def __init__(self, store: StateStore, session_id: Optional[str] = None):
        self._store = store
        self.session_id = session_id
        self._request: Dict[str, Any] = {}

    def get(self, key: str, scope: Scope = Scope.AUTO, default: Any = NOT_FOUND) -> Any:
        """Read a copy of a value, or ``default`` (NOT_FOUND unless given)."""
        value = self._store.get(scope, key, self.session_id, self._request)
        return default if value is NOT_FOUND else value

    def set(self, scope: Scope, key: str, value: Any) -> None:
        self._store.set(scope, key, value, self.session_id, self._request)

    def update(self, scope: Scope, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        return self._store.update(scope, key, fn, default, self.session_id, self._request)

    def delete(self, scope: Scope, key: str) -> None:
        self._store.delete(scope, key, self.session_id, self._request)

    def clear_session(self) -> None:
        """Clear the current session (log-out). No-op without a session."""
        if self.session_id is not None:
            self._store.clear_session(self.session_id)

    @contextmanager
    def session_lock(self) -> Iterator[None]:
        """Hold this run's session lock across several operations."""
        if self.session_id is None:
            raise MissingSessionContext("<session lock>")
        with self._store.session_lock(self.session_id):
            yield

    @property
    def request_keys(self) -> List[str]:
        return list(self._request)

    def release(self) -> None:
        """Drop everything in request scope. Called once the run is over."""
        self._request.clear()
