"""
=============================================================================
SESSION BACKENDS
=============================================================================

Where session-scoped values live between requests.

The StateStore only needs four operations from a backend, so anything
from a dict to an external key/value service can sit behind it:

    load(session_id)            → dict of the session's values, or None
    save(session_id, values)    → replace the session's values
    delete(session_id)          → forget the session (idempotent)
    discard_expired()           → optional housekeeping

The StateStore does all locking; a backend is only ever called while the
store holds that session's lock, so backends need no locking of their own
for per-session data.

=============================================================================
SESSION EXPIRY
=============================================================================

InMemorySessionBackend supports an idle TTL. Expiry is lazy (checked on
load) plus an occasional sweep, the same way a rate limiter sweeps idle
token buckets:

    t=0     save("s1", {...})        last_access = 0
    t=100   load("s1") → {...}       last_access = 100
    t=500   load("s1") → None        idle 400s > ttl 300s, dropped

=============================================================================
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import logging
import threading
import time


logger = logging.getLogger(__name__)


class SessionBackend(ABC):
    """Storage for session-scoped values, one dict per session id."""

    @abstractmethod
    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Return the session's values, or None if the session does not exist."""

    @abstractmethod
    def save(self, session_id: str, values: Dict[str, Any]) -> None:
        """Replace the session's values."""

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Remove the session. Deleting an unknown session is not an error."""

    def discard_expired(self) -> int:
        """Drop expired sessions. Returns how many were dropped."""
        return 0


@dataclass
class _SessionRecord:
    values: Dict[str, Any]
    last_access: float = field(default_factory=time.monotonic)


class InMemorySessionBackend(SessionBackend):
    """
    Process-local session storage with optional idle expiry.

    Args:
        ttl: Seconds of inactivity before a session expires.
             None means sessions live until cleared.
        cleanup_interval: Minimum seconds between full sweeps.
        clock: Time source (monotonic seconds). Injected by tests.
    """

    def __init__(
        self,
        ttl: Optional[float] = None,
        cleanup_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._sessions: Dict[str, _SessionRecord] = {}
        # Guards the dict itself; different sessions are loaded and saved
        # from different threads at the same time.
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def _expired(self, record: _SessionRecord, now: float) -> bool:
        return self.ttl is not None and now - record.last_access > self.ttl

    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        now = self._clock()
        with self._lock:
            if now - self._last_cleanup > self.cleanup_interval:
                self._sweep(now)

            record = self._sessions.get(session_id)
            if record is None:
                return None
            if self._expired(record, now):
                del self._sessions[session_id]
                logger.debug(f"Session {session_id} expired")
                return None

            record.last_access = now
            return record.values

    def save(self, session_id: str, values: Dict[str, Any]) -> None:
        with self._lock:
            self._sessions[session_id] = _SessionRecord(values, self._clock())

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def discard_expired(self) -> int:
        with self._lock:
            return self._sweep(self._clock())

    def _sweep(self, now: float) -> int:
        expired: List[str] = [
            sid for sid, record in self._sessions.items()
            if self._expired(record, now)
        ]
        for sid in expired:
            del self._sessions[sid]
        self._last_cleanup = now
        if expired:
            logger.debug(f"Discarded {len(expired)} expired session(s)")
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
