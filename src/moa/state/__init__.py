"""
Scoped state for pipeline runs.

    StateStore              global + session scopes, locking, copies
    ScopedState             one run's view: binds session id, owns request scope
    Scope                   AUTO / REQUEST / SESSION / GLOBAL
    NOT_FOUND               "no such key" sentinel
    SessionBackend          interface for session persistence
    InMemorySessionBackend  default backend with optional idle TTL
"""

from .backends import SessionBackend, InMemorySessionBackend
from .store import StateStore, ScopedState, Scope, NOT_FOUND

__all__ = [
    "StateStore",
    "ScopedState",
    "Scope",
    "NOT_FOUND",
    "SessionBackend",
    "InMemorySessionBackend",
]
