"""
=============================================================================
GREETING APP
=============================================================================

A small application built on the engine, used by the CLI and the tests.

    GET  /greet    auth header → name lookup → "Hello, <name>"
    POST /name     store {"name": ...} in the caller's session
    GET  /stats    how many greetings were served (global scope)

    ┌─────────────────────────────────────────────────────────────────────┐
    │   GET /greet                                                        │
    │                                                                      │
    │   check_auth_header ──► load_name ──► respond_greeting ──► 200      │
    │          │                  │                                        │
    │          └───── Fail ───────┴──► send_unauthorized                   │
    │                                   401 "Unauthorized"                │
    │                                   (other errors: default router)    │
    └─────────────────────────────────────────────────────────────────────┘

The name is looked up with Scope.AUTO, so a name stored in the session
wins over one stored globally:

    app.store.set(Scope.GLOBAL, "name", "Ada")
    app.route(RequestDescriptor.build("GET", "/greet", headers={"auth": "valid"}))
    → 200 "Hello, Ada"

=============================================================================
"""

from collections.abc import Mapping
from typing import Optional

from .config import EngineConfig
from .dispatcher import Dispatcher
from .errors import NotFound, Unauthorized, ValidationFailed
from .pipeline.error_router import DefaultErrorRouter, error_router
from .pipeline.outcome import CONTINUE, RESPOND, fail
from .pipeline.stage import stage
from .state.store import NOT_FOUND, Scope, StateStore


AUTH_HEADER = "auth"
VALID_TOKEN = "valid"


@stage
def check_auth_header(request, response, state):
    if request.get_header(AUTH_HEADER) != VALID_TOKEN:
        return fail(Unauthorized())
    return CONTINUE


@stage
def load_name(request, response, state):
    name = state.get("name")
    if name is NOT_FOUND:
        return fail(NotFound("No name stored"))
    state.set(Scope.REQUEST, "greeting_name", name)
    return CONTINUE


@stage(terminator=True)
def respond_greeting(request, response, state):
    response.text(f"Hello, {state.get('greeting_name', scope=Scope.REQUEST)}")
    state.update(Scope.GLOBAL, "greetings", lambda count: count + 1, default=0)
    return RESPOND


_fallback = DefaultErrorRouter()


@error_router
def send_unauthorized(error, request, response, state):
    if isinstance(error, Unauthorized):
        response.set_status(error.status).text("Unauthorized")
        return RESPOND
    return _fallback(error, request, response, state)


@stage
def parse_name(request, response, state):
    data = request.json
    name = data.get("name") if isinstance(data, Mapping) else None
    if not isinstance(name, str) or not name.strip():
        return fail(ValidationFailed("Body must be a JSON object with a non-empty 'name'"))
    if request.session_id is None:
        return fail(ValidationFailed("A session is required to store a name"))
    state.set(Scope.REQUEST, "new_name", name.strip())
    return CONTINUE


@stage(terminator=True)
def store_name(request, response, state):
    name = state.get("new_name", scope=Scope.REQUEST)
    state.set(Scope.SESSION, "name", name)
    response.set_status(201).json({"name": name, "session": request.session_id})
    return RESPOND


@stage(terminator=True)
def respond_stats(request, response, state):
    response.json({"greetings": state.get("greetings", scope=Scope.GLOBAL, default=0)})
    return RESPOND


def build_greeting_app(
    config: Optional[EngineConfig] = None,
    store: Optional[StateStore] = None,
) -> Dispatcher:
    """Create a Dispatcher with the greeting routes registered."""
    app = Dispatcher(config, store)

    app.register(
        "GET", "/greet",
        [check_auth_header, load_name, respond_greeting],
        send_unauthorized,
    )
    app.post("/name", parse_name, store_name)
    app.get("/stats", respond_stats)

    return app
