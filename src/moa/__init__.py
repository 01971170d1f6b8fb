"""
=============================================================================
MOA - Middleware-Oriented Request Pipelines
=============================================================================

A request-processing engine: requests are routed to ordered, immutable
pipelines of stages that share data through an explicit three-scope
State Store and report failures as values, not callbacks.

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         MOA ARCHITECTURE                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   hosting layer                                                      │
    │        │ RequestDescriptor                                           │
    │        ▼                                                             │
    │   ┌────────────┐  lookup   ┌──────────────────┐                      │
    │   │ Dispatcher │ ────────► │ PipelineRegistry │                      │
    │   └─────┬──────┘           └──────────────────┘                      │
    │         │ run                                                        │
    │         ▼                                                            │
    │   ┌──────────────────────────────────────────┐    ┌──────────────┐  │
    │   │ stage ──► stage ──► ... ──► terminator   │◄──►│  StateStore  │  │
    │   │    │         │                           │    │ request      │  │
    │   │    └── Fail ─┴──► error router           │    │ session      │  │
    │   └──────────────────────────────────────────┘    │ global       │  │
    │         │ ResponseDescriptor (sealed)             └──────────────┘  │
    │         ▼                                                            │
    │   hosting layer                                                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    moa/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m moa)
    ├── config.py            # EngineConfig dataclass
    ├── dispatcher.py        # Dispatcher: route() entry point
    ├── errors.py            # Exception taxonomy
    ├── events.py            # DispatchEvent, LoggingListener
    ├── demo.py              # Greeting app
    ├── http/                # Request/response descriptors
    ├── pipeline/            # Stages, outcomes, pipelines, registry
    ├── state/               # StateStore, session backends
    └── stages/              # Reusable stages (auth, rate limit, ...)

=============================================================================
QUICK START
=============================================================================

    from moa import Dispatcher, RequestDescriptor, RESPOND, stage

    app = Dispatcher()

    @stage(terminator=True)
    def hello(request, response, state):
        response.text("Hello, World!")
        return RESPOND

    app.get("/", hello)
    app.route(RequestDescriptor.build("GET", "/")).text_body
    # 'Hello, World!'

=============================================================================
"""

# http first: errors.py needs http.status_codes while the package loads
from .http import (
    Headers,
    HTTPStatus,
    RequestDescriptor,
    ResponseDescriptor,
)
from .errors import (
    AlreadyResponded,
    BadRequest,
    DuplicateRoute,
    EmptyPipeline,
    EngineContractError,
    ErrorRouterFailure,
    Forbidden,
    MissingSessionContext,
    MissingTerminator,
    MOAError,
    NotFound,
    OperationalError,
    RequestCancelled,
    StageContractError,
    TooManyRequests,
    Unauthorized,
    UnterminatedPipeline,
    ValidationFailed,
)
from .state import (
    NOT_FOUND,
    InMemorySessionBackend,
    Scope,
    ScopedState,
    SessionBackend,
    StateStore,
)
from .pipeline import (
    CONTINUE,
    RESPOND,
    CancellationToken,
    DefaultErrorRouter,
    ErrorRouter,
    FunctionStage,
    Pipeline,
    PipelineId,
    PipelineRegistry,
    Stage,
    StageOutcome,
    error_router,
    fail,
    stage,
)
from .config import EngineConfig
from .events import DispatchEvent, EventKind, LoggingListener
from .dispatcher import Dispatcher

__version__ = "1.0.0"

__all__ = [
    # Entry point
    "Dispatcher",
    "EngineConfig",
    # Descriptors
    "RequestDescriptor",
    "ResponseDescriptor",
    "Headers",
    "HTTPStatus",
    # State
    "StateStore",
    "ScopedState",
    "Scope",
    "NOT_FOUND",
    "SessionBackend",
    "InMemorySessionBackend",
    # Pipeline
    "Stage",
    "FunctionStage",
    "stage",
    "StageOutcome",
    "CONTINUE",
    "RESPOND",
    "fail",
    "ErrorRouter",
    "DefaultErrorRouter",
    "error_router",
    "Pipeline",
    "PipelineId",
    "PipelineRegistry",
    "CancellationToken",
    # Events
    "DispatchEvent",
    "EventKind",
    "LoggingListener",
    # Errors
    "MOAError",
    "OperationalError",
    "BadRequest",
    "ValidationFailed",
    "Unauthorized",
    "Forbidden",
    "NotFound",
    "TooManyRequests",
    "EngineContractError",
    "DuplicateRoute",
    "EmptyPipeline",
    "MissingTerminator",
    "UnterminatedPipeline",
    "AlreadyResponded",
    "MissingSessionContext",
    "StageContractError",
    "ErrorRouterFailure",
    "RequestCancelled",
]
