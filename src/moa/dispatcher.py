"""
=============================================================================
DISPATCHER
=============================================================================

The single entry point the hosting layer calls: one RequestDescriptor in,
one sealed ResponseDescriptor out.

=============================================================================
REQUEST FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         Dispatcher.route()                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   RequestDescriptor                                                  │
    │         │                                                            │
    │         ▼                                                            │
    │   registry.lookup(method, path) ── none ──► 404 (not_found event)    │
    │         │                                                            │
    │         ▼                                                            │
    │   pipeline.run(request, store, token)                                │
    │         │                                                            │
    │         ├── response ──────────────────► as is (completed event)     │
    │         ├── RequestCancelled ──────────► 503 (cancelled event)       │
    │         └── ErrorRouterFailure ────────► 500 (fatal event)           │
    │                                          or re-raised when           │
    │                                          propagate_fatal is set      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

route() never raises for a request that merely failed. An unknown route
is an ordinary 404, not an exception.

=============================================================================
USAGE
=============================================================================

    dispatcher = Dispatcher()

    dispatcher.register("GET", "/greet",
                        [check_auth_header, load_name, respond_greeting],
                        send_unauthorized)

    # or, with the default error router:
    dispatcher.get("/health", respond_with(200, "ok"))

    response = dispatcher.route(RequestDescriptor.build("GET", "/greet"))

=============================================================================
"""

from typing import Iterable, List, Optional
import logging
import time

from .config import EngineConfig
from .errors import ErrorRouterFailure, RequestCancelled
from .events import DispatchEvent, EventKind, EventListener, access_timestamp
from .http.request import RequestDescriptor
from .http.response import ResponseDescriptor, error_response, not_found
from .http.status_codes import status_phrase
from .pipeline.cancellation import CancellationToken
from .pipeline.error_router import DefaultErrorRouter
from .pipeline.registry import PipelineId, PipelineRegistry
from .state.store import StateStore


logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Routes requests to registered pipelines.

    Args:
        config: Engine settings (validated here). Defaults to EngineConfig().
        store: State store shared by every pipeline. Defaults to a new
               in-memory store using config.session_ttl.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        store: Optional[StateStore] = None,
    ):
        self.config = config if config is not None else EngineConfig()
        self.config.validate()

        if store is None:
            store = StateStore(session_ttl=self.config.session_ttl)
        self._store = store
        self._registry = PipelineRegistry()
        self._listeners: List[EventListener] = []

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def registry(self) -> PipelineRegistry:
        return self._registry

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def default_error_router(self) -> DefaultErrorRouter:
        """A DefaultErrorRouter configured from this dispatcher's config."""
        return DefaultErrorRouter(
            fallback_status=self.config.fallback_status,
            fallback_message=self.config.fallback_message,
            body_format=self.config.error_body_format,
        )

    def register(
        self,
        method: str,
        path: str,
        stages: Iterable,
        error_stage=None,
    ) -> PipelineId:
        """
        Register a pipeline for (method, path).

        Raises DuplicateRoute, EmptyPipeline or MissingTerminator on a bad
        registration. When error_stage is None the default error router is
        used.
        """
        router = error_stage if error_stage is not None else self.default_error_router()
        return self._registry.register(method, path, stages, router)

    def replace(
        self,
        method: str,
        path: str,
        stages: Iterable,
        error_stage=None,
    ) -> PipelineId:
        """Like register(), but replaces an existing pipeline for the route."""
        router = error_stage if error_stage is not None else self.default_error_router()
        return self._registry.replace(method, path, stages, router)

    def unregister(self, method: str, path: str) -> bool:
        return self._registry.unregister(method, path)

    def routes(self) -> List[PipelineId]:
        return self._registry.routes()

    def get(self, path: str, *stages, error_router=None) -> PipelineId:
        return self.register("GET", path, stages, error_router)

    def post(self, path: str, *stages, error_router=None) -> PipelineId:
        return self.register("POST", path, stages, error_router)

    def put(self, path: str, *stages, error_router=None) -> PipelineId:
        return self.register("PUT", path, stages, error_router)

    def delete(self, path: str, *stages, error_router=None) -> PipelineId:
        return self.register("DELETE", path, stages, error_router)

    def patch(self, path: str, *stages, error_router=None) -> PipelineId:
        return self.register("PATCH", path, stages, error_router)

    # =========================================================================
    # EVENTS
    # =========================================================================

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: DispatchEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Event listener {listener!r} failed")

    # =========================================================================
    # ROUTING
    # =========================================================================

    def route(
        self,
        request: RequestDescriptor,
        cancel: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> ResponseDescriptor:
        """
        Handle one request.

        Args:
            request: The request to route
            cancel: Token the hosting layer fires on client disconnect
            timeout: Deadline in seconds when no token is given.
                     Falls back to config.request_timeout.

        Returns:
            A sealed response

        Raises:
            ErrorRouterFailure: Only when config.propagate_fatal is set
        """
        start_time = time.perf_counter()

        if cancel is None:
            deadline = timeout if timeout is not None else self.config.request_timeout
            if deadline is not None:
                cancel = CancellationToken(timeout=deadline)

        error: Optional[BaseException] = None
        reason: Optional[str] = None

        pipeline = self._registry.lookup(request.method, request.path)

        if pipeline is None:
            kind = EventKind.NOT_FOUND
            response = not_found(self.config.not_found_message, self.config.error_body_format)
        else:
            try:
                response = pipeline.run(request, self._store, cancel)
                kind = EventKind.COMPLETED
            except RequestCancelled as e:
                kind, reason = EventKind.CANCELLED, e.reason
                status = self.config.cancelled_status
                response = self._engine_response(status, status_phrase(status))
            except ErrorRouterFailure as e:
                logger.error(f"[{request.request_id}] {pipeline.name}: {e}")
                if self.config.propagate_fatal:
                    self._emit(self._event(
                        EventKind.FATAL, request, None, start_time, error=e,
                    ))
                    raise
                kind, error = EventKind.FATAL, e
                response = self._fatal_response()
            except Exception as e:
                # Outside the error router's reach (e.g. a session backend failing)
                logger.error(
                    f"[{request.request_id}] {pipeline.name}: "
                    f"{type(e).__name__} escaped the pipeline: {e}"
                )
                kind, error = EventKind.FATAL, e
                response = self._fatal_response()

        self._emit(self._event(kind, request, response, start_time, error=error, reason=reason))
        return response

    def _event(
        self,
        kind: EventKind,
        request: RequestDescriptor,
        response: Optional[ResponseDescriptor],
        start_time: float,
        error: Optional[BaseException] = None,
        reason: Optional[str] = None,
    ) -> DispatchEvent:
        if response is not None:
            status_code, content_length = int(response.status), len(response.body)
        else:
            status_code, content_length = int(self.config.fallback_status), 0

        return DispatchEvent(
            kind=kind,
            request_id=request.request_id,
            method=request.method,
            path=request.path,
            client_ip=request.client_address[0] or "-",
            session_id=request.session_id,
            status_code=status_code,
            content_length=content_length,
            duration_ms=(time.perf_counter() - start_time) * 1000,
            timestamp=access_timestamp(),
            error=error,
            reason=reason,
        )

    def _fatal_response(self) -> ResponseDescriptor:
        return self._engine_response(self.config.fallback_status, self.config.fallback_message)

    def _engine_response(self, status: int, message: str) -> ResponseDescriptor:
        """A sealed response the engine writes when no stage did."""
        return error_response(status, message, self.config.error_body_format)

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def serialize(self, response: ResponseDescriptor) -> bytes:
        """
        HTTP/1.1 wire bytes for a routed response, for hosting layers that
        write to a socket. The Server header defaults to config.server_name.
        """
        return response.to_bytes(server_name=self.config.server_name)
