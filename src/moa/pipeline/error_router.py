"""
=============================================================================
ERROR ROUTER
=============================================================================

The one stage every Fail outcome is handed to.

=============================================================================
EXACTLY ONCE, ALWAYS RESPOND
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                   ERROR ROUTER STATE MACHINE                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │        ┌────────┐   Fail(error)   ┌──────────┐   RESPOND            │
    │        │  IDLE  │ ──────────────► │ HANDLING │ ──────────► done     │
    │        └────────┘                 └────┬─────┘                      │
    │                                        │                             │
    │                       CONTINUE / Fail / exception                   │
    │                                        ▼                             │
    │                              ErrorRouterFailure (fatal)             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The router never hands control back to the normal chain, so an error can
never loop back into the stages that raised it.

=============================================================================
OPERATIONAL VS UNEXPECTED
=============================================================================

    OperationalError("Unknown user", status=404)
        → 404 {"error": "Unknown user"}        message is safe to show

    KeyError('password_hash')
        → 500 {"error": "Internal Server Error"}
          the real exception goes to the log, never to the client

=============================================================================
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional, Union
import logging

from .outcome import RESPOND, StageOutcome
from ..errors import OperationalError, TooManyRequests
from ..http.request import RequestDescriptor
from ..http.response import ResponseDescriptor
from ..http.status_codes import HTTPStatus, resolve_status
from ..state.store import ScopedState


logger = logging.getLogger(__name__)


class RouterState(Enum):
    IDLE = "idle"
    HANDLING = "handling"


ErrorRouterFunc = Callable[
    [BaseException, RequestDescriptor, ResponseDescriptor, ScopedState],
    StageOutcome,
]


class ErrorRouter(ABC):
    """
    Converts a failure into a final response.

    Implementations must write the response and return RESPOND. Anything
    else is treated by the pipeline as ErrorRouterFailure.
    """

    @abstractmethod
    def __call__(
        self,
        error: BaseException,
        request: RequestDescriptor,
        response: ResponseDescriptor,
        state: ScopedState,
    ) -> StageOutcome:
        """
        Handle a failure.

        Args:
            error: What the failing stage reported (or raised)
            request: The request being processed
            response: The response built so far
            state: This run's view of the State Store

        Returns:
            RESPOND
        """

    @property
    def name(self) -> str:
        return self.__class__.__name__


class DefaultErrorRouter(ErrorRouter):
    """
    Maps operational errors to their status and message, everything else
    to a fixed fallback.

    Args:
        fallback_status: Status for unexpected errors (default 500)
        fallback_message: Body message for unexpected errors
        body_format: "json" for {"error": message}, "text" for the bare message
    """

    def __init__(
        self,
        fallback_status: Union[HTTPStatus, int] = HTTPStatus.INTERNAL_SERVER_ERROR,
        fallback_message: str = "Internal Server Error",
        body_format: str = "json",
    ):
        if body_format not in ("json", "text"):
            raise ValueError(f"body_format must be 'json' or 'text', not {body_format!r}")
        self.fallback_status = resolve_status(fallback_status)
        self.fallback_message = fallback_message
        self.body_format = body_format

    def __call__(
        self,
        error: BaseException,
        request: RequestDescriptor,
        response: ResponseDescriptor,
        state: ScopedState,
    ) -> StageOutcome:
        if isinstance(error, OperationalError):
            status, message = error.status, error.message
            logger.info(
                f"[{request.request_id}] {request.method} {request.path} "
                f"-> {int(status)} {type(error).__name__}: {message}"
            )
        else:
            status, message = self.fallback_status, self.fallback_message
            logger.error(
                f"[{request.request_id}] Unexpected error in {request.method} {request.path}",
                exc_info=(type(error), error, error.__traceback__),
            )

        response.set_status(status)
        if isinstance(error, TooManyRequests):
            response.set_header("Retry-After", str(error.retry_after))

        if self.body_format == "json":
            response.json({"error": message})
        else:
            response.text(message)
        return RESPOND


class FunctionErrorRouter(ErrorRouter):
    """Wraps a plain function ``(error, request, response, state) -> outcome``."""

    def __init__(self, func: ErrorRouterFunc, name: Optional[str] = None):
        self._func = func
        self._name = name or getattr(func, "__name__", type(func).__name__)

    def __call__(
        self,
        error: BaseException,
        request: RequestDescriptor,
        response: ResponseDescriptor,
        state: ScopedState,
    ) -> StageOutcome:
        return self._func(error, request, response, state)

    @property
    def name(self) -> str:
        return self._name


def error_router(func: ErrorRouterFunc) -> FunctionErrorRouter:
    """
    Decorator form of FunctionErrorRouter.

        @error_router
        def send_unauthorized(error, request, response, state):
            response.set_status(401).text("Unauthorized")
            return RESPOND
    """
    return FunctionErrorRouter(func)


def as_error_router(candidate) -> ErrorRouter:
    """Accept an ErrorRouter or a bare callable and return an ErrorRouter."""
    if isinstance(candidate, ErrorRouter):
        return candidate
    if callable(candidate):
        return FunctionErrorRouter(candidate)
    raise TypeError(f"Not an error router: {candidate!r}")
