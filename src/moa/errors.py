"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every exception the engine raises or understands lives here.

=============================================================================
THREE FAMILIES OF FAILURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ERROR FAMILIES                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   OPERATIONAL (expected, user-facing)                               │
    │   └── BadRequest, Unauthorized, Forbidden, NotFound, ...            │
    │       Carry a status and a message that is safe to expose.          │
    │       Always turned into a response by the error router.            │
    │                                                                      │
    │   ENGINE CONTRACT (integration bugs)                                │
    │   └── DuplicateRoute, EmptyPipeline, MissingTerminator,             │
    │       UnterminatedPipeline, AlreadyResponded,                       │
    │       MissingSessionContext, StageContractError                     │
    │       Raised as early as possible, ideally at registration.         │
    │                                                                      │
    │   FATAL                                                              │
    │   └── ErrorRouterFailure                                            │
    │       The error path itself broke. Only the hosting layer           │
    │       can answer now.                                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Anything that is not an OperationalError and reaches the error router is
"unexpected": a programming fault whose details must never leak into a
response body.

=============================================================================
"""

from typing import Optional

from .http.status_codes import HTTPStatus, resolve_status, status_phrase


class MOAError(Exception):
    """Base class for every error raised by the engine."""


# =============================================================================
# OPERATIONAL ERRORS
# =============================================================================

class OperationalError(MOAError):
    """
    An expected failure with a status code and a client-safe message.

    Stages return ``Fail(OperationalError(...))`` (or raise it) when the
    request cannot be served for a reason the client should hear about:
    bad input, missing credentials, unknown resource.

    Interview insight: carrying the status on the exception keeps the
    mapping from "what went wrong" to "what the client sees" in one place
    instead of scattering status codes through every handler.
    """

    status: int = HTTPStatus.BAD_REQUEST
    default_message: Optional[str] = None

    def __init__(self, message: Optional[str] = None, status: Optional[int] = None):
        if status is not None:
            self.status = resolve_status(status)
        self.message = message or self.default_message or status_phrase(self.status)
        super().__init__(self.message)


class BadRequest(OperationalError):
    status = HTTPStatus.BAD_REQUEST


class ValidationFailed(OperationalError):
    """Well-formed input that failed validation."""

    status = HTTPStatus.UNPROCESSABLE_ENTITY


class Unauthorized(OperationalError):
    """Identity unknown: credentials missing or rejected."""

    status = HTTPStatus.UNAUTHORIZED


class Forbidden(OperationalError):
    """Identity known, permission denied."""

    status = HTTPStatus.FORBIDDEN


class NotFound(OperationalError):
    status = HTTPStatus.NOT_FOUND


class TooManyRequests(OperationalError):
    """Rate limit exceeded. ``retry_after`` is in whole seconds."""

    status = HTTPStatus.TOO_MANY_REQUESTS

    def __init__(self, message: Optional[str] = None, retry_after: int = 1):
        super().__init__(message)
        self.retry_after = retry_after


# =============================================================================
# ENGINE CONTRACT VIOLATIONS
# =============================================================================

class EngineContractError(MOAError):
    """The integrating application misused the engine."""


class DuplicateRoute(EngineContractError):
    def __init__(self, method: str, path: str):
        super().__init__(f"A pipeline is already registered for {method} {path}")
        self.method = method
        self.path = path


class EmptyPipeline(EngineContractError):
    def __init__(self, method: str, path: str):
        super().__init__(f"Pipeline for {method} {path} has no stages")


class MissingTerminator(EngineContractError):
    def __init__(self, method: str, path: str):
        super().__init__(
            f"Pipeline for {method} {path} has no stage marked as a terminator"
        )


class UnterminatedPipeline(EngineContractError):
    """Every stage returned Continue and nothing produced a response."""

    def __init__(self, pipeline_name: str):
        super().__init__(f"Pipeline {pipeline_name} ran out of stages without responding")


class AlreadyResponded(EngineContractError):
    """A write was attempted on a response that has already been sent."""

    def __init__(self, operation: str = "modify"):
        super().__init__(f"Cannot {operation}: response has already been sent")


class MissingSessionContext(EngineContractError):
    """Session scope was addressed without a session id."""

    def __init__(self, key: str):
        super().__init__(f"Cannot write session key {key!r} without a session id")
        self.key = key


class StageContractError(EngineContractError):
    """A stage returned something other than a StageOutcome, or sent and continued."""


# =============================================================================
# FATAL AND CONTROL
# =============================================================================

class ErrorRouterFailure(MOAError):
    """
    The error router could not produce a response.

    Unrecoverable inside the engine: the hosting layer must emit a
    last-resort response and record the incident. The original failure is
    available as ``original_error``; the router's own exception (if any) is
    the ``__cause__``.
    """

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.original_error = original_error


class RequestCancelled(MOAError):
    """The run was cancelled or timed out before it reached a terminal outcome."""

    def __init__(self, reason: str = "cancelled"):
        super().__init__(f"Request {reason}")
        self.reason = reason
