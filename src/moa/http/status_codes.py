"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The subset of RFC 9110 status codes a pipeline actually produces, with
their reason phrases.

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  2xx   │ Stage produced a result                                  │
    │  3xx   │ Stage redirected the client                              │
    │  4xx   │ Operational failure (client can fix it)                  │
    │  5xx   │ Unexpected failure, cancellation, fatal fallback         │
    └────────┴───────────────────────────────────────────────────────────┘

IntEnum keeps the codes comparable with plain ints:

    HTTPStatus.NOT_FOUND == 404   # True
    response.status >= 400        # works on either

Codes outside the enum (402, 418, ...) are still valid. resolve_status()
passes them through as plain ints, and status_phrase() falls back to
"Unknown" for them.

=============================================================================
"""

from enum import IntEnum
from typing import Union


class HTTPStatus(IntEnum):
    """Status codes used by responses, operational errors and fallbacks."""

    # 2xx SUCCESS
    OK = 200
    CREATED = 201
    ACCEPTED = 202
    NO_CONTENT = 204

    # 3xx REDIRECTION
    MOVED_PERMANENTLY = 301
    FOUND = 302
    SEE_OTHER = 303
    NOT_MODIFIED = 304
    TEMPORARY_REDIRECT = 307

    # 4xx CLIENT ERRORS - what operational errors map to
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    CONFLICT = 409
    GONE = 410
    PAYLOAD_TOO_LARGE = 413
    UNSUPPORTED_MEDIA_TYPE = 415
    UNPROCESSABLE_ENTITY = 422
    TOO_MANY_REQUESTS = 429

    # 5xx SERVER ERRORS - unexpected failures and engine fallbacks
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504

    @property
    def phrase(self) -> str:
        """Reason phrase, e.g. ``"Not Found"`` for 404."""
        return _STATUS_PHRASES.get(self, "Unknown")


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.ACCEPTED: "Accepted",
    HTTPStatus.NO_CONTENT: "No Content",

    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.SEE_OTHER: "See Other",
    HTTPStatus.NOT_MODIFIED: "Not Modified",
    HTTPStatus.TEMPORARY_REDIRECT: "Temporary Redirect",

    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.UNAUTHORIZED: "Unauthorized",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.CONFLICT: "Conflict",
    HTTPStatus.GONE: "Gone",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.UNSUPPORTED_MEDIA_TYPE: "Unsupported Media Type",
    HTTPStatus.UNPROCESSABLE_ENTITY: "Unprocessable Entity",
    HTTPStatus.TOO_MANY_REQUESTS: "Too Many Requests",

    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.BAD_GATEWAY: "Bad Gateway",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.GATEWAY_TIMEOUT: "Gateway Timeout",
}


def resolve_status(code: Union[HTTPStatus, int]) -> int:
    """
    Validate a status code.

    Returns the HTTPStatus member for listed codes and the plain int for
    any other code in 100-599.

    Raises:
        ValueError: If code is not a three-digit HTTP status
    """
    try:
        return HTTPStatus(code)
    except ValueError:
        pass
    if isinstance(code, bool) or not isinstance(code, int) or not 100 <= code <= 599:
        raise ValueError(f"{code!r} is not a valid HTTP status code")
    return code


def status_phrase(code: int) -> str:
    """Reason phrase for any status code, ``"Unknown"`` for unlisted ones."""
    return _STATUS_PHRASES.get(code, "Unknown")
