"""
=============================================================================
RESPONSE DESCRIPTOR
=============================================================================

The in-progress response that stages write to, and that the Dispatcher
hands back to the hosting layer.

=============================================================================
LIFECYCLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     RESPONSE LIFECYCLE                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   created empty        stages write           pipeline ends         │
    │   (200, no headers) ──► set_status()    ──►   send()  ──► SEALED    │
    │                         set_header()          (Respond outcome,     │
    │                         json()/text()          or cancellation)     │
    │                                                                      │
    │   Any write after SEALED raises AlreadyResponded.                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Sealing and writing share one lock. A cancellation arriving from another
thread either lands before a write (and the write fails) or after it
(and the write is kept) - never halfway through.

=============================================================================
BUILDER STYLE
=============================================================================

Every write returns self, so stages can chain:

    response.set_status(HTTPStatus.CREATED).json({"id": 7}).set_header("X-Id", "7")

=============================================================================
"""

from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union
import json
import threading

from .status_codes import HTTPStatus, resolve_status, status_phrase
from ..errors import AlreadyResponded


class ResponseDescriptor:
    """
    Status, headers and body of the response being built.

    Header names keep the case they were written with; lookups through
    get_header() ignore case.
    """

    def __init__(
        self,
        status: Union[HTTPStatus, int] = HTTPStatus.OK,
        headers: Optional[Mapping[str, str]] = None,
        body: Union[str, bytes] = b"",
    ):
        self._status = resolve_status(status)
        self._headers: Dict[str, str] = dict(headers or {})
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        self._sent = False
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        state = "sent" if self._sent else "open"
        return f"<ResponseDescriptor {int(self._status)} {state} {len(self._body)}B>"

    # =========================================================================
    # READ ACCESS
    # =========================================================================

    @property
    def status(self) -> int:
        """HTTPStatus for listed codes, a plain int for any other."""
        return self._status

    @property
    def headers(self) -> Mapping[str, str]:
        """Read-only view. Use set_header() to write."""
        return MappingProxyType(self._headers)

    @property
    def body(self) -> bytes:
        return self._body

    @property
    def text_body(self) -> str:
        return self._body.decode("utf-8", errors="replace")

    @property
    def sent(self) -> bool:
        """True once the response is final."""
        return self._sent

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        lowered = name.lower()
        for key, value in self._headers.items():
            if key.lower() == lowered:
                return value
        return default

    # =========================================================================
    # WRITES - all go through _check_open under the lock
    # =========================================================================

    def _check_open(self, operation: str) -> None:
        if self._sent:
            raise AlreadyResponded(operation)

    def set_status(self, status: Union[HTTPStatus, int]) -> "ResponseDescriptor":
        with self._lock:
            self._check_open("set status")
            self._status = resolve_status(status)
        return self

    def set_header(self, name: str, value: str) -> "ResponseDescriptor":
        """Set a header, replacing any existing one with the same name (any case)."""
        with self._lock:
            self._check_open("set header")
            self._drop_header(name)
            self._headers[name] = str(value)
        return self

    def remove_header(self, name: str) -> "ResponseDescriptor":
        with self._lock:
            self._check_open("remove header")
            self._drop_header(name)
        return self

    def _drop_header(self, name: str) -> None:
        lowered = name.lower()
        for key in [k for k in self._headers if k.lower() == lowered]:
            del self._headers[key]

    def set_body(self, body: Union[str, bytes]) -> "ResponseDescriptor":
        """Set the raw body. Strings are encoded as UTF-8."""
        with self._lock:
            self._check_open("set body")
            self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseDescriptor":
        with self._lock:
            self._check_open("set body")
            self._body = text.encode("utf-8")
            self._drop_header("Content-Type")
            self._headers["Content-Type"] = content_type
        return self

    def json(self, data: Any) -> "ResponseDescriptor":
        """
        Serialize data as the JSON body.

        ensure_ascii=False keeps non-ASCII text readable instead of
        \\u-escaping it.
        """
        payload = json.dumps(data, ensure_ascii=False, default=_json_default).encode("utf-8")
        with self._lock:
            self._check_open("set body")
            self._body = payload
            self._drop_header("Content-Type")
            self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    # =========================================================================
    # FINALIZATION
    # =========================================================================

    def send(self) -> "ResponseDescriptor":
        """
        Seal the response.

        Raises:
            AlreadyResponded: If it was already sent.
        """
        with self._lock:
            self._check_open("send")
            self._sent = True
        return self

    def seal(self) -> bool:
        """
        Seal the response if it is still open.

        Unlike send(), sealing twice is not an error. Used by cancellation,
        which may race with a normal Respond.

        Returns:
            True if this call sealed it, False if it was already sealed.
        """
        with self._lock:
            if self._sent:
                return False
            self._sent = True
            return True

    def to_bytes(self, server_name: str = "moa/1.0") -> bytes:
        """
        Serialize to HTTP/1.1 wire format for a hosting layer.

            HTTP/1.1 200 OK\\r\\n
            Content-Type: text/plain; charset=utf-8\\r\\n
            Content-Length: 10\\r\\n           ← added if missing
            Date: Sat, 17 Oct 2026 ... GMT\\r\\n ← added if missing
            Server: moa/1.0\\r\\n               ← added if missing
            \\r\\n
            Hello, Ada
        """
        headers = dict(self._headers)
        if self.get_header("Content-Length") is None:
            headers["Content-Length"] = str(len(self._body))
        if self.get_header("Date") is None:
            headers["Date"] = format_http_date(datetime.now(timezone.utc))
        if self.get_header("Server") is None:
            headers["Server"] = server_name

        lines = [f"HTTP/1.1 {int(self._status)} {status_phrase(self._status)}"]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        lines.append("")
        return "\r\n".join(lines).encode("utf-8") + b"\r\n" + self._body


def _json_default(value: Any) -> Any:
    # Frozen request bodies (MappingProxyType, tuples) echo back cleanly
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def format_http_date(dt: datetime) -> str:
    """
    Format a UTC datetime as an HTTP-date.

    Example: Sat, 17 Oct 2026 12:00:00 GMT
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE CONSTRUCTORS
# =============================================================================
#
# Used by the Dispatcher for responses no pipeline produced (unknown route,
# fatal failure, cancellation). All come back already sealed.
#
# =============================================================================

def error_response(
    status: Union[HTTPStatus, int],
    message: str,
    body_format: str = "json",
) -> ResponseDescriptor:
    """
    A sealed error response.

    body_format "json" writes {"error": message}, "text" the bare message.
    """
    response = ResponseDescriptor(status)
    if body_format == "json":
        response.json({"error": message})
    else:
        response.text(message)
    return response.send()


def not_found(message: str = "Not Found", body_format: str = "json") -> ResponseDescriptor:
    return error_response(HTTPStatus.NOT_FOUND, message, body_format)
