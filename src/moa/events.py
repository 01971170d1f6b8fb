"""
=============================================================================
DISPATCH EVENTS
=============================================================================

Every call to Dispatcher.route() produces exactly one DispatchEvent,
delivered to each registered listener after the response is sealed.

    ┌──────────────┬──────────────────────────────────────────────────────┐
    │ kind         │ when                                                 │
    ├──────────────┼──────────────────────────────────────────────────────┤
    │ completed    │ the pipeline (or its error router) responded         │
    │ not_found    │ no pipeline registered for (method, path)            │
    │ fatal        │ the error router failed; engine answered 500         │
    │ cancelled    │ the token fired; engine answered 503                 │
    └──────────────┴──────────────────────────────────────────────────────┘

A listener is any callable taking the event. LoggingListener is the one
the CLI installs: it writes access lines to the "moa.access" logger so it
can be routed separately from engine diagnostics:

    logging.getLogger("moa.access").addHandler(file_handler)

=============================================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional
import json
import logging
import time


logger = logging.getLogger("moa.access")


class EventKind(Enum):
    COMPLETED = "completed"
    NOT_FOUND = "not_found"
    FATAL = "fatal"
    CANCELLED = "cancelled"


@dataclass
class DispatchEvent:
    """
    Structured record of one routed request.

    =========================================================================
    FIELDS
    =========================================================================

    kind:           What happened (EventKind)
    request_id:     Correlation id carried on the RequestDescriptor
    method, path:   The route that was asked for
    client_ip:      Client address, "-" when the host did not supply one
    session_id:     Session the request belonged to, if any
    status_code:    Status of the response handed back to the host
    content_length: Response body size in bytes
    duration_ms:    Time spent inside route()
    timestamp:      When the request finished
    error:          The ErrorRouterFailure for fatal events
    reason:         Why the token fired, for cancelled events

    =========================================================================
    """

    kind: EventKind
    request_id: str
    method: str
    path: str
    client_ip: str
    session_id: Optional[str]
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str
    error: Optional[BaseException] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        data = {
            "event": self.kind.value,
            "request_id": self.request_id,
            "method": self.method,
            "path": self.path,
            "client_ip": self.client_ip,
            "session_id": self.session_id,
            "status_code": self.status_code,
            "content_length": self.content_length,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }
        if self.error is not None:
            data["error"] = f"{type(self.error).__name__}: {self.error}"
        if self.reason is not None:
            data["reason"] = self.reason
        return data

    def to_text(self) -> str:
        """Format as a combined-log-like access line."""
        line = (
            f'{self.client_ip} - [{self.request_id}] [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms {self.kind.value}'
        )
        if self.reason is not None:
            line += f" ({self.reason})"
        return line


EventListener = Callable[[DispatchEvent], None]


def access_timestamp() -> str:
    return time.strftime("%d/%b/%Y:%H:%M:%S %z")


class LoggingListener:
    """
    Writes one access line per event to the "moa.access" logger.

    Args:
        log_format: "text" or "json"
        log_level: Level for completed and not_found events.
                   Cancelled events log at WARNING, fatal ones at ERROR
                   with the traceback of the router failure.
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        if log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', not {log_format!r}")
        self.log_format = log_format
        self.log_level = log_level

    def __call__(self, event: DispatchEvent) -> None:
        if self.log_format == "json":
            message = json.dumps(event.to_dict())
        else:
            message = event.to_text()

        if event.kind is EventKind.FATAL:
            exc_info = None
            if event.error is not None:
                exc_info = (type(event.error), event.error, event.error.__traceback__)
            logger.error(message, exc_info=exc_info)
        elif event.kind is EventKind.CANCELLED:
            logger.warning(message)
        else:
            logger.log(self.log_level, message)
