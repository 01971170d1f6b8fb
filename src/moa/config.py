"""
=============================================================================
ENGINE CONFIGURATION
=============================================================================

Centralized settings for the dispatcher, the default error router and the
state store.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments       python -m moa --timeout 2         │
    │   2. Environment variables        MOA_REQUEST_TIMEOUT=2             │
    │   3. Defaults                     EngineConfig()                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional

from .http.status_codes import HTTPStatus, resolve_status


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


@dataclass
class EngineConfig:
    """
    Configuration for a Dispatcher.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    LOGGING
    - log_level, log_format

    STATE
    - session_ttl

    REQUEST HANDLING
    - request_timeout, propagate_fatal

    RESPONSES THE ENGINE WRITES ITSELF
    - fallback_status, fallback_message, error_body_format
    - not_found_message, cancelled_status, server_name

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"

    log_format: str = "text"
    """
    Access log format: "text" (one line per request) or "json".
    """

    # ─────────────────────────────────────────────────────────────────────
    # STATE
    # ─────────────────────────────────────────────────────────────────────

    session_ttl: Optional[float] = None
    """
    Seconds a session may sit idle before it is discarded.
    None keeps sessions until they are cleared explicitly.
    """

    # ─────────────────────────────────────────────────────────────────────
    # REQUEST HANDLING
    # ─────────────────────────────────────────────────────────────────────

    request_timeout: Optional[float] = None
    """
    Default per-request deadline in seconds, applied when route() is
    called without a token or an explicit timeout.
    """

    propagate_fatal: bool = False
    """
    Re-raise ErrorRouterFailure from route() instead of answering 500.
    """

    # ─────────────────────────────────────────────────────────────────────
    # ENGINE RESPONSES
    # ─────────────────────────────────────────────────────────────────────

    fallback_status: int = HTTPStatus.INTERNAL_SERVER_ERROR
    fallback_message: str = "Internal Server Error"
    error_body_format: str = "json"
    not_found_message: str = "Not Found"
    cancelled_status: int = HTTPStatus.SERVICE_UNAVAILABLE

    server_name: str = "moa/1.0"
    """
    Server header value used by Dispatcher.serialize().
    """

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        MOA_LOG_LEVEL         Logging level (default: INFO)
        MOA_LOG_FORMAT        Access log format, text or json (default: text)
        MOA_SESSION_TTL       Session idle timeout in seconds (default: none)
        MOA_REQUEST_TIMEOUT   Per-request deadline in seconds (default: none)
        MOA_PROPAGATE_FATAL   Re-raise fatal errors, 1/true/yes/on (default: off)
        MOA_ERROR_FORMAT      Error body format, json or text (default: json)

        =====================================================================
        """
        return cls(
            log_level=os.getenv("MOA_LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("MOA_LOG_FORMAT", "text"),
            session_ttl=_env_float("MOA_SESSION_TTL"),
            request_timeout=_env_float("MOA_REQUEST_TIMEOUT"),
            propagate_fatal=os.getenv("MOA_PROPAGATE_FATAL", "").lower() in _TRUE_VALUES,
            error_body_format=os.getenv("MOA_ERROR_FORMAT", "json"),
        )

    def validate(self) -> None:
        """
        Validate configuration values at startup, not at first request.
        """
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.log_level}. Must be one of {_LOG_LEVELS}.")

        if self.log_format not in ("text", "json"):
            raise ValueError("log_format must be 'text' or 'json'")

        if self.error_body_format not in ("text", "json"):
            raise ValueError("error_body_format must be 'text' or 'json'")

        if self.session_ttl is not None and self.session_ttl <= 0:
            raise ValueError("session_ttl must be > 0")

        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")

        for name in ("fallback_status", "cancelled_status"):
            value = getattr(self, name)
            try:
                status = resolve_status(value)
            except ValueError:
                raise ValueError(f"{name} {value!r} is not a valid status code") from None
            if status < 400:
                raise ValueError(f"{name} must be a 4xx or 5xx status, not {value}")
