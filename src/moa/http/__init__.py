"""
=============================================================================
REQUEST / RESPONSE DESCRIPTORS
=============================================================================

The two values every stage sees:

    RequestDescriptor   immutable input, built once per request
    ResponseDescriptor  mutable until sent, then sealed

plus the status code enum both of them use.

    ┌──────────────┐      Dispatcher.route()      ┌───────────────┐
    │ hosting layer│ ───── RequestDescriptor ───► │   pipeline    │
    │ (sockets,    │                              │   stages      │
    │  WSGI, test) │ ◄──── ResponseDescriptor ─── │               │
    └──────────────┘                              └───────────────┘

=============================================================================
"""

# status_codes first: moa.errors imports it while this package is loading
from .status_codes import HTTPStatus, resolve_status, status_phrase
from .request import RequestDescriptor, Headers, freeze
from .response import (
    ResponseDescriptor,
    error_response,
    not_found,
    format_http_date,
)

__all__ = [
    "HTTPStatus",
    "resolve_status",
    "status_phrase",
    "RequestDescriptor",
    "Headers",
    "freeze",
    "ResponseDescriptor",
    "error_response",
    "not_found",
    "format_http_date",
]
