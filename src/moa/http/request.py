"""
=============================================================================
REQUEST DESCRIPTOR
=============================================================================

The immutable input to one pipeline run.

The hosting layer (a socket server, a WSGI adapter, a test) turns whatever
arrived on the wire into a RequestDescriptor and hands it to the
Dispatcher. From then on nobody may change it.

=============================================================================
WHY IMMUTABLE?
=============================================================================

Classic middleware stacks let every layer bolt fields onto the request:

    req.user = load_user(...)        # auth middleware
    req.cart = load_cart(req.user)   # some other middleware
    req.user.name = "oops"           # and now everyone sees this

Data that one stage derives for another goes through the State Store
instead, where every read and write is explicit:

    state.set(Scope.REQUEST, "user", user)
    ...
    user = state.get("user")

So the descriptor is a frozen dataclass, its headers are a read-only
case-insensitive mapping, and a parsed body is frozen into read-only
mappings and tuples.

=============================================================================
ANATOMY
=============================================================================

    RequestDescriptor.build(
        "GET",
        "/greet?lang=en",               ──►  path="/greet"
                                              query_params={"lang": ["en"]}
        headers={"Auth": "valid"},      ──►  headers["auth"] == "valid"
        session_id="s-42",
    )

=============================================================================
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlparse
import json
import uuid

from ..errors import BadRequest


class Headers(Mapping):
    """
    Read-only, case-insensitive header mapping.

    Header names are case-insensitive (RFC 9110), so names are normalized
    to lowercase once, at construction, instead of calling .lower()
    everywhere they are read.

        headers = Headers({"Content-Type": "text/plain"})
        headers["content-type"]   # "text/plain"
        headers["CONTENT-TYPE"]   # "text/plain"
    """

    def __init__(self, headers: Optional[Mapping[str, str]] = None):
        normalized: Dict[str, str] = {}
        for name, value in (headers or {}).items():
            name = name.strip().lower()
            # Repeated names fold into one comma-separated value
            if name in normalized:
                normalized[name] += ", " + str(value)
            else:
                normalized[name] = str(value)
        self._headers = normalized

    def __getitem__(self, name: str) -> str:
        return self._headers[name.lower()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._headers

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Headers):
            return self._headers == other._headers
        if isinstance(other, Mapping):
            return self._headers == Headers(other)._headers
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._headers.items()))

    def __repr__(self) -> str:
        return f"Headers({self._headers!r})"


def freeze(value: Any) -> Any:
    """
    Recursively convert a parsed structure into read-only equivalents.

        dict  → MappingProxyType (values frozen)
        list  → tuple            (items frozen)
        set   → frozenset

    Scalars, bytes and already-immutable values pass through unchanged.
    """
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze(v) for v in value)
    return value


def _new_request_id() -> str:
    # 8 hex chars is plenty to correlate log lines
    return uuid.uuid4().hex[:8]


@dataclass(frozen=True)
class RequestDescriptor:
    """
    One incoming request, as the pipeline sees it.

    Attributes:
        method:         Upper-case method ("GET", "POST", ...)
        path:           Path without query string
        headers:        Case-insensitive, read-only header mapping
        body:           Raw bytes, or a parsed structure (frozen on creation)
        session_id:     Session the request belongs to, if any
        query_params:   "?a=1&a=2" → {"a": ("1", "2")}
        client_address: (ip, port) of the client, for logging/rate limiting
        request_id:     Short random id for correlating log lines
    """

    method: str
    path: str
    headers: Headers = field(default_factory=Headers)
    body: Any = b""
    session_id: Optional[str] = None
    query_params: Mapping[str, Tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    client_address: Tuple[str, int] = ("", 0)
    request_id: str = field(default_factory=_new_request_id)

    def __post_init__(self):
        # frozen=True forbids normal assignment; object.__setattr__ is the
        # documented escape hatch for normalizing fields in __post_init__.
        object.__setattr__(self, "method", self.method.upper())
        if not isinstance(self.headers, Headers):
            object.__setattr__(self, "headers", Headers(self.headers))
        if not isinstance(self.body, (bytes, str)):
            object.__setattr__(self, "body", freeze(self.body))
        object.__setattr__(self, "query_params", freeze(
            {k: tuple(v) for k, v in self.query_params.items()}
        ))

    @classmethod
    def build(
        cls,
        method: str,
        target: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = b"",
        session_id: Optional[str] = None,
        client_address: Tuple[str, int] = ("", 0),
    ) -> "RequestDescriptor":
        """
        Create a descriptor from a request target that may carry a query.

        Args:
            method: HTTP method (any case)
            target: Path with optional query string ("/users?page=2")
            headers: Plain dict of headers (any case)
            body: Bytes, text, or a parsed structure
            session_id: Session id, if the caller has one
            client_address: (ip, port) of the client

        Returns:
            A new RequestDescriptor
        """
        parsed = urlparse(target)
        path = unquote(parsed.path) or "/"
        query = parse_qs(parsed.query, keep_blank_values=True)
        return cls(
            method=method,
            path=path,
            headers=Headers(headers),
            body=body,
            session_id=session_id,
            query_params=query,
            client_address=client_address,
        )

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters ("application/json")."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def json(self) -> Any:
        """
        The body as JSON.

        A parsed structure is returned as-is (already frozen); bytes and
        text are decoded on every access. An empty body is None.

        Raises:
            BadRequest: If the body is not valid JSON.
        """
        if not isinstance(self.body, (bytes, str)):
            return self.body
        if not self.body:
            return None
        try:
            raw = self.body.decode("utf-8") if isinstance(self.body, bytes) else self.body
            return freeze(json.loads(raw))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise BadRequest(f"Invalid JSON body: {e}")

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup with a default."""
        return self.headers.get(name, default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, ())
        return values[0] if values else default

    def get_query_list(self, name: str) -> List[str]:
        """All values of a query parameter."""
        return list(self.query_params.get(name, ()))
