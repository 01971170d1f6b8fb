"""
=============================================================================
RATE LIMIT STAGE
=============================================================================

Token Bucket rate limiting as an ordinary pipeline stage.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    TOKEN BUCKET VISUALIZATION                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │       TOKENS ADDED                      BUCKET                       │
    │       ─────────────                     ──────                       │
    │                                                                      │
    │         ● ● ●                      ┌──────────┐                     │
    │          ╲│╱                       │ ● ● ●    │ ◄── Current tokens  │
    │           ▼                        │ ● ● ●    │                     │
    │   tokens_per_second                │ ● ●      │                     │
    │   (refill rate)                    └────┬─────┘                     │
    │                                         │                           │
    │                                         ▼                           │
    │                               each request takes 1 token            │
    │                               no token → fail(TooManyRequests)      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Unlike a wrapping middleware, the stage cannot decorate the response after
later stages run, so the X-RateLimit-* headers are written up front and a
rejection is handed to the error router as TooManyRequests, which the
DefaultErrorRouter renders as 429 with Retry-After.

    dispatcher.get("/api/items",
                   RateLimitStage(requests_per_second=10, burst_size=20),
                   list_items)

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional
import math
import threading
import time

from ..errors import TooManyRequests
from ..http.request import RequestDescriptor
from ..http.response import ResponseDescriptor
from ..pipeline.outcome import CONTINUE, StageOutcome, fail
from ..pipeline.stage import Stage
from ..state.store import ScopedState


@dataclass
class TokenBucket:
    """
    Token Bucket rate limiter.

    Config: max_tokens=10, tokens_per_second=1

    t=0:  bucket=10/10  Request → allowed (bucket=9)
    ...
    t=0:  bucket=0/10   Request → rejected
    t=5:  bucket=5/10   (5 seconds passed, 5 tokens added)
    """

    max_tokens: float
    tokens_per_second: float
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    tokens: float = field(default=-1.0)
    last_update: float = field(default=-1.0)

    def __post_init__(self):
        if self.tokens < 0:
            self.tokens = self.max_tokens
        if self.last_update < 0:
            self.last_update = self.clock()

    def consume(self, tokens: float = 1.0) -> bool:
        """Take tokens if available. Returns False when the request must be rejected."""
        self._refill()

        if self.tokens >= tokens:
            self.tokens -= tokens
            return True

        return False

    def _refill(self) -> None:
        now = self.clock()
        elapsed = now - self.last_update
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.tokens_per_second)
        self.last_update = now

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self.tokens

    def time_until_available(self, tokens: float = 1.0) -> float:
        """Seconds until ``tokens`` can be consumed (0 if they already can)."""
        self._refill()
        if self.tokens >= tokens:
            return 0.0
        return (tokens - self.tokens) / self.tokens_per_second


class RateLimitStage(Stage):
    """
    Per-client rate limiting.

    Args:
        requests_per_second: Sustained rate (refill rate)
        burst_size: Bucket capacity
        key_func: Extracts the bucket key from the request.
                  Defaults to the client IP.
        cleanup_interval: Seconds between sweeps of idle buckets
        bucket_ttl: Buckets idle this long are dropped
        clock: Monotonic time source, injected by tests
    """

    def __init__(
        self,
        requests_per_second: float = 10.0,
        burst_size: int = 20,
        key_func: Optional[Callable[[RequestDescriptor], str]] = None,
        cleanup_interval: float = 60.0,
        bucket_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be > 0")
        if burst_size < 1:
            raise ValueError("burst_size must be >= 1")

        self.requests_per_second = requests_per_second
        self.burst_size = burst_size
        self.key_func = key_func or self._default_key_func
        self.cleanup_interval = cleanup_interval
        self.bucket_ttl = bucket_ttl
        self._clock = clock

        self._buckets: Dict[str, TokenBucket] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    @staticmethod
    def _default_key_func(request: RequestDescriptor) -> str:
        return request.client_address[0] or "anonymous"

    def __call__(
        self,
        request: RequestDescriptor,
        response: ResponseDescriptor,
        state: ScopedState,
    ) -> StageOutcome:
        key = self.key_func(request)

        # Consume and read back under the lock: the bucket is shared by
        # every request with the same key.
        with self._lock:
            bucket = self._get_bucket(key)
            allowed = bucket.consume()
            remaining = int(bucket.tokens)
            retry_after = bucket.time_until_available()

        response.set_header("X-RateLimit-Limit", str(self.burst_size))
        response.set_header("X-RateLimit-Remaining", str(remaining))

        if allowed:
            return CONTINUE

        seconds = max(1, math.ceil(retry_after))
        return fail(TooManyRequests(
            f"Rate limit exceeded. Try again in {seconds} seconds.",
            retry_after=seconds,
        ))

    def _get_bucket(self, key: str) -> TokenBucket:
        """Get or create the bucket for key. Caller holds the lock."""
        if self._clock() - self._last_cleanup > self.cleanup_interval:
            self._cleanup()

        if key not in self._buckets:
            self._buckets[key] = TokenBucket(
                max_tokens=self.burst_size,
                tokens_per_second=self.requests_per_second,
                clock=self._clock,
            )
        return self._buckets[key]

    def _cleanup(self) -> None:
        now = self._clock()
        expired = [
            key for key, bucket in self._buckets.items()
            if now - bucket.last_update > self.bucket_ttl
        ]
        for key in expired:
            del self._buckets[key]
        self._last_cleanup = now

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one key's bucket, or all of them."""
        with self._lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)
