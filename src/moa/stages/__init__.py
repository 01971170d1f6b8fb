"""Reusable stages."""

from .auth import HeaderAuthStage
from .rate_limit import RateLimitStage, TokenBucket
from .request_id import RequestIdStage
from .respond import respond_with

__all__ = [
    "HeaderAuthStage",
    "RateLimitStage",
    "TokenBucket",
    "RequestIdStage",
    "respond_with",
]
