"""
Unit tests for error routers.
"""

import json
import pytest

from moa.errors import (
    BadRequest,
    Forbidden,
    NotFound,
    OperationalError,
    TooManyRequests,
    Unauthorized,
    ValidationFailed,
)
from moa.http.request import RequestDescriptor
from moa.http.response import ResponseDescriptor
from moa.http.status_codes import HTTPStatus
from moa.pipeline import RESPOND, DefaultErrorRouter, error_router
from moa.pipeline.error_router import FunctionErrorRouter, as_error_router
from moa.state import StateStore


def route_error(router, error):
    """Run a router against a fresh response and return the response."""
    response = ResponseDescriptor()
    outcome = router(error, RequestDescriptor.build("GET", "/test"), response, StateStore().scoped())
    assert outcome is RESPOND
    return response


class TestOperationalErrors:
    """Tests for the operational error classes."""

    @pytest.mark.parametrize("error_class,status", [
        (BadRequest, 400),
        (Unauthorized, 401),
        (Forbidden, 403),
        (NotFound, 404),
        (ValidationFailed, 422),
        (TooManyRequests, 429),
    ])
    def test_status_and_default_message(self, error_class, status):
        """Test each class carries its status and the standard phrase."""
        error = error_class()

        assert error.status == status
        assert error.message == HTTPStatus(status).phrase

    def test_custom_status(self):
        """Test OperationalError with an explicit status."""
        error = OperationalError("Gone for good", status=410)

        assert error.status == HTTPStatus.GONE
        assert error.message == "Gone for good"

    def test_unlisted_status(self):
        """Test a valid status outside HTTPStatus is kept as a plain int."""
        error = OperationalError(status=402)

        assert error.status == 402
        assert error.message == "Unknown"

    def test_invalid_status(self):
        """Test a value that is not an HTTP status is rejected."""
        with pytest.raises(ValueError):
            OperationalError("Bad", status=1000)


class TestDefaultErrorRouter:
    """Tests for DefaultErrorRouter."""

    def test_operational_error(self):
        """Test that operational errors keep their status and message."""
        response = route_error(DefaultErrorRouter(), NotFound("Unknown user"))

        assert response.status == 404
        assert json.loads(response.body) == {"error": "Unknown user"}

    def test_unlisted_operational_status(self):
        """Test an operational error keeps a status HTTPStatus does not list."""
        response = route_error(DefaultErrorRouter(), OperationalError("Payment required", status=402))

        assert response.status == 402
        assert json.loads(response.body) == {"error": "Payment required"}

    def test_unexpected_error(self):
        """Test the generic fallback for anything else."""
        response = route_error(DefaultErrorRouter(), KeyError("password_hash"))

        assert response.status == 500
        assert json.loads(response.body) == {"error": "Internal Server Error"}

    def test_custom_fallback(self):
        """Test configurable fallback status and message."""
        router = DefaultErrorRouter(fallback_status=503, fallback_message="Try later")

        response = route_error(router, RuntimeError("x"))

        assert response.status == 503
        assert json.loads(response.body) == {"error": "Try later"}

    def test_text_body(self):
        """Test plain-text rendering."""
        response = route_error(DefaultErrorRouter(body_format="text"), Unauthorized())

        assert response.status == 401
        assert response.text_body == "Unauthorized"

    def test_retry_after(self):
        """Test that rate limit errors carry Retry-After."""
        response = route_error(DefaultErrorRouter(), TooManyRequests(retry_after=7))

        assert response.status == 429
        assert response.get_header("Retry-After") == "7"

    def test_invalid_body_format(self):
        """Test that unknown formats are rejected up front."""
        with pytest.raises(ValueError):
            DefaultErrorRouter(body_format="xml")


class TestFunctionErrorRouter:
    """Tests for adapting plain functions."""

    def test_decorator(self):
        """Test the @error_router decorator."""
        @error_router
        def send_unauthorized(error, request, response, state):
            response.set_status(401).text("Unauthorized")
            return RESPOND

        assert isinstance(send_unauthorized, FunctionErrorRouter)
        assert send_unauthorized.name == "send_unauthorized"
        assert route_error(send_unauthorized, Unauthorized()).status == 401

    def test_as_error_router(self):
        """Test adapting callables and rejecting junk."""
        default = DefaultErrorRouter()

        assert as_error_router(default) is default
        assert isinstance(as_error_router(lambda e, rq, rs, st: RESPOND), FunctionErrorRouter)
        with pytest.raises(TypeError):
            as_error_router(42)
