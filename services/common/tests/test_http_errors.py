"""
Unit tests for HTTP error handling functionality.

Covers:
1. Request ID correlation - error bodies carry the request id bound for logging
2. Error taxonomy - status codes, error types and codes per exception class
3. Exception handlers - FastAPI responses for service, validation and
   unexpected errors
"""

import re

import pytest
from fastapi import FastAPI, HTTPException, Query
from fastapi.testclient import TestClient

from services.common.http_errors import (
    AuthError,
    ConflictError,
    ErrorCode,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    StoreError,
    ValidationError,
    exception_to_response,
    register_canvass_exception_handlers,
    request_id_var,
)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class TestRequestIDCorrelation:
    """Test request ID correlation across exception handlers."""

    def setup_method(self):
        request_id_var.set("uninitialized")

    def test_request_id_from_context(self):
        request_id_var.set("test-request-123")
        response = exception_to_response(
            HTTPException(status_code=422, detail={"message": "Validation failed"})
        )
        assert response.request_id == "test-request-123"

    def test_service_exception_uses_context(self):
        request_id_var.set("req-abc")
        assert NotFoundError("Contact", "c-1").request_id == "req-abc"

    @pytest.mark.parametrize(
        "exc",
        [
            HTTPException(status_code=404, detail="Not found"),
            ValueError("Something went wrong"),
            ConflictError("Superseded"),
        ],
    )
    def test_uuid_generated_outside_request(self, exc):
        response = exception_to_response(exc)
        assert response.request_id != "uninitialized"
        assert UUID_PATTERN.match(response.request_id)


class TestErrorTaxonomy:
    def test_validation_error(self):
        error = ValidationError(
            "Unknown supporter status", field="supporter_status", value="supporter"
        )
        assert error.status_code == 422
        response = error.to_error_response()
        assert response.type == "validation_error"
        assert response.details == {
            "field": "supporter_status",
            "value": "supporter",
            "code": "VALIDATION_FAILED",
        }

    def test_not_found(self):
        error = NotFoundError("Contact", "c-123")
        assert error.status_code == 404
        assert error.message == "Contact c-123 not found"
        assert NotFoundError("AuditLogEntry").message == "AuditLogEntry not found"

    def test_auth_error_defaults(self):
        error = AuthError("API key required")
        assert error.status_code == 401
        assert error.error_code == ErrorCode.AUTH_FAILED

    def test_permission_denied_locked_field(self):
        error = PermissionDeniedError(
            "locked", field="date_of_birth", code=ErrorCode.FIELD_LOCKED
        )
        assert error.status_code == 403
        details = error.to_error_response().details
        assert details["field"] == "date_of_birth"
        assert details["code"] == "FIELD_LOCKED"

    def test_permission_denied_role(self):
        error = PermissionDeniedError("Viewers cannot edit", role="viewer")
        assert error.details == {"role": "viewer"}
        assert error.error_code == ErrorCode.ACCESS_DENIED

    def test_conflict(self):
        error = ConflictError("Superseded", details={"superseded_by": 7})
        assert error.status_code == 409
        assert error.to_error_response().details == {
            "superseded_by": 7,
            "code": "CONFLICT",
        }

    def test_store_error(self):
        error = StoreError("Failed to search contacts", operation="search")
        assert isinstance(error, ServiceError)
        assert error.status_code == 500
        assert error.error_type == "store_error"
        assert error.details["operation"] == "search"
        assert error.error_code == ErrorCode.DATABASE_ERROR

    def test_service_error(self):
        assert ServiceError("Upstream failed").status_code == 502


class TestExceptionToResponse:
    def test_http_exception_string(self):
        response = exception_to_response(HTTPException(status_code=404, detail="Not found"))
        assert response.type == "http_error"
        assert response.message == "Not found"

    def test_http_exception_dict(self):
        response = exception_to_response(
            HTTPException(
                status_code=422, detail={"message": "Validation failed", "field": "email"}
            )
        )
        assert response.message == "Validation failed"
        assert response.details["field"] == "email"

    def test_generic_exception_hides_message(self):
        response = exception_to_response(RuntimeError("password=hunter2"))
        assert response.type == "internal_error"
        assert response.message == "Internal server error"
        assert response.details == {"error_type": "RuntimeError"}


@pytest.fixture
def client():
    app = FastAPI()
    register_canvass_exception_handlers(app)

    @app.get("/missing")
    async def missing():
        raise NotFoundError("Contact", "c-9")

    @app.get("/items")
    async def items(limit: int = Query(..., ge=1)):
        return {"limit": limit}

    @app.get("/http")
    async def http_error():
        raise HTTPException(status_code=418, detail="teapot")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    return TestClient(app, raise_server_exceptions=False)


class TestExceptionHandlers:
    def test_service_exception(self, client):
        response = client.get("/missing")
        assert response.status_code == 404
        body = response.json()
        assert body["type"] == "not_found"
        assert body["details"]["identifier"] == "c-9"
        assert body["request_id"]

    def test_request_validation_names_field(self, client):
        response = client.get("/items", params={"limit": 0})
        assert response.status_code == 422
        body = response.json()
        assert body["type"] == "validation_error"
        assert body["details"]["field"] == "limit"
        assert body["details"]["errors"][0]["field"] == "limit"

    def test_http_exception(self, client):
        response = client.get("/http")
        assert response.status_code == 418
        assert response.json()["message"] == "teapot"

    def test_unexpected_exception(self, client):
        response = client.get("/boom")
        assert response.status_code == 500
        body = response.json()
        assert body["type"] == "internal_error"
        assert "kaboom" not in body["message"]
