"""HTTP error responses for EduStride.

Every error body has the same shape:

    {"error": "Portfolio item not found", "code": "NotFound"}

Request validation failures add a "details" list. A DatastoreFailure is the
only core failure that reaches this layer; it renders as a 500.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse

from edustride.errors import DatastoreFailure

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    """Base exception for API errors."""

    def __init__(self, status_code: int, code: str, text: str, details: Any = None):
        self.code = code
        self.text = text
        self.details = details
        super().__init__(status_code=status_code, detail=text)

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.text, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        return body


class BadRequestError(ApiError):
    """Invalid request (400)."""

    def __init__(self, text: str, details: Any = None):
        super().__init__(status_code=400, code="BadRequest", text=text, details=details)


class UnauthorizedError(ApiError):
    """No resolved user identity (401)."""

    def __init__(self) -> None:
        super().__init__(status_code=401, code="Unauthorized", text="Unauthorized")


class ForbiddenError(ApiError):
    """Resource belongs to another user (403)."""

    def __init__(self, text: str = "Forbidden"):
        super().__init__(status_code=403, code="Forbidden", text=text)


class NotFoundError(ApiError):
    """Resource not found (404)."""

    def __init__(self, resource_type: str, identifier: str | None = None):
        text = f"{resource_type} not found"
        if identifier is not None:
            text = f"{resource_type} '{identifier}' not found"
        super().__init__(status_code=404, code="NotFound", text=text)


async def api_exception_handler(request: Request, exc: ApiError) -> ORJSONResponse:
    return ORJSONResponse(status_code=exc.status_code, content=exc.to_body())


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return ORJSONResponse(
        status_code=400,
        content={
            "error": "Invalid request",
            "code": "BadRequest",
            "details": jsonable_encoder(details),
        },
    )


async def datastore_exception_handler(request: Request, exc: DatastoreFailure) -> ORJSONResponse:
    logger.error("Datastore failure on %s %s: %s", request.method, request.url.path, exc)
    return ORJSONResponse(
        status_code=500,
        content={"error": "Failed to complete the operation", "code": "DatastoreFailure"},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Exception handler for unexpected errors."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return ORJSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": "InternalServerError"},
    )
