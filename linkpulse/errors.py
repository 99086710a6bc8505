"""
Error taxonomy and FastAPI exception handlers.

AppError subclasses render as {"error": ..., "code": ...} JSON.
UpstreamDegraded and PersistenceFailure are internal: the ingestion
pipeline catches and logs them, they never reach a client.
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppError(Exception):
    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.headers = headers or {}

    def to_dict(self) -> dict:
        payload: dict = {"error": self.message, "code": self.error_code}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class Unauthorized(AppError):
    status_code = 401
    error_code = "unauthorized"


class NotFound(AppError):
    status_code = 404
    error_code = "not_found"


class Gone(AppError):
    status_code = 410
    error_code = "gone"


class RateLimitExceeded(AppError):
    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(self, message: str, *, retry_after: int, headers: dict[str, str] | None = None):
        super().__init__(message, headers=headers)
        self.retry_after = retry_after
        self.headers["Retry-After"] = str(retry_after)

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["retryAfter"] = self.retry_after
        return payload


class CodeGenerationError(AppError):
    status_code = 500
    error_code = "code_generation_failed"


class UpstreamDegraded(Exception):
    """A geo provider timed out, errored or answered without data."""


class PersistenceFailure(Exception):
    """The datastore rejected an insert or a counter increment."""


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=exc.headers or None,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        err = ValidationError("Invalid request", details=[e.get("msg") for e in exc.errors()])
        return JSONResponse(status_code=err.status_code, content=err.to_dict())
