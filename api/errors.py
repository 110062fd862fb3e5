"""
api/errors.py -- Exception handlers that emit the ErrorResponse envelope.

Every error body has the shape {"error": {"code", "message", "detail"}} so
the UI can show any failure without branching on status code. install() is
called once from api/main.py.

Route handlers raise HTTPException(detail=ErrorDetail(...).model_dump()); a
dict detail becomes the error field as-is.
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from api.models import ErrorDetail, ErrorResponse

logger = logging.getLogger("expirywatch.api")


def error_response(status_code: int, code: str, message: str, detail: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Also covers settings documents that could never deliver an alert.
    return error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))


async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(500, "internal_error", "An unexpected error occurred.")


def install(app: FastAPI) -> None:
    app.add_exception_handler(RateLimitExceeded, _rate_limited)
    app.add_exception_handler(RequestValidationError, _invalid_request)
    app.add_exception_handler(HTTPException, _http_error)
    app.add_exception_handler(Exception, _unhandled)
