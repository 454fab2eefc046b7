"""Error taxonomy and FastAPI handlers.

Every handler returns the same envelope:
    {"error": {"code", "message", "request_id"}, "detail": message, **extra}
"""

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from consultchat.core.logging import get_request_id

LOGIN_REQUIRED_MESSAGE = "Please log in and try again."
GENERIC_UPSTREAM_MESSAGE = "The service is temporarily unavailable. Please try again later."


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id
        self.extra = extra or {}


class UnauthenticatedError(AppError):
    """No valid identity. The message is always the uniform login prompt."""
    code = "unauthenticated"
    status_code = 401

    def __init__(self, message: str = LOGIN_REQUIRED_MESSAGE, **kwargs):
        super().__init__(LOGIN_REQUIRED_MESSAGE, **kwargs)


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class PayloadTooLargeError(AppError):
    code = "payload_too_large"
    status_code = 400


class PaymentIncompleteError(AppError):
    """Payment not settled yet; the user may retry later."""
    code = "payment_incomplete"
    status_code = 400


class NoOpError(AppError):
    code = "no_op"
    status_code = 400


class ReconciliationError(AppError):
    code = "reconciliation_error"
    status_code = 400


class ProviderRejectedError(AppError):
    """The payment provider refused the action (e.g. card declined)."""
    code = "provider_rejected"
    status_code = 400


class ForbiddenError(AppError):
    code = "forbidden"
    status_code = 403


class QuotaExceededError(AppError):
    code = "quota_exceeded"
    status_code = 403


class NotFoundError(AppError):
    code = "not_found"
    status_code = 404


class ConfigurationError(AppError):
    code = "configuration_error"
    status_code = 500


class UpstreamError(AppError):
    """Provider or network failure. Users only see a generic message."""
    code = "upstream_error"
    status_code = 500

    def __init__(self, message: str = GENERIC_UPSTREAM_MESSAGE, *, detail: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.detail = detail


class StoreError(AppError):
    """Data-store failure other than "not found"; safe to retry."""
    code = "store_error"
    status_code = 500


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str, extra: Optional[Dict[str, Any]] = None) -> dict:
    payload = {
        "error": {"code": code, "message": message, "request_id": request_id},
        "detail": message,
    }
    if extra:
        payload.update(extra)
    return payload


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid, exc.extra)
    logger = logging.getLogger("consultchat")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    log_extra = {"request_id": rid, "error_code": exc.code, "status": exc.status_code}
    detail = getattr(exc, "detail", None)
    logger.log(
        log_level,
        f"app.error: {exc.message}" + (f" ({detail})" if detail else ""),
        extra=log_extra,
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("consultchat")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    errors = exc.errors()
    field = "body"
    if errors:
        loc = [str(part) for part in errors[0].get("loc", ()) if part != "body"]
        field = ".".join(loc) or field
    message = f"Invalid value for '{field}'"
    payload = _error_payload("validation_error", message, rid)
    logging.getLogger("consultchat").warning(
        "request.invalid", extra={"request_id": rid, "error_code": "validation_error", "status": 400}
    )
    response = JSONResponse(status_code=400, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("consultchat")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
