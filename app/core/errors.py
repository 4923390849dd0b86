"""
Domain errors raised by the service layer.

Each carries its HTTP status so the API layer can render it without a
per-endpoint translation table.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.schemas.common import ErrorResponse


log = logging.getLogger(__name__)


class DomainError(Exception):
    status_code: int = 400
    code: str = "domain_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(DomainError):
    status_code = 400
    code = "validation_error"


class Unauthorized(DomainError):
    status_code = 401
    code = "unauthorized"


class Forbidden(DomainError):
    status_code = 403
    code = "forbidden"


class NotFound(DomainError):
    status_code = 404
    code = "not_found"


class NotFoundOrForbidden(NotFound):
    # the caller must not learn whether the listing exists
    code = "not_found_or_forbidden"


class InvalidState(DomainError):
    status_code = 409
    code = "invalid_state"


class AlreadyModerated(InvalidState):
    code = "already_moderated"


class RenewalLimitExceeded(DomainError):
    status_code = 409
    code = "renewal_limit_exceeded"


class InsufficientBalance(DomainError):
    status_code = 409
    code = "insufficient_balance"

    def __init__(self, message: str, *, required: int, available: int):
        super().__init__(message, required=required, available=available)
        self.required = required
        self.available = available


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    log.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    body = ErrorResponse(
        code=exc.code,
        message=exc.message,
        details=[exc.details] if exc.details else [],
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
