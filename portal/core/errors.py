from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("portal.errors")


class PortalError(Exception):
    """Base class for domain errors raised by the repository and recorder."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "portal_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or None


class NotFoundError(PortalError):
    """A device or offer id did not resolve."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class StaleWriteError(PortalError):
    """A conditional write lost against a newer revision or record version."""

    status_code = status.HTTP_409_CONFLICT
    code = "stale_write"


class VersionConflictError(StaleWriteError):
    """The caller edited a device based on an outdated ``version``."""


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


# HTTP statuses that share a code with the domain errors above.
HTTP_ERROR_CODES = {
    status.HTTP_404_NOT_FOUND: NotFoundError.code,
    status.HTTP_409_CONFLICT: StaleWriteError.code,
}


def _status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


async def portal_exception_handler(request: Request, exc: PortalError):
    logger.warning(
        "portal.error",
        extra={"extra_data": {"code": exc.code, "path": request.url.path, "details": exc.details}},
    )
    return ErrorEnvelope(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else _status_phrase(exc.status_code)
    details = detail if isinstance(detail, dict) else None
    code = HTTP_ERROR_CODES.get(exc.status_code, "http_error")
    return ErrorEnvelope(status_code=exc.status_code, code=code, message=message, details=details)


def _field_name(loc: tuple) -> str:
    """``("body", "specifications", "ram")`` becomes ``specifications.ram``."""

    parts = [str(part) for part in loc if part not in ("body", "query", "path")]
    return ".".join(parts) or "request"


async def validation_exception_handler(request: Request, exc):  # type: ignore[override]
    from fastapi.exceptions import RequestValidationError

    if isinstance(exc, RequestValidationError):
        errors = exc.errors()
        fields = sorted({_field_name(tuple(error.get("loc", ()))) for error in errors})
        return ErrorEnvelope(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="validation_error",
            message="Invalid " + ", ".join(fields),
            details={"fields": fields, "errors": jsonable_encoder(errors)},
        )
    raise exc
