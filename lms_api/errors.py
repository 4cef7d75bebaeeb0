"""
Kernel exception -> HTTP response mapping.

Every failed call answers ``{"error": {"kind", "code", "message", "details"}}``
with the status code for the error's kind.  Request-shape errors caught by
FastAPI are reported the same way, as kind ``ValidationError``.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from lms_kernel.exceptions import LmsKernelError
from lms_kernel.logging_config import get_logger

logger = get_logger("api.errors")

STATUS_BY_KIND: dict[str, int] = {
    "ValidationError": 400,
    "OverpaymentError": 400,
    "Forbidden": 403,
    "NotFound": 404,
    "InvalidTransition": 409,
    "Conflict": 409,
    "DuplicateAssessment": 409,
    "Immutability": 409,
}


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, Decimal):
        return f"{value:f}"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (UUID, Enum)):
        return str(value.value if isinstance(value, Enum) else value)
    return value


def error_body(kind: str, code: str, message: str, details: dict[str, Any]) -> dict:
    return {
        "error": {
            "kind": kind,
            "code": code,
            "message": message,
            "details": _json_safe(details),
        }
    }


class KernelErrorHandler:
    async def __call__(self, request: Request, exc: LmsKernelError) -> JSONResponse:
        status = STATUS_BY_KIND.get(exc.kind, 500)
        logger.info(
            "request_rejected",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": status,
                "error_kind": exc.kind,
                "error_code": exc.code,
            },
        )
        return JSONResponse(
            status_code=status,
            content=error_body(exc.kind, exc.code, str(exc), exc.details),
        )


class RequestValidationErrorHandler:
    async def __call__(
        self, request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "loc": list(err.get("loc", ())),
                "msg": str(err.get("msg")),
                "type": err.get("type"),
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=error_body(
                "ValidationError",
                "VALIDATION_ERROR",
                "Request validation failed",
                {"errors": errors},
            ),
        )
