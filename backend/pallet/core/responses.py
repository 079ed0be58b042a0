# pallet/core/responses.py
"""
Uniform JSON envelope.

Success: {"code": 200, "success": true, "message": "...", "data": ...}
Failure: {"code": 4xx/5xx, "success": false, "message": "..."} plus "error"
and any extra keys when the raised detail was a dict.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

LOGGER = logging.getLogger(__name__)


def ok(data: Any = None, message: str = "success", code: int = status.HTTP_200_OK) -> dict[str, Any]:
    return {"code": code, "success": True, "message": message, "data": data}


def error_body(code: int, message: str, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"code": code, "success": False, "message": message}
    body.update(extra)
    return body


def _detail_to_body(code: int, detail: Any) -> dict[str, Any]:
    if isinstance(detail, dict):
        extra = {k: v for k, v in detail.items() if k not in {"code", "success", "message"}}
        message = str(detail.get("message") or detail.get("error") or "Request failed")
        return error_body(code, message, **extra)
    if detail is None:
        return error_body(code, "Request failed")
    return error_body(code, str(detail))


def _describe_validation_error(err: dict[str, Any]) -> str:
    loc = [str(p) for p in err.get("loc", ()) if p not in {"body", "query", "path", "form"}]
    where = ".".join(loc)
    msg = err.get("msg", "invalid value")
    return f"{where}: {msg}" if where else msg


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_detail_to_body(exc.status_code, exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "; ".join(_describe_validation_error(e) for e in errors[:3]) or "Invalid request"
    details = [
        {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg"), "type": e.get("type")}
        for e in errors
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(status.HTTP_400_BAD_REQUEST, message, error="VALIDATION_ERROR", errors=details),
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    LOGGER.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error", error="DATABASE_ERROR"),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", error="SERVER_ERROR"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


def client_ip(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
