import asyncio
import logging
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from attendance_engine.db import engine
from attendance_engine.errors import ApiError, error_response
from attendance_engine.logging_utils import setup_json_logging
from attendance_engine.routers import admin, attendance
from attendance_engine.services.schema_guard import SchemaGuardResult, verify_runtime_schema
from attendance_engine.settings import get_cors_origins, get_settings

settings = get_settings()
setup_json_logging(settings.log_level, sql_echo=settings.sql_echo)
http_logger = logging.getLogger("attendance_engine.http")
lifecycle_logger = logging.getLogger("attendance_engine.lifecycle")

HTTP_ERROR_CODES: dict[int, str] = {
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}
# Request-scoped attributes the routers may set for the access log.
LOGGED_STATE_FIELDS = ("actor", "employee_id", "attendance_id")

app = FastAPI(title=settings.app_name, version="0.1.0")
app.state.schema_guard_result = SchemaGuardResult(
    ok=False,
    checked_at_utc=datetime.now(timezone.utc),
    issues=["SCHEMA_GUARD_NOT_RUN"],
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(attendance.router)
app.include_router(admin.router)


def _access_log_fields(request: Request, status_code: int, started: float) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "request_id": request.state.request_id,
        "method": request.method,
        "path": request.url.path,
        "status_code": status_code,
        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
    }
    for name in LOGGED_STATE_FIELDS:
        value = getattr(request.state, name, None)
        if value is not None:
            fields[name] = value
    return fields


@app.middleware("http")
async def assign_request_id(request: Request, call_next):
    request.state.request_id = request.headers.get("X-Request-Id") or uuid4().hex
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-Id"] = request.state.request_id
        return response
    finally:
        http_logger.info("http_request", extra=_access_log_fields(request, status_code, started))


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        field=exc.field,
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
        message=str(exc.detail) if exc.detail else "Request failed.",
    )


def _first_error_field(errors: Sequence[Any]) -> str | None:
    if not errors:
        return None
    location = [str(item) for item in errors[0].get("loc", ()) if item not in ("body", "query", "path")]
    return ".".join(location) or None


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    return error_response(
        request,
        status_code=422,
        code="VALIDATION_ERROR",
        message=str(errors),
        field=_first_error_field(errors),
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    http_logger.exception(
        "http_unhandled_error",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "method": request.method,
            "path": request.url.path,
        },
    )
    return error_response(
        request,
        status_code=500,
        code="INTERNAL_ERROR",
        message="Unexpected server error.",
    )


@app.on_event("startup")
async def check_database_schema() -> None:
    if not settings.schema_guard_enabled:
        lifecycle_logger.info("schema_guard_skipped")
        return

    result = await asyncio.to_thread(verify_runtime_schema, engine)
    app.state.schema_guard_result = result
    if result.ok:
        lifecycle_logger.info("schema_guard_passed", extra=result.to_dict())
    elif settings.schema_guard_strict:
        lifecycle_logger.critical("schema_guard_failed", extra=result.to_dict())
        raise RuntimeError("Database schema does not match the attendance engine: " + ", ".join(result.issues))
    else:
        lifecycle_logger.error("schema_guard_failed", extra=result.to_dict())


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "app": settings.app_name,
        "attendance_timezone": settings.attendance_timezone,
        "schema_guard": app.state.schema_guard_result.to_dict(),
    }
