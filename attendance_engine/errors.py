from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str, field: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.field = field


class ValidationError(ApiError):
    def __init__(self, field: str, message: str, code: str = "VALIDATION_FAILED"):
        super().__init__(status_code=422, code=code, message=message, field=field)


class ConflictError(ApiError):
    def __init__(self, message: str, code: str = "CONFLICT"):
        super().__init__(status_code=409, code=code, message=message)


class NotFoundError(ApiError):
    def __init__(self, message: str, code: str = "NOT_FOUND"):
        super().__init__(status_code=404, code=code, message=message)


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    field: str | None = None,
) -> JSONResponse:
    error: dict[str, str] = {
        "code": code,
        "message": message,
        "request_id": get_request_id(request),
    }
    if field is not None:
        error["field"] = field
    return JSONResponse(status_code=status_code, content={"error": error})
