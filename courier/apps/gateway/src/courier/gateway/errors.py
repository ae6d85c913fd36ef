"""生命周期异常 -> HTTP 响应映射

错误体统一为 {"error": {"code", "message", "retryable"}}，UI 据 retryable 决定是否提供重试。
"""

import structlog
from courier.core.exceptions import (
    CourierError,
    LocalWriteFailed,
    NotFound,
    RemoteDeleteFailed,
    RemoteWriteFailed,
    UploadFailed,
)
from courier.remote import BlobStoreError, RemoteStoreError
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

log = structlog.get_logger()

_STATUS_BY_ERROR: list[tuple[type[CourierError], int]] = [
    (NotFound, 404),
    (UploadFailed, 502),
    (RemoteWriteFailed, 503),
    (RemoteDeleteFailed, 503),
    (LocalWriteFailed, 507),
    (BlobStoreError, 502),
    (RemoteStoreError, 503),
]


def error_response(status_code: int, code: str, message: str, retryable: bool) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "retryable": retryable}},
    )


def status_for(exc: CourierError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def courier_error_handler(request: Request, exc: CourierError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        log.warning(
            "request_courier_error",
            code=exc.code,
            status_code=status_code,
            retryable=exc.retryable,
        )
    return error_response(status_code, exc.code, str(exc), exc.retryable)


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return error_response(422, "INVALID_REQUEST", str(exc), False)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(p) for p in first.get("loc", ()))
    return error_response(422, "INVALID_REQUEST", f"{location}: {first.get('msg', 'invalid')}", False)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(CourierError, courier_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
