"""
FastAPI Middleware

- Correlation ID per request (``X-Correlation-ID`` in and out)
- Request logging with timing; liveness probes are not logged
- JSON error bodies for ``AppException`` and unexpected errors

Header values are never logged: the webhook signature and the admin API key
both travel in headers.
"""
import time
from typing import Any, Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from hobbyjobs.core.exceptions import AppException, ErrorCode
from hobbyjobs.core.logging import get_correlation_id, get_logger, set_correlation_id

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
_UNLOGGED_PATHS = frozenset({"/health"})


class CorrelationIdMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = set_correlation_id(request.headers.get(CORRELATION_HEADER))
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in _UNLOGGED_PATHS:
            return await call_next(request)

        request_data = {"method": request.method, "path": path}
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {request.method} {path}",
                extra_data={**request_data, "duration_seconds": _elapsed(started), "error": str(e)},
                exc_info=True,
            )
            raise

        log = logger.info if response.status_code < 400 else logger.warning
        log(
            f"{request.method} {path} -> {response.status_code}",
            extra_data={
                **request_data,
                "status_code": response.status_code,
                "duration_seconds": _elapsed(started),
            },
        )
        return response


def _elapsed(started: float) -> float:
    return round(time.perf_counter() - started, 4)


def _error_response(status_code: int, body: dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body,
        headers={CORRELATION_HEADER: get_correlation_id()},
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.warning(
        f"Application exception: {exc.error_code.value}",
        extra_data={
            "error_code": exc.error_code.value,
            "message": exc.message,
            "details": exc.details,
            "path": request.url.path,
        },
    )
    return _error_response(exc.status_code, exc.to_dict())


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # פרטי השגיאה נשארים בלוג בלבד
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra_data={"message": str(exc), "path": request.url.path},
        exc_info=True,
    )
    return _error_response(500, {
        "error": {
            "code": ErrorCode.INTERNAL_ERROR.value,
            "message": "An unexpected error occurred",
            "details": {},
        }
    })


def setup_middleware(app: FastAPI) -> None:
    # האחרון שנוסף עוטף את כולם: CorrelationId רץ ראשון, כך ששורות הלוג של הבקשה נושאות את המזהה
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
