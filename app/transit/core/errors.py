import logging
from decimal import Decimal

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from app.transit.core.error_catalog import AppError, ErrorCatalog, ErrorDefinition
from app.transit.core.metrics import metrics

logger = logging.getLogger(__name__)

_HTTP_STATUS_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}

_LOCK_TIMEOUT_MARKERS = (
    "lock timeout",
    "deadlock detected",
    "database is locked",
    "could not obtain lock",
)


def _is_lock_timeout(exc: Exception) -> bool:
    if not isinstance(exc, OperationalError):
        return False
    message = str(exc).lower()
    return any(marker in message for marker in _LOCK_TIMEOUT_MARKERS)


def _json_safe(value):
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, Exception):
        return str(value)
    return value


def _validation_error_details(exc: RequestValidationError) -> dict:
    errors = []
    for error in exc.errors():
        loc = list(error.get("loc", []))
        field = ".".join(str(item) for item in loc if item not in {"body", "query", "path", "header"}) or None
        errors.append(
            {
                "field": field,
                "message": error.get("msg", "Invalid value"),
                "type": error.get("type", "validation_error"),
                "loc": loc,
                "input": _json_safe(error.get("input")),
                "ctx": _json_safe(error.get("ctx")),
            }
        )
    return {"errors": errors}


def error_response(code: str, message: str, details: object, trace_id: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"code": code, "message": message, "details": details, "trace_id": trace_id},
    )


def _render(
    request: Request,
    exc: Exception,
    *,
    code: str,
    message: str,
    status_code: int,
    details: object = None,
) -> JSONResponse:
    request.state.error_code = code
    request.state.error_class = exc.__class__.__name__
    trace_id = getattr(request.state, "trace_id", "")
    payload = {"code": code, "message": message, "details": _json_safe(details), "trace_id": trace_id}
    idempotency = getattr(request.state, "idempotency", None)
    if idempotency is not None:
        idempotency.record_failure(status_code=status_code, response_body=payload)
    return JSONResponse(status_code=status_code, content=payload)


def _render_definition(request: Request, exc: Exception, error: ErrorDefinition, details: object) -> JSONResponse:
    return _render(
        request, exc, code=error.code, message=error.message, status_code=error.status_code, details=details
    )


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return _render_definition(request, exc, exc.error, exc.details)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _render(
            request,
            exc,
            code=_HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR"),
            message=str(exc.detail) if exc.detail is not None else "HTTP error",
            status_code=exc.status_code,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _render_definition(request, exc, ErrorCatalog.VALIDATION_ERROR, _validation_error_details(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        if _is_lock_timeout(exc):
            metrics.increment_lock_wait_timeout()
            return _render_definition(request, exc, ErrorCatalog.LOCK_TIMEOUT, {"type": exc.__class__.__name__})
        logger.exception("Unhandled error", extra={"trace_id": getattr(request.state, "trace_id", "")})
        return _render_definition(request, exc, ErrorCatalog.INTERNAL_ERROR, {"type": exc.__class__.__name__})
