"""
Exception handlers rendering every rejection as the same envelope:

    {"success": false, "error": {"code": ..., "reason": ..., "message": ...}}

No stack traces or internal identifiers ever reach the response body.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from slotbook.core.errors import AdmissionError, RateLimited
from slotbook.core.logging import get_logger
from slotbook.schemas.error import ErrorDetail, ErrorResponse

logger = get_logger(__name__)


def _envelope(code: str, reason: str, message: str) -> dict:
    return ErrorResponse(error=ErrorDetail(code=code, reason=reason, message=message)).model_dump()


def _rate_limit_headers(request: Request, exc: Exception) -> dict:
    decision = getattr(exc, "decision", None) or getattr(request.state, "rate_limit", None)
    headers = decision.headers() if decision is not None else {}
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(exc.retry_after)
    return headers


async def admission_error_handler(request: Request, exc: AdmissionError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(exc.code, exc.reason, exc.message),
        headers=_rate_limit_headers(request, exc),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return JSONResponse(
        status_code=422,
        content=_envelope("INVALID_REQUEST", "VALIDATION_ERROR", message or "Validation failed"),
        headers=_rate_limit_headers(request, exc),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", error_type=type(exc).__name__, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope("INTERNAL_ERROR", "INTERNAL_ERROR", "An unexpected error occurred"),
        headers=_rate_limit_headers(request, exc),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AdmissionError, admission_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
