import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.exceptions import DomainException

logger = logging.getLogger(__name__)

_GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."


def _title_from_status(status_code: int) -> str:
    mapping = {
        400: "Bad Request",
        401: "Unauthorized",
        403: "Forbidden",
        404: "Not Found",
        405: "Method Not Allowed",
        409: "Conflict",
        422: "Unprocessable Entity",
        500: "Internal Server Error",
        502: "Bad Gateway",
    }
    return mapping.get(status_code, "Error")


def _envelope(
    *,
    status: int,
    message: Optional[str],
    code: Optional[str] = None,
    errors: Optional[Any] = None,
    data: Optional[Any] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "status": status,
        "message": message or _title_from_status(status),
        "data": data,
    }
    if code:
        body["code"] = code
    if errors:
        body["errors"] = errors
    return body


def _parse_detail(detail: Any) -> tuple[Optional[str], Optional[str], Optional[Any], Optional[Any]]:
    if isinstance(detail, dict):
        code = detail.get("code") if isinstance(detail.get("code"), str) else None
        message = detail.get("message") or detail.get("detail")
        detail_text = message if isinstance(message, str) else None
        errors = detail.get("details") or detail.get("errors")
        return detail_text, code, errors, detail.get("data")
    if isinstance(detail, str):
        return detail, None, None, None
    if detail is None:
        return None, None, None, None
    return str(detail), None, None, None


def _http_response(exc: StarletteHTTPException) -> JSONResponse:
    detail_text, code, errors, data = _parse_detail(exc.detail)
    body = _envelope(
        status=exc.status_code,
        message=detail_text,
        code=code,
        errors=jsonable_encoder(errors) if errors is not None else None,
        data=jsonable_encoder(data) if data is not None else None,
    )
    return JSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def _validation_response(errors: Any) -> JSONResponse:
    detail_list = jsonable_encoder(errors)
    first = detail_list[0] if detail_list else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg") or "Request validation failed"
    if location:
        message = f"{location}: {message}"
    return JSONResponse(
        _envelope(status=422, message=message, code="validation_error", errors=detail_list),
        status_code=422,
    )


def register_error_handlers(app: FastAPI) -> None:
    """Render every error in the ``{"status", "message", "data"}`` envelope."""

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        return _http_response(exc.to_http_exception())

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return _http_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def starlette_http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return _http_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _validation_response(exc.errors())

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return _validation_response(exc.errors())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            _envelope(status=500, message=_GENERIC_ERROR_MESSAGE, code="internal_error"),
            status_code=500,
        )
