"""Exception handlers mapping errors onto the JSON failure envelope"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from habitforge.exceptions import HabitForgeError, ValidationError
from habitforge.monitoring import capture_exception

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str, errors: Optional[list] = None, headers=None) -> JSONResponse:
    """Failure envelope: {success: false, message, errors?}"""
    content = {"success": False, "message": message}
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _field_name(loc) -> str:
    # Drop the leading "body" / "query" / "path" segment
    parts = [str(p) for p in loc[1:]] if len(loc) > 1 else [str(p) for p in loc]
    return ".".join(parts)


async def habitforge_error_handler(request: Request, exc: HabitForgeError) -> JSONResponse:
    if exc.status_code >= 500:
        capture_exception(exc, request_id=exc.request_id, operation=exc.operation)

    errors = exc.errors if isinstance(exc, ValidationError) else None
    return error_response(exc.status_code, exc.user_message or exc.message, errors)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": _field_name(err.get("loc", ())), "message": err.get("msg", "Invalid value")}
        for err in exc.errors()
    ]
    logger.warning(f"Request validation failed on {request.url.path}: {errors}")
    return error_response(422, "Validation failed", errors)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    capture_exception(exc, path=request.url.path)
    return error_response(500, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HabitForgeError, habitforge_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
