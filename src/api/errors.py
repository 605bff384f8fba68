"""Exception to HTTP response mapping."""

import sqlite3

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.search.errors import SearchEngineError, ValidationError
from src.store import StateStoreError, StoreUnavailableError


logger = structlog.get_logger()

# Location prefixes FastAPI adds in front of the field name
_LOCATION_PREFIXES = {"body", "query", "path", "header"}


def store_unavailable_response() -> JSONResponse:
    """Generic 500 response that leaks no storage details."""
    error = StoreUnavailableError()
    return JSONResponse(
        status_code=500,
        content={"error": "store_unavailable", "message": str(error)},
    )


async def search_error_handler(request: Request, exc: SearchEngineError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "store_error",
        component="api",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return store_unavailable_response()


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    field = None
    message = "Invalid request"
    if errors:
        first = errors[0]
        loc = [
            str(part)
            for part in first.get("loc", ())
            if not isinstance(part, int) and part not in _LOCATION_PREFIXES
        ]
        field = loc[-1] if loc else None
        message = first.get("msg", message)
        if field:
            message = f"{field}: {message}"
    error = ValidationError(message, field=field)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers on an application."""
    app.add_exception_handler(SearchEngineError, search_error_handler)
    app.add_exception_handler(StateStoreError, store_error_handler)
    app.add_exception_handler(sqlite3.Error, store_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
