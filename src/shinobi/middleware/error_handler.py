"""JSON error bodies: ``{"detail": ...}`` plus error-specific fields."""

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shinobi.errors import ShinobiError

logger = structlog.get_logger()


def error_body(exc: ShinobiError) -> dict[str, object]:
    body: dict[str, object] = {"detail": exc.message, **exc.extra}
    if getattr(exc, "retryable", False):
        body["retryable"] = True
    return body


async def _domain_error(request: Request, exc: ShinobiError) -> JSONResponse:
    log = logger.warning if exc.status_code >= 500 else logger.info
    log("domain_error", path=request.url.path, error_type=type(exc).__name__, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc))


async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": "Validation error", "errors": jsonable_encoder(exc.errors())},
    )


async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=request.url.path, method=request.method, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def setup_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ShinobiError, _domain_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled)
