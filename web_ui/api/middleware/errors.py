"""
Exception handlers for the Embyvault Admin API

All error responses share the ``{"message": ...}`` shape the admin UI reads.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from membership.exceptions import EmbyAPIError, InvalidCronError, NotFoundError
from utils.logger import logger


def validation_issues(errors) -> list:
    """Flatten pydantic errors into {path, code, message} entries"""
    issues = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        issues.append({
            "path": ".".join(loc),
            "code": error.get("type", ""),
            "message": error.get("msg", ""),
        })
    return issues


async def _validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "invalid request payload", "issues": validation_issues(exc.errors())},
    )


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def _not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"message": str(exc)})


async def _invalid_cron_handler(request: Request, exc: InvalidCronError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content={"message": "invalid cron expression"}
    )


async def _emby_error_handler(request: Request, exc: EmbyAPIError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"message": str(exc)})


async def _unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path}: unhandled error: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, _validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(NotFoundError, _not_found_handler)
    app.add_exception_handler(InvalidCronError, _invalid_cron_handler)
    app.add_exception_handler(EmbyAPIError, _emby_error_handler)
    app.add_exception_handler(Exception, _unhandled_handler)
