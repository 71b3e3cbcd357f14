"""Boundary translation of failures into HTTP responses.

``CatalogError`` renders from its own kind. Request-shape validation renders
as a validation error. Anything else becomes an internal error whose text is
returned to the caller.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import CatalogError, ErrorKind

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CatalogError)
    async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
        log = logger.error if exc.kind is ErrorKind.INTERNAL else logger.info
        log("catalog error kind=%s path=%s message=%s", exc.kind.value, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("request validation failed path=%s errors=%s", request.url.path, exc.errors())
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg', 'invalid request')}" if field else "invalid request"
        return JSONResponse(
            status_code=ErrorKind.VALIDATION.status,
            content={"kind": ErrorKind.VALIDATION.value, "message": message},
        )

    @app.middleware("http")
    async def internal_error_middleware(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception("unhandled error method=%s path=%s", request.method, request.url.path)
            return JSONResponse(
                status_code=ErrorKind.INTERNAL.status,
                content={"kind": ErrorKind.INTERNAL.value, "message": "server error", "error": str(exc)},
            )
