from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import (
    BaseCustomException,
    create_error_response,
    create_validation_error_response,
)
from app.core.logging import setup_logging
from app.api.v1.api import api_router
from app.infrastructure.database import Database
from app.infrastructure.notifications import Notifier, build_notifier


def _request_id(request: Request) -> Optional[str]:
    return request.headers.get("x-request-id")


async def custom_exception_handler(request: Request, exc: BaseCustomException):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc, request_id=_request_id(request)),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    message = errors[0]["msg"] if errors else "Validation failed"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=create_validation_error_response(message, errors, request_id=_request_id(request)),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred",
            "error_code": "UNEXPECTED_ERROR",
        },
    )


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """Build the application with its store handle and notifier."""
    settings = settings or default_settings
    database = database or Database(settings.DATABASE_URL, echo=settings.DEBUG)
    notifier = notifier or build_notifier(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await database.init()
        logger.info(f"{settings.PROJECT_NAME} started")
        try:
            yield
        finally:
            await database.close()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.notifier = notifier

    # Set all CORS enabled origins
    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

    app.add_exception_handler(BaseCustomException, custom_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(api_router)

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    return app


setup_logging(default_settings.LOG_LEVEL)
app = create_app()
