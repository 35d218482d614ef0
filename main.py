import asyncio
import contextlib
import logging
import time
import traceback
import uuid
from typing import Optional

import sentry_sdk
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.starlette import StarletteIntegration
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from db import create_db_engine, create_session_factory
from snapforge import __version__
from snapforge.api import admin, auth, collaborators, delivery, galleries, images, misc
from snapforge.core.logging_utils import configure_logging
from snapforge.core.middleware_security import SecurityHeadersMiddleware
from snapforge.core.middleware_session import SessionMiddleware
from snapforge.core.settings import Settings
from snapforge.core.settings import settings as default_settings
from snapforge.jobs.cleanup_sessions_job import run_session_cleanup_once, session_cleanup_loop
from snapforge.models import AppErrorLog, Base
from snapforge.services.errors import ServiceError
from snapforge.services.settings_store import get_storage_settings
from snapforge.services.storage import BlobStorage, build_storage

load_dotenv()

logger = logging.getLogger("app")


def _with_request_id(request: Request, response):
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        response.headers["X-Request-ID"] = str(request_id)
    return response


def _user_id(request: Request) -> Optional[int]:
    user = getattr(request.state, "user", None)
    return user.id if user is not None else None


def _record_error(request: Request, status_code: int, exc: Exception) -> None:
    """Write an AppErrorLog row; a failure here is logged, never raised."""
    request_id = getattr(request.state, "request_id", None)
    db = request.app.state.session_factory()
    try:
        db.add(
            AppErrorLog(
                RequestID=str(request_id) if request_id else None,
                Path=str(request.url.path),
                Method=request.method,
                StatusCode=status_code,
                UserID=_user_id(request),
                ClientIP=request.client.host if request.client else None,
                UserAgent=request.headers.get("user-agent"),
                ExceptionType=type(exc).__name__,
                Message=str(exc)[:2000],
                StackTrace="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Could not persist error log", exc_info=True)
    finally:
        db.close()


def _build_storage(session_factory) -> BlobStorage:
    db = session_factory()
    try:
        return build_storage(get_storage_settings(db))
    finally:
        db.close()


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[BlobStorage] = None,
    database_url: Optional[str] = None,
) -> FastAPI:
    settings = settings or default_settings

    # Configure logging (console + rotating file; JSON by default)
    configure_logging(settings)

    # Initialize Sentry if DSN provided
    if settings.SENTRY_DSN:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=[StarletteIntegration()],
            traces_sample_rate=float(settings.SENTRY_TRACES_SAMPLE_RATE or 0.0),
            send_default_pii=False,
        )

    engine = create_db_engine(database_url or settings.DATABASE_URL)
    session_factory = create_session_factory(engine)
    if settings.DB_CREATE_ALL:
        Base.metadata.create_all(bind=engine)
    if storage is None:
        storage = _build_storage(session_factory)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            run_session_cleanup_once(session_factory)
        except SQLAlchemyError:
            logger.exception("Initial session cleanup failed")
        task = None
        if settings.SESSION_CLEANUP_INTERVAL_SECONDS > 0:
            task = asyncio.create_task(
                session_cleanup_loop(session_factory, settings.SESSION_CLEANUP_INTERVAL_SECONDS)
            )
        logger.info("app.started", extra={"version": __version__})
        yield
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        engine.dispose()

    app = FastAPI(title=settings.APP_NAME, version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.storage = storage

    app.add_middleware(SessionMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.COOKIE_SECURE)

    app.include_router(misc.router)
    app.include_router(auth.router)
    app.include_router(galleries.router)
    app.include_router(collaborators.router)
    app.include_router(images.router)
    app.include_router(delivery.router)
    app.include_router(admin.router)

    # Request logging middleware with request id and user context
    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()
        extra_ctx = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent"),
        }
        logger.info("request.start", extra=extra_ctx)
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.exception("request.error", extra={**extra_ctx, "duration_ms": duration_ms})
            # Re-raise to be handled by 500 handler
            raise

        duration_ms = int((time.perf_counter() - start) * 1000)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request.end",
            extra={
                **extra_ctx,
                "user_id": _user_id(request),
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error(
                "service.error",
                exc_info=exc,
                extra={"request_id": getattr(request.state, "request_id", None)},
            )
            _record_error(request, exc.status_code, exc)
            return _with_request_id(
                request, JSONResponse({"error": exc.default_message}, status_code=exc.status_code)
            )
        return _with_request_id(
            request, JSONResponse({"error": exc.message}, status_code=exc.status_code)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "Invalid request"
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
        return _with_request_id(request, JSONResponse({"error": message}, status_code=400))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _with_request_id(
            request,
            JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code, headers=exc.headers),
        )

    @app.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled.error",
            exc_info=exc,
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        _record_error(request, 500, exc)
        return _with_request_id(
            request, JSONResponse({"error": "Internal server error"}, status_code=500)
        )

    return app


app = create_app()
