"""FastAPI application factory and setup."""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from loguru import logger
from starlette.responses import JSONResponse

from src.catalog.api.http.app_data import ApplicationDependencies
from src.catalog.api.http.routers.health import router as health_router
from src.catalog.api.http.routers.service.book import router as book_router
from src.catalog.api.utils.app_startup import configure_logging
from src.catalog.core.errors import (
    BookNotFoundError,
    BookValidationError,
    CatalogError,
    ConflictError,
    StorageError,
)
from src.catalog.core.services import DbManageService, DbSessionService
from src.catalog.runtime.context import get_config

_ERROR_STATUS = {
    BookValidationError: 400,
    ConflictError: 409,
    BookNotFoundError: 404,
    StorageError: 500,
}


def _status_for(exc: CatalogError) -> int:
    for error_type, status_code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get(
        "X-Request-ID", "-"
    )


# --- Lifecycle hooks ---
def startup(app: FastAPI) -> None:
    config = get_config()
    logger.info("Starting up application in {} environment", config.app.environment)

    if getattr(app.state, "app_dependencies", None) is not None:
        # Dependencies were supplied by the caller (tests, embedding)
        return

    database_service = DbSessionService()
    if config.database.create_tables:
        DbManageService(database_service).create_all()

    app.state.app_dependencies = ApplicationDependencies.from_database(database_service)
    app.state.owns_dependencies = True


def shutdown(app: FastAPI) -> None:
    logger.info("Shutting down application")
    if getattr(app.state, "owns_dependencies", False):
        app_dependencies: ApplicationDependencies = app.state.app_dependencies
        app_dependencies.database_service.dispose()


@asynccontextmanager
async def lifespan(app: FastAPI):
    startup(app)
    try:
        yield
    finally:
        shutdown(app)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CatalogError)
    async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
        status_code = _status_for(exc)
        content = {
            "error": exc.kind,
            "detail": exc.message,
            "request_id": _request_id(request),
        }
        if isinstance(exc, BookValidationError) and exc.errors:
            content["errors"] = exc.errors

        log = logger.bind(status_code=status_code, error_type=type(exc).__name__)
        if status_code >= 500:
            log.opt(exception=exc).error("request.storage_error")
        else:
            log.info("request.rejected: {}", exc.message)
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Malformed JSON bodies and non-integer ids are bad input, not 422
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={
                "error": BookValidationError.kind,
                "detail": "Invalid input!",
                "errors": errors,
                "request_id": _request_id(request),
            },
        )


def create_app(dependencies: ApplicationDependencies | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        dependencies: Pre-built services to use instead of creating them at
            startup from the current configuration.
    """
    config = get_config()
    app = FastAPI(
        title="Book Catalog",
        lifespan=lifespan,
        docs_url=None if config.app.environment == "production" else "/docs",
        redoc_url=None if config.app.environment == "production" else "/redoc",
    )
    if dependencies is not None:
        app.state.app_dependencies = dependencies

    register_exception_handlers(app)

    # --- Request logging middleware ---
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        base_ctx = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }

        start = time.perf_counter()

        # Everything that logs within this block inherits base_ctx
        with logger.contextualize(**base_ctx):
            try:
                logger.debug("request.start")
                response = await call_next(request)
            except Exception as exc:
                duration_ms = (time.perf_counter() - start) * 1000
                logger.bind(
                    status_code=500,
                    duration_ms=round(duration_ms, 1),
                    error_type=type(exc).__name__,
                ).exception("request.error")
                return JSONResponse(
                    status_code=500,
                    content={
                        "error": StorageError.kind,
                        "detail": "Internal Server Error",
                        "request_id": request_id,
                    },
                    headers={"X-Request-ID": request_id},
                )

            duration_ms = (time.perf_counter() - start) * 1000
            logger.bind(
                status_code=response.status_code,
                duration_ms=round(duration_ms, 1),
            ).info("request.end")

            response.headers.setdefault("X-Request-ID", request_id)
            return response

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"message": "hello, world"}

    app.include_router(health_router)
    app.include_router(book_router, prefix="/api/v1")

    return app


configure_logging()
app = create_app()

__all__ = ["app", "create_app", "startup", "shutdown"]


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=get_config().app.host,
        port=get_config().app.port,
        access_log=False,  # We handle access logging in middleware
    )
