"""
FastAPI application: API proxy, widget bootstrap, legacy order form and health checks
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException as FastAPIHTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.deps import get_http_client
from app.api.routes import health, orders, proxy, widget
from app.core.cache import CACHE_PREFIX, get_cache
from app.core.config import get_settings
from app.core.logging_config import LoggingConfig
from app.core.middleware import LoggingContextMiddleware

logger = LoggingConfig.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI app"""
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode...")
    get_cache().clear_by_prefix(CACHE_PREFIX)

    yield

    logger.info(f"Shutting down {settings.app_name}...")
    get_cache().clear_by_prefix(CACHE_PREFIX)
    await get_http_client().aclose()


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler to log all unhandled errors"""
    if isinstance(exc, FastAPIHTTPException):
        raise exc

    logger.error(
        "Unhandled exception",
        exc_info=True,
        extra={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        }
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__
        }
    )


def create_app() -> FastAPI:
    LoggingConfig.configure()
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Order widget backend: API proxy, phone validation and porting LOA pipeline",
        version=settings.app_version,
        lifespan=lifespan,
    )

    # Before CORS to capture all requests
    app.add_middleware(LoggingContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(proxy.router)
    app.include_router(widget.router)
    app.include_router(orders.router)
    app.include_router(health.router)

    return app


app = create_app()
