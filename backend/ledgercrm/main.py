"""
FastAPI application entry point.
Assembles the app with routers, middleware, lifespan handlers, and exception handlers.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from ledgercrm.api.v1.router import api_router
from ledgercrm.core.config import settings
from ledgercrm.core.exceptions import setup_exception_handlers
from ledgercrm.core.integrations.observability import setup_observability
from ledgercrm.core.logging import get_logger, setup_logging
from ledgercrm.db.session import init_db, close_db
from ledgercrm.deps.di_container import Container, set_container, settings_config

logger = get_logger(__name__)

# Inbound rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.RATE_LIMIT_PER_MINUTE}/minute"],
    enabled=settings.RATE_LIMIT_ENABLED,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    Initializes DB, DI container, observability and the registry clients.
    """
    # Startup
    setup_logging()
    setup_observability()

    await init_db(create_tables=settings.DATABASE_AUTO_CREATE)

    container = Container()
    container.config.from_dict(settings_config())
    app.state.container = container
    set_container(container)

    yield

    # Shutdown
    await container.vat_registry().close()
    await container.whitelist_registry().close()
    cache = container.cache()
    if hasattr(cache, "close"):
        await cache.close()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="Client contacts, tax registry verification and client timeline API",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiting middleware
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    # Root-level health endpoint for load balancers
    from ledgercrm.api.v1.endpoints.health import get_health

    @app.get("/health", response_model=None, include_in_schema=False)
    async def root_health(request: Request):
        """Root-level health check endpoint."""
        return await get_health(request)

    setup_exception_handlers(app)

    return app


app = create_app()
