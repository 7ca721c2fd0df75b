"""Main FastAPI application."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import async_sessionmaker
from starlette.middleware.sessions import SessionMiddleware

from fedauth.api.v1 import identities
from fedauth.config import settings
from fedauth.core.database import close_db, init_db
from fedauth.core.logging_config import get_logger, setup_logging
from fedauth.middleware.error_handler import ErrorHandlerMiddleware
from fedauth.middleware.omniauth import OmniauthMiddleware
from fedauth.services.omniauth.config import OmniauthConfig, build_omniauth
from fedauth.services.omniauth.dispatcher import OmniauthDispatcher

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    logger.info("app_starting", app=settings.APP_NAME, environment=settings.ENVIRONMENT)

    await init_db()
    logger.info(
        "app_started",
        providers=app.state.omniauth.registry.providers(),
        prefix=app.state.omniauth.registry.prefix,
    )

    yield

    await close_db()
    logger.info("app_stopped")


def create_app(
    omniauth: Optional[OmniauthConfig] = None,
    session_factory: Optional[async_sessionmaker] = None,
) -> FastAPI:
    """
    Build the application.

    The provider registry is finalized here, so a provider whose strategy
    cannot be loaded stops the app from being created.

    Args:
        omniauth: External login configuration (default: from settings)
        session_factory: Database session factory for callback resolution
    """
    config = (omniauth or build_omniauth()).finalize()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
    )
    app.state.omniauth = config

    # Innermost first; SessionMiddleware must wrap the dispatcher
    app.add_middleware(
        OmniauthMiddleware,
        dispatcher=OmniauthDispatcher(config, session_factory=session_factory),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-CSRF-Token"],
        expose_headers=["Authorization"],
    )
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=config.settings.SECRET_KEY,
        session_cookie=config.settings.SESSION_COOKIE_NAME,
        same_site="lax",
        https_only=config.settings.is_production,
    )

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "running",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    app.include_router(identities.router, prefix="/api/v1/identities", tags=["Identities"])
    return app


app = create_app()
