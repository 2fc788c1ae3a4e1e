"""contact-vault service entry point.

Initializes the FastAPI application with:
- Structured logging
- Primary database for contacts, versions, groups, uploads, and settings
- Domain error → HTTP response translation
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from contact_vault.api.router import router
from contact_vault.database import close_database, init_database
from contact_vault.errors import install_exception_handlers
from contact_vault.observability import configure_logging, get_logger
from contact_vault.settings import Settings

logger = get_logger(__name__)

settings = Settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle.

    Configures logging and the database engine on startup, and disposes
    the engine on shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        None
    """
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)

    logger.info("Initializing primary database", service=settings.service_name)
    await init_database(
        settings.database_url,
        pool_size=settings.pool_size,
        echo=settings.database_echo,
        create_schema=settings.create_schema_on_startup,
    )

    app.state.settings = settings
    logger.info("contact-vault startup complete")

    yield

    logger.info("Shutting down contact-vault")
    await close_database()
    logger.info("contact-vault shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application with routes and error handlers.

    Returns:
        The configured application.
    """
    application = FastAPI(title=settings.service_name, version="0.1.0", lifespan=lifespan)
    install_exception_handlers(application)
    application.include_router(router, prefix="/api/v1")

    @application.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.service_name}

    return application


app: FastAPI = create_app()
