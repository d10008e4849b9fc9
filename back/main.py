# Standard library imports
from collections.abc import Callable
from contextlib import asynccontextmanager

# Third-party imports
from fastapi import FastAPI, Request
from fastapi.routing import APIRoute
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

# Local application imports
from civicsync.api.internal.routes.v1.routes import router as v1_router
from civicsync.api.internal.utils.exceptions import register_exception_handlers
from civicsync.core.monitoring.logging import get_logger
from civicsync.settings import settings
from civicsync.sync import SyncError, SyncSession

# Set up the main application logger
logger = get_logger("civicsync")

SessionFactory = Callable[[], SyncSession]


if settings.ENVIRONMENT == "production" and settings.SENTRY_DSN:
    logger.info(f"Initializing Sentry in {settings.ENVIRONMENT} environment")
    # Basic Sentry logging integration is already set up in core/monitoring/sentry.py;
    # here we add the FastAPI integration if it is not already present
    client = sentry_sdk.get_client()
    integrations = list(client.options.get("integrations", [])) if client.is_active() else []
    if not any(isinstance(integration, FastApiIntegration) for integration in integrations):
        integrations.append(FastApiIntegration())
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=integrations,
            environment=settings.ENVIRONMENT,
            traces_sample_rate=1.0,  # tweak for performance
        )


def build_sync_session() -> SyncSession:
    """Session backed by Postgres for reads and writes and Redis for change notifications."""
    # Local application imports
    from civicsync.services.realtime import RedisChangeChannel
    from civicsync.services.reports import ReportService

    channel = RedisChangeChannel()
    service = ReportService(publisher=channel)
    return SyncSession(service, channel, service)


# ---- FASTAPI APP CREATION ----
def custom_generate_unique_id(route: APIRoute) -> str:
    # Handle routes without tags
    if route.tags and len(route.tags) > 0:
        return f"{route.tags[0]}-{route.name}"
    else:
        return route.name or "unnamed_route"


def create_app(session_factory: SessionFactory | None = None) -> FastAPI:
    """Create and configure FastAPI application"""
    make_session = session_factory or build_sync_session

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("Starting up FastAPI application")
        session = make_session()
        app.state.last_sync_error = None

        def remember_error(error: SyncError) -> None:
            app.state.last_sync_error = error

        session.add_error_listener(remember_error)
        try:
            await session.start()
        except SyncError as e:
            logger.error(f"Failed to start report sync: {e}")
            raise
        app.state.sync_session = session
        logger.info(f"Report sync ready with {len(session.store)} reports")

        yield

        # Shutdown
        logger.info("Shutting down FastAPI application")
        app.state.sync_session = None
        await session.stop()

    # Create FastAPI app
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version="1.0.0",
        description="Live civic-issue reports: citizen list, staff map and analytics",
        openapi_url=f"{settings.API_V1_STR}/openapi.json" if settings.ENVIRONMENT != "production" else None,
        docs_url=f"{settings.API_V1_STR}/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url=f"{settings.API_V1_STR}/redoc" if settings.ENVIRONMENT != "production" else None,
        generate_unique_id_function=custom_generate_unique_id,
        lifespan=lifespan,
    )
    register_exception_handlers(app)

    # Health check endpoint
    @app.get("/health")
    async def health_check(request: Request):
        session: SyncSession | None = getattr(request.app.state, "sync_session", None)
        last_error = getattr(request.app.state, "last_sync_error", None)
        connected = session is not None and session.connected
        return {
            "status": "healthy" if connected else "degraded",
            "version": "1.0.0",
            "realtime": "connected" if connected else "disconnected",
            "reports": len(session.store) if session is not None else 0,
            "pending_mutations": len(session.pending_mutations()) if session is not None else 0,
            "last_error": str(last_error) if last_error is not None else None,
        }

    # Include report routes
    app.include_router(v1_router, prefix=settings.API_V1_STR)

    return app


# Create the app instance
app = create_app()
