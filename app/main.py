"""FastAPI application entry point for the SysDes auth backend."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import Settings, get_settings
from app.database import Database
from app.routers import auth_router
from app.services.identity import ProviderRegistry
from app.services.tokens import SigningKey, TokenService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting SysDes API...")
    await Database.connect(app.state.settings)
    logger.info("SysDes API started successfully")

    yield

    # Shutdown
    logger.info("Shutting down SysDes API...")
    await app.state.providers.close()
    await Database.disconnect()
    logger.info("SysDes API shutdown complete")


def create_app(
    settings: Settings | None = None,
    providers: ProviderRegistry | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="SysDes API",
        description="Authentication and session backend for the SysDes whiteboard",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Auth collaborators are built once and shared by every request.
    app.state.settings = settings
    app.state.token_service = TokenService(
        SigningKey(key_id=settings.jwt_key_id, secret=settings.jwt_secret),
        ttl=timedelta(seconds=settings.token_ttl_seconds),
    )
    app.state.providers = providers or ProviderRegistry.from_settings(settings)

    if not settings.is_development and settings.jwt_secret == Settings.model_fields["jwt_secret"].default:
        logger.warning("JWT_SECRET is set to the development default")

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(auth_router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        try:
            # Check database connection
            db = Database.get_db()
            await db.command("ping")
            return {
                "status": "healthy",
                "database": "connected",
            }
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            return {
                "status": "unhealthy",
                "database": "disconnected",
            }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=4000,
        reload=True,
    )
