"""
Diamond Deployer - FastAPI Application
Main entry point for the diamond deployment service.
Deploys and upgrades ERC-2535 diamond proxies locally or through a remote
deployment and proposal service.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from diamond_deployer.core.config import settings
from diamond_deployer.core.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    setup_logging()
    logger.info(
        "Diamond deployer started",
        environment=settings.ENVIRONMENT,
        network=settings.NETWORK_NAME,
        chain_id=settings.CHAIN_ID,
    )
    yield


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Diamond Deployer",
        description="ERC-2535 diamond deployment and upgrade orchestration API",
        version="1.0.0",
        docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
        openapi_url="/openapi.json" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    logger.info(f"CORS configured with origins: {settings.ALLOWED_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from diamond_deployer.api.routers import deployment_router

    app.include_router(
        deployment_router.router,
        prefix="/api/v1/diamonds",
        tags=["Diamond Deployments"],
    )

    @app.get("/")
    async def root():
        """Root endpoint for health check."""
        return {
            "message": "Diamond Deployer API",
            "version": "1.0.0",
            "status": "healthy",
            "features": [
                "Selector Reconciliation",
                "Atomic Diamond Cuts",
                "Local Deployment",
                "Remote Deployment & Proposals",
                "Resumable Step Ledger",
            ],
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "network": settings.get_network_config(),
            "features_enabled": {
                "local_signer": bool(settings.DEPLOYER_PRIVATE_KEY),
                "remote_service": bool(settings.DEFENDER_API_KEY),
                "write_deployed_data": settings.WRITE_DEPLOYED_DIAMOND_DATA,
            },
        }

    return app


# Create the FastAPI app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "diamond_deployer.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
        log_level="info",
    )
