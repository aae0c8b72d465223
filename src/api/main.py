"""
FastAPI application factory.
Creates the proxy app with CORS, rate limiting and router registration.
Swagger UI available at /docs, ReDoc at /redoc.
"""
import sys
from pathlib import Path
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Ensure src/ is on the path
_src_dir = str(Path(__file__).parent.parent)
if _src_dir not in sys.path:
    sys.path.insert(0, _src_dir)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic for the FastAPI app."""
    import config
    from utils.logger import get_logger

    logger = get_logger()
    logger.info(f"Starting Menu Pal API on port {config.API_PORT} ({config.RUNTIME_ENVIRONMENT})", component="API")
    logger.info(f"Swagger UI: http://localhost:{config.API_PORT}/docs", component="API")

    yield

    logger.info("Shutting down API server", component="API")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    import config

    app = FastAPI(
        title="Menu Pal API",
        description=(
            "Thin proxy endpoints for Menu Pal - menu extraction through Gemini, "
            "the merged exchange-rate table, and email entitlement checks.\n\n"
            "**Authentication**: `/api/generate` requires the caller's own Gemini key "
            "in the `x-custom-api-key` header (BYOK)."
        ),
        version=config.SERVICE_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.API_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    from api.routes.generate_routes import router as generate_router
    from api.routes.rates_routes import router as rates_router
    from api.routes.entitlement_routes import router as entitlement_router
    from api.routes.health_routes import router as health_router

    app.include_router(generate_router, prefix="/api", tags=["Generation"])
    app.include_router(rates_router, prefix="/api", tags=["Rates"])
    app.include_router(entitlement_router, prefix="/api", tags=["Entitlement"])
    app.include_router(health_router, prefix="/health", tags=["Health"])

    # Rate limiting middleware
    from api.middleware.rate_limiter import RateLimitMiddleware
    app.add_middleware(RateLimitMiddleware, requests_per_minute=config.API_RATE_LIMIT_PER_MINUTE)

    @app.get("/", tags=["Root"])
    async def root():
        """API root - pointers to docs and health."""
        return {
            "service": "Menu Pal API",
            "version": config.SERVICE_VERSION,
            "docs": "/docs",
            "redoc": "/redoc",
            "health": "/health",
        }

    return app
