"""
FastAPI application factory.
Creates the app with CORS, service wiring, and router registration.
Swagger UI available at /docs, ReDoc at /redoc.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gst_ledger import config
from gst_ledger.api.dependencies import build_services, init_services
from gst_ledger.utils.logger import get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic for the FastAPI app."""
    logger = get_logger()
    logger.info(f"Initializing GST Ledger API on port {config.API_PORT}", component="API")

    for problem in _config_warnings():
        logger.warning(problem, component="API")

    services = build_services(config.LEDGER_DB_PATH, config.DOCUMENT_STORAGE_ROOT)
    init_services(services)
    app.state.services = services

    logger.info(f"Ledger store: {config.LEDGER_DB_PATH}", component="API")
    logger.info(f"Swagger UI: http://localhost:{config.API_PORT}/docs", component="API")

    yield

    logger.info("Shutting down API server", component="API")


def _config_warnings():
    try:
        config.validate_config()
    except ValueError as e:
        return [str(e)]
    return []


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="GST Ledger API",
        description=(
            "GST invoicing and ledger service for store platform orders.\n\n"
            "**Webhooks**: order, refund and product events signed with the shop's "
            "webhook secret (`X-Shopify-Hmac-Sha256`).\n\n"
            "**Reports**: B2C (Others) and HSN-wise summaries for GSTR-1 filing."
        ),
        version="1.0.0",
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
        expose_headers=["Content-Disposition"],
    )

    # Register routers
    from gst_ledger.api.routes.webhook_routes import router as webhook_router
    from gst_ledger.api.routes.report_routes import router as report_router
    from gst_ledger.api.routes.health_routes import router as health_router

    app.include_router(webhook_router, prefix="/webhooks", tags=["Webhooks"])
    app.include_router(report_router, prefix="/reports", tags=["Reports"])
    app.include_router(health_router, prefix="/health", tags=["Health"])

    # Rate limiting middleware
    from gst_ledger.api.middleware.rate_limiter import RateLimitMiddleware
    app.add_middleware(RateLimitMiddleware, requests_per_minute=config.API_RATE_LIMIT_PER_MINUTE)

    @app.get("/", tags=["Root"])
    async def root():
        """API root - service index."""
        return {
            "service": "GST Ledger API",
            "version": "1.0.0",
            "docs": "/docs",
            "redoc": "/redoc",
            "health": "/health",
            "webhooks": "/webhooks",
            "reports": "/reports",
        }

    return app
