"""
Health check route - public, no signature required.
"""
import sqlite3

from fastapi import APIRouter, Depends

from gst_ledger import config
from gst_ledger.api.dependencies import Services, get_services

router = APIRouter()


@router.get(
    "",
    summary="System health check",
)
async def health_check(services: Services = Depends(get_services)):
    """
    Check system health status.

    Returns status of the ledger store and the configured downstream services.
    """
    health = {
        "status": "healthy",
        "service": "GST Ledger API",
        "version": "1.0.0",
        "components": {}
    }

    try:
        services.db.health_check()
        health["components"]["ledger_db"] = "ok"
    except sqlite3.Error as e:
        health["components"]["ledger_db"] = f"error: {str(e)}"
        health["status"] = "degraded"

    health["components"]["webhook_secret"] = (
        "configured" if (config.SHOPIFY_WEBHOOK_SECRET or config.SHOPIFY_API_SECRET) else "missing"
    )
    health["components"]["document_service"] = (
        "configured" if config.DOCUMENT_SERVICE_URL else "disabled"
    )

    return health
