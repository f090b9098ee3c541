"""
Service graph shared by the routes.
Built once in the app lifespan (or lazily on first use) and handed to routes
through get_services().
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, status

from gst_ledger.classification.hsn_resolver import HSNResolver
from gst_ledger.clients.admin_api import client_for_shop
from gst_ledger.clients.document_service import DocumentServiceClient
from gst_ledger.clients.document_storage import DocumentStorage
from gst_ledger.ledger.ledger_writer import LedgerWriter
from gst_ledger.reports.gst_reports import GSTReportService
from gst_ledger.reports.report_exporter import GSTReportExporter
from gst_ledger.storage.ledger_db import LedgerDB
from gst_ledger.webhooks.handlers import WebhookHandlers
from gst_ledger.webhooks.pipeline import InvoicePipeline, admin_api_location_lookup


@dataclass
class Services:
    db: LedgerDB
    handlers: WebhookHandlers
    reports: GSTReportService
    exporter: GSTReportExporter


# Will be initialized in main.py when the app starts
_services: Optional[Services] = None


def build_services(
    db_path: str,
    storage_root: Optional[str] = None,
    document_client: Optional[DocumentServiceClient] = None,
) -> Services:
    """Wire the store, clients, pipeline and handlers together."""
    db = LedgerDB(db_path)

    def fetch_hsn_codes(shop, product_ids):
        client = client_for_shop(db, shop)
        return client.fetch_hsn_codes(product_ids) if client else {}

    hsn_resolver = HSNResolver(db, fetcher=fetch_hsn_codes)
    ledger = LedgerWriter(db)
    pipeline = InvoicePipeline(db, ledger, document_client or DocumentServiceClient(), hsn_resolver)
    handlers = WebhookHandlers(
        db,
        pipeline,
        ledger,
        DocumentStorage(storage_root),
        hsn_resolver,
        location_lookup=admin_api_location_lookup(db),
    )
    reports = GSTReportService(db)
    return Services(db=db, handlers=handlers, reports=reports, exporter=GSTReportExporter(reports))


def init_services(services: Services):
    """Install the service graph. Called from main.py."""
    global _services
    _services = services


def _lazy_init():
    global _services
    if _services is not None:
        return
    from gst_ledger import config
    _services = build_services(config.LEDGER_DB_PATH, config.DOCUMENT_STORAGE_ROOT)


def get_services() -> Services:
    """FastAPI dependency returning the service graph."""
    _lazy_init()
    if _services is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Services not initialized",
        )
    return _services
