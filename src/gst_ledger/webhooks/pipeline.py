"""
Invoice Pipeline
transform -> ledger write -> document generation -> invoice record ->
invoice id backfill -> order record update.

Only a transform failure is fatal. Every later step is best effort: the ledger
is written before the document call and is never rolled back, and a redelivered
event finishes whatever a failed run left undone.
"""

from __future__ import annotations

import sqlite3
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import requests

from gst_ledger import config
from gst_ledger.classification.hsn_resolver import HSNResolver
from gst_ledger.clients.admin_api import client_for_shop
from gst_ledger.clients.document_service import DocumentServiceClient
from gst_ledger.exceptions import DownstreamError
from gst_ledger.ledger.ledger_writer import LedgerWriter
from gst_ledger.payloads import OrderPayload
from gst_ledger.storage.ledger_db import LedgerDB, utc_now_iso
from gst_ledger.transform.invoice_transformer import transform_order
from gst_ledger.transform.models import InvoiceData
from gst_ledger.utils.logger import get_logger

SOURCE_ORDERS_CREATE = "webhook-orders-create"
SOURCE_ORDERS_UPDATED_FULFILLMENT = "webhook-orders-updated-fulfillment"

# Order processing states, in order
STATE_PENDING = "pending"
STATE_LEDGER_WRITTEN = "ledger-written"
STATE_DOCUMENT_GENERATED = "document-generated"
STATE_COMPLETE = "complete"

# (shop, location_id) -> province or None
LocationLookup = Callable[[str, str], Optional[str]]


# ---------------------------------------------------------------------------
# Shop settings and lookups
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ShopConfig:
    company_state: str = "Unknown"
    company_gstin: Optional[str] = None
    multi_warehouse_gst: bool = False


def get_shop_config(db: LedgerDB, shop: str) -> ShopConfig:
    record = db.get_shop(shop) or {}
    return ShopConfig(
        company_state=record.get("companyState") or "Unknown",
        company_gstin=record.get("companyGSTIN") or None,
        multi_warehouse_gst=record.get("multiWarehouseGST") is True,
    )


def admin_api_location_lookup(db: LedgerDB) -> LocationLookup:
    """Location lookup through the shop's admin API token."""
    def lookup(shop: str, location_id: str) -> Optional[str]:
        client = client_for_shop(db, shop)
        if client is None:
            get_logger().warning(f"No access token for {shop}, cannot resolve location", component="Location")
            return None
        return client.get_location_state(location_id)
    return lookup


def resolve_location_state(
    lookup: Optional[LocationLookup],
    shop: str,
    location_id: Optional[Any],
    fallback: str,
) -> str:
    """Province of a fulfillment location, or fallback when it cannot be resolved."""
    if location_id is None or str(location_id) == "" or lookup is None:
        return fallback
    try:
        state = lookup(shop, str(location_id))
    except (requests.RequestException, ValueError, DownstreamError) as e:
        get_logger().error(f"Location {location_id} lookup failed: {e}", component="Location")
        return fallback
    return state or fallback


def record_audit(db: LedgerDB, shop: str, action: str, details: Dict[str, Any]) -> None:
    """Append an audit entry. Never raises."""
    if not config.FEATURE_AUDIT_LOG:
        return
    ttl = int(time.time()) + config.RECORD_TTL_DAYS * 24 * 60 * 60
    try:
        db.add_audit_log(shop, action, details, ttl)
    except sqlite3.Error as e:
        get_logger().error(f"Audit log write failed for {action}: {e}", component="Audit")


def invoice_timestamp(created_at: Optional[str]) -> str:
    """Order creation time as a UTC ISO timestamp, or now when missing."""
    if created_at:
        try:
            parsed = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc).isoformat()
    return utc_now_iso()


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

@dataclass
class PipelineResult:
    invoice_id: str
    document_url: str = ""
    file_name: str = ""
    email_sent_to: Optional[str] = None
    ledger_rows: int = 0
    inserted: bool = True


class InvoicePipeline:
    """Runs the invoice-creation steps for one order."""

    def __init__(
        self,
        db: LedgerDB,
        ledger: LedgerWriter,
        document_client: DocumentServiceClient,
        hsn_resolver: Optional[HSNResolver] = None,
    ):
        self.db = db
        self.ledger = ledger
        self.document_client = document_client
        self.hsn_resolver = hsn_resolver
        self.logger = get_logger()

    def prepare(self, shop: str, order: OrderPayload, seller_state: str) -> InvoiceData:
        """HSN enrichment then transform. TransformError propagates."""
        if self.hsn_resolver is not None:
            order = self.hsn_resolver.enrich_order(shop, order)
        return transform_order(order, seller_state)

    def write_ledger(
        self,
        shop: str,
        order: OrderPayload,
        order_name: str,
        invoice: InvoiceData,
        seller_state: str,
        company_gstin: Optional[str],
        invoice_id: str = "",
    ) -> int:
        """Write ledger rows for a transformed order. Failures are logged, not raised."""
        meta = invoice.gst_meta
        if not meta.items:
            return 0

        order_info = {
            "invoiceId": invoice_id,
            "invoiceNumber": order_name,
            "invoiceDate": invoice_timestamp(order.created_at),
            "orderId": order.order_id,
            "orderNumber": order_name,
            "customerName": invoice.document.customer.get("name"),
            "customerState": meta.customer_state,
            "placeOfSupply": meta.place_of_supply,
        }
        try:
            return self.ledger.write_order_items(
                shop, order_info, meta.items, {"state": seller_state, "gstin": company_gstin}
            )
        except sqlite3.Error as e:
            self.logger.error(f"Order {order_name} - ledger write failed: {e}", component="InvoicePipeline")
            return 0

    def generate(
        self,
        shop: str,
        order: OrderPayload,
        order_name: str,
        seller_state: str,
        company_gstin: Optional[str],
        source: str,
        extra_invoice_fields: Optional[Dict[str, Any]] = None,
    ) -> PipelineResult:
        """
        Full invoice creation for an order.

        Raises:
            TransformError: the order could not be transformed; nothing was written
        """
        order_id = order.order_id
        invoice = self.prepare(shop, order, seller_state)
        self.logger.log_pipeline_step(
            order_name, "transformed",
            f"{len(invoice.document.line_items)} row(s), {len(invoice.gst_meta.items)} GST item(s), "
            f"intrastate={invoice.gst_meta.is_intrastate}",
        )

        # 1. Ledger
        ledger_rows = self.write_ledger(shop, order, order_name, invoice, seller_state, company_gstin)
        if ledger_rows:
            self._mark_order(shop, order_name, {"processingState": STATE_LEDGER_WRITTEN})

        # 2. Document
        document: Dict[str, Any] = {}
        try:
            document = self.document_client.generate(invoice.document.to_dict(), shop, order_id, order_name)
            self._mark_order(shop, order_name, {"processingState": STATE_DOCUMENT_GENERATED})
            self.logger.log_pipeline_step(order_name, "document generated", document.get("fileName", ""))
        except DownstreamError as e:
            self.logger.error(f"Order {order_name} - document generation failed: {e}", component="InvoicePipeline")

        # 3. Invoice record
        invoice_id = document.get("invoiceId") or str(uuid.uuid4())
        email_sent_to = document.get("emailSentTo") or ""
        now = utc_now_iso()
        record = {
            "invoiceId": invoice_id,
            "shop": shop,
            "orderId": order_id,
            "orderName": order_name,
            "customerName": invoice.document.customer.get("name") or "",
            "customerEmail": invoice.document.customer.get("email") or "",
            "documentKey": document.get("fileName") or "",
            "documentUrl": document.get("s3Url") or "",
            "emailSentTo": email_sent_to,
            "emailSentAt": now if email_sent_to else None,
            "total": invoice.document.totals.total,
            "status": "sent" if email_sent_to else "generated",
            "createdAt": now,
            "updatedAt": now,
            **(extra_invoice_fields or {}),
        }
        document_key = record["documentKey"]
        document_url = record["documentUrl"]
        inserted = False
        try:
            inserted = self.db.insert_invoice_if_absent(record)
            if not inserted:
                # The stored record wins; its document is the one the order points at
                existing = self.db.find_invoice_by_order(shop, order_id)
                if existing:
                    invoice_id = existing["invoiceId"]
                    document_key = existing.get("documentKey") or ""
                    document_url = existing.get("documentUrl") or ""
                    email_sent_to = existing.get("emailSentTo") or ""
                self.logger.warning(
                    f"Order {order_name} - invoice record already present, keeping {invoice_id}",
                    component="InvoicePipeline",
                )
        except sqlite3.Error as e:
            self.logger.error(f"Order {order_name} - invoice record write failed: {e}", component="InvoicePipeline")

        # 4. Ledger invoice id
        try:
            self.ledger.backfill_invoice_id(shop, order_name, invoice_id, source)
        except sqlite3.Error as e:
            self.logger.error(f"Order {order_name} - invoice id backfill failed: {e}", component="InvoicePipeline")

        # 5. Order record
        order_fields: Dict[str, Any] = {
            "invoiceId": invoice_id,
            "invoicePending": False,
            "processingState": STATE_COMPLETE,
        }
        if document_key:
            order_fields.update({
                "documentKey": document_key,
                "invoiceGenerated": True,
                "invoiceGeneratedAt": utc_now_iso(),
            })
        self._mark_order(shop, order_name, order_fields)

        record_audit(self.db, shop, "invoice_generated", {
            "orderName": order_name,
            "invoiceId": invoice_id,
            "source": source,
            "ledgerRows": ledger_rows,
            "documentGenerated": bool(document),
        })
        self.logger.log_pipeline_step(order_name, "complete", f"invoice {invoice_id}")

        return PipelineResult(
            invoice_id=invoice_id,
            document_url=document_url,
            file_name=document_key,
            email_sent_to=email_sent_to or None,
            ledger_rows=ledger_rows,
            inserted=inserted,
        )

    def _mark_order(self, shop: str, order_name: str, fields: Dict[str, Any]) -> None:
        try:
            self.db.update_order(shop, order_name, fields)
        except sqlite3.Error as e:
            self.logger.error(f"Order {order_name} - order record update failed: {e}", component="InvoicePipeline")
