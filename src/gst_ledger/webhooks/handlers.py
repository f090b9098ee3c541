"""
Webhook event handlers: orders/create, orders/updated, orders/cancelled,
refunds/create and products/update.

Handlers receive already-authenticated, validated payloads and return the JSON
body of the response. Missing identifiers raise WebhookValidationError.
"""

from __future__ import annotations

import sqlite3
import time
import uuid
from typing import Any, Dict, List, Optional, Set

import requests

from gst_ledger import config
from gst_ledger.classification.hsn_resolver import (
    HSN_METAFIELD_KEY,
    HSN_METAFIELD_NAMESPACE,
    HSNResolver,
)
from gst_ledger.clients.document_storage import DocumentStorage
from gst_ledger.exceptions import WebhookValidationError
from gst_ledger.ledger.ledger_writer import LedgerWriter
from gst_ledger.payloads import OrderPayload, ProductPayload, RefundPayload
from gst_ledger.storage.ledger_db import LedgerDB, utc_now_iso
from gst_ledger.transform.invoice_transformer import extract_customer_name
from gst_ledger.utils.logger import get_logger

from .pipeline import (
    SOURCE_ORDERS_CREATE,
    SOURCE_ORDERS_UPDATED_FULFILLMENT,
    STATE_COMPLETE,
    STATE_PENDING,
    InvoicePipeline,
    LocationLookup,
    get_shop_config,
    record_audit,
    resolve_location_state,
)

EXCHANGE_SOURCES = ("shopify_draft_order", "exchange")
EXCHANGE_NOTE_ATTRIBUTES = ("exchange_for_order_id", "original_order_id")
DEFERRED_REASON = "multi-warehouse-gst-awaiting-fulfillment"


# ---------------------------------------------------------------------------
# Exchange detection
# ---------------------------------------------------------------------------

def is_exchange_order(order: OrderPayload) -> bool:
    if order.source_name in EXCHANGE_SOURCES:
        return True
    if order.note and "exchange" in order.note.lower():
        return True
    return any(attr.name in EXCHANGE_NOTE_ATTRIBUTES for attr in order.note_attributes)


def exchange_for_order(order: OrderPayload) -> Optional[str]:
    """Name of the original order an exchange order replaces, when given."""
    for attr in order.note_attributes:
        if attr.name in EXCHANGE_NOTE_ATTRIBUTES and attr.value:
            return str(attr.value)
    return None


def returned_line_item_ids(order: OrderPayload) -> Set[str]:
    return {
        str(item.line_item_id)
        for order_return in order.returns
        for item in order_return.return_line_items
        if item.line_item_id is not None
    }


def _ttl() -> int:
    return int(time.time()) + config.RECORD_TTL_DAYS * 24 * 60 * 60


class WebhookHandlers:
    """Event handlers bound to one store and its collaborators"""

    def __init__(
        self,
        db: LedgerDB,
        pipeline: InvoicePipeline,
        ledger: LedgerWriter,
        storage: DocumentStorage,
        hsn_resolver: HSNResolver,
        location_lookup: Optional[LocationLookup] = None,
    ):
        self.db = db
        self.pipeline = pipeline
        self.ledger = ledger
        self.storage = storage
        self.hsn_resolver = hsn_resolver
        self.location_lookup = location_lookup
        self.logger = get_logger()

    def archive(self, shop: str, topic: str, payload: Dict[str, Any], order_name: Optional[str] = None) -> None:
        """Keep a copy of the delivery when archiving is enabled. Never raises."""
        if config.FEATURE_WEBHOOK_ARCHIVE:
            self.storage.archive_webhook_payload(shop, topic, payload, order_name)

    # ────────────────────────────────────────────────────────────
    # orders/create
    # ────────────────────────────────────────────────────────────

    def orders_create(self, shop: str, topic: str, order: OrderPayload) -> Dict[str, Any]:
        order_name = order.name
        if not order_name:
            raise WebhookValidationError("Order name missing")

        order_id = order.order_id
        event_id = str(uuid.uuid4())
        timestamp = utc_now_iso()

        existing = self.db.find_invoice_by_order(shop, order_id)
        if existing:
            if self.ledger.has_entries(shop, order_name):
                self.logger.info(f"Order {order_name} already processed, duplicate delivery", component="Webhook")
                return {
                    "success": True,
                    "message": "Order already processed (duplicate webhook)",
                    "invoiceId": existing["invoiceId"],
                }
            return self._recover_ledger(shop, order, existing["invoiceId"], event_id, timestamp)

        exchange = is_exchange_order(order)
        related_order = exchange_for_order(order) if exchange else None
        self._store_order(shop, topic, order, event_id, timestamp, exchange, related_order)

        shop_config = get_shop_config(self.db, shop)
        if shop_config.multi_warehouse_gst and not exchange:
            self.db.update_order(shop, order_name, {
                "invoicePending": True,
                "invoicePendingReason": DEFERRED_REASON,
            })
            record_audit(self.db, shop, "invoice_deferred", {"orderName": order_name, "reason": DEFERRED_REASON})
            self.logger.info(f"Order {order_name} - invoice deferred to fulfillment", component="Webhook")
            return {
                "success": True,
                "message": "Order stored - invoice deferred to fulfillment (multi-warehouse GST)",
                "eventId": event_id,
                "timestamp": timestamp,
                "multiWarehouseGST": True,
            }

        seller_state = resolve_location_state(
            self.location_lookup, shop, order.location_id, shop_config.company_state
        )
        result = self.pipeline.generate(
            shop, order, order_name, seller_state, shop_config.company_gstin, SOURCE_ORDERS_CREATE
        )
        return {
            "success": True,
            "message": "Order webhook processed successfully",
            "eventId": event_id,
            "invoiceId": result.invoice_id,
            "timestamp": timestamp,
        }

    def _recover_ledger(
        self, shop: str, order: OrderPayload, invoice_id: str, event_id: str, timestamp: str
    ) -> Dict[str, Any]:
        """Invoice exists but the ledger does not: write the ledger only."""
        order_name = order.name
        self.logger.warning(f"Order {order_name} has an invoice but no ledger rows, writing ledger", component="Webhook")

        shop_config = get_shop_config(self.db, shop)
        seller_state = resolve_location_state(
            self.location_lookup, shop, order.location_id, shop_config.company_state
        )
        invoice = self.pipeline.prepare(shop, order, seller_state)
        rows = self.pipeline.write_ledger(
            shop, order, order_name, invoice, seller_state, shop_config.company_gstin, invoice_id=invoice_id
        )
        if rows:
            self.db.update_order(shop, order_name, {"processingState": STATE_COMPLETE})

        return {
            "success": True,
            "message": "Ledger data written for existing invoice",
            "eventId": event_id,
            "invoiceId": invoice_id,
            "ledgerRows": rows,
            "timestamp": timestamp,
        }

    def _store_order(
        self,
        shop: str,
        topic: str,
        order: OrderPayload,
        event_id: str,
        timestamp: str,
        exchange: bool,
        related_order: Optional[str],
    ) -> None:
        record: Dict[str, Any] = {
            "eventId": event_id,
            "shop": shop,
            "name": order.name,
            "orderId": order.order_id,
            "timestamp": timestamp,
            "status": "Created",
            "processingState": STATE_PENDING,
            "customerName": extract_customer_name(order),
            "currency": order.currency or order.presentment_currency or "INR",
            "total_price": str(order.total_price or order.current_total_price or "0.00"),
            "financial_status": order.financial_status or "pending",
            "fulfillment_status": order.fulfillment_status or "unfulfilled",
            "sourceIP": order.browser_ip,
            "topic": topic,
            "payload": order.model_dump(mode="json"),
            "createdAt": order.created_at or timestamp,
            "updatedAt": timestamp,
            "ttl": _ttl(),
        }
        if exchange:
            record["exchangeType"] = "exchange"
            if related_order:
                record["relatedOrderId"] = related_order
        self.db.put_order(record)

        if related_order:
            try:
                self.db.update_order(shop, related_order, {"relatedOrderId": order.name}, upsert=False)
                self.logger.info(f"Linked original order {related_order} to exchange {order.name}", component="Webhook")
            except sqlite3.Error as e:
                self.logger.error(f"Linking {related_order} to {order.name} failed: {e}", component="Webhook")

    # ────────────────────────────────────────────────────────────
    # orders/updated
    # ────────────────────────────────────────────────────────────

    def orders_updated(self, shop: str, order: OrderPayload) -> Dict[str, Any]:
        order_name = order.name
        if not order_name:
            raise WebhookValidationError("Order name missing")

        payment_status = order.financial_status
        fulfillment_status = order.fulfillment_status

        has_returns = bool(order.returns)
        returned_ids = returned_line_item_ids(order)
        is_exchange = has_returns and any(str(item.id) not in returned_ids for item in order.line_items)

        new_status: Optional[str] = None
        relocate_to: Optional[str] = None
        if payment_status == "refunded" and not is_exchange:
            new_status, relocate_to = "Returned", "returned"
        elif fulfillment_status == "fulfilled":
            new_status = "Fulfilled"
        elif fulfillment_status == "partial":
            new_status = "Partially Fulfilled"
        elif fulfillment_status == "on_hold":
            new_status = "On Hold"

        latest = order.fulfillments[-1] if order.fulfillments else None
        fulfillment_data: Dict[str, Any] = {}
        if latest:
            candidates = {
                "trackingNumber": latest.tracking_number,
                "trackingCompany": latest.tracking_company,
                "trackingUrl": latest.tracking_url,
                "fulfillmentLocationId": str(latest.location_id) if latest.location_id is not None else None,
                "fulfillmentDetailStatus": latest.status,
                "fulfilledAt": latest.created_at,
                "shipmentStatus": latest.shipment_status,
            }
            fulfillment_data = {key: value for key, value in candidates.items() if value}

        location_to_resolve = fulfillment_data.get("fulfillmentLocationId") or (
            str(order.location_id) if order.location_id is not None else None
        )
        if location_to_resolve:
            resolved = resolve_location_state(self.location_lookup, shop, location_to_resolve, "Unknown")
            if resolved != "Unknown":
                fulfillment_data["fulfillmentState"] = resolved

        order_fields: Dict[str, Any] = {
            "status": new_status or (f"fulfillment:{fulfillment_status}" if fulfillment_status else "Created"),
            "financial_status": payment_status or "unknown",
            "fulfillment_status": fulfillment_status or "unfulfilled",
            **fulfillment_data,
        }
        if order.location_id is not None:
            order_fields["locationId"] = str(order.location_id)
        if has_returns:
            if is_exchange:
                order_fields["exchangeType"] = "original"
            else:
                order_fields["returnType"] = "return"
            order_fields["payload"] = order.model_dump(mode="json")
        self.db.update_order(shop, order_name, order_fields)

        try:
            self.ledger.update_fulfillment_info(shop, order_name, {
                "orderStatus": new_status,
                "fulfillmentLocationId": fulfillment_data.get("fulfillmentLocationId"),
                "trackingNumber": fulfillment_data.get("trackingNumber"),
                "fulfillmentState": fulfillment_data.get("fulfillmentState"),
            }, source="webhook-orders-updated")
        except sqlite3.Error as e:
            self.logger.error(f"Order {order_name} - ledger fulfillment update failed: {e}", component="Ledger")

        invoice_id = self._invoice_on_fulfillment(shop, order, latest) if (
            fulfillment_status == "fulfilled" and latest
        ) else None

        moved: List[str] = []
        if relocate_to:
            moved = self.storage.move_invoice_to_folder(order_name, shop, relocate_to)
            if moved:
                self.db.update_order(shop, order_name, {"documentKey": moved[0]})

        return {
            "success": True,
            "message": f"Order {order_name} updated -> {new_status or 'Updated'}",
            "orderName": order_name,
            "paymentStatus": payment_status,
            "fulfillmentStatus": fulfillment_status,
            "fulfillmentData": fulfillment_data,
            "movedInvoices": moved,
            "invoiceGeneratedOnFulfillment": invoice_id is not None,
            "invoiceId": invoice_id,
        }

    def _invoice_on_fulfillment(self, shop: str, order: OrderPayload, latest) -> Optional[str]:
        """Deferred multi-warehouse invoice, using the fulfilling location's state."""
        shop_config = get_shop_config(self.db, shop)
        if not shop_config.multi_warehouse_gst:
            return None

        if self.db.find_invoice_by_order(shop, order.order_id):
            self.logger.info(f"Order {order.name} already invoiced, skipping fulfillment invoice", component="Webhook")
            return None

        location_id = str(latest.location_id) if latest.location_id is not None else ""
        seller_state = resolve_location_state(
            self.location_lookup, shop, location_id or None, shop_config.company_state
        )
        result = self.pipeline.generate(
            shop,
            order,
            order.name,
            seller_state,
            shop_config.company_gstin,
            SOURCE_ORDERS_UPDATED_FULFILLMENT,
            extra_invoice_fields={
                "generatedAt": "fulfillment",
                "fulfillmentLocationId": location_id,
                "fulfillmentState": seller_state,
            },
        )
        return result.invoice_id

    # ────────────────────────────────────────────────────────────
    # orders/cancelled
    # ────────────────────────────────────────────────────────────

    def orders_cancelled(self, shop: str, order: OrderPayload) -> Dict[str, Any]:
        order_name = order.name
        if not order_name:
            raise WebhookValidationError("Order name missing")

        if not self.db.get_order(shop, order_name):
            return {"message": "Order record not found", "orderName": order_name}

        self.db.update_order(shop, order_name, {"status": "Cancelled"})
        moved = self.storage.move_invoice_to_folder(order_name, shop, "cancelled")

        credit_note_id = f"CN-{order_name}-01"
        try:
            self.ledger.update_status(shop, order_name, "cancelled", {
                "creditNoteId": credit_note_id,
                "creditNoteDate": utc_now_iso(),
                "cancellationReason": "order_cancelled",
            })
        except sqlite3.Error as e:
            self.logger.error(f"Order {order_name} - ledger cancellation failed: {e}", component="Ledger")

        record_audit(self.db, shop, "order_cancelled", {"orderName": order_name, "creditNoteId": credit_note_id})
        return {
            "success": True,
            "message": "Order status updated to Cancelled successfully",
            "orderName": order_name,
            "movedInvoices": moved,
        }

    # ────────────────────────────────────────────────────────────
    # refunds/create
    # ────────────────────────────────────────────────────────────

    def refunds_create(self, shop: str, refund: RefundPayload) -> Dict[str, Any]:
        order_name = refund.order.name if refund.order else None
        if refund.order_id is None or str(refund.order_id) == "" or not order_name:
            raise WebhookValidationError("Order ID/name missing")

        # Whole refund id; two refunds on one order must not share reversal keys
        refund_suffix = str(refund.id) if refund.id is not None else "01"
        credit_note_id = f"CN-{order_name}-{refund_suffix}"
        credit_note_date = refund.created_at or utc_now_iso()
        items = refund.refund_line_items
        is_full_refund = bool(items) and all(
            item.line_item is not None and item.quantity == item.line_item.quantity for item in items
        )

        try:
            if is_full_refund:
                self.ledger.update_status(shop, order_name, "returned", {
                    "creditNoteId": credit_note_id,
                    "creditNoteDate": credit_note_date,
                    "cancellationReason": "full_return",
                })
            else:
                returned_items = self.ledger.resolve_line_item_indexes(
                    shop,
                    order_name,
                    [{"line_item_id": item.line_item_id, "quantity": item.quantity} for item in items],
                )
                self.ledger.create_return_entries(shop, order_name, returned_items, {
                    "creditNoteId": credit_note_id,
                    "creditNoteDate": credit_note_date,
                })
        except sqlite3.Error as e:
            self.logger.error(f"Order {order_name} - ledger refund update failed: {e}", component="Ledger")

        moved: List[str] = []
        if is_full_refund:
            moved = self.storage.move_invoice_to_folder(order_name, shop, "returned")
            if moved:
                self.db.update_order(shop, order_name, {"documentKey": moved[0]})

        exchange = refund.exchange_order_name is not None or any(
            item.restock_type == "exchange" for item in items
        )
        if exchange:
            link: Dict[str, Any] = {"exchangeType": "original"}
            if refund.exchange_order_name:
                link["relatedOrderId"] = refund.exchange_order_name
            self.db.update_order(shop, order_name, link)

        record_audit(self.db, shop, "refund_processed", {
            "orderName": order_name,
            "creditNoteId": credit_note_id,
            "fullRefund": is_full_refund,
        })
        return {
            "success": True,
            "message": "Refund processed successfully",
            "orderName": order_name,
            "creditNoteId": credit_note_id,
            "type": "full_refund" if is_full_refund else "partial_refund",
            "movedInvoices": moved,
        }

    # ────────────────────────────────────────────────────────────
    # products/update
    # ────────────────────────────────────────────────────────────

    def products_update(self, shop: str, product: ProductPayload) -> Dict[str, Any]:
        if product.id is None:
            raise WebhookValidationError("Product ID missing")
        product_id = str(product.id)

        hsn_code = None
        metafields = product.metafields
        exact = [m for m in metafields if m.namespace == HSN_METAFIELD_NAMESPACE and m.key == HSN_METAFIELD_KEY]
        loose = [m for m in metafields if "hsn" in m.key.lower()]
        for metafield in exact or loose:
            if metafield.value:
                hsn_code = str(metafield.value)
                break

        if hsn_code is None and self.hsn_resolver.fetcher is not None:
            try:
                hsn_code = (self.hsn_resolver.fetcher(shop, [product_id]) or {}).get(product_id)
            except (requests.RequestException, ValueError) as e:
                self.logger.error(f"HSN fetch for product {product_id} failed: {e}", component="HSN")

        primary_variant = product.variants[0] if product.variants else {}
        sku = primary_variant.get("sku") or ", ".join(
            str(v.get("sku")) for v in product.variants if v.get("sku")
        ) or None
        variant_id = primary_variant.get("id")

        self.hsn_resolver.save_product(
            shop,
            product_id,
            hsn_code,
            title=product.title,
            sku=sku,
            variant_id=str(variant_id) if variant_id is not None else None,
        )
        return {"success": True, "cached": True, "hasHSN": bool(hsn_code)}
