"""
GST Ledger Writer
Persists the transformer's per-line-item GST facts as ledger rows and applies
cancellations, returns and later enrichments (invoice id, fulfillment info).

No tax is computed here; amounts come from GSTLineItemMeta as-is. Rows are
never deleted: cancellations flip status, partial returns append reversals.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence

from gst_ledger import config
from gst_ledger.gst.state_codes import get_state_code
from gst_ledger.gst.tax_utils import is_intrastate
from gst_ledger.storage.ledger_db import LedgerDB, utc_now_iso
from gst_ledger.transform.models import GSTLineItemMeta
from gst_ledger.utils.logger import get_logger

CANCELLATION_REASONS = ("order_cancelled", "full_return", "partial_return")

# Money fields scaled and negated on reversal entries
REVERSED_AMOUNT_FIELDS = ("taxableValue", "discount", "cgst", "sgst", "igst", "cess", "totalTax")


def sort_key(prefix: str, line_item_idx: int) -> str:
    """orderNumber#NNN, 1-based and zero-padded to three digits."""
    return f"{prefix}#{line_item_idx:03d}"


class LedgerWriter:
    """Writes and updates ledger rows for one store instance."""

    def __init__(self, db: LedgerDB, batch_size: Optional[int] = None):
        self.db = db
        self.batch_size = batch_size or config.LEDGER_BATCH_SIZE
        self.logger = get_logger()

    # ────────────────────────────────────────────────────────────
    # Initial write
    # ────────────────────────────────────────────────────────────

    def build_entries(
        self,
        shop: str,
        order_info: Dict[str, Any],
        items: Sequence[GSTLineItemMeta],
        company: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        """
        Build ledger rows for an order.

        Args:
            order_info: invoiceId, invoiceNumber, invoiceDate, orderId, orderNumber,
                customerName, customerState, placeOfSupply
            items: GST facts from the transformer, one per original line item
            company: state and gstin of the seller
        """
        invoice_date = order_info["invoiceDate"]
        year_month = invoice_date[:7]
        company_state_code = get_state_code(company.get("state") or "")
        place_of_supply_code = get_state_code(order_info.get("placeOfSupply") or "")
        customer_state_code = get_state_code(order_info.get("customerState") or "")
        intrastate = is_intrastate(company.get("state"), order_info.get("placeOfSupply"))
        transaction_type = "intrastate" if intrastate else "interstate"
        created_at = utc_now_iso()

        entries = []
        for idx, item in enumerate(items, start=1):
            entry = {
                "shop": shop,
                "orderNumber_lineItemIdx": sort_key(order_info["orderNumber"], idx),
                "orderId": order_info["orderId"],
                "orderNumber": order_info["orderNumber"],
                "invoiceId": order_info.get("invoiceId") or None,
                "invoiceNumber": order_info.get("invoiceNumber"),
                "invoiceDate": invoice_date,
                "yearMonth": year_month,
                "yearMonth_invoiceDate": f"{year_month}#{invoice_date}",
                "lineItemIdx": idx,
                "lineItemId": item.line_item_id,
                "productId": item.product_id or None,
                "variantId": item.variant_id or None,
                "sku": item.sku,
                "productTitle": item.product_title,
                "hsn": item.hsn,
                "uqc": config.DEFAULT_UQC,
                "quantity": item.quantity,
                "unitPrice": item.unit_price,
                "discount": item.discount,
                "taxableValue": item.taxable_value,
                "taxRate": item.tax_rate,
                "cgst": item.cgst,
                "sgst": item.sgst,
                "igst": item.igst,
                "cess": 0,
                "totalTax": item.total_tax,
                "customerName": order_info.get("customerName"),
                "customerState": order_info.get("customerState"),
                "customerStateCode": customer_state_code,
                "placeOfSupply": order_info.get("placeOfSupply"),
                "placeOfSupplyCode": place_of_supply_code,
                "companyState": company.get("state"),
                "companyStateCode": company_state_code,
                "companyGSTIN": company.get("gstin"),
                "transactionType": transaction_type,
                "supplyType": "B2C",
                "status": "active",
                "createdAt": created_at,
                "createdBy": "system",
            }
            if item.hsn:
                entry["hsn_yearMonth"] = f"{item.hsn}#{year_month}"
            if item.tax_rate:
                entry["taxRate_yearMonth"] = f"{item.tax_rate}#{year_month}"
            entries.append(entry)

        return entries

    def write_order_items(
        self,
        shop: str,
        order_info: Dict[str, Any],
        items: Sequence[GSTLineItemMeta],
        company: Dict[str, Any],
    ) -> int:
        """
        Write ledger rows in sequential chunks of at most batch_size.

        Each chunk is its own transaction; a failure leaves earlier chunks
        in place and propagates.

        Returns:
            Number of rows written.
        """
        entries = self.build_entries(shop, order_info, items, company)
        batches = self._write_batches(entries)
        self.logger.log_ledger_write(order_info["orderNumber"], len(entries), batches)
        return len(entries)

    def _write_batches(self, entries: List[Dict[str, Any]]) -> int:
        batches = 0
        for start in range(0, len(entries), self.batch_size):
            self.db.put_ledger_batch(entries[start:start + self.batch_size])
            batches += 1
        return batches

    # ────────────────────────────────────────────────────────────
    # Reads
    # ────────────────────────────────────────────────────────────

    def get_entries(self, shop: str, order_number: str) -> List[Dict[str, Any]]:
        return self.db.query_ledger_prefix(shop, f"{order_number}#")

    def has_entries(self, shop: str, order_number: str) -> bool:
        return bool(self.db.query_ledger_prefix(shop, f"{order_number}#", limit=1))

    def resolve_line_item_indexes(
        self,
        shop: str,
        order_number: str,
        refund_items: Iterable[Dict[str, Any]],
    ) -> List[Dict[str, int]]:
        """
        Map refunded platform line items to ledger lineItemIdx.

        refund_items carry line_item_id and quantity. An item without a stored
        lineItemId match falls back to its position in the refund (1-based).
        """
        by_line_item_id = {
            str(entry["lineItemId"]): entry["lineItemIdx"]
            for entry in self.get_entries(shop, order_number)
            if entry.get("lineItemId")
        }

        resolved = []
        for position, refund_item in enumerate(refund_items, start=1):
            line_item_id = refund_item.get("line_item_id")
            idx = by_line_item_id.get(str(line_item_id)) if line_item_id is not None else None
            resolved.append({
                "lineItemIdx": idx if idx is not None else position,
                "quantity": int(refund_item.get("quantity") or 0),
            })
        return resolved

    # ────────────────────────────────────────────────────────────
    # Status changes
    # ────────────────────────────────────────────────────────────

    def update_status(
        self,
        shop: str,
        order_number: str,
        status: str,
        credit_note: Optional[Dict[str, str]] = None,
        updated_by: str = "system",
    ) -> int:
        """
        Set status on every row of an order. Amounts are never changed.

        Args:
            status: "cancelled" or "returned"
            credit_note: creditNoteId, creditNoteDate, cancellationReason
        """
        if credit_note and credit_note.get("cancellationReason") not in CANCELLATION_REASONS:
            raise ValueError(f"Unknown cancellation reason: {credit_note.get('cancellationReason')}")

        fields: Dict[str, Any] = {
            "status": status,
            "updatedAt": utc_now_iso(),
            "updatedBy": updated_by,
        }
        if credit_note:
            fields.update({
                "creditNoteId": credit_note["creditNoteId"],
                "creditNoteDate": credit_note["creditNoteDate"],
                "cancellationReason": credit_note["cancellationReason"],
            })

        updated = self._update_all(shop, order_number, fields)
        self.logger.info(f"Order {order_number} - {updated} row(s) marked {status}", component="Ledger")
        return updated

    def create_return_entries(
        self,
        shop: str,
        order_number: str,
        returned_items: Iterable[Dict[str, int]],
        credit_note: Dict[str, str],
    ) -> int:
        """
        Append proportional negative rows for a partial return.

        Each returned {lineItemIdx, quantity} becomes a row keyed
        creditNoteId#NNN whose quantity is -q and whose money fields are
        -(original * q / original quantity). Originals are left untouched;
        items with no matching original are skipped.
        """
        originals = {entry["lineItemIdx"]: entry for entry in self.get_entries(shop, order_number)}
        if not originals:
            return 0

        credit_note_id = credit_note["creditNoteId"]
        credit_note_date = credit_note["creditNoteDate"]
        year_month = credit_note_date[:7]
        created_at = utc_now_iso()

        reversals = []
        for returned in returned_items:
            original = originals.get(returned["lineItemIdx"])
            if not original or not original.get("quantity"):
                continue

            ratio = returned["quantity"] / original["quantity"]
            reversal = dict(original)
            reversal.update({
                "orderNumber_lineItemIdx": sort_key(credit_note_id, returned["lineItemIdx"]),
                "orderNumber": credit_note_id,
                "invoiceDate": credit_note_date,
                "yearMonth": year_month,
                "yearMonth_invoiceDate": f"{year_month}#{credit_note_date}",
                "quantity": -returned["quantity"],
                "status": "returned",
                "originalInvoiceId": original.get("invoiceId"),
                "creditNoteId": credit_note_id,
                "creditNoteDate": credit_note_date,
                "cancellationReason": "partial_return",
                "createdAt": created_at,
                "createdBy": "system",
            })
            for field_name in REVERSED_AMOUNT_FIELDS:
                reversal[field_name] = -((original.get(field_name) or 0) * ratio)
            if original.get("hsn"):
                reversal["hsn_yearMonth"] = f"{original['hsn']}#{year_month}"
            if original.get("taxRate"):
                reversal["taxRate_yearMonth"] = f"{original['taxRate']}#{year_month}"
            reversals.append(reversal)

        if reversals:
            self._write_batches(reversals)
        self.logger.info(
            f"Order {order_number} - {len(reversals)} return row(s) under {credit_note_id}",
            component="Ledger",
        )
        return len(reversals)

    # ────────────────────────────────────────────────────────────
    # Enrichment
    # ────────────────────────────────────────────────────────────

    def backfill_invoice_id(self, shop: str, order_number: str, invoice_id: str, source: str) -> int:
        return self._update_all(shop, order_number, {
            "invoiceId": invoice_id,
            "updatedAt": utc_now_iso(),
            "updatedBy": source,
        })

    def update_fulfillment_info(self, shop: str, order_number: str, fields: Dict[str, Any], source: str) -> int:
        """Copy order status, fulfillment location/state and tracking onto the rows."""
        update = {key: value for key, value in fields.items() if value is not None}
        if not update:
            return 0
        update.update({"updatedAt": utc_now_iso(), "updatedBy": source})
        return self._update_all(shop, order_number, update)

    def _update_all(self, shop: str, order_number: str, fields: Dict[str, Any]) -> int:
        updated = 0
        for entry in self.get_entries(shop, order_number):
            if self.db.update_ledger_entry(shop, entry["orderNumber_lineItemIdx"], fields):
                updated += 1
        return updated
