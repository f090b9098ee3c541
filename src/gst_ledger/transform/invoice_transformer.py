"""
Invoice Transformer
Turns a validated order payload into (a) the display invoice handed to PDF
generation and (b) per-line-item GST facts written to the ledger.

This is the only place tax, discount and HSN figures are computed. The
function is pure: the same order and seller state always give the same result,
which is what makes pipeline retries safe.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import List, Optional, Tuple

from gst_ledger.classification.hsn_resolver import extract_hsn_code
from gst_ledger.exceptions import TransformError
from gst_ledger.gst.tax_utils import (
    LOWER_SLAB_DIVISOR,
    infer_tax_rate,
    is_intrastate,
    round2,
    split_tax,
)
from gst_ledger.payloads import Address, LineItemPayload, OrderPayload

from .models import (
    GSTLineItemMeta,
    GSTMeta,
    InvoiceData,
    InvoiceDocument,
    InvoiceRow,
    Totals,
)

DEFAULT_NOTES = "Thank you for your purchase!"


# ---------------------------------------------------------------------------
# Discount pool
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DiscountPool:
    """Order-level discount carried across line items.

    A line draws from the pool only when its approximate base price exceeds the
    whole order discount; otherwise its own recorded discount is used.
    """
    total: float
    remaining: float
    applied: bool = False

    @classmethod
    def for_order(cls, total: float) -> "DiscountPool":
        return cls(total=total, remaining=total)

    def draw(self, approximate_base: float, item_discount: float) -> Tuple[float, "DiscountPool"]:
        if self.total > 0 and approximate_base > self.total:
            discount = min(self.total, self.remaining)
        else:
            discount = item_discount

        if discount > 0 and self.total > 0:
            return discount, replace(self, remaining=self.remaining - discount, applied=True)
        return discount, self


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _to_float(value, field_name: str) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise TransformError(f"{field_name} is not a number: {value!r}") from e


def _full_name(first: Optional[str], last: Optional[str]) -> str:
    return f"{first or ''} {last or ''}".strip()


def extract_customer_name(order: OrderPayload) -> str:
    customer = order.customer
    billing = order.billing_address
    shipping = order.shipping_address

    if customer and (customer.first_name or customer.last_name):
        return _full_name(customer.first_name, customer.last_name)
    if billing and billing.name:
        return billing.name
    if billing and (billing.first_name or billing.last_name):
        return _full_name(billing.first_name, billing.last_name)
    if shipping and shipping.name:
        return shipping.name
    if shipping and (shipping.first_name or shipping.last_name):
        return _full_name(shipping.first_name, shipping.last_name)
    return order.contact_email or order.email or "Guest"


def format_display_date(created_at: Optional[str]) -> str:
    """ISO timestamp -> "7 Feb 2026". Unparseable values are passed through."""
    if not created_at:
        return ""
    try:
        parsed = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    except ValueError:
        return created_at
    return f"{parsed.day} {parsed:%b %Y}"


def _province(address: Optional[Address]) -> str:
    return (address.province or "") if address else ""


# ---------------------------------------------------------------------------
# Line item expansion
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _OrderContext:
    symbol: str
    intrastate: bool

    def money(self, value: float) -> str:
        return f"{self.symbol} {value:.2f}"


def _expand_line_item(
    item: LineItemPayload,
    price: float,
    discount: float,
    ctx: _OrderContext,
) -> Tuple[List[InvoiceRow], GSTLineItemMeta]:
    """One row per unit; only the first unit carries the discount."""
    mrp = _to_float(item.compare_at_price, "compare_at_price") if item.compare_at_price else price
    hsn_code = extract_hsn_code(item)
    item_name = item.title or item.name or ""
    row_name = f"{item_name} (HSN: {hsn_code})" if hsn_code else item_name

    rows: List[InvoiceRow] = []
    taxable_sum = tax_sum = cgst_sum = sgst_sum = igst_sum = 0.0
    first_unit_rate = 0

    for unit_index in range(item.quantity):
        has_discount = unit_index == 0 and discount > 0

        base = price / LOWER_SLAB_DIVISOR
        price_after_discount = base - discount if has_discount else base
        rate, divisor = infer_tax_rate(price_after_discount)
        if divisor != LOWER_SLAB_DIVISOR:
            base = price / divisor

        unit_tax = price - base
        final_price = base - discount if has_discount else base
        split = split_tax(unit_tax, ctx.intrastate)

        taxable_sum += final_price
        tax_sum += unit_tax
        cgst_sum += split.cgst
        sgst_sum += split.sgst
        igst_sum += split.igst
        if unit_index == 0:
            first_unit_rate = int(round2(rate * 100))

        rows.append(InvoiceRow(
            name=row_name,
            description=f"Variant: {item.variant_title}" if item.variant_title else None,
            sku=item.sku or None,
            mrp=ctx.money(mrp),
            discount=ctx.money(discount if has_discount else 0.0),
            selling_price=ctx.money(final_price),
            tax=ctx.money(unit_tax),
            selling_price_after_tax=ctx.money(final_price + unit_tax),
            taxable_value=final_price,
            total_tax=unit_tax,
            cgst=split.cgst,
            sgst=split.sgst,
            igst=split.igst,
        ))

    meta = GSTLineItemMeta(
        product_id=str(item.product_id) if item.product_id is not None else "",
        variant_id=str(item.variant_id) if item.variant_id is not None else "",
        sku=item.sku or None,
        product_title=item.title or "",
        hsn=hsn_code,
        fulfillment_service=item.fulfillment_service or None,
        line_item_id=str(item.id) if item.id is not None else None,
        quantity=item.quantity,
        unit_price=round2(price),
        discount=round2(discount),
        taxable_value=round2(taxable_sum),
        tax_rate=first_unit_rate,
        total_tax=round2(tax_sum),
        cgst=round2(cgst_sum),
        sgst=round2(sgst_sum),
        igst=round2(igst_sum),
    )
    return rows, meta


# ---------------------------------------------------------------------------
# Main transformer
# ---------------------------------------------------------------------------

def transform_order(order: OrderPayload, seller_state: str) -> InvoiceData:
    """
    Compute the invoice and GST facts for an order.

    Args:
        order: Validated order payload (HSN codes already injected)
        seller_state: State the supply is made from (company or warehouse)

    Raises:
        TransformError: the order has malformed amounts or quantities
    """
    currency = order.currency or "INR"
    ctx = _OrderContext(
        symbol="Rs." if currency == "INR" else currency,
        intrastate=False,
    )

    buyer_state = _province(order.shipping_address) or _province(order.billing_address)
    ctx = replace(ctx, intrastate=is_intrastate(seller_state, buyer_state))

    pool = DiscountPool.for_order(_to_float(order.current_total_discounts, "current_total_discounts"))
    rows: List[InvoiceRow] = []
    metas: List[GSTLineItemMeta] = []

    for item in order.line_items:
        if item.quantity < 0:
            raise TransformError(f"Line item {item.id} has negative quantity {item.quantity}")
        if item.quantity == 0:
            continue

        price = _to_float(item.price, "price")
        item_discount = _to_float(item.total_discount, "total_discount")
        discount, pool = pool.draw(price / LOWER_SLAB_DIVISOR, item_discount)

        item_rows, meta = _expand_line_item(item, price, discount, ctx)
        rows.extend(item_rows)
        metas.append(meta)

    total_cgst = sum(row.cgst for row in rows)
    total_sgst = sum(row.sgst for row in rows)
    total_igst = sum(row.igst for row in rows)
    shipping_money = order.total_shipping_price_set.shop_money if order.total_shipping_price_set else None
    shipping_amount = _to_float(shipping_money.amount if shipping_money else None, "shipping")
    grand_total = _to_float(order.current_total_price or order.total_price, "total_price")

    totals = Totals(
        subtotal=ctx.money(sum(row.taxable_value for row in rows)),
        discount=f"-{ctx.money(pool.total)}" if not pool.applied and pool.total > 0 else None,
        shipping=ctx.money(shipping_amount),
        tax=ctx.money(sum(row.total_tax for row in rows)),
        cgst=ctx.money(total_cgst) if total_cgst > 0 else None,
        sgst=ctx.money(total_sgst) if total_sgst > 0 else None,
        igst=ctx.money(total_igst) if total_igst > 0 else None,
        total=ctx.money(grand_total),
    )

    customer = order.customer
    billing = order.billing_address
    shipping = order.shipping_address

    document = InvoiceDocument(
        order={
            "name": order.name or "",
            "date": format_display_date(order.created_at),
            "dueDate": None,
            "notes": order.note or DEFAULT_NOTES,
        },
        customer={
            "name": extract_customer_name(order),
            "company": (customer.company if customer else None) or (billing.company if billing else None) or None,
            "email": order.email or (customer.email if customer else None) or "",
            "phone": (order.phone or (customer.phone if customer else None)
                      or (billing.phone if billing else None) or None),
        },
        shipping_address={
            "name": (shipping.name if shipping else None) or (billing.name if billing else None) or "",
            "address": f"{(shipping.address1 if shipping else None) or ''} "
                       f"{(shipping.address2 if shipping else None) or ''}".strip(),
            "city": (shipping.city if shipping else None) or "",
            "state": _province(shipping),
            "zip": (shipping.zip if shipping else None) or "",
        },
        line_items=rows,
        totals=totals,
    )

    gst_meta = GSTMeta(
        is_intrastate=ctx.intrastate,
        company_state=seller_state,
        customer_state=buyer_state,
        place_of_supply=_province(shipping) or buyer_state,
        items=metas,
    )
    return InvoiceData(document=document, gst_meta=gst_meta)
