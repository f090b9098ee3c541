"""
Invoice Data Models
Dataclasses produced by the invoice transformer: the display document handed
to PDF generation and the per-line-item GST facts written to the ledger.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Display document
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InvoiceRow:
    """One physical unit of a line item (quantity is always 1)."""
    name: str
    description: Optional[str]
    sku: Optional[str]
    mrp: str
    discount: str
    selling_price: str
    tax: str
    selling_price_after_tax: str
    quantity: int = 1

    # Unformatted per-unit values used for the order totals
    taxable_value: float = 0.0
    total_tax: float = 0.0
    cgst: float = 0.0
    sgst: float = 0.0
    igst: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "sku": self.sku,
            "quantity": self.quantity,
            "mrp": self.mrp,
            "discount": self.discount,
            "sellingPrice": self.selling_price,
            "tax": self.tax,
            "sellingPriceAfterTax": self.selling_price_after_tax,
        }


@dataclass(frozen=True)
class Totals:
    subtotal: str
    discount: Optional[str]
    shipping: str
    tax: str
    cgst: Optional[str]
    sgst: Optional[str]
    igst: Optional[str]
    total: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class InvoiceDocument:
    order: Dict[str, Any]
    customer: Dict[str, Any]
    shipping_address: Dict[str, Any]
    line_items: List[InvoiceRow]
    totals: Totals

    def to_dict(self) -> Dict[str, Any]:
        """Shape expected by the PDF generation service."""
        return {
            "order": dict(self.order),
            "customer": dict(self.customer),
            "shippingAddress": dict(self.shipping_address),
            "lineItems": [row.to_dict() for row in self.line_items],
            "totals": self.totals.to_dict(),
        }


# ---------------------------------------------------------------------------
# Ledger facts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GSTLineItemMeta:
    """GST facts for one original line item, summed across its units."""
    product_id: str
    variant_id: str
    sku: Optional[str]
    product_title: str
    hsn: Optional[str]
    fulfillment_service: Optional[str]
    line_item_id: Optional[str]
    quantity: int
    unit_price: float
    discount: float
    taxable_value: float
    tax_rate: int
    total_tax: float
    cgst: float
    sgst: float
    igst: float


@dataclass(frozen=True)
class GSTMeta:
    is_intrastate: bool
    company_state: str
    customer_state: str
    place_of_supply: str
    items: List[GSTLineItemMeta] = field(default_factory=list)


@dataclass(frozen=True)
class InvoiceData:
    document: InvoiceDocument
    gst_meta: GSTMeta
