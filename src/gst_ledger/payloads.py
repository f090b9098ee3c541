"""
Pydantic models for inbound webhook payloads.
Payloads are validated once at the webhook boundary; everything downstream
works on these models instead of raw JSON.
"""
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Platform ids arrive as numbers, amounts as decimal strings (sometimes numbers)
Identifier = Union[int, str]
Amount = Union[str, float, int]


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class Metafield(_Payload):
    namespace: str = ""
    key: str = ""
    value: Optional[Any] = None


class ProductInfo(_Payload):
    metafields: List[Metafield] = Field(default_factory=list)

    @field_validator("metafields", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []


class LineItemProperty(_Payload):
    name: Optional[str] = None
    value: Optional[Any] = None


class LineItemPayload(_Payload):
    """One line of an order as sent by the store platform."""
    id: Optional[Identifier] = None
    product_id: Optional[Identifier] = None
    variant_id: Optional[Identifier] = None
    title: str = ""
    name: Optional[str] = None
    variant_title: Optional[str] = None
    sku: Optional[str] = None
    quantity: int = 0
    price: Amount = "0"
    compare_at_price: Optional[Amount] = None
    total_discount: Optional[Amount] = None
    fulfillment_service: Optional[str] = None
    fulfillment_status: Optional[str] = None
    product: Optional[ProductInfo] = None
    properties: List[LineItemProperty] = Field(default_factory=list)

    @field_validator("properties", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    @field_validator("title", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or ""


class Address(_Payload):
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    zip: Optional[str] = None
    phone: Optional[str] = None


class Customer(_Payload):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class Money(_Payload):
    amount: Optional[Amount] = None


class MoneySet(_Payload):
    shop_money: Optional[Money] = None


class NoteAttribute(_Payload):
    name: Optional[str] = None
    value: Optional[Any] = None


class Fulfillment(_Payload):
    id: Optional[Identifier] = None
    status: Optional[str] = None
    location_id: Optional[Identifier] = None
    tracking_number: Optional[str] = None
    tracking_company: Optional[str] = None
    tracking_url: Optional[str] = None
    created_at: Optional[str] = None
    shipment_status: Optional[str] = None


class ReturnLineItem(_Payload):
    line_item_id: Optional[Identifier] = None
    quantity: int = 0


class OrderReturn(_Payload):
    id: Optional[Identifier] = None
    name: Optional[str] = None
    return_line_items: List[ReturnLineItem] = Field(default_factory=list)

    @field_validator("return_line_items", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []


class OrderPayload(_Payload):
    """orders/create, orders/updated and orders/cancelled body."""
    id: Optional[Identifier] = None
    name: Optional[str] = None
    created_at: Optional[str] = None
    currency: Optional[str] = "INR"
    presentment_currency: Optional[str] = None
    note: Optional[str] = None
    note_attributes: List[NoteAttribute] = Field(default_factory=list)
    source_name: Optional[str] = None
    location_id: Optional[Identifier] = None
    browser_ip: Optional[str] = None
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    cancel_reason: Optional[str] = None
    current_total_price: Optional[Amount] = None
    total_price: Optional[Amount] = None
    current_total_discounts: Optional[Amount] = None
    total_shipping_price_set: Optional[MoneySet] = None
    customer: Optional[Customer] = None
    email: Optional[str] = None
    contact_email: Optional[str] = None
    phone: Optional[str] = None
    billing_address: Optional[Address] = None
    shipping_address: Optional[Address] = None
    line_items: List[LineItemPayload] = Field(default_factory=list)
    fulfillments: List[Fulfillment] = Field(default_factory=list)
    returns: List[OrderReturn] = Field(default_factory=list)

    @field_validator("note_attributes", "line_items", "fulfillments", "returns", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    @property
    def order_id(self) -> str:
        """Platform order id, falling back to the display name."""
        if self.id is not None and str(self.id):
            return str(self.id)
        return self.name or ""


class RefundLineItem(_Payload):
    line_item_id: Optional[Identifier] = None
    quantity: int = 0
    restock_type: Optional[str] = None
    line_item: Optional[LineItemPayload] = None


class RefundOrderRef(_Payload):
    id: Optional[Identifier] = None
    name: Optional[str] = None


class RefundPayload(_Payload):
    """refunds/create body."""
    id: Optional[Identifier] = None
    order_id: Optional[Identifier] = None
    created_at: Optional[str] = None
    note: Optional[str] = None
    refund_line_items: List[RefundLineItem] = Field(default_factory=list)
    order: Optional[RefundOrderRef] = None
    exchange_order_name: Optional[str] = None

    @field_validator("refund_line_items", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []


class ProductPayload(_Payload):
    """products/update body (only the fields the HSN cache needs)."""
    id: Optional[Identifier] = None
    title: str = ""
    metafields: List[Metafield] = Field(default_factory=list)
    variants: List[dict] = Field(default_factory=list)

    @field_validator("metafields", "variants", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    @field_validator("title", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or ""
