"""
HSN Classification Resolver
Finds a line item's HSN code from product metafields, line item properties or
the SKU, and keeps a per-shop product cache in front of live metafield lookups.
"""

from __future__ import annotations

import re
import time
from typing import Callable, Dict, Iterable, List, Optional

import requests

from gst_ledger import config
from gst_ledger.payloads import LineItemPayload, Metafield, OrderPayload, ProductInfo
from gst_ledger.utils.logger import get_logger

HSN_METAFIELD_NAMESPACE = "custom"
HSN_METAFIELD_KEY = "hsn_code"
SKU_HSN_PATTERN = re.compile(r"HSN(\d{4,8})", re.IGNORECASE)

# fetcher(shop, product_ids) -> {productId: hsnCode}
HSNFetcher = Callable[[str, List[str]], Dict[str, str]]


def extract_hsn_code(item: LineItemPayload) -> Optional[str]:
    """
    Extract the HSN code of a line item.

    Priority:
        1. Product metafield custom.hsn_code
        2. Line item property whose name contains "hsn"
        3. SKU pattern HSN<4-8 digits>
    """
    if item.product and item.product.metafields:
        for metafield in item.product.metafields:
            if metafield.namespace == HSN_METAFIELD_NAMESPACE and metafield.key == HSN_METAFIELD_KEY:
                if metafield.value:
                    return str(metafield.value)
                break

    for prop in item.properties:
        if prop.name and "hsn" in prop.name.lower():
            if prop.value:
                return str(prop.value)
            break

    if item.sku:
        match = SKU_HSN_PATTERN.search(item.sku)
        if match:
            return match.group(1)

    return None


class HSNResolver:
    """Product HSN cache with optional live-fetch fallback."""

    def __init__(self, db, fetcher: Optional[HSNFetcher] = None, ttl_days: Optional[int] = None):
        """
        Args:
            db: LedgerDB holding the products cache table
            fetcher: live lookup; without one, cache misses resolve to None
            ttl_days: cache retention window
        """
        self.db = db
        self.fetcher = fetcher
        self.ttl_days = ttl_days or config.HSN_CACHE_TTL_DAYS
        self.logger = get_logger()

    def _expiry(self) -> int:
        return int(time.time()) + self.ttl_days * 24 * 60 * 60

    # ────────────────────────────────────────────────────────────
    # Reads
    # ────────────────────────────────────────────────────────────

    def get_cached_hsn_code(self, shop: str, product_id: str) -> Optional[str]:
        product = self.db.get_product(shop, str(product_id))
        return product.get("hsn_code") if product else None

    def get_hsn_code(self, shop: str, product_id: str) -> Optional[str]:
        """Cache first, then live fetch (cached for next time) when available."""
        return self.get_hsn_codes(shop, [product_id]).get(str(product_id))

    def get_hsn_codes(self, shop: str, product_ids: Iterable[str]) -> Dict[str, str]:
        unique_ids: List[str] = []
        for pid in product_ids:
            pid = str(pid)
            if pid and pid not in unique_ids:
                unique_ids.append(pid)

        found: Dict[str, str] = {}
        for pid in unique_ids:
            cached = self.get_cached_hsn_code(shop, pid)
            if cached:
                found[pid] = cached

        missing = [pid for pid in unique_ids if pid not in found]
        if not missing or self.fetcher is None:
            return found

        try:
            fetched = self.fetcher(shop, missing) or {}
        except (requests.RequestException, ValueError) as e:
            self.logger.error(f"Live HSN fetch failed for {shop}: {e}", component="HSN")
            return found

        to_cache = []
        for pid, hsn_code in fetched.items():
            if hsn_code:
                found[str(pid)] = hsn_code
                to_cache.append({"productId": str(pid), "hsnCode": hsn_code, "title": ""})
        if to_cache:
            self.db.put_products(shop, to_cache, ttl=self._expiry())

        return found

    # ────────────────────────────────────────────────────────────
    # Writes
    # ────────────────────────────────────────────────────────────

    def save_product(
        self,
        shop: str,
        product_id: str,
        hsn_code: Optional[str],
        title: str = "",
        sku: Optional[str] = None,
        variant_id: Optional[str] = None,
    ) -> None:
        self.db.put_products(
            shop,
            [{
                "productId": str(product_id),
                "hsnCode": hsn_code,
                "title": title,
                "sku": sku,
                "variantId": variant_id,
            }],
            ttl=self._expiry(),
        )

    # ────────────────────────────────────────────────────────────
    # Order enrichment
    # ────────────────────────────────────────────────────────────

    def enrich_order(self, shop: str, order: OrderPayload) -> OrderPayload:
        """Return a copy of order with custom.hsn_code injected where resolved."""
        product_ids = [str(item.product_id) for item in order.line_items if item.product_id is not None]
        if not product_ids:
            return order

        hsn_map = self.get_hsn_codes(shop, product_ids)
        self.logger.info(
            f"Found {len(hsn_map)} HSN code(s) for {len(order.line_items)} line item(s)",
            component="HSN",
        )
        if not hsn_map:
            return order

        enriched = []
        for item in order.line_items:
            hsn_code = hsn_map.get(str(item.product_id)) if item.product_id is not None else None
            if not hsn_code:
                enriched.append(item)
                continue
            existing = item.product.metafields if item.product else []
            product = ProductInfo(metafields=[
                *existing,
                Metafield(namespace=HSN_METAFIELD_NAMESPACE, key=HSN_METAFIELD_KEY, value=hsn_code),
            ])
            enriched.append(item.model_copy(update={"product": product}))

        return order.model_copy(update={"line_items": enriched})
