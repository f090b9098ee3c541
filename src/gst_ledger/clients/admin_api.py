"""
Store Admin API client
Location -> state lookups and HSN metafield fetches over the store admin API.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional

import requests

from gst_ledger import config
from gst_ledger.utils.logger import get_logger

# Admin GraphQL accepts at most 250 ids per nodes() query
GRAPHQL_BATCH_SIZE = 250


class AdminApiClient:
    """Thin requests-based client bound to one shop's access token."""

    def __init__(
        self,
        shop: str,
        access_token: str,
        api_version: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.shop = shop
        self.access_token = access_token
        self.api_version = api_version or config.SHOPIFY_API_VERSION
        self.timeout = timeout or config.EXTERNAL_HTTP_TIMEOUT
        self.session = session or requests.Session()

    @property
    def base_url(self) -> str:
        return f"https://{self.shop}/admin/api/{self.api_version}"

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    def get_location_state(self, location_id: str) -> Optional[str]:
        """Province of a fulfillment location, or None if unknown."""
        response = self.session.get(
            f"{self.base_url}/locations/{location_id}.json",
            headers=self._headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        location = response.json().get("location") or {}
        return location.get("province") or None

    # ------------------------------------------------------------------
    # HSN metafields
    # ------------------------------------------------------------------

    def fetch_hsn_codes(self, product_ids: Iterable[str]) -> Dict[str, str]:
        """Fetch custom.hsn_code for many products. Returns {productId: hsn}."""
        gids = [
            pid if pid.startswith("gid://") else f"gid://shopify/Product/{pid}"
            for pid in (str(p) for p in product_ids)
        ]
        results: Dict[str, str] = {}

        for start in range(0, len(gids), GRAPHQL_BATCH_SIZE):
            batch = gids[start:start + GRAPHQL_BATCH_SIZE]
            query = """
                query getProductHSNCodes($ids: [ID!]!) {
                  nodes(ids: $ids) {
                    ... on Product {
                      id
                      metafield(namespace: "custom", key: "hsn_code") { value }
                    }
                  }
                }
            """
            try:
                response = self.session.post(
                    f"{self.base_url}/graphql.json",
                    headers=self._headers,
                    json={"query": query, "variables": {"ids": batch}},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                nodes = (response.json().get("data") or {}).get("nodes") or []
            except (requests.RequestException, ValueError) as e:
                get_logger().error(f"Metafield fetch failed for {self.shop}: {e}", component="HSN")
                continue

            for node in nodes:
                value = ((node or {}).get("metafield") or {}).get("value")
                if node and node.get("id") and value:
                    results[node["id"].split("/")[-1]] = str(value)

        return results


def client_for_shop(db, shop: str) -> Optional[AdminApiClient]:
    """Build a client from the stored shop access token, if there is one."""
    shop_record = db.get_shop(shop) or {}
    token = shop_record.get("accessToken")
    if not token:
        return None
    return AdminApiClient(shop, token)
