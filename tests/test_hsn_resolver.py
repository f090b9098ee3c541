"""
Tests for HSN extraction and the product HSN cache.
"""
import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

import requests

# Ensure src/ is on path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / 'src'))

from fixtures import line_item, order_payload

from gst_ledger.classification.hsn_resolver import HSNResolver, extract_hsn_code
from gst_ledger.payloads import LineItemPayload, OrderPayload
from gst_ledger.storage.ledger_db import LedgerDB

SHOP = "demo-store.myshopify.com"


class TestExtractHSN(unittest.TestCase):

    def test_metafield_wins(self):
        item = LineItemPayload.model_validate(line_item(
            sku="X-HSN6109",
            properties=[{"name": "HSN Code", "value": "6203"}],
        ))
        self.assertEqual(extract_hsn_code(item), "5007")

    def test_property_fallback(self):
        item = LineItemPayload.model_validate(line_item(
            product=None, properties=[{"name": "HSN Code", "value": "6203"}],
        ))
        self.assertEqual(extract_hsn_code(item), "6203")

    def test_sku_fallback(self):
        item = LineItemPayload.model_validate(line_item(product=None, sku="kurta-hsn62114290-l"))
        self.assertEqual(extract_hsn_code(item), "62114290")

    def test_sku_pattern_too_short(self):
        item = LineItemPayload.model_validate(line_item(product=None, sku="HSN12"))
        self.assertIsNone(extract_hsn_code(item))


class TestHSNResolver(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db = LedgerDB(str(Path(self.temp_dir) / "ledger.db"))
        self.fetcher = MagicMock(return_value={})
        self.resolver = HSNResolver(self.db, fetcher=self.fetcher, ttl_days=90)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_cache_hit_skips_fetch(self):
        self.resolver.save_product(SHOP, "9001", "5007", title="Silk Saree")
        self.assertEqual(self.resolver.get_hsn_code(SHOP, "9001"), "5007")
        self.fetcher.assert_not_called()

    def test_cache_miss_fetches_and_caches(self):
        self.fetcher.return_value = {"9002": "6109"}
        self.assertEqual(self.resolver.get_hsn_codes(SHOP, ["9002", "9002"]), {"9002": "6109"})
        self.fetcher.assert_called_once_with(SHOP, ["9002"])
        self.assertEqual(self.resolver.get_cached_hsn_code(SHOP, "9002"), "6109")

    def test_cache_is_per_shop(self):
        self.resolver.save_product(SHOP, "9001", "5007")
        self.assertIsNone(self.resolver.get_cached_hsn_code("other.myshopify.com", "9001"))

    def test_expired_entry_ignored(self):
        self.db.put_products(SHOP, [{"productId": "9001", "hsnCode": "5007"}], ttl=1)
        self.assertIsNone(self.resolver.get_cached_hsn_code(SHOP, "9001"))

    def test_fetch_failure_returns_cached_only(self):
        self.resolver.save_product(SHOP, "9001", "5007")
        self.fetcher.side_effect = requests.ConnectionError("down")
        self.assertEqual(self.resolver.get_hsn_codes(SHOP, ["9001", "9002"]), {"9001": "5007"})

    def test_no_fetcher(self):
        resolver = HSNResolver(self.db)
        self.assertIsNone(resolver.get_hsn_code(SHOP, "404"))

    def test_enrich_order_injects_metafield(self):
        self.resolver.save_product(SHOP, "9003", "6203")
        order = OrderPayload.model_validate(order_payload(items=[
            line_item(item_id=1, product_id=9003, product=None, sku="PLAIN"),
            line_item(item_id=2, product_id=9004, product=None, sku="PLAIN"),
        ]))

        enriched = self.resolver.enrich_order(SHOP, order)

        self.assertEqual(extract_hsn_code(enriched.line_items[0]), "6203")
        self.assertIsNone(extract_hsn_code(enriched.line_items[1]))
        # input payload is not mutated
        self.assertIsNone(extract_hsn_code(order.line_items[0]))


if __name__ == '__main__':
    unittest.main()
