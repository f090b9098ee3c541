"""
Tests for the outbound clients: store admin API, document service and the
filesystem document storage.
HTTP calls go through a mocked requests session; storage uses a temp directory.
"""
import json
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

from gst_ledger.clients.admin_api import AdminApiClient, client_for_shop
from gst_ledger.clients.document_service import DocumentServiceClient
from gst_ledger.clients.document_storage import DocumentStorage
from gst_ledger.exceptions import DownstreamError

SHOP = "demo-store.myshopify.com"


def _response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class TestAdminApiClient(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.client = AdminApiClient(SHOP, "shpat_test", api_version="2025-01", timeout=5, session=self.session)

    def test_location_state(self):
        self.session.get.return_value = _response({"location": {"id": 42, "province": "Karnataka"}})

        self.assertEqual(self.client.get_location_state("42"), "Karnataka")
        url = self.session.get.call_args.args[0]
        self.assertEqual(url, f"https://{SHOP}/admin/api/2025-01/locations/42.json")
        self.assertEqual(self.session.get.call_args.kwargs["headers"]["X-Shopify-Access-Token"], "shpat_test")

    def test_location_without_province(self):
        self.session.get.return_value = _response({"location": {"id": 42, "province": ""}})
        self.assertIsNone(self.client.get_location_state("42"))

    def test_fetch_hsn_codes(self):
        self.session.post.return_value = _response({"data": {"nodes": [
            {"id": "gid://shopify/Product/9001", "metafield": {"value": "5007"}},
            {"id": "gid://shopify/Product/9002", "metafield": None},
            None,
        ]}})

        codes = self.client.fetch_hsn_codes(["9001", "gid://shopify/Product/9002", 9003])

        self.assertEqual(codes, {"9001": "5007"})
        ids = self.session.post.call_args.kwargs["json"]["variables"]["ids"]
        self.assertEqual(ids, [
            "gid://shopify/Product/9001",
            "gid://shopify/Product/9002",
            "gid://shopify/Product/9003",
        ])

    def test_fetch_batches_large_requests(self):
        self.session.post.return_value = _response({"data": {"nodes": []}})
        self.client.fetch_hsn_codes([str(i) for i in range(251)])
        self.assertEqual(self.session.post.call_count, 2)

    def test_fetch_failure_returns_partial(self):
        self.session.post.side_effect = requests.ConnectionError("down")
        self.assertEqual(self.client.fetch_hsn_codes(["9001"]), {})

    def test_client_for_shop_requires_token(self):
        db = MagicMock()
        db.get_shop.return_value = {"companyState": "Maharashtra"}
        self.assertIsNone(client_for_shop(db, SHOP))

        db.get_shop.return_value = {"accessToken": "shpat_x"}
        client = client_for_shop(db, SHOP)
        self.assertEqual(client.access_token, "shpat_x")
        self.assertEqual(client.shop, SHOP)


class TestDocumentServiceClient(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.client = DocumentServiceClient(url="https://docs.example.com/generate", timeout=5, session=self.session)

    def test_generate(self):
        self.session.post.return_value = _response({"invoiceId": "inv-1", "s3Url": "https://x/1.pdf"})

        result = self.client.generate({"invoiceNumber": "#1001"}, SHOP, "5550001", "#1001")

        self.assertEqual(result["invoiceId"], "inv-1")
        body = self.session.post.call_args.kwargs["json"]
        self.assertEqual(body["orderName"], "#1001")
        self.assertEqual(body["invoiceData"], {"invoiceNumber": "#1001"})

    def test_wrapped_body_is_unwrapped(self):
        self.session.post.return_value = _response({
            "statusCode": 200, "body": json.dumps({"invoiceId": "inv-2"}),
        })
        self.assertEqual(self.client.generate({}, SHOP, "1", "#1")["invoiceId"], "inv-2")

    def test_not_configured(self):
        client = DocumentServiceClient(url="", session=self.session)
        self.assertFalse(client.enabled)
        with self.assertRaises(DownstreamError):
            client.generate({}, SHOP, "1", "#1")
        self.session.post.assert_not_called()

    def test_timeout(self):
        self.session.post.side_effect = requests.exceptions.Timeout()
        with self.assertRaises(DownstreamError) as ctx:
            self.client.generate({}, SHOP, "1", "#1")
        self.assertIn("timed out", str(ctx.exception))

    def test_http_error(self):
        response = _response({})
        response.raise_for_status.side_effect = requests.HTTPError("502 Bad Gateway")
        self.session.post.return_value = response
        with self.assertRaises(DownstreamError):
            self.client.generate({}, SHOP, "1", "#1")

    def test_non_object_response(self):
        self.session.post.return_value = _response(["not", "an", "object"])
        with self.assertRaises(DownstreamError):
            self.client.generate({}, SHOP, "1", "#1")


class TestDocumentStorage(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.storage = DocumentStorage(self.temp_dir)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _put(self, key, content=b"%PDF"):
        path = Path(self.temp_dir) / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    def test_move_invoice(self):
        self._put("shops/demo-store-myshopify-com/invoices/invoice-1001.pdf")
        self._put("shops/demo-store-myshopify-com/invoices/invoice-2002.pdf")

        moved = self.storage.move_invoice_to_folder("#1001", SHOP, "cancelled")

        self.assertEqual(moved, ["shops/demo-store-myshopify-com/cancelled/invoice-1001.pdf"])
        self.assertEqual(self.storage.list_keys("shops/demo-store-myshopify-com/invoices/"),
                         ["shops/demo-store-myshopify-com/invoices/invoice-2002.pdf"])

    def test_move_without_invoice(self):
        self.assertEqual(self.storage.move_invoice_to_folder("#404", SHOP), [])

    def test_archive_payload(self):
        key = self.storage.archive_webhook_payload(SHOP, "orders/create", {"id": 5550001}, "#1001")

        self.assertTrue(key.startswith("shops/demo-store-myshopify-com/webhook_requests/"))
        self.assertIn("/orders-create/5550001-1001-", key)
        stored = json.loads((Path(self.temp_dir) / key).read_text(encoding="utf-8"))
        self.assertEqual(stored, {"id": 5550001})

    def test_archive_unserializable_payload(self):
        self.assertEqual(self.storage.archive_webhook_payload(SHOP, "orders/create", {"id": object()}), "")


if __name__ == '__main__':
    unittest.main()
