"""
Tests for the invoice transformer: per-unit expansion, rate slabs, discount
pool, jurisdiction split and malformed input.
"""
import sys
import unittest
from pathlib import Path

# Ensure src/ is on path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / 'src'))

from fixtures import line_item, order_payload

from gst_ledger.exceptions import TransformError
from gst_ledger.payloads import OrderPayload
from gst_ledger.transform.invoice_transformer import (
    DiscountPool,
    extract_customer_name,
    format_display_date,
    transform_order,
)


def _transform(seller_state="Maharashtra", **order_kwargs):
    return transform_order(OrderPayload.model_validate(order_payload(**order_kwargs)), seller_state)


class TestIntrastateScenario(unittest.TestCase):
    """3 units at 2950.00 inclusive, seller and buyer in Maharashtra."""

    def setUp(self):
        self.invoice = _transform()
        self.meta = self.invoice.gst_meta.items[0]

    def test_one_row_per_unit(self):
        rows = self.invoice.document.line_items
        self.assertEqual(len(rows), 3)
        for row in rows:
            self.assertEqual(row.quantity, 1)
            self.assertEqual(row.selling_price, "Rs. 2500.00")
            self.assertEqual(row.tax, "Rs. 450.00")
            self.assertEqual(row.selling_price_after_tax, "Rs. 2950.00")
            self.assertEqual(row.name, "Silk Saree (HSN: 5007)")
            self.assertEqual(row.description, "Variant: Red")

    def test_line_item_gst_facts(self):
        self.assertTrue(self.invoice.gst_meta.is_intrastate)
        self.assertEqual(self.meta.quantity, 3)
        self.assertEqual(self.meta.tax_rate, 18)
        self.assertEqual(self.meta.taxable_value, 7500.0)
        self.assertEqual(self.meta.total_tax, 1350.0)
        self.assertEqual(self.meta.cgst, 675.0)
        self.assertEqual(self.meta.sgst, 675.0)
        self.assertEqual(self.meta.igst, 0.0)
        self.assertEqual(self.meta.hsn, "5007")
        self.assertEqual(self.meta.line_item_id, "111")

    def test_totals(self):
        totals = self.invoice.document.totals
        self.assertEqual(totals.subtotal, "Rs. 7500.00")
        self.assertEqual(totals.tax, "Rs. 1350.00")
        self.assertEqual(totals.cgst, "Rs. 675.00")
        self.assertEqual(totals.sgst, "Rs. 675.00")
        self.assertIsNone(totals.igst)
        self.assertIsNone(totals.discount)
        self.assertEqual(totals.total, "Rs. 8850.00")

    def test_document_shape(self):
        document = self.invoice.document.to_dict()
        self.assertEqual(document["order"]["name"], "#1001")
        self.assertEqual(document["order"]["date"], "7 Feb 2026")
        self.assertEqual(document["order"]["notes"], "Thank you for your purchase!")
        self.assertEqual(document["customer"]["name"], "Asha Rao")
        self.assertEqual(document["shippingAddress"]["state"], "Maharashtra")
        self.assertEqual(len(document["lineItems"]), 3)
        self.assertIn("sellingPriceAfterTax", document["lineItems"][0])


class TestInterstateScenario(unittest.TestCase):

    def test_igst_only(self):
        invoice = _transform(province="Karnataka")
        meta = invoice.gst_meta.items[0]
        self.assertFalse(invoice.gst_meta.is_intrastate)
        self.assertEqual(invoice.gst_meta.place_of_supply, "Karnataka")
        self.assertEqual(meta.igst, 1350.0)
        self.assertEqual(meta.cgst, 0.0)
        self.assertEqual(meta.sgst, 0.0)
        self.assertEqual(invoice.document.totals.igst, "Rs. 1350.00")
        self.assertIsNone(invoice.document.totals.cgst)

    def test_unknown_seller_state_is_interstate(self):
        invoice = _transform(seller_state="Unknown")
        self.assertFalse(invoice.gst_meta.is_intrastate)


class TestRateSlabs(unittest.TestCase):

    def test_low_price_uses_five_percent(self):
        invoice = _transform(items=[line_item(price="118.00", quantity=1)])
        meta = invoice.gst_meta.items[0]
        self.assertEqual(meta.tax_rate, 5)
        self.assertEqual(meta.taxable_value, 112.38)
        self.assertEqual(meta.total_tax, 5.62)
        self.assertEqual(invoice.document.line_items[0].tax, "Rs. 5.62")

    def test_discount_can_drop_unit_into_lower_slab(self):
        items = [line_item(price="2700.00", quantity=1, total_discount="100.00")]
        invoice = _transform(items=items, current_total_discounts="100.00")
        meta = invoice.gst_meta.items[0]
        self.assertEqual(meta.tax_rate, 5)
        self.assertEqual(meta.discount, 100.0)
        self.assertEqual(meta.taxable_value, 2471.43)


class TestDiscountPool(unittest.TestCase):

    def test_draw_from_pool(self):
        pool = DiscountPool.for_order(100.0)
        discount, pool = pool.draw(2809.52, 0.0)
        self.assertEqual(discount, 100.0)
        self.assertEqual(pool.remaining, 0.0)
        self.assertTrue(pool.applied)

    def test_small_item_keeps_own_discount(self):
        pool = DiscountPool.for_order(100.0)
        discount, after = pool.draw(47.6, 5.0)
        self.assertEqual(discount, 5.0)
        self.assertEqual(after.remaining, 95.0)

    def test_no_order_discount(self):
        pool = DiscountPool.for_order(0.0)
        discount, after = pool.draw(2809.52, 0.0)
        self.assertEqual(discount, 0.0)
        self.assertIs(after, pool)
        self.assertFalse(after.applied)

    def test_only_first_unit_carries_discount(self):
        items = [line_item(quantity=2, total_discount="100.00")]
        invoice = _transform(items=items, current_total_discounts="100.00")
        rows = invoice.document.line_items
        self.assertEqual(rows[0].discount, "Rs. 100.00")
        self.assertEqual(rows[0].selling_price, "Rs. 2400.00")
        self.assertEqual(rows[1].discount, "Rs. 0.00")
        self.assertEqual(rows[1].selling_price, "Rs. 2500.00")
        self.assertEqual(invoice.gst_meta.items[0].taxable_value, 4900.0)
        self.assertIsNone(invoice.document.totals.discount)

    def test_pool_exhausted_by_first_item(self):
        items = [
            line_item(item_id=111, product_id=9001, quantity=1),
            line_item(item_id=112, product_id=9002, quantity=1),
        ]
        invoice = _transform(items=items, current_total_discounts="100.00")
        first, second = invoice.gst_meta.items
        self.assertEqual(first.discount, 100.0)
        self.assertEqual(second.discount, 0.0)

    def test_unapplied_discount_shown_in_totals(self):
        items = [line_item(price="50.00", quantity=1)]
        invoice = _transform(items=items, current_total_discounts="100.00")
        self.assertEqual(invoice.document.totals.discount, "-Rs. 100.00")


class TestEdgeCases(unittest.TestCase):

    def test_deterministic(self):
        self.assertEqual(_transform(), _transform())

    def test_zero_quantity_item_skipped(self):
        items = [line_item(item_id=111, quantity=0), line_item(item_id=112, product_id=9002, quantity=1)]
        invoice = _transform(items=items)
        self.assertEqual(len(invoice.gst_meta.items), 1)
        self.assertEqual(invoice.gst_meta.items[0].line_item_id, "112")
        self.assertEqual(len(invoice.document.line_items), 1)

    def test_negative_quantity_rejected(self):
        with self.assertRaises(TransformError):
            _transform(items=[line_item(quantity=-1)])

    def test_malformed_price_rejected(self):
        with self.assertRaises(TransformError):
            _transform(items=[line_item(price="abc")])

    def test_hsn_from_sku(self):
        items = [line_item(sku="TSHIRT-HSN6109-M", product=None)]
        invoice = _transform(items=items)
        self.assertEqual(invoice.gst_meta.items[0].hsn, "6109")

    def test_no_hsn(self):
        items = [line_item(sku="PLAIN", product=None)]
        invoice = _transform(items=items)
        self.assertIsNone(invoice.gst_meta.items[0].hsn)
        self.assertEqual(invoice.document.line_items[0].name, "Silk Saree")

    def test_foreign_currency_symbol(self):
        invoice = _transform(currency="USD", items=[line_item(price="10.00", quantity=1)])
        self.assertTrue(invoice.document.totals.total.startswith("USD "))


class TestCustomerName(unittest.TestCase):

    def test_customer_name(self):
        order = OrderPayload.model_validate(order_payload())
        self.assertEqual(extract_customer_name(order), "Asha Rao")

    def test_billing_fallback(self):
        order = OrderPayload.model_validate(order_payload(customer=None))
        self.assertEqual(extract_customer_name(order), "Asha Rao")

    def test_guest(self):
        order = OrderPayload.model_validate(order_payload(
            customer=None, billing_address=None, shipping_address=None, email=None,
        ))
        self.assertEqual(extract_customer_name(order), "Guest")


class TestDisplayDate(unittest.TestCase):

    def test_format(self):
        self.assertEqual(format_display_date("2026-02-07T10:15:00+05:30"), "7 Feb 2026")
        self.assertEqual(format_display_date("2026-11-30T00:00:00Z"), "30 Nov 2026")

    def test_unparseable_passthrough(self):
        self.assertEqual(format_display_date("yesterday"), "yesterday")
        self.assertEqual(format_display_date(None), "")


if __name__ == '__main__':
    unittest.main()
