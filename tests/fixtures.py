"""
Sample webhook payloads shared by the test modules.
"""
import copy


def _amount(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def line_item(item_id=111, product_id=9001, price="2950.00", quantity=3, **overrides):
    item = {
        "id": item_id,
        "product_id": product_id,
        "variant_id": product_id * 10,
        "title": "Silk Saree",
        "variant_title": "Red",
        "sku": "SAREE-RED",
        "quantity": quantity,
        "price": price,
        "total_discount": "0.00",
        "fulfillment_service": "manual",
        "product": {"metafields": [{"namespace": "custom", "key": "hsn_code", "value": "5007"}]},
    }
    item.update(overrides)
    return item


def order_payload(name="#1001", order_id=5550001, province="Maharashtra", items=None, **overrides):
    """orders/create body: 3 x 2950.00 shipped to the given province."""
    items = items if items is not None else [line_item()]
    total = sum(_amount(i["price"]) * i["quantity"] for i in items)
    order = {
        "id": order_id,
        "name": name,
        "created_at": "2026-02-07T10:15:00+05:30",
        "currency": "INR",
        "financial_status": "paid",
        "fulfillment_status": None,
        "current_total_price": f"{total:.2f}",
        "total_price": f"{total:.2f}",
        "current_total_discounts": "0.00",
        "total_shipping_price_set": {"shop_money": {"amount": "0.00"}},
        "email": "asha@example.com",
        "customer": {"first_name": "Asha", "last_name": "Rao", "email": "asha@example.com"},
        "billing_address": {"name": "Asha Rao", "province": province},
        "shipping_address": {
            "name": "Asha Rao",
            "address1": "12 MG Road",
            "city": "Pune" if province == "Maharashtra" else "Bengaluru",
            "province": province,
            "zip": "411001",
        },
        "line_items": items,
    }
    order.update(overrides)
    return copy.deepcopy(order)


def refund_payload(order_name="#1001", order_id=5550001, refund_id=7700012, items=None, **overrides):
    """refunds/create body. items: (line_item_id, refunded_qty, original_qty) tuples."""
    items = items if items is not None else [(111, 3, 3)]
    refund = {
        "id": refund_id,
        "order_id": order_id,
        "created_at": "2026-02-20T09:00:00+05:30",
        "order": {"id": order_id, "name": order_name},
        "refund_line_items": [
            {
                "line_item_id": line_item_id,
                "quantity": refunded,
                "restock_type": "return",
                "line_item": {"id": line_item_id, "quantity": original},
            }
            for line_item_id, refunded, original in items
        ],
    }
    refund.update(overrides)
    return refund
