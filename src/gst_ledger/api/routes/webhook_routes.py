"""
Webhook routes - order, refund and product events from the store platform.
The HMAC signature over the raw body is checked before anything is parsed.
"""
import json
from typing import Any, Callable, Dict, Type

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool

from gst_ledger.api.dependencies import Services, get_services
from gst_ledger.exceptions import TransformError, WebhookValidationError
from gst_ledger.payloads import OrderPayload, ProductPayload, RefundPayload
from gst_ledger.utils.logger import get_logger
from gst_ledger.webhooks.signature import verify_webhook_hmac

router = APIRouter()

HMAC_HEADER = "x-shopify-hmac-sha256"
TOPIC_HEADER = "x-shopify-topic"
SHOP_HEADER = "x-shopify-shop-domain"


def _order_name(body: Dict[str, Any]) -> str:
    order = body.get("order")
    return body.get("name") or (order.get("name") if isinstance(order, dict) else None) or ""


async def _handle(
    request: Request,
    default_topic: str,
    model: Type[BaseModel],
    handler: Callable[[str, str, Any], Dict[str, Any]],
    services: Services,
):
    logger = get_logger()
    raw_body = await request.body()

    if not verify_webhook_hmac(raw_body, request.headers.get(HMAC_HEADER)):
        logger.warning(f"HMAC validation failed for {default_topic}, rejecting", component="Webhook")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    topic = request.headers.get(TOPIC_HEADER) or default_topic
    shop = request.headers.get(SHOP_HEADER) or "unknown"

    try:
        body = json.loads(raw_body) if raw_body else {}
        if not isinstance(body, dict):
            raise ValueError("payload is not a JSON object")
        payload = model.model_validate(body)
    except (ValueError, ValidationError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid payload: {e}")

    logger.log_webhook(topic, shop, _order_name(body))
    services.handlers.archive(shop, topic, body, _order_name(body) or None)

    try:
        return await run_in_threadpool(handler, shop, topic, payload)
    except WebhookValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Bad Request: {e}")
    except TransformError as e:
        logger.error(f"{topic} for {shop} - transform failed: {e}", component="Webhook")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": "Failed to generate invoice", "error": str(e)},
        )
    except Exception as e:
        logger.error(f"{topic} for {shop} - processing failed: {e}", component="Webhook", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": f"Failed to process {topic} webhook", "error": str(e)},
        )


@router.post("/orders/create", summary="Order created")
async def orders_create(request: Request, services: Services = Depends(get_services)):
    """Store the order and create its invoice and ledger rows (idempotent)."""
    return await _handle(
        request, "orders/create", OrderPayload,
        lambda shop, topic, order: services.handlers.orders_create(shop, topic, order),
        services,
    )


@router.post("/orders/updated", summary="Order updated")
async def orders_updated(request: Request, services: Services = Depends(get_services)):
    """Fulfillment and payment status changes; deferred multi-warehouse invoicing."""
    return await _handle(
        request, "orders/updated", OrderPayload,
        lambda shop, topic, order: services.handlers.orders_updated(shop, order),
        services,
    )


@router.post("/orders/cancelled", summary="Order cancelled")
async def orders_cancelled(request: Request, services: Services = Depends(get_services)):
    return await _handle(
        request, "orders/cancelled", OrderPayload,
        lambda shop, topic, order: services.handlers.orders_cancelled(shop, order),
        services,
    )


@router.post("/refunds/create", summary="Refund created")
async def refunds_create(request: Request, services: Services = Depends(get_services)):
    """Full refunds flip ledger status; partial refunds append credit-note rows."""
    return await _handle(
        request, "refunds/create", RefundPayload,
        lambda shop, topic, refund: services.handlers.refunds_create(shop, refund),
        services,
    )


@router.post("/products/update", summary="Product updated")
async def products_update(request: Request, services: Services = Depends(get_services)):
    """Sync the product's HSN code into the cache."""
    return await _handle(
        request, "products/update", ProductPayload,
        lambda shop, topic, product: services.handlers.products_update(shop, product),
        services,
    )
