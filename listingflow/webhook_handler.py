# listingflow/webhook_handler.py
# ────────────────────────────────────────────
# Handles incoming Shopify webhooks → ERPNext pushes
# ────────────────────────────────────────────

import logging
import time
import traceback
from datetime import datetime, timezone
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from listingflow.config import get_webhook_secret
from listingflow.dependencies import get_erp_client, get_event_log
from listingflow.erp.erpnext_client import ErpClient
from listingflow.events.event_log import EventLog
from listingflow.shopify.hmac_verify import verify_shopify_hmac
from listingflow.shopify.webhook_models import parse_order_event, parse_product_event
from listingflow.sync.order_sync import sync_order
from listingflow.sync.product_sync import sync_product

logger = logging.getLogger("uvicorn.error")
webhook_router = APIRouter()

ORDERS_PATH = "/api/shopify/webhooks/orders"
PRODUCTS_PATH = "/api/shopify/webhooks/products"


def _webhook_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}"


def _liveness(path: str) -> dict:
    return {"ok": True, "path": path, "timestamp": datetime.now(timezone.utc).isoformat()}


async def _receive(
    request: Request,
    events: EventLog,
    webhook_id: str,
    kind: str,
    process: Callable[[bytes], Awaitable[dict]],
) -> JSONResponse:
    """
    Shared webhook envelope: secret check → HMAC on raw bytes → process.
    Any failure inside `process` is logged with the raw body for replay.
    """
    secret = get_webhook_secret()
    if not secret:
        msg = f"SHOPIFY_WEBHOOK_SECRET is not configured for {kind} webhooks."
        logger.error(f"[Webhook] {msg}")
        events.log_event("error", msg, {"webhookId": webhook_id, "error": "Configuration Error"})
        return JSONResponse({"error": "Webhook secret not configured on server"}, status_code=500)

    hmac_header = request.headers.get("x-shopify-hmac-sha256")
    topic = request.headers.get("x-shopify-topic") or "unknown-topic"
    shop_domain = request.headers.get("x-shopify-shop-domain") or "unknown-shop"
    raw_body = await request.body()  # must stay raw for the HMAC

    events.log_event(
        "info",
        f"{kind.capitalize()} webhook received: {topic}",
        {"webhookId": webhook_id, "shopDomain": shop_domain, "topic": topic},
    )

    if not verify_shopify_hmac(raw_body, secret, hmac_header):
        logger.warning(f"[Webhook] Invalid HMAC for {kind} webhook from {shop_domain}")
        events.log_event(
            "error",
            f"Invalid HMAC signature for {kind} webhook.",
            {"webhookId": webhook_id, "shopDomain": shop_domain, "topic": topic},
        )
        return JSONResponse({"error": "Invalid HMAC"}, status_code=401)

    try:
        result = await process(raw_body)
    except Exception as e:
        logger.exception(f"[Webhook] Failed to process {kind} webhook")
        events.log_event(
            "error",
            f"Failed to process {kind} webhook.",
            {
                "webhookId": webhook_id,
                "error": str(e),
                "traceback": traceback.format_exc(),
                "body": raw_body.decode("utf-8", errors="replace"),
            },
        )
        return JSONResponse({"error": str(e) or "Unhandled error"}, status_code=500)

    return JSONResponse({**result, "topic": topic})


# ======================================
# ✅ Orders
# ======================================
@webhook_router.post(ORDERS_PATH)
async def orders_webhook(
    request: Request,
    erp: ErpClient = Depends(get_erp_client),
    events: EventLog = Depends(get_event_log),
):
    webhook_id = _webhook_id("wh")

    async def process(raw_body: bytes) -> dict:
        order = parse_order_event(raw_body)
        res = await sync_order(erp, events, order, webhook_id)
        payload = {"ok": True, "sales_order": res.sales_order}
        if res.message:
            payload["message"] = res.message
        if res.sales_invoice:
            payload["sales_invoice"] = res.sales_invoice
        if res.delivery_note:
            payload["delivery_note"] = res.delivery_note
        return payload

    return await _receive(request, events, webhook_id, "order", process)


@webhook_router.get(ORDERS_PATH)
async def orders_webhook_alive():
    return _liveness(ORDERS_PATH)


# ======================================
# ✅ Products
# ======================================
@webhook_router.post(PRODUCTS_PATH)
async def products_webhook(
    request: Request,
    erp: ErpClient = Depends(get_erp_client),
    events: EventLog = Depends(get_event_log),
):
    webhook_id = _webhook_id("wh_prod")

    async def process(raw_body: bytes) -> dict:
        product = parse_product_event(raw_body)
        return await sync_product(erp, events, product, webhook_id)

    return await _receive(request, events, webhook_id, "product", process)


@webhook_router.get(PRODUCTS_PATH)
async def products_webhook_alive():
    return _liveness(PRODUCTS_PATH)
