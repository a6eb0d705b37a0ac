# listingflow/sync/product_sync.py
# =============================
# Shopify product → ERPNext Item (keyed by SKU)
# Only the first variant is synced.
# =============================

import logging
from typing import Any, Dict

from listingflow.erp.erp_documents import build_product_item_payload
from listingflow.erp.erpnext_client import ErpClient
from listingflow.events.event_log import EventLog
from listingflow.shopify.webhook_models import ShopifyProductWebhook
from listingflow.sync.sync_core import KeyedLock, product_locks

logger = logging.getLogger("uvicorn.error")

SKU_REQUIRED = "SKU is required."


async def sync_product(
    erp: ErpClient,
    events: EventLog,
    product: ShopifyProductWebhook,
    webhook_id: str,
    locks: KeyedLock = product_locks,
) -> Dict[str, Any]:
    variant = product.first_variant
    sku = (variant.sku or "").strip() if variant else ""

    if not sku:
        events.log_event(
            "info",
            "Product webhook skipped.",
            {"webhookId": webhook_id, "shopifyId": product.id, "reason": "Product or variant has no SKU."},
        )
        return {"ok": True, "message": SKU_REQUIRED}

    if len(product.variants) > 1:
        logger.warning(
            f"[Products] Shopify product {product.id} has {len(product.variants)} variants; syncing {sku} only"
        )

    erp_item = build_product_item_payload(product, variant)
    erp_item["item_code"] = sku

    async with locks.hold(sku):
        existing = await erp.find_one("Item", [["item_code", "=", sku]])
        if existing:
            await erp.update("Item", existing, erp_item)
            item_name, action = existing, "updated"
        else:
            created = await erp.create("Item", erp_item)
            item_name, action = created.get("name") or sku, "created"

    events.log_event(
        "success",
        f"Product {action} in ERPNext: {product.title}",
        {"webhookId": webhook_id, "shopifyId": product.id, "erpNextItemName": item_name},
    )
    return {"ok": True, "action": action, "item": item_name}
