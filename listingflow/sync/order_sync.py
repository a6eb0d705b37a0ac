# listingflow/sync/order_sync.py
# =============================
# Shopify order → ERPNext documents
# - Find-or-create Customer and Addresses
# - One Sales Order per Shopify order id (looked up before creating)
# - Sales Invoice when paid, Delivery Note when fulfilled
# =============================

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from listingflow.erp.erp_documents import (
    address_title,
    build_address_payload,
    build_customer_payload,
    build_delivery_note_payload,
    build_minimal_item_payload,
    build_order_line,
    build_sales_invoice_payload,
    build_sales_order_payload,
    linked_items,
)
from listingflow.erp.erpnext_client import ErpClient
from listingflow.events.event_log import EventLog
from listingflow.shopify.webhook_models import ShopifyAddress, ShopifyOrderWebhook
from listingflow.sync.sync_core import KeyedLock, order_locks

logger = logging.getLogger("uvicorn.error")


@dataclass
class OrderSyncResult:
    sales_order: str
    created: bool
    customer: Optional[str] = None
    sales_invoice: Optional[str] = None
    delivery_note: Optional[str] = None
    items_created: List[str] = field(default_factory=list)
    message: Optional[str] = None


# -----------------------------
# ✅ Customer
# -----------------------------
async def ensure_customer(erp: ErpClient, order: ShopifyOrderWebhook) -> str:
    email = order.customer_email
    phone = order.customer_phone

    name = None
    if email:
        name = await erp.find_one("Customer", [["email_id", "=", email]])
    if not name and phone:
        name = await erp.find_one("Customer", [["mobile_no", "=", phone]])
    if name:
        return name

    logger.info(f"[Orders] Creating customer for {email or phone or 'guest'}")
    created = await erp.create("Customer", build_customer_payload(order))
    return created["name"]


# -----------------------------
# ✅ Addresses
# -----------------------------
async def ensure_address(
    erp: ErpClient,
    kind: str,
    addr: Optional[ShopifyAddress],
    customer_name: str,
    customer_doc: str,
    email: Optional[str],
) -> Optional[str]:
    if addr is None:
        return None

    title = address_title(kind, customer_name, addr)
    existing = await erp.find_one("Address", [["address_title", "=", title]])
    if existing:
        return existing

    created = await erp.create(
        "Address", build_address_payload(kind, customer_name, customer_doc, addr, email)
    )
    return created["name"]


# -----------------------------
# ✅ Items
# -----------------------------
async def ensure_item(erp: ErpClient, events: EventLog, item_code: str, item_name: str) -> bool:
    """Create a bare Item if the code is unknown. Returns True when created."""
    if await erp.find_one("Item", [["item_code", "=", item_code]]):
        return False

    events.log_event(
        "info",
        f'Item with SKU "{item_code}" not found. Creating it automatically.',
        {"item_code": item_code, "item_name": item_name},
    )
    await erp.create("Item", build_minimal_item_payload(item_code, item_name))
    return True


# -----------------------------------------------------
# Public entry point
# -----------------------------------------------------
async def sync_order(
    erp: ErpClient,
    events: EventLog,
    order: ShopifyOrderWebhook,
    webhook_id: str,
    locks: KeyedLock = order_locks,
) -> OrderSyncResult:
    """
    Materialize one Shopify order in ERPNext. Safe to call again with the
    same order: an existing Sales Order short-circuits the run.
    """
    async with locks.hold(order.order_id):
        return await _sync_order(erp, events, order, webhook_id)


async def _sync_order(
    erp: ErpClient, events: EventLog, order: ShopifyOrderWebhook, webhook_id: str
) -> OrderSyncResult:
    shopify_order_id = order.order_id
    customer_name = order.display_name()
    email = order.customer_email

    # 1) Customer + addresses
    customer_doc = await ensure_customer(erp, order)
    billing = await ensure_address(erp, "Billing", order.billing_address, customer_name, customer_doc, email)
    shipping = await ensure_address(erp, "Shipping", order.shipping_address, customer_name, customer_doc, email)

    # 2) Idempotency: one Sales Order per Shopify order
    existing_so = await erp.find_one("Sales Order", [["shopify_order_id", "=", shopify_order_id]])
    if existing_so:
        message = (
            f"Sales Order {existing_so} already exists for Shopify Order "
            f"{order.name or shopify_order_id}. Webhook ignored."
        )
        events.log_event(
            "info",
            message,
            {"webhookId": webhook_id, "shopifyOrderId": shopify_order_id, "erpnextSOName": existing_so},
        )
        return OrderSyncResult(sales_order=existing_so, created=False, customer=customer_doc, message=message)

    # 3) Lines (items must exist before the order references them)
    items: List[dict] = []
    items_created: List[str] = []
    for li in order.line_items:
        line = build_order_line(li)
        if await ensure_item(erp, events, line["item_code"], line["item_name"]):
            items_created.append(line["item_code"])
        items.append(line)

    # 4) Sales Order
    so = await erp.create(
        "Sales Order",
        build_sales_order_payload(order, customer_doc, items, billing, shipping),
    )
    sales_order = so["name"]
    events.log_event(
        "success",
        f"Created Sales Order {sales_order} for Shopify Order {order.name or shopify_order_id}.",
        {"webhookId": webhook_id, "shopifyOrderId": shopify_order_id, "erpnextSOName": sales_order},
    )

    result = OrderSyncResult(
        sales_order=sales_order, created=True, customer=customer_doc, items_created=items_created
    )
    doc_items = linked_items(items, sales_order, so.get("items") or [])

    # 5) Paid → Sales Invoice
    if order.is_paid():
        existing_si = await erp.find_one("Sales Invoice", [["shopify_order_id", "=", shopify_order_id]])
        if not existing_si:
            si = await erp.create(
                "Sales Invoice",
                build_sales_invoice_payload(order, customer_doc, sales_order, doc_items),
            )
            result.sales_invoice = si["name"]
            events.log_event(
                "success",
                f"Created Sales Invoice {si['name']} for paid Shopify Order {order.name or shopify_order_id}.",
                {
                    "webhookId": webhook_id,
                    "shopifyOrderId": shopify_order_id,
                    "erpnextSOName": sales_order,
                    "erpnextSIName": si["name"],
                },
            )
        else:
            result.sales_invoice = existing_si

    # 6) Fulfilled → Delivery Note
    if order.is_fulfilled():
        existing_dn = await erp.find_one("Delivery Note", [["shopify_order_id", "=", shopify_order_id]])
        if not existing_dn:
            dn = await erp.create(
                "Delivery Note",
                build_delivery_note_payload(order, customer_doc, sales_order, doc_items),
            )
            result.delivery_note = dn["name"]
            events.log_event(
                "success",
                f"Created Delivery Note {dn['name']} for fulfilled Shopify Order {order.name or shopify_order_id}.",
                {
                    "webhookId": webhook_id,
                    "shopifyOrderId": shopify_order_id,
                    "erpnextSOName": sales_order,
                    "erpnextDNName": dn["name"],
                },
            )
        else:
            result.delivery_note = existing_dn

    logger.info(f"[Orders] Shopify order {shopify_order_id} → {sales_order}")
    return result
