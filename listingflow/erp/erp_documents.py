# =============================
# Shopify → ERPNext document payloads
# Pure builders for Customer, Address, Item, Sales Order,
# Sales Invoice and Delivery Note bodies
# =============================

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from listingflow.config import (
    ADDRESS_TITLE_MAX,
    DEFAULT_CURRENCY,
    DEFAULT_CUSTOMER_GROUP,
    DEFAULT_ITEM_GROUP,
    DEFAULT_TERRITORY,
    DEFAULT_UOM,
    DELIVERY_LEAD_DAYS,
    PRODUCT_ITEM_GROUP,
)
from listingflow.shopify.webhook_models import (
    ShopifyAddress,
    ShopifyLineItem,
    ShopifyOrderWebhook,
    ShopifyProductWebhook,
    ShopifyVariant,
)
from listingflow.utils.prices import parse_rate


# ======================================
# ✅ Customer
# ======================================
def build_customer_payload(order: ShopifyOrderWebhook) -> dict:
    return {
        "customer_name": order.display_name(),
        "customer_type": "Individual",
        "customer_group": DEFAULT_CUSTOMER_GROUP,
        "territory": DEFAULT_TERRITORY,
        "email_id": order.customer_email,
        "mobile_no": order.customer_phone,
        "shopify_customer_id": str(order.customer.id) if order.customer and order.customer.id else None,
    }


# ======================================
# ✅ Address
# ======================================
def address_title(kind: str, customer_name: str, addr: ShopifyAddress) -> str:
    """Lookup key for an address; ERPNext limits the title length."""
    return f"{kind} - {customer_name} ({addr.address1 or ''})"[:ADDRESS_TITLE_MAX]


def build_address_payload(
    kind: str,
    customer_name: str,
    customer_doc: str,
    addr: ShopifyAddress,
    email: Optional[str],
) -> dict:
    return {
        "address_title": address_title(kind, customer_name, addr),
        "address_type": kind,
        "address_line1": addr.address1 or "-",
        "address_line2": addr.address2,
        "city": addr.city or "-",
        "state": addr.province,
        "pincode": addr.zip,
        "country": addr.country,
        "phone": addr.phone,
        "email_id": email,
        "links": [{"link_doctype": "Customer", "link_name": customer_doc}],
    }


# ======================================
# ✅ Items
# ======================================
def build_minimal_item_payload(item_code: str, item_name: str) -> dict:
    """Placeholder Item so a Sales Order line can reference it."""
    return {
        "item_code": item_code,
        "item_name": item_name,
        "item_group": DEFAULT_ITEM_GROUP,
        "stock_uom": DEFAULT_UOM,
        "is_sales_item": 1,
    }


def build_product_item_payload(product: ShopifyProductWebhook, variant: ShopifyVariant) -> dict:
    return {
        "item_code": variant.sku,
        "item_name": product.title,
        "description": product.body_html,
        "standard_rate": parse_rate(variant.price),
        "stock_uom": DEFAULT_UOM,
        "item_group": PRODUCT_ITEM_GROUP,
        "brand": product.vendor,
        "barcode": variant.barcode,
    }


def build_order_line(li: ShopifyLineItem) -> dict:
    return {
        "item_code": li.item_code,
        "item_name": li.title,
        "qty": li.quantity,
        "rate": parse_rate(li.price),
    }


# ======================================
# ✅ Sales Order
# ======================================
def transaction_date_for(created_at: Optional[str]) -> str:
    """Date part of the Shopify timestamp, today (UTC) if absent."""
    if created_at and len(created_at) >= 10:
        return created_at[:10]
    return datetime.now(timezone.utc).date().isoformat()


def delivery_date_for(transaction_date: str) -> str:
    try:
        start = date.fromisoformat(transaction_date)
    except ValueError:
        start = datetime.now(timezone.utc).date()
    return (start + timedelta(days=DELIVERY_LEAD_DAYS)).isoformat()


def build_sales_order_payload(
    order: ShopifyOrderWebhook,
    customer_doc: str,
    items: List[dict],
    billing_address: Optional[str] = None,
    shipping_address: Optional[str] = None,
) -> dict:
    transaction_date = transaction_date_for(order.created_at)
    return {
        "customer": customer_doc,
        "currency": order.currency or DEFAULT_CURRENCY,
        "transaction_date": transaction_date,
        "delivery_date": delivery_date_for(transaction_date),
        "po_no": order.name,
        "shopify_order_id": order.order_id,
        "customer_address": billing_address,
        "shipping_address_name": shipping_address,
        "items": items,
    }


# ======================================
# ✅ Sales Invoice / Delivery Note
# ======================================
def linked_items(items: List[dict], sales_order: str, so_items: List[Dict[str, Any]]) -> List[dict]:
    """Copy order lines and point each one back at its Sales Order row."""
    row_by_code = {row.get("item_code"): row.get("name") for row in so_items or []}
    return [
        {**it, "against_sales_order": sales_order, "so_detail": row_by_code.get(it["item_code"])}
        for it in items
    ]


def build_sales_invoice_payload(
    order: ShopifyOrderWebhook, customer_doc: str, sales_order: str, items: List[dict]
) -> dict:
    return {
        "customer": customer_doc,
        "currency": order.currency or DEFAULT_CURRENCY,
        "against_sales_order": sales_order,
        "shopify_order_id": order.order_id,
        "items": items,
    }


def build_delivery_note_payload(
    order: ShopifyOrderWebhook, customer_doc: str, sales_order: str, items: List[dict]
) -> dict:
    return {
        "customer": customer_doc,
        "currency": order.currency or DEFAULT_CURRENCY,
        "against_sales_order": sales_order,
        "shopify_order_id": order.order_id,
        "items": items,
    }
