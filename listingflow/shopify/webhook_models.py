# listingflow/shopify/webhook_models.py
# =============================
# Typed Shopify webhook payloads
# Only the fields the ERP sync reads are declared; the rest are ignored.
# =============================

import json
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from listingflow.config import SHOPIFY_ITEM_PREFIX


class PayloadError(ValueError):
    """Webhook body is not valid JSON or does not match the expected shape."""


class _ShopifyModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


def _price_as_str(value):
    # Shopify sends prices as strings; accept bare numbers from other senders
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


# -----------------------------
# Orders
# -----------------------------
class ShopifyCustomer(_ShopifyModel):
    id: Optional[int] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class ShopifyAddress(_ShopifyModel):
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    zip: Optional[str] = None
    province: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None


class ShopifyLineItem(_ShopifyModel):
    id: Optional[int] = None
    sku: Optional[str] = None
    title: str
    quantity: int
    price: Optional[str] = None  # decimal string per Shopify schema
    variant_id: Optional[int] = None
    product_id: Optional[int] = None

    @field_validator("price", mode="before")
    @classmethod
    def coerce_price(cls, value):
        return _price_as_str(value)

    @property
    def item_code(self) -> str:
        """SKU when present, otherwise a stable code built from Shopify ids."""
        if self.sku and self.sku.strip():
            return self.sku.strip()
        fallback = self.variant_id or self.product_id or self.id
        return f"{SHOPIFY_ITEM_PREFIX}{fallback}"


class ShopifyOrderWebhook(_ShopifyModel):
    id: int
    name: Optional[str] = None  # e.g. "#1024"
    email: Optional[str] = None
    phone: Optional[str] = None
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    currency: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    customer: Optional[ShopifyCustomer] = None
    billing_address: Optional[ShopifyAddress] = None
    shipping_address: Optional[ShopifyAddress] = None
    line_items: List[ShopifyLineItem]

    @property
    def order_id(self) -> str:
        return str(self.id)

    @property
    def customer_email(self) -> Optional[str]:
        return (self.customer and self.customer.email) or self.email or None

    @property
    def customer_phone(self) -> Optional[str]:
        return (self.customer and self.customer.phone) or self.phone or None

    def display_name(self) -> str:
        """Customer first/last name, else billing name, else 'Guest'."""
        c = self.customer
        if c and (c.first_name or c.last_name):
            return f"{c.first_name or ''} {c.last_name or ''}".strip() or "Guest"
        if self.billing_address and self.billing_address.name:
            return self.billing_address.name
        return "Guest"

    def is_paid(self) -> bool:
        return (self.financial_status or "").lower() == "paid"

    def is_fulfilled(self) -> bool:
        return (self.fulfillment_status or "").lower() == "fulfilled"


# -----------------------------
# Products
# -----------------------------
class ShopifyVariant(_ShopifyModel):
    id: Optional[int] = None
    sku: Optional[str] = None
    price: Optional[str] = None
    barcode: Optional[str] = None  # EAN/UPC
    inventory_quantity: Optional[int] = None

    @field_validator("price", mode="before")
    @classmethod
    def coerce_price(cls, value):
        return _price_as_str(value)


class ShopifyProductWebhook(_ShopifyModel):
    id: int
    title: str
    body_html: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    status: Optional[str] = None  # active | draft | archived
    tags: Optional[str] = None
    variants: List[ShopifyVariant] = []

    @property
    def first_variant(self) -> Optional[ShopifyVariant]:
        # multi-variant products are not split into several ERP items
        return self.variants[0] if self.variants else None


# -----------------------------
# Boundary parsing
# -----------------------------
def _parse(model, raw_body: bytes):
    try:
        data = json.loads(raw_body)
    except ValueError as e:
        raise PayloadError(f"Malformed JSON body: {e}") from e
    if not isinstance(data, dict):
        raise PayloadError("Webhook body must be a JSON object")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise PayloadError(f"Unexpected {model.__name__} payload: {e.error_count()} invalid field(s): {_summarize(e)}") from e


def _summarize(err: ValidationError) -> str:
    parts = []
    for item in err.errors()[:5]:
        loc = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{loc} ({item.get('msg')})")
    return "; ".join(parts)


def parse_order_event(raw_body: bytes) -> ShopifyOrderWebhook:
    return _parse(ShopifyOrderWebhook, raw_body)


def parse_product_event(raw_body: bytes) -> ShopifyProductWebhook:
    return _parse(ShopifyProductWebhook, raw_body)
