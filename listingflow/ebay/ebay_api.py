# listingflow/ebay/ebay_api.py
# =============================
# eBay Sell APIs (ASYNC)
# - business policies (account API)
# - merchant location, inventory item + offer draft (inventory API)
# =============================

import asyncio
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from listingflow.config import (
    EBAY_LOCATION_KEY,
    get_ebay_api_root,
    get_ebay_marketplace,
)
from listingflow.ebay.auth import EbayApiError, EbayTokenProvider

logger = logging.getLogger("uvicorn.error")

POLICY_TYPES = ("fulfillment", "payment", "return")
MAX_DESCRIPTION = 500000
CONTENT_LANGUAGE = "de-DE"

# our listing status → eBay condition enum
CONDITIONS = {
    "new": "NEW",
    "used": "USED_EXCELLENT",
    "refurbished": "SELLER_REFURBISHED",
}


class EbayDraftRequest(BaseModel):
    """Product fields the dashboard sends to create an eBay draft."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    code: str = Field(min_length=1)  # SKU
    name: str = ""
    price: float = Field(gt=0)
    description: str = ""
    brand: Optional[str] = None
    quantity: int = 0
    ebay_category_id: str = Field(alias="ebayCategoryId", min_length=1)
    image: str = Field(min_length=1)
    listing_status: Optional[str] = Field(default=None, alias="listingStatus")

    @field_validator("image")
    @classmethod
    def https_only(cls, value: str) -> str:
        if not value.startswith("https://"):
            raise ValueError("Invalid image URL. Only HTTPS URLs are supported.")
        return value

    @field_validator("ebay_category_id", mode="before")
    @classmethod
    def category_as_str(cls, value):
        return str(value) if isinstance(value, int) else value


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors:
        return errors[0].get("message") or "Unknown error"
    return "Unknown error"


class EbayApi:
    def __init__(
        self,
        tokens: EbayTokenProvider,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 60.0,
    ):
        self.tokens = tokens
        self._transport = transport
        self._timeout = timeout

    def _client(self, token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=get_ebay_api_root(),
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            timeout=self._timeout,
            transport=self._transport,
        )

    # -----------------------------
    # Inventory API: merchant location
    # -----------------------------
    async def ensure_merchant_location(self, token: str) -> str:
        """Return our location key, creating a default location if it is missing."""
        endpoint = "/sell/inventory/v1/location"
        async with self._client(token) as c:
            try:
                r = await c.get(f"{endpoint}/{EBAY_LOCATION_KEY}")
                if r.status_code == 200:
                    return r.json().get("merchantLocationKey") or EBAY_LOCATION_KEY
            except httpx.RequestError as e:
                logger.warning(f"[eBay] Location lookup failed, will try to create it: {e}")

            logger.info("[eBay] Merchant location not found, creating a new one...")
            r = await c.post(
                f"{endpoint}/{EBAY_LOCATION_KEY}",
                json={
                    "location": {
                        "address": {
                            "country": "DE",
                            "addressLine1": "Default Street 1",
                            "city": "Berlin",
                            "postalCode": "10115",
                        },
                    },
                    "name": "Main Warehouse",
                    "merchantLocationStatus": "ENABLED",
                    "locationTypes": ["STORE"],
                },
            )
        if r.is_error:
            logger.error(f"[eBay] Failed to create merchant location: {r.text}")
            raise EbayApiError("Failed to create default eBay merchant location.")
        return EBAY_LOCATION_KEY

    # -----------------------------
    # Account API
    # -----------------------------
    async def _policy_id(self, token: str, policy_type: str, marketplace_id: str) -> str:
        async with self._client(token) as c:
            r = await c.get(
                f"/sell/account/v1/{policy_type}_policy",
                params={"marketplace_id": marketplace_id},
            )
        if r.is_error:
            raise EbayApiError(f"Failed to fetch {policy_type} policies.")

        policies = r.json().get(f"{policy_type}Policies") or []
        chosen = next(
            (p for p in policies if p.get("name") == "Default" or p.get("isDefault")),
            policies[0] if policies else None,
        )
        if not chosen:
            raise EbayApiError(
                f"No active {policy_type} policy found for marketplace {marketplace_id}. "
                "Please set a default policy in your eBay account."
            )
        return chosen[f"{policy_type}PolicyId"]

    async def get_policies(self, token: str, marketplace_id: str) -> Dict[str, str]:
        ids = await asyncio.gather(
            *[self._policy_id(token, t, marketplace_id) for t in POLICY_TYPES]
        )
        return {f"{t}PolicyId": pid for t, pid in zip(POLICY_TYPES, ids)}

    # -----------------------------
    # Inventory API
    # -----------------------------
    async def upsert_inventory_item(self, token: str, product: EbayDraftRequest):
        sku = product.code
        image_urls = [u for u in [product.image] if u and u.startswith("https://")]
        body: Dict[str, Any] = {
            "product": {
                "title": product.name,
                "description": product.description[:MAX_DESCRIPTION],
                "brand": product.brand or "Unbranded",
            },
            "condition": CONDITIONS.get(product.listing_status or "", "NEW"),
            "availability": {
                "shipToLocationAvailability": {
                    "quantity": product.quantity if product.quantity > 0 else 1,
                },
            },
        }
        if image_urls:
            body["product"]["imageUrls"] = image_urls

        async with self._client(token) as c:
            r = await c.put(
                f"/sell/inventory/v1/inventory_item/{quote(sku, safe='')}",
                json=body,
                headers={"Content-Language": CONTENT_LANGUAGE},
            )
        if r.is_error:
            raise EbayApiError(f"Failed to create/update inventory item for SKU {sku}: {_error_message(r)}")
        logger.info(f"[eBay] Upserted inventory item for SKU {sku}")

    async def create_or_update_offer_draft(
        self,
        token: str,
        product: EbayDraftRequest,
        policies: Dict[str, str],
        location_key: str,
    ) -> Dict[str, Any]:
        sku = product.code
        marketplace_id = get_ebay_marketplace()

        async with self._client(token) as c:
            # 1) reuse an existing DRAFT offer for this SKU
            draft_offer_id = None
            r = await c.get("/sell/inventory/v1/offer", params={"sku": sku, "marketplace_id": marketplace_id})
            if r.status_code == 200:
                draft = next((o for o in r.json().get("offers") or [] if o.get("status") == "DRAFT"), None)
                if draft:
                    draft_offer_id = draft.get("offerId")

            body = {
                "sku": sku,
                "marketplaceId": marketplace_id,
                "format": "FIXED_PRICE",
                "availableQuantity": product.quantity if product.quantity > 0 else 1,
                "categoryId": product.ebay_category_id,
                "listingPolicies": policies,
                "pricingSummary": {
                    "price": {"value": f"{product.price:.2f}", "currency": "EUR"},
                },
                "merchantLocationKey": location_key,
                "listingDescription": product.description,
            }

            # 2) update keeps the offer id; create returns a new one
            if draft_offer_id:
                r = await c.put(
                    f"/sell/inventory/v1/offer/{draft_offer_id}",
                    json=body,
                    headers={"Content-Language": CONTENT_LANGUAGE},
                )
            else:
                r = await c.post(
                    "/sell/inventory/v1/offer",
                    json=body,
                    headers={"Content-Language": CONTENT_LANGUAGE},
                )

        if r.is_error:
            raise EbayApiError(f"Failed to process offer for SKU {sku}: {_error_message(r)}")

        data = r.json() if r.content else {}
        offer_id = data.get("offerId") or draft_offer_id
        logger.info(f"[eBay] {'Updated' if draft_offer_id else 'Created'} offer draft {offer_id} for SKU {sku}")
        return {**data, "offerId": offer_id, "status": "DRAFT"}

    # -----------------------------
    # Full flow
    # -----------------------------
    async def create_draft(self, product: EbayDraftRequest) -> Dict[str, Any]:
        token = await self.tokens.get_access_token()
        location_key, policies = await asyncio.gather(
            self.ensure_merchant_location(token),
            self.get_policies(token, get_ebay_marketplace()),
        )
        await self.upsert_inventory_item(token, product)
        offer = await self.create_or_update_offer_draft(token, product, policies, location_key)
        return {
            "offerId": offer.get("offerId"),
            "status": offer.get("status") or "DRAFT",
            "warnings": offer.get("warnings"),
        }
