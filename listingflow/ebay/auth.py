# listingflow/ebay/auth.py
# =============================
# eBay OAuth access token (refresh-token grant) with an in-memory cache
# =============================

import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from listingflow.config import EBAY_TOKEN_SKEW_SECS, get_ebay_api_root, get_ebay_credentials

logger = logging.getLogger("uvicorn.error")

EBAY_SCOPES = " ".join([
    "https://api.ebay.com/oauth/api_scope/sell.inventory",
    "https://api.ebay.com/oauth/api_scope/sell.account",
])


class EbayApiError(Exception):
    """eBay rejected a request."""


@dataclass
class CachedToken:
    access_token: str
    expires_at: float  # time.monotonic() deadline

    def valid(self) -> bool:
        return time.monotonic() < self.expires_at


class EbayTokenProvider:
    """
    Hands out a valid access token, refreshing it when it is about to expire.
    Concurrent callers wait on one refresh instead of each starting their own.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 30.0):
        self._transport = transport
        self._timeout = timeout
        self._cached: Optional[CachedToken] = None
        self._lock = asyncio.Lock()

    def invalidate(self):
        self._cached = None

    async def get_access_token(self) -> str:
        cached = self._cached
        if cached and cached.valid():
            return cached.access_token

        async with self._lock:
            # another caller may have refreshed while we waited
            cached = self._cached
            if cached and cached.valid():
                return cached.access_token
            self._cached = await self._refresh()
            return self._cached.access_token

    async def _refresh(self) -> CachedToken:
        client_id, client_secret, refresh_token = get_ebay_credentials()
        logger.info("[eBay] Access token expired or not found, refreshing...")

        credentials = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.post(
                f"{get_ebay_api_root()}/identity/v1/oauth2/token",
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Authorization": f"Basic {credentials}",
                },
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "scope": EBAY_SCOPES,
                },
            )

        if resp.is_error:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            logger.error(f"[eBay] Failed to refresh access token: {body}")
            if resp.status_code == 401:
                raise EbayApiError("eBay refresh token is invalid or expired. Please re-authenticate.")
            reason = body.get("error_description") if isinstance(body, dict) else None
            raise EbayApiError(f"Failed to refresh eBay token: {reason or resp.reason_phrase}")

        data = resp.json()
        expires_in = int(data.get("expires_in") or 3600)
        return CachedToken(
            access_token=data["access_token"],
            expires_at=time.monotonic() + expires_in - EBAY_TOKEN_SKEW_SECS,
        )
