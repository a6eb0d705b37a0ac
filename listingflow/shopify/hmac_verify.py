# listingflow/shopify/hmac_verify.py
# ────────────────────────────────────────────
# Shopify webhook signature check
# ────────────────────────────────────────────

import base64
import hashlib
import hmac


def compute_shopify_hmac(raw_body: bytes, secret: str) -> str:
    """Base64 HMAC-SHA256 of the raw body, as sent in X-Shopify-Hmac-Sha256."""
    digest = hmac.new(secret.encode(), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_shopify_hmac(raw_body: bytes, secret: str | None, hmac_header: str | None) -> bool:
    """
    Shopify signs its webhooks with a base64 SHA256 HMAC of the exact
    request bytes. A missing secret or header is a failed check.
    """
    if not secret or not hmac_header:
        return False
    expected = compute_shopify_hmac(raw_body, secret)
    return hmac.compare_digest(expected.encode(), hmac_header.encode())
