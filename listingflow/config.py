# =============================
# Global Config
# =============================

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = BASE_DIR / "data"

DEFAULT_EVENT_LOG_FILE = DATA_DIR / "webhook-events.json"
DEFAULT_EBAY_CATEGORIES_FILE = DATA_DIR / "ebay-categories.json"
MAX_LOG_ENTRIES = 200

# ERPNext document defaults
DEFAULT_CURRENCY = "EUR"
DEFAULT_CUSTOMER_GROUP = "All Customer Groups"
DEFAULT_TERRITORY = "All Territories"
DEFAULT_ITEM_GROUP = "All Item Groups"
PRODUCT_ITEM_GROUP = "Products"
DEFAULT_UOM = "Nos"
ADDRESS_TITLE_MAX = 139
DELIVERY_LEAD_DAYS = 3
SHOPIFY_ITEM_PREFIX = "SHOPIFY_"

# eBay
EBAY_PROD_API = "https://api.ebay.com"
EBAY_SANDBOX_API = "https://api.sandbox.ebay.com"
EBAY_DEFAULT_MARKETPLACE = "EBAY_DE"
EBAY_LOCATION_KEY = "LISTINGFLOW_MAIN_LOCATION"
EBAY_TOKEN_SKEW_SECS = 5 * 60


class ConfigError(RuntimeError):
    """A required setting is missing for the current request."""


# -----------------------------
# Call-time getters
# -----------------------------
def _env(*names: str) -> str | None:
    for name in names:
        val = os.getenv(name)
        if val:
            return val
    return None


def get_webhook_secret() -> str | None:
    return _env("SHOPIFY_WEBHOOK_SECRET")


def get_erp_settings() -> tuple[str, str, str]:
    """
    Return (base_url, api_key, api_secret).
    Raises ConfigError naming every missing variable.
    """
    url = _env("ERP_URL", "ERPNEXT_BASE_URL")
    key = _env("ERP_API_KEY", "ERPNEXT_API_KEY")
    secret = _env("ERP_API_SECRET", "ERPNEXT_API_SECRET")

    missing = [
        label for label, val in (
            ("ERP_URL", url), ("ERP_API_KEY", key), ("ERP_API_SECRET", secret)
        ) if not val
    ]
    if missing:
        raise ConfigError(f"ERPNext credentials missing: {', '.join(missing)}")
    return url.rstrip("/"), key, secret


def get_event_log_file() -> Path:
    return Path(_env("EVENT_LOG_FILE") or DEFAULT_EVENT_LOG_FILE)


def get_ebay_categories_file() -> Path:
    return Path(_env("EBAY_CATEGORIES_FILE") or DEFAULT_EBAY_CATEGORIES_FILE)


def get_ebay_api_root() -> str:
    return EBAY_SANDBOX_API if (os.getenv("EBAY_ENV") or "").upper() == "SANDBOX" else EBAY_PROD_API


def get_ebay_marketplace() -> str:
    return _env("EBAY_MARKETPLACE_ID") or EBAY_DEFAULT_MARKETPLACE


def get_ebay_credentials() -> tuple[str, str, str]:
    client_id = _env("EBAY_CLIENT_ID")
    client_secret = _env("EBAY_CLIENT_SECRET")
    refresh_token = _env("EBAY_REFRESH_TOKEN")
    if not (client_id and client_secret and refresh_token):
        raise ConfigError("Missing required eBay environment variables for authentication.")
    return client_id, client_secret, refresh_token


def get_shopify_stores_raw() -> str | None:
    return _env("SHOPIFY_STORES")
