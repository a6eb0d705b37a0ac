# listingflow/admin_routes.py
# =============================
# Dashboard API Routes
# Event log, ERPNext diagnostics/orders/proxy, Shopify store list
# =============================

import json
import logging
from typing import Any, Optional

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from listingflow.config import ConfigError, get_erp_settings, get_shopify_stores_raw
from listingflow.dependencies import get_erp_client, get_event_log
from listingflow.erp.erpnext_client import ErpClient, ErpRequestError
from listingflow.events.event_log import EventLog

logger = logging.getLogger("uvicorn.error")
admin_router = APIRouter()

NO_STORE = {"Cache-Control": "no-store, max-age=0"}
ORDER_FIELDS = [
    "name",
    "customer",
    "transaction_date",
    "status",
    "delivery_status",
    "grand_total",
    "currency",
]


# -----------------------------
# ✅ Webhook event log
# -----------------------------
@admin_router.get("/api/logs")
async def get_logs(events: EventLog = Depends(get_event_log)):
    try:
        return JSONResponse(events.read_events(), headers=NO_STORE)
    except (OSError, ValueError) as e:
        logger.exception("[Logs] Failed to read log events")
        return JSONResponse({"error": "Failed to retrieve log events.", "details": str(e)}, status_code=500)


# -----------------------------
# ✅ ERPNext connection check
# -----------------------------
@admin_router.get("/api/diag/erpnext")
async def diag_erpnext(erp: ErpClient = Depends(get_erp_client)):
    try:
        user = await erp.get_logged_user()
        base_url, api_key, _ = get_erp_settings()
        return {
            "ok": True,
            "message": "Successfully connected to ERPNext.",
            "user": user,
            "baseUrl": base_url,
            "apiKeyHint": f"{api_key[:4]}...",
        }
    except (ConfigError, ErpRequestError, httpx.HTTPError) as e:
        logger.error(f"[Diag] ERPNext connection failed: {e}")
        return JSONResponse(
            {
                "ok": False,
                "error": getattr(e, "message", None) or str(e),
                "hint": "Check ERP_URL, ERP_API_KEY and ERP_API_SECRET in the server environment (.env).",
            },
            status_code=500,
        )


# -----------------------------
# ✅ Recent Sales Orders
# -----------------------------
@admin_router.get("/api/erpnext/orders")
async def erpnext_orders(erp: ErpClient = Depends(get_erp_client)):
    try:
        rows = await erp.get_list(
            "Sales Order",
            fields=ORDER_FIELDS,
            limit_page_length=50,
            order_by="modified desc",
        )
        return rows if isinstance(rows, list) else []
    except (ConfigError, ErpRequestError, httpx.HTTPError) as e:
        logger.error(f"[Orders] Listing Sales Orders failed: {e}")
        return JSONResponse({"error": str(e) or "An unknown error occurred."}, status_code=500)


# -----------------------------
# ✅ ERPNext proxy for the dashboard
# -----------------------------
class ProxyRequest(BaseModel):
    endpoint: str
    method: str = "GET"
    body: Optional[Any] = None


@admin_router.post("/api/proxy-erpnext")
async def proxy_erpnext(req: ProxyRequest, erp: ErpClient = Depends(get_erp_client)):
    try:
        data = await erp.request(req.method, req.endpoint, req.body)
    except ConfigError as e:
        logger.error(f"[Proxy] {e}")
        return JSONResponse({"error": str(e)}, status_code=500)
    except ErpRequestError as e:
        return JSONResponse({"error": e.message}, status_code=e.status_code)
    except httpx.RequestError as e:
        logger.error(f"[Proxy] ERPNext unreachable: {e}")
        base_url = get_erp_settings()[0]
        return JSONResponse(
            {"error": f"Could not connect to ERPNext server at {base_url}. Please check the URL and network connection."},
            status_code=500,
        )

    if data is None:
        return Response(status_code=204)
    return data


# -----------------------------
# ✅ Configured Shopify stores (names only)
# -----------------------------
@admin_router.get("/api/shopify/stores")
async def shopify_stores():
    raw = get_shopify_stores_raw()
    if not raw:
        logger.warning("[Stores] SHOPIFY_STORES environment variable is not set.")
        return {"stores": []}

    try:
        stores = json.loads(raw)
        if not isinstance(stores, list):
            raise ValueError("SHOPIFY_STORES is not a valid JSON array.")
    except ValueError as e:
        logger.error(f"[Stores] Failed to parse SHOPIFY_STORES: {e}")
        return JSONResponse(
            {"error": "Server configuration error for Shopify stores.", "details": str(e)},
            status_code=500,
        )

    return {"stores": [s.get("name") for s in stores if isinstance(s, dict) and s.get("name")]}
