# listingflow/ebay_routes.py
# =============================
# eBay draft listing + category lookup endpoints
# =============================

import logging

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from listingflow.config import ConfigError
from listingflow.dependencies import get_ebay_api
from listingflow.ebay.auth import EbayApiError
from listingflow.ebay.categories import find_category_path, load_categories, suggest_categories
from listingflow.ebay.ebay_api import EbayApi, EbayDraftRequest

logger = logging.getLogger("uvicorn.error")
ebay_router = APIRouter(prefix="/api/ebay")

MISSING_FIELDS = "Missing required fields: SKU, price, categoryId, and image are required."


# -----------------------------
# ✅ Create / update an offer draft
# -----------------------------
@ebay_router.post("/create-draft")
async def create_draft(request: Request, ebay: EbayApi = Depends(get_ebay_api)):
    try:
        product = EbayDraftRequest.model_validate(await request.json())
    except ValueError as e:
        # pydantic.ValidationError and JSONDecodeError are both ValueErrors
        if isinstance(e, ValidationError) and any(
            "HTTPS" in str(err.get("msg", "")) for err in e.errors()
        ):
            return JSONResponse({"error": "Invalid image URL. Only HTTPS URLs are supported."}, status_code=400)
        return JSONResponse({"error": MISSING_FIELDS}, status_code=400)

    try:
        return await ebay.create_draft(product)
    except (ConfigError, EbayApiError, httpx.HTTPError) as e:
        logger.error(f"[eBay] Draft creation failed for {product.code}: {e}")
        return JSONResponse({"error": str(e) or "Failed to create eBay draft"}, status_code=500)


@ebay_router.post("/drafts")
async def deprecated_drafts():
    return JSONResponse(
        {"error": "This endpoint is deprecated. Please use /api/ebay/create-draft instead."},
        status_code=410,
    )


# -----------------------------
# ✅ Category suggestions / path
# -----------------------------
@ebay_router.get("/category/suggest")
async def category_suggest(q: str = ""):
    q = q.strip()
    if not q:
        return {"suggestions": []}
    return {"suggestions": suggest_categories(q, load_categories())}


@ebay_router.get("/category/path")
async def category_path(id: str = ""):
    if not id:
        return JSONResponse({"error": "Category ID is required"}, status_code=400)
    path = find_category_path(id, load_categories())
    if path is None:
        return JSONResponse({"error": "Category not found"}, status_code=404)
    return {"path": path}
