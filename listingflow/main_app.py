# =============================
# ✅ Import and Load .env at startup
# =============================
import os
from dotenv import load_dotenv
load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), ".env"))

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from listingflow.admin_routes import admin_router
from listingflow.config import get_event_log_file
from listingflow.ebay.auth import EbayTokenProvider
from listingflow.ebay.ebay_api import EbayApi
from listingflow.ebay_routes import ebay_router
from listingflow.erp.erpnext_client import ErpClient
from listingflow.events.event_log import EventLog
from listingflow.webhook_handler import webhook_router

logger = logging.getLogger("uvicorn.error")


# ======================================
# ✅ Shared clients (built once per process)
# ======================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.erp_client = ErpClient()
    app.state.event_log = EventLog(get_event_log_file())
    app.state.ebay_api = EbayApi(EbayTokenProvider())
    logger.info(f"[Startup] Event log at {app.state.event_log.path}")
    yield


# =============================
# ✅ FastAPI App Initialization
# =============================
app = FastAPI(title="ListingFlow", lifespan=lifespan)

app.include_router(webhook_router)
app.include_router(admin_router)
app.include_router(ebay_router)


@app.get("/")
def root():
    return {"status": "ok", "msg": "Shopify ↔ ERPNext sync running"}
