# listingflow/dependencies.py
# Shared clients live on app.state (built once in the lifespan);
# routes pull them in through these providers.

from fastapi import Request

from listingflow.ebay.ebay_api import EbayApi
from listingflow.erp.erpnext_client import ErpClient
from listingflow.events.event_log import EventLog


def get_erp_client(request: Request) -> ErpClient:
    return request.app.state.erp_client


def get_event_log(request: Request) -> EventLog:
    return request.app.state.event_log


def get_ebay_api(request: Request) -> EbayApi:
    return request.app.state.ebay_api
