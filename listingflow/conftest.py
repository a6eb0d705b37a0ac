import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from listingflow.dependencies import get_erp_client, get_event_log
from listingflow.events.event_log import EventLog
from listingflow.main_app import app
from listingflow.shopify.hmac_verify import compute_shopify_hmac

WEBHOOK_SECRET = "test-shared-secret"

PREFIXES = {
    "Customer": "CUST",
    "Address": "ADDR",
    "Item": None,  # Items are named by item_code
    "Sales Order": "SO",
    "Sales Invoice": "SINV",
    "Delivery Note": "DN",
}


class FakeErp:
    """In-memory stand-in for ErpClient: equality filters only."""

    def __init__(self):
        self.docs = {}
        self.calls = []
        self.fail_on = {}  # doctype -> exception raised by create()

    def _matches(self, doc, filters):
        for field, op, value in filters:
            assert op == "=", f"FakeErp only supports '=', got {op}"
            if doc.get(field) != value:
                return False
        return True

    async def find_one(self, doctype, filters):
        self.calls.append(("find_one", doctype, filters))
        await asyncio.sleep(0)  # let other tasks interleave like real I/O
        if isinstance(filters, dict):
            filters = [[k, "=", v] for k, v in filters.items()]
        for doc in self.docs.get(doctype, []):
            if self._matches(doc, filters):
                return doc["name"]
        return None

    async def create(self, doctype, fields):
        self.calls.append(("create", doctype, fields))
        await asyncio.sleep(0)
        if doctype in self.fail_on:
            raise self.fail_on[doctype]
        rows = self.docs.setdefault(doctype, [])
        prefix = PREFIXES.get(doctype, "DOC")
        name = fields["item_code"] if prefix is None else f"{prefix}-{len(rows) + 1:04d}"
        doc = {k: v for k, v in fields.items() if v is not None}
        doc["name"] = name
        if doctype == "Sales Order":
            doc["items"] = [
                {**it, "name": f"{name}-row-{i + 1}"} for i, it in enumerate(fields.get("items", []))
            ]
        rows.append(doc)
        return doc

    async def update(self, doctype, name, fields):
        self.calls.append(("update", doctype, name, fields))
        for doc in self.docs.get(doctype, []):
            if doc["name"] == name:
                doc.update({k: v for k, v in fields.items() if v is not None})
                return doc
        raise KeyError(name)

    def created(self, doctype):
        return [c for c in self.calls if c[0] == "create" and c[1] == doctype]


@pytest.fixture
def fake_erp():
    return FakeErp()


@pytest.fixture
def events(tmp_path):
    return EventLog(tmp_path / "webhook-events.json")


@pytest.fixture
def client(fake_erp, events, monkeypatch):
    monkeypatch.setenv("SHOPIFY_WEBHOOK_SECRET", WEBHOOK_SECRET)
    app.dependency_overrides[get_erp_client] = lambda: fake_erp
    app.dependency_overrides[get_event_log] = lambda: events
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def signed_post(client):
    """POST a JSON payload with a valid Shopify signature."""

    def _post(path, payload, topic="orders/create", secret=WEBHOOK_SECRET, raw=None):
        body = raw if raw is not None else json.dumps(payload).encode()
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Hmac-Sha256": compute_shopify_hmac(body, secret),
            "X-Shopify-Topic": topic,
            "X-Shopify-Shop-Domain": "test-shop.myshopify.com",
        }
        return client.post(path, content=body, headers=headers)

    return _post
