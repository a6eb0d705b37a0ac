import asyncio

import pytest

from listingflow.erp.erpnext_client import ErpRequestError
from listingflow.shopify.webhook_models import ShopifyOrderWebhook
from listingflow.sync.order_sync import ensure_customer, sync_order
from listingflow.sync.sync_core import KeyedLock


def make_order(**overrides):
    data = {
        "id": 4501,
        "name": "#1002",
        "email": "jane@example.com",
        "currency": "EUR",
        "created_at": "2024-05-10T09:30:00+02:00",
        "financial_status": "pending",
        "customer": {"id": 77, "first_name": "Jane", "last_name": "Doe", "email": "jane@example.com"},
        "billing_address": {"name": "Jane Doe", "address1": "Main St 1", "city": "Berlin", "zip": "10115", "country": "Germany"},
        "shipping_address": {"name": "Jane Doe", "address1": "Side St 2", "city": "Berlin", "zip": "10117", "country": "Germany"},
        "line_items": [
            {"id": 1, "sku": "MUG-1", "title": "Mug", "quantity": 2, "price": "12.50"},
            {"id": 2, "variant_id": 900, "sku": "", "title": "Sticker", "quantity": 1, "price": "1.00"},
        ],
    }
    data.update(overrides)
    return ShopifyOrderWebhook.model_validate(data)


def run(coro):
    return asyncio.run(coro)


def test_creates_everything_for_new_order(fake_erp, events):
    res = run(sync_order(fake_erp, events, make_order(), "wh_1", locks=KeyedLock()))

    assert res.created is True
    assert res.sales_order == "SO-0001"
    assert res.customer == "CUST-0001"
    assert res.items_created == ["MUG-1", "SHOPIFY_900"]
    assert res.sales_invoice is None
    assert res.delivery_note is None

    so = fake_erp.docs["Sales Order"][0]
    assert so["customer"] == "CUST-0001"
    assert so["transaction_date"] == "2024-05-10"
    assert so["delivery_date"] == "2024-05-13"
    assert so["customer_address"] == "ADDR-0001"
    assert so["shipping_address_name"] == "ADDR-0002"
    assert [i["item_code"] for i in so["items"]] == ["MUG-1", "SHOPIFY_900"]

    customer = fake_erp.docs["Customer"][0]
    assert customer["customer_name"] == "Jane Doe"
    assert customer["customer_group"] == "All Customer Groups"
    assert customer["shopify_customer_id"] == "77"

    billing = fake_erp.docs["Address"][0]
    assert billing["address_title"] == "Billing - Jane Doe (Main St 1)"
    assert billing["links"] == [{"link_doctype": "Customer", "link_name": "CUST-0001"}]

    messages = [e["message"] for e in events.read_events()]
    assert any(m.startswith("Created Sales Order SO-0001") for m in messages)
    assert any('Item with SKU "MUG-1" not found' in m for m in messages)


def test_existing_customer_and_items_are_reused(fake_erp, events):
    fake_erp.docs["Customer"] = [{"name": "CUST-0042", "email_id": "jane@example.com"}]
    fake_erp.docs["Item"] = [{"name": "MUG-1", "item_code": "MUG-1"}]

    res = run(sync_order(fake_erp, events, make_order(), "wh_2", locks=KeyedLock()))

    assert res.customer == "CUST-0042"
    assert fake_erp.created("Customer") == []
    assert res.items_created == ["SHOPIFY_900"]


def test_customer_found_by_phone(fake_erp):
    fake_erp.docs["Customer"] = [{"name": "CUST-0009", "mobile_no": "+491701234"}]
    order = make_order(email=None, customer={"phone": "+491701234"})

    assert run(ensure_customer(fake_erp, order)) == "CUST-0009"


def test_guest_order_without_addresses(fake_erp, events):
    order = make_order(customer=None, billing_address=None, shipping_address=None, email=None)

    res = run(sync_order(fake_erp, events, order, "wh_3", locks=KeyedLock()))

    assert fake_erp.docs["Customer"][0]["customer_name"] == "Guest"
    assert "Address" not in fake_erp.docs
    so = fake_erp.docs["Sales Order"][0]
    assert "customer_address" not in so
    assert res.created is True


def test_paid_and_fulfilled_creates_invoice_and_delivery(fake_erp, events):
    order = make_order(financial_status="paid", fulfillment_status="fulfilled")

    res = run(sync_order(fake_erp, events, order, "wh_4", locks=KeyedLock()))

    assert res.sales_invoice == "SINV-0001"
    assert res.delivery_note == "DN-0001"
    dn = fake_erp.docs["Delivery Note"][0]
    assert dn["against_sales_order"] == "SO-0001"
    assert [i["so_detail"] for i in dn["items"]] == ["SO-0001-row-1", "SO-0001-row-2"]


def test_second_delivery_is_a_no_op(fake_erp, events):
    order = make_order(financial_status="paid")
    run(sync_order(fake_erp, events, order, "wh_5", locks=KeyedLock()))
    calls_before = len(fake_erp.created("Sales Order"))

    again = run(sync_order(fake_erp, events, order, "wh_6", locks=KeyedLock()))

    assert again.created is False
    assert again.sales_order == "SO-0001"
    assert "already exists" in again.message
    assert len(fake_erp.created("Sales Order")) == calls_before
    assert len(fake_erp.created("Address")) == 2
    assert len(fake_erp.created("Customer")) == 1
    assert len(fake_erp.created("Sales Invoice")) == 1
    assert events.read_events()[0]["message"] == (
        "Sales Order SO-0001 already exists for Shopify Order #1002. Webhook ignored."
    )


def test_concurrent_duplicates_create_one_order(fake_erp, events):
    order = make_order()
    locks = KeyedLock()

    async def both():
        return await asyncio.gather(
            sync_order(fake_erp, events, order, "wh_a", locks=locks),
            sync_order(fake_erp, events, order, "wh_b", locks=locks),
        )

    first, second = run(both())

    assert len(fake_erp.created("Sales Order")) == 1
    assert {first.created, second.created} == {True, False}
    assert len(locks) == 0


def test_erp_failure_propagates(fake_erp, events):
    fake_erp.fail_on["Sales Order"] = ErpRequestError(417, "Delivery Date is mandatory")

    with pytest.raises(ErpRequestError):
        run(sync_order(fake_erp, events, make_order(), "wh_7", locks=KeyedLock()))
    assert "Sales Order" not in fake_erp.docs
