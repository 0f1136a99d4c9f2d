"""
Integration tests for the admin order endpoints.
"""

import re

import pytest

ORDERS_URL = "/api/admin/orders"


def order_payload(product, quantity=2, **overrides):
    payload = {
        "customer_id": "cust-42",
        "customer_name": "Jane Doe",
        "customer_email": "jane@example.com",
        "items": [
            {
                "product_id": product.id,
                "product_name": product.name,
                "sku": product.sku,
                "quantity": quantity,
                "price": product.price,
            }
        ],
        "total": product.price * quantity,
        "shipping_address": {"street": "1 Main St", "city": "Springfield"},
        "payment_method": "credit_card",
    }
    payload.update(overrides)
    return payload


async def create_order(client, product, **overrides):
    response = await client.post(ORDERS_URL, json=order_payload(product, **overrides))
    assert response.status_code == 201, response.text
    return response.json()["order"]


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_create_order(self, client, product_factory):
        product = await product_factory(price=10.0)

        order = await create_order(client, product)

        assert re.fullmatch(r"ORD-\d{4}-\d{6}", order["order_number"])
        assert order["status"] == "pending"
        assert order["payment_status"] == "pending"
        assert order["fulfillment_status"] == "unfulfilled"
        assert order["subtotal"] == 20.0
        assert order["total_amount"] == 20.0
        assert order["billing_address"] == order["shipping_address"]
        assert order["items"][0]["total"] == 20.0

    @pytest.mark.asyncio
    async def test_missing_required_field(self, client, product_factory):
        product = await product_factory()

        response = await client.post(
            ORDERS_URL, json=order_payload(product, customer_id=None)
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["type"] == "http_error"
        assert error["message"] == "customer_id is required"

    @pytest.mark.asyncio
    async def test_empty_items_rejected(self, client, product_factory):
        product = await product_factory()

        response = await client.post(ORDERS_URL, json=order_payload(product, items=[]))

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "items is required"

    @pytest.mark.asyncio
    async def test_zero_total_is_accepted(self, client, product_factory):
        product = await product_factory()

        order = await create_order(client, product, total=0)

        assert order["total_amount"] == 0

    @pytest.mark.asyncio
    async def test_unknown_status_rejected(self, client, product_factory):
        product = await product_factory()

        response = await client.post(
            ORDERS_URL, json=order_payload(product, status="lost")
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid status: lost"


class TestReadOrders:
    @pytest.mark.asyncio
    async def test_get_single_order(self, client, product_factory):
        product = await product_factory()
        created = await create_order(client, product)

        response = await client.get(ORDERS_URL, params={"orderId": created["id"]})

        assert response.status_code == 200
        assert response.json()["order"]["order_number"] == created["order_number"]

    @pytest.mark.asyncio
    async def test_missing_order_is_404(self, client):
        response = await client.get(ORDERS_URL, params={"orderId": 999})

        assert response.status_code == 404
        assert response.json()["error"]["type"] == "order_not_found"

    @pytest.mark.asyncio
    async def test_list_with_stats(self, client, product_factory):
        product = await product_factory(price=10.0)
        await create_order(client, product, quantity=3, payment_status="paid")
        await create_order(client, product, quantity=1, payment_status="paid")
        await create_order(client, product, quantity=5)

        response = await client.get(ORDERS_URL)

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert len(body["orders"]) == 3
        stats = body["stats"]
        assert stats["total"] == 3
        assert stats["pending"] == 3
        assert stats["totalRevenue"] == 40.0
        assert stats["averageOrderValue"] == 20.0
        assert stats["totalRefunded"] == 0

    @pytest.mark.asyncio
    async def test_list_filters(self, client, product_factory):
        product = await product_factory()
        first = await create_order(client, product)
        await create_order(client, product, status="processing")

        processing = await client.get(ORDERS_URL, params={"status": "processing"})
        everything = await client.get(ORDERS_URL, params={"status": "all"})
        searched = await client.get(
            ORDERS_URL, params={"search": first["order_number"]}
        )

        assert processing.json()["total"] == 1
        assert processing.json()["orders"][0]["status"] == "processing"
        assert everything.json()["total"] == 2
        assert [o["id"] for o in searched.json()["orders"]] == [first["id"]]
        # Stats always cover every order
        assert processing.json()["stats"]["total"] == 2


class TestUpdateOrder:
    @pytest.mark.asyncio
    async def test_delivery_reduces_stock(self, client, product_factory, stock_of):
        product = await product_factory(units=5, stock_quantity=5)
        order = await create_order(client, product)

        response = await client.patch(
            ORDERS_URL,
            params={"orderId": order["id"]},
            json={"status": "delivered", "tracking_number": "TRK-1"},
        )

        assert response.status_code == 200
        updated = response.json()["order"]
        assert updated["status"] == "delivered"
        assert updated["fulfillment_status"] == "fulfilled"
        assert updated["tracking_number"] == "TRK-1"
        assert updated["delivered_at"] is not None
        assert (await stock_of(product.id))["units"] == 3

    @pytest.mark.asyncio
    async def test_plain_field_update(self, client, product_factory):
        product = await product_factory()
        order = await create_order(client, product)

        response = await client.patch(
            ORDERS_URL, params={"orderId": order["id"]}, json={"carrier": "DHL"}
        )

        assert response.status_code == 200
        assert response.json()["order"]["carrier"] == "DHL"
        assert response.json()["order"]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_invalid_transition_is_409(self, client, product_factory):
        product = await product_factory()
        order = await create_order(client, product, status="cancelled")

        response = await client.patch(
            ORDERS_URL, params={"orderId": order["id"]}, json={"status": "delivered"}
        )

        assert response.status_code == 409
        assert response.json()["error"]["type"] == "invalid_status_transition"

    @pytest.mark.asyncio
    async def test_order_id_required(self, client):
        response = await client.patch(ORDERS_URL, json={"status": "shipped"})

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "orderId is required"

    @pytest.mark.asyncio
    async def test_unknown_action(self, client, product_factory):
        product = await product_factory()
        order = await create_order(client, product)

        response = await client.patch(
            ORDERS_URL,
            params={"orderId": order["id"], "action": "refund_everything"},
            json={},
        )

        assert response.status_code == 400


class TestProcessReturnAction:
    @pytest.mark.asyncio
    async def test_process_return(self, client, product_factory, stock_of):
        product = await product_factory(units=5, stock_quantity=5, price=10.0)
        order = await create_order(client, product)
        delivered = await client.patch(
            ORDERS_URL, params={"orderId": order["id"]}, json={"status": "delivered"}
        )
        assert delivered.status_code == 200
        assert (await stock_of(product.id))["units"] == 3

        response = await client.patch(
            ORDERS_URL,
            params={"orderId": order["id"], "action": "process_return"},
            json={
                "return_reason": "Customer changed mind",
                "items": [{"product_id": product.id, "quantity": 1}],
            },
        )

        assert response.status_code == 200, response.text
        body = response.json()
        assert re.fullmatch(r"RET-\d{4}-\d{6}", body["return"]["return_number"])
        assert body["return"]["total_refund_amount"] == 10.0
        assert body["order"]["status"] == "partially_returned"
        assert len(body["inventory_movements"]) == 1
        assert (await stock_of(product.id))["units"] == 4

    @pytest.mark.asyncio
    async def test_invalid_return_body(self, client, product_factory):
        product = await product_factory()
        order = await create_order(client, product, status="delivered")

        response = await client.patch(
            ORDERS_URL,
            params={"orderId": order["id"], "action": "process_return"},
            json={"items": []},
        )

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "data_validation_error"


class TestDeleteOrder:
    @pytest.mark.asyncio
    async def test_delete_order(self, client, product_factory):
        product = await product_factory()
        order = await create_order(client, product)

        deleted = await client.delete(ORDERS_URL, params={"orderId": order["id"]})
        fetched = await client.get(ORDERS_URL, params={"orderId": order["id"]})

        assert deleted.status_code == 200
        assert deleted.json() == {"success": True}
        assert fetched.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_missing_order(self, client):
        response = await client.delete(ORDERS_URL, params={"orderId": 999})

        assert response.status_code == 404


class TestCorrelationId:
    @pytest.mark.asyncio
    async def test_supplied_id_is_echoed_in_errors(self, client):
        response = await client.get(
            ORDERS_URL,
            params={"orderId": 999},
            headers={"X-Correlation-ID": "trace-123"},
        )

        assert response.headers["X-Correlation-ID"] == "trace-123"
        assert response.json()["error"]["correlation_id"] == "trace-123"

    @pytest.mark.asyncio
    async def test_id_is_generated_when_missing(self, client):
        response = await client.get(ORDERS_URL, params={"orderId": 999})

        generated = response.headers["X-Correlation-ID"]
        assert len(generated) == 32
        assert response.json()["error"]["correlation_id"] == generated
