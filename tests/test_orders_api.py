"""HTTP tests for /api/v1/orders."""
from decimal import Decimal

from craftmarket.models.user import UserRole
from tests.helpers import auth_headers, order_payload


ORDERS = "/api/v1/orders"


async def _place(client, customer, *lines, **extra):
    response = await client.post(ORDERS, json=order_payload(*lines, **extra), headers=auth_headers(customer))
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateOrderEndpoint:
    async def test_create_order(self, client, customer, artisan, make_product):
        mask = await make_product(artisan, base_price="100.00")
        vase = await make_product(artisan, base_price="250.00")

        body = await _place(client, customer, (mask, 2), (vase, 1))

        assert Decimal(body["subtotal"]) == Decimal("450")
        assert Decimal(body["total_amount"]) == Decimal("650")
        assert body["status"] == "pending_payment"
        assert body["order_number"].startswith("AC")
        assert len(body["items"]) == 2
        assert body["timeline"][0]["status"] == "pending_payment"

    async def test_missing_product(self, client, customer, artisan, make_product):
        ghost = await make_product(artisan, is_active=False)

        response = await client.post(ORDERS, json=order_payload((ghost, 1)), headers=auth_headers(customer))

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "PRODUCT_NOT_FOUND"
        assert body["product_id"] == str(ghost.id)

    async def test_insufficient_stock(self, client, customer, artisan, make_product):
        mask = await make_product(artisan, quantity=2)

        response = await client.post(ORDERS, json=order_payload((mask, 5)), headers=auth_headers(customer))

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["available_quantity"] == 2
        assert body["requested_quantity"] == 5

    async def test_invalid_quantity(self, client, customer, artisan, make_product):
        mask = await make_product(artisan)

        response = await client.post(ORDERS, json=order_payload((mask, 0)), headers=auth_headers(customer))

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_QUANTITY"

    async def test_empty_items_is_validation_error(self, client, customer):
        payload = order_payload()

        response = await client.post(ORDERS, json=payload, headers=auth_headers(customer))

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"]

    async def test_artisan_cannot_order(self, client, artisan, make_product):
        mask = await make_product(artisan)

        response = await client.post(ORDERS, json=order_payload((mask, 1)), headers=auth_headers(artisan))

        assert response.status_code == 403
        assert response.json()["code"] == "ACCESS_DENIED"

    async def test_requires_token(self, client, artisan, make_product):
        mask = await make_product(artisan)

        response = await client.post(ORDERS, json=order_payload((mask, 1)))

        assert response.status_code in (401, 403)
        assert response.json()["success"] is False

    async def test_rejects_bad_token(self, client, artisan, make_product):
        mask = await make_product(artisan)

        response = await client.post(
            ORDERS, json=order_payload((mask, 1)), headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"


class TestOrderLifecycleEndpoints:
    async def test_get_order_access(self, client, customer, make_user, artisan, make_product):
        stranger = await make_user(UserRole.CUSTOMER)
        mask = await make_product(artisan)
        order = await _place(client, customer, (mask, 1))

        own = await client.get(f"{ORDERS}/{order['id']}", headers=auth_headers(customer))
        seller = await client.get(f"{ORDERS}/{order['id']}", headers=auth_headers(artisan))
        other = await client.get(f"{ORDERS}/{order['id']}", headers=auth_headers(stranger))

        assert own.status_code == 200
        assert seller.status_code == 200
        assert other.status_code == 403
        assert other.json()["code"] == "ACCESS_DENIED"

    async def test_unknown_order(self, client, customer):
        response = await client.get(f"{ORDERS}/{customer.id}", headers=auth_headers(customer))

        assert response.status_code == 404
        assert response.json()["code"] == "ORDER_NOT_FOUND"

    async def test_cancel_shipped_order(self, client, customer, admin, artisan, make_product):
        mask = await make_product(artisan)
        order = await _place(client, customer, (mask, 1))
        shipped = await client.put(
            f"{ORDERS}/{order['id']}/status",
            json={"status": "shipped", "tracking_number": "LK42"},
            headers=auth_headers(admin),
        )
        assert shipped.status_code == 200

        response = await client.put(
            f"{ORDERS}/{order['id']}/cancel", json={"reason": "Too slow"}, headers=auth_headers(customer)
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "CANNOT_CANCEL_ORDER"
        assert body["current_status"] == "shipped"

    async def test_cancel_releases_stock(self, client, db, customer, artisan, make_product):
        mask = await make_product(artisan, quantity=10)
        order = await _place(client, customer, (mask, 4))

        response = await client.put(
            f"{ORDERS}/{order['id']}/cancel", json={}, headers=auth_headers(customer)
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        await db.refresh(mask)
        assert mask.reserved_quantity == 0

    async def test_item_status_via_status_endpoint(self, client, customer, artisan, make_product):
        mask = await make_product(artisan)
        order = await _place(client, customer, (mask, 1))
        item_id = order["items"][0]["id"]

        response = await client.put(
            f"{ORDERS}/{order['id']}/status",
            json={"status": "ready", "item_id": item_id},
            headers=auth_headers(artisan),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["items"][0]["status"] == "ready"
        assert body["status"] == "ready"

    async def test_unknown_item_status_is_validation_error(self, client, customer, artisan, make_product):
        mask = await make_product(artisan)
        order = await _place(client, customer, (mask, 1))

        response = await client.put(
            f"{ORDERS}/{order['id']}/status",
            json={"status": "paid", "item_id": order["items"][0]["id"]},
            headers=auth_headers(artisan),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_payment_completed(self, client, db, customer, artisan, make_product):
        mask = await make_product(artisan, quantity=10)
        order = await _place(client, customer, (mask, 3))

        response = await client.put(
            f"{ORDERS}/{order['id']}/payment",
            json={"payment_status": "completed", "transaction_id": "TXN-9"},
            headers=auth_headers(customer),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "paid"
        await db.refresh(mask)
        assert mask.quantity == 7
        assert mask.reserved_quantity == 0
        assert mask.total_sold == 3

        again = await client.put(
            f"{ORDERS}/{order['id']}/payment",
            json={"payment_status": "completed"},
            headers=auth_headers(customer),
        )
        assert again.status_code == 400
        assert again.json()["code"] == "PAYMENT_ALREADY_COMPLETED"


class TestOrderListEndpoints:
    async def test_customer_and_artisan_lists(self, client, customer, make_user, make_product):
        potter = await make_user(UserRole.ARTISAN)
        carver = await make_user(UserRole.ARTISAN)
        vase = await make_product(potter)
        mask = await make_product(carver)
        await _place(client, customer, (vase, 1))
        await _place(client, customer, (mask, 1))

        mine = await client.get(f"{ORDERS}/my-orders", headers=auth_headers(customer))
        potter_orders = await client.get(f"{ORDERS}/artisan/my-orders", headers=auth_headers(potter))

        assert mine.status_code == 200
        assert mine.json()["total"] == 2
        assert potter_orders.json()["total"] == 1
        assert potter_orders.json()["items"][0]["item_count"] == 1

    async def test_status_filter(self, client, customer, artisan, make_product):
        mask = await make_product(artisan)
        order = await _place(client, customer, (mask, 1))
        await _place(client, customer, (mask, 1))
        await client.put(f"{ORDERS}/{order['id']}/cancel", json={}, headers=auth_headers(customer))

        response = await client.get(
            f"{ORDERS}/my-orders", params={"status": "cancelled"}, headers=auth_headers(customer)
        )

        assert response.json()["total"] == 1
        assert response.json()["items"][0]["id"] == order["id"]

    async def test_statistics(self, client, customer, artisan, make_product):
        mask = await make_product(artisan, base_price="1000.00")
        await _place(client, customer, (mask, 1))

        response = await client.get(f"{ORDERS}/statistics", headers=auth_headers(customer))

        assert response.status_code == 200
        body = response.json()
        assert body["total_orders"] == 1
        assert Decimal(body["total_revenue"]) == Decimal("1200")
        assert body["pending_orders"] == 1
