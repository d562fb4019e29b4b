"""Tests for the checkout endpoint."""

from factories import ADDRESS, CUSTOMER, FRESH_MART, RecordingPublisher, make_product, make_seller
from fastapi import status
from fastapi.testclient import TestClient

from marketcart.catalog.store import InMemoryCatalogStore


def fill_cart(client: TestClient, *items: tuple[str, int]) -> None:
    for product_id, quantity in items:
        response = client.post(
            "/cart/items",
            json={"product_id": product_id, "quantity": quantity},
            headers=CUSTOMER,
        )
        assert response.status_code == status.HTTP_200_OK


class TestCheckout:
    def test_one_order_per_seller(self, client: TestClient, notifier: RecordingPublisher) -> None:
        fill_cart(client, ("apples", 2), ("bread", 1), ("milk", 1))

        response = client.post(
            "/checkout",
            json={"delivery_mode": "delivery", "delivery_address": ADDRESS, "customer_note": "Ring twice"},
            headers=CUSTOMER,
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["skipped"] == []
        orders = {o["seller_id"]: o for o in data["orders"]}
        assert set(orders) == {"fresh-mart", "daily-needs"}

        fresh = orders["fresh-mart"]
        assert fresh["status"] == "pending"
        assert fresh["order_number"].startswith("MLM")
        assert len(fresh["order_number"]) == 12
        assert fresh["customer_note"] == "Ring twice"
        assert fresh["pricing"]["subtotal"]["amount"] == 2 * 12000 + 6000
        assert fresh["pricing"]["delivery_fee"]["amount"] == 4000
        assert fresh["pricing"]["total"]["amount"] == 2 * 12000 + 6000 + 4000
        assert fresh["delivery"]["address"]["city"] == "Bengaluru"
        assert fresh["payment"] == {"method": "cod", "status": "pending", "paid_at": None}
        assert [entry["status"] for entry in fresh["timeline"]] == ["pending"]

        assert orders["daily-needs"]["pricing"]["total"]["amount"] == 4500 + 2500
        assert notifier.types() == ["order.created", "order.created"]

        cart = client.get("/cart", headers=CUSTOMER).json()
        assert cart["lines"] == []

    def test_pickup_has_no_delivery_fee(self, client: TestClient) -> None:
        fill_cart(client, ("apples", 1))

        response = client.post("/checkout", json={"delivery_mode": "pickup"}, headers=CUSTOMER)

        order = response.json()["orders"][0]
        assert order["delivery"]["mode"] == "pickup"
        assert order["pricing"]["delivery_fee"]["amount"] == 0
        assert order["pricing"]["total"]["amount"] == 12000

    def test_stock_is_reserved(self, client: TestClient) -> None:
        fill_cart(client, ("bread", 2))
        client.post("/checkout", json={"delivery_mode": "pickup"}, headers=CUSTOMER)

        response = client.post(
            "/cart/items",
            json={"product_id": "bread", "quantity": 1},
            headers=CUSTOMER,
        )
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error_code"] == "INSUFFICIENT_STOCK"

    def test_orders_visible_to_seller(self, client: TestClient) -> None:
        fill_cart(client, ("apples", 1), ("soap", 1))
        client.post("/checkout", json={"delivery_mode": "pickup"}, headers=CUSTOMER)

        response = client.get("/orders/seller", headers=FRESH_MART)

        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["seller_id"] == "fresh-mart"
        assert data["items"][0]["item_count"] == 1


class TestCheckoutSkips:
    def test_unorderable_lines_are_reported(self, client: TestClient, catalog: InMemoryCatalogStore) -> None:
        fill_cart(client, ("apples", 1), ("bread", 2))
        # Bread sells out between carting and checkout
        catalog.add_product(make_product("bread", "daily-needs", price=4500, stock=1))

        response = client.post("/checkout", json={"delivery_mode": "pickup"}, headers=CUSTOMER)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert [o["seller_id"] for o in data["orders"]] == ["fresh-mart"]
        assert data["skipped"] == [
            {
                "product_id": "bread",
                "seller_id": "daily-needs",
                "quantity": 2,
                "reason": "insufficient_stock",
                "available_quantity": 1,
            }
        ]

    def test_nothing_orderable(self, client: TestClient, catalog: InMemoryCatalogStore) -> None:
        fill_cart(client, ("bread", 2))
        catalog.add_seller(make_seller("daily-needs", "Daily Needs", is_active=False, fee=2500))

        response = client.post("/checkout", json={"delivery_mode": "pickup"}, headers=CUSTOMER)

        assert response.status_code == status.HTTP_409_CONFLICT
        data = response.json()
        assert data["error_code"] == "NO_VALID_ITEMS"
        assert data["details"]["skipped"][0]["reason"] == "seller_inactive"
        # Cart is left for the customer to fix
        assert len(client.get("/cart", headers=CUSTOMER).json()["lines"]) == 1


class TestCheckoutValidation:
    def test_empty_cart(self, client: TestClient) -> None:
        response = client.post("/checkout", json={"delivery_mode": "pickup"}, headers=CUSTOMER)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error_code"] == "EMPTY_CART"

    def test_delivery_needs_address(self, client: TestClient) -> None:
        fill_cart(client, ("apples", 1))

        response = client.post("/checkout", json={"delivery_mode": "delivery"}, headers=CUSTOMER)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "INVALID_DELIVERY_ADDRESS"

    def test_blank_address_field(self, client: TestClient) -> None:
        fill_cart(client, ("apples", 1))

        response = client.post(
            "/checkout",
            json={"delivery_mode": "delivery", "delivery_address": {**ADDRESS, "street": "   "}},
            headers=CUSTOMER,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "INVALID_DELIVERY_ADDRESS"

    def test_unknown_delivery_mode(self, client: TestClient) -> None:
        response = client.post("/checkout", json={"delivery_mode": "drone"}, headers=CUSTOMER)

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"
