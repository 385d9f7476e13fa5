import threading
from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace

import pytest

import inventory
import orders
from errors import InsufficientStock
from inventory import StockLine
from riders import RiderPolicy
from schemas import Role
from tests.helpers import auth_header, available, line, order_body, variant


def test_order_decrements_stock_and_totals(client, db, customer, make_product):
    pid = make_product()

    resp = client.post("/orders", json=order_body(line(pid, 3, price=100)), headers=auth_header(customer))

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["total_amount"] == 300
    assert data["customer_id"] == customer["id"]
    assert data["customer_name"] == "Casey Customer"
    assert data["items"][0]["product_name"].startswith("Product")
    assert variant(db, pid)["stock"] == 2
    assert available(db, pid) == 2


def test_second_order_over_remaining_stock_is_rejected(client, db, customer, make_product):
    pid = make_product()
    headers = auth_header(customer)
    assert client.post("/orders", json=order_body(line(pid, 3)), headers=headers).status_code == 201

    resp = client.post("/orders", json=order_body(line(pid, 3)), headers=headers)

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert "Not enough stock" in resp.json()["message"]
    assert variant(db, pid)["stock"] == 2
    assert available(db, pid) == 2


def test_multi_item_order_is_all_or_nothing(client, db, customer, make_product):
    plenty = make_product(variants=[{"color": "Red", "size": "M", "price": 10, "stock": 10}])
    scarce = make_product(variants=[{"color": "Red", "size": "M", "price": 20, "stock": 1}])

    resp = client.post(
        "/orders",
        json=order_body(line(plenty, 4), line(scarce, 2)),
        headers=auth_header(customer),
    )

    assert resp.status_code == 400
    assert variant(db, plenty)["stock"] == 10
    assert available(db, plenty) == 10
    assert variant(db, scarce)["stock"] == 1
    assert db["order"].count_documents({}) == 0


def test_repeated_lines_for_one_variant_cannot_oversell(client, db, customer, make_product):
    pid = make_product()

    resp = client.post("/orders", json=order_body(line(pid, 3), line(pid, 3)), headers=auth_header(customer))

    assert resp.status_code == 400
    assert variant(db, pid)["stock"] == 5
    assert available(db, pid) == 5


def test_total_uses_variant_price_not_client_price(client, db, customer, make_product):
    pid = make_product(variants=[
        {"color": "Red", "size": "M", "price": 100, "stock": 5},
        {"color": "Blue", "size": "L", "price": 150, "stock": 5},
    ])

    resp = client.post(
        "/orders",
        json=order_body(line(pid, 1, price=1), line(pid, 2, color="Blue", size="L", price=1)),
        headers=auth_header(customer),
    )

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["total_amount"] == 400
    assert [i["price"] for i in data["items"]] == [100, 150]
    assert variant(db, pid, "Blue", "L")["stock"] == 3
    assert available(db, pid) == 7


def test_unknown_product_is_not_found(client, customer, make_product):
    resp = client.post("/orders", json=order_body(line("64b7f0c2a1b2c3d4e5f60718")), headers=auth_header(customer))
    assert resp.status_code == 404

    resp = client.post("/orders", json=order_body(line("not-an-id")), headers=auth_header(customer))
    assert resp.status_code == 404


def test_unknown_variant_is_invalid(client, db, customer, make_product):
    pid = make_product()

    resp = client.post("/orders", json=order_body(line(pid, 1, color="Green")), headers=auth_header(customer))

    assert resp.status_code == 400
    assert "Variant with color Green" in resp.json()["message"]
    assert variant(db, pid)["stock"] == 5


@pytest.mark.parametrize("body", [
    order_body(),
    order_body(line("64b7f0c2a1b2c3d4e5f60718"), address=""),
    order_body(line("64b7f0c2a1b2c3d4e5f60718"), phone=""),
    order_body(line("64b7f0c2a1b2c3d4e5f60718", 0)),
    order_body(line("64b7f0c2a1b2c3d4e5f60718"), payment_method="BITCOIN"),
])
def test_invalid_requests_are_rejected(client, customer, body):
    resp = client.post("/orders", json=body, headers=auth_header(customer))
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_blank_address_is_rejected(client, db, customer, make_product):
    pid = make_product()
    resp = client.post("/orders", json=order_body(line(pid), address="   "), headers=auth_header(customer))
    assert resp.status_code == 400
    assert variant(db, pid)["stock"] == 5


def test_payment_method_case_is_normalised(client, customer, make_product):
    pid = make_product()
    resp = client.post("/orders", json=order_body(line(pid), payment_method="cod"), headers=auth_header(customer))
    assert resp.status_code == 201
    assert resp.json()["data"]["payment_method"] == "COD"


def test_first_rider_is_assigned_at_checkout(client, customer, make_user, make_product):
    first = make_user(Role.RIDER, name="First Rider")
    make_user(Role.RIDER, name="Second Rider")
    pid = make_product()

    data = client.post("/orders", json=order_body(line(pid)), headers=auth_header(customer)).json()["data"]

    assert data["status"] == "SHIPPED"
    assert data["rider_id"] == first["id"]
    assert data["rider_name"] == "First Rider"


def test_order_stays_paid_without_riders(client, customer, make_product):
    pid = make_product()
    data = client.post("/orders", json=order_body(line(pid)), headers=auth_header(customer)).json()["data"]
    assert data["status"] == "PAID"
    assert data.get("rider_id") is None


def test_only_customers_place_orders(client, admin, make_product):
    pid = make_product()
    assert client.post("/orders", json=order_body(line(pid))).status_code == 401
    resp = client.post("/orders", json=order_body(line(pid)), headers=auth_header(admin))
    assert resp.status_code == 403


def test_concurrent_orders_for_last_unit(db, customer, make_product):
    pid = make_product(variants=[{"color": "Red", "size": "M", "price": 100, "stock": 1}])
    item = SimpleNamespace(product_id=pid, color="Red", size="M", quantity=1, price=100, image_url=None)
    barrier = threading.Barrier(2)

    def attempt():
        barrier.wait()
        try:
            orders.place_order(db, customer, [item], "12 Long Road", "5550199")
            return "ok"
        except InsufficientStock:
            return "insufficient"

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = sorted(pool.map(lambda _: attempt(), range(2)))

    assert results == ["insufficient", "ok"]
    assert variant(db, pid)["stock"] == 0
    assert available(db, pid) == 0
    assert db["order"].count_documents({}) == 1


def test_reservation_gives_back_earlier_lines(db, make_product):
    first = make_product()
    second = make_product(variants=[{"color": "Red", "size": "M", "price": 100, "stock": 1}])

    with pytest.raises(InsufficientStock):
        inventory.reserve(db, [
            StockLine(product_id=first, color="Red", size="M", quantity=2),
            StockLine(product_id=second, color="Red", size="M", quantity=5),
        ])

    assert variant(db, first)["stock"] == 5
    assert available(db, first) == 5
    assert variant(db, second)["stock"] == 1


def test_failed_order_write_releases_stock(db, customer, make_product, monkeypatch):
    pid = make_product()
    item = SimpleNamespace(product_id=pid, color="Red", size="M", quantity=2, price=None, image_url=None)

    def broken_insert(*args, **kwargs):
        raise RuntimeError("write failed")

    monkeypatch.setattr(orders, "create_document", broken_insert)

    with pytest.raises(RuntimeError):
        orders.place_order(db, customer, [item], "12 Long Road", "5550199")
    assert variant(db, pid)["stock"] == 5
    assert available(db, pid) == 5


def test_round_robin_policy_at_checkout(db, customer, make_user, make_product):
    riders = [make_user(Role.RIDER) for _ in range(2)]
    pid = make_product()
    item = SimpleNamespace(product_id=pid, color="Red", size="M", quantity=1, price=None, image_url=None)

    placed = [
        orders.place_order(db, customer, [item], "12 Long Road", "5550199", policy=RiderPolicy.ROUND_ROBIN)
        for _ in range(3)
    ]

    assert [o["rider_id"] for o in placed] == [riders[0]["id"], riders[1]["id"], riders[0]["id"]]
