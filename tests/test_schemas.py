import pytest
from pydantic import ValidationError

from schemas import Order, OrderStatus, PaymentMethod, Product, Role


def test_status_spellings():
    assert OrderStatus("UNDELIVERED") is OrderStatus.NOT_DELIVERED
    assert OrderStatus("in_transit") is OrderStatus.IN_TRANSIT
    with pytest.raises(ValueError):
        OrderStatus("ASSIGNED")


def test_role_and_payment_case():
    assert Role("admin") is Role.ADMIN
    assert PaymentMethod("wallet") is PaymentMethod.WALLET


def test_product_quantity_follows_variants():
    product = Product(
        title="Tee",
        description="Plain",
        price=10,
        image="x.jpg",
        category="Tees",
        variants=[{"color": "Red", "size": "M", "price": 10, "stock": 2},
                  {"color": "Red", "size": "L", "price": 11, "stock": 3}],
        available_quantity=50,
    )
    assert product.available_quantity == 5
    assert product.sizes == ["M", "L"]
    assert product.colors == ["Red"]


def test_product_rating_bounds():
    with pytest.raises(ValidationError):
        Product(title="Tee", description="", price=1, image="x", category="c", rating=6)


def test_order_stores_plain_values():
    order = Order(
        customer_id="c1",
        customer_name="Casey",
        customer_address="12 Long Road",
        customer_phone="555",
        items=[{"product_id": "p1", "product_name": "Tee", "color": "Red", "size": "M", "price": 10, "quantity": 2}],
        total_amount=20,
        payment_method="cod",
        status="undelivered",
    )
    dumped = order.model_dump()
    assert dumped["payment_method"] == "COD"
    assert dumped["status"] == "NOT_DELIVERED"
    assert dumped["rider_id"] is None


def test_order_needs_items_and_positive_quantity():
    base = dict(customer_id="c1", customer_name="C", customer_address="A", customer_phone="P", total_amount=0)
    with pytest.raises(ValidationError):
        Order(items=[], **base)
    with pytest.raises(ValidationError):
        Order(items=[{"product_id": "p", "product_name": "T", "color": "R", "size": "M", "price": 1, "quantity": 0}],
              **base)
