from bson import ObjectId

from security import create_token


def auth_header(user: dict) -> dict:
    token = create_token({"id": user["id"], "role": user["role"]})
    return {"Authorization": f"Bearer {token}"}


def variant(db, product_id: str, color: str = "Red", size: str = "M") -> dict:
    product = db["product"].find_one({"_id": ObjectId(product_id)})
    return next(v for v in product["variants"] if v["color"] == color and v["size"] == size)


def available(db, product_id: str) -> int:
    return db["product"].find_one({"_id": ObjectId(product_id)})["available_quantity"]


def order_body(*items, address="12 Long Road", phone="5550199", payment_method="CARD") -> dict:
    return {
        "items": list(items),
        "customerAddress": address,
        "customerPhone": phone,
        "paymentMethod": payment_method,
    }


def line(product_id: str, quantity: int = 1, color: str = "Red", size: str = "M", **extra) -> dict:
    return {"productId": product_id, "color": color, "size": size, "quantity": quantity, **extra}
