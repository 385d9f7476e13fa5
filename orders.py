"""
Order engine: placement, rider assignment and status transitions.

Functions take the database handle first and raise the errors from
``errors`` directly; the routers only translate HTTP bodies into calls.
"""
import random
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from pymongo import ReturnDocument
from pymongo.database import Database

import inventory
import settings
from access import ensure_rider_assigned, is_admin
from database import create_document, to_object_id
from errors import Forbidden, InsufficientStock, InvalidRequest, NotFound, ValidationError
from inventory import StockLine
from riders import RiderPolicy, load_roster, rider_ref
from schemas import Order, OrderItem, OrderStatus, PaymentMethod, Role

logger = structlog.get_logger(__name__)

TERMINAL_STATUSES = {OrderStatus.DELIVERED, OrderStatus.NOT_DELIVERED, OrderStatus.CANCELLED}

# targets accepted by the status endpoint
STATUS_UPDATE_TARGETS = {
    OrderStatus.PAID,
    OrderStatus.SHIPPED,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
    OrderStatus.NOT_DELIVERED,
}

# forward edges a rider may take
RIDER_TRANSITIONS = {
    OrderStatus.SHIPPED: {OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED, OrderStatus.NOT_DELIVERED},
    OrderStatus.IN_TRANSIT: {OrderStatus.DELIVERED, OrderStatus.NOT_DELIVERED},
}

UNASSIGNED = {"rider_id": None}


def _now():
    return datetime.now(timezone.utc)


def _current_status(order: dict) -> Optional[OrderStatus]:
    # rows written before the status enum was closed may hold ASSIGNED
    try:
        return OrderStatus(order.get("status"))
    except ValueError:
        return None


def get_order(db: Database, order_id: str) -> dict:
    order = db["order"].find_one({"_id": to_object_id(order_id, "Order")})
    if not order:
        raise NotFound("Order not found")
    return order


def list_orders(db: Database, filt: Optional[dict] = None) -> List[dict]:
    return list(db["order"].find(filt or {}).sort([("created_at", 1), ("_id", 1)]))


def _ensure_not_cancelled(order: dict):
    if order.get("status") == OrderStatus.CANCELLED.value:
        raise ValidationError("Cannot change an order that is CANCELLED")


def _update_order(db: Database, order_id: str, update: dict, guard: Optional[dict] = None) -> dict:
    """Apply ``update`` unless the order was cancelled or no longer matches ``guard``."""
    update.setdefault("$set", {})["updated_at"] = _now()
    query = {"_id": to_object_id(order_id, "Order"), "status": {"$ne": OrderStatus.CANCELLED.value}}
    query.update(guard or {})
    order = db["order"].find_one_and_update(query, update, return_document=ReturnDocument.AFTER)
    if not order:
        _ensure_not_cancelled(get_order(db, order_id))
        raise ValidationError("Order status changed, try again")
    return order


# ----------------------- Placement -----------------------
def _resolve_item(db: Database, item) -> tuple:
    """Validate one requested line against the catalog; returns (OrderItem, StockLine)."""
    product = db["product"].find_one({"_id": to_object_id(item.product_id, "Product")})
    if not product:
        raise NotFound(f"Product with ID {item.product_id} not found")

    variant = next(
        (v for v in product.get("variants", []) if v["color"] == item.color and v["size"] == item.size),
        None,
    )
    if variant is None:
        raise InvalidRequest(
            f"Variant with color {item.color} and size {item.size} not found for product {product['title']}"
        )
    if variant["stock"] < item.quantity:
        raise InsufficientStock(f"Not enough stock for {product['title']} in {item.color}, {item.size}")

    if item.price is not None and item.price != variant["price"]:
        logger.info("client_price_ignored", product_id=item.product_id, sent=item.price, actual=variant["price"])

    order_item = OrderItem(
        product_id=str(product["_id"]),
        product_name=product["title"],
        color=item.color,
        size=item.size,
        price=variant["price"],
        quantity=item.quantity,
        image_url=item.image_url or product.get("image"),
    )
    line = StockLine(
        product_id=str(product["_id"]),
        color=item.color,
        size=item.size,
        quantity=item.quantity,
        title=product["title"],
    )
    return order_item, line


def place_order(db: Database, customer: dict, items: list, address: str, phone: str,
                payment_method=PaymentMethod.CARD, policy: Optional[RiderPolicy] = None) -> dict:
    if not items:
        raise ValidationError("Order must contain at least one item")
    if not (address or "").strip() or not (phone or "").strip():
        raise ValidationError("Customer address and phone are required")

    order_items, lines = [], []
    for item in items:
        order_item, line = _resolve_item(db, item)
        order_items.append(order_item)
        lines.append(line)
    total_amount = sum(i.price * i.quantity for i in order_items)

    reserved = inventory.reserve(db, lines)
    try:
        policy = RiderPolicy(policy or settings.ORDER_RIDER_POLICY)
        rider = load_roster(db).select(policy, cursor=db["order"].count_documents({}))
        order = Order(
            customer_id=customer["id"],
            customer_name=customer["name"],
            customer_address=address.strip(),
            customer_phone=phone.strip(),
            items=order_items,
            total_amount=total_amount,
            status=OrderStatus.SHIPPED if rider else OrderStatus.PAID,
            payment_method=payment_method or PaymentMethod.CARD,
            **(rider_ref(rider) if rider else {}),
        )
        order_id = create_document(db, "order", order)
    except Exception:
        inventory.release(db, reserved)
        raise

    logger.info(
        "order_placed",
        order_id=order_id,
        customer_id=customer["id"],
        total_amount=total_amount,
        rider_id=order.rider_id,
        policy=policy.value,
    )
    return get_order(db, order_id)


# ----------------------- Rider assignment -----------------------
def _get_rider(db: Database, rider_id: str) -> dict:
    rider = db["user"].find_one({"_id": to_object_id(rider_id, "Rider"), "role": Role.RIDER.value})
    if not rider:
        raise NotFound("Rider not found")
    return rider


def assign_rider(db: Database, order_id: str, rider_id: Optional[str], rider_name: Optional[str]) -> dict:
    if not rider_id or not rider_name:
        raise ValidationError("Rider ID and name are required")
    _ensure_not_cancelled(get_order(db, order_id))
    rider = _get_rider(db, rider_id)
    if rider_name != rider["name"]:
        logger.info("rider_name_replaced", order_id=order_id, rider_id=rider_id, sent=rider_name)
    order = _update_order(db, order_id, {"$set": {**rider_ref(rider), "status": OrderStatus.SHIPPED.value}})
    logger.info("rider_assigned", order_id=order_id, rider_id=rider_id)
    return order


def unassign_rider(db: Database, order_id: str) -> dict:
    _ensure_not_cancelled(get_order(db, order_id))
    order = _update_order(db, order_id, {
        "$set": {"status": OrderStatus.PAID.value},
        "$unset": {"rider_id": "", "rider_name": ""},
    })
    logger.info("rider_unassigned", order_id=order_id)
    return order


def auto_assign(db: Database) -> int:
    """Round-robin riders over unassigned PAID orders in creation order."""
    pending = list_orders(db, {"status": OrderStatus.PAID.value, **UNASSIGNED})
    if not pending:
        return 0
    roster = load_roster(db)
    if not len(roster):
        raise NotFound("No riders available in the system")
    assigned = 0
    for order in pending:
        rider = roster.select(RiderPolicy.ROUND_ROBIN, cursor=assigned)
        try:
            _update_order(
                db, str(order["_id"]),
                {"$set": {**rider_ref(rider), "status": OrderStatus.SHIPPED.value}},
                guard={"status": OrderStatus.PAID.value, **UNASSIGNED},
            )
        except ValidationError:
            # cancelled or picked up since the listing
            logger.info("auto_assign_skipped", order_id=str(order["_id"]))
            continue
        assigned += 1
    logger.info("orders_auto_assigned", assigned=assigned, riders=len(roster))
    return assigned


def assign_random_rider(db: Database, order_id: str, rng: Optional[random.Random] = None) -> dict:
    _ensure_not_cancelled(get_order(db, order_id))
    rider = load_roster(db).select(RiderPolicy.RANDOM, rng=rng)
    if rider is None:
        raise NotFound("No riders available in the system")
    order = _update_order(db, order_id, {"$set": {**rider_ref(rider), "status": OrderStatus.SHIPPED.value}})
    logger.info("rider_assigned", order_id=order_id, rider_id=str(rider["_id"]), policy=RiderPolicy.RANDOM.value)
    return order


# ----------------------- Status transitions -----------------------
def update_status(db: Database, user: dict, order_id: str, status) -> dict:
    try:
        target = OrderStatus(status)
    except ValueError:
        target = None
    if target not in STATUS_UPDATE_TARGETS:
        allowed = ", ".join(s.value for s in OrderStatus if s in STATUS_UPDATE_TARGETS)
        raise ValidationError(f"Status must be one of: {allowed}")

    order = get_order(db, order_id)
    _ensure_not_cancelled(order)
    current = _current_status(order)
    if not is_admin(user):
        ensure_rider_assigned(user, order)
        if target not in RIDER_TRANSITIONS.get(current, set()):
            raise ValidationError(f"Cannot change order status from {order.get('status')} to {target.value}")

    logger.info("order_status_changing", order_id=order_id, from_status=order.get("status"), to_status=target.value,
                by=user["id"])
    return _update_order(db, order_id, {"$set": {"status": target.value}}, guard={"status": order.get("status")})


def admin_update(db: Database, order_id: str, status=None, rider_id: Optional[str] = None,
                 rider_name: Optional[str] = None) -> dict:
    _ensure_not_cancelled(get_order(db, order_id))
    changes = {}
    if status:
        try:
            target = OrderStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid status: {status}")
        if target == OrderStatus.CANCELLED:
            # stock goes back only through cancel_order
            raise ValidationError("Use the cancel endpoint to cancel an order")
        changes["status"] = target.value
    if rider_name:
        changes["rider_name"] = rider_name
    if rider_id:
        changes.update(rider_ref(_get_rider(db, rider_id)))
    order = _update_order(db, order_id, {"$set": changes})
    logger.info("order_admin_updated", order_id=order_id, fields=sorted(changes))
    return order


def cancel_order(db: Database, user: dict, order_id: str) -> dict:
    order = get_order(db, order_id)
    current = _current_status(order)
    if is_admin(user):
        if current in TERMINAL_STATUSES:
            raise ValidationError(f"Cannot cancel an order that is {current.value}")
    else:
        if order["customer_id"] != user["id"]:
            raise Forbidden("Not authorized to access this order")
        if current != OrderStatus.PAID:
            raise ValidationError("Only orders that have not shipped can be cancelled")

    # status guard keeps a concurrent cancel from restocking twice
    cancelled = db["order"].find_one_and_update(
        {"_id": order["_id"], "status": order.get("status")},
        {"$set": {"status": OrderStatus.CANCELLED.value, "updated_at": _now()},
         "$unset": {"rider_id": "", "rider_name": ""}},
        return_document=ReturnDocument.AFTER,
    )
    if not cancelled:
        raise ValidationError("Order status changed, try again")
    inventory.release(db, [
        StockLine(product_id=i["product_id"], color=i["color"], size=i["size"], quantity=i["quantity"])
        for i in order["items"]
    ])
    logger.info("order_cancelled", order_id=order_id, by=user["id"], from_status=order.get("status"))
    return cancelled
