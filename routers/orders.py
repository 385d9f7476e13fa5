from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import Field, field_validator
from pymongo.database import Database

import orders as engine
from access import ensure_can_read_order, get_current_user, require_roles
from database import get_db, serialize_doc
from routers import Body
from schemas import PaymentMethod, Role

router = APIRouter(prefix="/orders", tags=["orders"])

customer_only = require_roles(Role.CUSTOMER)
rider_only = require_roles(Role.RIDER)
admin_only = require_roles(Role.ADMIN)
rider_or_admin = require_roles(Role.RIDER, Role.ADMIN)
customer_or_admin = require_roles(Role.CUSTOMER, Role.ADMIN)


class OrderItemBody(Body):
    product_id: str
    color: str
    size: str
    quantity: int = Field(..., ge=1)
    price: Optional[float] = Field(None, ge=0)
    product_name: Optional[str] = None
    image_url: Optional[str] = None


class OrderCreateBody(Body):
    items: List[OrderItemBody] = Field(..., min_length=1)
    customer_address: str = Field(..., min_length=1)
    customer_phone: str = Field(..., min_length=1)
    payment_method: PaymentMethod = PaymentMethod.CARD

    @field_validator("payment_method", mode="before")
    @classmethod
    def normalize_payment_method(cls, v):
        return PaymentMethod(v) if isinstance(v, str) else v


class AssignBody(Body):
    rider_id: Optional[str] = None
    rider_name: Optional[str] = None


class StatusBody(Body):
    status: Optional[str] = None


class AdminUpdateBody(Body):
    status: Optional[str] = None
    rider_id: Optional[str] = None
    rider_name: Optional[str] = None


def _many(docs):
    data = [serialize_doc(d) for d in docs]
    return {"success": True, "count": len(data), "data": data}


@router.post("", status_code=201)
def create_order(body: OrderCreateBody, db: Database = Depends(get_db), user=Depends(customer_only)):
    order = engine.place_order(
        db,
        user,
        body.items,
        body.customer_address,
        body.customer_phone,
        payment_method=body.payment_method,
    )
    return {"success": True, "message": "Order placed successfully", "data": serialize_doc(order)}


@router.get("")
def list_all_orders(db: Database = Depends(get_db), user=Depends(admin_only)):
    return _many(engine.list_orders(db))


@router.get("/me")
def my_orders(db: Database = Depends(get_db), user=Depends(customer_only)):
    return _many(engine.list_orders(db, {"customer_id": user["id"]}))


@router.get("/assigned")
def assigned_orders(db: Database = Depends(get_db), user=Depends(rider_only)):
    return _many(engine.list_orders(db, {"rider_id": user["id"]}))


@router.post("/auto-assign")
def auto_assign(db: Database = Depends(get_db), user=Depends(admin_only)):
    assigned = engine.auto_assign(db)
    if not assigned:
        return {"success": True, "message": "No unassigned orders found", "assigned": 0}
    return {"success": True, "message": f"Successfully assigned {assigned} orders to riders", "assigned": assigned}


@router.get("/{order_id}")
def get_order(order_id: str, db: Database = Depends(get_db), user=Depends(get_current_user)):
    order = engine.get_order(db, order_id)
    ensure_can_read_order(user, order)
    return {"success": True, "data": serialize_doc(order)}


@router.put("/{order_id}/assign")
def assign_rider(order_id: str, body: AssignBody, db: Database = Depends(get_db), user=Depends(admin_only)):
    order = engine.assign_rider(db, order_id, body.rider_id, body.rider_name)
    return {"success": True, "data": serialize_doc(order)}


@router.put("/{order_id}/unassign")
def unassign_rider(order_id: str, db: Database = Depends(get_db), user=Depends(admin_only)):
    order = engine.unassign_rider(db, order_id)
    return {"success": True, "message": "Rider unassigned successfully", "data": serialize_doc(order)}


@router.put("/{order_id}/status")
def update_status(order_id: str, body: StatusBody, db: Database = Depends(get_db), user=Depends(rider_or_admin)):
    order = engine.update_status(db, user, order_id, body.status)
    return {"success": True, "data": serialize_doc(order)}


@router.put("/{order_id}/admin-update")
def admin_update(order_id: str, body: AdminUpdateBody, db: Database = Depends(get_db), user=Depends(admin_only)):
    order = engine.admin_update(db, order_id, body.status, body.rider_id, body.rider_name)
    return {"success": True, "data": serialize_doc(order)}


@router.put("/{order_id}/cancel")
def cancel_order(order_id: str, db: Database = Depends(get_db), user=Depends(customer_or_admin)):
    order = engine.cancel_order(db, user, order_id)
    return {"success": True, "message": "Order cancelled", "data": serialize_doc(order)}


@router.post("/{order_id}/assign-rider")
def assign_random_rider(order_id: str, db: Database = Depends(get_db), user=Depends(admin_only)):
    order = engine.assign_random_rider(db, order_id)
    return {"success": True, "data": serialize_doc(order)}
