from fastapi import APIRouter, Depends
from pymongo.database import Database

from access import get_current_user, require_roles
from database import get_db, serialize_doc
from riders import load_roster
from schemas import OrderStatus, Role

router = APIRouter(tags=["users"])

admin_only = require_roles(Role.ADMIN)


@router.get("/users/me")
def current_user(user=Depends(get_current_user)):
    return {"success": True, "data": user}


@router.get("/users/riders")
def list_riders(db: Database = Depends(get_db), user=Depends(admin_only)):
    riders = [
        {k: v for k, v in serialize_doc(r).items() if k in ("id", "name", "email", "phone", "profile_picture")}
        for r in load_roster(db).riders
    ]
    return {"success": True, "count": len(riders), "data": riders}


@router.get("/admin/stats")
def admin_stats(db: Database = Depends(get_db), user=Depends(admin_only)):
    return {
        "success": True,
        "data": {
            "users": db["user"].count_documents({}),
            "products": db["product"].count_documents({}),
            "orders": db["order"].count_documents({}),
            "orders_by_status": {s.value: db["order"].count_documents({"status": s.value}) for s in OrderStatus},
        },
    }
