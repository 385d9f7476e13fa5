import re
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import Field
from pymongo.database import Database

import inventory
from access import require_roles
from database import create_document, get_db, serialize_doc, to_object_id
from errors import NotFound
from routers import Body
from schemas import Product, Role, Variant

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/products", tags=["products"])

admin_only = require_roles(Role.ADMIN)


class ProductCreateBody(Body, Product):
    pass


class ProductUpdateBody(Body):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    sizes: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    variants: Optional[List[Variant]] = None
    rating: Optional[float] = Field(None, ge=0, le=5)


def _get_product(db: Database, product_id: str) -> dict:
    product = db["product"].find_one({"_id": to_object_id(product_id, "Product")})
    if not product:
        raise NotFound("Product not found")
    return product


@router.get("")
def list_products(q: Optional[str] = None, category: Optional[str] = None, db: Database = Depends(get_db)):
    filt = {}
    if q:
        filt["title"] = {"$regex": re.escape(q), "$options": "i"}
    if category:
        filt["category"] = category
    items = [serialize_doc(i) for i in db["product"].find(filt).sort("_id", 1)]
    return {"success": True, "count": len(items), "data": items}


@router.get("/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return {"success": True, "data": serialize_doc(_get_product(db, product_id))}


@router.post("", status_code=201)
def create_product(body: ProductCreateBody, db: Database = Depends(get_db), user=Depends(admin_only)):
    product = Product(**body.model_dump(exclude={"available_quantity"}))
    pid = create_document(db, "product", product)
    logger.info("product_created", product_id=pid, by=user["id"], available_quantity=product.available_quantity)
    return {"success": True, "data": serialize_doc(_get_product(db, pid))}


@router.put("/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody, db: Database = Depends(get_db), user=Depends(admin_only)):
    changes = body.model_dump(exclude_none=True)
    # a variants write replaces stock wholesale, so no reservation may interleave with it
    with (inventory.stock_lock if "variants" in changes else nullcontext()):
        current = _get_product(db, product_id)
        # validate the merged document so available_quantity always matches the variants
        merged = Product(**{**current, **changes}).model_dump()
        update = {k: merged[k] for k in changes}
        if "variants" in changes:
            update["available_quantity"] = merged["available_quantity"]
        update["updated_at"] = datetime.now(timezone.utc)
        res = db["product"].update_one({"_id": current["_id"]}, {"$set": update})
    if res.matched_count == 0:
        raise NotFound("Product not found")
    logger.info("product_updated", product_id=product_id, by=user["id"], fields=sorted(changes))
    return {"success": True, "data": serialize_doc(_get_product(db, product_id))}


@router.delete("/{product_id}")
def delete_product(product_id: str, db: Database = Depends(get_db), user=Depends(admin_only)):
    res = db["product"].delete_one({"_id": to_object_id(product_id, "Product")})
    if res.deleted_count == 0:
        raise NotFound("Product not found")
    logger.info("product_deleted", product_id=product_id, by=user["id"])
    return {"success": True, "data": {}}
