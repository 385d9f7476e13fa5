"""
Variant stock reservation.

A reservation takes stock for every line of an order or for none of them.
Each line is a single conditional update: the variant is matched only while
its stock covers the quantity, and the variant stock and the product's
available_quantity move together. Lines already taken are given back when a
later line fails.
"""
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List

import structlog
from bson import ObjectId
from pymongo.database import Database

from errors import InsufficientStock

logger = structlog.get_logger(__name__)

# held by every stock write in this process; re-entrant since reserve releases under it
stock_lock = threading.RLock()


@dataclass(frozen=True)
class StockLine:
    product_id: str
    color: str
    size: str
    quantity: int
    title: str = ""


def _variant_filter(line: StockLine, min_stock: int = 0) -> dict:
    match = {"color": line.color, "size": line.size}
    if min_stock:
        match["stock"] = {"$gte": min_stock}
    return {"_id": ObjectId(line.product_id), "variants": {"$elemMatch": match}}


def _adjust(db: Database, line: StockLine, delta: int, min_stock: int = 0) -> bool:
    result = db["product"].update_one(
        _variant_filter(line, min_stock),
        {
            "$inc": {"variants.$.stock": delta, "available_quantity": delta},
            "$set": {"updated_at": datetime.now(timezone.utc)},
        },
    )
    return result.modified_count == 1


def reserve(db: Database, lines: Iterable[StockLine]) -> List[StockLine]:
    """Take stock for all lines, or raise InsufficientStock with nothing taken."""
    taken: List[StockLine] = []
    with stock_lock:
        try:
            for line in lines:
                if not _adjust(db, line, -line.quantity, min_stock=line.quantity):
                    logger.info(
                        "stock_reservation_failed",
                        product_id=line.product_id,
                        color=line.color,
                        size=line.size,
                        quantity=line.quantity,
                    )
                    raise InsufficientStock(f"Not enough stock for {line.title or line.product_id} in {line.color}, {line.size}")
                taken.append(line)
        except Exception:
            release(db, taken)
            raise
    return taken


def release(db: Database, lines: Iterable[StockLine]) -> None:
    with stock_lock:
        for line in lines:
            if not _adjust(db, line, line.quantity):
                # product or variant removed since the reservation
                logger.warning("stock_release_skipped", product_id=line.product_id, color=line.color, size=line.size)
