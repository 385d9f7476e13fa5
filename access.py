"""
Access control: who is calling, and may they do this.

Identity is resolved from a bearer JWT when one is sent, otherwise from the
session cookie. Role checks are expressed as dependencies built with
``require_roles``; ownership checks take the already-loaded order.
"""
from typing import Optional

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database

import settings
from database import get_db, serialize_doc
from errors import Forbidden, Unauthenticated
from schemas import Role
from security import decode_token
from sessions import get_session_user_id

logger = structlog.get_logger(__name__)

bearer = HTTPBearer(auto_error=False)


def _resolve_user_id(request: Request, credentials: Optional[HTTPAuthorizationCredentials], db: Database) -> Optional[str]:
    if credentials:
        payload = decode_token(credentials.credentials)
        user_id = payload.get("id")
        if not user_id:
            raise Unauthenticated("Invalid token payload")
        return user_id
    sid = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if sid:
        return get_session_user_id(db, sid)
    return None


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Database = Depends(get_db),
) -> dict:
    user_id = _resolve_user_id(request, credentials, db)
    if not user_id:
        raise Unauthenticated()
    try:
        user = db["user"].find_one({"_id": ObjectId(user_id)})
    except InvalidId:
        user = None
    if not user:
        raise Unauthenticated("User not found")
    return serialize_doc(user)


def require_roles(*roles):
    allowed = {Role(r).value for r in roles}

    def dependency(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") not in allowed:
            logger.info("authorization_denied", user_id=user["id"], role=user.get("role"), required=sorted(allowed))
            raise Forbidden(f"User role '{user.get('role')}' is not authorized to access this resource")
        return user

    return dependency


def is_admin(user: dict) -> bool:
    return user.get("role") == Role.ADMIN.value


def ensure_can_read_order(user: dict, order: dict) -> None:
    if is_admin(user):
        return
    if order.get("customer_id") == user["id"]:
        return
    raise Forbidden("Not authorized to access this order")


def ensure_rider_assigned(user: dict, order: dict) -> None:
    if order.get("rider_id") != user["id"]:
        raise Forbidden("This order is not assigned to you")
