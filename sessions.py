"""Server-side sessions keyed by a random id carried in a cookie."""
import secrets
import time
from typing import Optional

import structlog
from fastapi import Request, Response
from pymongo.database import Database

import settings
from schemas import Session

logger = structlog.get_logger(__name__)


def create_session(db: Database, user_id: str) -> str:
    sid = secrets.token_urlsafe(32)
    now = time.time()
    session = Session(user_id=user_id, expires_at=now + settings.SESSION_TTL_HOURS * 3600)
    db["session"].insert_one({"_id": sid, "created_at": now, **session.model_dump()})
    return sid


def get_session_user_id(db: Database, sid: str) -> Optional[str]:
    session = db["session"].find_one({"_id": sid, "expires_at": {"$gt": time.time()}})
    if not session:
        return None
    return session["user_id"]


def destroy_session(db: Database, sid: str) -> None:
    db["session"].delete_one({"_id": sid})


def start_session(db: Database, response: Response, user_id: str) -> str:
    sid = create_session(db, user_id)
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        sid,
        max_age=settings.SESSION_TTL_HOURS * 3600,
        httponly=True,
        secure=settings.IS_PRODUCTION,
        samesite="none" if settings.IS_PRODUCTION else "lax",
    )
    logger.info("session_started", user_id=user_id)
    return sid


def end_session(db: Database, request: Request, response: Response) -> None:
    sid = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if sid:
        destroy_session(db, sid)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
