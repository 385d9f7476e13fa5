from typing import Optional
from urllib.parse import urlencode, urlsplit

import structlog
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import EmailStr, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import settings
from access import get_current_user
from database import create_document, get_db, serialize_doc
from errors import AppError, Unauthenticated, ValidationError
from oauth import OAuthExchangeService, get_oauth_service
from routers import Body
from schemas import Role, User
from security import create_token, hash_password, verify_password
from sessions import end_session, start_session

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterBody(Body):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None


class LoginBody(Body):
    email: EmailStr
    password: str


class GoogleTokenBody(Body):
    token: str


def public_user(user: dict) -> dict:
    user = serialize_doc(user)
    return {k: user.get(k) for k in ("id", "name", "email", "role", "phone", "profile_picture")}


def mint_token(user: dict) -> str:
    return create_token({"id": str(user["_id"]), "role": user["role"]})


def issue_credentials(db: Database, response: Response, user: dict) -> dict:
    """Start a session and mint a bearer token for the same user."""
    start_session(db, response, str(user["_id"]))
    return {"user": public_user(user), "token": mint_token(user)}


def _origin(url: str) -> Optional[tuple]:
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    return parts.scheme.lower(), parts.netloc.lower()


def _frontend_target(url: Optional[str]) -> str:
    # only send browsers back to our own frontends, compared by scheme and host:port
    allowed = {_origin(origin) for origin in [settings.FRONTEND_URL, *settings.CORS_ORIGINS]} - {None}
    if url and _origin(url) in allowed:
        return url
    return f"{settings.FRONTEND_URL}/auth/callback"


def _frontend_redirect(target: str, **params) -> RedirectResponse:
    sep = "&" if "?" in target else "?"
    return RedirectResponse(f"{target}{sep}{urlencode(params)}", status_code=302)


@router.post("/register", status_code=201)
def register(body: RegisterBody, response: Response, db: Database = Depends(get_db)):
    email = body.email.lower()
    if db["user"].find_one({"email": email}):
        raise ValidationError("User already exists with this email")
    user = User(
        name=body.name,
        email=email,
        password_hash=hash_password(body.password),
        phone=body.phone,
        role=Role.CUSTOMER,
    )
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        raise ValidationError("User already exists with this email")
    logger.info("user_registered", user_id=user_id)
    created = db["user"].find_one({"email": email})
    return {"success": True, "data": issue_credentials(db, response, created)}


@router.post("/login")
def login(body: LoginBody, response: Response, db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": body.email.lower()})
    if not user or not verify_password(body.password, user.get("password_hash", "")):
        logger.info("login_failed", email=body.email.lower())
        raise Unauthenticated("Invalid email or password")
    logger.info("login_succeeded", user_id=str(user["_id"]))
    return {"success": True, "data": issue_credentials(db, response, user)}


@router.get("/me")
def me(user=Depends(get_current_user)):
    return {"success": True, "user": public_user(user)}


@router.api_route("/logout", methods=["GET", "POST"])
def logout(request: Request, response: Response, db: Database = Depends(get_db)):
    end_session(db, request, response)
    return {"success": True, "message": "Successfully logged out"}


# ----------------------- Google -----------------------
@router.get("/google")
def google_auth(redirect_uri: Optional[str] = None, oauth: OAuthExchangeService = Depends(get_oauth_service)):
    state = _frontend_target(redirect_uri)
    return RedirectResponse(oauth.authorization_url(state), status_code=302)


@router.get("/google/callback")
def google_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    db: Database = Depends(get_db),
    oauth: OAuthExchangeService = Depends(get_oauth_service),
):
    frontend_url = _frontend_target(state)
    if not code:
        return _frontend_redirect(frontend_url, error="Google authentication failed: No code received")
    try:
        user = oauth.login_with_code(db, code)
    except AppError as e:
        logger.warning("google_callback_failed", status=e.status_code, message=e.detail)
        return _frontend_redirect(frontend_url, error=e.detail)

    redirect = _frontend_redirect(frontend_url, token=mint_token(user))
    start_session(db, redirect, str(user["_id"]))
    return redirect


@router.post("/google/token")
def google_token(
    body: GoogleTokenBody,
    response: Response,
    db: Database = Depends(get_db),
    oauth: OAuthExchangeService = Depends(get_oauth_service),
):
    user = oauth.login_with_id_token(db, body.token)
    return {"success": True, "data": issue_credentials(db, response, user)}
