"""
Google sign-in.

``GoogleOAuthClient`` talks to Google's token and tokeninfo endpoints.
``OAuthExchangeService`` owns the find-or-create logic shared by the
redirect callback and the token endpoint. The service is built once in
main.py and handed to routes through ``get_oauth_service``.
"""
import secrets
from typing import Optional
from urllib.parse import urlencode

import httpx
import structlog
from fastapi import Request
from pydantic import BaseModel
from pymongo.database import Database

import settings
from database import create_document
from errors import Forbidden, InternalError, UpstreamError, ValidationError
from schemas import Role, User
from security import hash_password

logger = structlog.get_logger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
ISSUERS = {"accounts.google.com", "https://accounts.google.com"}


class GoogleIdentity(BaseModel):
    sub: str
    email: str
    name: str
    picture: Optional[str] = None


class GoogleOAuthClient:
    def __init__(self, client_id: Optional[str], client_secret: Optional[str], redirect_uri: str,
                 http: Optional[httpx.Client] = None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.http = http or httpx.Client(timeout=10.0)

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "access_type": "offline",
            "state": state,
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> dict:
        try:
            resp = self.http.post(TOKEN_URL, data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            })
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("google_code_exchange_failed", error=str(e))
            raise UpstreamError("Failed to exchange Google token", error=str(e))
        tokens = resp.json()
        if "id_token" not in tokens:
            raise UpstreamError("Google did not return an ID token")
        return tokens

    def verify_id_token(self, id_token: str) -> GoogleIdentity:
        try:
            resp = self.http.get(TOKENINFO_URL, params={"id_token": id_token})
        except httpx.HTTPError as e:
            logger.warning("google_tokeninfo_failed", error=str(e))
            raise UpstreamError("Could not reach Google", error=str(e))
        if resp.status_code != 200:
            raise ValidationError("Invalid Google token")
        claims = resp.json()
        if claims.get("aud") != self.client_id or claims.get("iss") not in ISSUERS:
            raise ValidationError("Invalid Google token")
        if str(claims.get("email_verified", "true")).lower() != "true":
            raise ValidationError("Google email is not verified")
        return GoogleIdentity(
            sub=claims["sub"],
            email=claims["email"],
            name=claims.get("name") or claims["email"].split("@")[0],
            picture=claims.get("picture"),
        )


class OAuthExchangeService:
    def __init__(self, client: GoogleOAuthClient):
        self.client = client

    def authorization_url(self, state: str) -> str:
        if not self.client.configured:
            raise InternalError("Google sign-in is not configured")
        return self.client.authorization_url(state)

    def login_with_code(self, db: Database, code: str) -> dict:
        tokens = self.client.exchange_code(code)
        return self.login_with_id_token(db, tokens["id_token"])

    def login_with_id_token(self, db: Database, id_token: str) -> dict:
        identity = self.client.verify_id_token(id_token)
        return self.find_or_create_user(db, identity)

    def find_or_create_user(self, db: Database, identity: GoogleIdentity) -> dict:
        email = identity.email.lower()
        approved = db["approvedemail"].find_one({"email": email})
        user = db["user"].find_one({"email": email})

        if user:
            if user.get("role") != Role.CUSTOMER.value and not approved:
                logger.info("google_login_rejected", email=email, role=user.get("role"))
                raise Forbidden("Google login is only available for customers")
            if not user.get("google_id"):
                changes = {"google_id": identity.sub}
                if not user.get("profile_picture"):
                    changes["profile_picture"] = identity.picture
                db["user"].update_one({"_id": user["_id"]}, {"$set": changes})
                user.update(changes)
            return user

        role = approved["role"] if approved else Role.CUSTOMER.value
        new_user = User(
            name=identity.name,
            email=email,
            # never used for login; the account signs in through Google
            password_hash=hash_password(secrets.token_urlsafe(24)),
            role=role,
            google_id=identity.sub,
            profile_picture=identity.picture,
        )
        user_id = create_document(db, "user", new_user)
        logger.info("google_user_created", user_id=user_id, role=role)
        return db["user"].find_one({"email": email})


def build_oauth_service() -> OAuthExchangeService:
    if not (settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET):
        logger.warning("google_oauth_not_configured")
    client = GoogleOAuthClient(settings.GOOGLE_CLIENT_ID, settings.GOOGLE_CLIENT_SECRET, settings.GOOGLE_REDIRECT_URI)
    return OAuthExchangeService(client)


def get_oauth_service(request: Request) -> OAuthExchangeService:
    return request.app.state.oauth_service
