"""
Session tokens and Kakao social login.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import jwt
import structlog
from fastapi import HTTPException

import database

logger = structlog.get_logger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", "2"))
KAKAO_CLIENT_ID = os.getenv("KAKAO_CLIENT_ID", "")
KAKAO_AUTH_URL = os.getenv("KAKAO_AUTH_URL", "https://kauth.kakao.com")
KAKAO_API_URL = os.getenv("KAKAO_API_URL", "https://kapi.kakao.com")

# Provider and session secrets never leave the server
PRIVATE_FIELDS = ("socialToken", "socialId", "token")


def public_user(user: dict, *hidden: str) -> dict:
    """Copy of ``user`` with the given auth fields blanked out for a response."""
    shown = dict(user)
    for field in hidden or PRIVATE_FIELDS:
        if field in shown:
            shown[field] = ""
    return shown


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(user: dict, at: Optional[datetime] = None) -> bool:
    expiry = _aware(user.get("tokenExpiration"))
    if expiry is None:
        return True
    return (at or database.now()) > expiry


def check_token(user: dict, token: Optional[str]):
    """Reject the request unless ``token`` is the user's live session token."""
    if not token or user.get("token") != token:
        raise HTTPException(status_code=400, detail="token is wrong")
    if is_expired(user):
        raise HTTPException(status_code=400, detail="token is expired")


def user_by_token(token: str) -> dict:
    user = database.find_document("user", {"token": token})
    if not user:
        raise HTTPException(status_code=400, detail="no matched user")
    if is_expired(user):
        raise HTTPException(status_code=400, detail="token is expired")
    return user


def issue_session(user: dict) -> dict:
    """Sign a fresh session token for ``user`` and store it with its expiry."""
    issued = database.now()
    token = jwt.encode(
        {"sub": str(user["_id"]), "iat": issued}, JWT_SECRET, algorithm="HS256"
    )
    return database.update_document(
        "user", user["_id"],
        {"token": token, "tokenExpiration": issued + timedelta(hours=TOKEN_TTL_HOURS)},
    )


# Kakao

def exchange_kakao_code(code: str, redirect_uri: str) -> dict:
    """Trade an authorization code for an access token and the Kakao profile.

    Returns ``{"accessToken", "socialId", "name", "email"}``.
    """
    with httpx.Client(timeout=10.0) as client:
        token_resp = client.post(
            f"{KAKAO_AUTH_URL}/oauth/token",
            data={
                "grant_type": "authorization_code",
                "client_id": KAKAO_CLIENT_ID,
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )
        token_resp.raise_for_status()
        access_token = token_resp.json()["access_token"]

        me = client.get(
            f"{KAKAO_API_URL}/v2/user/me",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        me.raise_for_status()
        profile = me.json()

    return {
        "accessToken": access_token,
        "socialId": f"kakao_{profile['id']}",
        "name": profile.get("properties", {}).get("nickname"),
        "email": profile.get("kakao_account", {}).get("email"),
    }


def kakao_logout(social_token: str):
    with httpx.Client(timeout=10.0) as client:
        resp = client.post(
            f"{KAKAO_API_URL}/v1/user/logout",
            headers={"Authorization": f"Bearer {social_token}"},
        )
        resp.raise_for_status()
