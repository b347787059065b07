"""
Password hashing, signed session tokens and the request authentication
dependencies built on them.
"""
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, Request
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError
from passlib.context import CryptContext
from pymongo.database import Database

from database import find_user, get_db
from errors import ApiError, AuthenticationError, ExpiredToken, InvalidToken, ServerError
from settings import Settings, get_settings


@lru_cache(maxsize=None)
def _pwd_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def hash_password(password: str, rounds: int = 12) -> str:
    return _pwd_context(rounds).hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return _pwd_context(12).verify(password, hashed)
    except ValueError:
        # not a bcrypt hash
        return False


def create_access_token(user_id: str, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    if not settings.jwt_secret:
        raise ServerError("JWT secret not configured")
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    return jwt.encode({"sub": user_id, "exp": expire}, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> str:
    """Return the user id carried by `token`.

    Raises ExpiredToken once the token is past its expiry and InvalidToken for
    anything else that does not verify against the configured secret.
    """
    if not settings.jwt_secret:
        raise ServerError("JWT secret not configured")
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        raise ExpiredToken("Token expired")
    except JWTError:
        raise InvalidToken("Invalid token")
    user_id = payload.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise InvalidToken("Invalid token")
    return user_id


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def resolve_user(db: Database, settings: Settings, token: Optional[str]) -> dict:
    if not token:
        raise AuthenticationError("Access token required")
    user_id = decode_access_token(token, settings)
    user = find_user(db, user_id)
    if not user:
        raise AuthenticationError("Invalid token")
    user["id"] = str(user["_id"])
    return user


def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> dict:
    user = resolve_user(db, settings, bearer_token(authorization))
    request.state.user = user
    request.state.user_id = user["id"]
    return user


def optional_user(db: Database, settings: Settings, token: Optional[str]) -> Optional[dict]:
    """Like resolve_user, but a missing or bad token means an anonymous caller."""
    try:
        return resolve_user(db, settings, token)
    except ApiError:
        return None
