import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field, StringConstraints
from pymongo.database import Database

from database import create_document, find_user, get_db
from errors import AuthenticationError, DuplicateError, ServerError, ValidationError
from responses import envelope, serialize_doc
from schemas import Role, User as UserSchema, default_profile
from security import create_access_token, decode_access_token, hash_password, verify_password
from settings import Settings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterPayload(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=50)]
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)
    role: Role


class LoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class VerifyTokenPayload(BaseModel):
    token: Optional[str] = None


@router.post("/register", status_code=201)
def register(payload: RegisterPayload, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    if not settings.jwt_secret:
        raise ServerError("JWT secret not configured")
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise DuplicateError("User already exists with this email")
    user = UserSchema(
        name=payload.name,
        email=email,
        password_hash=hash_password(payload.password, settings.bcrypt_rounds),
        role=payload.role,
        profile=default_profile(payload.role, payload.name),
    )
    user_id = create_document(db, "user", user)
    token = create_access_token(user_id, settings)
    logger.info("Registered %s user %s", payload.role, user_id)
    return envelope(
        {"user": serialize_doc(find_user(db, user_id)), "token": token},
        "User registered successfully",
    )


@router.post("/login")
def login(payload: LoginPayload, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    user = db["user"].find_one({"email": payload.email.lower()})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise AuthenticationError("Invalid email or password")
    token = create_access_token(str(user["_id"]), settings)
    logger.info("User %s logged in", user["_id"])
    return envelope({"user": serialize_doc(user), "token": token}, "Login successful")


@router.post("/verify-token")
def verify_token(payload: VerifyTokenPayload, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    if not payload.token:
        raise ValidationError("Token is required")
    user = find_user(db, decode_access_token(payload.token, settings))
    if not user:
        raise AuthenticationError("Invalid token")
    return envelope({"user": serialize_doc(user)}, "Token is valid")
