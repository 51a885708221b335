from __future__ import annotations
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from fastapi import Depends, Header
from motor.motor_asyncio import AsyncIOMotorDatabase
from passlib.context import CryptContext

from .config import Settings
from .database import create_document, get_db, id_filter, to_client, utcnow
from .errors import Unauthorized, ValidationError
from .schemas import ROLES, SignupRequest, User, UserCreate, UserPublic

log = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    try:
        return pwd_context.verify(password, hashed)
    except ValueError:
        # unrecognised hash format
        return False


@dataclass
class Session:
    user_id: str
    role: str
    email_verified: bool = False
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def user_public(doc: dict[str, Any]) -> UserPublic:
    return UserPublic(
        id=doc["id"],
        name=doc.get("name"),
        email=doc.get("email"),
        phone=doc.get("phone"),
        role=doc.get("role", "customer"),
        email_verified=doc.get("email_verified", False),
    )


async def register_user(db: AsyncIOMotorDatabase, payload: SignupRequest) -> dict[str, Any]:
    email = str(payload.email).lower()
    if await db["user"].find_one({"email": email}):
        raise ValidationError("Email already registered")
    user = User(
        name=payload.name,
        email=email,
        phone=payload.phone,
        password_hash=hash_password(payload.password),
        role="customer",
    )
    doc = await create_document(db, "user", user.model_dump())
    log.info("registered user %s", doc["id"])
    return doc


async def create_user(db: AsyncIOMotorDatabase, payload: UserCreate) -> dict[str, Any]:
    """Admin-created account; the role defaults to customer."""
    if not payload.email or not payload.password:
        raise ValidationError("Email and password are required")
    role = payload.role or "customer"
    if role not in ROLES:
        raise ValidationError("Invalid role")
    email = str(payload.email).lower()
    if await db["user"].find_one({"email": email}):
        raise ValidationError("Email already exists")
    user = User(
        name=payload.name,
        email=email,
        phone=payload.phone,
        password_hash=hash_password(payload.password),
        role=role,
    )
    doc = await create_document(db, "user", user.model_dump())
    log.info("user %s created with role %s", doc["id"], role)
    return doc


async def authenticate(db: AsyncIOMotorDatabase, email: str, password: str) -> dict[str, Any]:
    user = await db["user"].find_one({"email": email.lower()})
    if not user or not verify_password(password, user.get("password_hash", "")):
        raise Unauthorized("Invalid credentials")
    return to_client(user)


async def upsert_admin(db: AsyncIOMotorDatabase, email: str, password: str) -> dict[str, Any]:
    email = email.lower()
    existing = await db["user"].find_one({"email": email})
    if existing:
        await db["user"].update_one(
            {"_id": existing["_id"]},
            {"$set": {"email_verified": True, "role": "admin", "updated_at": utcnow()}},
        )
        return to_client(await db["user"].find_one({"_id": existing["_id"]}))
    admin = User(
        name="Admin",
        email=email,
        password_hash=hash_password(password),
        role="admin",
        email_verified=True,
    )
    return await create_document(db, "user", admin.model_dump())


async def create_session(db: AsyncIOMotorDatabase, user_id: str, settings: Settings) -> dict[str, Any]:
    now = utcnow()
    doc = {
        "token": secrets.token_urlsafe(32),
        "user_id": user_id,
        "created_at": now,
        "expires_at": now + timedelta(hours=settings.SESSION_TTL_HOURS),
    }
    await db["session"].insert_one(doc)
    return doc


async def end_session(db: AsyncIOMotorDatabase, token: str) -> None:
    await db["session"].delete_one({"token": token})


async def load_session(db: AsyncIOMotorDatabase, token: str) -> Optional[Session]:
    record = await db["session"].find_one({"token": token})
    if not record:
        return None
    if record.get("expires_at") and record["expires_at"] < utcnow():
        await end_session(db, token)
        return None
    user = await db["user"].find_one(id_filter(record["user_id"]))
    if not user:
        return None
    return Session(
        user_id=str(user["_id"]),
        role=user.get("role", "customer"),
        email_verified=user.get("email_verified", False),
        name=user.get("name"),
        email=user.get("email"),
        phone=user.get("phone"),
    )


def bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def optional_session(
    token: Optional[str] = Depends(bearer_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> Optional[Session]:
    if not token:
        return None
    return await load_session(db, token)


async def current_session(session: Optional[Session] = Depends(optional_session)) -> Session:
    if session is None:
        raise Unauthorized()
    return session


async def require_admin(session: Session = Depends(current_session)) -> Session:
    if not session.is_admin:
        raise Unauthorized("Unauthorized - Admin only")
    return session
