"""Auth service — registration, login, profile updates and password hashing."""

import asyncio
import time
import uuid
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from passlib.context import CryptContext

from healthsathi.application.services.latency import simulate_latency
from healthsathi.config import get_settings
from healthsathi.core.exceptions import DuplicateKey, InvalidCredential
from healthsathi.domain.repositories.user_repository import UserRepository
from healthsathi.domain.schemas.auth import AuthResult, ProfileUpdate, UserProfile, UserRole

settings = get_settings()
logger = structlog.get_logger(__name__)
pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def generate_user_id() -> str:
    return f"user_{int(time.time() * 1000)}{uuid.uuid4().hex[:9]}"


async def register_user(
    repo: UserRepository,
    email: str,
    password: str,
    name: str,
    role: UserRole,
    specialization: Optional[str] = None,
) -> AuthResult:
    """Create a user. The unique email index rejects a second registration."""
    await simulate_latency()

    record = {
        "_id": generate_user_id(),
        "email": email,
        "passwordHash": await asyncio.to_thread(hash_password, password),
        "name": name,
        "role": role.value,
        "createdAt": datetime.now(timezone.utc).isoformat(),
        # Default empty profile fields
        "bloodGroup": "Unknown",
        "age": "",
        "height": "",
        "weight": "",
        "phone": "",
        "dob": "",
        "specialization": specialization or "",
    }

    try:
        await repo.add(record)
    except DuplicateKey as e:
        if e.details.get("field") != "email":
            raise
        logger.info("Registration rejected, email already in use", email=email)
        raise DuplicateKey("User with this email already exists.", details=e.details) from e

    logger.info("User registered", user_id=record["_id"], role=role.value)
    return AuthResult(user=UserProfile.from_record(record), role=role, name=name)


async def login_user(repo: UserRepository, email: str, password: str) -> AuthResult:
    await simulate_latency()

    record = await repo.get_by_email(email)
    hashed = record.get("passwordHash") if record else None
    # Hashing runs in a worker thread
    if not hashed or not await asyncio.to_thread(verify_password, password, hashed):
        logger.info("Login rejected", email=email)
        raise InvalidCredential()

    profile = UserProfile.from_record(record)
    logger.info("User logged in", user_id=profile.uid, role=profile.role.value)
    return AuthResult(user=profile, role=profile.role, name=profile.name)


async def update_user(repo: UserRepository, uid: str, updates: ProfileUpdate) -> UserProfile:
    """Merge the set profile fields onto the stored user."""
    await simulate_latency()
    record = await repo.merge_update(uid, updates.to_record())
    return UserProfile.from_record(record)


async def fetch_available_doctors(repo: UserRepository) -> List[UserProfile]:
    await simulate_latency()
    records = await repo.list_by_role(UserRole.DOCTOR)
    return [UserProfile.from_record(r) for r in records]


async def logout_user() -> None:
    # Nothing to revoke for a local store
    await simulate_latency()
    logger.info("User logged out")
