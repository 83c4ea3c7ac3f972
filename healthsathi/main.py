"""HealthSathi — application bootstrap."""

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from sqlalchemy.engine import make_url

from healthsathi.application.app_state import AppState
from healthsathi.application.services.auth_service import register_user
from healthsathi.config import Settings, get_settings
from healthsathi.core.logging import configure_logging
from healthsathi.domain.repositories.user_repository import UserRepository
from healthsathi.domain.schemas.auth import UserRole
from healthsathi.infrastructure.repositories.document_store import SQLAlchemyDocumentStore
from healthsathi.infrastructure.repositories.report_repository import StoreReportRepository
from healthsathi.infrastructure.repositories.user_repository import StoreUserRepository

logger = structlog.get_logger(__name__)

DEMO_USERS = [
    {
        "email": "doctor@healthsathi.local",
        "password": "doctor123",
        "name": "Dr. Demo",
        "role": UserRole.DOCTOR,
        "specialization": "General Physician",
    },
    {
        "email": "patient@healthsathi.local",
        "password": "patient123",
        "name": "Demo Patient",
        "role": UserRole.PATIENT,
    },
]


def build_store(settings: Settings) -> SQLAlchemyDocumentStore:
    """Create the store handle, making sure a SQLite file has a directory to live in."""
    url = make_url(settings.DATABASE_URL)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        directory = os.path.dirname(url.database)
        if directory:
            os.makedirs(directory, exist_ok=True)
    return SQLAlchemyDocumentStore(settings.DATABASE_URL)


async def seed_demo_users(users: UserRepository) -> int:
    """Create the demo doctor and patient if they don't exist. Idempotent."""
    created = 0
    for demo in DEMO_USERS:
        if await users.get_by_email(demo["email"]):
            continue
        await register_user(users, **demo)
        logger.info("Demo user created", email=demo["email"], role=demo["role"].value)
        created += 1
    return created


@asynccontextmanager
async def app_session(settings: Optional[Settings] = None) -> AsyncIterator[AppState]:
    """Open the store for the lifetime of the application and hand out its state."""
    settings = settings or get_settings()
    configure_logging(settings)
    logger.info("Starting HealthSathi...", env=settings.ENVIRONMENT)

    store = build_store(settings)
    await store.open_connection()
    try:
        users = StoreUserRepository(store)
        reports = StoreReportRepository(store)
        if settings.SEED_DEMO_USERS:
            await seed_demo_users(users)
        yield AppState(users, reports)
    finally:
        await store.close()
        logger.info("HealthSathi stopped")
