import os

# Must be set before healthsathi.config is first imported
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SIMULATED_LATENCY_MS", "0")

import asyncio
from typing import Any, Dict, Optional

import pytest

from healthsathi.application.app_state import AppState
from healthsathi.core.exceptions import AppError
from healthsathi.domain.schemas.auth import UserRole
from healthsathi.domain.schemas.report import HealthReport, ReportStatus
from healthsathi.infrastructure.repositories.document_store import SQLAlchemyDocumentStore
from healthsathi.infrastructure.repositories.report_repository import StoreReportRepository
from healthsathi.infrastructure.repositories.user_repository import StoreUserRepository


class FlakyMixin:
    """Injectable write delay and failures on top of a real repository."""

    def _init_flaky(self) -> None:
        self.write_gate: Optional[asyncio.Event] = None
        self.fail_writes: Optional[AppError] = None
        self.fail_reads: Optional[AppError] = None
        self.read_calls = 0

    async def _before_write(self) -> None:
        if self.write_gate is not None:
            await self.write_gate.wait()
        if self.fail_writes is not None:
            raise self.fail_writes

    def _before_read(self) -> None:
        self.read_calls += 1
        if self.fail_reads is not None:
            raise self.fail_reads


class FlakyReportRepository(FlakyMixin, StoreReportRepository):
    def __init__(self, store):
        super().__init__(store)
        self._init_flaky()

    async def merge_update(self, report_id: str, updates: Dict[str, Any]) -> HealthReport:
        await self._before_write()
        return await super().merge_update(report_id, updates)

    async def list_by_owner(self, user_id: str):
        self._before_read()
        return await super().list_by_owner(user_id)

    async def list_by_target_doctor(self, doctor_id: str):
        self._before_read()
        return await super().list_by_target_doctor(doctor_id)


class FlakyUserRepository(FlakyMixin, StoreUserRepository):
    def __init__(self, store):
        super().__init__(store)
        self._init_flaky()

    async def merge_update(self, uid: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        await self._before_write()
        return await super().merge_update(uid, updates)

    async def list_by_role(self, role: UserRole):
        self._before_read()
        return await super().list_by_role(role)


def make_report(**overrides: Any) -> HealthReport:
    data = {
        "id": "r1",
        "userId": "patient-1",
        "targetDoctorId": "doctor-1",
        "timestamp": 100,
        "status": ReportStatus.PENDING,
        "patientName": "Asha",
        "fileName": "blood-panel.pdf",
    }
    data.update(overrides)
    return HealthReport.model_validate(data)


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'healthsathi.db'}"


@pytest.fixture
async def store(db_url):
    store = SQLAlchemyDocumentStore(db_url)
    await store.open_connection()
    yield store
    await store.close()


@pytest.fixture
def user_repo(store):
    return FlakyUserRepository(store)


@pytest.fixture
def report_repo(store):
    return FlakyReportRepository(store)


@pytest.fixture
def app_state(user_repo, report_repo):
    return AppState(user_repo, report_repo)
