"""
DocumentStore implementation of the Report Repository.
"""

from typing import Any, Dict, List, Optional

from healthsathi.domain.repositories.base import DocumentStore
from healthsathi.domain.repositories.report_repository import ReportRepository
from healthsathi.domain.schemas.report import HealthReport
from healthsathi.infrastructure.database import STORE_REPORTS


class StoreReportRepository(ReportRepository):
    """Report repository backed by the 'reports' collection."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get(self, report_id: str) -> Optional[HealthReport]:
        record = await self.store.get(STORE_REPORTS, report_id)
        return HealthReport.model_validate(record) if record is not None else None

    async def save(self, report: HealthReport) -> HealthReport:
        record = await self.store.put(STORE_REPORTS, report.to_record())
        return HealthReport.model_validate(record)

    async def merge_update(self, report_id: str, updates: Dict[str, Any]) -> HealthReport:
        record = await self.store.merge_update(STORE_REPORTS, report_id, updates)
        return HealthReport.model_validate(record)

    async def list_by_owner(self, user_id: str) -> List[HealthReport]:
        records = await self.store.query_by_index(STORE_REPORTS, "userId", user_id)
        return [HealthReport.model_validate(r) for r in records]

    async def list_by_target_doctor(self, doctor_id: str) -> List[HealthReport]:
        records = await self.store.query_by_index(STORE_REPORTS, "targetDoctorId", doctor_id)
        return [HealthReport.model_validate(r) for r in records]

    async def list_all(self) -> List[HealthReport]:
        records = await self.store.query_all(STORE_REPORTS)
        return [HealthReport.model_validate(r) for r in records]
