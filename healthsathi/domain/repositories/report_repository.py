"""
Report Repository Interface.
Defines data access operations for the reports collection.
"""

from typing import Any, Dict, List, Optional, Protocol

from healthsathi.domain.schemas.report import HealthReport


class ReportRepository(Protocol):
    """Interface for Report-specific operations. Results are unordered."""

    async def get(self, report_id: str) -> Optional[HealthReport]:
        ...

    async def save(self, report: HealthReport) -> HealthReport:
        """Insert or replace a report."""
        ...

    async def merge_update(self, report_id: str, updates: Dict[str, Any]) -> HealthReport:
        """Merge partial fields onto an existing report."""
        ...

    async def list_by_owner(self, user_id: str) -> List[HealthReport]:
        ...

    async def list_by_target_doctor(self, doctor_id: str) -> List[HealthReport]:
        ...

    async def list_all(self) -> List[HealthReport]:
        ...
