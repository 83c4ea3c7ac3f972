"""Report service — saving, fetching and reviewing health reports."""

from typing import Iterable, List

import structlog

from healthsathi.application.services.latency import simulate_latency
from healthsathi.domain.repositories.report_repository import ReportRepository
from healthsathi.domain.schemas.report import HealthReport, ReportUpdate

logger = structlog.get_logger(__name__)


def sort_newest_first(reports: Iterable[HealthReport]) -> List[HealthReport]:
    """Order by timestamp descending; ties keep store order."""
    return sorted(reports, key=lambda r: r.timestamp, reverse=True)


async def save_report(repo: ReportRepository, report: HealthReport) -> HealthReport:
    """Insert or replace a report. The store stamps updatedAt."""
    await simulate_latency()
    saved = await repo.save(report)
    logger.info(
        "Report saved",
        report_id=saved.id,
        user_id=saved.user_id,
        target_doctor_id=saved.target_doctor_id,
    )
    return saved


async def fetch_patient_reports(repo: ReportRepository, user_id: str) -> List[HealthReport]:
    await simulate_latency()
    return sort_newest_first(await repo.list_by_owner(user_id))


async def fetch_reports_for_doctor(repo: ReportRepository, doctor_id: str) -> List[HealthReport]:
    """Reports routed to one doctor."""
    await simulate_latency()
    return sort_newest_first(await repo.list_by_target_doctor(doctor_id))


async def fetch_all_reports(repo: ReportRepository) -> List[HealthReport]:
    await simulate_latency()
    return sort_newest_first(await repo.list_all())


async def update_report(repo: ReportRepository, report_id: str, updates: ReportUpdate) -> HealthReport:
    await simulate_latency()
    updated = await repo.merge_update(report_id, updates.to_record())
    logger.info("Report updated", report_id=report_id, status=updated.status.value)
    return updated
