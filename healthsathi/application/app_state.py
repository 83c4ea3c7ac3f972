"""
Application state — the process-wide session and report cache.

Every user-visible mutation is optimistic: the in-memory state changes first,
then the store write is issued as a task. Failed writes are not rolled back;
they are recorded in ``unsynced`` until a later write or ``resync`` lands.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

import structlog

from healthsathi.application.services import auth_service, report_service
from healthsathi.core.exceptions import AppError, describe_error
from healthsathi.domain.repositories.report_repository import ReportRepository
from healthsathi.domain.repositories.user_repository import UserRepository
from healthsathi.domain.schemas.auth import AuthResult, ProfileUpdate, UserProfile, UserRole
from healthsathi.domain.schemas.report import HealthReport, ReportStatus, ReportUpdate

logger = structlog.get_logger(__name__)

REPORT = "report"
PROFILE = "profile"

Listener = Callable[["AppState"], None]
EntityUpdate = Union[ReportUpdate, ProfileUpdate]


@dataclass
class UnsyncedWrite:
    """Fields applied in memory that the store has not confirmed."""
    kind: str
    entity_id: str
    update: Dict[str, Any]
    error: AppError


class PendingWrite:
    """An optimistic mutation and its outstanding store write.

    Awaiting it yields True when the store confirmed the write, False when the
    write failed and the entity was marked unsynced. ``update`` is None for a
    retry issued by ``resync``.
    """

    def __init__(self, kind: str, entity_id: str, update: Optional[EntityUpdate], task: "asyncio.Task[bool]"):
        self.kind = kind
        self.entity_id = entity_id
        self.update = update
        self.task = task

    @property
    def done(self) -> bool:
        return self.task.done()

    def __await__(self):
        return self.task.__await__()

    def __repr__(self):
        return f"<PendingWrite {self.kind}:{self.entity_id} done={self.done}>"


class AppState:
    """Session, report collection and doctor cache shared by the UI."""

    def __init__(self, users: UserRepository, reports: ReportRepository):
        self.users_repo = users
        self.reports_repo = reports

        self.current_user_role: UserRole = UserRole.GUEST
        self.current_patient_name: str = ""
        self.current_user_id: Optional[str] = None
        self.current_user_profile: Optional[UserProfile] = None
        self.reports: List[HealthReport] = []
        self.available_doctors: List[UserProfile] = []
        self.is_loading: bool = False
        self.is_sidebar_open: bool = False
        self.sidebar_active_section: str = "profile"

        # Last read failure; None after a successful fetch
        self.reports_error: Optional[AppError] = None
        self.doctors_error: Optional[AppError] = None

        self.unsynced: Dict[Tuple[str, str], UnsyncedWrite] = {}
        self.pending_writes: Set[PendingWrite] = set()
        self._write_tails: Dict[Tuple[str, str], "asyncio.Task[bool]"] = {}
        self._listeners: List[Listener] = []

    # --- subscriptions ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _set(self, **changes: Any) -> None:
        for name, value in changes.items():
            setattr(self, name, value)
        self._notify()

    # --- synchronous actions ---

    def set_auth(
        self,
        role: UserRole,
        name: str,
        uid: Optional[str],
        profile: Optional[UserProfile] = None,
    ) -> None:
        self._set(
            current_user_role=role,
            current_patient_name=name,
            current_user_id=uid,
            current_user_profile=profile,
        )
        structlog.contextvars.bind_contextvars(user_id=uid, role=role.value)

    def set_reports(self, reports: List[HealthReport]) -> None:
        self._set(reports=list(reports))

    def add_report_local(self, report: HealthReport) -> None:
        """Prepend a report without touching the store."""
        self._set(reports=[report, *self.reports])

    def set_sidebar_open(self, open: bool, section: str = "profile") -> None:
        self._set(is_sidebar_open=open, sidebar_active_section=section)

    # --- session ---

    async def login(self, email: str, password: str) -> AuthResult:
        result = await auth_service.login_user(self.users_repo, email, password)
        self.set_auth(result.role, result.name, result.user.uid, result.user)
        return result

    async def register(
        self,
        email: str,
        password: str,
        name: str,
        role: UserRole,
        specialization: Optional[str] = None,
    ) -> AuthResult:
        result = await auth_service.register_user(
            self.users_repo, email, password, name, role, specialization
        )
        self.set_auth(result.role, result.name, result.user.uid, result.user)
        return result

    async def logout(self) -> None:
        await auth_service.logout_user()
        # Let in-flight writes settle so they cannot mark the next session unsynced
        if self.pending_writes:
            await asyncio.gather(*(w.task for w in list(self.pending_writes)))
        self.unsynced.clear()
        self._set(
            current_user_role=UserRole.GUEST,
            current_patient_name="",
            current_user_id=None,
            current_user_profile=None,
            reports=[],
            reports_error=None,
        )
        structlog.contextvars.unbind_contextvars("user_id", "role")

    # --- reads ---

    async def load_reports(self) -> None:
        role, uid = self.current_user_role, self.current_user_id
        if not uid and role != UserRole.DOCTOR:
            return

        self._set(is_loading=True)
        try:
            fetched: List[HealthReport] = []
            if role == UserRole.PATIENT and uid:
                fetched = await report_service.fetch_patient_reports(self.reports_repo, uid)
            elif role == UserRole.DOCTOR and uid:
                fetched = await report_service.fetch_reports_for_doctor(self.reports_repo, uid)
            self._set(reports=fetched, reports_error=None)
        except AppError as e:
            # Keep the previous collection; the error stays observable
            logger.error("Failed to load reports", **describe_error(e))
            self._set(reports_error=e)
        finally:
            self._set(is_loading=False)

    async def load_doctors(self) -> None:
        try:
            doctors = await auth_service.fetch_available_doctors(self.users_repo)
            self._set(available_doctors=doctors, doctors_error=None)
        except AppError as e:
            logger.error("Failed to load doctors", **describe_error(e))
            self._set(doctors_error=e)

    # --- optimistic writes ---

    async def submit_report(self, report: HealthReport) -> HealthReport:
        """Persist a new report, then show it at the top of the collection."""
        saved = await report_service.save_report(self.reports_repo, report)
        self.add_report_local(saved)
        return saved

    async def update_report_status(
        self, id: str, status: ReportStatus, notes: Optional[str] = None
    ) -> PendingWrite:
        # Notes are always rewritten; omitting them clears any previous notes
        update = ReportUpdate(status=status, doctor_notes=notes)

        changes = update.model_dump(exclude_unset=True)
        self._set(
            reports=[r.model_copy(update=changes) if r.id == id else r for r in self.reports]
        )
        return self._schedule(REPORT, id, update)

    async def update_profile(
        self, updates: Union[ProfileUpdate, Dict[str, Any]]
    ) -> Optional[PendingWrite]:
        uid, profile = self.current_user_id, self.current_user_profile
        if not uid or profile is None:
            return None

        if not isinstance(updates, ProfileUpdate):
            updates = ProfileUpdate.model_validate(updates)

        new_profile = profile.model_copy(update=updates.model_dump(exclude_unset=True))
        self._set(current_user_profile=new_profile, current_patient_name=new_profile.name)
        return self._schedule(PROFILE, uid, updates)

    @property
    def has_unsynced_changes(self) -> bool:
        return bool(self.unsynced)

    def is_report_unsynced(self, report_id: str) -> bool:
        return (REPORT, report_id) in self.unsynced

    async def resync(self) -> bool:
        """Reissue every unsynced write. Returns True when all of them landed.

        A retry is queued behind any write already pending for the same entity
        and only sends the fields still unsynced when it runs.
        """
        writes = [self._schedule(kind, entity_id, None) for kind, entity_id in list(self.unsynced)]
        if writes:
            await asyncio.gather(*(w.task for w in writes))
        return not self.unsynced

    @staticmethod
    def _update_model(entry: UnsyncedWrite) -> EntityUpdate:
        if entry.kind == REPORT:
            return ReportUpdate.model_validate(entry.update)
        return ProfileUpdate.model_validate(entry.update)

    def _schedule(self, kind: str, entity_id: str, update: Optional[EntityUpdate]) -> PendingWrite:
        # Writes to one entity run in issue order
        key = (kind, entity_id)
        previous = self._write_tails.get(key)
        task = asyncio.get_running_loop().create_task(
            self._persist(kind, entity_id, update, previous)
        )
        self._write_tails[key] = task
        pending = PendingWrite(kind, entity_id, update, task)
        self.pending_writes.add(pending)

        def finished(_: "asyncio.Task[bool]") -> None:
            self.pending_writes.discard(pending)
            if self._write_tails.get(key) is task:
                del self._write_tails[key]

        task.add_done_callback(finished)
        return pending

    async def _write(self, kind: str, entity_id: str, update: EntityUpdate) -> None:
        if kind == REPORT:
            await report_service.update_report(self.reports_repo, entity_id, update)
        else:
            await auth_service.update_user(self.users_repo, entity_id, update)

    async def _persist(
        self,
        kind: str,
        entity_id: str,
        update: Optional[EntityUpdate],
        previous_write: Optional["asyncio.Task[bool]"],
    ) -> bool:
        if previous_write is not None and not previous_write.done():
            await asyncio.wait([previous_write])

        key = (kind, entity_id)
        if update is None:
            # Retry: whatever is still unsynced now, not when it was queued
            entry = self.unsynced.get(key)
            if entry is None:
                return True
            update = self._update_model(entry)

        fields = update.to_record()
        try:
            await self._write(kind, entity_id, update)
        except AppError as e:
            logger.error(
                "Failed to persist optimistic update",
                kind=kind,
                entity_id=entity_id,
                **describe_error(e),
            )
            previous = self.unsynced.get(key)
            merged = {**previous.update, **fields} if previous else fields
            self.unsynced[key] = UnsyncedWrite(kind, entity_id, merged, e)
            self._notify()
            return False

        previous = self.unsynced.get(key)
        if previous is not None:
            remaining = {k: v for k, v in previous.update.items() if k not in fields}
            if remaining:
                self.unsynced[key] = UnsyncedWrite(kind, entity_id, remaining, previous.error)
            else:
                del self.unsynced[key]
            self._notify()
        return True
