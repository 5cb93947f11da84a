"""Resolution of resource conflicts returned by a resource pattern fan-out.

The engine keeps one cycle of conflicts at a time. Conflicts leave the pending set when
their session is individually reassigned; once none are pending the original pattern is
re-applied with ``force_override`` so the server re-checks every untouched session. Any
conflicts from that call start a new cycle.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from app.models.weekday import WEEKDAY_ORDER, Weekday
from app.pipeline.concurrency import DraftAccess
from app.pipeline.errors import ErrorKind, PipelineError
from app.pipeline.gateway import ClassCreationGateway
from app.pipeline.guard import require_editable
from app.schemas.class_creation import AssignResourcesResult, ClassDraftOut, ResourceConflict, ResourceOption

logger = logging.getLogger(__name__)


class ConflictStatus(str, Enum):
    idle = "idle"
    loading = "loading"
    success = "success"
    error = "error"


@dataclass
class ConflictEntry:
    conflict: ResourceConflict
    status: ConflictStatus = ConflictStatus.idle
    message: str | None = None
    suggestions: list[ResourceOption] = field(default_factory=list)
    resolved_resource_id: str | None = None

    @property
    def session_id(self) -> str:
        return self.conflict.session_id

    @property
    def day_of_week(self) -> Weekday:
        return self.conflict.day_of_week

    @property
    def pending(self) -> bool:
        return self.status != ConflictStatus.success


@dataclass(frozen=True)
class DayGroup:
    day_of_week: Weekday
    entries: tuple[ConflictEntry, ...]

    @property
    def total(self) -> int:
        return len(self.entries)

    @property
    def resolved(self) -> int:
        return sum(1 for entry in self.entries if not entry.pending)

    @property
    def remaining(self) -> int:
        return self.total - self.resolved


@dataclass(frozen=True)
class BulkResult:
    success_count: int
    fail_count: int
    lock_error: PipelineError | None = None

    @property
    def attempted(self) -> int:
        return self.success_count + self.fail_count


class ConflictResolutionEngine:
    def __init__(
        self,
        gateway: ClassCreationGateway,
        draft: ClassDraftOut,
        pattern: Mapping[Weekday, str],
        conflicts: Sequence[ResourceConflict],
        *,
        access: DraftAccess | None = None,
    ) -> None:
        self._gateway = gateway
        self._draft = draft
        self._pattern = dict(pattern)
        self._access = access or DraftAccess()
        self._entries: dict[str, ConflictEntry] = {}
        self._clean_reapply = False
        self.cycle = 0
        self._start_cycle(conflicts)

    def _start_cycle(self, conflicts: Sequence[ResourceConflict]) -> None:
        self.cycle += 1
        self._entries = {
            conflict.session_id: ConflictEntry(conflict=conflict, suggestions=list(conflict.suggestions))
            for conflict in conflicts
        }

    @property
    def draft(self) -> ClassDraftOut:
        return self._draft

    @property
    def entries(self) -> list[ConflictEntry]:
        return list(self._entries.values())

    @property
    def pending(self) -> list[ConflictEntry]:
        return [entry for entry in self._entries.values() if entry.pending]

    def entry(self, session_id: str) -> ConflictEntry:
        try:
            return self._entries[session_id]
        except KeyError:
            raise PipelineError(ErrorKind.not_found, f"No conflict for session {session_id}") from None

    def groups(self) -> list[DayGroup]:
        by_day: dict[Weekday, list[ConflictEntry]] = {}
        for entry in self._entries.values():
            by_day.setdefault(entry.day_of_week, []).append(entry)
        return [DayGroup(day, tuple(by_day[day])) for day in WEEKDAY_ORDER if day in by_day]

    @property
    def is_done(self) -> bool:
        return not self.pending and self._clean_reapply

    # ============ Suggestions ============

    async def load_suggestions(self) -> int:
        """Fetch alternatives once per weekday group for conflicts arriving without any.

        Returns how many conflicts received suggestions. Results that arrive after a new
        cycle started are discarded.
        """
        cycle = self.cycle
        filled = 0
        for group in self.groups():
            lacking = [entry for entry in group.entries if entry.pending and not entry.suggestions]
            if not lacking:
                continue
            representative = lacking[0]
            try:
                async with self._access.read():
                    options = await self._gateway.list_resource_suggestions(self._draft.id, representative.session_id)
            except PipelineError as exc:
                if exc.locks_draft:
                    raise
                logger.info("Suggestions for %s unavailable: %s", group.day_of_week.value, exc.message)
                continue
            if cycle != self.cycle:
                logger.debug("Dropped suggestions from superseded conflict cycle %d", cycle)
                return filled
            for entry in lacking:
                if not entry.suggestions:
                    entry.suggestions = list(options)
                    filled += 1
        return filled

    # ============ Resolution ============

    async def resolve_session(self, session_id: str, resource_id: str) -> bool:
        """Reassign one conflicting session; failures keep it pending with the server's message."""
        entry = self.entry(session_id)
        if not entry.pending:
            return True
        require_editable(self._draft)
        entry.status = ConflictStatus.loading
        entry.message = None
        try:
            async with self._access.mutate():
                await self._gateway.assign_session_resource(self._draft.id, session_id, resource_id)
        except PipelineError as exc:
            entry.status = ConflictStatus.error
            entry.message = exc.message
            if exc.locks_draft:
                raise
            return False
        entry.status = ConflictStatus.success
        entry.resolved_resource_id = resource_id
        self._clean_reapply = False
        return True

    async def resolve_all(self, resource_id: str) -> BulkResult:
        """Apply one resource to every pending conflict, one after another."""
        snapshot = [entry.session_id for entry in self.pending]
        success = 0
        failed = 0
        lock_error: PipelineError | None = None
        for session_id in snapshot:
            try:
                ok = await self.resolve_session(session_id, resource_id)
            except PipelineError as exc:
                lock_error = lock_error or exc
                ok = False
            if ok:
                success += 1
            else:
                failed += 1
        logger.info(
            "Bulk resolution for class %s: %d succeeded, %d failed",
            self._draft.code,
            success,
            failed,
        )
        return BulkResult(success_count=success, fail_count=failed, lock_error=lock_error)

    async def reapply(self) -> AssignResourcesResult:
        """Re-submit the original pattern with force_override once nothing is pending."""
        if self.pending:
            raise PipelineError(
                ErrorKind.validation,
                f"Resolve the remaining {len(self.pending)} conflict(s) before re-applying",
            )
        require_editable(self._draft)
        async with self._access.mutate():
            result = await self._gateway.apply_resource_pattern(self._draft.id, self._pattern, force_override=True)
        if result.conflicts:
            self._clean_reapply = False
            self._start_cycle(result.conflicts)
        else:
            self._clean_reapply = True
        return result
