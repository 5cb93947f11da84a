"""Teacher ranking, lazy conflict detail and assignment, including substitutes for
sessions a first teacher could not cover."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from app.models.weekday import Weekday
from app.pipeline.concurrency import DraftAccess
from app.pipeline.errors import ErrorKind, PipelineError
from app.pipeline.gateway import ClassCreationGateway
from app.pipeline.guard import require_editable
from app.schemas.class_creation import AssignTeacherResult, ClassDraftOut, ClassSessionOut, TeacherAvailability

logger = logging.getLogger(__name__)


def availability_rate(candidate: TeacherAvailability) -> float:
    if not candidate.total_sessions:
        return 0.0
    return candidate.available_sessions / candidate.total_sessions * 100


@dataclass(frozen=True)
class TeacherRanking:
    attempt: int
    recommended: tuple[TeacherAvailability, ...]
    conflicted: tuple[TeacherAvailability, ...]


def partition_candidates(candidates: list[TeacherAvailability], attempt: int = 0) -> TeacherRanking:
    recommended = tuple(item for item in candidates if availability_rate(item) == 100)
    conflicted = tuple(item for item in candidates if availability_rate(item) < 100)
    return TeacherRanking(attempt=attempt, recommended=recommended, conflicted=conflicted)


class TeacherMatchingEngine:
    def __init__(self, gateway: ClassCreationGateway, *, access: DraftAccess | None = None) -> None:
        self._gateway = gateway
        self._access = access or DraftAccess()
        self._attempt = 0
        self._details: dict[str, asyncio.Future] = {}

    @property
    def attempt(self) -> int:
        return self._attempt

    async def rank_candidates(self, class_id: str) -> TeacherRanking:
        self._attempt += 1
        self._details = {}
        async with self._access.read():
            candidates = await self._gateway.list_teacher_candidates(class_id)
        return partition_candidates(candidates, self._attempt)

    async def _fetch_detail(self, class_id: str, teacher_id: str) -> TeacherAvailability:
        async with self._access.read():
            found = await self._gateway.list_teacher_candidates(
                class_id,
                include_conflict_detail=True,
                include_day_breakdown=True,
                teacher_id=teacher_id,
            )
        if not found:
            raise PipelineError(ErrorKind.not_found, f"Teacher {teacher_id} is not a candidate for this class")
        return found[0]

    async def load_conflict_detail(self, class_id: str, teacher_id: str) -> TeacherAvailability:
        """Per-session conflicts for one candidate, fetched at most once per ranking attempt."""
        cached = self._details.get(teacher_id)
        if cached is None:
            cached = asyncio.ensure_future(self._fetch_detail(class_id, teacher_id))
            details = self._details
            details[teacher_id] = cached

            def _forget_failure(future: asyncio.Future) -> None:
                if future.cancelled() or future.exception() is not None:
                    if details.get(teacher_id) is future:
                        details.pop(teacher_id, None)

            cached.add_done_callback(_forget_failure)
        return await asyncio.shield(cached)

    async def assign_teacher(
        self,
        draft: ClassDraftOut,
        teacher_id: str,
        session_ids: list[str] | None = None,
    ) -> AssignTeacherResult:
        require_editable(draft)
        async with self._access.mutate():
            result = await self._gateway.assign_teacher(draft.id, teacher_id, session_ids)
        if result.needs_substitute:
            logger.info(
                "Teacher %s left %d session(s) of class %s uncovered",
                teacher_id,
                result.remaining_sessions,
                draft.code,
            )
        return result

    async def uncovered_sessions(self, class_id: str) -> list[ClassSessionOut]:
        async with self._access.read():
            overview = await self._gateway.list_sessions(class_id)
        return [item for item in overview.sessions if not item.teacher_id]

    async def substitute_candidates(self, class_id: str) -> list[TeacherAvailability]:
        """Teachers free for every session that still lacks a teacher."""
        uncovered = {item.session_id for item in await self.uncovered_sessions(class_id)}
        if not uncovered:
            return []
        async with self._access.read():
            candidates = await self._gateway.list_teacher_candidates(class_id, include_conflict_detail=True)
        result = []
        for candidate in candidates:
            blocked = {detail.session_id for detail in candidate.conflict_details or []}
            if candidate.available_sessions and not blocked & uncovered:
                result.append(candidate)
        return result

    async def assign_substitute(self, draft: ClassDraftOut, teacher_id: str) -> AssignTeacherResult:
        """Assign a second teacher only to the sessions that are still uncovered."""
        uncovered = [item.session_id for item in await self.uncovered_sessions(draft.id)]
        if not uncovered:
            return AssignTeacherResult(assigned_count=0, needs_substitute=False, remaining_sessions=0)
        return await self.assign_teacher(draft, teacher_id, uncovered)

    async def assign_teacher_for_weekday(
        self,
        draft: ClassDraftOut,
        teacher_id: str,
        day_of_week: Weekday,
    ) -> AssignTeacherResult:
        if day_of_week not in draft.schedule_days:
            raise PipelineError(ErrorKind.validation, f"{day_of_week.value} is not part of the class schedule")
        async with self._access.read():
            overview = await self._gateway.list_sessions(draft.id)
        session_ids = [item.session_id for item in overview.sessions if item.day_of_week == day_of_week]
        return await self.assign_teacher(draft, teacher_id, session_ids)
