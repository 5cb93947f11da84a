"""Six-step class creation wizard.

Navigation state is the serializable ``WizardState``. Moving forward re-checks each
step's completion predicate against live data; moving back is always allowed. A saved
state is adopted through ``restore``, which applies the same checks.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import IntEnum
from urllib.parse import parse_qs, urlencode

from app.models.weekday import Weekday
from app.pipeline.concurrency import DraftAccessRegistry
from app.pipeline.conflicts import ConflictResolutionEngine
from app.pipeline.errors import ErrorKind, PipelineError
from app.pipeline.gateway import ClassCreationGateway
from app.pipeline.patterns import PatternAssignmentEngine
from app.pipeline.readiness import ReadinessGate
from app.pipeline.teachers import TeacherMatchingEngine
from app.schemas.class_creation import AssignResourcesResult, ClassBasicInfo, ClassDraftOut, DraftCreated, SubmitResult
from app.services.lifecycle import evaluate_lifecycle

logger = logging.getLogger(__name__)


class WizardStep(IntEnum):
    BASIC_INFO = 1
    SESSION_REVIEW = 2
    TIME_SLOTS = 3
    RESOURCES = 4
    TEACHER = 5
    READINESS = 6

    @property
    def title(self) -> str:
        return STEP_TITLES[self]


STEP_TITLES = {
    WizardStep.BASIC_INFO: "Basic information",
    WizardStep.SESSION_REVIEW: "Review sessions",
    WizardStep.TIME_SLOTS: "Time slots",
    WizardStep.RESOURCES: "Resources",
    WizardStep.TEACHER: "Teacher",
    WizardStep.READINESS: "Validate and submit",
}


@dataclass(frozen=True)
class WizardState:
    draft_id: str | None = None
    current_step: WizardStep = WizardStep.BASIC_INFO

    def to_query(self) -> str:
        params = {"step": int(self.current_step)}
        if self.draft_id:
            params["classId"] = self.draft_id
        return urlencode(params)

    @classmethod
    def from_query(cls, query: str) -> "WizardState":
        params = parse_qs(query.lstrip("?"))
        draft_id = (params.get("classId") or [None])[0]
        raw_step = (params.get("step") or ["1"])[0]
        try:
            step = WizardStep(int(raw_step))
        except ValueError:
            step = WizardStep.BASIC_INFO
        # Without a draft only the first step is meaningful.
        if draft_id is None:
            step = WizardStep.BASIC_INFO
        return cls(draft_id=draft_id, current_step=step)

    def to_json(self) -> str:
        return json.dumps({"draftId": self.draft_id, "currentStep": int(self.current_step)})

    @classmethod
    def from_json(cls, raw: str) -> "WizardState":
        data = json.loads(raw)
        draft_id = data.get("draftId")
        try:
            step = WizardStep(int(data.get("currentStep", 1)))
        except (TypeError, ValueError):
            step = WizardStep.BASIC_INFO
        if draft_id is None:
            step = WizardStep.BASIC_INFO
        return cls(draft_id=draft_id, current_step=step)


@dataclass
class WizardProgress:
    completed: set[WizardStep] = field(default_factory=set)
    locked: bool = False
    lock_reason: str | None = None
    submitted: bool = False


class WizardOrchestrator:
    def __init__(
        self,
        gateway: ClassCreationGateway,
        state: WizardState | None = None,
        *,
        access: DraftAccessRegistry | None = None,
    ) -> None:
        self._gateway = gateway
        self._access = access or DraftAccessRegistry()
        # A saved step is only trusted after restore() re-checks it.
        self.state = WizardState(draft_id=state.draft_id) if state else WizardState()
        self.progress = WizardProgress()
        self.patterns = PatternAssignmentEngine(gateway, access=self._access)
        self.conflicts: ConflictResolutionEngine | None = None

    # ============ Engines bound to the current draft ============

    def _require_draft_id(self) -> str:
        if not self.state.draft_id:
            raise PipelineError(ErrorKind.validation, "Create the class before continuing")
        return self.state.draft_id

    def teachers(self) -> TeacherMatchingEngine:
        return TeacherMatchingEngine(self._gateway, access=self._access.for_draft(self._require_draft_id()))

    def readiness(self) -> ReadinessGate:
        return ReadinessGate(self._gateway, access=self._access.for_draft(self._require_draft_id()))

    def start_conflict_resolution(
        self,
        draft: ClassDraftOut,
        pattern: Mapping[Weekday, str],
        result: AssignResourcesResult,
    ) -> ConflictResolutionEngine | None:
        if not result.conflicts:
            self.conflicts = None
            return None
        self.conflicts = ConflictResolutionEngine(
            self._gateway,
            draft,
            pattern,
            result.conflicts,
            access=self._access.for_draft(draft.id),
        )
        return self.conflicts

    async def _call(self, operation):
        """Await an operation, re-asserting the locked state on lifecycle or permission errors."""
        try:
            return await operation
        except PipelineError as exc:
            if exc.locks_draft:
                self.progress.locked = True
                self.progress.lock_reason = exc.message
                logger.info("Wizard for %s locked: %s", self.state.draft_id, exc.message)
            raise

    async def load_draft(self) -> ClassDraftOut:
        draft_id = self._require_draft_id()
        async with self._access.for_draft(draft_id).read():
            draft = await self._call(self._gateway.get_draft(draft_id))
        decision = evaluate_lifecycle(draft.status, draft.approval_status)
        self.progress.locked = not decision.editable
        self.progress.lock_reason = decision.reason
        return draft

    # ============ Step 1 ============

    async def create_draft(self, info: ClassBasicInfo) -> DraftCreated:
        if self.state.draft_id:
            raise PipelineError(ErrorKind.validation, "A class has already been created in this wizard")
        created = await self._call(self._gateway.create_draft(info))
        self.state = WizardState(draft_id=created.class_id, current_step=WizardStep.BASIC_INFO)
        self.progress.completed.add(WizardStep.BASIC_INFO)
        return created

    async def update_draft(self, info: ClassBasicInfo) -> ClassDraftOut:
        draft = await self.load_draft()
        if self.progress.locked:
            raise PipelineError(ErrorKind.not_editable, self.progress.lock_reason or "Class cannot be edited")
        async with self._access.for_draft(draft.id).mutate():
            return await self._call(self._gateway.update_draft(draft.id, info))

    async def apply_resources(
        self,
        selections: Mapping[Weekday | str, str | None],
        *,
        include_suggestions: bool = True,
    ) -> AssignResourcesResult:
        draft = await self.load_draft()
        pattern, result = await self._call(
            self.patterns.apply_resources(draft, selections, include_suggestions=include_suggestions)
        )
        self.start_conflict_resolution(draft, pattern, result)
        return result

    # ============ Navigation ============

    async def is_step_complete(self, step: WizardStep) -> bool:
        """Completion predicate of ``step`` evaluated against live data."""
        if not self.state.draft_id:
            return False
        draft_id = self.state.draft_id
        if step == WizardStep.BASIC_INFO:
            try:
                async with self._access.for_draft(draft_id).read():
                    await self._gateway.get_draft(draft_id)
            except PipelineError as exc:
                if exc.kind == ErrorKind.not_found:
                    return False
                raise
            return True
        if step == WizardStep.READINESS:
            return self.progress.submitted

        async with self._access.for_draft(draft_id).read():
            overview = await self._call(self._gateway.list_sessions(draft_id))
        sessions = overview.sessions
        if not sessions:
            return False
        if step == WizardStep.SESSION_REVIEW:
            return True
        if step == WizardStep.TIME_SLOTS:
            return all(item.time_slot_template_id for item in sessions)
        if step == WizardStep.RESOURCES:
            pending = self.conflicts.pending if self.conflicts is not None else []
            return not pending and all(item.resource_id for item in sessions)
        return all(item.teacher_id for item in sessions)

    def is_marked_complete(self, step: WizardStep) -> bool:
        return step in self.progress.completed

    async def go_to(self, target: WizardStep) -> WizardState:
        target = WizardStep(target)
        current = self.state.current_step
        if target <= current:
            self.state = replace(self.state, current_step=target)
            return self.state
        for step in range(current, target):
            step = WizardStep(step)
            if not await self.is_step_complete(step):
                raise PipelineError(
                    ErrorKind.validation,
                    f"Complete step {int(step)} ({step.title}) before continuing",
                    {"step": int(step)},
                )
            self.progress.completed.add(step)
        self.state = replace(self.state, current_step=target)
        return self.state

    async def restore(self, state: WizardState) -> WizardState:
        """Adopt a saved state, moved back to the first step whose predecessors are not complete."""
        self.state = WizardState(draft_id=state.draft_id)
        self.progress = WizardProgress()
        self.conflicts = None
        if not state.draft_id:
            return self.state
        if not await self.is_step_complete(WizardStep.BASIC_INFO):
            logger.info("Saved wizard draft %s no longer exists", state.draft_id)
            self.state = WizardState()
            return self.state
        await self.load_draft()
        target = WizardStep.BASIC_INFO
        for step in range(WizardStep.BASIC_INFO, state.current_step):
            step = WizardStep(step)
            if not await self.is_step_complete(step):
                break
            self.progress.completed.add(step)
            target = WizardStep(step + 1)
        if target != state.current_step:
            logger.info("Wizard for %s restored at step %d instead of %d", state.draft_id, target, state.current_step)
        self.state = replace(self.state, current_step=target)
        return self.state

    async def next(self) -> WizardState:
        if self.state.current_step == WizardStep.READINESS:
            return self.state
        return await self.go_to(WizardStep(self.state.current_step + 1))

    async def back(self) -> WizardState:
        if self.state.current_step == WizardStep.BASIC_INFO:
            return self.state
        return await self.go_to(WizardStep(self.state.current_step - 1))

    # ============ Submission and exit ============

    async def submit(self) -> SubmitResult:
        draft = await self.load_draft()
        result = await self._call(self.readiness().submit(draft))
        self.progress.submitted = True
        self.progress.completed.add(WizardStep.READINESS)
        decision = evaluate_lifecycle(result.status, result.approval_status)
        self.progress.locked = not decision.editable
        self.progress.lock_reason = decision.reason
        return result

    async def leave(self, *, keep_draft: bool) -> WizardState:
        """Exit the wizard; the draft is deleted unless the caller chose to keep it."""
        draft_id = self.state.draft_id
        if draft_id and not keep_draft and not self.progress.submitted:
            async with self._access.for_draft(draft_id).mutate():
                await self._call(self._gateway.delete_draft(draft_id))
            self._access.forget(draft_id)
            logger.info("Deleted draft %s on wizard exit", draft_id)
        self.state = WizardState()
        self.progress = WizardProgress()
        self.conflicts = None
        return self.state
