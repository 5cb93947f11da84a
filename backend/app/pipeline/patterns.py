"""Weekday patterns: prefill from existing assignments, proposal and fan-out requests."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from app.core.config import get_settings
from app.models.weekday import WEEKDAY_ORDER, Weekday
from app.pipeline.concurrency import DraftAccessRegistry, LatestOnly
from app.pipeline.errors import ErrorKind, PipelineError
from app.pipeline.gateway import ClassCreationGateway
from app.pipeline.guard import require_editable
from app.schemas.class_creation import (
    AssignResourcesResult,
    ClassDraftOut,
    ClassSessionOut,
    PatternApplyResult,
    ResourceOption,
    TimeSlotOption,
)

logger = logging.getLogger(__name__)


class Dimension(str, Enum):
    time_slot = "time_slot_template_id"
    resource = "resource_id"
    teacher = "teacher_id"


def derive_current_pattern(
    sessions: Sequence[ClassSessionOut],
    weekdays: Iterable[Weekday],
    dimension: Dimension,
) -> dict[Weekday, str | None]:
    """Most frequent existing value per weekday, None when no session on that day has one."""
    pattern: dict[Weekday, str | None] = {}
    for day in weekdays:
        tally = Counter(
            value
            for value in (getattr(item, dimension.value) for item in sessions if item.day_of_week == day)
            if value
        )
        # Counter keeps insertion order, so ties resolve to the first value encountered.
        pattern[day] = tally.most_common(1)[0][0] if tally else None
    return pattern


def propose_pattern(selections: Mapping[Weekday | str, str | None], weekdays: Iterable[Weekday]) -> dict[Weekday, str]:
    active = set(weekdays)
    invalid: dict[str, str] = {}
    pattern: dict[Weekday, str] = {}
    for key, value in selections.items():
        try:
            day = Weekday(key)
        except ValueError:
            invalid[str(key)] = "Unknown weekday"
            continue
        if day not in active:
            invalid[day.value] = "Weekday is not part of the class schedule"
            continue
        if value:
            pattern[day] = value
    if invalid:
        raise PipelineError(ErrorKind.validation, "Pattern contains weekdays outside the schedule", invalid)
    return {day: pattern[day] for day in WEEKDAY_ORDER if day in pattern}


def filter_time_slots(
    templates: Iterable[TimeSlotOption],
    hours_per_session: float,
    tolerance: float | None = None,
) -> list[TimeSlotOption]:
    if tolerance is None:
        tolerance = get_settings().time_slot_duration_tolerance_hours
    return [item for item in templates if abs(item.duration_hours - hours_per_session) <= tolerance]


@dataclass
class TimeSlotChoices:
    """Per-weekday time slot candidates and the current selection."""

    weekdays: list[Weekday]
    candidates: dict[Weekday, list[TimeSlotOption]]
    selected: dict[Weekday, str | None] = field(default_factory=dict)

    @property
    def non_assignable(self) -> list[Weekday]:
        return [day for day in self.weekdays if not self.candidates.get(day)]

    def select(self, day: Weekday, template_id: str | None) -> None:
        if day not in self.weekdays:
            raise PipelineError(ErrorKind.validation, f"{day.value} is not part of the class schedule")
        if template_id and template_id not in {item.id for item in self.candidates.get(day, [])}:
            raise PipelineError(ErrorKind.validation, f"Time slot is not a valid choice for {day.value}")
        self.selected[day] = template_id

    @property
    def is_complete(self) -> bool:
        if self.non_assignable:
            return False
        return all(self.selected.get(day) for day in self.weekdays)

    def pattern(self) -> dict[Weekday, str]:
        return propose_pattern(self.selected, self.weekdays)


class PatternAssignmentEngine:
    def __init__(
        self,
        gateway: ClassCreationGateway,
        *,
        access: DraftAccessRegistry | None = None,
        latest: LatestOnly | None = None,
    ) -> None:
        self._gateway = gateway
        self._access = access or DraftAccessRegistry()
        self._latest = latest or LatestOnly()

    async def load_sessions(self, class_id: str) -> list[ClassSessionOut]:
        async with self._access.for_draft(class_id).read():
            overview = await self._gateway.list_sessions(class_id)
        return overview.sessions

    async def load_time_slot_choices(self, draft: ClassDraftOut) -> TimeSlotChoices:
        guard = self._access.for_draft(draft.id)
        async with guard.read():
            templates = await self._gateway.list_time_slot_candidates(draft.branch_id)
            overview = await self._gateway.list_sessions(draft.id)
        usable = filter_time_slots(templates, draft.hours_per_session or 0.0)
        choices = TimeSlotChoices(
            weekdays=list(draft.schedule_days),
            candidates={day: list(usable) for day in draft.schedule_days},
        )
        usable_ids = {item.id for item in usable}
        for day, value in derive_current_pattern(overview.sessions, draft.schedule_days, Dimension.time_slot).items():
            choices.selected[day] = value if value in usable_ids else None
        if choices.non_assignable:
            logger.info("No time slot matches %.2fh for class %s", draft.hours_per_session or 0.0, draft.code)
        return choices

    async def apply_time_slots(self, draft: ClassDraftOut, choices: TimeSlotChoices) -> PatternApplyResult:
        require_editable(draft)
        if not choices.is_complete:
            missing = [day.value for day in draft.schedule_days if not choices.selected.get(day)]
            raise PipelineError(
                ErrorKind.validation,
                "Choose a time slot for every weekday before applying",
                {"weekdays": missing, "non_assignable": [day.value for day in choices.non_assignable]},
            )
        pattern = choices.pattern()
        async with self._access.for_draft(draft.id).mutate():
            return await self._gateway.apply_time_slot_pattern(draft.id, pattern)

    async def resource_candidates(
        self,
        class_id: str,
        day_of_week: Weekday,
        time_slot_id: str | None,
    ) -> list[ResourceOption] | None:
        """Candidates for one weekday; None when a newer request for that weekday superseded this one."""
        key = ("resources", class_id, day_of_week)
        token = self._latest.begin(key)
        async with self._access.for_draft(class_id).read():
            options = await self._gateway.list_resource_candidates(class_id, day_of_week, time_slot_id)
        if not self._latest.is_current(key, token):
            logger.debug("Dropped superseded resource candidates for %s %s", class_id, day_of_week.value)
            return None
        return options

    async def apply_resources(
        self,
        draft: ClassDraftOut,
        selections: Mapping[Weekday | str, str | None],
        *,
        force_override: bool = False,
        include_suggestions: bool = False,
    ) -> tuple[dict[Weekday, str], AssignResourcesResult]:
        require_editable(draft)
        pattern = propose_pattern(selections, draft.schedule_days)
        if not pattern:
            raise PipelineError(ErrorKind.validation, "Choose at least one resource before applying")
        async with self._access.for_draft(draft.id).mutate():
            result = await self._gateway.apply_resource_pattern(
                draft.id,
                pattern,
                force_override=force_override,
                include_suggestions=include_suggestions,
            )
        return pattern, result
