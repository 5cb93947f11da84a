"""Wire contract for the class creation workflow.

Every model serializes with camelCase aliases and accepts either spelling on input, so
the same classes are used by the API routes and by the pipeline's HTTP gateway.
"""

from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.models.class_draft import ApprovalStatus, ClassModality, ClassStatus
from app.models.resource import ResourceType
from app.models.weekday import WEEKDAY_ORDER, Weekday


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ConflictReason(str, Enum):
    capacity_exceeded = "CAPACITY_EXCEEDED"
    booking_conflict = "BOOKING_CONFLICT"
    class_booking = "CLASS_BOOKING"
    missing_time_slot = "MISSING_TIME_SLOT"
    unknown = "UNKNOWN"


class TeacherAvailabilityStatus(str, Enum):
    fully_available = "FULLY_AVAILABLE"
    partially_available = "PARTIALLY_AVAILABLE"
    unavailable = "UNAVAILABLE"


class TeacherConflictKind(str, Enum):
    no_availability = "NO_AVAILABILITY"
    teaching_conflict = "TEACHING_CONFLICT"
    leave_conflict = "LEAVE_CONFLICT"
    skill_mismatch = "SKILL_MISMATCH"


def _sorted_weekdays(value: list[Weekday]) -> list[Weekday]:
    unique = set(value)
    return [day for day in WEEKDAY_ORDER if day in unique]


# ============ Basic info ============


class ClassBasicInfo(CamelModel):
    branch_id: str = Field(min_length=1, max_length=36)
    course_id: str = Field(min_length=1, max_length=36)
    code: str | None = Field(default=None, max_length=50)
    name: str = Field(min_length=1, max_length=255)
    modality: ClassModality = ClassModality.offline
    start_date: date
    schedule_days: list[Weekday] = Field(min_length=1, max_length=7)
    max_capacity: int = Field(ge=1, le=1000)
    regenerate_sessions: bool = False

    @field_validator("name")
    @classmethod
    def normalize_name(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Name cannot be empty")
        return trimmed

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().upper() or None

    @field_validator("schedule_days")
    @classmethod
    def order_schedule_days(cls, value: list[Weekday]) -> list[Weekday]:
        return _sorted_weekdays(value)


class SessionSummary(CamelModel):
    total_sessions: int
    start_date: date | None = None
    end_date: date | None = None


class DraftCreated(CamelModel):
    class_id: str
    code: str
    status: ClassStatus
    session_summary: SessionSummary


class ClassDraftOut(CamelModel):
    id: str
    code: str
    name: str
    branch_id: str
    course_id: str
    course_code: str | None = None
    hours_per_session: float | None = None
    modality: ClassModality
    start_date: date
    planned_end_date: date | None = None
    schedule_days: list[Weekday]
    max_capacity: int
    status: ClassStatus
    approval_status: ApprovalStatus | None = None
    rejection_reason: str | None = None
    editable: bool
    lock_reason: str | None = None


class ClassCodePreview(CamelModel):
    preview_code: str
    prefix: str
    next_sequence: int
    warning: str | None = None


# ============ Sessions ============


class ClassSessionOut(CamelModel):
    session_id: str
    sequence_number: int
    date: date
    day_of_week: Weekday
    week_number: int
    time_slot_template_id: str | None = None
    time_slot_name: str | None = None
    resource_id: str | None = None
    resource_name: str | None = None
    teacher_id: str | None = None
    teacher_name: str | None = None
    resource_override: bool = False

    @property
    def has_time_slot(self) -> bool:
        return self.time_slot_template_id is not None

    @property
    def has_resource(self) -> bool:
        return self.resource_id is not None

    @property
    def has_teacher(self) -> bool:
        return self.teacher_id is not None


class WeekGroup(CamelModel):
    week_number: int
    week_range: str
    session_count: int
    session_ids: list[str]


class DateRange(CamelModel):
    start_date: date | None = None
    end_date: date | None = None


class ClassSessionsOverview(CamelModel):
    class_id: str
    class_code: str
    total_sessions: int
    date_range: DateRange
    sessions: list[ClassSessionOut]
    grouped_by_week: list[WeekGroup]


# ============ Time slots ============


class TimeSlotOption(CamelModel):
    id: str
    name: str
    start_time: str
    end_time: str
    duration_hours: float


class TimeSlotAssignment(CamelModel):
    day_of_week: Weekday
    time_slot_template_id: str = Field(min_length=1, max_length=36)


class AssignTimeSlotsRequest(CamelModel):
    assignments: list[TimeSlotAssignment] = Field(min_length=1, max_length=7)


class PatternApplyResult(CamelModel):
    success_count: int
    failed_count: int = 0


# ============ Resources ============


class ResourceOption(CamelModel):
    id: str
    code: str
    name: str
    resource_type: ResourceType
    capacity: int
    display_name: str
    availability_rate: float | None = None
    conflict_count: int | None = None
    total_sessions: int | None = None
    is_recommended: bool | None = None


class ResourceAssignment(CamelModel):
    day_of_week: Weekday
    resource_id: str = Field(min_length=1, max_length=36)


class AssignResourcesRequest(CamelModel):
    pattern: list[ResourceAssignment] = Field(min_length=1, max_length=7)
    force_override: bool = False
    include_suggestions: bool = False


class ResourceConflict(CamelModel):
    session_id: str
    session_number: int | None = None
    session_date: date | None = None
    day_of_week: Weekday
    conflict_reason: ConflictReason
    requested_capacity: int | None = None
    available_capacity: int | None = None
    resource_id: str | None = None
    resource_name: str | None = None
    time_slot_start: str | None = None
    time_slot_end: str | None = None
    suggestions: list[ResourceOption] = Field(default_factory=list)
    conflicting_classes: list[str] = Field(default_factory=list)
    conflict_details: str | None = None


class AssignResourcesResult(CamelModel):
    success_count: int
    skipped_count: int = 0
    conflict_count: int
    conflicts: list[ResourceConflict]


class AssignSessionResourceRequest(CamelModel):
    resource_id: str = Field(min_length=1, max_length=36)


class SessionResourceAssigned(CamelModel):
    session_id: str
    session_number: int | None = None
    resource_id: str
    resource_name: str
    conflict_resolved: bool


# ============ Teachers ============


class TeacherDayAvailability(CamelModel):
    available: int
    total: int
    rate: float


class TeacherConflictSummary(CamelModel):
    no_availability: int = 0
    teaching_conflict: int = 0
    leave_conflict: int = 0
    skill_mismatch: int = 0
    total_conflicts: int = 0


class ConflictingClassRef(CamelModel):
    id: str
    name: str
    code: str


class TeacherConflictDetail(CamelModel):
    session_id: str
    session_date: date
    day_of_week: Weekday
    kind: TeacherConflictKind
    time_slot_start: str | None = None
    time_slot_end: str | None = None
    conflicting_class: ConflictingClassRef | None = None


class TeacherAvailability(CamelModel):
    teacher_id: str
    full_name: str
    email: str
    skills: list[str] = Field(default_factory=list)
    total_sessions: int
    available_sessions: int
    conflict_count: int
    availability_rate: float
    is_recommended: bool
    availability_status: TeacherAvailabilityStatus
    conflicts: TeacherConflictSummary = Field(default_factory=TeacherConflictSummary)
    availability_by_day: dict[Weekday, TeacherDayAvailability] | None = None
    conflict_details: list[TeacherConflictDetail] | None = None


class TeacherDayAvailabilityInfo(CamelModel):
    day_of_week: Weekday
    total_sessions: int
    available_sessions: int
    first_date: date | None = None
    last_date: date | None = None
    is_fully_available: bool


class TeacherAvailableByDay(CamelModel):
    teacher_id: str
    full_name: str
    email: str
    skills: list[str] = Field(default_factory=list)
    total_class_sessions: int
    available_days: list[TeacherDayAvailabilityInfo]


class AssignTeacherRequest(CamelModel):
    teacher_id: str = Field(min_length=1, max_length=36)
    # None assigns across the whole class.
    session_ids: list[str] | None = Field(default=None, max_length=500)


class AssignTeacherResult(CamelModel):
    assigned_count: int
    needs_substitute: bool
    remaining_sessions: int


# ============ Readiness and submission ============


class ValidationChecks(CamelModel):
    total_sessions: int
    sessions_with_time_slots: int
    sessions_with_resources: int
    sessions_with_teachers: int
    sessions_without_time_slots: int
    sessions_without_resources: int
    sessions_without_teachers: int
    completion_percentage: float
    all_sessions_have_time_slots: bool
    all_sessions_have_resources: bool
    all_sessions_have_teachers: bool
    has_multiple_teachers: bool = False
    start_date_in_past: bool = False
    has_validation_errors: bool = False
    has_validation_warnings: bool = False


class ReadinessReport(CamelModel):
    class_id: str
    valid: bool
    can_submit: bool
    message: str
    checks: ValidationChecks
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class SubmitResult(CamelModel):
    class_id: str
    status: ClassStatus
    approval_status: ApprovalStatus | None


class RejectRequest(CamelModel):
    reason: str = Field(min_length=3, max_length=2000)
