"""Class draft lifecycle: creation, basic info edits, session listing, time-slot
fan-out, readiness and the approval transitions."""

from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime, timezone
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import DomainValidationError, ResourceNotFoundError
from app.models.branch import Branch
from app.models.class_draft import ApprovalStatus, ClassDraft, ClassSession, ClassStatus
from app.models.course import Course
from app.models.resource import Resource
from app.models.teacher import Teacher
from app.models.time_slot import TimeSlotTemplate
from app.models.user import User
from app.schemas.class_creation import (
    AssignTimeSlotsRequest,
    ClassBasicInfo,
    ClassCodePreview,
    ClassDraftOut,
    ClassSessionOut,
    ClassSessionsOverview,
    DateRange,
    DraftCreated,
    PatternApplyResult,
    ReadinessReport,
    SessionSummary,
    SubmitResult,
    WeekGroup,
)
from app.services.audit import log_activity
from app.services.lifecycle import ensure_editable, evaluate_lifecycle
from app.services.readiness import build_report
from app.services.session_generator import generate_sessions, planned_end_date

logger = logging.getLogger(__name__)


def get_draft(db: Session, class_id: str) -> ClassDraft:
    draft = db.get(ClassDraft, class_id)
    if draft is None:
        raise ResourceNotFoundError("Class", class_id)
    return draft


def get_course(db: Session, course_id: str) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise ResourceNotFoundError("Course", course_id)
    return course


def get_branch(db: Session, branch_id: str) -> Branch:
    branch = db.get(Branch, branch_id)
    if branch is None:
        raise ResourceNotFoundError("Branch", branch_id)
    return branch


def get_draft_session(draft: ClassDraft, session_id: str) -> ClassSession:
    for item in draft.sessions:
        if item.id == session_id:
            return item
    raise ResourceNotFoundError("Session", session_id)


def in_active_range(draft: ClassDraft, item: ClassSession) -> bool:
    if item.session_date < draft.start_date:
        return False
    return draft.planned_end_date is None or item.session_date <= draft.planned_end_date


def load_time_slots(db: Session, ids) -> dict[str, TimeSlotTemplate]:
    wanted = {item for item in ids if item}
    if not wanted:
        return {}
    rows = db.execute(select(TimeSlotTemplate).where(TimeSlotTemplate.id.in_(sorted(wanted)))).scalars()
    return {row.id: row for row in rows}


# ============ Codes ============


def code_prefix(course: Course, branch: Branch, start_date: date) -> str:
    return f"{course.code}-{branch.code}-{start_date:%y}"


def preview_class_code(db: Session, *, course_id: str, branch_id: str, start_date: date) -> ClassCodePreview:
    course = get_course(db, course_id)
    branch = get_branch(db, branch_id)
    prefix = code_prefix(course, branch, start_date)
    existing = db.execute(select(ClassDraft.code).where(ClassDraft.code.like(f"{prefix}-%"))).scalars()
    highest = 0
    for code in existing:
        suffix = code[len(prefix) + 1:]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    next_sequence = highest + 1
    warning = None
    if next_sequence > 999:
        warning = f"Sequence for {prefix} exceeds 999"
    return ClassCodePreview(
        preview_code=f"{prefix}-{next_sequence:03d}",
        prefix=prefix,
        next_sequence=next_sequence,
        warning=warning,
    )


# ============ Serialization ============


def draft_to_out(db: Session, draft: ClassDraft) -> ClassDraftOut:
    course = db.get(Course, draft.course_id)
    decision = evaluate_lifecycle(draft.status, draft.approval_status)
    return ClassDraftOut(
        id=draft.id,
        code=draft.code,
        name=draft.name,
        branch_id=draft.branch_id,
        course_id=draft.course_id,
        course_code=course.code if course else None,
        hours_per_session=course.hours_per_session if course else None,
        modality=draft.modality,
        start_date=draft.start_date,
        planned_end_date=draft.planned_end_date,
        schedule_days=draft.weekdays,
        max_capacity=draft.max_capacity,
        status=draft.status,
        approval_status=draft.approval_status,
        rejection_reason=draft.rejection_reason,
        editable=decision.editable,
        lock_reason=decision.reason,
    )


def sessions_to_out(db: Session, sessions: list[ClassSession]) -> list[ClassSessionOut]:
    slots = load_time_slots(db, (item.time_slot_template_id for item in sessions))
    resource_ids = {item.resource_id for item in sessions if item.resource_id}
    teacher_ids = {item.teacher_id for item in sessions if item.teacher_id}
    resources = {}
    teachers = {}
    if resource_ids:
        rows = db.execute(select(Resource).where(Resource.id.in_(sorted(resource_ids)))).scalars()
        resources = {row.id: row for row in rows}
    if teacher_ids:
        rows = db.execute(select(Teacher).where(Teacher.id.in_(sorted(teacher_ids)))).scalars()
        teachers = {row.id: row for row in rows}

    result: list[ClassSessionOut] = []
    for item in sessions:
        slot = slots.get(item.time_slot_template_id)
        resource = resources.get(item.resource_id)
        teacher = teachers.get(item.teacher_id)
        result.append(
            ClassSessionOut(
                session_id=item.id,
                sequence_number=item.sequence_number,
                date=item.session_date,
                day_of_week=item.day_of_week,
                week_number=item.week_number,
                time_slot_template_id=item.time_slot_template_id,
                time_slot_name=f"{slot.name} ({slot.start_time}-{slot.end_time})" if slot else None,
                resource_id=item.resource_id,
                resource_name=resource.display_name if resource else None,
                teacher_id=item.teacher_id,
                teacher_name=teacher.full_name if teacher else None,
                resource_override=item.resource_override,
            )
        )
    return result


def session_overview(db: Session, draft: ClassDraft) -> ClassSessionsOverview:
    sessions = sessions_to_out(db, list(draft.sessions))
    weeks: OrderedDict[int, list[ClassSessionOut]] = OrderedDict()
    for item in sessions:
        weeks.setdefault(item.week_number, []).append(item)

    grouped = [
        WeekGroup(
            week_number=week_number,
            week_range=f"{items[0].date.isoformat()} - {items[-1].date.isoformat()}",
            session_count=len(items),
            session_ids=[item.session_id for item in items],
        )
        for week_number, items in weeks.items()
    ]
    return ClassSessionsOverview(
        class_id=draft.id,
        class_code=draft.code,
        total_sessions=len(sessions),
        date_range=DateRange(
            start_date=sessions[0].date if sessions else None,
            end_date=sessions[-1].date if sessions else None,
        ),
        sessions=sessions,
        grouped_by_week=grouped,
    )


# ============ Create / update / delete ============


def _ensure_unique_name(db: Session, *, branch_id: str, name: str, exclude_id: str | None = None) -> None:
    statement = select(ClassDraft.id).where(
        ClassDraft.branch_id == branch_id,
        func.lower(ClassDraft.name) == name.lower(),
    )
    if exclude_id is not None:
        statement = statement.where(ClassDraft.id != exclude_id)
    if db.execute(statement).first() is not None:
        raise DomainValidationError(
            "A class with this name already exists in the branch",
            details={"name": "Class name must be unique within the branch"},
        )


def _ensure_unique_code(db: Session, code: str, exclude_id: str | None = None) -> None:
    statement = select(ClassDraft.id).where(ClassDraft.code == code)
    if exclude_id is not None:
        statement = statement.where(ClassDraft.id != exclude_id)
    if db.execute(statement).first() is not None:
        raise DomainValidationError("Class code already exists", details={"code": "Class code must be unique"})


def _replace_sessions(draft: ClassDraft, course: Course) -> None:
    planned = generate_sessions(draft.start_date, draft.weekdays, course.total_sessions)
    draft.sessions.clear()
    for item in planned:
        draft.sessions.append(
            ClassSession(
                sequence_number=item.sequence_number,
                session_date=item.session_date,
                day_of_week=item.day_of_week,
                week_number=item.week_number,
            )
        )
    draft.planned_end_date = planned_end_date(planned)


def create_draft(db: Session, payload: ClassBasicInfo, user: User) -> DraftCreated:
    branch = get_branch(db, payload.branch_id)
    course = get_course(db, payload.course_id)
    _ensure_unique_name(db, branch_id=branch.id, name=payload.name)

    if payload.code:
        code = payload.code
        _ensure_unique_code(db, code)
    else:
        code = preview_class_code(db, course_id=course.id, branch_id=branch.id, start_date=payload.start_date).preview_code

    draft = ClassDraft(
        code=code,
        name=payload.name,
        branch_id=branch.id,
        course_id=course.id,
        modality=payload.modality,
        start_date=payload.start_date,
        schedule_days=[day.value for day in payload.schedule_days],
        max_capacity=payload.max_capacity,
        status=ClassStatus.draft,
        approval_status=None,
        created_by_id=user.id,
    )
    _replace_sessions(draft, course)
    db.add(draft)
    db.flush()
    log_activity(
        db,
        user=user,
        action="class.create",
        entity_id=draft.id,
        details={"code": draft.code, "sessions": len(draft.sessions)},
    )
    db.commit()
    db.refresh(draft)
    logger.info("Created class draft %s with %d sessions", draft.code, len(draft.sessions))

    return DraftCreated(
        class_id=draft.id,
        code=draft.code,
        status=draft.status,
        session_summary=SessionSummary(
            total_sessions=len(draft.sessions),
            start_date=draft.sessions[0].session_date if draft.sessions else None,
            end_date=draft.planned_end_date,
        ),
    )


def update_draft(db: Session, draft: ClassDraft, payload: ClassBasicInfo, user: User) -> ClassDraftOut:
    ensure_editable(draft)
    branch = get_branch(db, payload.branch_id)
    course = get_course(db, payload.course_id)
    _ensure_unique_name(db, branch_id=branch.id, name=payload.name, exclude_id=draft.id)
    if payload.code and payload.code != draft.code:
        _ensure_unique_code(db, payload.code, exclude_id=draft.id)
        draft.code = payload.code

    schedule_days = [day.value for day in payload.schedule_days]
    regenerate = (
        payload.regenerate_sessions
        or payload.start_date != draft.start_date
        or schedule_days != list(draft.schedule_days or [])
        or course.id != draft.course_id
        or branch.id != draft.branch_id
    )

    draft.name = payload.name
    draft.branch_id = branch.id
    draft.course_id = course.id
    draft.modality = payload.modality
    draft.start_date = payload.start_date
    draft.schedule_days = schedule_days
    draft.max_capacity = payload.max_capacity
    if regenerate:
        _replace_sessions(draft, course)

    log_activity(
        db,
        user=user,
        action="class.update",
        entity_id=draft.id,
        details={"regenerated_sessions": regenerate},
    )
    db.commit()
    db.refresh(draft)
    return draft_to_out(db, draft)


def delete_draft(db: Session, draft: ClassDraft, user: User) -> None:
    ensure_editable(draft)
    log_activity(db, user=user, action="class.delete", entity_id=draft.id, details={"code": draft.code})
    db.delete(draft)
    db.commit()
    logger.info("Deleted class draft %s", draft.code)


# ============ Time slots ============


def apply_time_slot_pattern(
    db: Session,
    draft: ClassDraft,
    payload: AssignTimeSlotsRequest,
    user: User,
) -> PatternApplyResult:
    ensure_editable(draft)
    settings = get_settings()
    course = get_course(db, draft.course_id)
    active = set(draft.weekdays)

    pattern: dict = {}
    errors: dict[str, str] = {}
    for assignment in payload.assignments:
        day = assignment.day_of_week
        if day not in active:
            errors[day.value] = "Weekday is not part of the class schedule"
            continue
        template = db.get(TimeSlotTemplate, assignment.time_slot_template_id)
        if template is None:
            raise ResourceNotFoundError("TimeSlotTemplate", assignment.time_slot_template_id)
        if template.branch_id != draft.branch_id:
            errors[day.value] = "Time slot belongs to another branch"
            continue
        if abs(template.duration_hours - course.hours_per_session) > settings.time_slot_duration_tolerance_hours:
            errors[day.value] = (
                f"Time slot lasts {template.duration_hours:.2f}h but the course requires "
                f"{course.hours_per_session:.2f}h per session"
            )
            continue
        pattern[day] = template.id
    if errors:
        raise DomainValidationError("Invalid time slot assignment", details=errors)

    updated = 0
    for item in draft.sessions:
        template_id = pattern.get(item.day_of_week)
        if template_id is None or not in_active_range(draft, item):
            continue
        item.time_slot_template_id = template_id
        updated += 1

    log_activity(
        db,
        user=user,
        action="class.time_slots.assign",
        entity_id=draft.id,
        details={"pattern": {day.value: value for day, value in pattern.items()}, "updated": updated},
    )
    db.commit()
    return PatternApplyResult(success_count=updated)


# ============ Readiness and approval ============


def validate_readiness(draft: ClassDraft, *, today: date | None = None) -> ReadinessReport:
    return build_report(
        draft.id,
        draft.sessions,
        start_date=draft.start_date,
        status=draft.status,
        approval_status=draft.approval_status,
        today=today,
    )


def submit_draft(db: Session, draft: ClassDraft, user: User) -> SubmitResult:
    ensure_editable(draft)
    report = validate_readiness(draft)
    if not report.can_submit:
        raise DomainValidationError(
            "Class is not ready to be submitted",
            details={"errors": report.errors},
        )
    draft.status = ClassStatus.scheduled
    draft.approval_status = ApprovalStatus.pending
    draft.rejection_reason = None
    draft.submitted_at = datetime.now(timezone.utc)
    log_activity(db, user=user, action="class.submit", entity_id=draft.id)
    db.commit()
    db.refresh(draft)
    return SubmitResult(class_id=draft.id, status=draft.status, approval_status=draft.approval_status)


def _ensure_pending(draft: ClassDraft) -> None:
    if draft.approval_status != ApprovalStatus.pending:
        raise DomainValidationError(
            "Class is not awaiting approval",
            details={"approval_status": draft.approval_status.value if draft.approval_status else None},
        )


def approve_draft(db: Session, draft: ClassDraft, user: User) -> SubmitResult:
    _ensure_pending(draft)
    draft.approval_status = ApprovalStatus.approved
    draft.decided_at = datetime.now(timezone.utc)
    log_activity(db, user=user, action="class.approve", entity_id=draft.id)
    db.commit()
    db.refresh(draft)
    return SubmitResult(class_id=draft.id, status=draft.status, approval_status=draft.approval_status)


def reject_draft(db: Session, draft: ClassDraft, reason: str, user: User) -> SubmitResult:
    _ensure_pending(draft)
    draft.status = ClassStatus.draft
    draft.approval_status = ApprovalStatus.rejected
    draft.rejection_reason = reason
    draft.decided_at = datetime.now(timezone.utc)
    log_activity(db, user=user, action="class.reject", entity_id=draft.id, details={"reason": reason})
    db.commit()
    db.refresh(draft)
    return SubmitResult(class_id=draft.id, status=draft.status, approval_status=draft.approval_status)
