"""Teacher availability against a class's sessions and teacher assignment."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import DomainValidationError, ResourceNotFoundError
from app.models.class_draft import ClassDraft, ClassSession
from app.models.course import Course
from app.models.teacher import Teacher
from app.models.time_slot import TimeSlotTemplate
from app.models.user import User
from app.models.weekday import WEEKDAY_ORDER, Weekday
from app.schemas.class_creation import (
    AssignTeacherRequest,
    AssignTeacherResult,
    ConflictingClassRef,
    TeacherAvailability,
    TeacherAvailabilityStatus,
    TeacherAvailableByDay,
    TeacherConflictDetail,
    TeacherConflictKind,
    TeacherConflictSummary,
    TeacherDayAvailability,
    TeacherDayAvailabilityInfo,
)
from app.services.audit import log_activity
from app.services.class_drafts import get_course, load_time_slots
from app.services.lifecycle import ensure_editable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionVerdict:
    session: ClassSession
    kind: TeacherConflictKind | None
    conflicting_class: ClassDraft | None = None

    @property
    def available(self) -> bool:
        return self.kind is None


class TeachingIndex:
    """Sessions of other classes already taught by a set of teachers on a set of dates."""

    def __init__(self, db: Session, draft: ClassDraft, teacher_ids: set[str]) -> None:
        self._busy: dict[tuple[str, date], list[tuple[ClassSession, TimeSlotTemplate]]] = defaultdict(list)
        dates = {item.session_date for item in draft.sessions}
        if not dates or not teacher_ids:
            return
        statement = select(ClassSession).where(
            ClassSession.teacher_id.in_(sorted(teacher_ids)),
            ClassSession.session_date.in_(sorted(dates)),
            ClassSession.class_id != draft.id,
            ClassSession.time_slot_template_id.is_not(None),
        )
        rows = list(db.execute(statement).scalars())
        slots = load_time_slots(db, (row.time_slot_template_id for row in rows))
        for row in rows:
            slot = slots.get(row.time_slot_template_id)
            if slot is not None:
                self._busy[(row.teacher_id, row.session_date)].append((row, slot))

    def clash(self, teacher_id: str, item: ClassSession, slot: TimeSlotTemplate) -> ClassDraft | None:
        for other, other_slot in self._busy.get((teacher_id, item.session_date), []):
            if slot.overlaps(other_slot):
                return other.class_draft
        return None


def _registered_slots(teacher: Teacher) -> set[tuple[Weekday, str]]:
    return {
        (Weekday(entry["day_of_week"]), entry["time_slot_template_id"])
        for entry in teacher.availability or []
        if entry.get("day_of_week") and entry.get("time_slot_template_id")
    }


def evaluate_sessions(
    teacher: Teacher,
    sessions: list[ClassSession],
    *,
    course: Course,
    slots: dict[str, TimeSlotTemplate],
    teaching: TeachingIndex,
) -> list[SessionVerdict]:
    if course.required_skill and course.required_skill.upper() not in {skill.upper() for skill in teacher.skills or []}:
        return [SessionVerdict(item, TeacherConflictKind.skill_mismatch) for item in sessions]

    registered = _registered_slots(teacher)
    leave = {str(value) for value in teacher.leave_dates or []}
    verdicts: list[SessionVerdict] = []
    for item in sessions:
        slot = slots.get(item.time_slot_template_id)
        if slot is None or (item.day_of_week, slot.id) not in registered:
            verdicts.append(SessionVerdict(item, TeacherConflictKind.no_availability))
            continue
        if item.session_date.isoformat() in leave:
            verdicts.append(SessionVerdict(item, TeacherConflictKind.leave_conflict))
            continue
        other = teaching.clash(teacher.id, item, slot)
        if other is not None:
            verdicts.append(SessionVerdict(item, TeacherConflictKind.teaching_conflict, other))
            continue
        verdicts.append(SessionVerdict(item, None))
    return verdicts


def availability_status(rate: float) -> TeacherAvailabilityStatus:
    if rate >= 100:
        return TeacherAvailabilityStatus.fully_available
    if rate > 0:
        return TeacherAvailabilityStatus.partially_available
    return TeacherAvailabilityStatus.unavailable


def summarize(
    teacher: Teacher,
    verdicts: list[SessionVerdict],
    slots: dict[str, TimeSlotTemplate],
    *,
    include_conflict_detail: bool = False,
    include_day_breakdown: bool = False,
) -> TeacherAvailability:
    total = len(verdicts)
    available = sum(1 for verdict in verdicts if verdict.available)
    rate = round(available / total * 100, 1) if total else 0.0

    summary = TeacherConflictSummary()
    for verdict in verdicts:
        if verdict.kind is not None:
            setattr(summary, verdict.kind.name, getattr(summary, verdict.kind.name) + 1)
    summary.total_conflicts = total - available

    by_day = None
    if include_day_breakdown:
        counts: dict[Weekday, list[int]] = {}
        for verdict in verdicts:
            bucket = counts.setdefault(verdict.session.day_of_week, [0, 0])
            bucket[1] += 1
            if verdict.available:
                bucket[0] += 1
        by_day = {
            day: TeacherDayAvailability(
                available=counts[day][0],
                total=counts[day][1],
                rate=round(counts[day][0] / counts[day][1] * 100, 1),
            )
            for day in WEEKDAY_ORDER
            if day in counts
        }

    details = None
    if include_conflict_detail:
        details = []
        for verdict in verdicts:
            if verdict.available:
                continue
            slot = slots.get(verdict.session.time_slot_template_id)
            other = verdict.conflicting_class
            details.append(
                TeacherConflictDetail(
                    session_id=verdict.session.id,
                    session_date=verdict.session.session_date,
                    day_of_week=verdict.session.day_of_week,
                    kind=verdict.kind,
                    time_slot_start=slot.start_time if slot else None,
                    time_slot_end=slot.end_time if slot else None,
                    conflicting_class=(
                        ConflictingClassRef(id=other.id, name=other.name, code=other.code) if other else None
                    ),
                )
            )

    return TeacherAvailability(
        teacher_id=teacher.id,
        full_name=teacher.full_name,
        email=teacher.email,
        skills=list(teacher.skills or []),
        total_sessions=total,
        available_sessions=available,
        conflict_count=total - available,
        availability_rate=rate,
        is_recommended=total > 0 and available == total,
        availability_status=availability_status(rate),
        conflicts=summary,
        availability_by_day=by_day,
        conflict_details=details,
    )


def _branch_teachers(db: Session, draft: ClassDraft, teacher_id: str | None = None) -> list[Teacher]:
    statement = select(Teacher).where(Teacher.branch_id == draft.branch_id).order_by(Teacher.full_name)
    if teacher_id is not None:
        statement = statement.where(Teacher.id == teacher_id)
    return list(db.execute(statement).scalars())


def list_available_teachers(
    db: Session,
    draft: ClassDraft,
    *,
    include_conflict_detail: bool = False,
    include_day_breakdown: bool = False,
    teacher_id: str | None = None,
) -> list[TeacherAvailability]:
    course = get_course(db, draft.course_id)
    teachers = _branch_teachers(db, draft, teacher_id)
    if teacher_id is not None and not teachers:
        raise ResourceNotFoundError("Teacher", teacher_id)
    sessions = list(draft.sessions)
    slots = load_time_slots(db, (item.time_slot_template_id for item in sessions))
    teaching = TeachingIndex(db, draft, {teacher.id for teacher in teachers})

    results = [
        summarize(
            teacher,
            evaluate_sessions(teacher, sessions, course=course, slots=slots, teaching=teaching),
            slots,
            include_conflict_detail=include_conflict_detail,
            include_day_breakdown=include_day_breakdown,
        )
        for teacher in teachers
    ]
    results.sort(key=lambda item: (-item.availability_rate, item.full_name))
    return results


def teachers_available_by_day(db: Session, draft: ClassDraft) -> list[TeacherAvailableByDay]:
    course = get_course(db, draft.course_id)
    teachers = _branch_teachers(db, draft)
    sessions = list(draft.sessions)
    slots = load_time_slots(db, (item.time_slot_template_id for item in sessions))
    teaching = TeachingIndex(db, draft, {teacher.id for teacher in teachers})

    results: list[TeacherAvailableByDay] = []
    for teacher in teachers:
        verdicts = evaluate_sessions(teacher, sessions, course=course, slots=slots, teaching=teaching)
        grouped: dict[Weekday, list[SessionVerdict]] = defaultdict(list)
        for verdict in verdicts:
            grouped[verdict.session.day_of_week].append(verdict)

        days: list[TeacherDayAvailabilityInfo] = []
        for day in WEEKDAY_ORDER:
            day_verdicts = grouped.get(day)
            if not day_verdicts:
                continue
            free = [verdict.session.session_date for verdict in day_verdicts if verdict.available]
            if not free:
                continue
            days.append(
                TeacherDayAvailabilityInfo(
                    day_of_week=day,
                    total_sessions=len(day_verdicts),
                    available_sessions=len(free),
                    first_date=min(free),
                    last_date=max(free),
                    is_fully_available=len(free) == len(day_verdicts),
                )
            )
        if days:
            results.append(
                TeacherAvailableByDay(
                    teacher_id=teacher.id,
                    full_name=teacher.full_name,
                    email=teacher.email,
                    skills=list(teacher.skills or []),
                    total_class_sessions=len(sessions),
                    available_days=days,
                )
            )
    return results


def assign_teacher(db: Session, draft: ClassDraft, payload: AssignTeacherRequest, user: User) -> AssignTeacherResult:
    ensure_editable(draft)
    teacher = db.get(Teacher, payload.teacher_id)
    if teacher is None:
        raise ResourceNotFoundError("Teacher", payload.teacher_id)
    if teacher.branch_id != draft.branch_id:
        raise DomainValidationError("Teacher belongs to another branch", details={"teacher_id": teacher.id})

    sessions = list(draft.sessions)
    if payload.session_ids is not None:
        by_id = {item.id: item for item in sessions}
        unknown = [session_id for session_id in payload.session_ids if session_id not in by_id]
        if unknown:
            raise DomainValidationError(
                "Some sessions do not belong to this class",
                details={"session_ids": unknown},
            )
        targets = [by_id[session_id] for session_id in dict.fromkeys(payload.session_ids)]
    else:
        targets = sessions

    course = get_course(db, draft.course_id)
    slots = load_time_slots(db, (item.time_slot_template_id for item in targets))
    teaching = TeachingIndex(db, draft, {teacher.id})
    verdicts = evaluate_sessions(teacher, targets, course=course, slots=slots, teaching=teaching)

    # Reassignment replaces: targets the new teacher cannot take are left uncovered.
    assigned = 0
    for verdict in verdicts:
        if verdict.available:
            verdict.session.teacher_id = teacher.id
            assigned += 1
        else:
            verdict.session.teacher_id = None

    uncovered_targets = len(targets) - assigned
    remaining = sum(1 for item in sessions if item.teacher_id is None)
    log_activity(
        db,
        user=user,
        action="class.teacher.assign",
        entity_id=draft.id,
        details={
            "teacher_id": teacher.id,
            "requested": len(targets),
            "assigned": assigned,
            "remaining": remaining,
            "uncovered": uncovered_targets,
        },
    )
    db.commit()
    if remaining:
        logger.info("Class %s still has %d session(s) without a teacher", draft.code, remaining)
    return AssignTeacherResult(
        assigned_count=assigned,
        needs_substitute=uncovered_targets > 0,
        remaining_sessions=remaining,
    )
