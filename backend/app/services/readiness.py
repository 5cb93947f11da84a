"""Readiness checks recomputed from the authoritative session list.

`compute_checks` and `build_report` work on any objects exposing ``time_slot_template_id``,
``resource_id`` and ``teacher_id`` so the pipeline can run the same rules over wire models.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from app.models.class_draft import ApprovalStatus, ClassStatus
from app.schemas.class_creation import ReadinessReport, ValidationChecks
from app.services.lifecycle import evaluate_lifecycle

READY_MESSAGE = "Class is ready to be submitted for approval"
NOT_READY_MESSAGE = "Class is not ready to be submitted"


def _ratio(part: int, total: int) -> float:
    return part / total if total else 0.0


def compute_checks(sessions: Iterable) -> ValidationChecks:
    items = list(sessions)
    total = len(items)
    with_time_slots = sum(1 for item in items if item.time_slot_template_id)
    with_resources = sum(1 for item in items if item.resource_id)
    with_teachers = sum(1 for item in items if item.teacher_id)
    teacher_ids = {item.teacher_id for item in items if item.teacher_id}

    completion = (
        _ratio(with_time_slots, total) + _ratio(with_resources, total) + _ratio(with_teachers, total)
    ) / 3 * 100

    return ValidationChecks(
        total_sessions=total,
        sessions_with_time_slots=with_time_slots,
        sessions_with_resources=with_resources,
        sessions_with_teachers=with_teachers,
        sessions_without_time_slots=total - with_time_slots,
        sessions_without_resources=total - with_resources,
        sessions_without_teachers=total - with_teachers,
        completion_percentage=round(completion, 1),
        all_sessions_have_time_slots=total > 0 and with_time_slots == total,
        all_sessions_have_resources=total > 0 and with_resources == total,
        all_sessions_have_teachers=total > 0 and with_teachers == total,
        has_multiple_teachers=len(teacher_ids) > 1,
    )


def build_report(
    class_id: str,
    sessions: Iterable,
    *,
    start_date: date,
    status: ClassStatus,
    approval_status: ApprovalStatus | None,
    today: date | None = None,
) -> ReadinessReport:
    checks = compute_checks(sessions)
    today = today or date.today()
    errors: list[str] = []
    warnings: list[str] = []

    if checks.total_sessions == 0:
        errors.append("Class has no sessions")
    else:
        if checks.sessions_without_time_slots:
            errors.append(f"{checks.sessions_without_time_slots} session(s) have no time slot")
        if checks.sessions_without_resources:
            errors.append(f"{checks.sessions_without_resources} session(s) have no resource")
        if checks.sessions_without_teachers:
            errors.append(f"{checks.sessions_without_teachers} session(s) have no teacher")

    if start_date < today:
        checks.start_date_in_past = True
        errors.append("Start date is in the past")

    decision = evaluate_lifecycle(status, approval_status)
    if not decision.editable:
        errors.append(decision.reason or "Class cannot be edited")

    if checks.has_multiple_teachers:
        warnings.append("More than one teacher is assigned across the class sessions")

    checks.has_validation_errors = bool(errors)
    checks.has_validation_warnings = bool(warnings)
    valid = not errors
    can_submit = (
        valid
        and checks.all_sessions_have_time_slots
        and checks.all_sessions_have_resources
        and checks.all_sessions_have_teachers
    )
    return ReadinessReport(
        class_id=class_id,
        valid=valid,
        can_submit=can_submit,
        message=READY_MESSAGE if can_submit else NOT_READY_MESSAGE,
        checks=checks,
        errors=errors,
        warnings=warnings,
    )
