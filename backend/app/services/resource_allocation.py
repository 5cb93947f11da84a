"""Resource fan-out, conflict detection and per-session resolution for class drafts.

A pattern maps weekdays to resources. Each matching session is checked individually, so a
single request can leave some sessions assigned and report conflicts for the rest.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import AssignmentConflictError, DomainValidationError, ResourceNotFoundError
from app.models.class_draft import ClassDraft, ClassModality, ClassSession
from app.models.resource import Resource, ResourceType
from app.models.time_slot import TimeSlotTemplate
from app.models.user import User
from app.models.weekday import Weekday
from app.schemas.class_creation import (
    AssignResourcesRequest,
    AssignResourcesResult,
    AssignSessionResourceRequest,
    ConflictReason,
    ResourceConflict,
    ResourceOption,
    SessionResourceAssigned,
)
from app.services.audit import log_activity
from app.services.class_drafts import get_draft_session, in_active_range, load_time_slots
from app.services.lifecycle import ensure_editable

logger = logging.getLogger(__name__)

MODALITY_RESOURCE_TYPES: dict[ClassModality, set[ResourceType]] = {
    ClassModality.offline: {ResourceType.room},
    ClassModality.online: {ResourceType.online_account},
    ClassModality.hybrid: {ResourceType.room, ResourceType.online_account},
}


@dataclass
class BookingCheck:
    reason: ConflictReason | None = None
    conflicting_classes: list[str] = field(default_factory=list)
    details: str | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None


def allowed_resource_types(modality: ClassModality) -> set[ResourceType]:
    return MODALITY_RESOURCE_TYPES[ClassModality(modality)]


def branch_resources(db: Session, draft: ClassDraft) -> list[Resource]:
    statement = (
        select(Resource)
        .where(
            Resource.branch_id == draft.branch_id,
            Resource.resource_type.in_(sorted(allowed_resource_types(draft.modality))),
            Resource.capacity >= draft.max_capacity,
        )
        .order_by(Resource.capacity, Resource.code)
    )
    return list(db.execute(statement).scalars())


class BookingIndex:
    """Existing resource bookings keyed by (resource, date) for a set of dates."""

    def __init__(self, db: Session, dates: set[date], *, exclude_session_ids: set[str] | None = None) -> None:
        self._bookings: dict[tuple[str, date], list[tuple[ClassSession, TimeSlotTemplate]]] = defaultdict(list)
        if not dates:
            return
        statement = select(ClassSession).where(
            ClassSession.session_date.in_(sorted(dates)),
            ClassSession.resource_id.is_not(None),
            ClassSession.time_slot_template_id.is_not(None),
        )
        rows = [row for row in db.execute(statement).scalars() if row.id not in (exclude_session_ids or set())]
        slots = load_time_slots(db, (row.time_slot_template_id for row in rows))
        for row in rows:
            slot = slots.get(row.time_slot_template_id)
            if slot is not None:
                self._bookings[(row.resource_id, row.session_date)].append((row, slot))

    def check(self, item: ClassSession, slot: TimeSlotTemplate, resource_id: str) -> BookingCheck:
        own_class = False
        other_classes: list[str] = []
        for booked, booked_slot in self._bookings.get((resource_id, item.session_date), []):
            if booked.id == item.id or not slot.overlaps(booked_slot):
                continue
            if booked.class_id == item.class_id:
                own_class = True
            else:
                name = booked.class_draft.name
                if name not in other_classes:
                    other_classes.append(name)
        if other_classes:
            return BookingCheck(
                ConflictReason.booking_conflict,
                other_classes,
                f"Resource is booked by {', '.join(other_classes)} at an overlapping time",
            )
        if own_class:
            return BookingCheck(
                ConflictReason.class_booking,
                details="Resource is already used by another session of this class at an overlapping time",
            )
        return BookingCheck()

    def book(self, item: ClassSession, slot: TimeSlotTemplate, resource_id: str) -> None:
        self._bookings[(resource_id, item.session_date)].append((item, slot))


def _resolve_resource(db: Session, draft: ClassDraft, resource_id: str) -> Resource:
    resource = db.get(Resource, resource_id)
    if resource is None:
        raise ResourceNotFoundError("Resource", resource_id)
    if resource.branch_id != draft.branch_id:
        raise DomainValidationError("Resource belongs to another branch", details={"resource_id": resource_id})
    if resource.resource_type not in allowed_resource_types(draft.modality):
        raise DomainValidationError(
            f"{resource.resource_type.value} resources cannot host {draft.modality.value} classes",
            details={"resource_id": resource_id},
        )
    return resource


def _to_option(resource: Resource, **extra) -> ResourceOption:
    return ResourceOption(
        id=resource.id,
        code=resource.code,
        name=resource.name,
        resource_type=resource.resource_type,
        capacity=resource.capacity,
        display_name=resource.display_name,
        **extra,
    )


def _free_resources(
    candidates: list[Resource],
    item: ClassSession,
    slot: TimeSlotTemplate | None,
    index: BookingIndex,
) -> list[Resource]:
    if slot is None:
        return []
    return [resource for resource in candidates if index.check(item, slot, resource.id).ok]


# ============ Candidates and suggestions ============


def resource_candidates(
    db: Session,
    draft: ClassDraft,
    *,
    day_of_week: Weekday | None = None,
    time_slot_id: str | None = None,
) -> list[ResourceOption]:
    candidates = branch_resources(db, draft)
    sessions = [
        item
        for item in draft.sessions
        if in_active_range(draft, item) and (day_of_week is None or item.day_of_week == day_of_week)
    ]
    slots = load_time_slots(db, [time_slot_id, *(item.time_slot_template_id for item in sessions)])
    if time_slot_id and time_slot_id not in slots:
        raise ResourceNotFoundError("TimeSlotTemplate", time_slot_id)
    index = BookingIndex(
        db,
        {item.session_date for item in sessions},
        exclude_session_ids={item.id for item in sessions},
    )

    options: list[ResourceOption] = []
    for resource in candidates:
        checked = 0
        conflicts = 0
        for item in sessions:
            slot = slots.get(time_slot_id or item.time_slot_template_id)
            if slot is None:
                continue
            checked += 1
            if not index.check(item, slot, resource.id).ok:
                conflicts += 1
        rate = round((checked - conflicts) / checked * 100, 1) if checked else 100.0
        options.append(
            _to_option(
                resource,
                availability_rate=rate,
                conflict_count=conflicts,
                total_sessions=checked,
                is_recommended=conflicts == 0,
            )
        )
    options.sort(key=lambda option: (-(option.availability_rate or 0), option.capacity, option.code))
    return options


def session_suggestions(db: Session, draft: ClassDraft, session_id: str, *, limit: int | None = None) -> list[ResourceOption]:
    item = get_draft_session(draft, session_id)
    slots = load_time_slots(db, [item.time_slot_template_id])
    index = BookingIndex(db, {item.session_date})
    free = _free_resources(branch_resources(db, draft), item, slots.get(item.time_slot_template_id), index)
    free = [resource for resource in free if resource.id != item.resource_id]
    if limit is not None:
        free = free[:limit]
    return [_to_option(resource, is_recommended=True) for resource in free]


# ============ Fan-out ============


def apply_resource_pattern(
    db: Session,
    draft: ClassDraft,
    payload: AssignResourcesRequest,
    user: User,
) -> AssignResourcesResult:
    ensure_editable(draft)
    settings = get_settings()
    active = set(draft.weekdays)

    pattern: dict[Weekday, Resource] = {}
    invalid_days = {
        item.day_of_week.value: "Weekday is not part of the class schedule"
        for item in payload.pattern
        if item.day_of_week not in active
    }
    if invalid_days:
        raise DomainValidationError("Invalid resource pattern", details=invalid_days)
    for item in payload.pattern:
        pattern[item.day_of_week] = _resolve_resource(db, draft, item.resource_id)

    targets = [item for item in draft.sessions if item.day_of_week in pattern and in_active_range(draft, item)]
    skipped = 0
    if payload.force_override:
        kept = [item for item in targets if item.resource_override]
        skipped = len(kept)
        targets = [item for item in targets if not item.resource_override]
    else:
        for item in targets:
            item.resource_override = False

    slots = load_time_slots(db, (item.time_slot_template_id for item in targets))
    index = BookingIndex(
        db,
        {item.session_date for item in targets},
        exclude_session_ids={item.id for item in targets},
    )
    suggestion_pool = branch_resources(db, draft) if payload.include_suggestions else []

    success = 0
    conflicts: list[ResourceConflict] = []
    for item in targets:
        resource = pattern[item.day_of_week]
        slot = slots.get(item.time_slot_template_id)
        if slot is None:
            check = BookingCheck(ConflictReason.missing_time_slot, details="Session has no time slot")
        elif draft.max_capacity > resource.capacity:
            check = BookingCheck(
                ConflictReason.capacity_exceeded,
                details=f"{resource.display_name} holds {resource.capacity} but the class needs {draft.max_capacity}",
            )
        else:
            check = index.check(item, slot, resource.id)

        if check.ok:
            item.resource_id = resource.id
            index.book(item, slot, resource.id)
            success += 1
            continue

        item.resource_id = None
        suggestions: list[ResourceOption] = []
        if payload.include_suggestions:
            free = _free_resources(suggestion_pool, item, slot, index)
            suggestions = [_to_option(option) for option in free[: settings.max_resource_suggestions]]
        conflicts.append(
            ResourceConflict(
                session_id=item.id,
                session_number=item.sequence_number,
                session_date=item.session_date,
                day_of_week=item.day_of_week,
                conflict_reason=check.reason,
                requested_capacity=draft.max_capacity,
                available_capacity=resource.capacity,
                resource_id=resource.id,
                resource_name=resource.display_name,
                time_slot_start=slot.start_time if slot else None,
                time_slot_end=slot.end_time if slot else None,
                suggestions=suggestions,
                conflicting_classes=check.conflicting_classes,
                conflict_details=check.details,
            )
        )

    log_activity(
        db,
        user=user,
        action="class.resources.assign",
        entity_id=draft.id,
        details={
            "pattern": {day.value: resource.id for day, resource in pattern.items()},
            "force_override": payload.force_override,
            "assigned": success,
            "conflicts": len(conflicts),
        },
    )
    db.commit()
    if conflicts:
        logger.info("Resource pattern for class %s left %d conflict(s)", draft.code, len(conflicts))
    return AssignResourcesResult(
        success_count=success,
        skipped_count=skipped,
        conflict_count=len(conflicts),
        conflicts=conflicts,
    )


def assign_session_resource(
    db: Session,
    draft: ClassDraft,
    session_id: str,
    payload: AssignSessionResourceRequest,
    user: User,
) -> SessionResourceAssigned:
    ensure_editable(draft)
    item = get_draft_session(draft, session_id)
    resource = _resolve_resource(db, draft, payload.resource_id)
    slot = load_time_slots(db, [item.time_slot_template_id]).get(item.time_slot_template_id)
    if slot is None:
        raise DomainValidationError(
            "Assign a time slot before choosing a resource",
            details={"session_id": item.id},
        )
    if draft.max_capacity > resource.capacity:
        raise AssignmentConflictError(
            f"{resource.display_name} holds {resource.capacity} but the class needs {draft.max_capacity}",
            details={"reason": ConflictReason.capacity_exceeded.value, "session_id": item.id},
        )
    check = BookingIndex(db, {item.session_date}).check(item, slot, resource.id)
    if not check.ok:
        raise AssignmentConflictError(
            check.details or "Resource is not available",
            details={
                "reason": check.reason.value,
                "session_id": item.id,
                "conflicting_classes": check.conflicting_classes,
            },
        )

    item.resource_id = resource.id
    item.resource_override = True
    log_activity(
        db,
        user=user,
        action="class.session.resource.assign",
        entity_id=draft.id,
        details={"session_id": item.id, "resource_id": resource.id},
    )
    db.commit()
    return SessionResourceAssigned(
        session_id=item.id,
        session_number=item.sequence_number,
        resource_id=resource.id,
        resource_name=resource.display_name,
        conflict_resolved=True,
    )
