from datetime import date

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api.deps import (
    CLASS_APPROVERS,
    CLASS_MANAGERS,
    ensure_branch_access,
    get_class_draft,
    get_current_user,
    get_db,
    require_roles,
)
from app.models.class_draft import ClassDraft
from app.models.user import User
from app.models.weekday import Weekday
from app.schemas.activity import ActivityLogOut
from app.schemas.class_creation import (
    AssignResourcesRequest,
    AssignResourcesResult,
    AssignSessionResourceRequest,
    AssignTeacherRequest,
    AssignTeacherResult,
    AssignTimeSlotsRequest,
    ClassBasicInfo,
    ClassCodePreview,
    ClassDraftOut,
    ClassSessionsOverview,
    DraftCreated,
    PatternApplyResult,
    ReadinessReport,
    RejectRequest,
    ResourceOption,
    SessionResourceAssigned,
    SubmitResult,
    TeacherAvailability,
    TeacherAvailableByDay,
)
from app.services import class_drafts, resource_allocation, teacher_availability
from app.services.audit import list_activity

router = APIRouter()


@router.get("/preview-code", response_model=ClassCodePreview)
def preview_code(
    course_id: str = Query(alias="courseId"),
    branch_id: str = Query(alias="branchId"),
    start_date: date = Query(alias="startDate"),
    current_user: User = Depends(require_roles(*CLASS_MANAGERS)),
    db: Session = Depends(get_db),
) -> ClassCodePreview:
    return class_drafts.preview_class_code(db, course_id=course_id, branch_id=branch_id, start_date=start_date)


@router.post("/", response_model=DraftCreated, status_code=status.HTTP_201_CREATED)
def create_class(
    payload: ClassBasicInfo,
    current_user: User = Depends(require_roles(*CLASS_MANAGERS)),
    db: Session = Depends(get_db),
) -> DraftCreated:
    ensure_branch_access(current_user, payload.branch_id)
    return class_drafts.create_draft(db, payload, current_user)


@router.get("/{class_id}", response_model=ClassDraftOut)
def read_class(draft: ClassDraft = Depends(get_class_draft), db: Session = Depends(get_db)) -> ClassDraftOut:
    return class_drafts.draft_to_out(db, draft)


@router.put("/{class_id}", response_model=ClassDraftOut)
def update_class(
    payload: ClassBasicInfo,
    draft: ClassDraft = Depends(get_class_draft),
    current_user: User = Depends(require_roles(*CLASS_MANAGERS)),
    db: Session = Depends(get_db),
) -> ClassDraftOut:
    ensure_branch_access(current_user, payload.branch_id)
    return class_drafts.update_draft(db, draft, payload, current_user)


@router.delete("/{class_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_class(
    draft: ClassDraft = Depends(get_class_draft),
    current_user: User = Depends(require_roles(*CLASS_MANAGERS)),
    db: Session = Depends(get_db),
) -> Response:
    class_drafts.delete_draft(db, draft, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{class_id}/sessions", response_model=ClassSessionsOverview)
def list_sessions(draft: ClassDraft = Depends(get_class_draft), db: Session = Depends(get_db)) -> ClassSessionsOverview:
    return class_drafts.session_overview(db, draft)


@router.get("/{class_id}/activity", response_model=list[ActivityLogOut])
def class_activity(draft: ClassDraft = Depends(get_class_draft), db: Session = Depends(get_db)) -> list[ActivityLogOut]:
    return list_activity(db, entity_id=draft.id)


# ============ Time slots ============


@router.post("/{class_id}/time-slots", response_model=PatternApplyResult)
def assign_time_slots(
    payload: AssignTimeSlotsRequest,
    draft: ClassDraft = Depends(get_class_draft),
    current_user: User = Depends(require_roles(*CLASS_MANAGERS)),
    db: Session = Depends(get_db),
) -> PatternApplyResult:
    return class_drafts.apply_time_slot_pattern(db, draft, payload, current_user)


# ============ Resources ============


@router.get("/{class_id}/resources", response_model=list[ResourceOption])
def list_resource_candidates(
    day_of_week: Weekday | None = Query(default=None, alias="dayOfWeek"),
    time_slot_id: str | None = Query(default=None, alias="timeSlotId"),
    draft: ClassDraft = Depends(get_class_draft),
    db: Session = Depends(get_db),
) -> list[ResourceOption]:
    return resource_allocation.resource_candidates(db, draft, day_of_week=day_of_week, time_slot_id=time_slot_id)


@router.post("/{class_id}/resources", response_model=AssignResourcesResult)
def assign_resources(
    payload: AssignResourcesRequest,
    draft: ClassDraft = Depends(get_class_draft),
    current_user: User = Depends(require_roles(*CLASS_MANAGERS)),
    db: Session = Depends(get_db),
) -> AssignResourcesResult:
    return resource_allocation.apply_resource_pattern(db, draft, payload, current_user)


@router.get("/{class_id}/sessions/{session_id}/resources", response_model=list[ResourceOption])
def list_session_suggestions(
    session_id: str,
    draft: ClassDraft = Depends(get_class_draft),
    db: Session = Depends(get_db),
) -> list[ResourceOption]:
    return resource_allocation.session_suggestions(db, draft, session_id)


@router.post("/{class_id}/sessions/{session_id}/resource", response_model=SessionResourceAssigned)
def assign_session_resource(
    session_id: str,
    payload: AssignSessionResourceRequest,
    draft: ClassDraft = Depends(get_class_draft),
    current_user: User = Depends(require_roles(*CLASS_MANAGERS)),
    db: Session = Depends(get_db),
) -> SessionResourceAssigned:
    return resource_allocation.assign_session_resource(db, draft, session_id, payload, current_user)


# ============ Teachers ============


@router.get("/{class_id}/available-teachers", response_model=list[TeacherAvailability])
def list_available_teachers(
    include_conflict_detail: bool = Query(default=False, alias="includeConflictDetail"),
    include_day_breakdown: bool = Query(default=False, alias="includeDayBreakdown"),
    teacher_id: str | None = Query(default=None, alias="teacherId"),
    draft: ClassDraft = Depends(get_class_draft),
    db: Session = Depends(get_db),
) -> list[TeacherAvailability]:
    return teacher_availability.list_available_teachers(
        db,
        draft,
        include_conflict_detail=include_conflict_detail,
        include_day_breakdown=include_day_breakdown,
        teacher_id=teacher_id,
    )


@router.get("/{class_id}/teachers/available-by-day", response_model=list[TeacherAvailableByDay])
def list_teachers_by_day(
    draft: ClassDraft = Depends(get_class_draft),
    db: Session = Depends(get_db),
) -> list[TeacherAvailableByDay]:
    return teacher_availability.teachers_available_by_day(db, draft)


@router.post("/{class_id}/teachers", response_model=AssignTeacherResult)
def assign_teacher(
    payload: AssignTeacherRequest,
    draft: ClassDraft = Depends(get_class_draft),
    current_user: User = Depends(require_roles(*CLASS_MANAGERS)),
    db: Session = Depends(get_db),
) -> AssignTeacherResult:
    return teacher_availability.assign_teacher(db, draft, payload, current_user)


# ============ Readiness and approval ============


@router.post("/{class_id}/validate", response_model=ReadinessReport)
def validate_class(draft: ClassDraft = Depends(get_class_draft)) -> ReadinessReport:
    return class_drafts.validate_readiness(draft)


@router.post("/{class_id}/submit", response_model=SubmitResult)
def submit_class(
    draft: ClassDraft = Depends(get_class_draft),
    current_user: User = Depends(require_roles(*CLASS_MANAGERS)),
    db: Session = Depends(get_db),
) -> SubmitResult:
    return class_drafts.submit_draft(db, draft, current_user)


@router.post("/{class_id}/approve", response_model=SubmitResult)
def approve_class(
    draft: ClassDraft = Depends(get_class_draft),
    current_user: User = Depends(require_roles(*CLASS_APPROVERS)),
    db: Session = Depends(get_db),
) -> SubmitResult:
    return class_drafts.approve_draft(db, draft, current_user)


@router.post("/{class_id}/reject", response_model=SubmitResult)
def reject_class(
    payload: RejectRequest,
    draft: ClassDraft = Depends(get_class_draft),
    current_user: User = Depends(require_roles(*CLASS_APPROVERS)),
    db: Session = Depends(get_db),
) -> SubmitResult:
    return class_drafts.reject_draft(db, draft, payload.reason, current_user)
