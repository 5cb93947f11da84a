from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import CATALOG_MANAGERS, ensure_branch_access, get_current_user, get_db, require_roles
from app.core.exceptions import ResourceNotFoundError
from app.models.teacher import Teacher
from app.models.user import User
from app.schemas.teacher import TeacherCreate, TeacherOut, TeacherUpdate
from app.services.audit import log_activity
from app.services.class_drafts import get_branch

router = APIRouter()


def _teacher_or_404(db: Session, teacher_id: str) -> Teacher:
    teacher = db.get(Teacher, teacher_id)
    if teacher is None:
        raise ResourceNotFoundError("Teacher", teacher_id)
    return teacher


@router.get("/", response_model=list[TeacherOut])
def list_teachers(
    branch_id: str | None = Query(default=None, alias="branchId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[TeacherOut]:
    statement = select(Teacher).order_by(Teacher.full_name)
    if branch_id is not None:
        statement = statement.where(Teacher.branch_id == branch_id)
    return list(db.execute(statement).scalars())


@router.get("/{teacher_id}", response_model=TeacherOut)
def read_teacher(
    teacher_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TeacherOut:
    return _teacher_or_404(db, teacher_id)


@router.post("/", response_model=TeacherOut, status_code=status.HTTP_201_CREATED)
def create_teacher(
    payload: TeacherCreate,
    current_user: User = Depends(require_roles(*CATALOG_MANAGERS)),
    db: Session = Depends(get_db),
) -> TeacherOut:
    get_branch(db, payload.branch_id)
    ensure_branch_access(current_user, payload.branch_id)
    existing = db.execute(select(Teacher).where(Teacher.email == payload.email)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Teacher email already exists")

    teacher = Teacher(**payload.model_dump(mode="json"))
    db.add(teacher)
    db.flush()
    log_activity(db, user=current_user, action="teacher.create", entity_type="teacher", entity_id=teacher.id)
    db.commit()
    db.refresh(teacher)
    return teacher


@router.put("/{teacher_id}", response_model=TeacherOut)
def update_teacher(
    teacher_id: str,
    payload: TeacherUpdate,
    current_user: User = Depends(require_roles(*CATALOG_MANAGERS)),
    db: Session = Depends(get_db),
) -> TeacherOut:
    teacher = _teacher_or_404(db, teacher_id)
    ensure_branch_access(current_user, teacher.branch_id)
    data = payload.model_dump(mode="json", exclude_unset=True)
    for key, value in data.items():
        if value is not None:
            setattr(teacher, key, value)
    if data:
        log_activity(
            db,
            user=current_user,
            action="teacher.update",
            entity_type="teacher",
            entity_id=teacher.id,
            details={"fields": sorted(data)},
        )
    db.commit()
    db.refresh(teacher)
    return teacher


@router.delete("/{teacher_id}")
def delete_teacher(
    teacher_id: str,
    current_user: User = Depends(require_roles(*CATALOG_MANAGERS)),
    db: Session = Depends(get_db),
) -> dict:
    teacher = _teacher_or_404(db, teacher_id)
    ensure_branch_access(current_user, teacher.branch_id)
    log_activity(db, user=current_user, action="teacher.delete", entity_type="teacher", entity_id=teacher.id)
    db.delete(teacher)
    db.commit()
    return {"success": True}
