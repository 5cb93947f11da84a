from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import CATALOG_MANAGERS, get_current_user, get_db, require_roles
from app.models.course import Course
from app.models.user import User
from app.schemas.reference import CourseCreate, CourseOut, CourseUpdate
from app.services.audit import log_activity
from app.services.class_drafts import get_course

router = APIRouter()


@router.get("/", response_model=list[CourseOut])
def list_courses(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> list[CourseOut]:
    return list(db.execute(select(Course).order_by(Course.code)).scalars())


@router.get("/{course_id}", response_model=CourseOut)
def read_course(
    course_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CourseOut:
    return get_course(db, course_id)


@router.post("/", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
def create_course(
    payload: CourseCreate,
    current_user: User = Depends(require_roles(*CATALOG_MANAGERS)),
    db: Session = Depends(get_db),
) -> CourseOut:
    existing = db.execute(select(Course).where(Course.code == payload.code)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Course code already exists")
    course = Course(**payload.model_dump())
    db.add(course)
    db.flush()
    log_activity(db, user=current_user, action="course.create", entity_type="course", entity_id=course.id)
    db.commit()
    db.refresh(course)
    return course


@router.put("/{course_id}", response_model=CourseOut)
def update_course(
    course_id: str,
    payload: CourseUpdate,
    current_user: User = Depends(require_roles(*CATALOG_MANAGERS)),
    db: Session = Depends(get_db),
) -> CourseOut:
    course = get_course(db, course_id)
    data = payload.model_dump(exclude_unset=True)
    for key, value in data.items():
        setattr(course, key, value)
    if data:
        log_activity(
            db,
            user=current_user,
            action="course.update",
            entity_type="course",
            entity_id=course.id,
            details={"fields": sorted(data)},
        )
    db.commit()
    db.refresh(course)
    return course
