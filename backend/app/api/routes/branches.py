from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import CATALOG_MANAGERS, ensure_branch_access, get_current_user, get_db, require_roles
from app.core.exceptions import ResourceNotFoundError
from app.models.branch import Branch
from app.models.resource import Resource
from app.models.time_slot import TimeSlotTemplate
from app.models.user import User
from app.schemas.reference import (
    BranchCreate,
    BranchOut,
    ResourceCreate,
    ResourceOut,
    ResourceUpdate,
    TimeSlotTemplateCreate,
    TimeSlotTemplateOut,
)
from app.services.audit import log_activity
from app.services.class_drafts import get_branch

router = APIRouter()


@router.get("/", response_model=list[BranchOut])
def list_branches(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> list[BranchOut]:
    return list(db.execute(select(Branch).order_by(Branch.code)).scalars())


@router.post("/", response_model=BranchOut, status_code=status.HTTP_201_CREATED)
def create_branch(
    payload: BranchCreate,
    current_user: User = Depends(require_roles(*CATALOG_MANAGERS)),
    db: Session = Depends(get_db),
) -> BranchOut:
    existing = db.execute(select(Branch).where(Branch.code == payload.code)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Branch code already exists")
    branch = Branch(**payload.model_dump())
    db.add(branch)
    db.flush()
    log_activity(db, user=current_user, action="branch.create", entity_type="branch", entity_id=branch.id)
    db.commit()
    db.refresh(branch)
    return branch


# ============ Time-slot templates ============


@router.get("/{branch_id}/time-slot-templates", response_model=list[TimeSlotTemplateOut])
def list_time_slot_templates(
    branch_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[TimeSlotTemplateOut]:
    get_branch(db, branch_id)
    statement = (
        select(TimeSlotTemplate)
        .where(TimeSlotTemplate.branch_id == branch_id)
        .order_by(TimeSlotTemplate.start_time, TimeSlotTemplate.name)
    )
    return list(db.execute(statement).scalars())


@router.post(
    "/{branch_id}/time-slot-templates",
    response_model=TimeSlotTemplateOut,
    status_code=status.HTTP_201_CREATED,
)
def create_time_slot_template(
    branch_id: str,
    payload: TimeSlotTemplateCreate,
    current_user: User = Depends(require_roles(*CATALOG_MANAGERS)),
    db: Session = Depends(get_db),
) -> TimeSlotTemplateOut:
    get_branch(db, branch_id)
    ensure_branch_access(current_user, branch_id)
    template = TimeSlotTemplate(branch_id=branch_id, **payload.model_dump())
    db.add(template)
    db.flush()
    log_activity(
        db,
        user=current_user,
        action="time_slot_template.create",
        entity_type="time_slot_template",
        entity_id=template.id,
    )
    db.commit()
    db.refresh(template)
    return template


# ============ Resources ============


def _resource_or_404(db: Session, branch_id: str, resource_id: str) -> Resource:
    resource = db.get(Resource, resource_id)
    if resource is None or resource.branch_id != branch_id:
        raise ResourceNotFoundError("Resource", resource_id)
    return resource


def _ensure_unique_resource_code(db: Session, branch_id: str, code: str, exclude_id: str | None = None) -> None:
    statement = select(Resource).where(Resource.branch_id == branch_id, Resource.code == code)
    if exclude_id is not None:
        statement = statement.where(Resource.id != exclude_id)
    if db.execute(statement).scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Resource code already exists")


@router.get("/{branch_id}/resources", response_model=list[ResourceOut])
def list_resources(
    branch_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ResourceOut]:
    get_branch(db, branch_id)
    statement = select(Resource).where(Resource.branch_id == branch_id).order_by(Resource.code)
    return list(db.execute(statement).scalars())


@router.post("/{branch_id}/resources", response_model=ResourceOut, status_code=status.HTTP_201_CREATED)
def create_resource(
    branch_id: str,
    payload: ResourceCreate,
    current_user: User = Depends(require_roles(*CATALOG_MANAGERS)),
    db: Session = Depends(get_db),
) -> ResourceOut:
    get_branch(db, branch_id)
    ensure_branch_access(current_user, branch_id)
    _ensure_unique_resource_code(db, branch_id, payload.code)
    resource = Resource(branch_id=branch_id, **payload.model_dump())
    db.add(resource)
    db.flush()
    log_activity(db, user=current_user, action="resource.create", entity_type="resource", entity_id=resource.id)
    db.commit()
    db.refresh(resource)
    return resource


@router.put("/{branch_id}/resources/{resource_id}", response_model=ResourceOut)
def update_resource(
    branch_id: str,
    resource_id: str,
    payload: ResourceUpdate,
    current_user: User = Depends(require_roles(*CATALOG_MANAGERS)),
    db: Session = Depends(get_db),
) -> ResourceOut:
    ensure_branch_access(current_user, branch_id)
    resource = _resource_or_404(db, branch_id, resource_id)
    data = payload.model_dump(exclude_unset=True)
    if "code" in data:
        _ensure_unique_resource_code(db, branch_id, data["code"], exclude_id=resource_id)
    for key, value in data.items():
        setattr(resource, key, value)
    if data:
        log_activity(
            db,
            user=current_user,
            action="resource.update",
            entity_type="resource",
            entity_id=resource.id,
            details={"fields": sorted(data)},
        )
    db.commit()
    db.refresh(resource)
    return resource


@router.delete("/{branch_id}/resources/{resource_id}")
def delete_resource(
    branch_id: str,
    resource_id: str,
    current_user: User = Depends(require_roles(*CATALOG_MANAGERS)),
    db: Session = Depends(get_db),
) -> dict:
    ensure_branch_access(current_user, branch_id)
    resource = _resource_or_404(db, branch_id, resource_id)
    log_activity(db, user=current_user, action="resource.delete", entity_type="resource", entity_id=resource.id)
    db.delete(resource)
    db.commit()
    return {"success": True}
