from collections.abc import Callable, Generator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.exceptions import PermissionDeniedError
from app.core.security import decode_token
from app.db.session import SessionLocal
from app.models.class_draft import ClassDraft
from app.models.user import User, UserRole
from app.services.class_drafts import get_draft

security = HTTPBearer()

CLASS_MANAGERS = (UserRole.admin, UserRole.academic_affairs)
CLASS_APPROVERS = (UserRole.admin, UserRole.center_head)
CATALOG_MANAGERS = (UserRole.admin, UserRole.center_head)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(credentials.credentials)
    except JWTError as exc:
        raise credentials_exception from exc
    user_id = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    user = db.get(User, user_id)
    if user is None:
        raise credentials_exception
    if not user.is_active:
        raise PermissionDeniedError("User account is inactive")
    return user


def require_roles(*roles: UserRole) -> Callable[[User], User]:
    allowed_roles = set(roles)

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise PermissionDeniedError()
        return current_user

    return role_checker


def ensure_branch_access(user: User, branch_id: str) -> None:
    """Users bound to a branch may only act on that branch; admins are unrestricted."""
    if user.role == UserRole.admin or user.branch_id is None:
        return
    if user.branch_id != branch_id:
        raise PermissionDeniedError("You do not have access to this branch")


def get_class_draft(
    class_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ClassDraft:
    draft = get_draft(db, class_id)
    ensure_branch_access(current_user, draft.branch_id)
    return draft
