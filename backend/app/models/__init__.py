from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.branch import Branch  # noqa: F401
from app.models.class_draft import (  # noqa: F401
    ApprovalStatus,
    ClassDraft,
    ClassModality,
    ClassSession,
    ClassStatus,
)
from app.models.course import Course  # noqa: F401
from app.models.resource import Resource, ResourceType  # noqa: F401
from app.models.teacher import Teacher  # noqa: F401
from app.models.time_slot import TimeSlotTemplate  # noqa: F401
from app.models.user import User, UserRole  # noqa: F401
from app.models.weekday import Weekday  # noqa: F401
