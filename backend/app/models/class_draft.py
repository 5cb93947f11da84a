import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Enum as SAEnum, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base, enum_values
from app.models.weekday import Weekday


class ClassModality(str, Enum):
    online = "ONLINE"
    offline = "OFFLINE"
    hybrid = "HYBRID"


class ClassStatus(str, Enum):
    draft = "DRAFT"
    scheduled = "SCHEDULED"
    ongoing = "ONGOING"
    completed = "COMPLETED"
    cancelled = "CANCELLED"


class ApprovalStatus(str, Enum):
    pending = "PENDING"
    approved = "APPROVED"
    rejected = "REJECTED"


class ClassDraft(Base):
    __tablename__ = "classes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    branch_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    modality: Mapped[ClassModality] = mapped_column(
        SAEnum(ClassModality, name="class_modality", values_callable=enum_values),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    planned_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    schedule_days: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[ClassStatus] = mapped_column(
        SAEnum(ClassStatus, name="class_status", values_callable=enum_values),
        nullable=False,
        default=ClassStatus.draft,
    )
    approval_status: Mapped[ApprovalStatus | None] = mapped_column(
        SAEnum(ApprovalStatus, name="approval_status", values_callable=enum_values),
        nullable=True,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    sessions: Mapped[list["ClassSession"]] = relationship(
        back_populates="class_draft",
        cascade="all, delete-orphan",
        order_by="ClassSession.sequence_number",
    )

    @property
    def weekdays(self) -> list[Weekday]:
        return [Weekday(item) for item in self.schedule_days or []]


class ClassSession(Base):
    __tablename__ = "class_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    class_id: Mapped[str] = mapped_column(ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)
    session_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    day_of_week: Mapped[Weekday] = mapped_column(
        SAEnum(Weekday, name="weekday", values_callable=enum_values),
        nullable=False,
    )
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    time_slot_template_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    teacher_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    resource_override: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    class_draft: Mapped[ClassDraft] = relationship(back_populates="sessions")
