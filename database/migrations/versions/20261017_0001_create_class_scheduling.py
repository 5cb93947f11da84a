"""create class scheduling tables

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    user_role = sa.Enum("admin", "academic_affairs", "center_head", "teacher", name="user_role")
    resource_type = sa.Enum("ROOM", "ONLINE_ACCOUNT", name="resource_type")
    class_modality = sa.Enum("ONLINE", "OFFLINE", "HYBRID", name="class_modality")
    class_status = sa.Enum("DRAFT", "SCHEDULED", "ONGOING", "COMPLETED", "CANCELLED", name="class_status")
    approval_status = sa.Enum("PENDING", "APPROVED", "REJECTED", name="approval_status")
    weekday = sa.Enum("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN", name="weekday")

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("branch_id", sa.String(length=36), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_branch_id", "users", ["branch_id"])

    op.create_table(
        "branches",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_branches_code", "branches", ["code"], unique=True)

    op.create_table(
        "courses",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("total_sessions", sa.Integer(), nullable=False, server_default="24"),
        sa.Column("hours_per_session", sa.Float(), nullable=False, server_default="1.5"),
        sa.Column("required_skill", sa.String(length=50), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_courses_code", "courses", ["code"], unique=True)

    op.create_table(
        "time_slot_templates",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("branch_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_time_slot_templates_branch_id", "time_slot_templates", ["branch_id"])

    op.create_table(
        "resources",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("branch_id", sa.String(length=36), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("resource_type", resource_type, nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="30"),
        *_timestamps(),
    )
    op.create_index("ix_resources_branch_id", "resources", ["branch_id"])

    op.create_table(
        "teachers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("branch_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("skills", sa.JSON(), nullable=False),
        sa.Column("availability", sa.JSON(), nullable=False),
        sa.Column("leave_dates", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", name="uq_teachers_user_id"),
    )
    op.create_index("ix_teachers_branch_id", "teachers", ["branch_id"])
    op.create_index("ix_teachers_email", "teachers", ["email"], unique=True)

    op.create_table(
        "classes",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("branch_id", sa.String(length=36), nullable=False),
        sa.Column("course_id", sa.String(length=36), nullable=False),
        sa.Column("modality", class_modality, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("planned_end_date", sa.Date(), nullable=True),
        sa.Column("schedule_days", sa.JSON(), nullable=False),
        sa.Column("max_capacity", sa.Integer(), nullable=False),
        sa.Column("status", class_status, nullable=False),
        sa.Column("approval_status", approval_status, nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.String(length=36), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_classes_code", "classes", ["code"], unique=True)
    op.create_index("ix_classes_branch_id", "classes", ["branch_id"])
    op.create_index("ix_classes_course_id", "classes", ["course_id"])

    op.create_table(
        "class_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("class_id", sa.String(length=36), sa.ForeignKey("classes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sequence_number", sa.Integer(), nullable=False),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column("day_of_week", weekday, nullable=False),
        sa.Column("week_number", sa.Integer(), nullable=False),
        sa.Column("time_slot_template_id", sa.String(length=36), nullable=True),
        sa.Column("resource_id", sa.String(length=36), nullable=True),
        sa.Column("teacher_id", sa.String(length=36), nullable=True),
        sa.Column("resource_override", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
    )
    op.create_index("ix_class_sessions_class_id", "class_sessions", ["class_id"])
    op.create_index("ix_class_sessions_session_date", "class_sessions", ["session_date"])
    op.create_index("ix_class_sessions_resource_id", "class_sessions", ["resource_id"])
    op.create_index("ix_class_sessions_teacher_id", "class_sessions", ["teacher_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_entity_id", "activity_logs", ["entity_id"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("class_sessions")
    op.drop_table("classes")
    op.drop_table("teachers")
    op.drop_table("resources")
    op.drop_table("time_slot_templates")
    op.drop_table("courses")
    op.drop_table("branches")
    op.drop_table("users")

    bind = op.get_bind()
    for name in ("weekday", "approval_status", "class_status", "class_modality", "resource_type", "user_role"):
        sa.Enum(name=name).drop(bind, checkfirst=True)
