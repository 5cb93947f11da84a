from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

import app.models  # noqa: F401
from app.db.base import Base
from app.db.session import engine as default_engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "email", "role"},
    "classes": {"id", "status", "approval_status", "schedule_days"},
    "class_sessions": {
        "id",
        "class_id",
        "session_date",
        "day_of_week",
        "time_slot_template_id",
        "resource_id",
        "teacher_id",
        "resource_override",
    },
    "time_slot_templates": {"id", "branch_id", "start_time", "end_time"},
    "resources": {"id", "branch_id", "capacity", "resource_type"},
    "teachers": {"id", "branch_id", "skills"},
}


def missing_schema_items(engine: Engine = default_engine) -> tuple[list[str], dict[str, list[str]]]:
    with engine.connect() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables: list[str] = []
        missing_columns: dict[str, list[str]] = {}
        for table_name, columns in REQUIRED_COLUMNS.items():
            if table_name not in table_names:
                missing_tables.append(table_name)
                continue
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            missing = sorted(columns - existing)
            if missing:
                missing_columns[table_name] = missing
    return missing_tables, missing_columns


def ensure_runtime_schema(engine: Engine = default_engine, *, create: bool = False) -> None:
    if create:
        Base.metadata.create_all(bind=engine)
        logger.info("Ensured database tables exist")
        return
    try:
        missing_tables, missing_columns = missing_schema_items(engine)
    except Exception:  # pragma: no cover - environment dependent
        logger.warning("Unable to inspect database schema at startup", exc_info=True)
        return
    if missing_tables or missing_columns:
        logger.warning(
            "Database schema is outdated (missing tables=%s, columns=%s). Run `alembic upgrade head`.",
            missing_tables,
            missing_columns,
        )
