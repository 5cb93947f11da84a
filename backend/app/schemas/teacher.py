from datetime import date

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.models.weekday import Weekday


class AvailabilityEntry(BaseModel):
    day_of_week: Weekday
    time_slot_template_id: str = Field(min_length=1, max_length=36)


def _normalize_skills(value: list[str]) -> list[str]:
    seen: set[str] = set()
    normalized: list[str] = []
    for item in value:
        skill = item.strip().upper()
        if not skill:
            continue
        if len(skill) > 50:
            raise ValueError("Skill length cannot exceed 50 characters")
        if skill in seen:
            continue
        seen.add(skill)
        normalized.append(skill)
    return normalized


def _dedupe_availability(value: list[AvailabilityEntry]) -> list[AvailabilityEntry]:
    seen: set[tuple[Weekday, str]] = set()
    entries: list[AvailabilityEntry] = []
    for entry in value:
        key = (entry.day_of_week, entry.time_slot_template_id)
        if key in seen:
            continue
        seen.add(key)
        entries.append(entry)
    return entries


class TeacherBase(BaseModel):
    full_name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    skills: list[str] = Field(default_factory=list, max_length=50)
    availability: list[AvailabilityEntry] = Field(default_factory=list, max_length=200)
    leave_dates: list[date] = Field(default_factory=list, max_length=366)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("skills")
    @classmethod
    def normalize_skills(cls, value: list[str]) -> list[str]:
        return _normalize_skills(value)

    @field_validator("availability")
    @classmethod
    def dedupe_availability(cls, value: list[AvailabilityEntry]) -> list[AvailabilityEntry]:
        return _dedupe_availability(value)


class TeacherCreate(TeacherBase):
    branch_id: str = Field(min_length=1, max_length=36)
    user_id: str | None = Field(default=None, max_length=36)


class TeacherUpdate(BaseModel):
    full_name: str | None = Field(default=None, min_length=1, max_length=200)
    skills: list[str] | None = Field(default=None, max_length=50)
    availability: list[AvailabilityEntry] | None = Field(default=None, max_length=200)
    leave_dates: list[date] | None = Field(default=None, max_length=366)

    @field_validator("skills")
    @classmethod
    def normalize_optional_skills(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return _normalize_skills(value)

    @field_validator("availability")
    @classmethod
    def dedupe_optional_availability(cls, value: list[AvailabilityEntry] | None) -> list[AvailabilityEntry] | None:
        if value is None:
            return None
        return _dedupe_availability(value)


class TeacherOut(TeacherBase):
    id: str
    branch_id: str
    user_id: str | None = None

    model_config = {"from_attributes": True}
