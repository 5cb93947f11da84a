from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.resource import ResourceType

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


class BranchCreate(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=200)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()


class BranchOut(BranchCreate):
    id: str

    model_config = {"from_attributes": True}


class CourseCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    total_sessions: int = Field(ge=1, le=500)
    hours_per_session: float = Field(gt=0, le=12)
    required_skill: str | None = Field(default=None, max_length=50)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("required_skill")
    @classmethod
    def normalize_skill(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().upper() or None


class CourseUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    total_sessions: int | None = Field(default=None, ge=1, le=500)
    hours_per_session: float | None = Field(default=None, gt=0, le=12)
    required_skill: str | None = Field(default=None, max_length=50)


class CourseOut(CourseCreate):
    id: str

    model_config = {"from_attributes": True}


class TimeSlotTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time_format(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "TimeSlotTemplateCreate":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class TimeSlotTemplateOut(TimeSlotTemplateCreate):
    id: str
    branch_id: str
    duration_hours: float

    model_config = {"from_attributes": True}


class ResourceCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=100)
    resource_type: ResourceType
    capacity: int = Field(ge=1, le=1000)


class ResourceUpdate(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=50)
    name: str | None = Field(default=None, min_length=1, max_length=100)
    resource_type: ResourceType | None = None
    capacity: int | None = Field(default=None, ge=1, le=1000)


class ResourceOut(ResourceCreate):
    id: str
    branch_id: str
    display_name: str

    model_config = {"from_attributes": True}
