from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from timetabling.schemas.conflict import Conflict
from timetabling.services.time_arithmetic import to_minutes

WeekDay = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

DAY_VALUES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DAY_SHORT_MAP = {day[:3]: day for day in DAY_VALUES}


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_day(value: str) -> str:
    cleaned = value.strip().lower()
    return DAY_SHORT_MAP.get(cleaned, cleaned)


def _optional_key(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


class TimeSlot(BaseModel):
    day: WeekDay
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    week: int | None = Field(default=None, ge=1, le=60)

    model_config = {
        "populate_by_name": True,
        "from_attributes": True,
    }

    @field_validator("day", mode="before")
    @classmethod
    def validate_day(cls, value: str) -> str:
        if not isinstance(value, str):
            raise ValueError("Invalid day value")
        return normalize_day(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time_format(cls, value: str) -> str:
        to_minutes(value)
        return value

    @model_validator(mode="after")
    def validate_time_order(self) -> "TimeSlot":
        if to_minutes(self.end_time) <= to_minutes(self.start_time):
            raise ValueError("End time must be after start time")
        return self

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end_time)


class _SlotFields(BaseModel):
    subject_id: str | None = Field(default=None, alias="subjectId")
    teacher_id: str | None = Field(default=None, alias="teacherId")
    room_id: str | None = Field(default=None, alias="roomId")
    student_groups: list[str] = Field(default_factory=list, alias="studentGroups")
    is_locked: bool = Field(default=False, alias="isLocked")
    notes: str | None = Field(default=None, max_length=1000)

    model_config = {
        "populate_by_name": True,
        "from_attributes": True,
    }

    @field_validator("subject_id", "teacher_id", "room_id")
    @classmethod
    def normalize_keys(cls, value: str | None) -> str | None:
        return _optional_key(value)

    @field_validator("student_groups")
    @classmethod
    def dedupe_groups(cls, value: list[str]) -> list[str]:
        seen: set[str] = set()
        groups: list[str] = []
        for group in value:
            cleaned = group.strip()
            if cleaned and cleaned not in seen:
                seen.add(cleaned)
                groups.append(cleaned)
        return groups


class SlotCreate(_SlotFields):
    time_slot: TimeSlot = Field(alias="timeSlot")


class SlotUpdate(BaseModel):
    time_slot: TimeSlot | None = Field(default=None, alias="timeSlot")
    subject_id: str | None = Field(default=None, alias="subjectId")
    teacher_id: str | None = Field(default=None, alias="teacherId")
    room_id: str | None = Field(default=None, alias="roomId")
    student_groups: list[str] | None = Field(default=None, alias="studentGroups")
    is_locked: bool | None = Field(default=None, alias="isLocked")
    notes: str | None = Field(default=None, max_length=1000)

    model_config = {
        "populate_by_name": True,
    }

    def changes(self) -> dict:
        changes = self.model_dump(exclude_unset=True)
        # These fields cannot be cleared, only replaced.
        for field in ("time_slot", "student_groups", "is_locked"):
            if field in changes and changes[field] is None:
                del changes[field]
        return changes


class TimetableSlot(_SlotFields):
    id: str = Field(default_factory=new_id, min_length=1)
    time_slot: TimeSlot = Field(alias="timeSlot")
    conflicts: list[Conflict] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")

    # Attribute access used by the interval helpers in time_arithmetic.
    @property
    def day(self) -> str:
        return self.time_slot.day

    @property
    def start_time(self) -> str:
        return self.time_slot.start_time

    @property
    def end_time(self) -> str:
        return self.time_slot.end_time


class Timetable(BaseModel):
    id: str = Field(default_factory=new_id, min_length=1)
    name: str = Field(min_length=1, max_length=200)
    year: int = Field(ge=1, le=9999)
    semester: int = Field(ge=1, le=20)
    is_active: bool = Field(default=False, alias="isActive")
    slots: list[TimetableSlot] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utc_now, alias="generatedAt")
    generated_by: str = Field(default="system", alias="generatedBy", min_length=1)
    last_modified: datetime = Field(default_factory=utc_now, alias="lastModified")
    version: int = Field(default=1, ge=1)

    model_config = {
        "populate_by_name": True,
        "from_attributes": True,
    }

    @model_validator(mode="after")
    def validate_unique_slots(self) -> "Timetable":
        seen: set[str] = set()
        duplicates: set[str] = set()
        for slot in self.slots:
            if slot.id in seen:
                duplicates.add(slot.id)
            else:
                seen.add(slot.id)
        if duplicates:
            raise ValueError(f"Duplicate timeslot id(s): {', '.join(sorted(duplicates))}")
        return self

    def find_slot(self, slot_id: str) -> TimetableSlot | None:
        for slot in self.slots:
            if slot.id == slot_id:
                return slot
        return None
