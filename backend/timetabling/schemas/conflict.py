from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ConflictType = Literal[
    "teacher_overlap",
    "room_overlap",
    "student_overlap",
    "capacity_exceeded",
    "equipment_missing",
    "time_violation",
]

ConflictSeverity = Literal["error", "warning", "info"]


@dataclass(frozen=True)
class ConflictKey:
    """Identity of a conflict that survives recomputation (ids do not)."""

    conflict_type: str
    slot_ids: tuple[str, ...]

    @classmethod
    def of(cls, conflict_type: str, slot_ids: list[str]) -> "ConflictKey":
        return cls(conflict_type=conflict_type, slot_ids=tuple(sorted(slot_ids)))


class AffectedEntities(BaseModel):
    teachers: list[str] | None = None
    students: list[str] | None = None
    rooms: list[str] | None = None
    subjects: list[str] | None = None


class Conflict(BaseModel):
    id: str
    type: ConflictType
    severity: ConflictSeverity
    message: str
    affected_slots: list[str] = Field(alias="affectedSlots")  # TimetableSlot ids involved
    affected_entities: AffectedEntities = Field(default_factory=AffectedEntities, alias="affectedEntities")
    suggestions: list[str] = Field(default_factory=list)
    is_resolved: bool = Field(default=False, alias="isResolved")
    resolved_at: datetime | None = Field(default=None, alias="resolvedAt")
    resolved_by: str | None = Field(default=None, alias="resolvedBy")

    model_config = {
        "populate_by_name": True,
    }

    @property
    def key(self) -> ConflictKey:
        return ConflictKey.of(self.type, self.affected_slots)


class ConflictSummary(BaseModel):
    type: ConflictType
    severity: ConflictSeverity
    count: int = Field(ge=0)
    unresolved: int = Field(ge=0)
    affected_entities: int = Field(default=0, ge=0, alias="affectedEntities")

    model_config = {
        "populate_by_name": True,
    }


class RoomResource(BaseModel):
    capacity: int | None = Field(default=None, ge=0, le=10000)
    equipment: list[str] = Field(default_factory=list)


class SubjectRequirement(BaseModel):
    equipment_required: list[str] = Field(default_factory=list, alias="equipmentRequired")

    model_config = {
        "populate_by_name": True,
    }


class ResourceCatalog(BaseModel):
    """Optional room/subject/group facts enabling capacity and equipment checks."""

    rooms: dict[str, RoomResource] = Field(default_factory=dict)
    subjects: dict[str, SubjectRequirement] = Field(default_factory=dict)
    group_sizes: dict[str, int] = Field(default_factory=dict, alias="groupSizes")

    model_config = {
        "populate_by_name": True,
    }
