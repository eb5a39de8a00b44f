from timetabling.schemas.conflict import (
    AffectedEntities,
    Conflict,
    ConflictKey,
    ConflictSeverity,
    ConflictSummary,
    ConflictType,
    ResourceCatalog,
    RoomResource,
    SubjectRequirement,
)
from timetabling.schemas.engine import EngineState
from timetabling.schemas.timetable import (
    SlotCreate,
    SlotUpdate,
    TimeSlot,
    Timetable,
    TimetableSlot,
    WeekDay,
)

__all__ = [
    "AffectedEntities",
    "Conflict",
    "ConflictKey",
    "ConflictSeverity",
    "ConflictSummary",
    "ConflictType",
    "EngineState",
    "ResourceCatalog",
    "RoomResource",
    "SlotCreate",
    "SlotUpdate",
    "SubjectRequirement",
    "TimeSlot",
    "Timetable",
    "TimetableSlot",
    "WeekDay",
]
