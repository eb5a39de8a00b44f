from __future__ import annotations

from pydantic import BaseModel, Field

from timetabling.schemas.conflict import Conflict
from timetabling.schemas.timetable import Timetable, TimetableSlot


class EngineState(BaseModel):
    """Read-only view of an engine handed to callers for rendering."""

    current_timetable: Timetable | None = Field(default=None, alias="currentTimetable")
    timetable_ids: list[str] = Field(default_factory=list, alias="timetableIds")
    selected_slot: TimetableSlot | None = Field(default=None, alias="selectedSlot")
    conflicts: list[Conflict] = Field(default_factory=list)
    is_dirty: bool = Field(default=False, alias="isDirty")
    is_generating: bool = Field(default=False, alias="isGenerating")
    can_undo: bool = Field(default=False, alias="canUndo")
    can_redo: bool = Field(default=False, alias="canRedo")
    history_index: int = Field(default=-1, ge=-1, alias="historyIndex")
    history_length: int = Field(default=0, ge=0, alias="historyLength")

    model_config = {
        "populate_by_name": True,
    }
