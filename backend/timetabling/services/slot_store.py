from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

from timetabling.core.exceptions import NoActiveTimetableError
from timetabling.schemas.timetable import (
    SlotCreate,
    SlotUpdate,
    Timetable,
    TimetableSlot,
    new_id,
    utc_now,
)

logger = logging.getLogger(__name__)

SlotData = SlotCreate | TimetableSlot | Mapping[str, Any]


def build_slot(data: SlotData, *, now: datetime) -> TimetableSlot:
    """Turn a caller payload into a brand-new slot with its own id and timestamps."""
    if isinstance(data, TimetableSlot):
        payload = data.model_dump(exclude={"id", "conflicts", "created_at", "updated_at"})
    elif isinstance(data, SlotCreate):
        payload = data.model_dump()
    else:
        payload = SlotCreate.model_validate(dict(data)).model_dump()
    return TimetableSlot(
        **payload,
        id=new_id(),
        conflicts=[],
        created_at=now,
        updated_at=now,
    )


class SlotStore:
    """Owns the slots of the active timetable, the current selection and the dirty flag.

    The store only mutates; conflict recomputation and history snapshots are
    sequenced by the engine after each call.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or utc_now
        self.timetable: Timetable | None = None
        self.selected_slot_id: str | None = None
        self.dirty = False

    def _require_timetable(self, operation: str) -> Timetable:
        if self.timetable is None:
            raise NoActiveTimetableError(operation)
        return self.timetable

    def _touch(self, timetable: Timetable, now: datetime) -> None:
        timetable.last_modified = now
        self.dirty = True

    def load(self, timetable: Timetable | None) -> None:
        self.timetable = timetable
        self.selected_slot_id = None
        self.dirty = False

    def add_slot(self, data: SlotData) -> TimetableSlot:
        timetable = self._require_timetable("add slot")
        now = self._clock()
        slot = build_slot(data, now=now)
        timetable.slots.append(slot)
        self._touch(timetable, now)
        logger.debug("Added slot %s to timetable %s", slot.id, timetable.id)
        return slot

    def update_slot(self, slot_id: str, updates: SlotUpdate | Mapping[str, Any]) -> TimetableSlot | None:
        timetable = self._require_timetable("update slot")
        if not isinstance(updates, SlotUpdate):
            updates = SlotUpdate.model_validate(updates)
        now = self._clock()

        updated: TimetableSlot | None = None
        for index, slot in enumerate(timetable.slots):
            if slot.id != slot_id:
                continue
            merged = slot.model_dump()
            merged.update(updates.changes())
            merged["updated_at"] = now
            updated = TimetableSlot.model_validate(merged)
            timetable.slots[index] = updated
            break

        if updated is None:
            # Callers may race with a concurrent delete; the edit is dropped, not rejected.
            logger.debug("Ignoring update for unknown slot %s in timetable %s", slot_id, timetable.id)
        self._touch(timetable, now)
        return updated

    def delete_slot(self, slot_id: str) -> TimetableSlot | None:
        timetable = self._require_timetable("delete slot")
        now = self._clock()

        removed: TimetableSlot | None = None
        remaining = []
        for slot in timetable.slots:
            if slot.id == slot_id and removed is None:
                removed = slot
            else:
                remaining.append(slot)
        timetable.slots = remaining

        if removed is None:
            logger.debug("Ignoring delete for unknown slot %s in timetable %s", slot_id, timetable.id)
        if self.selected_slot_id == slot_id:
            self.selected_slot_id = None
        self._touch(timetable, now)
        return removed

    def replace_slots(self, slots: Iterable[TimetableSlot]) -> None:
        timetable = self._require_timetable("replace slots")
        timetable.slots = list(slots)
        if self.selected_slot_id is not None and timetable.find_slot(self.selected_slot_id) is None:
            self.selected_slot_id = None
        self._touch(timetable, self._clock())

    def select_slot(self, slot: TimetableSlot | str | None) -> None:
        if slot is None:
            self.selected_slot_id = None
            return
        self._require_timetable("select slot")
        self.selected_slot_id = slot if isinstance(slot, str) else slot.id

    def clear_selection(self) -> None:
        self.selected_slot_id = None

    @property
    def selected_slot(self) -> TimetableSlot | None:
        if self.timetable is None or self.selected_slot_id is None:
            return None
        return self.timetable.find_slot(self.selected_slot_id)
