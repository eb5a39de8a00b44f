from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Sequence

from timetabling.schemas.conflict import (
    AffectedEntities,
    Conflict,
    ConflictKey,
    ConflictSeverity,
    ConflictSummary,
    ResourceCatalog,
)
from timetabling.schemas.timetable import TimetableSlot, new_id
from timetabling.services.time_arithmetic import same_day_overlap

logger = logging.getLogger(__name__)

SUGGESTIONS: dict[str, list[str]] = {
    "teacher_overlap": ["Reschedule one of the classes", "Assign different teacher"],
    "room_overlap": ["Change room for one class", "Reschedule one class"],
    "student_overlap": ["Reschedule one of the classes", "Split the student group across sessions"],
    "capacity_exceeded": ["Move the class to a larger room", "Split the student groups"],
    "equipment_missing": ["Move the class to an equipped room", "Request the missing equipment"],
    "time_violation": ["Move the class inside working hours"],
}


def _subjects(*slots: TimetableSlot) -> list[str] | None:
    subjects: list[str] = []
    for slot in slots:
        if slot.subject_id and slot.subject_id not in subjects:
            subjects.append(slot.subject_id)
    return subjects or None


def _group_by(slots: Iterable[TimetableSlot], attribute: str) -> dict[str, list[TimetableSlot]]:
    groups: dict[str, list[TimetableSlot]] = defaultdict(list)
    for slot in slots:
        value = getattr(slot, attribute)
        if value:
            groups[value].append(slot)
    return groups


class ConflictDetector:
    """Recomputes the full conflict list of one timetable from its slots.

    Teacher and room double-bookings are always checked. Student-group overlaps,
    room capacity, equipment and working-hour checks only run when configured.
    The detector keeps no state between calls; every call assigns fresh ids.
    """

    def __init__(
        self,
        *,
        catalog: ResourceCatalog | None = None,
        detect_student_overlaps: bool = False,
        working_hours: tuple[int, int] | None = None,
    ) -> None:
        self.catalog = catalog or ResourceCatalog()
        self.detect_student_overlaps = detect_student_overlaps
        self.working_hours = working_hours

    def detect(self, slots: Sequence[TimetableSlot]) -> list[Conflict]:
        conflicts: list[Conflict] = []
        conflicts.extend(self._teacher_overlaps(slots))
        conflicts.extend(self._room_overlaps(slots))
        if self.detect_student_overlaps:
            conflicts.extend(self._student_overlaps(slots))
        conflicts.extend(self._capacity_conflicts(slots))
        conflicts.extend(self._equipment_conflicts(slots))
        if self.working_hours is not None:
            conflicts.extend(self._time_violations(slots))
        return conflicts

    def _pairwise(self, group: list[TimetableSlot]) -> Iterable[tuple[TimetableSlot, TimetableSlot]]:
        # O(N^2) per teacher/room is fine: groups are bounded by one weekly load.
        n = len(group)
        for i in range(n):
            for j in range(i + 1, n):
                if same_day_overlap(group[i], group[j]):
                    yield group[i], group[j]

    def _teacher_overlaps(self, slots: Sequence[TimetableSlot]) -> list[Conflict]:
        conflicts = []
        for teacher_id, group in _group_by(slots, "teacher_id").items():
            for s1, s2 in self._pairwise(group):
                conflicts.append(Conflict(
                    id=new_id(),
                    type="teacher_overlap",
                    severity="error",
                    message=f"Teacher {teacher_id} has overlapping classes on {s1.day.capitalize()}",
                    affected_slots=[s1.id, s2.id],
                    affected_entities=AffectedEntities(teachers=[teacher_id], subjects=_subjects(s1, s2)),
                    suggestions=list(SUGGESTIONS["teacher_overlap"]),
                ))
        return conflicts

    def _room_overlaps(self, slots: Sequence[TimetableSlot]) -> list[Conflict]:
        conflicts = []
        for room_id, group in _group_by(slots, "room_id").items():
            for s1, s2 in self._pairwise(group):
                conflicts.append(Conflict(
                    id=new_id(),
                    type="room_overlap",
                    severity="error",
                    message=f"Room {room_id} is double-booked on {s1.day.capitalize()}",
                    affected_slots=[s1.id, s2.id],
                    affected_entities=AffectedEntities(rooms=[room_id], subjects=_subjects(s1, s2)),
                    suggestions=list(SUGGESTIONS["room_overlap"]),
                ))
        return conflicts

    def _student_overlaps(self, slots: Sequence[TimetableSlot]) -> list[Conflict]:
        groups: dict[str, list[TimetableSlot]] = defaultdict(list)
        for slot in slots:
            for group_id in slot.student_groups:
                groups[group_id].append(slot)

        # A pair sharing several groups is reported once, listing every shared group.
        by_key: dict[ConflictKey, Conflict] = {}
        for group_id, group in groups.items():
            for s1, s2 in self._pairwise(group):
                key = ConflictKey.of("student_overlap", [s1.id, s2.id])
                existing = by_key.get(key)
                if existing is not None:
                    existing.affected_entities.students.append(group_id)
                    continue
                by_key[key] = Conflict(
                    id=new_id(),
                    type="student_overlap",
                    severity="error",
                    message=f"Student group {group_id} has overlapping classes on {s1.day.capitalize()}",
                    affected_slots=[s1.id, s2.id],
                    affected_entities=AffectedEntities(students=[group_id], subjects=_subjects(s1, s2)),
                    suggestions=list(SUGGESTIONS["student_overlap"]),
                )
        return list(by_key.values())

    def _capacity_conflicts(self, slots: Sequence[TimetableSlot]) -> list[Conflict]:
        if not self.catalog.rooms or not self.catalog.group_sizes:
            return []
        conflicts = []
        for slot in slots:
            room = self.catalog.rooms.get(slot.room_id) if slot.room_id else None
            if room is None or room.capacity is None:
                continue
            known = [group for group in slot.student_groups if group in self.catalog.group_sizes]
            if not known:
                continue
            student_count = sum(self.catalog.group_sizes[group] for group in known)
            if student_count > room.capacity:
                conflicts.append(Conflict(
                    id=new_id(),
                    type="capacity_exceeded",
                    severity="error",
                    message=f"Room {slot.room_id} capacity ({room.capacity}) < Students ({student_count})",
                    affected_slots=[slot.id],
                    affected_entities=AffectedEntities(
                        rooms=[slot.room_id],
                        students=known,
                        subjects=_subjects(slot),
                    ),
                    suggestions=list(SUGGESTIONS["capacity_exceeded"]),
                ))
        return conflicts

    def _equipment_conflicts(self, slots: Sequence[TimetableSlot]) -> list[Conflict]:
        if not self.catalog.subjects:
            return []
        conflicts = []
        for slot in slots:
            if not slot.subject_id or not slot.room_id:
                continue
            requirement = self.catalog.subjects.get(slot.subject_id)
            if requirement is None or not requirement.equipment_required:
                continue
            room = self.catalog.rooms.get(slot.room_id)
            available = set(room.equipment) if room is not None else set()
            missing = [item for item in requirement.equipment_required if item not in available]
            if missing:
                conflicts.append(Conflict(
                    id=new_id(),
                    type="equipment_missing",
                    severity="error",
                    message=f"Room {slot.room_id} lacks {', '.join(missing)} for subject {slot.subject_id}",
                    affected_slots=[slot.id],
                    affected_entities=AffectedEntities(rooms=[slot.room_id], subjects=[slot.subject_id]),
                    suggestions=list(SUGGESTIONS["equipment_missing"]),
                ))
        return conflicts

    def _time_violations(self, slots: Sequence[TimetableSlot]) -> list[Conflict]:
        day_start, day_end = self.working_hours
        conflicts = []
        for slot in slots:
            if slot.time_slot.start_minutes >= day_start and slot.time_slot.end_minutes <= day_end:
                continue
            conflicts.append(Conflict(
                id=new_id(),
                type="time_violation",
                severity="warning",
                message=(
                    f"Class {slot.start_time}-{slot.end_time} on {slot.day.capitalize()} "
                    "falls outside working hours"
                ),
                affected_slots=[slot.id],
                affected_entities=AffectedEntities(subjects=_subjects(slot)),
                suggestions=list(SUGGESTIONS["time_violation"]),
            ))
        return conflicts


class ResolutionLedger:
    """Remembers which conflicts were resolved, keyed by identity rather than id."""

    def __init__(self) -> None:
        self._resolved: dict[ConflictKey, tuple[datetime, str | None]] = {}

    def __len__(self) -> int:
        return len(self._resolved)

    def __contains__(self, key: ConflictKey) -> bool:
        return key in self._resolved

    def resolve(self, conflict: Conflict, *, resolved_at: datetime, resolved_by: str | None = None) -> Conflict:
        self._resolved[conflict.key] = (resolved_at, resolved_by)
        conflict.is_resolved = True
        conflict.resolved_at = resolved_at
        conflict.resolved_by = resolved_by
        return conflict

    def apply(self, conflicts: list[Conflict]) -> list[Conflict]:
        present: set[ConflictKey] = set()
        for conflict in conflicts:
            key = conflict.key
            present.add(key)
            entry = self._resolved.get(key)
            if entry is None:
                continue
            conflict.is_resolved = True
            conflict.resolved_at, conflict.resolved_by = entry

        stale = [key for key in self._resolved if key not in present]
        for key in stale:
            del self._resolved[key]
        if stale:
            logger.debug("Dropped %d resolution(s) whose conflicts no longer occur", len(stale))
        return conflicts

    def clear(self) -> None:
        self._resolved.clear()


def summarize_conflicts(conflicts: Iterable[Conflict]) -> list[ConflictSummary]:
    counts: dict[str, int] = defaultdict(int)
    unresolved: dict[str, int] = defaultdict(int)
    severity: dict[str, ConflictSeverity] = {}
    entities: dict[str, set[str]] = defaultdict(set)
    rank = {"error": 0, "warning": 1, "info": 2}

    for conflict in conflicts:
        counts[conflict.type] += 1
        if not conflict.is_resolved:
            unresolved[conflict.type] += 1
        current = severity.get(conflict.type)
        if current is None or rank[conflict.severity] < rank[current]:
            severity[conflict.type] = conflict.severity
        affected = conflict.affected_entities
        for label, values in (
            ("teacher", affected.teachers),
            ("student", affected.students),
            ("room", affected.rooms),
        ):
            for value in values or []:
                entities[conflict.type].add(f"{label}:{value}")

    return [
        ConflictSummary(
            type=conflict_type,
            severity=severity[conflict_type],
            count=count,
            unresolved=unresolved[conflict_type],
            affected_entities=len(entities[conflict_type]),
        )
        for conflict_type, count in counts.items()
    ]
