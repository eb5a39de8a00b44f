from datetime import datetime, timezone

import pytest

from timetabling.schemas.conflict import ResourceCatalog
from timetabling.schemas.timetable import TimetableSlot
from timetabling.services.conflict_service import ConflictDetector, ResolutionLedger, summarize_conflicts
from timetabling.services.time_arithmetic import to_minutes

RESOLVED_AT = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_slot(slot_id, day="monday", start="09:00", end="10:00", **fields):
    return TimetableSlot(
        id=slot_id,
        time_slot={"day": day, "start_time": start, "end_time": end},
        **fields,
    )


@pytest.fixture
def detector():
    return ConflictDetector()


def test_detect_teacher_conflict(detector):
    slots = [
        make_slot("a", teacher_id="T", room_id="r1"),
        make_slot("b", start="09:30", end="10:30", teacher_id="T", room_id="r2"),
    ]
    conflicts = detector.detect(slots)

    assert len(conflicts) == 1
    conflict = conflicts[0]
    assert conflict.type == "teacher_overlap"
    assert conflict.severity == "error"
    assert conflict.affected_slots == ["a", "b"]
    assert conflict.affected_entities.teachers == ["T"]
    assert conflict.suggestions == ["Reschedule one of the classes", "Assign different teacher"]
    assert conflict.is_resolved is False


def test_detect_room_conflict(detector):
    slots = [
        make_slot("s1", teacher_id="f1", room_id="r1", subject_id="c1"),
        make_slot("s2", teacher_id="f2", room_id="r1", subject_id="c2"),
    ]
    conflicts = detector.detect(slots)

    assert [c.type for c in conflicts] == ["room_overlap"]
    assert "Room r1 is double-booked" in conflicts[0].message
    assert conflicts[0].affected_entities.rooms == ["r1"]
    assert conflicts[0].affected_entities.subjects == ["c1", "c2"]


def test_teacher_conflicts_come_before_room_conflicts(detector):
    slots = [
        make_slot("s1", teacher_id="T", room_id="R"),
        make_slot("s2", teacher_id="T", room_id="R"),
    ]
    conflicts = detector.detect(slots)
    assert [c.type for c in conflicts] == ["teacher_overlap", "room_overlap"]
    assert all(c.affected_slots == ["s1", "s2"] for c in conflicts)


def test_different_weekdays_never_conflict(detector):
    slots = [
        make_slot("a", teacher_id="T", room_id="R"),
        make_slot("b", day="tuesday", start="09:30", end="10:30", teacher_id="T", room_id="R"),
    ]
    assert detector.detect(slots) == []


def test_touching_slots_do_not_conflict(detector):
    slots = [
        make_slot("a", teacher_id="T"),
        make_slot("b", start="10:00", end="11:00", teacher_id="T"),
    ]
    assert detector.detect(slots) == []


def test_unassigned_slots_are_ignored(detector):
    slots = [make_slot("a"), make_slot("b"), make_slot("c", teacher_id="", room_id="  ")]
    assert detector.detect(slots) == []


def test_pairs_are_reported_in_encounter_order(detector):
    slots = [
        make_slot("x", start="09:00", end="12:00", teacher_id="T"),
        make_slot("y", start="09:30", end="10:00", teacher_id="T"),
        make_slot("z", start="11:00", end="11:30", teacher_id="T"),
    ]
    conflicts = detector.detect(slots)
    assert [c.affected_slots for c in conflicts] == [["x", "y"], ["x", "z"]]


def test_detect_is_idempotent_up_to_ids(detector):
    slots = [
        make_slot("a", teacher_id="T", room_id="R"),
        make_slot("b", start="09:30", end="10:30", teacher_id="T", room_id="R"),
        make_slot("c", start="09:45", end="10:15", room_id="R"),
    ]
    first = detector.detect(slots)
    second = detector.detect(slots)

    assert len(first) == len(second) == 4
    assert [(c.type, c.affected_slots) for c in first] == [(c.type, c.affected_slots) for c in second]
    assert {c.id for c in first}.isdisjoint({c.id for c in second})
    assert [c.key for c in first] == [c.key for c in second]


def test_student_overlaps_are_opt_in():
    slots = [
        make_slot("a", student_groups=["g1", "g2"]),
        make_slot("b", student_groups=["g2", "g1"]),
    ]
    assert ConflictDetector().detect(slots) == []

    conflicts = ConflictDetector(detect_student_overlaps=True).detect(slots)
    assert len(conflicts) == 1
    assert conflicts[0].type == "student_overlap"
    assert conflicts[0].affected_entities.students == ["g1", "g2"]


def test_detect_capacity_conflict():
    catalog = ResourceCatalog(
        rooms={"r1": {"capacity": 100}},
        group_sizes={"g1": 80, "g2": 70},
    )
    slots = [
        make_slot("s3", day="tuesday", start="10:00", end="11:00", room_id="r1", student_groups=["g1", "g2"]),
        make_slot("s4", day="tuesday", start="11:00", end="12:00", room_id="r1", student_groups=["g1"]),
    ]
    conflicts = ConflictDetector(catalog=catalog).detect(slots)

    assert len(conflicts) == 1
    assert conflicts[0].type == "capacity_exceeded"
    assert conflicts[0].affected_slots == ["s3"]
    assert "capacity (100) < Students (150)" in conflicts[0].message


def test_detect_missing_equipment():
    catalog = ResourceCatalog(
        rooms={"lab-1": {"equipment": ["computers"]}, "lh-1": {}},
        subjects={"cs-lab": {"equipmentRequired": ["computers"]}},
    )
    slots = [
        make_slot("ok", subject_id="cs-lab", room_id="lab-1"),
        make_slot("bad", day="friday", subject_id="cs-lab", room_id="lh-1"),
    ]
    conflicts = ConflictDetector(catalog=catalog).detect(slots)

    assert [(c.type, c.affected_slots) for c in conflicts] == [("equipment_missing", ["bad"])]


def test_time_violation_outside_working_hours():
    detector = ConflictDetector(working_hours=(to_minutes("08:00"), to_minutes("17:00")))
    slots = [
        make_slot("early", start="07:30", end="08:30"),
        make_slot("fine", start="16:00", end="17:00"),
    ]
    conflicts = detector.detect(slots)

    assert len(conflicts) == 1
    assert conflicts[0].type == "time_violation"
    assert conflicts[0].severity == "warning"


def test_ledger_carries_resolution_across_recomputation(detector):
    slots = [make_slot("a", teacher_id="T"), make_slot("b", teacher_id="T")]
    ledger = ResolutionLedger()
    first = ledger.apply(detector.detect(slots))
    ledger.resolve(first[0], resolved_at=RESOLVED_AT)

    # Same pair, reversed order, fresh ids.
    second = ledger.apply(detector.detect(list(reversed(slots))))
    assert second[0].id != first[0].id
    assert second[0].is_resolved is True
    assert second[0].resolved_at is not None


def test_ledger_forgets_conditions_that_cleared(detector):
    clashing = [make_slot("a", teacher_id="T"), make_slot("b", teacher_id="T")]
    ledger = ResolutionLedger()
    conflicts = ledger.apply(detector.detect(clashing))
    ledger.resolve(conflicts[0], resolved_at=RESOLVED_AT)
    assert len(ledger) == 1

    ledger.apply(detector.detect([clashing[0]]))
    assert len(ledger) == 0

    again = ledger.apply(detector.detect(clashing))
    assert again[0].is_resolved is False


def test_summarize_conflicts(detector):
    slots = [
        make_slot("a", teacher_id="T", room_id="R"),
        make_slot("b", teacher_id="T", room_id="R"),
        make_slot("c", start="09:15", end="09:45", room_id="R"),
    ]
    summary = {item.type: item for item in summarize_conflicts(detector.detect(slots))}

    assert summary["teacher_overlap"].count == 1
    assert summary["room_overlap"].count == 3
    assert summary["room_overlap"].unresolved == 3
    assert summary["room_overlap"].affected_entities == 1
