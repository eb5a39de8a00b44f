from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from threading import RLock
from time import perf_counter
from typing import Any, Callable, Mapping

from timetabling.core.config import Settings, get_settings
from timetabling.core.exceptions import (
    ConfigurationError,
    GenerationFailure,
    GenerationInProgressError,
    NoActiveTimetableError,
    NotFoundError,
)
from timetabling.schemas.conflict import Conflict, ConflictSummary, ResourceCatalog
from timetabling.schemas.engine import EngineState
from timetabling.schemas.timetable import SlotUpdate, Timetable, TimetableSlot, utc_now
from timetabling.services.conflict_service import ConflictDetector, ResolutionLedger, summarize_conflicts
from timetabling.services.generation import TimetableGenerator, normalize_generated_slots, run_generator
from timetabling.services.history import HistoryManager
from timetabling.services.slot_store import SlotData, SlotStore

logger = logging.getLogger(__name__)


class TimetableEngine:
    """Single-writer state machine over the timetables being edited.

    Every mutating call runs to completion (slot change, conflict
    recomputation, history snapshot) under one re-entrant lock. The only
    suspension point is the external generator awaited by :meth:`generate`,
    and the lock is never held across it.

    Objects handed out (timetables, slots, conflicts) are copies; edits must go
    through the engine.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        generator: TimetableGenerator | None = None,
        catalog: ResourceCatalog | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._clock = clock or utc_now
        self._generator = generator
        self._lock = RLock()

        self._timetables: dict[str, Timetable] = {}
        self._store = SlotStore(clock=self._clock)
        self._history = HistoryManager(limit=self.settings.history_limit)
        self._detector = ConflictDetector(
            catalog=catalog,
            detect_student_overlaps=self.settings.detect_student_overlaps,
            working_hours=self.settings.working_hours,
        )
        self._ledger = ResolutionLedger()
        self._conflicts: list[Conflict] = []

        self._generating = False
        self._generation_task: asyncio.Future | None = None

    # -- read side -----------------------------------------------------------

    @property
    def current_timetable(self) -> Timetable | None:
        with self._lock:
            timetable = self._store.timetable
            return timetable.model_copy(deep=True) if timetable is not None else None

    @property
    def timetables(self) -> list[Timetable]:
        with self._lock:
            return [timetable.model_copy(deep=True) for timetable in self._timetables.values()]

    @property
    def selected_slot(self) -> TimetableSlot | None:
        with self._lock:
            slot = self._store.selected_slot
            return slot.model_copy(deep=True) if slot is not None else None

    @property
    def conflicts(self) -> list[Conflict]:
        with self._lock:
            return [conflict.model_copy(deep=True) for conflict in self._conflicts]

    @property
    def is_dirty(self) -> bool:
        return self._store.dirty

    @property
    def is_generating(self) -> bool:
        return self._generating

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    @property
    def history_index(self) -> int:
        return self._history.history_index

    @property
    def history_length(self) -> int:
        return len(self._history)

    def get_timetable(self, timetable_id: str) -> Timetable:
        with self._lock:
            timetable = self._timetables.get(timetable_id)
            if timetable is None:
                raise NotFoundError("Timetable", timetable_id)
            return timetable.model_copy(deep=True)

    def conflicts_for_slot(self, slot_id: str) -> list[Conflict]:
        with self._lock:
            return [
                conflict.model_copy(deep=True)
                for conflict in self._conflicts
                if slot_id in conflict.affected_slots
            ]

    def conflict_summary(self) -> list[ConflictSummary]:
        with self._lock:
            return summarize_conflicts(self._conflicts)

    def state(self) -> EngineState:
        with self._lock:
            return EngineState(
                current_timetable=self.current_timetable,
                timetable_ids=list(self._timetables),
                selected_slot=self.selected_slot,
                conflicts=self.conflicts,
                is_dirty=self.is_dirty,
                is_generating=self.is_generating,
                can_undo=self.can_undo,
                can_redo=self.can_redo,
                history_index=self.history_index,
                history_length=self.history_length,
            )

    # -- timetable management ------------------------------------------------

    def _require_current(self, operation: str) -> Timetable:
        timetable = self._store.timetable
        if timetable is None:
            raise NoActiveTimetableError(operation)
        return timetable

    def _activate(self, timetable: Timetable) -> None:
        self._timetables[timetable.id] = timetable
        self._store.load(timetable)
        self._ledger.clear()
        self._recompute()
        self._history.reset(timetable)

    def create_timetable(
        self,
        name: str,
        year: int,
        semester: int,
        *,
        generated_by: str | None = None,
    ) -> Timetable:
        with self._lock:
            now = self._clock()
            timetable = Timetable(
                name=name,
                year=year,
                semester=semester,
                generated_at=now,
                generated_by=generated_by or self.settings.default_generated_by,
                last_modified=now,
            )
            self._activate(timetable)
            logger.info("Created timetable %s (%s, year=%s, semester=%s)", timetable.id, name, year, semester)
            return timetable.model_copy(deep=True)

    def set_current_timetable(self, timetable: Timetable) -> None:
        """Install ``timetable`` as current; undo history does not carry over."""
        with self._lock:
            self._activate(timetable.model_copy(deep=True))
            logger.debug("Switched to timetable %s", timetable.id)

    def select_timetable(self, timetable_id: str) -> None:
        with self._lock:
            timetable = self._timetables.get(timetable_id)
            if timetable is None:
                raise NotFoundError("Timetable", timetable_id)
            self._activate(timetable)
            logger.debug("Switched to timetable %s", timetable_id)

    def update_timetable_name(self, name: str) -> None:
        with self._lock:
            timetable = self._require_current("rename timetable")
            cleaned = name.strip()
            if not cleaned:
                raise ValueError("Timetable name must not be empty")
            timetable.name = cleaned
            timetable.last_modified = self._clock()
            self._store.dirty = True

    def delete_timetable(self, timetable_id: str) -> None:
        with self._lock:
            if self._timetables.pop(timetable_id, None) is None:
                logger.debug("Ignoring delete for unknown timetable %s", timetable_id)
                return
            current = self._store.timetable
            if current is not None and current.id == timetable_id:
                self._store.timetable = None
                self._store.clear_selection()
                self._ledger.clear()
                self._conflicts = []
            logger.info("Deleted timetable %s", timetable_id)

    # -- slot editing --------------------------------------------------------

    def _commit(self) -> None:
        self._recompute()
        self._history.snapshot(self._require_current("snapshot timetable"))

    def add_slot(self, data: SlotData) -> TimetableSlot:
        with self._lock:
            slot = self._store.add_slot(data)
            self._commit()
            return self._require_current("add slot").find_slot(slot.id).model_copy(deep=True)

    def update_slot(self, slot_id: str, updates: SlotUpdate | Mapping[str, Any]) -> TimetableSlot | None:
        with self._lock:
            updated = self._store.update_slot(slot_id, updates)
            self._commit()
            if updated is None:
                return None
            return self._require_current("update slot").find_slot(slot_id).model_copy(deep=True)

    def delete_slot(self, slot_id: str) -> TimetableSlot | None:
        with self._lock:
            removed = self._store.delete_slot(slot_id)
            self._commit()
            return removed

    def select_slot(self, slot: TimetableSlot | str | None) -> None:
        with self._lock:
            self._store.select_slot(slot)

    def clear_selection(self) -> None:
        with self._lock:
            self._store.clear_selection()

    def mark_dirty(self) -> None:
        with self._lock:
            self._store.dirty = True

    def mark_clean(self) -> None:
        with self._lock:
            self._store.dirty = False

    # -- conflicts -----------------------------------------------------------

    def _recompute(self) -> None:
        timetable = self._store.timetable
        if timetable is None:
            self._conflicts = []
            return
        self._conflicts = self._ledger.apply(self._detector.detect(timetable.slots))
        self._attach_to_slots(timetable)

    def _attach_to_slots(self, timetable: Timetable) -> None:
        by_slot: dict[str, list[Conflict]] = defaultdict(list)
        for conflict in self._conflicts:
            for slot_id in conflict.affected_slots:
                by_slot[slot_id].append(conflict)
        for slot in timetable.slots:
            slot.conflicts = [conflict.model_copy(deep=True) for conflict in by_slot.get(slot.id, [])]

    def detect_conflicts(self) -> list[Conflict]:
        with self._lock:
            self._recompute()
            return self.conflicts

    def resolve_conflict(self, conflict_id: str, *, resolved_by: str | None = None) -> Conflict:
        with self._lock:
            for conflict in self._conflicts:
                if conflict.id == conflict_id:
                    self._ledger.resolve(conflict, resolved_at=self._clock(), resolved_by=resolved_by)
                    timetable = self._store.timetable
                    if timetable is not None:
                        self._attach_to_slots(timetable)
                    logger.debug("Resolved %s conflict %s", conflict.type, conflict_id)
                    return conflict.model_copy(deep=True)
            raise NotFoundError("Conflict", conflict_id)

    # -- history -------------------------------------------------------------

    def _restore(self, snapshot: Timetable) -> None:
        if snapshot.id in self._timetables:
            self._timetables[snapshot.id] = snapshot
        selected = self._store.selected_slot_id
        self._store.timetable = snapshot
        self._store.selected_slot_id = selected
        self._store.dirty = True
        self._recompute()

    def undo(self) -> bool:
        with self._lock:
            snapshot = self._history.undo()
            if snapshot is None:
                return False
            self._restore(snapshot)
            return True

    def redo(self) -> bool:
        with self._lock:
            snapshot = self._history.redo()
            if snapshot is None:
                return False
            self._restore(snapshot)
            return True

    # -- generation ----------------------------------------------------------

    def _finish_generation(self) -> None:
        with self._lock:
            self._generating = False
            self._generation_task = None

    async def generate(self, constraints: Any = None, *, generated_by: str | None = None) -> Timetable | None:
        """Replace the current timetable's slots with the generator's proposal.

        Returns the updated timetable, or ``None`` when the timetable was deleted
        while the generator was running. On failure the timetable is left as it
        was and :class:`GenerationFailure` is raised.
        """
        with self._lock:
            if self._generator is None:
                raise ConfigurationError("No timetable generator configured")
            timetable = self._require_current("generate timetable")
            if self._generating:
                raise GenerationInProgressError(timetable.id)
            self._generating = True
            target_id = timetable.id
            version = timetable.version
            task = asyncio.ensure_future(
                run_generator(
                    self._generator,
                    constraints,
                    timeout_seconds=self.settings.generation_timeout_seconds,
                )
            )
            self._generation_task = task

        started = perf_counter()
        logger.info("TIMETABLE GENERATION START | timetable_id=%s | version=%s", target_id, version)
        try:
            proposed = await task
            slots = normalize_generated_slots(proposed, now=self._clock())
        except asyncio.CancelledError:
            self._finish_generation()
            logger.warning(
                "TIMETABLE GENERATION CANCELLED | timetable_id=%s | wall_ms=%s",
                target_id,
                int((perf_counter() - started) * 1000),
            )
            raise
        except Exception as exc:
            self._finish_generation()
            logger.exception(
                "TIMETABLE GENERATION FAILED | timetable_id=%s | wall_ms=%s",
                target_id,
                int((perf_counter() - started) * 1000),
            )
            if isinstance(exc, GenerationFailure):
                raise
            raise GenerationFailure(f"Timetable generation failed: {exc}") from exc

        with self._lock:
            self._generating = False
            self._generation_task = None
            result = self._install_generated(target_id, slots, generated_by=generated_by)

        logger.info(
            "TIMETABLE GENERATION COMPLETE | timetable_id=%s | slots=%s | conflicts=%s | wall_ms=%s",
            target_id,
            len(slots),
            len(self._conflicts),
            int((perf_counter() - started) * 1000),
        )
        return result

    def _install_generated(
        self,
        target_id: str,
        slots: list[TimetableSlot],
        *,
        generated_by: str | None,
    ) -> Timetable | None:
        now = self._clock()
        target = self._timetables.get(target_id)
        if target is None:
            logger.warning("TIMETABLE GENERATION DROPPED | timetable_id=%s | reason=timetable deleted", target_id)
            return None

        target.version += 1
        target.generated_at = now
        target.generated_by = generated_by or self.settings.default_generated_by

        current = self._store.timetable
        if current is not None and current.id == target_id:
            self._store.replace_slots(slots)
            self._commit()
        else:
            # The caller switched away; update the stored timetable without touching the active history.
            target.slots = slots
            target.last_modified = now
        return target.model_copy(deep=True)

    def cancel_generation(self) -> bool:
        with self._lock:
            task = self._generation_task
            if task is None or task.done():
                return False
            task.cancel()
            return True
