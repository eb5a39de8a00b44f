from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable

from pydantic import ValidationError

from timetabling.core.exceptions import GenerationFailure
from timetabling.schemas.timetable import SlotCreate, TimetableSlot
from timetabling.services.slot_store import SlotData, build_slot

# Black-box collaborator: receives opaque constraints, proposes a full replacement slot set.
TimetableGenerator = Callable[[Any], Awaitable[Iterable[SlotData]]]


def normalize_generated_slots(proposed: Iterable[SlotData] | None, *, now: datetime) -> list[TimetableSlot]:
    """Validate a generator's output; any bad slot rejects the whole proposal."""
    if proposed is None:
        raise GenerationFailure("Generator returned no slots")
    slots: list[TimetableSlot] = []
    seen: set[str] = set()
    try:
        for index, item in enumerate(proposed):
            if isinstance(item, TimetableSlot):
                slot = item.model_copy(deep=True)
                slot.conflicts = []
                if slot.id in seen:
                    slot = build_slot(slot, now=now)
            elif isinstance(item, (SlotCreate, Mapping)):
                slot = build_slot(item, now=now)
            else:
                raise GenerationFailure(
                    f"Generator proposed an unsupported slot at position {index}",
                    details={"position": index, "type": type(item).__name__},
                )
            seen.add(slot.id)
            slots.append(slot)
    except ValidationError as exc:
        raise GenerationFailure(
            "Generator proposed an invalid slot",
            details={"errors": exc.errors(include_url=False)},
        ) from exc
    return slots


async def run_generator(
    generator: TimetableGenerator,
    constraints: Any,
    *,
    timeout_seconds: float | None = None,
) -> Iterable[SlotData]:
    """Await the collaborator, mapping its failures onto ``GenerationFailure``.

    Cancellation is propagated untouched so callers can tell it apart from failure.
    """
    try:
        if timeout_seconds is None:
            return await generator(constraints)
        return await asyncio.wait_for(generator(constraints), timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        raise GenerationFailure(
            f"Timetable generation timed out after {timeout_seconds} second(s)",
            details={"timeout_seconds": timeout_seconds},
        ) from exc
    except GenerationFailure:
        raise
    except Exception as exc:
        raise GenerationFailure(f"Timetable generation failed: {exc}") from exc
