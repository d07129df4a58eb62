from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from shared.contracts.enums import Priority
from shared.contracts.models import ScheduledAlert


@dataclass(frozen=True)
class PriorityProfile:
    rank: int
    tone_hz: int
    tone_seconds: float
    vibration_ms: Tuple[int, ...]
    requires_dismissal: bool


PRIORITY_TABLE = {
    Priority.CRITICAL: PriorityProfile(
        rank=4, tone_hz=880, tone_seconds=1.5, vibration_ms=(200, 100, 200, 100, 200), requires_dismissal=True
    ),
    Priority.HIGH: PriorityProfile(
        rank=3, tone_hz=660, tone_seconds=1.0, vibration_ms=(300, 100, 300), requires_dismissal=True
    ),
    Priority.MEDIUM: PriorityProfile(
        rank=2, tone_hz=523, tone_seconds=0.7, vibration_ms=(400,), requires_dismissal=False
    ),
    Priority.LOW: PriorityProfile(
        rank=1, tone_hz=440, tone_seconds=0.5, vibration_ms=(200,), requires_dismissal=False
    ),
}

ALWAYS_DUAL = frozenset({Priority.HIGH, Priority.CRITICAL})


def profile_for(priority: Priority) -> PriorityProfile:
    return PRIORITY_TABLE[Priority(priority)]


def rank(priority: Priority) -> int:
    return profile_for(priority).rank


def prioritize(alerts: Iterable[ScheduledAlert], min_priority: Optional[Priority] = None) -> List[ScheduledAlert]:
    """Order alerts by rank descending, then scheduled_at ascending.

    sorted() is stable, so alerts equal on both keys keep their input order.
    """
    selected = list(alerts)
    if min_priority is not None:
        floor = rank(min_priority)
        selected = [a for a in selected if rank(a.priority) >= floor]
    return sorted(selected, key=lambda a: (-rank(a.priority), a.scheduled_at))
