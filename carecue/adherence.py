from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

from shared.contracts.enums import AlertKind, CareActionStatus
from shared.contracts.models import CareActionEvent


ADHERENCE_WINDOW_MINUTES = 90


@dataclass(frozen=True)
class AdherenceWindow:
    """Tolerance around a scheduled instant, inclusive at both bounds."""

    before: timedelta
    after: timedelta

    @classmethod
    def symmetric(cls, minutes: float) -> "AdherenceWindow":
        delta = timedelta(minutes=minutes)
        return cls(before=delta, after=delta)

    @classmethod
    def after_only(cls, hours: float) -> "AdherenceWindow":
        return cls(before=timedelta(0), after=timedelta(hours=hours))

    def contains(self, scheduled_at: datetime, actual_at: datetime) -> bool:
        offset = actual_at - scheduled_at
        return -self.before <= offset <= self.after

    def describe(self) -> str:
        if self.before == self.after:
            return f"within {int(self.before.total_seconds() // 60)} minutes of the scheduled time"
        return (
            f"between {int(self.before.total_seconds() // 60)} minutes before and "
            f"{int(self.after.total_seconds() // 60)} minutes after the scheduled time"
        )


DEFAULT_WINDOW = AdherenceWindow.symmetric(ADHERENCE_WINDOW_MINUTES)


def within_window(scheduled_at: datetime, actual_at: datetime, window: AdherenceWindow = DEFAULT_WINDOW) -> bool:
    return window.contains(scheduled_at, actual_at)


class AdherencePolicy:
    """Adherence windows per care-action kind."""

    def __init__(
        self,
        default: AdherenceWindow = DEFAULT_WINDOW,
        overrides: Optional[Dict[AlertKind, AdherenceWindow]] = None,
    ) -> None:
        self.default = default
        self.overrides = dict(overrides or {})

    def window_for(self, kind: AlertKind) -> AdherenceWindow:
        return self.overrides.get(kind, self.default)


def match_nearest_pending(events: Iterable[CareActionEvent], actual_at: datetime) -> Optional[CareActionEvent]:
    """Pick the PENDING event scheduled closest to actual_at.

    Equidistant candidates resolve to the earliest created, then to the one
    seen first.
    """
    best: Optional[CareActionEvent] = None
    best_key = None
    for position, event in enumerate(events):
        if event.status != CareActionStatus.PENDING:
            continue
        key = (abs(actual_at - event.scheduled_at), event.created_at, position)
        if best_key is None or key < best_key:
            best, best_key = event, key
    return best
