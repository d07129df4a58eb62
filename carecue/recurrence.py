"""Expand a recurrence definition into concrete, ordered occurrences.

Every generator validates its governing parameter before producing anything,
so invalid input yields an exception and never a partial schedule.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import List

from shared.contracts.enums import AlertKind, ErrorCode, Priority
from shared.contracts.models import (
    DayNightRecurrence,
    FixedTimesRecurrence,
    IntervalRecurrence,
    RecurrenceSpec,
    TargetCountRecurrence,
)


HORIZON_HOURS = 24
BATHROOM_INTERVAL_MIN_HOURS = 2
BATHROOM_INTERVAL_MAX_HOURS = 3
DAY_POSTURAL_HOURS = (6, 8, 10, 12, 14, 16, 18, 20)
NIGHT_POSTURAL_HOURS = (22, 0, 4)
HYDRATION_TARGET_MIN = 6
HYDRATION_TARGET_MAX = 8
HYDRATION_START_HOUR = 8
HYDRATION_END_HOUR = 22


class RecurrenceError(ValueError):
    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class PlannedOccurrence:
    kind: AlertKind
    action_ref: str
    scheduled_at: datetime
    priority: Priority
    dual_channel: bool
    message: str


def occurrence_key(kind: AlertKind, subject_id: str, action_ref: str, at: datetime) -> str:
    stamp = at.astimezone(timezone.utc).strftime("%Y%m%dT%H%MZ")
    return f"{kind.value.lower()}:{subject_id}:{action_ref}:{stamp}"


def _next_wall_clock(now_local: datetime, hour: int, minute: int = 0) -> datetime:
    candidate = now_local.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now_local:
        candidate += timedelta(days=1)
    return candidate.astimezone(timezone.utc)


def interval_cadence(spec: IntervalRecurrence, now: datetime) -> List[PlannedOccurrence]:
    hours = spec.interval_hours
    if not BATHROOM_INTERVAL_MIN_HOURS <= hours <= BATHROOM_INTERVAL_MAX_HOURS:
        raise RecurrenceError(
            ErrorCode.VALIDATION_INVALID_FORMAT,
            f"interval must be between {BATHROOM_INTERVAL_MIN_HOURS} and {BATHROOM_INTERVAL_MAX_HOURS} hours",
        )

    step = timedelta(hours=hours)
    count = math.floor(HORIZON_HOURS / hours)
    return [
        PlannedOccurrence(
            kind=AlertKind.BATHROOM,
            action_ref="bathroom",
            scheduled_at=now + step * (i + 1),
            priority=Priority.MEDIUM,
            dual_channel=False,
            message="Time for a bathroom visit",
        )
        for i in range(count)
    ]


def day_night_cadence(spec: DayNightRecurrence, now: datetime, local_tz: tzinfo) -> List[PlannedOccurrence]:
    now_local = now.astimezone(local_tz)
    planned = [
        PlannedOccurrence(
            kind=AlertKind.POSTURAL_CHANGE,
            action_ref="postural_change",
            scheduled_at=_next_wall_clock(now_local, hour),
            priority=Priority.HIGH,
            dual_channel=True,
            message=f"Scheduled postural change - {hour:02d}:00",
        )
        for hour in DAY_POSTURAL_HOURS
    ]
    planned += [
        PlannedOccurrence(
            kind=AlertKind.POSTURAL_CHANGE,
            action_ref="postural_change",
            scheduled_at=_next_wall_clock(now_local, hour),
            priority=Priority.MEDIUM,
            dual_channel=False,
            message=f"Night-time postural change - {hour:02d}:00",
        )
        for hour in NIGHT_POSTURAL_HOURS
    ]
    return sorted(planned, key=lambda p: p.scheduled_at)


def target_count_distribution(
    spec: TargetCountRecurrence, now: datetime, local_tz: tzinfo
) -> List[PlannedOccurrence]:
    target = spec.target_count
    if not HYDRATION_TARGET_MIN <= target <= HYDRATION_TARGET_MAX:
        raise RecurrenceError(
            ErrorCode.VALIDATION_INVALID_FORMAT,
            f"target count must be between {HYDRATION_TARGET_MIN} and {HYDRATION_TARGET_MAX}",
        )

    now_local = now.astimezone(local_tz)
    step_minutes = (HYDRATION_END_HOUR - HYDRATION_START_HOUR) * 60 // target
    planned = []
    for i in range(target):
        offset = HYDRATION_START_HOUR * 60 + step_minutes * i
        planned.append(
            PlannedOccurrence(
                kind=AlertKind.HYDRATION,
                action_ref="hydration",
                scheduled_at=_next_wall_clock(now_local, offset // 60, offset % 60),
                priority=Priority.MEDIUM,
                dual_channel=False,
                message=f"Hydration reminder: drink a glass of water ({i + 1}/{target})",
            )
        )
    return sorted(planned, key=lambda p: p.scheduled_at)


def fixed_times(spec: FixedTimesRecurrence) -> List[PlannedOccurrence]:
    for field_name in ("medication_id", "medication_name", "dosage"):
        if not getattr(spec, field_name).strip():
            raise RecurrenceError(ErrorCode.VALIDATION_REQUIRED_FIELD, f"{field_name} is required")
    if not spec.times:
        raise RecurrenceError(ErrorCode.VALIDATION_REQUIRED_FIELD, "at least one dose time is required")

    instants = sorted(t if t.tzinfo else t.replace(tzinfo=timezone.utc) for t in spec.times)
    return [
        PlannedOccurrence(
            kind=AlertKind.MEDICATION,
            action_ref=spec.medication_id,
            scheduled_at=at.astimezone(timezone.utc),
            priority=Priority.HIGH,
            dual_channel=True,
            message=f"Time to administer: {spec.medication_name} ({spec.dosage})",
        )
        for at in instants
    ]


def generate(spec: RecurrenceSpec, now: datetime, local_tz: tzinfo = timezone.utc) -> List[PlannedOccurrence]:
    if isinstance(spec, IntervalRecurrence):
        return interval_cadence(spec, now)
    if isinstance(spec, DayNightRecurrence):
        return day_night_cadence(spec, now, local_tz)
    if isinstance(spec, TargetCountRecurrence):
        return target_count_distribution(spec, now, local_tz)
    if isinstance(spec, FixedTimesRecurrence):
        return fixed_times(spec)
    raise RecurrenceError(ErrorCode.VALIDATION_INVALID_FORMAT, f"unsupported recurrence: {type(spec).__name__}")
