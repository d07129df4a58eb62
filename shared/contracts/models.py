from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import AlertKind, AlertStatus, CareActionStatus, Priority, PriorityFilter


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class ScheduledAlert(BaseModel):
    """Delivery lifecycle of one occurrence's alert."""

    model_config = ConfigDict(extra="forbid")

    id: str
    occurrence_id: str
    subject_id: str
    kind: AlertKind
    priority: Priority
    message: str
    scheduled_at: datetime
    dual_channel: bool = False
    status: AlertStatus = AlertStatus.SCHEDULED
    reminder_sent: bool = False
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("scheduled_at", "created_at")
    @classmethod
    def normalize_instants(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def force_dual_channel_for_urgent(self) -> "ScheduledAlert":
        if self.priority in (Priority.HIGH, Priority.CRITICAL):
            self.dual_channel = True
        return self


class CareActionEvent(BaseModel):
    """Completion lifecycle of one occurrence: PENDING -> CONFIRMED | OMITTED."""

    model_config = ConfigDict(extra="forbid")

    id: str
    occurrence_id: str
    subject_id: str
    kind: AlertKind
    action_ref: str
    scheduled_at: datetime
    status: CareActionStatus = CareActionStatus.PENDING
    actual_at: datetime | None = None
    within_window: bool | None = None
    justification: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("scheduled_at", "created_at", "actual_at")
    @classmethod
    def normalize_instants(cls, value: datetime | None) -> datetime | None:
        return None if value is None else _as_utc(value)

    @model_validator(mode="after")
    def validate_lifecycle(self) -> "CareActionEvent":
        has_justification = bool(self.justification and self.justification.strip())

        if self.status == CareActionStatus.PENDING:
            if self.actual_at is not None or self.within_window is not None:
                raise ValueError("actual_at and within_window must be unset while PENDING")
        elif self.actual_at is None or self.within_window is None:
            raise ValueError(f"actual_at and within_window are required when {self.status.value}")

        if (self.status == CareActionStatus.OMITTED) != has_justification:
            raise ValueError("justification must be non-blank exactly when the action is OMITTED")

        return self

    @property
    def is_terminal(self) -> bool:
        return self.status != CareActionStatus.PENDING


class Confirmation(BaseModel):
    event_id: str
    occurrence_id: str
    confirmed_at: datetime
    within_window: bool


class NotificationPreferences(BaseModel):
    enable_sound: bool = True
    enable_vibration: bool = True
    quiet_hours_start: time | None = None
    quiet_hours_end: time | None = None
    priority_filter: PriorityFilter = PriorityFilter.ALL

    def in_quiet_hours(self, local_time: time) -> bool:
        if self.quiet_hours_start is None or self.quiet_hours_end is None:
            return False
        start, end = self.quiet_hours_start, self.quiet_hours_end
        if start <= end:
            return start <= local_time < end
        # window wraps midnight, e.g. 22:00-07:00
        return local_time >= start or local_time < end


class IntervalRecurrence(BaseModel):
    cadence: Literal["interval"] = "interval"
    interval_hours: float


class DayNightRecurrence(BaseModel):
    cadence: Literal["day_night"] = "day_night"


class TargetCountRecurrence(BaseModel):
    cadence: Literal["target_count"] = "target_count"
    target_count: int


class FixedTimesRecurrence(BaseModel):
    cadence: Literal["fixed_times"] = "fixed_times"
    medication_id: str
    medication_name: str
    dosage: str
    times: list[datetime] = Field(default_factory=list)


RecurrenceSpec = Annotated[
    Union[IntervalRecurrence, DayNightRecurrence, TargetCountRecurrence, FixedTimesRecurrence],
    Field(discriminator="cadence"),
]
