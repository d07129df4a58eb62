from datetime import datetime, time, timezone

import pytest
from pydantic import TypeAdapter, ValidationError

from shared.contracts.enums import AlertKind, CareActionStatus, ErrorCode, Priority
from shared.contracts.models import (
    CareActionEvent,
    DayNightRecurrence,
    IntervalRecurrence,
    NotificationPreferences,
    RecurrenceSpec,
    ScheduledAlert,
)


AT = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _alert(priority: Priority, dual_channel: bool = False) -> ScheduledAlert:
    return ScheduledAlert(
        id="a#alert",
        occurrence_id="a",
        subject_id="s1",
        kind=AlertKind.RISK_ALERT,
        priority=priority,
        message="pressure injury risk",
        scheduled_at=AT,
        dual_channel=dual_channel,
    )


def test_urgent_alerts_are_always_dual_channel():
    assert _alert(Priority.CRITICAL).dual_channel is True
    assert _alert(Priority.HIGH).dual_channel is True
    assert _alert(Priority.MEDIUM).dual_channel is False
    assert _alert(Priority.LOW, dual_channel=True).dual_channel is True


def test_naive_instants_are_read_as_utc():
    alert = ScheduledAlert(
        id="a#alert",
        occurrence_id="a",
        subject_id="s1",
        kind=AlertKind.BATHROOM,
        priority=Priority.MEDIUM,
        message="bathroom",
        scheduled_at=datetime(2026, 3, 2, 8, 0),
    )
    assert alert.scheduled_at == AT


def test_alert_rejects_unknown_fields():
    with pytest.raises(ValidationError):
        ScheduledAlert.model_validate({**_alert(Priority.LOW).model_dump(), "snoozed": True})


def test_care_action_event_lifecycle_rules():
    base = {
        "id": "e#event",
        "occurrence_id": "e",
        "subject_id": "s1",
        "kind": AlertKind.MEDICATION,
        "action_ref": "med-1",
        "scheduled_at": AT,
    }
    pending = CareActionEvent(**base)
    assert pending.is_terminal is False

    with pytest.raises(ValidationError):
        CareActionEvent(**base, actual_at=AT)
    with pytest.raises(ValidationError):
        CareActionEvent(**base, status=CareActionStatus.CONFIRMED)
    with pytest.raises(ValidationError):
        CareActionEvent(**base, status=CareActionStatus.OMITTED, actual_at=AT, within_window=False)
    with pytest.raises(ValidationError):
        CareActionEvent(
            **base, status=CareActionStatus.CONFIRMED, actual_at=AT, within_window=True, justification="why"
        )

    omitted = CareActionEvent(
        **base, status=CareActionStatus.OMITTED, actual_at=AT, within_window=False, justification="refused"
    )
    assert omitted.is_terminal is True


def test_recurrence_is_discriminated_by_cadence():
    adapter = TypeAdapter(RecurrenceSpec)
    assert isinstance(adapter.validate_python({"cadence": "interval", "interval_hours": 2}), IntervalRecurrence)
    assert isinstance(adapter.validate_python({"cadence": "day_night"}), DayNightRecurrence)
    with pytest.raises(ValidationError):
        adapter.validate_python({"cadence": "weekly"})


def test_quiet_hours_wrap_midnight():
    prefs = NotificationPreferences(quiet_hours_start=time(22, 0), quiet_hours_end=time(7, 0))
    assert prefs.in_quiet_hours(time(23, 0))
    assert prefs.in_quiet_hours(time(6, 59))
    assert not prefs.in_quiet_hours(time(7, 0))
    assert not NotificationPreferences().in_quiet_hours(time(23, 0))

    daytime = NotificationPreferences(quiet_hours_start=time(13, 0), quiet_hours_end=time(15, 0))
    assert daytime.in_quiet_hours(time(14, 0))
    assert not daytime.in_quiet_hours(time(15, 0))


def test_error_codes_keep_their_numbers_and_kinds():
    assert ErrorCode.VALIDATION_REQUIRED_FIELD == 1001
    assert ErrorCode.VALIDATION_ADHERENCE_WINDOW.kind == "adherence_window"
    assert ErrorCode.VALIDATION_INVALID_FORMAT.kind == "validation"
    assert ErrorCode.NOT_FOUND_OCCURRENCE.kind == "not_found"
    assert ErrorCode.BUSINESS_JUSTIFICATION_REQUIRED.kind == "business"
    assert ErrorCode.SYSTEM_STORAGE_FAILED.kind == "system"
    assert ErrorCode.SYSTEM_NOTIFICATION_FAILED == 4003
