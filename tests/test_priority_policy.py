from datetime import datetime, timedelta, timezone

from carecue.priority import ALWAYS_DUAL, PRIORITY_TABLE, prioritize, profile_for, rank
from shared.contracts.enums import AlertKind, Priority
from shared.contracts.models import ScheduledAlert


BASE = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _alert(name: str, priority: Priority, offset_minutes: int = 0) -> ScheduledAlert:
    return ScheduledAlert(
        id=f"{name}#alert",
        occurrence_id=name,
        subject_id="s1",
        kind=AlertKind.RISK_ALERT,
        priority=priority,
        message=name,
        scheduled_at=BASE + timedelta(minutes=offset_minutes),
    )


def test_priority_table_matches_fixed_profiles():
    assert profile_for(Priority.CRITICAL).tone_hz == 880
    assert profile_for(Priority.HIGH).tone_hz == 660
    assert profile_for(Priority.MEDIUM).tone_hz == 523
    assert profile_for(Priority.LOW).tone_hz == 440
    assert profile_for(Priority.CRITICAL).vibration_ms == (200, 100, 200, 100, 200)
    assert profile_for(Priority.MEDIUM).vibration_ms == (400,)
    assert [p for p, prof in PRIORITY_TABLE.items() if prof.requires_dismissal] == [Priority.CRITICAL, Priority.HIGH]


def test_rank_is_strictly_ordered():
    assert rank(Priority.CRITICAL) > rank(Priority.HIGH) > rank(Priority.MEDIUM) > rank(Priority.LOW)
    assert ALWAYS_DUAL == {Priority.HIGH, Priority.CRITICAL}


def test_prioritize_orders_by_rank_then_time():
    alerts = [
        _alert("low", Priority.LOW, 0),
        _alert("high-late", Priority.HIGH, 30),
        _alert("critical", Priority.CRITICAL, 60),
        _alert("high-early", Priority.HIGH, 10),
        _alert("medium", Priority.MEDIUM, 0),
    ]
    ordered = [a.occurrence_id for a in prioritize(alerts)]
    assert ordered == ["critical", "high-early", "high-late", "medium", "low"]


def test_prioritize_is_stable_for_identical_keys():
    alerts = [_alert("first", Priority.HIGH), _alert("second", Priority.HIGH), _alert("third", Priority.HIGH)]
    assert [a.occurrence_id for a in prioritize(alerts)] == ["first", "second", "third"]


def test_prioritize_filters_below_min_priority():
    alerts = [_alert("low", Priority.LOW), _alert("high", Priority.HIGH), _alert("critical", Priority.CRITICAL)]
    assert [a.occurrence_id for a in prioritize(alerts, Priority.HIGH)] == ["critical", "high"]
    assert prioritize([], Priority.LOW) == []
