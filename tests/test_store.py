from datetime import datetime, timedelta, timezone

import pytest

from carecue.store import InMemoryStore, SqlAlchemyStore, StoreKind, alert_key, event_key
from shared.contracts.enums import AlertKind, AlertStatus, CareActionStatus, Priority
from shared.contracts.models import CareActionEvent, ScheduledAlert


AT = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _alert(occurrence_id: str, subject_id: str = "s1", offset_hours: int = 0) -> ScheduledAlert:
    return ScheduledAlert(
        id=alert_key(occurrence_id),
        occurrence_id=occurrence_id,
        subject_id=subject_id,
        kind=AlertKind.MEDICATION,
        priority=Priority.HIGH,
        message="Time to administer: Metformin (500mg)",
        scheduled_at=AT + timedelta(hours=offset_hours),
        created_at=AT - timedelta(hours=1),
    )


def _event(occurrence_id: str, subject_id: str = "s1") -> CareActionEvent:
    return CareActionEvent(
        id=event_key(occurrence_id),
        occurrence_id=occurrence_id,
        subject_id=subject_id,
        kind=AlertKind.MEDICATION,
        action_ref="med-1",
        scheduled_at=AT,
        created_at=AT - timedelta(hours=1),
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    if request.param == "memory":
        yield InMemoryStore()
        return
    sql_store = SqlAlchemyStore("sqlite://", create_schema=True)
    yield sql_store
    sql_store.close()


def test_put_and_get_round_trip(store):
    alert = _alert("occ-1")
    store.put(StoreKind.ALERTS, alert)

    loaded = store.get_by_id(StoreKind.ALERTS, alert.id)
    assert loaded == alert
    assert loaded.scheduled_at.tzinfo is not None
    assert store.get_by_id(StoreKind.ALERTS, "missing") is None


def test_update_keeps_insertion_order(store):
    for i in range(3):
        store.put(StoreKind.ALERTS, _alert(f"occ-{i}", offset_hours=i))

    first = store.get_by_id(StoreKind.ALERTS, alert_key("occ-0"))
    store.put(StoreKind.ALERTS, first.model_copy(update={"status": AlertStatus.SENT}))

    alerts = store.get_all(StoreKind.ALERTS)
    assert [a.occurrence_id for a in alerts] == ["occ-0", "occ-1", "occ-2"]
    assert alerts[0].status == AlertStatus.SENT


def test_get_by_index_filters_on_field(store):
    store.put(StoreKind.CARE_EVENTS, _event("occ-1", subject_id="s1"))
    store.put(StoreKind.CARE_EVENTS, _event("occ-2", subject_id="s2"))
    store.put(StoreKind.CARE_EVENTS, _event("occ-3", subject_id="s1"))

    events = store.get_by_index(StoreKind.CARE_EVENTS, "subject_id", "s1")
    assert [e.occurrence_id for e in events] == ["occ-1", "occ-3"]
    assert all(e.status == CareActionStatus.PENDING for e in events)


def test_closed_event_fields_survive_storage(store):
    event = _event("occ-1")
    closed = CareActionEvent.model_validate(
        {
            **event.model_dump(),
            "status": CareActionStatus.OMITTED,
            "actual_at": AT + timedelta(minutes=30),
            "within_window": False,
            "justification": "patient refused",
        }
    )
    store.put(StoreKind.CARE_EVENTS, closed)
    assert store.get_by_id(StoreKind.CARE_EVENTS, closed.id) == closed


def test_delete_by_id(store):
    store.put(StoreKind.ALERTS, _alert("occ-1"))
    assert store.delete_by_id(StoreKind.ALERTS, alert_key("occ-1")) is True
    assert store.delete_by_id(StoreKind.ALERTS, alert_key("occ-1")) is False
    assert store.get_all(StoreKind.ALERTS) == []


def test_in_memory_store_hands_out_copies():
    store = InMemoryStore()
    alert = _alert("occ-1")
    store.put(StoreKind.ALERTS, alert)

    loaded = store.get_by_id(StoreKind.ALERTS, alert.id)
    loaded.status = AlertStatus.DISMISSED
    assert store.get_by_id(StoreKind.ALERTS, alert.id).status == AlertStatus.SCHEDULED
