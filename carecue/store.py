"""Keyed persistent store used to record alert and care-action state.

Two interchangeable implementations: InMemoryStore for tests and single
process use, and SqlAlchemyStore backed by the tables in app.db.models.
"""

from __future__ import annotations

from collections import OrderedDict
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Type, Union

from pydantic import BaseModel
from sqlalchemy import create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.db.models import Base, CareActionEventRecord, ScheduledAlertRecord
from shared.contracts.models import CareActionEvent, ScheduledAlert


Entity = Union[ScheduledAlert, CareActionEvent]


class StoreKind(str, Enum):
    ALERTS = "alerts"
    CARE_EVENTS = "care_events"


ENTITY_TYPES: Dict[StoreKind, Type[BaseModel]] = {
    StoreKind.ALERTS: ScheduledAlert,
    StoreKind.CARE_EVENTS: CareActionEvent,
}


class StoreError(Exception):
    """The store could not complete a read or write."""


def alert_key(occurrence_id: str) -> str:
    return f"{occurrence_id}#alert"


def event_key(occurrence_id: str) -> str:
    return f"{occurrence_id}#event"


class KeyedStore(Protocol):
    def put(self, kind: StoreKind, entity: Entity) -> None: ...

    def get_by_id(self, kind: StoreKind, entity_id: str) -> Optional[Entity]: ...

    def get_by_index(self, kind: StoreKind, field: str, value: Any) -> List[Entity]: ...

    def get_all(self, kind: StoreKind) -> List[Entity]: ...

    def delete_by_id(self, kind: StoreKind, entity_id: str) -> bool: ...


class InMemoryStore:
    """Dict-backed store; entities are copied in and out like a real store would."""

    def __init__(self) -> None:
        self._tables: Dict[StoreKind, "OrderedDict[str, Entity]"] = {kind: OrderedDict() for kind in StoreKind}

    def put(self, kind: StoreKind, entity: Entity) -> None:
        self._tables[kind][entity.id] = entity.model_copy(deep=True)

    def get_by_id(self, kind: StoreKind, entity_id: str) -> Optional[Entity]:
        entity = self._tables[kind].get(entity_id)
        return entity.model_copy(deep=True) if entity is not None else None

    def get_by_index(self, kind: StoreKind, field: str, value: Any) -> List[Entity]:
        return [e.model_copy(deep=True) for e in self._tables[kind].values() if getattr(e, field) == value]

    def get_all(self, kind: StoreKind) -> List[Entity]:
        return [e.model_copy(deep=True) for e in self._tables[kind].values()]

    def delete_by_id(self, kind: StoreKind, entity_id: str) -> bool:
        return self._tables[kind].pop(entity_id, None) is not None


RECORD_TYPES = {
    StoreKind.ALERTS: ScheduledAlertRecord,
    StoreKind.CARE_EVENTS: CareActionEventRecord,
}


class SqlAlchemyStore:
    def __init__(self, url: str, create_schema: bool = False, **engine_kwargs: Any) -> None:
        self.engine = create_engine(url, **engine_kwargs)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        if create_schema:
            Base.metadata.create_all(self.engine)

    def put(self, kind: StoreKind, entity: Entity) -> None:
        record_type = RECORD_TYPES[kind]
        try:
            with self._sessions.begin() as session:
                existing = session.get(record_type, entity.id)
                # insertion order survives updates
                seq = existing.seq if existing is not None else self._next_seq(session, record_type)
                session.merge(record_type(seq=seq, **entity.model_dump(mode="python")))
        except SQLAlchemyError as exc:
            raise StoreError(f"put {kind.value}/{entity.id} failed: {exc}") from exc

    def get_by_id(self, kind: StoreKind, entity_id: str) -> Optional[Entity]:
        try:
            with self._sessions() as session:
                record = session.get(RECORD_TYPES[kind], entity_id)
                return self._to_entity(kind, record) if record is not None else None
        except SQLAlchemyError as exc:
            raise StoreError(f"get {kind.value}/{entity_id} failed: {exc}") from exc

    def get_by_index(self, kind: StoreKind, field: str, value: Any) -> List[Entity]:
        record_type = RECORD_TYPES[kind]
        column = getattr(record_type, field)
        return self._select(kind, select(record_type).where(column == value).order_by(record_type.seq))

    def get_all(self, kind: StoreKind) -> List[Entity]:
        record_type = RECORD_TYPES[kind]
        return self._select(kind, select(record_type).order_by(record_type.seq))

    def delete_by_id(self, kind: StoreKind, entity_id: str) -> bool:
        try:
            with self._sessions.begin() as session:
                record = session.get(RECORD_TYPES[kind], entity_id)
                if record is None:
                    return False
                session.delete(record)
                return True
        except SQLAlchemyError as exc:
            raise StoreError(f"delete {kind.value}/{entity_id} failed: {exc}") from exc

    def close(self) -> None:
        self.engine.dispose()

    def _select(self, kind: StoreKind, statement: Any) -> List[Entity]:
        try:
            with self._sessions() as session:
                return [self._to_entity(kind, record) for record in session.scalars(statement)]
        except SQLAlchemyError as exc:
            raise StoreError(f"query {kind.value} failed: {exc}") from exc

    @staticmethod
    def _next_seq(session: Session, record_type: Any) -> int:
        last = session.scalar(select(record_type.seq).order_by(record_type.seq.desc()).limit(1))
        return (last or 0) + 1

    @staticmethod
    def _to_entity(kind: StoreKind, record: Any) -> Entity:
        entity_type = ENTITY_TYPES[kind]
        data = {name: getattr(record, name) for name in entity_type.model_fields}
        return entity_type.model_validate(data)
