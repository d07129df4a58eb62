import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from carecue.config import Settings, configure_logging
from carecue.engine import ReminderEngine
from carecue.result import Result
from shared.contracts.enums import AlertKind, Priority
from shared.contracts.models import CareActionEvent, Confirmation, RecurrenceSpec, ScheduledAlert

logger = logging.getLogger(__name__)

STATUS_BY_ERROR_KIND = {
    "validation": 422,
    "business": 422,
    "adherence_window": 409,
    "not_found": 404,
    "system": 503,
}

router = APIRouter()


class RecurrenceRequest(BaseModel):
    recurrence: RecurrenceSpec


class ScheduleResponse(BaseModel):
    subject_id: str
    occurrence_ids: list[str]


class ConfirmRequest(BaseModel):
    actual_at: datetime | None = None
    occurrence_id: str | None = Field(default=None, min_length=1)
    kind: AlertKind | None = None
    action_ref: str | None = Field(default=None, min_length=1)


class OmitRequest(BaseModel):
    justification: str
    actual_at: datetime | None = None
    occurrence_id: str | None = Field(default=None, min_length=1)
    kind: AlertKind | None = None
    action_ref: str | None = Field(default=None, min_length=1)


def get_engine(request: Request) -> ReminderEngine:
    return request.app.state.engine


def raise_for_error(result: Result) -> None:
    if result.ok:
        return
    error = result.error
    raise HTTPException(
        status_code=STATUS_BY_ERROR_KIND[error.kind],
        detail={"code": int(error.code), "message": error.message},
    )


@router.get("/health")
def health(engine: ReminderEngine = Depends(get_engine)) -> dict[str, str]:
    return {"status": "ok", "timers": "running" if engine.running else "stopped"}


@router.post("/subjects/{subject_id}/recurrences")
def schedule_recurrence(
    subject_id: str, payload: RecurrenceRequest, engine: ReminderEngine = Depends(get_engine)
) -> ScheduleResponse:
    result = engine.schedule_recurrence(subject_id, payload.recurrence)
    raise_for_error(result)
    return ScheduleResponse(subject_id=subject_id, occurrence_ids=result.value)


@router.post("/subjects/{subject_id}/confirm")
def confirm(subject_id: str, payload: ConfirmRequest, engine: ReminderEngine = Depends(get_engine)) -> Confirmation:
    result = engine.confirm(
        subject_id,
        payload.actual_at or engine.clock.now(),
        occurrence_id=payload.occurrence_id,
        kind=payload.kind,
        action_ref=payload.action_ref,
    )
    raise_for_error(result)
    return result.value


@router.post("/subjects/{subject_id}/omit")
def omit(subject_id: str, payload: OmitRequest, engine: ReminderEngine = Depends(get_engine)) -> dict[str, str]:
    result = engine.omit(
        subject_id,
        payload.justification,
        payload.actual_at or engine.clock.now(),
        occurrence_id=payload.occurrence_id,
        kind=payload.kind,
        action_ref=payload.action_ref,
    )
    raise_for_error(result)
    return {"status": "omitted"}


@router.get("/subjects/{subject_id}/events")
def list_events(subject_id: str, engine: ReminderEngine = Depends(get_engine)) -> list[CareActionEvent]:
    result = engine.list_events(subject_id)
    raise_for_error(result)
    return result.value


@router.post("/occurrences/{occurrence_id}/cancel")
def cancel(occurrence_id: str, engine: ReminderEngine = Depends(get_engine)) -> dict[str, str]:
    raise_for_error(engine.cancel(occurrence_id))
    return {"status": "cancelled"}


@router.post("/occurrences/{occurrence_id}/ack")
def acknowledge(occurrence_id: str, engine: ReminderEngine = Depends(get_engine)) -> dict[str, str]:
    raise_for_error(engine.acknowledge(occurrence_id))
    return {"status": "acknowledged"}


@router.post("/occurrences/{occurrence_id}/dismiss")
def dismiss(occurrence_id: str, engine: ReminderEngine = Depends(get_engine)) -> dict[str, str]:
    raise_for_error(engine.dismiss(occurrence_id))
    return {"status": "dismissed"}


@router.get("/alerts")
def alerts(min_priority: Priority | None = None, engine: ReminderEngine = Depends(get_engine)) -> list[ScheduledAlert]:
    result = engine.get_alerts_by_priority(min_priority)
    raise_for_error(result)
    return result.value


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine: ReminderEngine = app.state.engine
    started = engine.init()
    if not started.ok:
        logger.error("engine recovery failed: %s", started.error.message)
    try:
        yield
    finally:
        engine.shutdown()


def create_app(engine: ReminderEngine | None = None) -> FastAPI:
    if engine is None:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        engine = ReminderEngine.from_settings(settings)

    app = FastAPI(title="scheduler", lifespan=lifespan)
    app.state.engine = engine
    app.include_router(router)
    return app


app = create_app()
