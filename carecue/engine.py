"""Reminder and adherence engine.

ReminderEngine is the single service object callers hold. It owns the store,
the channel layer, the timer backend and one re-entrant lock that serializes
timer callbacks with confirm, omit, cancel, acknowledge and dismiss. Every
public operation returns a Result; nothing raises across this boundary.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, List, Optional

from carecue.adherence import AdherencePolicy, AdherenceWindow
from carecue.audit import AuditTrail
from carecue.care_actions import CareActionStateMachine, TransitionRejected, require_justification
from carecue.channels import AlertChannels, LoggingVisualSurface, WebhookVisualSurface
from carecue.config import Settings
from carecue.escalation import ESCALATION_GRACE_MINUTES, EscalationMonitor
from carecue.priority import prioritize
from carecue.recurrence import RecurrenceError, generate, occurrence_key
from carecue.result import Result, err, ok
from carecue.scheduler import AlertScheduler
from carecue.store import InMemoryStore, KeyedStore, SqlAlchemyStore, StoreError, StoreKind, alert_key, event_key
from carecue.timers import APSchedulerTimers, Clock, SystemClock, TimerBackend
from shared.contracts.enums import AlertKind, AlertStatus, ErrorCode, Priority, PriorityFilter
from shared.contracts.models import (
    CareActionEvent,
    Confirmation,
    NotificationPreferences,
    RecurrenceSpec,
    ScheduledAlert,
)


logger = logging.getLogger(__name__)

ACTIVE_ALERT_STATUSES = (AlertStatus.SCHEDULED, AlertStatus.SENT)

FILTER_FLOORS: Dict[PriorityFilter, Optional[Priority]] = {
    PriorityFilter.ALL: None,
    PriorityFilter.HIGH_ONLY: Priority.HIGH,
    PriorityFilter.CRITICAL_ONLY: Priority.CRITICAL,
}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ReminderEngine:
    def __init__(
        self,
        store: KeyedStore,
        channels: AlertChannels,
        timers: TimerBackend,
        clock: Optional[Clock] = None,
        policy: Optional[AdherencePolicy] = None,
        local_tz: tzinfo = timezone.utc,
        escalation_grace_minutes: int = ESCALATION_GRACE_MINUTES,
    ) -> None:
        self.store = store
        self.channels = channels
        self.timers = timers
        self.clock = clock or SystemClock()
        self.local_tz = local_tz
        self.audit = AuditTrail(self.clock)
        self._lock = threading.RLock()
        self.state_machine = CareActionStateMachine(policy)
        self.escalation = EscalationMonitor(
            store, channels, timers, self.clock, self._lock, self.audit, grace_minutes=escalation_grace_minutes
        )
        self.scheduler = AlertScheduler(store, channels, self.escalation, timers, self.clock, self._lock, self.audit)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReminderEngine":
        store: KeyedStore
        if settings.database_url:
            # sqlite is for local runs; other databases are migrated with alembic
            store = SqlAlchemyStore(settings.database_url, create_schema=settings.database_url.startswith("sqlite"))
        else:
            store = InMemoryStore()

        visual = (
            WebhookVisualSurface(settings.visual_webhook_url)
            if settings.visual_webhook_url
            else LoggingVisualSurface()
        )
        local_tz = settings.local_tz
        return cls(
            store=store,
            channels=AlertChannels(visual=visual, local_tz=local_tz),
            timers=APSchedulerTimers(),
            policy=AdherencePolicy(default=AdherenceWindow.symmetric(settings.adherence_window_minutes)),
            local_tz=local_tz,
            escalation_grace_minutes=settings.escalation_grace_minutes,
        )

    @property
    def preferences(self) -> NotificationPreferences:
        return self.channels.preferences

    @property
    def running(self) -> bool:
        return self.timers.running

    def init(self) -> Result[int]:
        """Start the timer backend and re-arm timers for persisted occurrences."""
        self.timers.start()
        with self._lock:
            try:
                alerts = self.store.get_all(StoreKind.ALERTS)
                rearmed = 0
                for alert in alerts:
                    if alert.status not in ACTIVE_ALERT_STATUSES:
                        continue
                    event = self.store.get_by_id(StoreKind.CARE_EVENTS, event_key(alert.occurrence_id))
                    if event is not None and event.is_terminal:
                        continue
                    if alert.status == AlertStatus.SCHEDULED:
                        result = self.scheduler.schedule(alert)
                        if not result.ok:
                            logger.warning("recovered alert %s fired with errors", alert.occurrence_id)
                    elif not alert.reminder_sent:
                        self.escalation.arm(alert.occurrence_id)
                    else:
                        continue
                    self.audit.log("recovered", alert.occurrence_id, status=alert.status.value)
                    rearmed += 1
            except StoreError as exc:
                logger.error("%s: recovery failed: %s", ErrorCode.SYSTEM_STORAGE_FAILED.name, exc)
                return err(ErrorCode.SYSTEM_STORAGE_FAILED, str(exc))

        logger.info("engine started, %d timer(s) recovered", rearmed)
        return ok(rearmed)

    def shutdown(self) -> None:
        with self._lock:
            self.scheduler.registry.cancel_all()
            self.escalation.registry.cancel_all()
        self.timers.shutdown()
        self.channels.close()
        close = getattr(self.store, "close", None)
        if callable(close):
            close()
        logger.info("engine stopped")

    def schedule_recurrence(self, subject_id: str, spec: RecurrenceSpec) -> Result[List[str]]:
        if not subject_id or not subject_id.strip():
            return err(ErrorCode.VALIDATION_REQUIRED_FIELD, "subject_id is required")

        now = self.clock.now()
        try:
            planned = generate(spec, now, self.local_tz)
        except RecurrenceError as exc:
            return err(exc.code, exc.message)

        scheduled: List[str] = []
        failures: List[Dict[str, Any]] = []
        with self._lock:
            for occurrence in planned:
                occurrence_id = occurrence_key(occurrence.kind, subject_id, occurrence.action_ref, occurrence.scheduled_at)
                try:
                    existing = self.store.get_by_id(StoreKind.CARE_EVENTS, event_key(occurrence_id))
                    if existing is not None and existing.is_terminal:
                        logger.debug("occurrence %s already %s; not re-opening", occurrence_id, existing.status.value)
                        continue
                    current = self.store.get_by_id(StoreKind.ALERTS, alert_key(occurrence_id))
                    if current is not None and current.status != AlertStatus.SCHEDULED:
                        # delivery already happened or was withdrawn; keep its state and timers
                        logger.debug("alert %s already %s; leaving as is", occurrence_id, current.status.value)
                        scheduled.append(occurrence_id)
                        continue
                    created_at = existing.created_at if existing is not None else now
                    alert = ScheduledAlert(
                        id=alert_key(occurrence_id),
                        occurrence_id=occurrence_id,
                        subject_id=subject_id,
                        kind=occurrence.kind,
                        priority=occurrence.priority,
                        message=occurrence.message,
                        scheduled_at=occurrence.scheduled_at,
                        dual_channel=occurrence.dual_channel,
                        created_at=created_at,
                    )
                    event = CareActionEvent(
                        id=event_key(occurrence_id),
                        occurrence_id=occurrence_id,
                        subject_id=subject_id,
                        kind=occurrence.kind,
                        action_ref=occurrence.action_ref,
                        scheduled_at=occurrence.scheduled_at,
                        created_at=created_at,
                    )
                    self.store.put(StoreKind.CARE_EVENTS, event)
                    self.store.put(StoreKind.ALERTS, alert)
                except StoreError as exc:
                    logger.error("%s: could not persist %s: %s", ErrorCode.SYSTEM_STORAGE_FAILED.name, occurrence_id, exc)
                    failures.append({"occurrence_id": occurrence_id, "store": str(exc)})
                    continue

                scheduled.append(occurrence_id)
                result = self.scheduler.schedule(alert)
                if not result.ok:
                    failures.extend((result.error.details or {}).get("failures", [{"occurrence_id": occurrence_id}]))

        logger.info("scheduled %d %s occurrence(s) for %s", len(scheduled), spec.cadence, subject_id)
        if failures:
            return err(
                ErrorCode.SYSTEM_NOTIFICATION_FAILED,
                f"{len(failures)} occurrence(s) could not be fully scheduled",
                {"scheduled": scheduled, "failures": failures},
            )
        return ok(scheduled)

    def confirm(
        self,
        subject_id: str,
        actual_at: datetime,
        *,
        occurrence_id: Optional[str] = None,
        kind: Optional[AlertKind] = None,
        action_ref: Optional[str] = None,
    ) -> Result[Confirmation]:
        actual_at = _as_utc(actual_at)
        with self._lock:
            try:
                events = self.store.get_by_index(StoreKind.CARE_EVENTS, "subject_id", subject_id)
                event = self.state_machine.select(
                    events, actual_at, occurrence_id=occurrence_id, kind=kind, action_ref=action_ref
                )
                closed = self.state_machine.confirm(event, actual_at)
                self.store.put(StoreKind.CARE_EVENTS, closed)
            except TransitionRejected as exc:
                return err(exc.code, exc.message)
            except StoreError as exc:
                logger.error("%s: confirm for %s failed: %s", ErrorCode.SYSTEM_STORAGE_FAILED.name, subject_id, exc)
                return err(ErrorCode.SYSTEM_STORAGE_FAILED, str(exc))

            self._release(closed.occurrence_id)
            self.audit.log("confirmed", closed.occurrence_id, actual_at=actual_at.isoformat())
            logger.info("confirmed %s", closed.occurrence_id)
            return ok(
                Confirmation(
                    event_id=closed.id,
                    occurrence_id=closed.occurrence_id,
                    confirmed_at=actual_at,
                    within_window=True,
                )
            )

    def omit(
        self,
        subject_id: str,
        justification: Optional[str],
        actual_at: datetime,
        *,
        occurrence_id: Optional[str] = None,
        kind: Optional[AlertKind] = None,
        action_ref: Optional[str] = None,
    ) -> Result[None]:
        actual_at = _as_utc(actual_at)
        with self._lock:
            try:
                require_justification(justification)
                events = self.store.get_by_index(StoreKind.CARE_EVENTS, "subject_id", subject_id)
                event = self.state_machine.select(
                    events, actual_at, occurrence_id=occurrence_id, kind=kind, action_ref=action_ref
                )
                closed = self.state_machine.omit(event, justification, actual_at)
                self.store.put(StoreKind.CARE_EVENTS, closed)
            except TransitionRejected as exc:
                return err(exc.code, exc.message)
            except StoreError as exc:
                logger.error("%s: omit for %s failed: %s", ErrorCode.SYSTEM_STORAGE_FAILED.name, subject_id, exc)
                return err(ErrorCode.SYSTEM_STORAGE_FAILED, str(exc))

            self._release(closed.occurrence_id)
            self.audit.log("omitted", closed.occurrence_id, justification=closed.justification)
            logger.info("omitted %s", closed.occurrence_id)
            return ok(None)

    def cancel(self, occurrence_id: str) -> Result[None]:
        """Withdraw the alert. The care action itself stays open."""
        return self._settle(occurrence_id, AlertStatus.DISMISSED, "cancelled")

    def acknowledge(self, occurrence_id: str) -> Result[None]:
        return self._settle(occurrence_id, AlertStatus.ACKNOWLEDGED, "acknowledged")

    def dismiss(self, occurrence_id: str) -> Result[None]:
        return self._settle(occurrence_id, AlertStatus.DISMISSED, "dismissed")

    def get_alerts_by_priority(self, min_priority: Optional[Priority] = None) -> Result[List[ScheduledAlert]]:
        if min_priority is None:
            min_priority = FILTER_FLOORS[self.preferences.priority_filter]
        try:
            alerts = self.store.get_all(StoreKind.ALERTS)
        except StoreError as exc:
            logger.error("%s: could not list alerts: %s", ErrorCode.SYSTEM_STORAGE_FAILED.name, exc)
            return err(ErrorCode.SYSTEM_STORAGE_FAILED, str(exc))
        active = [a for a in alerts if a.status in ACTIVE_ALERT_STATUSES]
        return ok(prioritize(active, min_priority))

    def list_events(self, subject_id: str) -> Result[List[CareActionEvent]]:
        try:
            events = self.store.get_by_index(StoreKind.CARE_EVENTS, "subject_id", subject_id)
        except StoreError as exc:
            return err(ErrorCode.SYSTEM_STORAGE_FAILED, str(exc))
        return ok(sorted(events, key=lambda e: e.scheduled_at))

    def _settle(self, occurrence_id: str, status: AlertStatus, record_type: str) -> Result[None]:
        with self._lock:
            try:
                alert = self.store.get_by_id(StoreKind.ALERTS, alert_key(occurrence_id))
                if alert is None:
                    return err(ErrorCode.NOT_FOUND_OCCURRENCE, f"no alert for occurrence {occurrence_id}")
                self.scheduler.cancel(occurrence_id)
                self.escalation.disarm(occurrence_id)
                if alert.status in ACTIVE_ALERT_STATUSES:
                    self.store.put(StoreKind.ALERTS, alert.model_copy(update={"status": status}))
            except StoreError as exc:
                logger.error("%s: could not update %s: %s", ErrorCode.SYSTEM_STORAGE_FAILED.name, occurrence_id, exc)
                return err(ErrorCode.SYSTEM_STORAGE_FAILED, str(exc))

            self.audit.log(record_type, occurrence_id, previous=alert.status.value)
            return ok(None)

    def _release(self, occurrence_id: str) -> None:
        # the care action is already closed here; only the alert side is left
        self.scheduler.cancel(occurrence_id)
        self.escalation.disarm(occurrence_id)
        try:
            alert = self.store.get_by_id(StoreKind.ALERTS, alert_key(occurrence_id))
            if alert is not None and alert.status in ACTIVE_ALERT_STATUSES:
                self.store.put(StoreKind.ALERTS, alert.model_copy(update={"status": AlertStatus.DISMISSED}))
        except StoreError as exc:
            logger.error(
                "%s: could not dismiss alert for %s: %s", ErrorCode.SYSTEM_NOTIFICATION_FAILED.name, occurrence_id, exc
            )
