from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from carecue.audit import AuditTrail
from carecue.channels import AlertChannels, EmissionReport
from carecue.escalation import EscalationMonitor
from carecue.result import Result, err, ok
from carecue.store import KeyedStore, StoreError, StoreKind, alert_key, event_key
from carecue.timers import Clock, TimerBackend, TimerHandle, TimerRegistry, TimerState
from shared.contracts.enums import AlertStatus, ErrorCode
from shared.contracts.models import ScheduledAlert


logger = logging.getLogger(__name__)


class AlertScheduler:
    """Arms one timer per scheduled alert and fires it through the channel layer.

    Firing re-reads the stored alert under the engine lock, so an alert that
    was cancelled, acknowledged or whose care action was already closed is
    silently skipped even if its timer slipped through.
    """

    def __init__(
        self,
        store: KeyedStore,
        channels: AlertChannels,
        escalation: EscalationMonitor,
        timers: TimerBackend,
        clock: Clock,
        lock: threading.RLock,
        audit: AuditTrail,
    ) -> None:
        self.store = store
        self.channels = channels
        self.escalation = escalation
        self.clock = clock
        self.lock = lock
        self.audit = audit
        self.registry = TimerRegistry(timers, "fire")

    def schedule(self, alert: ScheduledAlert) -> Result[TimerHandle]:
        occurrence_id = alert.occurrence_id
        if alert.scheduled_at <= self.clock.now():
            self.registry.cancel(occurrence_id)
            fired = self.fire(occurrence_id)
            if not fired.ok:
                return err(fired.error.code, fired.error.message, fired.error.details)
            return ok(
                TimerHandle(
                    occurrence_id=occurrence_id,
                    key=f"{self.registry.namespace}:{occurrence_id}",
                    fire_at=alert.scheduled_at,
                    state=TimerState.FIRED,
                )
            )

        handle = self.registry.arm(occurrence_id, alert.scheduled_at, self._on_timer)
        self.audit.log("scheduled", occurrence_id, fire_at=alert.scheduled_at.isoformat())
        return ok(handle)

    def cancel(self, occurrence_id: str) -> bool:
        return self.registry.cancel(occurrence_id)

    def fire(self, occurrence_id: str) -> Result[Optional[EmissionReport]]:
        with self.lock:
            try:
                alert = self.store.get_by_id(StoreKind.ALERTS, alert_key(occurrence_id))
                event = self.store.get_by_id(StoreKind.CARE_EVENTS, event_key(occurrence_id))
            except StoreError as exc:
                logger.error("could not load alert %s: %s", occurrence_id, exc)
                return err(ErrorCode.SYSTEM_NOTIFICATION_FAILED, str(exc), {"occurrence_id": occurrence_id})

            if alert is None or alert.status != AlertStatus.SCHEDULED:
                logger.debug("alert %s no longer scheduled; not firing", occurrence_id)
                return ok(None)
            if event is not None and event.is_terminal:
                logger.debug("care action %s already %s; not firing", occurrence_id, event.status.value)
                return ok(None)

            report = self.channels.emit(alert.message, alert.priority, alert.dual_channel, at=self.clock.now())
            failures: List[Dict[str, Any]] = []
            if report.has_failures:
                failed = {c.value: reason for c, reason in report.failed.items()}
                self.audit.log("delivery_failed", occurrence_id, failed=failed)
                failures.append({"occurrence_id": occurrence_id, "channels": failed})

            # a delivery failure still counts as sent so escalation can retry it
            try:
                self.store.put(StoreKind.ALERTS, alert.model_copy(update={"status": AlertStatus.SENT}))
            except StoreError as exc:
                logger.error(
                    "%s: could not mark %s as sent: %s", ErrorCode.SYSTEM_NOTIFICATION_FAILED.name, occurrence_id, exc
                )
                failures.append({"occurrence_id": occurrence_id, "store": str(exc)})

            self.escalation.arm(occurrence_id)
            self.audit.log(
                "fired",
                occurrence_id,
                priority=alert.priority.value,
                delivered=[c.value for c in report.delivered],
            )
            logger.info("fired %s alert %s", alert.priority.value, occurrence_id)

            if failures:
                return err(
                    ErrorCode.SYSTEM_NOTIFICATION_FAILED,
                    f"alert {occurrence_id} was not fully delivered",
                    {"failures": failures},
                )
            return ok(report)

    def _on_timer(self, occurrence_id: str) -> None:
        result = self.fire(occurrence_id)
        if not result.ok:
            logger.warning("timer for %s fired with errors: %s", occurrence_id, result.error.message)
