from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Optional

from carecue.audit import AuditTrail
from carecue.channels import AlertChannels
from carecue.store import KeyedStore, StoreError, StoreKind, alert_key
from carecue.timers import Clock, TimerBackend, TimerHandle, TimerRegistry
from shared.contracts.enums import AlertStatus, ErrorCode


logger = logging.getLogger(__name__)

ESCALATION_GRACE_MINUTES = 15
REMINDER_PREFIX = "Reminder: "


class EscalationMonitor:
    """Re-emit a sent alert once if nobody acknowledged it within the grace period.

    An escalation fires at most once per alert: the follow-up is never re-armed,
    and an alert that is acknowledged or dismissed before the deadline is left
    alone.
    """

    def __init__(
        self,
        store: KeyedStore,
        channels: AlertChannels,
        timers: TimerBackend,
        clock: Clock,
        lock: threading.RLock,
        audit: AuditTrail,
        grace_minutes: int = ESCALATION_GRACE_MINUTES,
    ) -> None:
        self.store = store
        self.channels = channels
        self.clock = clock
        self.lock = lock
        self.audit = audit
        self.grace_minutes = grace_minutes
        self.registry = TimerRegistry(timers, "escalate")

    def arm(self, occurrence_id: str, grace_minutes: Optional[int] = None) -> TimerHandle:
        grace = self.grace_minutes if grace_minutes is None else grace_minutes
        deadline = self.clock.now() + timedelta(minutes=grace)
        return self.registry.arm(occurrence_id, deadline, self._escalate)

    def disarm(self, occurrence_id: str) -> bool:
        return self.registry.cancel(occurrence_id)

    def _escalate(self, occurrence_id: str) -> None:
        with self.lock:
            try:
                alert = self.store.get_by_id(StoreKind.ALERTS, alert_key(occurrence_id))
            except StoreError as exc:
                logger.error("escalation lookup failed for %s: %s", occurrence_id, exc)
                return
            if alert is None:
                return
            if alert.status in (AlertStatus.ACKNOWLEDGED, AlertStatus.DISMISSED) or alert.reminder_sent:
                logger.debug("escalation for %s not needed (%s)", occurrence_id, alert.status.value)
                return

            report = self.channels.emit(
                f"{REMINDER_PREFIX}{alert.message}", alert.priority, True, at=self.clock.now()
            )
            try:
                self.store.put(StoreKind.ALERTS, alert.model_copy(update={"reminder_sent": True}))
            except StoreError as exc:
                logger.error(
                    "%s: could not record reminder for %s: %s",
                    ErrorCode.SYSTEM_NOTIFICATION_FAILED.name,
                    occurrence_id,
                    exc,
                )

            logger.info("escalated unacknowledged alert %s", occurrence_id)
            self.audit.log(
                "escalated",
                occurrence_id,
                delivered=[c.value for c in report.delivered],
                failed={c.value: reason for c, reason in report.failed.items()},
            )
