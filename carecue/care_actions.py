from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from carecue.adherence import AdherencePolicy, match_nearest_pending
from shared.contracts.enums import AlertKind, CareActionStatus, ErrorCode
from shared.contracts.models import CareActionEvent


class TransitionRejected(Exception):
    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def require_justification(justification: Optional[str]) -> str:
    if justification is None or not justification.strip():
        raise TransitionRejected(
            ErrorCode.BUSINESS_JUSTIFICATION_REQUIRED,
            "justification required to record an omitted care action",
        )
    return justification


class CareActionStateMachine:
    """PENDING -> CONFIRMED | OMITTED. Both targets are terminal.

    Transitions never mutate their input: they return a new, re-validated
    event, so a rejected call leaves the stored occurrence exactly as it was.
    """

    def __init__(self, policy: Optional[AdherencePolicy] = None) -> None:
        self.policy = policy or AdherencePolicy()

    def select(
        self,
        events: Iterable[CareActionEvent],
        actual_at: datetime,
        *,
        occurrence_id: Optional[str] = None,
        kind: Optional[AlertKind] = None,
        action_ref: Optional[str] = None,
    ) -> CareActionEvent:
        candidates: List[CareActionEvent] = [
            e
            for e in events
            if (occurrence_id is None or e.occurrence_id == occurrence_id)
            and (kind is None or e.kind == kind)
            and (action_ref is None or e.action_ref == action_ref)
        ]
        event = match_nearest_pending(candidates, actual_at)
        if event is None:
            raise TransitionRejected(ErrorCode.NOT_FOUND_OCCURRENCE, "no pending occurrence matches this request")
        return event

    def confirm(self, event: CareActionEvent, actual_at: datetime) -> CareActionEvent:
        self._require_pending(event)
        window = self.policy.window_for(event.kind)
        if not window.contains(event.scheduled_at, actual_at):
            raise TransitionRejected(
                ErrorCode.VALIDATION_ADHERENCE_WINDOW,
                f"the action must be performed {window.describe()}",
            )
        return self._close(event, CareActionStatus.CONFIRMED, actual_at, within_window=True)

    def omit(self, event: CareActionEvent, justification: Optional[str], actual_at: datetime) -> CareActionEvent:
        justification = require_justification(justification)
        self._require_pending(event)
        return self._close(
            event, CareActionStatus.OMITTED, actual_at, within_window=False, justification=justification
        )

    @staticmethod
    def _require_pending(event: CareActionEvent) -> None:
        if event.is_terminal:
            raise TransitionRejected(
                ErrorCode.NOT_FOUND_OCCURRENCE,
                f"occurrence {event.occurrence_id} is already {event.status.value}",
            )

    @staticmethod
    def _close(
        event: CareActionEvent,
        status: CareActionStatus,
        actual_at: datetime,
        *,
        within_window: bool,
        justification: Optional[str] = None,
    ) -> CareActionEvent:
        data = event.model_dump()
        data.update(status=status, actual_at=actual_at, within_window=within_window, justification=justification)
        return CareActionEvent.model_validate(data)
