from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from carecue.timers import Clock


MAX_AUDIT_RECORDS = 1000
RECORD_TYPES = {
    "scheduled",
    "fired",
    "delivery_failed",
    "escalated",
    "confirmed",
    "omitted",
    "cancelled",
    "acknowledged",
    "dismissed",
    "recovered",
}


class AuditTrail:
    def __init__(self, clock: Optional[Clock] = None, max_records: int = MAX_AUDIT_RECORDS) -> None:
        self.clock = clock
        self.max_records = max_records
        self.records: List[Dict[str, Any]] = []

    def log(self, record_type: str, occurrence_id: str, **detail: Any) -> None:
        if record_type not in RECORD_TYPES:
            raise ValueError(f"Invalid audit record type: {record_type}")

        now = self.clock.now() if self.clock is not None else datetime.now(timezone.utc)
        self.records.append(
            {
                "type": record_type,
                "occurrence_id": occurrence_id,
                "detail": detail,
                "logged_at": now.isoformat(),
            }
        )
        if len(self.records) > self.max_records:
            del self.records[0 : len(self.records) - self.max_records]

    def of_type(self, record_type: str) -> List[Dict[str, Any]]:
        return [r for r in self.records if r["type"] == record_type]
