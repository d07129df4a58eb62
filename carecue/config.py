from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    timezone: str = "UTC"
    escalation_grace_minutes: int = 15
    adherence_window_minutes: int = 90
    visual_webhook_url: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("CARECUE_DATABASE_URL") or None,
            timezone=os.getenv("CARECUE_TIMEZONE", "UTC"),
            escalation_grace_minutes=int(os.getenv("CARECUE_ESCALATION_GRACE_MINUTES", "15")),
            adherence_window_minutes=int(os.getenv("CARECUE_ADHERENCE_WINDOW_MINUTES", "90")),
            visual_webhook_url=os.getenv("CARECUE_VISUAL_WEBHOOK_URL") or None,
            log_level=os.getenv("CARECUE_LOG_LEVEL", "INFO"),
        )

    @property
    def local_tz(self) -> tzinfo:
        if self.timezone.upper() == "UTC":
            return timezone.utc
        return ZoneInfo(self.timezone)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
