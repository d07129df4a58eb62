from .models import (
    Base,
    CareActionEventRecord,
    ScheduledAlertRecord,
)

__all__ = [
    "Base",
    "CareActionEventRecord",
    "ScheduledAlertRecord",
]
