from enum import Enum, IntEnum


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AlertKind(str, Enum):
    MEDICATION = "MEDICATION"
    POSTURAL_CHANGE = "POSTURAL_CHANGE"
    BATHROOM = "BATHROOM"
    HYDRATION = "HYDRATION"
    RISK_ALERT = "RISK_ALERT"


class AlertStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    SENT = "SENT"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    DISMISSED = "DISMISSED"


class CareActionStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    OMITTED = "OMITTED"


class Channel(str, Enum):
    VISUAL = "visual"
    AUDIO = "audio"
    HAPTIC = "haptic"


class PriorityFilter(str, Enum):
    ALL = "ALL"
    HIGH_ONLY = "HIGH_ONLY"
    CRITICAL_ONLY = "CRITICAL_ONLY"


class ErrorCode(IntEnum):
    VALIDATION_REQUIRED_FIELD = 1001
    VALIDATION_ADHERENCE_WINDOW = 1002
    VALIDATION_INVALID_FORMAT = 1004
    NOT_FOUND_OCCURRENCE = 1005

    BUSINESS_JUSTIFICATION_REQUIRED = 3003

    SYSTEM_STORAGE_FAILED = 4002
    SYSTEM_NOTIFICATION_FAILED = 4003

    @property
    def kind(self) -> str:
        if self is ErrorCode.VALIDATION_ADHERENCE_WINDOW:
            return "adherence_window"
        if self is ErrorCode.NOT_FOUND_OCCURRENCE:
            return "not_found"
        if 3000 <= self < 4000:
            return "business"
        if self >= 4000:
            return "system"
        return "validation"
