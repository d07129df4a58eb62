from carecue.config import Settings, configure_logging
from carecue.engine import ReminderEngine
from carecue.result import AppError, Result

__all__ = ["AppError", "ReminderEngine", "Result", "Settings", "configure_logging"]
