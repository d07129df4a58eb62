from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from shared.contracts.enums import AlertKind, AlertStatus, CareActionStatus, Priority


class Base(DeclarativeBase):
    """Declarative base for application models."""


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class ScheduledAlertRecord(TimestampMixin, Base):
    __tablename__ = "scheduled_alerts"
    __table_args__ = (
        Index("ix_scheduled_alerts_status_scheduled_at", "status", "scheduled_at"),
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    occurrence_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    subject_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    kind: Mapped[AlertKind] = mapped_column(Enum(AlertKind, name="alert_kind"), nullable=False)
    priority: Mapped[Priority] = mapped_column(Enum(Priority, name="alert_priority"), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    dual_channel: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[AlertStatus] = mapped_column(
        Enum(AlertStatus, name="alert_status"), nullable=False, default=AlertStatus.SCHEDULED
    )
    reminder_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class CareActionEventRecord(TimestampMixin, Base):
    __tablename__ = "care_action_events"
    __table_args__ = (
        Index("ix_care_action_events_subject_id_scheduled_at", "subject_id", "scheduled_at"),
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    occurrence_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    subject_id: Mapped[str] = mapped_column(String(128), nullable=False)
    kind: Mapped[AlertKind] = mapped_column(Enum(AlertKind, name="care_action_kind"), nullable=False)
    action_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[CareActionStatus] = mapped_column(
        Enum(CareActionStatus, name="care_action_status"), nullable=False, default=CareActionStatus.PENDING
    )
    actual_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    within_window: Mapped[bool | None] = mapped_column(Boolean)
    justification: Mapped[str | None] = mapped_column(Text)
