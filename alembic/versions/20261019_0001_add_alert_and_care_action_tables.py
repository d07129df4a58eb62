"""add scheduled alert and care action event tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ALERT_KINDS = ("MEDICATION", "POSTURAL_CHANGE", "BATHROOM", "HYDRATION", "RISK_ALERT")


def upgrade() -> None:
    op.create_table(
        "scheduled_alerts",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("occurrence_id", sa.String(length=255), nullable=False),
        sa.Column("subject_id", sa.String(length=128), nullable=False),
        sa.Column("kind", sa.Enum(*ALERT_KINDS, name="alert_kind"), nullable=False),
        sa.Column("priority", sa.Enum("LOW", "MEDIUM", "HIGH", "CRITICAL", name="alert_priority"), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("dual_channel", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "status",
            sa.Enum("SCHEDULED", "SENT", "ACKNOWLEDGED", "DISMISSED", name="alert_status"),
            nullable=False,
        ),
        sa.Column("reminder_sent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("occurrence_id"),
    )
    op.create_index("ix_scheduled_alerts_seq", "scheduled_alerts", ["seq"])
    op.create_index("ix_scheduled_alerts_subject_id", "scheduled_alerts", ["subject_id"])
    op.create_index("ix_scheduled_alerts_status_scheduled_at", "scheduled_alerts", ["status", "scheduled_at"])

    op.create_table(
        "care_action_events",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("occurrence_id", sa.String(length=255), nullable=False),
        sa.Column("subject_id", sa.String(length=128), nullable=False),
        sa.Column("kind", sa.Enum(*ALERT_KINDS, name="care_action_kind"), nullable=False),
        sa.Column("action_ref", sa.String(length=255), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "CONFIRMED", "OMITTED", name="care_action_status"),
            nullable=False,
        ),
        sa.Column("actual_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("within_window", sa.Boolean(), nullable=True),
        sa.Column("justification", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("occurrence_id"),
    )
    op.create_index("ix_care_action_events_seq", "care_action_events", ["seq"])
    op.create_index(
        "ix_care_action_events_subject_id_scheduled_at", "care_action_events", ["subject_id", "scheduled_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_care_action_events_subject_id_scheduled_at", table_name="care_action_events")
    op.drop_index("ix_care_action_events_seq", table_name="care_action_events")
    op.drop_table("care_action_events")

    op.drop_index("ix_scheduled_alerts_status_scheduled_at", table_name="scheduled_alerts")
    op.drop_index("ix_scheduled_alerts_subject_id", table_name="scheduled_alerts")
    op.drop_index("ix_scheduled_alerts_seq", table_name="scheduled_alerts")
    op.drop_table("scheduled_alerts")

    sa.Enum(name="care_action_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="care_action_kind").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="alert_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="alert_priority").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="alert_kind").drop(op.get_bind(), checkfirst=True)
