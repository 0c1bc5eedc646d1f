"""Create sensor_readings, flood_alerts and evaluation_state tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "sensor_readings",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("distance", sa.Float(), nullable=False),
        sa.Column("flood_level", sa.Float(), nullable=False),
        sa.Column("status_tag", sa.String(50), nullable=False),
        sa.Column("reading_time", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_sensor_readings_reading_time", "sensor_readings", ["reading_time"])

    op.create_table(
        "flood_alerts",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("alert_level", sa.Enum("Warning", "Danger", "Critical", name="alertlevel"), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "past", name="alertstatus"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("source_distance", sa.Float(), nullable=False),
        sa.Column("source_flood_level", sa.Float(), nullable=False),
        sa.Column("reading_id", sa.UUID(), nullable=True),
        sa.Column("reading_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("reading_time", "alert_level", name="uq_flood_alert_reading_level"),
    )
    op.create_index("ix_flood_alerts_status_created_at", "flood_alerts", ["status", "created_at"])
    op.create_index("ix_flood_alerts_created_at", "flood_alerts", ["created_at"])

    op.create_table(
        "evaluation_state",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("first_safe_detected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("id = 1", name="ck_evaluation_state_singleton"),
    )
    op.execute("INSERT INTO evaluation_state (id, first_safe_detected_at) VALUES (1, NULL)")


def downgrade() -> None:
    op.drop_table("evaluation_state")
    op.drop_index("ix_flood_alerts_created_at", table_name="flood_alerts")
    op.drop_index("ix_flood_alerts_status_created_at", table_name="flood_alerts")
    op.drop_table("flood_alerts")
    op.execute("DROP TYPE IF EXISTS alertstatus")
    op.execute("DROP TYPE IF EXISTS alertlevel")
    op.drop_index("ix_sensor_readings_reading_time", table_name="sensor_readings")
    op.drop_table("sensor_readings")
