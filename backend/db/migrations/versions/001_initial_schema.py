"""
Initial schema - organizations, systems, rows, plant profiles,
sensor readings, alert rules, alerts

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # 1. Organizations
    op.create_table(
        "organizations",
        sa.Column("organization_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("branding_config", sa.JSON, nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("subscription_tier", sa.String(20), nullable=False, server_default="diy"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "subscription_tier IN ('diy', 'commercial', 'enterprise')", name="ck_organization_subscription_tier"
        ),
    )
    op.create_index("ix_organizations_name", "organizations", ["name"])

    # 2. Systems
    op.create_table(
        "systems",
        sa.Column("system_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "organization_id", UUID(as_uuid=True), sa.ForeignKey("organizations.organization_id"), nullable=False
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("location", sa.String(255), nullable=False, server_default=""),
        sa.Column("master_controller_mac", sa.String(64), nullable=False, server_default=""),
        sa.Column("routing_key", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("routing_key", name="uq_system_routing_key"),
    )
    op.create_index("ix_systems_organization", "systems", ["organization_id"])

    # 3. Plant profiles (before rows: rows reference them)
    op.create_table(
        "plant_profiles",
        sa.Column("profile_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "organization_id", UUID(as_uuid=True), sa.ForeignKey("organizations.organization_id"), nullable=False
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_default", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("parameters", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("organization_id", "name", name="uq_profile_name_per_organization"),
    )

    # 4. Rows
    op.create_table(
        "rows",
        sa.Column("row_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("system_id", UUID(as_uuid=True), sa.ForeignKey("systems.system_id"), nullable=False),
        sa.Column("row_number", sa.Integer, nullable=False),
        sa.Column("controller_mac", sa.String(64), nullable=False, server_default=""),
        sa.Column(
            "current_plant_profile_id",
            UUID(as_uuid=True),
            sa.ForeignKey("plant_profiles.profile_id"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("last_seen", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("system_id", "row_number", name="uq_row_number_per_system"),
    )

    # 5. Sensor readings
    op.create_table(
        "sensor_readings",
        sa.Column("reading_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("row_id", UUID(as_uuid=True), sa.ForeignKey("rows.row_id"), nullable=False),
        sa.Column("routing_key", sa.String(255), nullable=False),
        sa.Column("timestamp", sa.DateTime, nullable=False),
        sa.Column("data", sa.JSON, nullable=False),
        sa.Column("ingested_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_readings_row_time", "sensor_readings", ["row_id", "timestamp"])
    op.create_index("ix_readings_routing_key_time", "sensor_readings", ["routing_key", "timestamp"])

    # 6. Alert rules
    op.create_table(
        "alert_rules",
        sa.Column("rule_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("system_id", UUID(as_uuid=True), sa.ForeignKey("systems.system_id"), nullable=False),
        sa.Column("parameter", sa.String(64), nullable=False),
        sa.Column("min_threshold", sa.Float),
        sa.Column("max_threshold", sa.Float),
        sa.Column("severity", sa.String(20), nullable=False, server_default="warning"),
        sa.Column("is_enabled", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("notification_methods", sa.JSON, nullable=False, server_default=sa.text("'[]'::json")),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("system_id", "parameter", name="uq_alert_rule_system_parameter"),
        sa.CheckConstraint("severity IN ('warning', 'critical')", name="ck_alert_rule_severity"),
    )

    # 7. Alerts
    op.create_table(
        "alerts",
        sa.Column("alert_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("system_id", UUID(as_uuid=True), sa.ForeignKey("systems.system_id"), nullable=False),
        sa.Column("row_id", UUID(as_uuid=True), sa.ForeignKey("rows.row_id")),
        sa.Column("alert_type", sa.String(20), nullable=False),
        sa.Column("parameter", sa.String(64), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("value", sa.Float, nullable=False),
        sa.Column("threshold", sa.Float, nullable=False),
        sa.Column("is_resolved", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("resolved_at", sa.DateTime),
        sa.CheckConstraint("alert_type IN ('warning', 'critical', 'info')", name="ck_alert_type"),
        sa.CheckConstraint(
            "resolved_at IS NULL OR resolved_at >= created_at", name="ck_alert_resolved_after_created"
        ),
    )
    op.create_index("ix_alerts_system_created", "alerts", ["system_id", "created_at"])
    # At most one open alert per (system, parameter), across all ingest processes.
    op.create_index(
        "uq_alerts_open_system_parameter",
        "alerts",
        ["system_id", "parameter"],
        unique=True,
        postgresql_where=sa.text("NOT is_resolved"),
    )


def downgrade() -> None:
    op.drop_index("uq_alerts_open_system_parameter", table_name="alerts")
    op.drop_index("ix_alerts_system_created", table_name="alerts")
    op.drop_table("alerts")
    op.drop_table("alert_rules")
    op.drop_index("ix_readings_routing_key_time", table_name="sensor_readings")
    op.drop_index("ix_readings_row_time", table_name="sensor_readings")
    op.drop_table("sensor_readings")
    op.drop_table("rows")
    op.drop_table("plant_profiles")
    op.drop_index("ix_systems_organization", table_name="systems")
    op.drop_table("systems")
    op.drop_index("ix_organizations_name", table_name="organizations")
    op.drop_table("organizations")
