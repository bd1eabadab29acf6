"""
AquaSense Database Models

7 tables for greenhouse telemetry and threshold alerting.
Relationships are plain identifier columns backed by secondary indexes;
uniqueness invariants live in the schema so they hold across processes.

Tables:
  1. organizations    - Tenant roots (branding, subscription tier)
  2. systems          - Physical installations, addressed by routing key (topic prefix)
  3. rows             - Cultivation lanes within a system
  4. plant_profiles   - Named environmental set-points per organization
  5. sensor_readings  - Append-only per-row time series
  6. alert_rules      - Per (system, parameter) threshold policy
  7. alerts           - Raised conditions; at most one open per (system, parameter)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    text,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from db.session import Base


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


SUBSCRIPTION_TIERS = ("diy", "commercial", "enterprise")
RULE_SEVERITIES = ("warning", "critical")
ALERT_TYPES = ("warning", "critical", "info")
NOTIFICATION_METHODS = ("push", "sound", "email")


# ─── 1. Organizations ──────────────────────────────────────────────────────


class Organization(Base):
    __tablename__ = "organizations"

    organization_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    branding_config = Column(JSON, nullable=False, default=dict)
    subscription_tier = Column(String(20), nullable=False, default="diy")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_organizations_name", "name"),
        CheckConstraint(
            "subscription_tier IN ('diy', 'commercial', 'enterprise')",
            name="ck_organization_subscription_tier",
        ),
    )


# ─── 2. Systems ─────────────────────────────────────────────────────────────


class System(Base):
    __tablename__ = "systems"

    system_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    organization_id = Column(GUID(), ForeignKey("organizations.organization_id"), nullable=False)
    name = Column(String(255), nullable=False)
    location = Column(String(255), nullable=False, default="")
    master_controller_mac = Column(String(64), nullable=False, default="")
    routing_key = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("routing_key", name="uq_system_routing_key"),
        Index("ix_systems_organization", "organization_id"),
    )


# ─── 3. Rows ────────────────────────────────────────────────────────────────


class Row(Base):
    __tablename__ = "rows"

    row_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    system_id = Column(GUID(), ForeignKey("systems.system_id"), nullable=False)
    row_number = Column(Integer, nullable=False)
    controller_mac = Column(String(64), nullable=False, default="")
    current_plant_profile_id = Column(GUID(), ForeignKey("plant_profiles.profile_id"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    last_seen = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("system_id", "row_number", name="uq_row_number_per_system"),)


# ─── 4. Plant Profiles ──────────────────────────────────────────────────────


class PlantProfile(Base):
    __tablename__ = "plant_profiles"

    profile_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    organization_id = Column(GUID(), ForeignKey("organizations.organization_id"), nullable=False)
    name = Column(String(255), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    # airTemp, waterTemp, humidity, lightIntensity, lightDuration, co2Level, flowRate
    # plus optional pH, dissolvedOxygen, waterLevel and nutrients {n, p, k}
    parameters = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("organization_id", "name", name="uq_profile_name_per_organization"),)


# ─── 5. Sensor Readings ─────────────────────────────────────────────────────


class SensorReading(Base):
    __tablename__ = "sensor_readings"

    reading_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    row_id = Column(GUID(), ForeignKey("rows.row_id"), nullable=False)
    # Denormalized from the system at ingestion time; may go stale if the key changes.
    routing_key = Column(String(255), nullable=False)
    timestamp = Column(DateTime, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    ingested_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_readings_row_time", "row_id", "timestamp"),
        Index("ix_readings_routing_key_time", "routing_key", "timestamp"),
    )


# ─── 6. Alert Rules ─────────────────────────────────────────────────────────


class AlertRule(Base):
    __tablename__ = "alert_rules"

    rule_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    system_id = Column(GUID(), ForeignKey("systems.system_id"), nullable=False)
    parameter = Column(String(64), nullable=False)
    min_threshold = Column(Float)
    max_threshold = Column(Float)
    severity = Column(String(20), nullable=False, default="warning")
    is_enabled = Column(Boolean, nullable=False, default=True)
    notification_methods = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("system_id", "parameter", name="uq_alert_rule_system_parameter"),
        CheckConstraint("severity IN ('warning', 'critical')", name="ck_alert_rule_severity"),
    )


# ─── 7. Alerts ──────────────────────────────────────────────────────────────


class Alert(Base):
    __tablename__ = "alerts"

    alert_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    system_id = Column(GUID(), ForeignKey("systems.system_id"), nullable=False)
    row_id = Column(GUID(), ForeignKey("rows.row_id"))
    alert_type = Column(String(20), nullable=False)
    parameter = Column(String(64), nullable=False)
    message = Column(Text, nullable=False)
    value = Column(Float, nullable=False)
    threshold = Column(Float, nullable=False)
    is_resolved = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    resolved_at = Column(DateTime)

    __table_args__ = (
        Index("ix_alerts_system_created", "system_id", "created_at"),
        Index(
            "uq_alerts_open_system_parameter",
            "system_id",
            "parameter",
            unique=True,
            postgresql_where=text("NOT is_resolved"),
            sqlite_where=text("is_resolved = 0"),
        ),
        CheckConstraint("alert_type IN ('warning', 'critical', 'info')", name="ck_alert_type"),
        CheckConstraint("resolved_at IS NULL OR resolved_at >= created_at", name="ck_alert_resolved_after_created"),
    )
