"""
shared/models/models.py
All SQLAlchemy ORM models for the Saint Directory.
UUID primary keys throughout; portable column types so the same models
run on PostgreSQL in production and SQLite in tests.
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from config.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enumerations ──────────────────────────────────────────────

class AdminRole(str, PyEnum):
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class ActivityAction(str, PyEnum):
    CREATE_SAINT = "CREATE_SAINT"
    UPDATE_SAINT = "UPDATE_SAINT"
    UPDATE_SAINT_PHOTO = "UPDATE_SAINT_PHOTO"
    DELETE_SAINT = "DELETE_SAINT"
    CREATE_LOCATION = "CREATE_LOCATION"
    UPDATE_LOCATION = "UPDATE_LOCATION"
    DELETE_LOCATION = "DELETE_LOCATION"
    CREATE_SCHEDULE = "CREATE_SCHEDULE"
    UPDATE_SCHEDULE = "UPDATE_SCHEDULE"
    DELETE_SCHEDULE = "DELETE_SCHEDULE"
    CREATE_USER = "CREATE_USER"


# ── Mixins ────────────────────────────────────────────────────

class TimestampMixin:
    """Adds created_at and updated_at to any model."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


# ── Models ────────────────────────────────────────────────────

class AdminUser(TimestampMixin, Base):
    """Admin panel account. Username/password login issuing a bearer token."""
    __tablename__ = "admin_users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[AdminRole] = mapped_column(
        Enum(AdminRole, native_enum=False, length=20), nullable=False, default=AdminRole.ADMIN
    )
    permissions: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<AdminUser {self.username} ({self.role})>"


class Saint(TimestampMixin, Base):
    """
    A tracked spiritual figure. Never hard-deleted: deactivation keeps
    the schedule history intact.
    """
    __tablename__ = "saints"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)  # "Acharya", "Muni"
    spiritual_lineage: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    photo_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # Admin coordination only
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_saints_name", "name"),
        Index("ix_saints_is_active", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Saint {self.name}>"


class Location(Base):
    """A temple or center that hosts stays."""
    __tablename__ = "locations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    country: Mapped[str] = mapped_column(String(100), default="India", nullable=False)
    latitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 8), nullable=True)
    longitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(11, 8), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_locations_city", "city"),
    )


class Schedule(TimestampMixin, Base):
    """
    A saint's stay at a location over an inclusive calendar-date range.
    Ranges for the same saint never overlap; the check runs in
    services/schedule/engine.py under a per-saint row lock.
    """
    __tablename__ = "schedules"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    saint_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("saints.id", ondelete="CASCADE"), nullable=False
    )
    location_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    purpose: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # "Pravachan", "Chaturmas"
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_person: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("admin_users.id", ondelete="SET NULL"), nullable=True
    )

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_schedules_valid_date_range"),
        Index("ix_schedules_saint_dates", "saint_id", "start_date", "end_date"),
        Index("ix_schedules_location_id", "location_id"),
        Index("ix_schedules_start_date", "start_date"),
    )


class ActivityLog(Base):
    """Append-only audit trail of admin mutations."""
    __tablename__ = "activity_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    admin_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("admin_users.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    old_values: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # Serialized JSON
    new_values: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # Serialized JSON
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_activity_logs_entity", "entity_type", "entity_id"),
        Index("ix_activity_logs_created_at", "created_at"),
    )
