"""
SQLAlchemy ORM models (maps to the hosted PostgreSQL store).

Tables
------
* ``drivers``    -- drivers who log into the portal
* ``companies``  -- client companies bookings belong to
* ``car_types``  -- vehicle classes bookings reference
* ``projects``   -- bookings; a trip is a project seen by its driver

Status columns are plain text so the server-side procedures and direct
writes share one representation.

Indexes
-------
* ``driver_id`` on ``projects`` backs the per-driver fetch.
* ``(date, time)`` backs the schedule ordering.
"""

import uuid

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    func,
)

from .database import Base
from ridepilot.domain.enums import AcceptanceStatus, LifecycleStatus, PaymentStatus


def _uuid() -> str:
    return str(uuid.uuid4())


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(120), nullable=False)
    license = Column(String(64), nullable=True)
    phone = Column(String(32), nullable=True)
    auth_token = Column(String(64), unique=True, nullable=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CompanyModel(Base):
    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(200), nullable=False)
    phone = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CarTypeModel(Base):
    __tablename__ = "car_types"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(120), nullable=False)
    capacity = Column(Integer, default=4, nullable=False)
    description = Column(Text, nullable=True)


class ProjectModel(Base):
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=_uuid)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=True)
    car_type_id = Column(String(36), ForeignKey("car_types.id"), nullable=True)
    driver_id = Column(String(36), ForeignKey("drivers.id"), nullable=True)

    client_name = Column(String(200), nullable=False, default="")
    client_phone = Column(String(32), nullable=False, default="")
    pickup_location = Column(Text, nullable=False, default="")
    dropoff_location = Column(Text, nullable=False, default="")
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    passengers = Column(Integer, default=1, nullable=False)
    price = Column(Float, default=0.0, nullable=False)
    driver_fee = Column(Float, nullable=True)
    description = Column(Text, nullable=True)
    booking_id = Column(String(64), nullable=True)

    status = Column(String(20), default=LifecycleStatus.ACTIVE.value, nullable=False)
    payment_status = Column(
        String(20), default=PaymentStatus.CHARGE.value, nullable=False
    )
    acceptance_status = Column(
        String(20), default=AcceptanceStatus.PENDING.value, nullable=False
    )

    accepted_at = Column(DateTime(timezone=True), nullable=True)
    accepted_by = Column(String(36), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    completed_by = Column(String(36), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_projects_driver", "driver_id"),
        Index("idx_projects_schedule", "date", "time"),
        Index("idx_projects_status", "status"),
    )
