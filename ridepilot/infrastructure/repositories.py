"""
Repository Pattern -- direct table access to the hosted store.

These repositories back the gateway's fallback path (used when the
server-side procedures are not deployed) and the plain reads that never
had a procedure (reference data, driver info).  Each receives an
``AsyncSession`` and returns domain entities, never ORM rows.
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import CarTypeModel, CompanyModel, DriverModel, ProjectModel
from ridepilot.domain.entities import CarType, Company, Driver, Trip
from ridepilot.domain.enums import (
    AcceptanceStatus,
    LifecycleStatus,
    PaymentStatus,
    TripState,
)

# Trip field name -> projects column name, where they differ
_COLUMN_FOR_FIELD = {"lifecycle_status": "status"}


def _as_date(value: Any) -> date:
    return date.fromisoformat(value) if isinstance(value, str) else value


def _as_time(value: Any) -> time:
    return time.fromisoformat(value) if isinstance(value, str) else value


def trip_from_row(row: Mapping[str, Any]) -> Trip:
    """Build a ``Trip`` from a ``projects`` row.

    Procedure results and direct reads both go through here, so both
    gateway paths produce the same shape.
    """
    return Trip(
        id=str(row["id"]),
        driver_id=str(row["driver_id"]),
        scheduled_at=datetime.combine(_as_date(row["date"]), _as_time(row["time"])),
        acceptance_status=AcceptanceStatus(row["acceptance_status"] or "pending"),
        lifecycle_status=LifecycleStatus(row["status"] or "active"),
        price=float(row["price"] or 0.0),
        driver_fee=float(row["driver_fee"]) if row.get("driver_fee") is not None else None,
        payment_status=PaymentStatus(row["payment_status"] or "charge"),
        company_id=str(row["company_id"]) if row.get("company_id") else None,
        car_type_id=str(row["car_type_id"]) if row.get("car_type_id") else None,
        client_name=row.get("client_name") or "",
        client_phone=row.get("client_phone") or "",
        pickup_location=row.get("pickup_location") or "",
        dropoff_location=row.get("dropoff_location") or "",
        passengers=row.get("passengers") or 1,
        description=row.get("description"),
        booking_id=row.get("booking_id"),
        accepted_at=row.get("accepted_at"),
        accepted_by=str(row["accepted_by"]) if row.get("accepted_by") else None,
        started_at=row.get("started_at"),
        completed_at=row.get("completed_at"),
        completed_by=str(row["completed_by"]) if row.get("completed_by") else None,
        created_at=row.get("created_at"),
    )


def _row(model: ProjectModel) -> dict[str, Any]:
    return {c.key: getattr(model, c.key) for c in ProjectModel.__table__.columns}


def to_columns(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Translate ``Trip`` field changes into ``projects`` column values."""
    columns = {}
    for name, value in changes.items():
        if hasattr(value, "value"):
            value = value.value
        columns[_COLUMN_FOR_FIELD.get(name, name)] = value
    return columns


class TripRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, trip_id: str) -> Optional[Trip]:
        project = await self.session.get(ProjectModel, trip_id)
        return trip_from_row(_row(project)) if project else None

    async def list_for_driver(self, driver_id: str) -> list[Trip]:
        result = await self.session.execute(
            select(ProjectModel)
            .where(ProjectModel.driver_id == driver_id)
            .order_by(ProjectModel.date, ProjectModel.time)
        )
        return [trip_from_row(_row(p)) for p in result.scalars().all()]

    async def update_if_current(
        self,
        trip_id: str,
        driver_id: str,
        expected: TripState,
        changes: Mapping[str, Any],
    ) -> int:
        """Conditional write keyed by id, driver and current state.

        Returns the number of rows changed (0 or 1).  Not atomic with any
        earlier read; the WHERE clause is the only guard.
        """
        stmt = (
            update(ProjectModel)
            .where(
                ProjectModel.id == trip_id,
                ProjectModel.driver_id == driver_id,
                ProjectModel.status == LifecycleStatus.ACTIVE.value,
                ProjectModel.acceptance_status == expected.value,
            )
            .values(**to_columns(changes))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, driver_id: str) -> Optional[Driver]:
        driver = await self.session.get(DriverModel, driver_id)
        if not driver:
            return None
        return Driver(
            id=driver.id,
            name=driver.name,
            license=driver.license,
            phone=driver.phone,
            last_login=driver.last_login,
        )

    async def exists(self, driver_id: str) -> bool:
        result = await self.session.execute(
            select(DriverModel.id).where(DriverModel.id == driver_id)
        )
        return result.scalar_one_or_none() is not None

    async def touch_last_login(self, driver_id: str, at: datetime) -> None:
        await self.session.execute(
            update(DriverModel)
            .where(DriverModel.id == driver_id)
            .values(last_login=at)
            .execution_options(synchronize_session=False)
        )


class ReferenceRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def companies(self) -> list[Company]:
        result = await self.session.execute(
            select(CompanyModel).order_by(CompanyModel.name)
        )
        return [
            Company(id=c.id, name=c.name, phone=c.phone)
            for c in result.scalars().all()
        ]

    async def car_types(self) -> list[CarType]:
        result = await self.session.execute(
            select(CarTypeModel).order_by(CarTypeModel.name)
        )
        return [
            CarType(
                id=c.id, name=c.name, capacity=c.capacity, description=c.description
            )
            for c in result.scalars().all()
        ]
