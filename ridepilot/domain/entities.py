"""
Domain entities.

``Trip`` is a booking as seen by the driver it is assigned to.  It carries
two independent status axes (acceptance and lifecycle) which are folded
into a single ``TripState`` for every decision the state machine makes.
Company and car type are read-only reference data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .enums import AcceptanceStatus, LifecycleStatus, PaymentStatus, TripState


@dataclass(frozen=True)
class Trip:
    id: str
    driver_id: str
    scheduled_at: datetime
    acceptance_status: AcceptanceStatus = AcceptanceStatus.PENDING
    lifecycle_status: LifecycleStatus = LifecycleStatus.ACTIVE
    price: float = 0.0
    driver_fee: Optional[float] = None
    payment_status: PaymentStatus = PaymentStatus.CHARGE
    company_id: Optional[str] = None
    car_type_id: Optional[str] = None
    client_name: str = ""
    client_phone: str = ""
    pickup_location: str = ""
    dropoff_location: str = ""
    passengers: int = 1
    description: Optional[str] = None
    booking_id: Optional[str] = None
    accepted_at: Optional[datetime] = None
    accepted_by: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.price < 0:
            raise ValueError(f"Trip {self.id}: price must be non-negative")
        if self.driver_fee is not None and self.driver_fee < 0:
            raise ValueError(f"Trip {self.id}: driver_fee must be non-negative")

    @property
    def state(self) -> TripState:
        # Once the lifecycle is completed the acceptance axis is no longer authoritative.
        if self.lifecycle_status == LifecycleStatus.COMPLETED:
            return TripState.COMPLETED
        return TripState(self.acceptance_status.value)

    @property
    def earnings(self) -> float:
        """What the driver earns: the fee override when set, else the price."""
        return self.driver_fee or self.price


@dataclass(frozen=True)
class Driver:
    id: str
    name: str
    license: Optional[str] = None
    phone: Optional[str] = None
    last_login: Optional[datetime] = None


@dataclass(frozen=True)
class Company:
    id: str
    name: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class CarType:
    id: str
    name: str
    capacity: int = 4
    description: Optional[str] = None


@dataclass(frozen=True)
class ReferenceData:
    companies: list[Company] = field(default_factory=list)
    car_types: list[CarType] = field(default_factory=list)

    def company_name(self, company_id: Optional[str]) -> str:
        for company in self.companies:
            if company.id == company_id:
                return company.name
        return "Unknown Company"

    def car_type_name(self, car_type_id: Optional[str]) -> str:
        for car_type in self.car_types:
            if car_type.id == car_type_id:
                return car_type.name
        return "Standard Vehicle"
