"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 3 sample drivers
  - 3 client companies and 3 car types
  - 8 sample projects across the lifecycle (pending, accepted, started,
    declined, completed), scheduled around today
"""

import asyncio
from datetime import datetime, timedelta

from sqlalchemy import text

from ridepilot.infrastructure.database import async_session_factory, engine
from ridepilot.infrastructure.models import (
    CarTypeModel,
    CompanyModel,
    DriverModel,
    ProjectModel,
)
from ridepilot.domain.enums import AcceptanceStatus, LifecycleStatus, PaymentStatus


DRIVERS = [
    {"name": "Youssef Amrani", "license": "DRV-1001", "phone": "+33 6 11 22 33 44"},
    {"name": "Claire Martin", "license": "DRV-1002", "phone": "+33 6 55 66 77 88"},
    {"name": "Marco Bianchi", "license": "DRV-1003", "phone": "+33 6 99 00 11 22"},
]

COMPANIES = [
    {"name": "Riviera Travel", "phone": "+33 4 93 00 00 01"},
    {"name": "Azur Events", "phone": "+33 4 93 00 00 02"},
    {"name": "Palais Hotels", "phone": None},
]

CAR_TYPES = [
    {"name": "Business Sedan", "capacity": 3, "description": "E-Class or similar"},
    {"name": "First Class", "capacity": 3, "description": "S-Class or similar"},
    {"name": "Van", "capacity": 7, "description": "V-Class or similar"},
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM drivers"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Drivers ───────────────────────────────────────────────────
        driver_models = [DriverModel(**d) for d in DRIVERS]
        session.add_all(driver_models)
        await session.flush()
        print(f"  Created {len(driver_models)} drivers")

        # ── Reference data ────────────────────────────────────────────
        company_models = [CompanyModel(**c) for c in COMPANIES]
        car_type_models = [CarTypeModel(**c) for c in CAR_TYPES]
        session.add_all(company_models + car_type_models)
        await session.flush()
        print(f"  Created {len(company_models)} companies, {len(car_type_models)} car types")

        # ── Projects ──────────────────────────────────────────────────
        now = datetime.now().replace(second=0, microsecond=0)
        first, second = driver_models[0].id, driver_models[1].id
        projects_data = [
            # Urgent: due within the hour, still waiting for the driver
            {"driver": first, "at": now + timedelta(minutes=50), "price": 95.0,
             "acceptance": AcceptanceStatus.PENDING, "pickup": "Nice Airport T2",
             "dropoff": "Hotel Negresco", "client": "Mr. Laurent"},
            # Later today, accepted
            {"driver": first, "at": now + timedelta(hours=5), "price": 180.0,
             "driver_fee": 140.0, "acceptance": AcceptanceStatus.ACCEPTED,
             "pickup": "Monaco Port", "dropoff": "Cannes Palais", "client": "Ms. Rossi"},
            # Tomorrow, pending
            {"driver": first, "at": now + timedelta(days=1, hours=2), "price": 250.0,
             "acceptance": AcceptanceStatus.PENDING, "pickup": "Nice Airport T1",
             "dropoff": "Saint-Tropez", "client": "Dr. Keller"},
            # In progress
            {"driver": first, "at": now - timedelta(minutes=20), "price": 75.0,
             "acceptance": AcceptanceStatus.STARTED, "pickup": "Antibes",
             "dropoff": "Nice Airport T2", "client": "Mrs. Dupont"},
            # Completed yesterday
            {"driver": first, "at": now - timedelta(days=1), "price": 120.0,
             "acceptance": AcceptanceStatus.STARTED, "lifecycle": LifecycleStatus.COMPLETED,
             "payment": PaymentStatus.PAID, "pickup": "Cannes", "dropoff": "Nice",
             "client": "Mr. Okafor"},
            # Declined
            {"driver": first, "at": now + timedelta(days=2), "price": 60.0,
             "acceptance": AcceptanceStatus.DECLINED, "pickup": "Menton",
             "dropoff": "Nice", "client": "Ms. Haddad"},
            # Second driver
            {"driver": second, "at": now + timedelta(hours=1), "price": 110.0,
             "acceptance": AcceptanceStatus.PENDING, "pickup": "Nice Airport T1",
             "dropoff": "Monaco", "client": "Mr. Schmidt"},
            {"driver": second, "at": now + timedelta(days=3), "price": 300.0,
             "acceptance": AcceptanceStatus.ACCEPTED, "pickup": "Cannes",
             "dropoff": "Geneva", "client": "Mrs. Alvarez"},
        ]

        for i, p in enumerate(projects_data):
            session.add(
                ProjectModel(
                    driver_id=p["driver"],
                    company_id=company_models[i % len(company_models)].id,
                    car_type_id=car_type_models[i % len(car_type_models)].id,
                    client_name=p["client"],
                    client_phone="+33 6 00 00 00 %02d" % i,
                    pickup_location=p["pickup"],
                    dropoff_location=p["dropoff"],
                    date=p["at"].date(),
                    time=p["at"].time(),
                    passengers=1 + i % 3,
                    price=p["price"],
                    driver_fee=p.get("driver_fee"),
                    status=p.get("lifecycle", LifecycleStatus.ACTIVE).value,
                    payment_status=p.get("payment", PaymentStatus.CHARGE).value,
                    acceptance_status=p["acceptance"].value,
                    booking_id=f"RP-{1000 + i}",
                )
            )
        await session.flush()
        print(f"  Created {len(projects_data)} projects")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
