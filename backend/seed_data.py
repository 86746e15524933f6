"""
Database seeding script for a demo campus.

Creates an ADMIN, a DRIVER and a PASSENGER, one route with its stops and a
bus assigned to the driver, then prints a bearer token for each user.
Run this script after the database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from backend.app.db.session import AsyncSessionLocal, create_tables
from backend.app.core.jwt import token_for_user
# Import models to ensure they are registered with Base
from backend.app.models.user import User
from backend.app.models.enums import UserRole
from backend.app.models.route import Route
from backend.app.models.bus_stop import BusStop
from backend.app.models.bus import Bus
from backend.app.models.trip_log import TripLog
from backend.app.models.live_bus_location import LiveBusLocation
from backend.app.models.location_history import LocationHistory

CAMPUS_LOOP = [
    ("Main Gate", 12.9716, 77.5946),
    ("Library", 12.9738, 77.5969),
    ("Engineering Block", 12.9761, 77.5991),
    ("Hostel Circle", 12.9789, 77.6012),
]


async def seed_campus():
    """
    Seed the demo campus.

    Creates:
    - 1 ADMIN user
    - 1 DRIVER user with bus CB-01
    - 1 PASSENGER user
    - Route "Campus Loop" with 4 stops
    """
    await create_tables()

    async with AsyncSessionLocal() as db:
        print("🌱 Starting campus seeding...")

        result = await db.execute(
            select(User).where(User.username == "admin")
        )
        if result.scalar_one_or_none():
            print("ℹ️  Campus already seeded, skipping")
            return

        admin = User(email="admin@college.edu", username="admin", full_name="Transport Office", role=UserRole.ADMIN)
        driver = User(email="driver@college.edu", username="driver01", full_name="Shuttle Driver", role=UserRole.DRIVER)
        student = User(email="student@college.edu", username="student01", full_name="Student", role=UserRole.PASSENGER)
        db.add_all([admin, driver, student])
        await db.flush()
        print("✅ Created users: admin, driver01, student01")

        route = Route(
            name="Campus Loop",
            description="Main Gate -> Hostel Circle",
            path_geometry=[[lat, lng] for _, lat, lng in CAMPUS_LOOP],
        )
        db.add(route)
        await db.flush()

        for order, (name, lat, lng) in enumerate(CAMPUS_LOOP, start=1):
            db.add(BusStop(route_id=route.id, name=name, latitude=lat, longitude=lng, stop_order=order))
        print(f"✅ Created route 'Campus Loop' with {len(CAMPUS_LOOP)} stops")

        bus = Bus(bus_number="CB-01", bus_name="Campus Shuttle 1", capacity=40,
                  driver_id=driver.id, current_route_id=route.id)
        db.add(bus)

        await db.commit()
        print(f"✅ Created bus CB-01 (id={bus.id}) assigned to driver01")

        print("\n🎉 Campus seeding completed successfully!")
        print("\nBearer tokens:")
        for user in (admin, driver, student):
            token = token_for_user(user)
            print(f"  - {user.role.value:<9} {user.username}: {token}")


if __name__ == "__main__":
    asyncio.run(seed_campus())
