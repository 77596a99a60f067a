"""
Seed script: demo users, default system settings and a month of attendance.

Usage (inside container):
    python -m app.db.seed
"""

import asyncio
import random
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select

from app.core.security import create_access_token
from app.db.models import AttendanceRecord, SystemSettings, User
from app.db.session import AsyncSessionLocal

DEMO_USERS = [
    ("admin", "System Administrator", "admin", None),
    ("manager.ops", "Operations Manager", "manager", "Operations"),
    ("budi", "Budi Santoso", "user", "Operations"),
    ("siti", "Siti Rahma", "user", "Operations"),
    ("andi", "Andi Wijaya", "user", "Finance"),
]

DEFAULT_BUSINESS_HOURS = {
    "startTime": "08:00",
    "endTime": "17:00",
    "checkInDeadline": "09:00",
    "gracePeriodMinutes": 15,
}

DEFAULT_LOCATION = {
    "officeLatitude": -6.2088,
    "officeLongitude": 106.8456,
    "geofenceRadius": 100,
    "requireLocation": True,
}


async def get_or_create_user(session, username: str, full_name: str, role: str, department) -> User:
    result = await session.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user:
        print(f"User '{username}' already exists, skipping.")
        return user

    user = User(
        username=username,
        full_name=full_name,
        role=role,
        department=department,
        is_active=True,
    )
    session.add(user)
    await session.flush()
    print(f"Created {role} '{username}': id={user.id}")
    return user


async def ensure_settings(session) -> None:
    result = await session.execute(select(SystemSettings).limit(1))
    if result.scalar_one_or_none() is not None:
        print("System settings already exist, skipping.")
        return
    session.add(SystemSettings(business_hours=DEFAULT_BUSINESS_HOURS, location=DEFAULT_LOCATION))
    await session.flush()
    print("Created default system settings.")


def _demo_record(user: User, day: date, rng: random.Random) -> AttendanceRecord:
    roll = rng.random()
    if roll < 0.05:
        return AttendanceRecord(user_id=user.id, date=day, status="absent")

    late_minutes = rng.choice([0, 0, 0, 5, 10, 20, 35]) if roll < 0.85 else 0
    check_in = datetime(day.year, day.month, day.day, 8, 0, tzinfo=timezone.utc) + timedelta(
        minutes=late_minutes + rng.randint(-20, 0)
    )
    hours = rng.uniform(7.5, 10.0)
    check_out = check_in + timedelta(hours=hours)
    return AttendanceRecord(
        user_id=user.id,
        date=day,
        check_in_time=check_in,
        check_out_time=check_out,
        check_in_latitude=DEFAULT_LOCATION["officeLatitude"],
        check_in_longitude=DEFAULT_LOCATION["officeLongitude"],
        check_in_accuracy=15.0,
        check_out_latitude=DEFAULT_LOCATION["officeLatitude"],
        check_out_longitude=DEFAULT_LOCATION["officeLongitude"],
        check_out_accuracy=15.0,
        work_hours=hours,
        overtime_hours=max(0.0, hours - 8.0),
        late_minutes=late_minutes,
        status="late" if late_minutes > DEFAULT_BUSINESS_HOURS["gracePeriodMinutes"] else "present",
    )


async def seed_attendance(session, users: list[User], days: int = 30) -> int:
    rng = random.Random(42)
    today = date.today()
    created = 0
    for user in users:
        existing = await session.execute(
            select(AttendanceRecord.date).where(AttendanceRecord.user_id == user.id)
        )
        seen = set(existing.scalars().all())
        for offset in range(days, 0, -1):
            day = today - timedelta(days=offset)
            if day.weekday() >= 5 or day in seen:
                continue
            session.add(_demo_record(user, day, rng))
            created += 1
    await session.flush()
    return created


async def main():
    async with AsyncSessionLocal() as session:
        async with session.begin():
            users = [await get_or_create_user(session, *spec) for spec in DEMO_USERS]
            await ensure_settings(session)
            created = await seed_attendance(session, [u for u in users if u.role != "admin"])
            print(f"Created {created} attendance records.")

    admin = users[0]
    print("Seed complete.")
    print(f"Dev access token for '{admin.username}':\n{create_access_token({'sub': str(admin.id)})}")


if __name__ == "__main__":
    asyncio.run(main())
