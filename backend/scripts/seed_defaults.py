"""
Seed Defaults — Default organization, stock plant profiles and a demo system.

Run: python scripts/seed_defaults.py [--rows 4] [--no-system]

Idempotent: profiles are matched by name, and the demo system is only
created when its routing key (DEFAULT_TOPIC_PREFIX) is not yet taken.
"""

import argparse
import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.config import get_settings
from db.models import Row, System
from identity.bootstrap import create_row, create_system, ensure_default_plant_profiles
from identity.topics import build_topic

settings = get_settings()


async def seed_defaults(row_count: int, with_system: bool):
    """Create default tenant data for development."""
    engine = create_async_engine(settings.database_url)
    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with SessionLocal() as db:
        profiles = await ensure_default_plant_profiles(db)
        print(f"  ✅ {len(profiles)} plant profiles: {', '.join(p.name for p in profiles)}")

        if not with_system:
            await engine.dispose()
            return

        routing_key = settings.default_topic_prefix
        result = await db.execute(select(System).where(System.routing_key == routing_key))
        system = result.scalar_one_or_none()
        if system is None:
            system = await create_system(
                db,
                organization_id=profiles[0].organization_id,
                name="Demo Greenhouse",
                routing_key=routing_key,
            )
            print(f"  ✅ System created: {system.name} ({routing_key})")
        else:
            print(f"  ↪ System exists: {system.name} ({routing_key})")

        existing = {
            r.row_number
            for r in (await db.execute(select(Row).where(Row.system_id == system.system_id))).scalars().all()
        }
        for row_number in range(1, row_count + 1):
            if row_number not in existing:
                await create_row(
                    db,
                    system_id=system.system_id,
                    row_number=row_number,
                    plant_profile_id=profiles[(row_number - 1) % len(profiles)].profile_id,
                )
            print(f"  📡 Row {row_number}: {build_topic(routing_key, row_number)}")

    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--rows", type=int, default=4)
    parser.add_argument("--no-system", action="store_true")
    args = parser.parse_args()
    asyncio.run(seed_defaults(args.rows, not args.no_system))
