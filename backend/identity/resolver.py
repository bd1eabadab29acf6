"""
Identity Resolver — Map inbound readings to Organization / System / Row.

Resolution is strict: an unknown routing key or row number fails closed
with NotFoundError. Systems and rows are created only through the explicit
bootstrap helpers (identity/bootstrap.py), never as a side effect of ingestion.

Also owns the single mutation path for a row's current plant profile.
"""

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from core.errors import CrossTenantReferenceError, NotFoundError
from db.models import Organization, PlantProfile, Row, System, utcnow

logger = structlog.get_logger()


@dataclass
class ResolvedRoute:
    organization: Organization
    system: System
    row: Row | None


async def get_system_by_routing_key(db: AsyncSession, routing_key: str) -> System:
    result = await db.execute(select(System).where(System.routing_key == routing_key))
    system = result.scalar_one_or_none()
    if system is None:
        raise NotFoundError("System", routing_key)
    return system


async def resolve_route(
    db: AsyncSession,
    routing_key: str,
    row_number: int | None = None,
    row_id: uuid.UUID | None = None,
    touch_last_seen: bool = True,
) -> ResolvedRoute:
    """
    Resolve a routing key (plus an optional row number or explicit row id)
    to its Organization, System and Row.

    Raises NotFoundError for an unknown system, or for a row number / row id
    that does not exist under the resolved system. On success the row's
    last_seen is bumped; failing to do so is logged and ignored.
    """
    system = await get_system_by_routing_key(db, routing_key)

    organization = await db.get(Organization, system.organization_id)
    if organization is None:
        raise NotFoundError("Organization", system.organization_id)

    row: Row | None = None
    if row_number is not None:
        result = await db.execute(
            select(Row).where(Row.system_id == system.system_id, Row.row_number == row_number)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError("Row", f"{routing_key}#{row_number}")
    elif row_id is not None:
        row = await db.get(Row, row_id)
        if row is None or row.system_id != system.system_id:
            raise NotFoundError("Row", row_id)

    route = ResolvedRoute(organization=organization, system=system, row=row)
    if row is not None and touch_last_seen:
        await _touch_last_seen(db, route)
    return route


async def _touch_last_seen(db: AsyncSession, route: ResolvedRoute) -> None:
    """Best-effort last_seen bump. Never fails the caller."""
    row = route.row
    seen_at = utcnow()
    try:
        await db.execute(update(Row).where(Row.row_id == row.row_id).values(last_seen=seen_at))
        await db.commit()
        set_committed_value(row, "last_seen", seen_at)
    except SQLAlchemyError as exc:
        logger.warning("identity.last_seen_update_failed", row_id=str(row.row_id), error=str(exc))
        await db.rollback()
        # rollback expires loaded instances; reload them for the caller
        for instance in (route.organization, route.system, row):
            await db.refresh(instance)


async def assign_profile(db: AsyncSession, row_id: uuid.UUID, profile_id: uuid.UUID) -> Row:
    """
    Point a row at a different plant profile.

    The profile must belong to the same organization as the row's system;
    otherwise CrossTenantReferenceError is raised and nothing is written.
    """
    row = await db.get(Row, row_id)
    if row is None:
        raise NotFoundError("Row", row_id)

    profile = await db.get(PlantProfile, profile_id)
    if profile is None:
        raise NotFoundError("PlantProfile", profile_id)

    system = await db.get(System, row.system_id)
    if system is None:
        raise NotFoundError("System", row.system_id)

    if profile.organization_id != system.organization_id:
        logger.warning(
            "identity.cross_tenant_profile_rejected",
            row_id=str(row_id),
            profile_id=str(profile_id),
            row_organization_id=str(system.organization_id),
            profile_organization_id=str(profile.organization_id),
        )
        raise CrossTenantReferenceError(
            "Plant profile belongs to a different organization than the row's system",
            detail={"row_id": str(row_id), "profile_id": str(profile_id)},
        )

    previous_profile_id = row.current_plant_profile_id
    row.current_plant_profile_id = profile.profile_id
    await db.commit()
    await db.refresh(row)

    logger.info(
        "identity.profile_assigned",
        row_id=str(row_id),
        row_number=row.row_number,
        profile=profile.name,
        previous_profile_id=str(previous_profile_id),
    )
    return row
