"""
Administrative bootstrap — default tenant, default plant profiles,
system and row provisioning.

These are explicit operator actions (seed script, admin endpoints). The
ingestion path never calls them: an unknown routing key is rejected rather
than materialized.
"""

import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ConflictError, CrossTenantReferenceError, NotFoundError
from db.models import Organization, PlantProfile, Row, System

logger = structlog.get_logger()

DEFAULT_ORGANIZATION_NAME = "Default Organization"
DEFAULT_BRANDING = {"primaryColor": "#54ca2c", "systemName": "AquaSense"}

DEFAULT_PLANT_PROFILES: list[dict] = [
    {
        "name": "Lettuce",
        "airTemp": 22,
        "waterTemp": 18,
        "humidity": 70,
        "lightIntensity": 400,
        "lightDuration": 16,
        "co2Level": 400,
        "flowRate": 1,
    },
    {
        "name": "Basil",
        "airTemp": 25,
        "waterTemp": 22,
        "humidity": 65,
        "lightIntensity": 500,
        "lightDuration": 14,
        "co2Level": 400,
        "flowRate": 1,
    },
    {
        "name": "Strawberry",
        "airTemp": 20,
        "waterTemp": 19,
        "humidity": 75,
        "lightIntensity": 350,
        "lightDuration": 12,
        "co2Level": 400,
        "flowRate": 1,
    },
]


async def ensure_default_organization(db: AsyncSession) -> Organization:
    """Return the default organization, creating it on first call."""
    result = await db.execute(
        select(Organization)
        .where(Organization.name == DEFAULT_ORGANIZATION_NAME)
        .order_by(Organization.created_at)
        .limit(1)
    )
    organization = result.scalar_one_or_none()
    if organization is not None:
        return organization

    organization = Organization(
        name=DEFAULT_ORGANIZATION_NAME,
        branding_config=dict(DEFAULT_BRANDING),
        subscription_tier="diy",
    )
    db.add(organization)
    await db.commit()
    logger.info("bootstrap.organization_created", organization_id=str(organization.organization_id))
    return organization


async def ensure_default_plant_profiles(db: AsyncSession) -> list[PlantProfile]:
    """Create the stock Lettuce / Basil / Strawberry profiles for the default organization."""
    organization = await ensure_default_organization(db)

    profiles = []
    created = 0
    for template in DEFAULT_PLANT_PROFILES:
        result = await db.execute(
            select(PlantProfile).where(
                PlantProfile.organization_id == organization.organization_id,
                PlantProfile.name == template["name"],
            )
        )
        profile = result.scalar_one_or_none()
        if profile is None:
            profile = PlantProfile(
                organization_id=organization.organization_id,
                name=template["name"],
                is_default=True,
                parameters={k: v for k, v in template.items() if k != "name"},
            )
            db.add(profile)
            created += 1
        profiles.append(profile)

    await db.commit()
    logger.info("bootstrap.default_profiles_ready", created=created, total=len(profiles))
    return profiles


async def create_system(
    db: AsyncSession,
    *,
    organization_id: uuid.UUID,
    name: str,
    routing_key: str,
    location: str = "",
    master_controller_mac: str = "",
) -> System:
    """Provision a system under an organization. Routing keys are deployment-unique."""
    organization = await db.get(Organization, organization_id)
    if organization is None:
        raise NotFoundError("Organization", organization_id)

    system = System(
        organization_id=organization_id,
        name=name,
        routing_key=routing_key,
        location=location,
        master_controller_mac=master_controller_mac,
    )
    db.add(system)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError(
            f"Routing key already in use: {routing_key}", detail={"routing_key": routing_key}
        ) from exc

    logger.info("bootstrap.system_created", system_id=str(system.system_id), routing_key=routing_key)
    return system


async def create_row(
    db: AsyncSession,
    *,
    system_id: uuid.UUID,
    row_number: int,
    plant_profile_id: uuid.UUID,
    controller_mac: str = "",
) -> Row:
    """Provision a row. The initial profile must belong to the system's organization."""
    system = await db.get(System, system_id)
    if system is None:
        raise NotFoundError("System", system_id)

    profile = await db.get(PlantProfile, plant_profile_id)
    if profile is None:
        raise NotFoundError("PlantProfile", plant_profile_id)
    if profile.organization_id != system.organization_id:
        raise CrossTenantReferenceError(
            "Plant profile belongs to a different organization than the system",
            detail={"system_id": str(system_id), "profile_id": str(plant_profile_id)},
        )

    row = Row(
        system_id=system_id,
        row_number=row_number,
        controller_mac=controller_mac,
        current_plant_profile_id=plant_profile_id,
    )
    db.add(row)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError(
            f"Row {row_number} already exists in system {system_id}",
            detail={"system_id": str(system_id), "row_number": row_number},
        ) from exc

    logger.info("bootstrap.row_created", system_id=str(system_id), row_id=str(row.row_id), row_number=row_number)
    return row
