"""
Plant Profiles Router — Target set-points per organization.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from db.models import PlantProfile

router = APIRouter(prefix="/api/v1/plant-profiles", tags=["plant-profiles"])


class PlantProfileResponse(BaseModel):
    profile_id: UUID
    organization_id: UUID
    name: str
    is_default: bool
    parameters: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}


@router.get("/", response_model=list[PlantProfileResponse])
async def list_plant_profiles(
    organization_id: UUID | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Profiles of an organization; without one, the organization-supplied defaults."""
    query = select(PlantProfile)
    if organization_id:
        query = query.where(PlantProfile.organization_id == organization_id)
    else:
        query = query.where(PlantProfile.is_default.is_(True))
    result = await db.execute(query.order_by(PlantProfile.name))
    return result.scalars().all()
