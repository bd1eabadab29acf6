"""
Systems Router — Installations and their rows.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from core.errors import NotFoundError
from db.models import Row, System
from identity.bootstrap import create_row, create_system

router = APIRouter(prefix="/api/v1/systems", tags=["systems"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class SystemCreate(BaseModel):
    organization_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    routing_key: str = Field(..., min_length=1, max_length=255)
    location: str = ""
    master_controller_mac: str = ""


class SystemResponse(BaseModel):
    system_id: UUID
    organization_id: UUID
    name: str
    location: str
    master_controller_mac: str
    routing_key: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class RowCreate(BaseModel):
    row_number: int = Field(..., ge=0)
    plant_profile_id: UUID
    controller_mac: str = ""


class RowResponse(BaseModel):
    row_id: UUID
    system_id: UUID
    row_number: int
    controller_mac: str
    current_plant_profile_id: UUID
    is_active: bool
    last_seen: datetime

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[SystemResponse])
async def list_systems(
    routing_key: str | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List systems, optionally by routing key."""
    query = select(System)
    if routing_key:
        query = query.where(System.routing_key == routing_key)
    query = query.order_by(System.created_at).offset(skip).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


@router.post("/", response_model=SystemResponse, status_code=201)
async def post_system(
    body: SystemCreate,
    db: AsyncSession = Depends(get_db),
):
    """Provision a system. Routing keys must be unique (409 otherwise)."""
    return await create_system(db, **body.model_dump())


@router.get("/{system_id}/rows", response_model=list[RowResponse])
async def list_rows(
    system_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """List rows of a system by row number."""
    if await db.get(System, system_id) is None:
        raise NotFoundError("System", system_id)
    result = await db.execute(select(Row).where(Row.system_id == system_id).order_by(Row.row_number))
    return result.scalars().all()


@router.post("/{system_id}/rows", response_model=RowResponse, status_code=201)
async def post_row(
    system_id: UUID,
    body: RowCreate,
    db: AsyncSession = Depends(get_db),
):
    """Provision a row under a system."""
    return await create_row(db, system_id=system_id, **body.model_dump())
