"""
Rows Router — Plant profile assignment.
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from api.v1.routers.systems import RowResponse
from identity.resolver import assign_profile

router = APIRouter(prefix="/api/v1/rows", tags=["rows"])


class ProfileAssignment(BaseModel):
    profile_id: UUID


@router.patch("/{row_id}/profile", response_model=RowResponse)
async def patch_row_profile(
    row_id: UUID,
    body: ProfileAssignment,
    db: AsyncSession = Depends(get_db),
):
    """Assign a plant profile to a row. Cross-organization profiles are rejected with 409."""
    return await assign_profile(db, row_id, body.profile_id)
