from typing import List

from fastapi import APIRouter, Depends, Query

from app.api.auth import get_current_user
from app.models.base import CamelModel
from app.models.settlement import Settlement
from app.models.user import AppUser
from app.services.settlement import settlement_service

router = APIRouter(prefix="/api/settlements", tags=["Settlements"])

class SettleBody(CamelModel):
    project_id: str
    request_ids: List[str]

@router.post("", response_model=List[Settlement], status_code=201)
async def create_settlements(
    body: SettleBody,
    current_user: AppUser = Depends(get_current_user)
):
    return await settlement_service.consolidate(current_user, body.project_id, body.request_ids)

@router.get("", response_model=List[Settlement])
async def list_settlements(
    project_id: str = Query(..., alias="projectId"),
    page: int = Query(0, ge=0),
    current_user: AppUser = Depends(get_current_user)
):
    return await settlement_service.list_settlements(current_user, project_id, page)

@router.get("/{settlement_id}", response_model=Settlement)
async def get_settlement(settlement_id: str, current_user: AppUser = Depends(get_current_user)):
    return await settlement_service.get_settlement(current_user, settlement_id)
