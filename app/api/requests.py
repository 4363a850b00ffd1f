from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from app.api.auth import get_current_user
from app.guardrails.audit_logger import audit_logger
from app.models.audit import AuditEvent
from app.models.base import CamelModel
from app.models.request import PaymentRequest, RequestDraft, RequestStatus
from app.models.user import AppUser
from app.services.requests import request_service

router = APIRouter(prefix="/api/requests", tags=["Requests"])

# Request Models
class CreateRequest(RequestDraft):
    project_id: str

class ApproveBody(CamelModel):
    signature: Optional[str] = None

class ReasonBody(CamelModel):
    reason: Optional[str] = None

@router.post("", response_model=PaymentRequest, status_code=201)
async def create_request(
    body: CreateRequest,
    current_user: AppUser = Depends(get_current_user)
):
    draft = RequestDraft(**body.model_dump(exclude={"project_id"}))
    return await request_service.create_request(current_user, body.project_id, draft)

@router.get("", response_model=List[PaymentRequest])
async def list_requests(
    project_id: str = Query(..., alias="projectId"),
    status: Optional[List[RequestStatus]] = Query(None),
    mine: bool = False,
    page: int = Query(0, ge=0),
    current_user: AppUser = Depends(get_current_user)
):
    if mine:
        return await request_service.list_for_requester(current_user, project_id, status, page)
    return await request_service.list_for_project(current_user, project_id, status, page)

@router.get("/{request_id}", response_model=PaymentRequest)
async def get_request(request_id: str, current_user: AppUser = Depends(get_current_user)):
    return await request_service.get_for(current_user, request_id)

@router.get("/{request_id}/audit", response_model=List[AuditEvent])
async def get_request_audit(request_id: str, current_user: AppUser = Depends(get_current_user)):
    await request_service.get_for(current_user, request_id)
    return await audit_logger.get_audit_trail(request_id)

@router.post("/{request_id}/review", response_model=PaymentRequest)
async def review_request(request_id: str, current_user: AppUser = Depends(get_current_user)):
    return await request_service.review(current_user, request_id)

@router.post("/{request_id}/approve", response_model=PaymentRequest)
async def approve_request(
    request_id: str,
    body: Optional[ApproveBody] = None,
    current_user: AppUser = Depends(get_current_user)
):
    # Falls back to the approver's saved signature
    signature = (body.signature if body else None) or current_user.signature
    return await request_service.approve(current_user, request_id, signature)

@router.post("/{request_id}/reject", response_model=PaymentRequest)
async def reject_request(
    request_id: str,
    body: ReasonBody,
    current_user: AppUser = Depends(get_current_user)
):
    return await request_service.reject(current_user, request_id, body.reason)

@router.post("/{request_id}/force-reject", response_model=PaymentRequest)
async def force_reject_request(
    request_id: str,
    body: ReasonBody,
    current_user: AppUser = Depends(get_current_user)
):
    return await request_service.force_reject(current_user, request_id, body.reason)

@router.post("/{request_id}/cancel", response_model=PaymentRequest)
async def cancel_request(request_id: str, current_user: AppUser = Depends(get_current_user)):
    return await request_service.cancel(current_user, request_id)

@router.post("/{request_id}/resubmit", response_model=PaymentRequest, status_code=201)
async def resubmit_request(
    request_id: str,
    draft: RequestDraft,
    current_user: AppUser = Depends(get_current_user)
):
    return await request_service.resubmit(current_user, request_id, draft)
