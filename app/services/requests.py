import logging
from typing import Any, Dict, List, Optional, Tuple

from app.config import settings
from app.core.exceptions import AuthorizationError, NotFoundError
from app.database import db
from app.guardrails.audit_logger import audit_logger
from app.guardrails.permissions import approver_roles_for, is_director_role, permission_checker
from app.models.audit import ActionType
from app.models.project import Project
from app.models.request import PaymentRequest, RequestDraft, RequestStatus
from app.models.user import AppUser, UserRole
from app.services.budget import budget_service
from app.tools.notification_tool import notification_tool
from app.workflow import state_machine
from app.workflow.state_machine import Transition, TransitionEvent

logger = logging.getLogger(__name__)

class RequestService:
    """
    Entry point for every request transition. Each call takes the acting user
    explicitly, re-reads the request, checks permissions and then writes with
    a compare-and-swap on (status, version).
    """

    def __init__(self):
        pass

    # ---- lookups ----

    async def get(self, request_id: str) -> PaymentRequest:
        request = await db.requests.get(request_id)
        if not request:
            raise NotFoundError("Request", request_id)
        return request

    async def get_for(self, actor: AppUser, request_id: str) -> PaymentRequest:
        """Request as seen by the actor; members of its project only."""
        request, _ = await self._load(actor, request_id)
        return request

    async def _project(self, project_id: str) -> Project:
        project = await db.projects.get(project_id)
        if not project:
            raise NotFoundError("Project", project_id)
        return project

    async def _member_project(self, actor: AppUser, project_id: str) -> Project:
        project = await self._project(project_id)
        self._ensure_member(actor, project)
        return project

    async def _load(self, actor: AppUser, request_id: str) -> Tuple[PaymentRequest, Project]:
        request = await self.get(request_id)
        project = await self._member_project(actor, request.project_id)
        return request, project

    async def _requester_role(self, request: PaymentRequest) -> Optional[UserRole]:
        """Resolved from the requester's current profile, not from the request."""
        requester = await db.users.get_by_uid(request.requested_by.uid)
        return requester.role if requester else None

    async def list_for_project(self, actor: AppUser, project_id: str,
                               status: Optional[List[RequestStatus]] = None,
                               page: int = 0) -> List[PaymentRequest]:
        await self._member_project(actor, project_id)
        return await db.requests.list_by_project(
            project_id, statuses=status,
            skip=page * settings.PAGE_SIZE, limit=settings.PAGE_SIZE,
        )

    async def list_for_requester(self, actor: AppUser, project_id: str,
                                 status: Optional[List[RequestStatus]] = None,
                                 page: int = 0) -> List[PaymentRequest]:
        await self._member_project(actor, project_id)
        return await db.requests.list_by_project(
            project_id, statuses=status, requester_uid=actor.uid,
            skip=page * settings.PAGE_SIZE, limit=settings.PAGE_SIZE,
        )

    # ---- creation ----

    def _fill_from_profile(self, draft: RequestDraft, actor: AppUser) -> RequestDraft:
        """Payee and bank details default to the requester's profile."""
        defaults = {
            "payee": actor.display_name or actor.name,
            "phone": actor.phone,
            "bank_name": actor.bank_name,
            "bank_account": actor.bank_account,
            "requested_by_signature": actor.signature,
        }
        missing = {k: v for k, v in defaults.items() if not getattr(draft, k) and v}
        return draft.model_copy(update=missing) if missing else draft

    def _ensure_member(self, actor: AppUser, project: Project):
        self._authorize(actor, "access", permission_checker.project_access_denial(actor, project))

    async def create_request(self, actor: AppUser, project_id: str, draft: RequestDraft) -> PaymentRequest:
        project = await self._member_project(actor, project_id)
        request = state_machine.build_request(self._fill_from_profile(draft, actor), project.id, actor.to_ref())
        request = await db.requests.create(request)
        logger.info(f"Request {request.id} created by {actor.uid} ({request.total_amount:,.0f})")
        await self._dispatch(TransitionEvent(
            request=request,
            from_status=None,
            to_status=RequestStatus.PENDING,
            actor=actor.to_ref(),
            action=ActionType.CREATE,
        ))
        return request

    async def resubmit(self, actor: AppUser, request_id: str, draft: RequestDraft) -> PaymentRequest:
        """
        Creates a new pending request linked to a rejected, cancelled or
        force-rejected one. The original record is never modified.
        """
        original, _ = await self._load(actor, request_id)
        if original.requested_by.uid != actor.uid:
            raise AuthorizationError("Only the original requester can resubmit")
        request = state_machine.build_resubmission(original, self._fill_from_profile(draft, actor), actor.to_ref())
        request = await db.requests.create(request)
        logger.info(f"Request {original.id} resubmitted as {request.id} by {actor.uid}")
        await self._dispatch(TransitionEvent(
            request=request,
            from_status=None,
            to_status=RequestStatus.PENDING,
            actor=actor.to_ref(),
            action=ActionType.RESUBMIT,
            metadata={"originalRequestId": original.id},
        ))
        return request

    # ---- transitions ----

    async def review(self, actor: AppUser, request_id: str) -> PaymentRequest:
        request, project = await self._load(actor, request_id)
        state_machine.ensure_status(request, Transition.REVIEW)
        self._authorize(actor, "review", permission_checker.review_denial(actor, request))
        update = state_machine.review_update(request, actor.to_ref())

        requester_role = await self._requester_role(request)
        pool = approver_roles_for(
            request.committee, request.total_amount,
            project.director_approval_threshold,
            requester_role is not None and is_director_role(requester_role),
        )
        return await self._commit(request, Transition.REVIEW, update, actor, approver_roles=pool)

    async def approve(self, actor: AppUser, request_id: str, signature: Optional[str]) -> PaymentRequest:
        request, project = await self._load(actor, request_id)
        state_machine.ensure_status(request, Transition.APPROVE)
        requester_role = await self._requester_role(request)
        self._authorize(actor, "approve", permission_checker.final_approval_denial(
            actor, request, project.director_approval_threshold, requester_role
        ))
        update = state_machine.approve_update(request, actor.to_ref(), signature)

        usage = await budget_service.usage_for_project(project)
        if usage and usage.exceeded:
            logger.warning(f"Approving request {request.id} while project {project.id} budget is at {usage.percent}%")
        return await self._commit(request, Transition.APPROVE, update, actor)

    async def reject(self, actor: AppUser, request_id: str, reason: Optional[str]) -> PaymentRequest:
        request, _ = await self._load(actor, request_id)
        state_machine.ensure_status(request, Transition.REJECT)
        self._authorize(actor, "reject", permission_checker.reject_denial(actor, request))
        update = state_machine.reject_update(request, actor.to_ref(), reason)
        return await self._commit(request, Transition.REJECT, update, actor, details=update["rejection_reason"])

    async def force_reject(self, actor: AppUser, request_id: str, reason: Optional[str]) -> PaymentRequest:
        request, _ = await self._load(actor, request_id)
        state_machine.ensure_status(request, Transition.FORCE_REJECT)
        self._authorize(actor, "force_reject", permission_checker.force_reject_denial(actor, request))
        update = state_machine.force_reject_update(request, actor.to_ref(), reason)
        return await self._commit(request, Transition.FORCE_REJECT, update, actor, details=update["rejection_reason"])

    async def cancel(self, actor: AppUser, request_id: str) -> PaymentRequest:
        request = await self.get(request_id)
        state_machine.ensure_status(request, Transition.CANCEL)
        if request.requested_by.uid != actor.uid:
            self._authorize(actor, "cancel", "Only the requester can cancel a request")
        update = state_machine.cancel_update(request)
        return await self._commit(request, Transition.CANCEL, update, actor)

    # ---- helpers ----

    def _authorize(self, actor: AppUser, action: str, denial: Optional[str]):
        if denial is not None:
            logger.warning(f"User {actor.uid} ({actor.role.value}) denied {action}: {denial}")
            raise AuthorizationError(denial)

    async def _commit(self, request: PaymentRequest, transition: Transition, update: Dict[str, Any],
                      actor: AppUser, details: str = "", approver_roles: Optional[List[UserRole]] = None) -> PaymentRequest:
        updated = await db.requests.compare_and_set(request.id, request.status, request.version, update)
        logger.info(f"Request {request.id} {request.status.value} -> {updated.status.value} by {actor.uid}")
        await self._dispatch(TransitionEvent(
            request=updated,
            from_status=request.status,
            to_status=updated.status,
            actor=actor.to_ref(),
            action=state_machine.ACTION_TYPES[transition],
            details=details,
        ), approver_roles=approver_roles)
        return updated

    async def _dispatch(self, event: TransitionEvent, approver_roles: Optional[List[UserRole]] = None):
        """The transition is already committed; collaborator failures are logged only."""
        try:
            await audit_logger.log_transition(event)
            await notification_tool.notify_transition(event, approver_roles)
        except Exception as e:
            logger.error(f"Post-transition dispatch failed for request {event.request.id}: {e}")

request_service = RequestService()
