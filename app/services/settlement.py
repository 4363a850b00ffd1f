import logging
from typing import Dict, List, NamedTuple, Optional, Sequence

from bson import ObjectId

from app.config import settings
from app.core.exceptions import AuthorizationError, ConflictError, ConsolidationError, NotFoundError
from app.database import db
from app.guardrails.audit_logger import audit_logger
from app.guardrails.permissions import can_access_settlement, permission_checker
from app.models.audit import ActionType
from app.models.project import Project
from app.models.request import ActorRef, PaymentRequest, RequestStatus
from app.models.settlement import Settlement
from app.models.user import AppUser
from app.tools.notification_tool import notification_tool
from app.workflow import state_machine
from app.workflow.state_machine import TransitionEvent

logger = logging.getLogger(__name__)

# Allowed drift between the recomputed item total and the stored request totals
TOTAL_TOLERANCE = 0.005

class GroupKey(NamedTuple):
    """Requests sharing every field are paid out as one settlement."""
    uid: str
    bank_name: str
    bank_account: str
    committee: str
    session: str

def group_key(request: PaymentRequest) -> GroupKey:
    return GroupKey(
        uid=request.requested_by.uid,
        bank_name=request.bank_name,
        bank_account=request.bank_account,
        committee=request.committee.value,
        session=request.session,
    )

def group_requests(requests: Sequence[PaymentRequest]) -> List[List[PaymentRequest]]:
    """Groups in first-seen order; members keep selection order."""
    groups: Dict[GroupKey, List[PaymentRequest]] = {}
    for request in requests:
        groups.setdefault(group_key(request), []).append(request)
    return list(groups.values())

def build_settlement(group: Sequence[PaymentRequest], project_id: str,
                     created_by: Optional[ActorRef] = None) -> Settlement:
    """
    Consolidates one payee group. Representative fields come from the first
    request; items and receipts are concatenated in selection order.
    """
    if not group:
        raise ConsolidationError("Cannot build a settlement from an empty group")
    first = group[0]
    key = group_key(first)
    for request in group:
        if group_key(request) != key:
            raise ConsolidationError(
                f"Request {request.id} does not share payee, bank, committee and session with {first.id}"
            )
        if not request.approval_signature or request.approved_by is None:
            raise ConsolidationError(
                f"Request {request.id} for payee {request.payee or request.requested_by.name} is missing approval",
                details={"requestId": request.id, "payee": request.payee},
            )

    items = [item.model_copy() for request in group for item in request.items]
    receipts = [receipt.model_copy() for request in group for receipt in request.receipts]
    total = sum(item.amount for item in items)
    stored_total = sum(request.total_amount for request in group)
    if abs(total - stored_total) > TOTAL_TOLERANCE:
        raise ConsolidationError(
            f"Item total {total:,.2f} does not match request totals {stored_total:,.2f} for payee {first.payee}",
            details={"requestIds": [r.id for r in group]},
        )

    return Settlement(
        project_id=project_id,
        request_ids=[request.id for request in group],
        payee=first.payee,
        phone=first.phone,
        bank_name=first.bank_name,
        bank_account=first.bank_account,
        session=first.session,
        committee=first.committee,
        items=items,
        total_amount=total,
        receipts=receipts,
        approved_by=first.approved_by,
        approval_signature=first.approval_signature,
        requested_by_signature=first.requested_by_signature,
        created_by=created_by,
    )

def plan_settlements(requests: Sequence[PaymentRequest], project_id: str,
                     created_by: Optional[ActorRef] = None,
                     max_writes: Optional[int] = None) -> List[Settlement]:
    """
    Builds every settlement of the batch without writing anything.
    Any failing group fails the whole batch.
    """
    if not requests:
        raise ConsolidationError("No requests selected")
    for request in requests:
        if request.status != RequestStatus.APPROVED:
            raise ConflictError(request.id, RequestStatus.APPROVED.value, request.status.value)

    groups = group_requests(requests)
    limit = settings.SETTLEMENT_MAX_WRITES if max_writes is None else max_writes
    writes = len(groups) + len(requests)
    if writes > limit:
        raise ConsolidationError(
            f"Too many requests selected ({writes} writes, limit {limit}); narrow your selection",
            details={"writes": writes, "limit": limit},
        )
    return [build_settlement(group, project_id, created_by) for group in groups]

class SettlementService:
    def __init__(self):
        pass

    async def consolidate(self, actor: AppUser, project_id: str, request_ids: Sequence[str]) -> List[Settlement]:
        """
        Settles the selected approved requests. The selection is read, and the
        settlements and every approved -> settled flip are written, in a single
        transaction that commits fully or not at all.
        """
        if not can_access_settlement(actor.role):
            logger.warning(f"User {actor.uid} ({actor.role.value}) denied settlement")
            raise AuthorizationError(f"Role {actor.role.value} cannot settle requests")
        if not request_ids:
            raise ConsolidationError("No requests selected")
        if len(set(request_ids)) != len(request_ids):
            raise ConsolidationError("A request was selected more than once")

        project = await self._member_project(actor, project_id)

        settled: List[PaymentRequest] = []
        async with await db.start_session() as session:
            async with session.start_transaction():
                requests = await self._load_selection(project, request_ids, session)
                settlements = plan_settlements(requests, project.id, actor.to_ref())
                by_id = {r.id: r for r in requests}
                for settlement in settlements:
                    settlement.id = str(ObjectId())
                    await db.settlements.create(settlement, session=session)
                    for request_id in settlement.request_ids:
                        request = by_id[request_id]
                        update = state_machine.settle_update(request, settlement.id)
                        settled.append(await db.requests.compare_and_set(
                            request.id, request.status, request.version, update, session=session
                        ))

        logger.info(
            f"Settled {len(settled)} requests into {len(settlements)} settlements "
            f"for project {project.id} by {actor.uid}"
        )
        await self._dispatch(settled, actor)
        return settlements

    async def _load_selection(self, project: Project, request_ids: Sequence[str], session) -> List[PaymentRequest]:
        requests = await db.requests.get_many(request_ids, session=session)
        found = {r.id for r in requests}
        missing = [i for i in request_ids if i not in found]
        if missing:
            raise NotFoundError("Request", ", ".join(missing))
        foreign = [r.id for r in requests if r.project_id != project.id]
        if foreign:
            raise ConsolidationError(
                f"Requests {', '.join(foreign)} belong to another project",
                details={"requestIds": foreign},
            )
        return requests

    async def _member_project(self, actor: AppUser, project_id: str) -> Project:
        project = await db.projects.get(project_id)
        if not project:
            raise NotFoundError("Project", project_id)
        denial = permission_checker.project_access_denial(actor, project)
        if denial is not None:
            logger.warning(f"User {actor.uid} ({actor.role.value}) denied settlement access: {denial}")
            raise AuthorizationError(denial)
        return project

    async def _dispatch(self, settled: List[PaymentRequest], actor: AppUser):
        for request in settled:
            event = TransitionEvent(
                request=request,
                from_status=RequestStatus.APPROVED,
                to_status=RequestStatus.SETTLED,
                actor=actor.to_ref(),
                action=ActionType.SETTLE,
                metadata={"settlementId": request.settlement_id},
            )
            try:
                await audit_logger.log_transition(event)
                await notification_tool.notify_transition(event)
            except Exception as e:
                logger.error(f"Post-settlement dispatch failed for request {request.id}: {e}")

    async def list_settlements(self, actor: AppUser, project_id: str, page: int = 0) -> List[Settlement]:
        await self._member_project(actor, project_id)
        return await db.settlements.list_by_project(
            project_id, skip=page * settings.PAGE_SIZE, limit=settings.PAGE_SIZE
        )

    async def get_settlement(self, actor: AppUser, settlement_id: str) -> Settlement:
        settlement = await db.settlements.get(settlement_id)
        if not settlement:
            raise NotFoundError("Settlement", settlement_id)
        await self._member_project(actor, settlement.project_id)
        return settlement

settlement_service = SettlementService()
