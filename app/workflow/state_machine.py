"""
Request lifecycle.

    pending -> reviewed -> approved -> settled
    pending | reviewed -> rejected
    approved -> force_rejected
    pending -> cancelled

rejected, cancelled and force_rejected requests may be resubmitted, which
creates a new record linked through ``original_request_id``.

Functions here are pure: they validate the input of a transition and return
the field update to persist. Permission checks and the compare-and-swap write
live in ``app.services.requests``.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from app.core.exceptions import ConflictError, ValidationError
from app.models.audit import ActionType
from app.models.request import (
    ActorRef, PaymentRequest, RequestDraft, RequestItem, RequestStatus,
    RESUBMITTABLE_STATUSES,
)

class Transition(str, Enum):
    REVIEW = "review"
    APPROVE = "approve"
    REJECT = "reject"
    FORCE_REJECT = "force_reject"
    CANCEL = "cancel"
    SETTLE = "settle"

# Transition -> (allowed pre-states, post-state)
TRANSITIONS: Dict[Transition, Tuple[FrozenSet[RequestStatus], RequestStatus]] = {
    Transition.REVIEW: (frozenset({RequestStatus.PENDING}), RequestStatus.REVIEWED),
    Transition.APPROVE: (frozenset({RequestStatus.REVIEWED}), RequestStatus.APPROVED),
    Transition.REJECT: (frozenset({RequestStatus.PENDING, RequestStatus.REVIEWED}), RequestStatus.REJECTED),
    Transition.FORCE_REJECT: (frozenset({RequestStatus.APPROVED}), RequestStatus.FORCE_REJECTED),
    Transition.CANCEL: (frozenset({RequestStatus.PENDING}), RequestStatus.CANCELLED),
    Transition.SETTLE: (frozenset({RequestStatus.APPROVED}), RequestStatus.SETTLED),
}

ACTION_TYPES = {
    Transition.REVIEW: ActionType.REVIEW,
    Transition.APPROVE: ActionType.APPROVE,
    Transition.REJECT: ActionType.REJECT,
    Transition.FORCE_REJECT: ActionType.FORCE_REJECT,
    Transition.CANCEL: ActionType.CANCEL,
    Transition.SETTLE: ActionType.SETTLE,
}


@dataclass
class TransitionEvent:
    """A committed transition, handed to the notifier and the audit trail."""
    request: PaymentRequest
    from_status: Optional[RequestStatus]
    to_status: RequestStatus
    actor: ActorRef
    action: ActionType
    details: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    """Check whether any transition leads from current to target."""
    return any(current in sources and target == dest for sources, dest in TRANSITIONS.values())

def ensure_status(request: PaymentRequest, transition: Transition) -> RequestStatus:
    """
    Returns the post-state, or raises ConflictError when the request is no
    longer in a state the transition accepts.
    """
    sources, target = TRANSITIONS[transition]
    if request.status not in sources:
        expected = "|".join(sorted(s.value for s in sources))
        raise ConflictError(request.id, expected, request.status.value)
    return target

def validate_items(items: List[RequestItem]) -> float:
    """Validates the item list and returns the recomputed total."""
    if not items:
        raise ValidationError("At least one item is required")
    problems = {}
    for index, item in enumerate(items):
        if item.amount is None or not math.isfinite(item.amount) or item.amount <= 0:
            problems[f"items[{index}].amount"] = "must be a positive finite number"
        if item.budget_code is None or not str(item.budget_code).strip():
            problems[f"items[{index}].budgetCode"] = "is required"
    if problems:
        raise ValidationError("Invalid request items", details=problems)
    return sum(item.amount for item in items)

def _require_text(value: Optional[str], message: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(message)
    return value.strip()

def build_request(
    draft: RequestDraft,
    project_id: str,
    requester: ActorRef,
    original_request_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PaymentRequest:
    """New pending request. The client total is ignored and recomputed from items."""
    total = validate_items(draft.items)
    return PaymentRequest(
        project_id=project_id,
        status=RequestStatus.PENDING,
        committee=draft.committee,
        payee=draft.payee,
        phone=draft.phone,
        bank_name=draft.bank_name,
        bank_account=draft.bank_account,
        date=draft.date,
        session=draft.session,
        items=[item.model_copy() for item in draft.items],
        total_amount=total,
        receipts=[receipt.model_copy() for receipt in draft.receipts],
        comments=draft.comments,
        requested_by=requester,
        requested_by_signature=draft.requested_by_signature,
        original_request_id=original_request_id,
        created_at=now or datetime.utcnow(),
    )

def build_resubmission(
    original: PaymentRequest,
    draft: RequestDraft,
    requester: ActorRef,
    now: Optional[datetime] = None,
) -> PaymentRequest:
    """New request linked to a closed one. The original is left untouched."""
    if original.requested_by.uid != requester.uid:
        raise ValidationError("Only the original requester can resubmit")
    if original.status not in RESUBMITTABLE_STATUSES:
        raise ConflictError(
            original.id,
            "|".join(sorted(s.value for s in RESUBMITTABLE_STATUSES)),
            original.status.value,
        )
    return build_request(draft, original.project_id, requester, original_request_id=original.id, now=now)

def review_update(request: PaymentRequest, reviewer: ActorRef, now: Optional[datetime] = None) -> Dict[str, Any]:
    target = ensure_status(request, Transition.REVIEW)
    return {
        "status": target,
        "reviewed_by": reviewer,
        "reviewed_at": now or datetime.utcnow(),
    }

def approve_update(request: PaymentRequest, approver: ActorRef, signature: Optional[str],
                   now: Optional[datetime] = None) -> Dict[str, Any]:
    target = ensure_status(request, Transition.APPROVE)
    signature = _require_text(signature, "An approval signature is required")
    return {
        "status": target,
        "approved_by": approver,
        "approval_signature": signature,
        "approved_at": now or datetime.utcnow(),
        "rejection_reason": None,
    }

def reject_update(request: PaymentRequest, actor: ActorRef, reason: Optional[str],
                  now: Optional[datetime] = None) -> Dict[str, Any]:
    """approvedBy records whoever acted last, including the rejecting actor."""
    target = ensure_status(request, Transition.REJECT)
    reason = _require_text(reason, "A rejection reason is required")
    return {
        "status": target,
        "approved_by": actor,
        "approval_signature": None,
        "approved_at": now or datetime.utcnow(),
        "rejection_reason": reason,
    }

def force_reject_update(request: PaymentRequest, actor: ActorRef, reason: Optional[str],
                        now: Optional[datetime] = None) -> Dict[str, Any]:
    target = ensure_status(request, Transition.FORCE_REJECT)
    reason = _require_text(reason, "A reason is required to retract an approval")
    return {
        "status": target,
        "approved_by": actor,
        "approval_signature": None,
        "approved_at": now or datetime.utcnow(),
        "rejection_reason": reason,
    }

def cancel_update(request: PaymentRequest) -> Dict[str, Any]:
    target = ensure_status(request, Transition.CANCEL)
    return {"status": target}

def settle_update(request: PaymentRequest, settlement_id: str) -> Dict[str, Any]:
    target = ensure_status(request, Transition.SETTLE)
    return {"status": target, "settlement_id": settlement_id}

def apply_update(request: PaymentRequest, update: Dict[str, Any]) -> PaymentRequest:
    """In-memory view of the request after the update and its version bump."""
    return request.model_copy(update={**update, "version": request.version + 1})
