from typing import Dict, FrozenSet, List, Optional, Union
import logging
from app.models.project import Project
from app.models.request import Committee, PaymentRequest, RequestStatus
from app.models.user import AppUser, UserRole

logger = logging.getLogger(__name__)

ALL_COMMITTEES = frozenset(Committee)
NO_COMMITTEES: FrozenSet[Committee] = frozenset()

# Role -> committees whose pending requests it may review
REVIEW_SCOPE: Dict[UserRole, FrozenSet[Committee]] = {
    UserRole.USER: NO_COMMITTEES,
    UserRole.FINANCE_OPS: frozenset({Committee.OPERATIONS}),
    UserRole.FINANCE_PREP: ALL_COMMITTEES,
    UserRole.APPROVER_OPS: NO_COMMITTEES,
    UserRole.APPROVER_PREP: NO_COMMITTEES,
    UserRole.SESSION_DIRECTOR: NO_COMMITTEES,
    UserRole.LOGISTIC_DIRECTOR: NO_COMMITTEES,
    UserRole.EXECUTIVE: NO_COMMITTEES,
    UserRole.ADMIN: ALL_COMMITTEES,
}

# Role -> committees whose reviewed requests it may approve or reject
APPROVAL_SCOPE: Dict[UserRole, FrozenSet[Committee]] = {
    UserRole.USER: NO_COMMITTEES,
    UserRole.FINANCE_OPS: NO_COMMITTEES,
    UserRole.FINANCE_PREP: NO_COMMITTEES,
    UserRole.APPROVER_OPS: frozenset({Committee.OPERATIONS}),
    UserRole.APPROVER_PREP: frozenset({Committee.PREPARATION}),
    UserRole.SESSION_DIRECTOR: frozenset({Committee.OPERATIONS}),
    UserRole.LOGISTIC_DIRECTOR: frozenset({Committee.PREPARATION}),
    UserRole.EXECUTIVE: ALL_COMMITTEES,
    UserRole.ADMIN: ALL_COMMITTEES,
}

DIRECTOR_ROLES = frozenset({UserRole.SESSION_DIRECTOR, UserRole.LOGISTIC_DIRECTOR})
TOP_LEVEL_ROLES = frozenset({UserRole.EXECUTIVE, UserRole.ADMIN})
# May give final approval above the director threshold
SENIOR_APPROVER_ROLES = DIRECTOR_ROLES | TOP_LEVEL_ROLES
FORCE_REJECT_ROLES = frozenset({UserRole.EXECUTIVE, UserRole.ADMIN})
SETTLEMENT_ROLES = frozenset({
    UserRole.FINANCE_OPS, UserRole.FINANCE_PREP,
    UserRole.APPROVER_OPS, UserRole.APPROVER_PREP,
    UserRole.SESSION_DIRECTOR, UserRole.LOGISTIC_DIRECTOR,
    UserRole.EXECUTIVE, UserRole.ADMIN,
})
DASHBOARD_ROLES = frozenset({
    UserRole.FINANCE_OPS, UserRole.FINANCE_PREP,
    UserRole.EXECUTIVE, UserRole.ADMIN,
})

RoleLike = Union[UserRole, str]

def _as_role(role: RoleLike) -> Optional[UserRole]:
    try:
        return UserRole(role)
    except ValueError:
        logger.warning(f"Unknown role {role}")
        return None

def _as_committee(committee) -> Optional[Committee]:
    try:
        return Committee(committee)
    except ValueError:
        logger.warning(f"Unknown committee {committee}")
        return None

def is_director_role(role: RoleLike) -> bool:
    return _as_role(role) in DIRECTOR_ROLES

def can_review(role: RoleLike, committee) -> bool:
    """pending -> reviewed for requests of the committee."""
    role_enum, committee_enum = _as_role(role), _as_committee(committee)
    if role_enum is None or committee_enum is None:
        return False
    return committee_enum in REVIEW_SCOPE[role_enum]

def can_approve_committee(role: RoleLike, committee) -> bool:
    """Approver authority over a committee, before any amount rule."""
    role_enum, committee_enum = _as_role(role), _as_committee(committee)
    if role_enum is None or committee_enum is None:
        return False
    return committee_enum in APPROVAL_SCOPE[role_enum]

def can_final_approve(
    role: RoleLike,
    committee,
    amount: float,
    threshold: float,
    is_director_request: bool = False,
) -> bool:
    """
    reviewed -> approved.
    Requests filed by a director may only be approved by executive/admin.
    Above the threshold, ordinary committee approvers are blocked.
    """
    if not can_approve_committee(role, committee):
        return False
    role_enum = _as_role(role)
    if is_director_request:
        return role_enum in TOP_LEVEL_ROLES
    if amount > threshold:
        return role_enum in SENIOR_APPROVER_ROLES
    return True

def can_reject(role: RoleLike, committee, status) -> bool:
    """Reviewer rules while pending, approver rules once reviewed. No amount rule."""
    try:
        status_enum = RequestStatus(status)
    except ValueError:
        return False
    if status_enum == RequestStatus.PENDING:
        return can_review(role, committee)
    if status_enum == RequestStatus.REVIEWED:
        return can_approve_committee(role, committee)
    return False

def can_force_reject(role: RoleLike) -> bool:
    return _as_role(role) in FORCE_REJECT_ROLES

def can_access_settlement(role: RoleLike) -> bool:
    return _as_role(role) in SETTLEMENT_ROLES

def can_access_dashboard(role: RoleLike) -> bool:
    return _as_role(role) in DASHBOARD_ROLES

def can_manage_users(role: RoleLike) -> bool:
    return _as_role(role) == UserRole.ADMIN

def reviewer_roles_for(committee) -> List[UserRole]:
    """Roles notified when a request of the committee is submitted."""
    return [role for role in UserRole if can_review(role, committee)]

def approver_roles_for(committee, amount: float, threshold: float, is_director_request: bool = False) -> List[UserRole]:
    """Roles able to give final approval to a reviewed request."""
    return [
        role for role in UserRole
        if can_final_approve(role, committee, amount, threshold, is_director_request)
    ]


class PermissionChecker:
    """
    Binds the role matrix to an explicit actor and request.
    Self-action (actor filed the request) denies every check.
    """

    def is_self_action(self, actor: AppUser, request: PaymentRequest) -> bool:
        return actor.uid == request.requested_by.uid

    def project_access_denial(self, actor: AppUser, project: Project) -> Optional[str]:
        """Every read and write is scoped to a project the actor belongs to. Admins see all."""
        if actor.role == UserRole.ADMIN:
            return None
        if project.id in actor.project_ids or actor.uid in project.member_uids:
            return None
        return f"User {actor.uid} is not a member of project {project.id}"

    def review_denial(self, actor: AppUser, request: PaymentRequest) -> Optional[str]:
        if self.is_self_action(actor, request):
            return "You cannot review your own request"
        if not can_review(actor.role, request.committee):
            return f"Role {actor.role.value} cannot review {request.committee.value} requests"
        return None

    def final_approval_denial(
        self,
        actor: AppUser,
        request: PaymentRequest,
        threshold: float,
        requester_role: Optional[RoleLike] = None,
    ) -> Optional[str]:
        """
        Returns the reason final approval is refused, or None when allowed.
        `requester_role` must be resolved from the requester's current profile.
        """
        if self.is_self_action(actor, request):
            return "You cannot approve your own request"
        if not can_approve_committee(actor.role, request.committee):
            return f"Role {actor.role.value} cannot approve {request.committee.value} requests"
        director_request = requester_role is not None and is_director_role(requester_role)
        if can_final_approve(actor.role, request.committee, request.total_amount, threshold, director_request):
            return None
        if director_request:
            return "Requests filed by a director require executive approval"
        return f"Director approval required for amounts above {threshold:,.0f}"

    def reject_denial(self, actor: AppUser, request: PaymentRequest) -> Optional[str]:
        if self.is_self_action(actor, request):
            return "You cannot reject your own request"
        if not can_reject(actor.role, request.committee, request.status):
            return f"Role {actor.role.value} cannot reject {request.status.value} {request.committee.value} requests"
        return None

    def force_reject_denial(self, actor: AppUser, request: PaymentRequest) -> Optional[str]:
        if self.is_self_action(actor, request):
            return "You cannot force-reject your own request"
        if not can_force_reject(actor.role):
            return f"Role {actor.role.value} cannot force-reject requests"
        return None

    def check_review(self, actor: AppUser, request: PaymentRequest) -> bool:
        return self._allowed(actor, "review", self.review_denial(actor, request))

    def check_final_approve(self, actor: AppUser, request: PaymentRequest, threshold: float,
                            requester_role: Optional[RoleLike] = None) -> bool:
        return self._allowed(actor, "approve", self.final_approval_denial(actor, request, threshold, requester_role))

    def check_reject(self, actor: AppUser, request: PaymentRequest) -> bool:
        return self._allowed(actor, "reject", self.reject_denial(actor, request))

    def check_force_reject(self, actor: AppUser, request: PaymentRequest) -> bool:
        return self._allowed(actor, "force_reject", self.force_reject_denial(actor, request))

    def _allowed(self, actor: AppUser, action: str, denial: Optional[str]) -> bool:
        if denial is None:
            return True
        logger.warning(f"User {actor.uid} ({actor.role.value}) denied {action}: {denial}")
        return False

permission_checker = PermissionChecker()
