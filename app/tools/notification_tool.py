import logging
from typing import List, Optional

from app.guardrails.permissions import reviewer_roles_for
from app.models.request import RequestStatus
from app.models.user import UserRole
from app.workflow.state_machine import TransitionEvent

logger = logging.getLogger(__name__)

# Statuses reported back to the requester
RESOLVED_STATUSES = {
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
    RequestStatus.FORCE_REJECTED,
    RequestStatus.SETTLED,
}

class NotificationTool:
    def __init__(self):
        pass

    def recipients_for(self, event: TransitionEvent, approver_roles: Optional[List[UserRole]] = None) -> List[str]:
        """
        New request -> reviewers of the committee; reviewed -> the approver pool;
        resolved -> the requester.
        """
        request = event.request
        if event.to_status == RequestStatus.PENDING:
            return [f"role:{role.value}" for role in reviewer_roles_for(request.committee)]
        if event.to_status == RequestStatus.REVIEWED:
            return [f"role:{role.value}" for role in (approver_roles or [])]
        if event.to_status in RESOLVED_STATUSES:
            return [request.requested_by.email or request.requested_by.uid]
        return []

    async def notify_transition(self, event: TransitionEvent, approver_roles: Optional[List[UserRole]] = None):
        recipients = self.recipients_for(event, approver_roles)
        if not recipients:
            return
        request = event.request
        subject = f"Request {request.id} is {event.to_status.value}"
        message = (
            f"{request.payee or request.requested_by.name} - {request.committee.value} - "
            f"{request.total_amount:,.0f} ({event.from_status.value if event.from_status else 'new'} -> {event.to_status.value})"
        )
        await self.send_notification(recipients, subject, message)

    async def send_notification(self, users: List[str], subject: str, message: str, channels: List[str] = ["email"]):
        """
        Routes notifications to users via specified channels.
        Delivery itself belongs to the mail service; here it is only logged.
        """
        for user in users:
            for channel in channels:
                if channel == "email":
                    await self._send_email(user, subject, message)

    async def _send_email(self, user: str, subject: str, body: str):
        logger.info(f"[EMAIL] To {user} | Subject: {subject}")

notification_tool = NotificationTool()
