import logging
import uuid
from typing import List

from app.database import db
from app.models.audit import AuditEvent
from app.workflow.state_machine import TransitionEvent

logger = logging.getLogger(__name__)

class AuditLogger:
    def __init__(self):
        pass

    async def log_transition(self, event: TransitionEvent) -> AuditEvent:
        """
        Persist one committed transition.
        """
        request = event.request
        audit_event = AuditEvent(
            event_id=f"EVT-{uuid.uuid4().hex}",
            request_id=request.id,
            project_id=request.project_id,
            action_type=event.action,
            actor=event.actor,
            from_status=event.from_status.value if event.from_status else None,
            to_status=event.to_status.value,
            details=event.details,
            metadata=event.metadata,
        )

        if db.audit:
            await db.audit.create(audit_event)
        else:
            logger.warning("Audit DB not available, skipping log save.")

        logger.info(f"AUDIT [{event.action.value}]: {audit_event.from_status} -> {audit_event.to_status} ({request.id})")
        return audit_event

    async def get_audit_trail(self, request_id: str) -> List[AuditEvent]:
        if not db.audit:
            return []
        return await db.audit.get_for_request(request_id)

audit_logger = AuditLogger()
