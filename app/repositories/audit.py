from typing import List
from pymongo import ASCENDING
from app.repositories.base import BaseRepository
from app.models.audit import AuditEvent

class AuditRepository(BaseRepository[AuditEvent]):

    async def get_for_request(self, request_id: str) -> List[AuditEvent]:
        """Retrieve all audit events for a request, oldest first."""
        return await self.list({"requestId": request_id}, limit=0, sort=[("timestamp", ASCENDING)])
