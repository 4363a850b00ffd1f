from typing import List
from pymongo import DESCENDING
from app.repositories.base import BaseRepository
from app.models.settlement import Settlement

class SettlementRepository(BaseRepository[Settlement]):
    async def list_by_project(self, project_id: str, skip: int = 0, limit: int = 0) -> List[Settlement]:
        return await self.list({"projectId": project_id}, skip=skip, limit=limit,
                               sort=[("createdAt", DESCENDING)])
