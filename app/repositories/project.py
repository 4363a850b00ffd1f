from typing import Optional
from app.repositories.base import BaseRepository
from app.models.project import Project, ProjectSettingsUpdate

class ProjectRepository(BaseRepository[Project]):
    async def update_settings(self, project_id: str, changes: ProjectSettingsUpdate) -> Optional[Project]:
        update_data = {
            name: getattr(changes, name)
            for name in changes.model_fields_set
            if getattr(changes, name) is not None
        }
        if not update_data:
            return await self.get(project_id)
        return await self.update(project_id, update_data)
