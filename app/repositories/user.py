from typing import Optional
from app.repositories.base import BaseRepository
from app.models.user import AppUser

class UserRepository(BaseRepository[AppUser]):
    async def get_by_uid(self, uid: str) -> Optional[AppUser]:
        return await self.get_by_field("uid", uid)
