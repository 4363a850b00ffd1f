from typing import Optional

from fastapi import Depends, Header, HTTPException

from app.database import db
from app.guardrails.permissions import can_manage_users
from app.models.user import AppUser

async def get_current_user(x_user_id: Optional[str] = Header(None)) -> AppUser:
    """
    Resolves the acting user for this call. The actor is passed explicitly to
    every service method; nothing is kept between requests.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user = await db.users.get_by_uid(x_user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user

async def get_admin_user(current_user: AppUser = Depends(get_current_user)) -> AppUser:
    if not can_manage_users(current_user.role):
        raise HTTPException(status_code=403, detail="Admin role required")
    return current_user
