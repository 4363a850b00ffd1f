from fastapi import APIRouter, Depends, HTTPException

from app.api.auth import get_admin_user, get_current_user
from app.core.exceptions import AuthorizationError
from app.database import db
from app.guardrails.permissions import can_access_dashboard, permission_checker
from app.models.project import Project, ProjectSettingsUpdate
from app.models.user import AppUser
from app.services.budget import ProjectBudget, budget_service

router = APIRouter(prefix="/api/projects", tags=["Projects"])

async def _get_project(project_id: str, current_user: AppUser) -> Project:
    project = await db.projects.get(project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    denial = permission_checker.project_access_denial(current_user, project)
    if denial is not None:
        raise AuthorizationError(denial)
    return project

@router.get("/{project_id}", response_model=Project)
async def get_project(project_id: str, current_user: AppUser = Depends(get_current_user)):
    return await _get_project(project_id, current_user)

@router.get("/{project_id}/budget", response_model=ProjectBudget)
async def get_project_budget(project_id: str, current_user: AppUser = Depends(get_current_user)):
    """Budget usage; usage is null when the project has no budget configured."""
    project = await _get_project(project_id, current_user)
    budget = await budget_service.project_budget(project)
    if not can_access_dashboard(current_user.role):
        # Requesters only see the overall signal
        budget.by_code = []
    return budget

@router.put("/{project_id}/settings", response_model=Project)
async def update_project_settings(
    project_id: str,
    changes: ProjectSettingsUpdate,
    current_user: AppUser = Depends(get_admin_user)
):
    await _get_project(project_id, current_user)
    return await db.projects.update_settings(project_id, changes)
