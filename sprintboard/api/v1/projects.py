from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict

from ...database import get_db
from ...core.auth import Principal, get_current_principal, authorize_project
from ...services.activity_service import ActivityService
from ...services.project_service import ProjectService
from ...services.workflow_service import WorkflowService
from ..deps import authorized_project, success

router = APIRouter()


class ProjectCreateRequest(BaseModel):
    key: str
    name: str
    methodology: Optional[str] = None
    description: Optional[str] = None


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    key: str
    name: str
    description: Optional[str]
    organization_id: str
    methodology: str
    task_counter: int
    workflow_version: int
    created_by: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]


class StatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status_id: str
    name: str
    category: str
    color: Optional[str]
    order: int
    is_initial: bool
    is_final: bool


class WorkflowResponse(BaseModel):
    project_id: int
    methodology: str
    version: int
    initial_status_id: Optional[str]
    statuses: List[StatusResponse]


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    task_id: Optional[int]
    sprint_id: Optional[int]
    from_status: Optional[str]
    to_status: Optional[str]
    from_category: Optional[str]
    to_category: Optional[str]
    actor: Optional[str]
    comment: Optional[str]
    details: Optional[Dict[str, Any]]
    created_at: datetime


@router.post("", response_model=dict, status_code=201)
async def create_project(
    request: ProjectCreateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Create a project seeded with its methodology's workflow and board"""

    authorize_project(principal, principal.organization_id, manage=True)

    project = await ProjectService(db).create_project(
        principal,
        key=request.key,
        name=request.name,
        methodology=request.methodology,
        description=request.description
    )

    return success(ProjectResponse.model_validate(project), "Project created")


@router.get("/{project_id}", response_model=dict)
async def get_project(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    project = await authorized_project(db, principal, project_id)
    return success(ProjectResponse.model_validate(project))


@router.get("/{project_id}/workflow", response_model=dict)
async def get_workflow(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Ordered workflow statuses of a project"""

    await authorized_project(db, principal, project_id)
    workflow = await WorkflowService(db).get_workflow(project_id)

    return success(WorkflowResponse.model_validate(workflow, from_attributes=True))


@router.get("/{project_id}/activity", response_model=dict)
async def get_activity(
    project_id: int,
    action: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Activity feed, newest first"""

    await authorized_project(db, principal, project_id)
    entries = await ActivityService(db).list_for_project(project_id, action=action, limit=limit, offset=offset)

    return success([ActivityResponse.model_validate(entry) for entry in entries])
