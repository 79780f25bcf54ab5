from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from pydantic import BaseModel, ConfigDict

from ...database import get_db
from ...core.auth import Principal, get_current_principal
from ...services.workflow_service import WorkflowService
from ..deps import authorized_project, success
from .projects import StatusResponse

router = APIRouter()


class StatusCreateRequest(BaseModel):
    id: str
    category: str = "todo"
    name: Optional[str] = None
    color: Optional[str] = None
    is_initial: bool = False
    is_final: bool = False


class StatusUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    category: Optional[str] = None
    color: Optional[str] = None
    is_initial: Optional[bool] = None
    is_final: Optional[bool] = None


class StatusReorderRequest(BaseModel):
    ordered_ids: List[str]


async def _statuses(service: WorkflowService, project_id: int) -> list:
    return [StatusResponse.model_validate(s) for s in await service.list_statuses(project_id)]


@router.post("/{project_id}/workflow/statuses", response_model=dict, status_code=201)
async def add_status(
    project_id: int,
    request: StatusCreateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Append a workflow status; the board gains the matching column"""

    await authorized_project(db, principal, project_id, manage=True)

    service = WorkflowService(db)
    status = await service.add_status(
        project_id,
        status_id=request.id,
        category=request.category,
        name=request.name,
        color=request.color,
        is_initial=request.is_initial,
        is_final=request.is_final,
        actor=principal.id
    )

    return success(StatusResponse.model_validate(status), "Status added")


@router.patch("/{project_id}/workflow/statuses/reorder", response_model=dict)
async def reorder_statuses(
    project_id: int,
    request: StatusReorderRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    await authorized_project(db, principal, project_id, manage=True)

    service = WorkflowService(db)
    await service.reorder_statuses(project_id, request.ordered_ids, actor=principal.id)

    return success(await _statuses(service, project_id), "Statuses reordered")


@router.patch("/{project_id}/workflow/statuses/{status_id}", response_model=dict)
async def update_status(
    project_id: int,
    status_id: str,
    request: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    await authorized_project(db, principal, project_id, manage=True)

    status = await WorkflowService(db).update_status(
        project_id,
        status_id,
        request.model_dump(exclude_unset=True),
        actor=principal.id
    )

    return success(StatusResponse.model_validate(status), "Status updated")


@router.delete("/{project_id}/workflow/statuses/{status_id}", response_model=dict)
async def delete_status(
    project_id: int,
    status_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Delete a status no task is using"""

    await authorized_project(db, principal, project_id, manage=True)

    service = WorkflowService(db)
    await service.delete_status(project_id, status_id, actor=principal.id)

    return success(await _statuses(service, project_id), "Status deleted")
