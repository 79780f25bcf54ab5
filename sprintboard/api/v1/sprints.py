from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field

from ...database import get_db
from ...core.auth import Principal, get_current_principal
from ...services.sprint_service import SprintService, SprintStatus
from ..deps import authorized_project, success

router = APIRouter()


class SprintCreateRequest(BaseModel):
    name: str
    start_date: date
    end_date: date
    goal: Optional[str] = None
    capacity: Optional[int] = None
    require_goal: Optional[bool] = None
    require_estimates: Optional[bool] = None
    enforce_capacity: Optional[bool] = None


class SprintUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    goal: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    capacity: Optional[int] = None


class SprintStartRequest(BaseModel):
    skip_validation: bool = False
    participants: List[str] = Field(default_factory=list)
    justification: Optional[str] = None


class SprintCompleteRequest(BaseModel):
    move_incomplete_to_backlog: bool = False
    move_to_sprint_id: Optional[int] = None


class SprintResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    number: int
    name: str
    goal: Optional[str]
    start_date: date
    end_date: date
    status: str
    capacity: Optional[int]
    committed_points: int
    completed_points: Optional[int]
    over_capacity: bool
    require_goal: bool
    require_estimates: bool
    enforce_capacity: bool
    participants: Optional[List[str]]
    started_by: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_by: Optional[str]
    created_at: datetime


@router.post("/projects/{project_id}/sprints", response_model=dict, status_code=201)
async def create_sprint(
    project_id: int,
    request: SprintCreateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Create a sprint in planning status"""

    await authorized_project(db, principal, project_id, write=True)

    sprint = await SprintService(db).create_sprint(
        project_id=project_id,
        name=request.name,
        start_date=request.start_date,
        end_date=request.end_date,
        goal=request.goal,
        capacity=request.capacity,
        require_goal=request.require_goal,
        require_estimates=request.require_estimates,
        enforce_capacity=request.enforce_capacity,
        creator_id=principal.id
    )

    return success(SprintResponse.model_validate(sprint), "Sprint created")


@router.get("/projects/{project_id}/sprints", response_model=dict)
async def list_sprints(
    project_id: int,
    status: Optional[SprintStatus] = None,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Get sprints for a project"""

    await authorized_project(db, principal, project_id)

    sprints = await SprintService(db).list_project_sprints(
        project_id=project_id,
        status=status,
        limit=limit,
        offset=offset
    )

    return success([SprintResponse.model_validate(sprint) for sprint in sprints])


@router.get("/sprints/{sprint_id}", response_model=dict)
async def get_sprint(
    sprint_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Get sprint details"""

    sprint = await SprintService(db).get_sprint(sprint_id)
    await authorized_project(db, principal, sprint.project_id)

    return success(SprintResponse.model_validate(sprint))


@router.patch("/sprints/{sprint_id}", response_model=dict)
async def update_sprint(
    sprint_id: int,
    request: SprintUpdateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    service = SprintService(db)
    sprint = await service.get_sprint(sprint_id)
    await authorized_project(db, principal, sprint.project_id, write=True)

    sprint = await service.update_sprint(sprint_id, request.model_dump(exclude_unset=True), actor=principal.id)

    return success(SprintResponse.model_validate(sprint), "Sprint updated")


@router.delete("/sprints/{sprint_id}", response_model=dict)
async def delete_sprint(
    sprint_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Delete an empty planning sprint"""

    service = SprintService(db)
    sprint = await service.get_sprint(sprint_id)
    await authorized_project(db, principal, sprint.project_id, manage=True)

    await service.delete_sprint(sprint_id, actor=principal.id)

    return success({"id": sprint_id}, "Sprint deleted")


@router.post("/sprints/{sprint_id}/start", response_model=dict)
async def start_sprint(
    sprint_id: int,
    request: SprintStartRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Start a planning sprint; at most one sprint per project is active"""

    service = SprintService(db)
    sprint = await service.get_sprint(sprint_id)
    await authorized_project(db, principal, sprint.project_id, manage=True)

    sprint = await service.start_sprint(
        sprint_id,
        skip_validation=request.skip_validation,
        participants=request.participants,
        justification=request.justification,
        actor=principal.id
    )

    return success(SprintResponse.model_validate(sprint), "Sprint started")


@router.post("/sprints/{sprint_id}/complete", response_model=dict)
async def complete_sprint(
    sprint_id: int,
    request: SprintCompleteRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Complete the active sprint and record its velocity"""

    service = SprintService(db)
    sprint = await service.get_sprint(sprint_id)
    await authorized_project(db, principal, sprint.project_id, manage=True)

    sprint = await service.complete_sprint(
        sprint_id,
        move_incomplete_to_backlog=request.move_incomplete_to_backlog,
        move_to_sprint_id=request.move_to_sprint_id,
        actor=principal.id
    )

    return success(SprintResponse.model_validate(sprint), "Sprint completed")


@router.post("/sprints/{sprint_id}/cancel", response_model=dict)
async def cancel_sprint(
    sprint_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    service = SprintService(db)
    sprint = await service.get_sprint(sprint_id)
    await authorized_project(db, principal, sprint.project_id, manage=True)

    sprint = await service.cancel_sprint(sprint_id, actor=principal.id)

    return success(SprintResponse.model_validate(sprint), "Sprint cancelled")
