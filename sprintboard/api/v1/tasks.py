from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict, List, Optional
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, field_validator

from ...database import get_db
from ...core.auth import Principal, get_current_principal
from ...services.task_service import TaskService, OPTIONAL_FIELDS
from ..deps import authorized_project, success

router = APIRouter()


class _BlankAsNone(BaseModel):
    """Empty strings in optional fields mean 'not set'"""

    @field_validator(*OPTIONAL_FIELDS, mode="before", check_fields=False)
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class TaskCreateRequest(_BlankAsNone):
    title: str
    description: Optional[str] = None
    type: Optional[str] = None
    priority: Optional[str] = None
    status_id: Optional[str] = None
    assignee: Optional[str] = None
    reporter: Optional[str] = None
    sprint_id: Optional[int] = None
    story_points: Optional[int] = None
    due_date: Optional[date] = None
    start_date: Optional[date] = None
    labels: Optional[List[str]] = None
    column_order: Optional[int] = None


class TaskUpdateRequest(_BlankAsNone):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    priority: Optional[str] = None
    assignee: Optional[str] = None
    reporter: Optional[str] = None
    sprint_id: Optional[int] = None
    story_points: Optional[int] = None
    due_date: Optional[date] = None
    start_date: Optional[date] = None
    labels: Optional[List[str]] = None
    column_order: Optional[int] = None


class TransitionRequest(BaseModel):
    status_id: str
    comment: Optional[str] = None


class MoveRequest(BaseModel):
    status_id: str
    column_order: Optional[int] = None
    sprint_id: Optional[int] = None


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    number: int
    key: str
    title: str
    description: Optional[str]
    type: str
    priority: str
    labels: Optional[List[str]]
    status: Dict[str, Any]
    status_version: int
    assignee: Optional[str]
    reporter: Optional[str]
    sprint_id: Optional[int]
    story_points: Optional[int]
    due_date: Optional[date]
    start_date: Optional[date]
    completed_at: Optional[datetime]
    column_order: int
    created_at: datetime
    updated_at: Optional[datetime]


def task_response(task) -> TaskResponse:
    return TaskResponse.model_validate(task)


@router.post("/projects/{project_id}/tasks", response_model=dict, status_code=201)
async def create_task(
    project_id: int,
    request: TaskCreateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Create a task; without a status it starts in the initial status"""

    await authorized_project(db, principal, project_id, write=True)

    fields = request.model_dump(exclude_unset=True, exclude={"title", "status_id"})
    task = await TaskService(db).create_task(
        project_id,
        title=request.title,
        status_id=request.status_id,
        actor=principal.id,
        **fields
    )

    return success(task_response(task), "Task created")


@router.get("/projects/{project_id}/tasks", response_model=dict)
async def list_tasks(
    project_id: int,
    sprint_id: Optional[int] = None,
    status_id: Optional[str] = None,
    assignee: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    await authorized_project(db, principal, project_id)

    tasks = await TaskService(db).list_tasks(
        project_id,
        sprint_id=sprint_id,
        status_id=status_id,
        assignee=assignee,
        limit=limit,
        offset=offset
    )

    return success([task_response(task) for task in tasks])


@router.get("/projects/{project_id}/backlog", response_model=dict)
async def list_backlog(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Tasks not planned into any sprint"""

    await authorized_project(db, principal, project_id)
    tasks = await TaskService(db).list_backlog(project_id)

    return success([task_response(task) for task in tasks])


@router.get("/tasks/{task_id}", response_model=dict)
async def get_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    task = await TaskService(db).get_task(task_id)
    await authorized_project(db, principal, task.project_id)

    return success(task_response(task))


@router.patch("/tasks/{task_id}", response_model=dict)
async def update_task(
    task_id: int,
    request: TaskUpdateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    service = TaskService(db)
    task = await service.get_task(task_id)
    await authorized_project(db, principal, task.project_id, write=True)

    task = await service.update_task(task_id, request.model_dump(exclude_unset=True), actor=principal.id)

    return success(task_response(task), "Task updated")


@router.post("/tasks/{task_id}/transition", response_model=dict)
async def transition_task(
    task_id: int,
    request: TransitionRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Move a task to another workflow status with an optional comment"""

    service = TaskService(db)
    task = await service.get_task(task_id)
    await authorized_project(db, principal, task.project_id, write=True)

    task = await service.transition_task(
        task_id,
        request.status_id,
        comment=request.comment,
        actor=principal.id
    )

    return success(task_response(task), "Task transitioned")


@router.post("/tasks/{task_id}/move", response_model=dict)
async def move_task(
    task_id: int,
    request: MoveRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Drag a task to any column, optionally changing its position or sprint"""

    service = TaskService(db)
    task = await service.get_task(task_id)
    await authorized_project(db, principal, task.project_id, write=True)

    options: Dict[str, Any] = {"column_order": request.column_order}
    if "sprint_id" in request.model_fields_set:
        options["sprint_id"] = request.sprint_id

    task = await service.move_task(task_id, request.status_id, actor=principal.id, **options)

    return success(task_response(task), "Task moved")
