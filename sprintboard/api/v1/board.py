from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from pydantic import BaseModel, ConfigDict

from ...database import get_db
from ...core.auth import Principal, get_current_principal
from ...services.board_service import BoardService
from ...services.board_assembler import BoardAssembler
from ..deps import authorized_project, success
from .sprints import SprintResponse
from .tasks import task_response

router = APIRouter()


class ColumnCreateRequest(BaseModel):
    name: str
    status_id: Optional[str] = None
    category: Optional[str] = None
    color: Optional[str] = None
    wip_limit: Optional[int] = None


class ColumnUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    color: Optional[str] = None
    category: Optional[str] = None
    wip_limit: Optional[int] = None


class ColumnReorderRequest(BaseModel):
    ordered_ids: List[str]


class ColumnResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status_id: str
    name: str
    color: str
    category: str
    order: int
    wip_limit: Optional[int]


class BoardResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    name: str
    columns: List[ColumnResponse]


@router.get("/{project_id}/board", response_model=dict)
async def get_board(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Board columns, synchronized with the workflow"""

    await authorized_project(db, principal, project_id)
    board = await BoardService(db).get_board(project_id)

    return success(BoardResponse.model_validate(board))


@router.get("/{project_id}/board/full", response_model=dict)
async def get_full_board(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Board with tasks grouped by status, the active sprint and weighted progress"""

    await authorized_project(db, principal, project_id)
    full = await BoardAssembler(db).get_full_board(project_id)

    return success({
        "board": full.board,
        "tasks_by_status": {
            status_id: [task_response(task) for task in tasks]
            for status_id, tasks in full.tasks_by_status.items()
        },
        "unmapped_tasks": [task_response(task) for task in full.unmapped_tasks],
        "active_sprint": SprintResponse.model_validate(full.active_sprint) if full.active_sprint else None,
        "weighted_progress": full.weighted_progress,
    })


@router.post("/{project_id}/board/columns", response_model=dict, status_code=201)
async def create_column(
    project_id: int,
    request: ColumnCreateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Add a column, backed by a new workflow status"""

    await authorized_project(db, principal, project_id, manage=True)

    board = await BoardService(db).create_column(
        project_id,
        name=request.name,
        category=request.category,
        status_id=request.status_id,
        color=request.color,
        wip_limit=request.wip_limit,
        actor=principal.id
    )

    return success(BoardResponse.model_validate(board), "Column created")


@router.patch("/{project_id}/board/columns/reorder", response_model=dict)
async def reorder_columns(
    project_id: int,
    request: ColumnReorderRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    await authorized_project(db, principal, project_id, manage=True)

    board = await BoardService(db).reorder_columns(project_id, request.ordered_ids, actor=principal.id)

    return success(BoardResponse.model_validate(board), "Columns reordered")


@router.patch("/{project_id}/board/columns/{status_id}", response_model=dict)
async def update_column(
    project_id: int,
    status_id: str,
    request: ColumnUpdateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    await authorized_project(db, principal, project_id, manage=True)

    board = await BoardService(db).update_column(
        project_id,
        status_id,
        request.model_dump(exclude_unset=True),
        actor=principal.id
    )

    return success(BoardResponse.model_validate(board), "Column updated")


@router.delete("/{project_id}/board/columns/{status_id}", response_model=dict)
async def delete_column(
    project_id: int,
    status_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Delete a column and its workflow status; refused while tasks use it"""

    await authorized_project(db, principal, project_id, manage=True)

    board = await BoardService(db).delete_column(project_id, status_id, actor=principal.id)

    return success(BoardResponse.model_validate(board), "Column deleted")
