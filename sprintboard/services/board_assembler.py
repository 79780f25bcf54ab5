from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field

from ..models.task import Task
from ..utils.logging import get_logger
from .analytics_service import calculate_weighted_progress
from .board_service import BoardService
from .project_service import ProjectService
from .sprint_service import SprintService
from .task_service import TaskService
from .workflow_service import WorkflowService

logger = get_logger(__name__)


class ColumnView(BaseModel):
    status_id: str
    name: str
    color: str
    category: str
    order: int
    wip_limit: Optional[int] = None
    task_count: int = 0
    over_wip_limit: bool = False


class BoardView(BaseModel):
    id: int
    project_id: int
    name: str
    columns: List[ColumnView]


class FullBoard(BaseModel):
    board: BoardView
    tasks_by_status: Dict[str, List[Any]]
    unmapped_tasks: List[Any] = Field(default_factory=list)
    active_sprint: Optional[Any] = None
    weighted_progress: int = 0


class BoardAssembler:
    """Builds the full board view: columns, tasks grouped by status, sprint and progress"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_full_board(self, project_id: int) -> FullBoard:
        await ProjectService(self.db).get_project(project_id)

        board = await BoardService(self.db).get_board(project_id)
        statuses = await WorkflowService(self.db).list_statuses(project_id)
        active_sprint = await SprintService(self.db).get_active_sprint(project_id)

        tasks = await TaskService(self.db).list_tasks(
            project_id,
            sprint_id=active_sprint.id if active_sprint else None,
        )

        tasks_by_status: Dict[str, List[Task]] = {column.status_id: [] for column in board.columns}
        unmapped: List[Task] = []
        for task in sorted(tasks, key=lambda t: (t.column_order, t.id)):
            if task.status_id in tasks_by_status:
                tasks_by_status[task.status_id].append(task)
            else:
                unmapped.append(task)

        columns = []
        for column in board.columns:
            count = len(tasks_by_status[column.status_id])
            columns.append(
                ColumnView(
                    status_id=column.status_id,
                    name=column.name,
                    color=column.color,
                    category=column.category,
                    order=column.order,
                    wip_limit=column.wip_limit,
                    task_count=count,
                    over_wip_limit=bool(column.wip_limit) and count > column.wip_limit,
                )
            )

        if unmapped:
            logger.warning(
                "Project %d has %d task(s) in statuses missing from the workflow",
                project_id, len(unmapped)
            )

        return FullBoard(
            board=BoardView(id=board.id, project_id=board.project_id, name=board.name, columns=columns),
            tasks_by_status=tasks_by_status,
            unmapped_tasks=unmapped,
            active_sprint=active_sprint,
            weighted_progress=calculate_weighted_progress(
                [status.status_id for status in statuses],
                [task.status_id for task in tasks],
            ),
        )
