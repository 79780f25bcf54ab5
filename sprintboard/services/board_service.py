from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ..models.board import Board, BoardColumn
from ..models.workflow import WorkflowStatus
from ..core.constants import CATEGORY_COLORS, NEUTRAL_COLOR
from ..core.exceptions import NotFoundError, ValidationError
from ..utils.logging import get_logger
from .project_service import ProjectService
from .workflow_service import WorkflowService, humanize, slugify

logger = get_logger(__name__)

COLUMN_STATUS_FIELDS = ("name", "color", "category")


def default_color(category: Optional[str]) -> str:
    return CATEGORY_COLORS.get(category or "", NEUTRAL_COLOR)


def column_from_status(status: WorkflowStatus, column: Optional[BoardColumn] = None) -> BoardColumn:
    """Copy registry fields onto ``column`` (new if absent); wip_limit is left alone."""
    if column is None:
        column = BoardColumn(status_id=status.status_id)
    column.name = status.name or humanize(status.status_id)
    column.color = status.color or default_color(status.category)
    column.category = status.category
    column.order = status.order
    return column


def validate_wip_limit(wip_limit: Optional[int]) -> Optional[int]:
    if wip_limit is None:
        return None
    if wip_limit < 0:
        raise ValidationError("WIP limit must be zero or a positive number")
    return wip_limit


class BoardService:
    """Kanban board whose columns mirror the project's workflow statuses.

    Column structure is owned by the workflow registry; column operations
    here delegate to WorkflowService and only the WIP limit is stored on the
    column itself.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self._workflow = WorkflowService(db)

    async def _get_or_create_board(self, project_id: int) -> Board:
        stmt = (
            select(Board)
            .where(Board.project_id == project_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        board = result.scalar_one_or_none()

        if board is None:
            board = Board(project_id=project_id, name="Default Board", columns=[])
            self.db.add(board)
            await self.db.flush()

        return board

    async def sync_board_from_workflow(self, project_id: int) -> Board:
        """Rebuild columns as the ordered image of the registry. Idempotent.

        Flushes but does not commit; callers own the transaction.
        """
        statuses = await self._workflow.list_statuses(project_id)
        board = await self._get_or_create_board(project_id)

        existing = {column.status_id: column for column in board.columns}
        board.columns = [
            column_from_status(status, existing.get(status.status_id))
            for status in statuses
        ]
        await self.db.flush()

        logger.debug("Synced board %d with %d columns", board.id, len(board.columns))
        return board

    async def get_board(self, project_id: int) -> Board:
        await ProjectService(self.db).get_project(project_id)

        try:
            board = await self.sync_board_from_workflow(project_id)
            await self.db.commit()
            return board

        except Exception as e:
            await self.db.rollback()
            logger.error("Failed to load board of project %d: %s", project_id, str(e))
            raise

    async def create_column(
        self,
        project_id: int,
        name: str,
        category: Optional[str] = None,
        status_id: Optional[str] = None,
        color: Optional[str] = None,
        wip_limit: Optional[int] = None,
        actor: Optional[str] = None,
    ) -> Board:
        """Add a column by adding the matching workflow status."""

        wip_limit = validate_wip_limit(wip_limit)
        status_id = status_id or slugify(name or "")

        await self._workflow.add_status(
            project_id,
            status_id=status_id,
            category=category,
            name=name,
            color=color,
            actor=actor,
            after_sync=lambda board: _apply_wip_limit(board, status_id, wip_limit),
        )
        return await self._get_or_create_board(project_id)

    async def update_column(
        self,
        project_id: int,
        status_id: str,
        patch: Dict[str, Any],
        actor: Optional[str] = None,
    ) -> Board:
        unknown = sorted(set(patch) - set(COLUMN_STATUS_FIELDS) - {"wip_limit"})
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")

        status_patch = {k: v for k, v in patch.items() if k in COLUMN_STATUS_FIELDS}
        has_wip_limit = "wip_limit" in patch
        wip_limit = validate_wip_limit(patch.get("wip_limit"))

        if status_patch:
            await self._workflow.update_status(
                project_id,
                status_id,
                status_patch,
                actor=actor,
                after_sync=(lambda board: _apply_wip_limit(board, status_id, wip_limit))
                if has_wip_limit else None,
            )
            return await self._get_or_create_board(project_id)

        try:
            await self._workflow.get_status(project_id, status_id)
            board = await self.sync_board_from_workflow(project_id)
            if has_wip_limit:
                _apply_wip_limit(board, status_id, wip_limit)
            await self.db.commit()

            logger.info("Set WIP limit of column %s on project %d to %s", status_id, project_id, wip_limit)
            return board

        except Exception as e:
            await self.db.rollback()
            logger.error("Failed to update column %s on project %d: %s", status_id, project_id, str(e))
            raise

    async def delete_column(self, project_id: int, status_id: str, actor: Optional[str] = None) -> Board:
        await self._workflow.delete_status(project_id, status_id, actor=actor)
        return await self._get_or_create_board(project_id)

    async def reorder_columns(self, project_id: int, ordered_ids: List[str], actor: Optional[str] = None) -> Board:
        await self._workflow.reorder_statuses(project_id, ordered_ids, actor=actor)
        return await self._get_or_create_board(project_id)


def _apply_wip_limit(board: Board, status_id: str, wip_limit: Optional[int]) -> None:
    for column in board.columns:
        if column.status_id == status_id:
            column.wip_limit = wip_limit or None
            return
    raise NotFoundError("Column", status_id)
