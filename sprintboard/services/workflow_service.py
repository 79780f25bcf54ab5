from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, TYPE_CHECKING
import re

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from ..models.workflow import WorkflowStatus
from ..models.task import Task
from ..core.constants import ActivityAction, StatusCategory
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..utils.logging import get_logger
from .activity_service import ActivityService
from .project_service import ProjectService

if TYPE_CHECKING:
    from ..models.board import Board
    from ..models.project import Project

logger = get_logger(__name__)

T = TypeVar("T")

STATUS_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{0,63}$")
UPDATABLE_FIELDS = ("name", "category", "color", "is_initial", "is_final")
CATEGORIES = tuple(c.value for c in StatusCategory)


def humanize(status_id: str) -> str:
    """'qa-review' -> 'Qa Review'"""
    return " ".join(word.capitalize() for word in re.split(r"[-_\s]+", status_id) if word)


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.strip().lower()).strip("-")


def normalize_category(category: Optional[str]) -> str:
    if category is None:
        return StatusCategory.TODO.value
    value = category.strip().lower()
    if value not in CATEGORIES:
        raise ValidationError(f"Invalid category '{category}'. Must be one of: {', '.join(CATEGORIES)}")
    return value


def reindex(statuses: List[WorkflowStatus], ordered_ids: List[str]) -> List[WorkflowStatus]:
    """Assign dense order values following ``ordered_ids``.

    ``ordered_ids`` must be exactly a permutation of the status ids.
    """
    by_id = {status.status_id: status for status in statuses}

    duplicates = sorted({sid for sid in ordered_ids if ordered_ids.count(sid) > 1})
    missing = sorted(set(by_id) - set(ordered_ids))
    unknown = sorted(set(ordered_ids) - set(by_id))
    if duplicates or missing or unknown:
        raise ValidationError(
            "Status order must list every workflow status exactly once",
            details={"duplicates": duplicates, "missing": missing, "unknown": unknown},
        )

    reordered = [by_id[sid] for sid in ordered_ids]
    for index, status in enumerate(reordered):
        status.order = index
    return reordered


class WorkflowService:
    """Per-project registry of ordered workflow statuses.

    Every mutation runs as one transaction under a project row lock and
    resynchronizes the board before committing.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._projects = ProjectService(db)
        self._activity = ActivityService(db)

    # Reads

    async def list_statuses(self, project_id: int) -> List[WorkflowStatus]:
        stmt = (
            select(WorkflowStatus)
            .where(WorkflowStatus.project_id == project_id)
            .order_by(WorkflowStatus.order, WorkflowStatus.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_status(self, project_id: int, status_id: str) -> WorkflowStatus:
        status = await self.find_status(project_id, status_id)
        if status is None:
            raise NotFoundError("Status", status_id)
        return status

    async def find_status(self, project_id: int, status_id: str) -> Optional[WorkflowStatus]:
        stmt = select(WorkflowStatus).where(
            WorkflowStatus.project_id == project_id,
            WorkflowStatus.status_id == status_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_initial_status(self, project_id: int) -> WorkflowStatus:
        statuses = await self.list_statuses(project_id)
        if not statuses:
            raise ValidationError(f"Project {project_id} has no workflow statuses")
        return initial_status_of(statuses)

    async def get_workflow(self, project_id: int) -> Dict[str, Any]:
        project = await self._projects.get_project(project_id)
        statuses = await self.list_statuses(project_id)
        return {
            "project_id": project.id,
            "methodology": project.methodology,
            "version": project.workflow_version,
            "statuses": statuses,
            "initial_status_id": initial_status_of(statuses).status_id if statuses else None,
        }

    async def count_tasks_with_status(self, project_id: int, status_id: str) -> int:
        stmt = select(func.count(Task.id)).where(
            Task.project_id == project_id,
            Task.status_id == status_id,
        )
        result = await self.db.execute(stmt)
        return int(result.scalar() or 0)

    # Mutations

    async def add_status(
        self,
        project_id: int,
        status_id: str,
        category: Optional[str] = None,
        name: Optional[str] = None,
        color: Optional[str] = None,
        is_initial: bool = False,
        is_final: bool = False,
        actor: Optional[str] = None,
        after_sync: Optional[Callable[[Board], None]] = None,
    ) -> WorkflowStatus:
        """Append a status at the end of the workflow order."""

        status_id = (status_id or "").strip()
        if not STATUS_ID_PATTERN.match(status_id):
            raise ValidationError(
                f"Invalid status id '{status_id}'. Use lowercase letters, digits, '-' or '_'"
            )
        category = normalize_category(category)

        async def mutation(project: Project) -> WorkflowStatus:
            if await self.find_status(project.id, status_id) is not None:
                raise ConflictError(f"Status with ID '{status_id}' already exists")

            statuses = await self.list_statuses(project.id)
            status = WorkflowStatus(
                project_id=project.id,
                status_id=status_id,
                name=(name or "").strip() or humanize(status_id),
                category=category,
                color=color or None,
                order=max((s.order for s in statuses), default=-1) + 1,
                is_initial=False,
                is_final=bool(is_final),
            )
            self.db.add(status)
            await self.db.flush()

            if is_initial:
                self._make_initial(statuses + [status], status)
            return status

        return await self._run_mutation(
            project_id, {"change": "status_added", "status_id": status_id}, mutation, actor, after_sync
        )

    async def update_status(
        self,
        project_id: int,
        status_id: str,
        patch: Dict[str, Any],
        actor: Optional[str] = None,
        after_sync: Optional[Callable[[Board], None]] = None,
    ) -> WorkflowStatus:
        """Partial update of name/category/color/flags. Id and order are immutable here."""

        immutable = sorted(set(patch) - set(UPDATABLE_FIELDS))
        if immutable:
            raise ValidationError(f"Fields cannot be updated: {', '.join(immutable)}")

        async def mutation(project: Project) -> WorkflowStatus:
            statuses = await self.list_statuses(project.id)
            status = next((s for s in statuses if s.status_id == status_id), None)
            if status is None:
                raise NotFoundError("Status", status_id)

            if patch.get("name") is not None:
                if not patch["name"].strip():
                    raise ValidationError("Status name cannot be empty")
                status.name = patch["name"].strip()
            if patch.get("category") is not None:
                status.category = normalize_category(patch["category"])
            if "color" in patch:
                status.color = patch["color"] or None
            if patch.get("is_final") is not None:
                status.is_final = bool(patch["is_final"])
            if patch.get("is_initial") is True:
                self._make_initial(statuses, status)
            elif patch.get("is_initial") is False:
                status.is_initial = False
            return status

        return await self._run_mutation(
            project_id,
            {"change": "status_updated", "status_id": status_id, "fields": sorted(patch)},
            mutation,
            actor,
            after_sync,
        )

    async def delete_status(self, project_id: int, status_id: str, actor: Optional[str] = None) -> None:
        """Remove a status no task references, then re-dense the order."""

        async def mutation(project: Project) -> None:
            statuses = await self.list_statuses(project.id)
            status = next((s for s in statuses if s.status_id == status_id), None)
            if status is None:
                raise NotFoundError("Status", status_id)

            in_use = await self.count_tasks_with_status(project.id, status_id)
            if in_use > 0:
                raise ConflictError(
                    f"Cannot delete status. {in_use} task(s) are currently using this status. "
                    "Please move them to another status first.",
                    details={"status_id": status_id, "task_count": in_use},
                )
            if len(statuses) == 1:
                raise ConflictError("Cannot delete the last workflow status")

            await self.db.delete(status)
            await self.db.flush()

            remaining = [s for s in statuses if s.status_id != status_id]
            reindex(remaining, [s.status_id for s in remaining])

        await self._run_mutation(
            project_id, {"change": "status_deleted", "status_id": status_id}, mutation, actor
        )

    async def reorder_statuses(
        self,
        project_id: int,
        ordered_ids: List[str],
        actor: Optional[str] = None,
    ) -> List[WorkflowStatus]:
        async def mutation(project: Project) -> List[WorkflowStatus]:
            statuses = await self.list_statuses(project.id)
            return reindex(statuses, list(ordered_ids))

        return await self._run_mutation(
            project_id, {"change": "statuses_reordered", "order": list(ordered_ids)}, mutation, actor
        )

    # Internals

    def _make_initial(self, statuses: List[WorkflowStatus], initial: WorkflowStatus) -> None:
        for status in statuses:
            status.is_initial = status is initial

    async def _run_mutation(
        self,
        project_id: int,
        details: Dict[str, Any],
        mutation: Callable[[Project], Awaitable[T]],
        actor: Optional[str],
        after_sync: Optional[Callable[[Board], None]] = None,
    ) -> T:
        from .board_service import BoardService

        try:
            project = await self._projects.lock_project(project_id)
            result = await mutation(project)
            await self.db.flush()

            project.workflow_version = (project.workflow_version or 0) + 1
            board = await BoardService(self.db).sync_board_from_workflow(project.id)
            if after_sync is not None:
                after_sync(board)

            self._activity.record(
                project_id=project.id,
                action=ActivityAction.WORKFLOW_CHANGED,
                actor=actor,
                details={**details, "version": project.workflow_version},
            )

            await self.db.commit()
            logger.info("Workflow of project %d changed: %s", project_id, details.get("change"))
            return result

        except Exception as e:
            await self.db.rollback()
            logger.error("Workflow change on project %d failed: %s", project_id, str(e))
            raise


def initial_status_of(statuses: List[WorkflowStatus]) -> WorkflowStatus:
    """The flagged initial status, or the first in order when none is flagged."""
    ordered = sorted(statuses, key=lambda s: (s.order, s.id or 0))
    return next((s for s in ordered if s.is_initial), ordered[0])


def category_map(statuses: List[WorkflowStatus]) -> Dict[str, str]:
    return {status.status_id: status.category for status in statuses}


def resolved_category(task: Task, categories: Dict[str, str]) -> str:
    """Registry category of the task's status; the snapshot only for unmapped statuses."""
    return categories.get(task.status_id, task.status_category)
