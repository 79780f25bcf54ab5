from typing import Any, Dict, List, Optional
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from ..models.task import Task
from ..models.workflow import WorkflowStatus
from ..core.constants import ActivityAction, StatusCategory, TaskPriority, TaskType
from ..core.exceptions import NotFoundError, ValidationError
from ..utils.dates import utcnow
from ..utils.logging import get_logger
from .activity_service import ActivityService
from .project_service import ProjectService
from .workflow_service import WorkflowService

logger = get_logger(__name__)

# Optional fields where an empty string means "not set"
OPTIONAL_FIELDS = ("description", "assignee", "reporter", "story_points", "due_date", "start_date", "sprint_id")
UPDATABLE_FIELDS = (
    "title", "description", "type", "priority", "assignee", "reporter", "story_points",
    "due_date", "start_date", "sprint_id", "labels", "column_order",
)
OPEN_SPRINT_STATUSES = ("planning", "active")

_UNSET: Any = object()


def blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def normalize_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: blank_to_none(value) if key in OPTIONAL_FIELDS else value
        for key, value in fields.items()
    }


class TaskService:
    """Task store: creation, edits and status movement across board columns"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._projects = ProjectService(db)
        self._workflow = WorkflowService(db)
        self._activity = ActivityService(db)

    async def get_task(self, task_id: int) -> Task:
        result = await self.db.execute(select(Task).where(Task.id == task_id))
        task = result.scalar_one_or_none()

        if task is None:
            raise NotFoundError("Task", task_id)

        return task

    async def list_tasks(
        self,
        project_id: int,
        sprint_id: Optional[int] = None,
        status_id: Optional[str] = None,
        assignee: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Task]:
        """Tasks of a project, ordered by position within their column"""

        stmt = select(Task).where(Task.project_id == project_id)

        if sprint_id is not None:
            stmt = stmt.where(Task.sprint_id == sprint_id)

        if status_id:
            stmt = stmt.where(Task.status_id == status_id)

        if assignee:
            stmt = stmt.where(Task.assignee == assignee)

        stmt = stmt.order_by(Task.column_order, Task.id)
        if limit is not None:
            stmt = stmt.limit(limit).offset(offset)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_backlog(self, project_id: int) -> List[Task]:
        stmt = (
            select(Task)
            .where(Task.project_id == project_id, Task.sprint_id.is_(None))
            .order_by(Task.column_order, Task.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_task(
        self,
        project_id: int,
        title: str,
        status_id: Optional[str] = None,
        actor: Optional[str] = None,
        **fields: Any,
    ) -> Task:
        """Create a task numbered from the project sequence.

        Without ``status_id`` the task starts in the project's initial status.
        """

        unknown = sorted(set(fields) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown task fields: {', '.join(unknown)}")
        if not (title or "").strip():
            raise ValidationError("Task title cannot be empty")

        fields = normalize_fields(fields)
        self._validate_fields(fields)

        try:
            project = await self._projects.lock_project(project_id)

            if status_id:
                status = await self._workflow.find_status(project.id, status_id)
                if status is None:
                    raise ValidationError(f"Unknown status '{status_id}'")
            else:
                status = await self._workflow.get_initial_status(project.id)

            if fields.get("sprint_id") is not None:
                await self._validate_sprint(project.id, fields["sprint_id"])

            project.task_counter = (project.task_counter or 0) + 1
            number = project.task_counter

            column_order = fields.pop("column_order", None)
            if column_order is None:
                column_order = await self._next_column_order(project.id, status.status_id)

            task = Task(
                project_id=project.id,
                number=number,
                key=f"{project.key}-{number}",
                title=title.strip(),
                type=fields.pop("type", None) or TaskType.TASK.value,
                priority=fields.pop("priority", None) or TaskPriority.MEDIUM.value,
                labels=fields.pop("labels", None) or [],
                reporter=fields.pop("reporter", None) or actor,
                column_order=column_order,
                **fields,
            )
            self._write_snapshot(task, status, project.workflow_version)
            if status.category == StatusCategory.DONE.value:
                task.completed_at = utcnow()

            self.db.add(task)
            await self.db.flush()

            self._activity.record(
                project_id=project.id,
                action=ActivityAction.TASK_CREATED,
                task_id=task.id,
                sprint_id=task.sprint_id,
                to_status=status.status_id,
                to_category=status.category,
                actor=actor,
                at=task.created_at,
            )

            await self.db.commit()

            logger.info(f"Created task {task.key} in status {task.status_id}")
            return task

        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to create task in project {project_id}: {str(e)}")
            raise

    async def update_task(self, task_id: int, patch: Dict[str, Any], actor: Optional[str] = None) -> Task:
        """Patch task fields. Status changes go through transition or move."""

        if "status_id" in patch or "status" in patch:
            raise ValidationError("Use transition or move to change a task's status")

        unknown = sorted(set(patch) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")

        patch = normalize_fields(patch)
        self._validate_fields(patch)
        if "title" in patch and not (patch["title"] or "").strip():
            raise ValidationError("Task title cannot be empty")

        try:
            task = await self._lock_task(task_id)

            if patch.get("sprint_id") is not None and patch["sprint_id"] != task.sprint_id:
                await self._validate_sprint(task.project_id, patch["sprint_id"])

            changes = {}
            for field, value in patch.items():
                if field == "title":
                    value = value.strip()
                if field == "labels":
                    value = list(value or [])
                if getattr(task, field) != value:
                    changes[field] = _jsonable(value)
                    setattr(task, field, value)

            await self._refresh_snapshot(task)

            if changes:
                self._activity.record(
                    project_id=task.project_id,
                    action=ActivityAction.TASK_UPDATED,
                    task_id=task.id,
                    sprint_id=task.sprint_id,
                    actor=actor,
                    details={"changes": changes},
                )

            await self.db.commit()

            logger.info(f"Updated task {task.key}: {sorted(changes)}")
            return task

        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to update task {task_id}: {str(e)}")
            raise

    async def transition_task(
        self,
        task_id: int,
        target_status_id: str,
        comment: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Task:
        """Workflow transition to ``target_status_id``, recorded with an optional comment"""

        return await self._change_status(
            task_id,
            target_status_id,
            ActivityAction.STATUS_CHANGED,
            actor=actor,
            comment=comment,
        )

    async def move_task(
        self,
        task_id: int,
        target_status_id: str,
        column_order: Optional[int] = None,
        sprint_id: Optional[int] = _UNSET,
        actor: Optional[str] = None,
    ) -> Task:
        """Board drag-and-drop. Any status may move to any other.

        ``sprint_id=None`` sends the task to the backlog; leaving it unset keeps
        the current sprint.
        """

        return await self._change_status(
            task_id,
            target_status_id,
            ActivityAction.TASK_MOVED,
            actor=actor,
            column_order=column_order,
            sprint_id=sprint_id,
        )

    async def _change_status(
        self,
        task_id: int,
        target_status_id: str,
        action: ActivityAction,
        actor: Optional[str] = None,
        comment: Optional[str] = None,
        column_order: Optional[int] = None,
        sprint_id: Optional[int] = _UNSET,
    ) -> Task:
        if column_order is not None and column_order < 0:
            raise ValidationError("Column order must be zero or a positive number")

        try:
            task = await self._lock_task(task_id)

            target = await self._workflow.find_status(task.project_id, target_status_id)
            if target is None:
                raise ValidationError(f"Unknown status '{target_status_id}'")

            from_status, from_category = task.status_id, task.status_category
            from_sprint = task.sprint_id
            status_changed = task.status_id != target.status_id

            if sprint_id is not _UNSET and sprint_id != task.sprint_id:
                if sprint_id is not None:
                    await self._validate_sprint(task.project_id, sprint_id)
                task.sprint_id = sprint_id

            if column_order is not None:
                task.column_order = column_order
            elif status_changed:
                task.column_order = await self._next_column_order(task.project_id, target.status_id)

            project = await self._projects.get_project(task.project_id)
            self._write_snapshot(task, target, project.workflow_version)

            if target.category == StatusCategory.DONE.value:
                if task.completed_at is None:
                    task.completed_at = utcnow()
            else:
                task.completed_at = None

            if status_changed or task.sprint_id != from_sprint:
                details = {}
                if task.sprint_id != from_sprint:
                    details = {"from_sprint_id": from_sprint, "to_sprint_id": task.sprint_id}

                self._activity.record(
                    project_id=task.project_id,
                    action=action,
                    task_id=task.id,
                    sprint_id=task.sprint_id,
                    from_status=from_status,
                    to_status=target.status_id,
                    from_category=from_category,
                    to_category=target.category,
                    actor=actor,
                    comment=comment,
                    details=details,
                )

            await self.db.commit()

            logger.info(f"Task {task.key} {action.value}: {from_status} -> {target.status_id}")
            return task

        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to change status of task {task_id}: {str(e)}")
            raise

    async def _lock_task(self, task_id: int) -> Task:
        stmt = (
            select(Task)
            .where(Task.id == task_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        task = result.scalar_one_or_none()

        if task is None:
            raise NotFoundError("Task", task_id)

        return task

    async def _refresh_snapshot(self, task: Task) -> None:
        """Re-copy name and category from the registry; unmapped statuses keep their snapshot."""
        status = await self._workflow.find_status(task.project_id, task.status_id)
        if status is None:
            return
        project = await self._projects.get_project(task.project_id)
        self._write_snapshot(task, status, project.workflow_version)

    def _write_snapshot(self, task: Task, status: WorkflowStatus, version: int) -> None:
        task.status_id = status.status_id
        task.status_name = status.name
        task.status_category = status.category
        task.status_version = version or 0

    async def _next_column_order(self, project_id: int, status_id: str) -> int:
        stmt = select(func.max(Task.column_order)).where(
            Task.project_id == project_id,
            Task.status_id == status_id,
        )
        result = await self.db.execute(stmt)
        current = result.scalar()
        return 0 if current is None else current + 1

    async def _validate_sprint(self, project_id: int, sprint_id: int) -> None:
        from ..models.sprint import Sprint

        # Held until commit; delete, complete and cancel lock the same row
        result = await self.db.execute(select(Sprint).where(Sprint.id == sprint_id).with_for_update())
        sprint = result.scalar_one_or_none()

        if sprint is None or sprint.project_id != project_id:
            raise ValidationError(f"Sprint {sprint_id} does not belong to this project")
        if sprint.status not in OPEN_SPRINT_STATUSES:
            raise ValidationError(f"Sprint {sprint_id} is {sprint.status} and cannot take tasks")

    def _validate_fields(self, fields: Dict[str, Any]) -> None:
        if fields.get("type") is not None and fields["type"] not in {t.value for t in TaskType}:
            raise ValidationError(f"Invalid task type '{fields['type']}'")
        if fields.get("priority") is not None and fields["priority"] not in {p.value for p in TaskPriority}:
            raise ValidationError(f"Invalid priority '{fields['priority']}'")
        if fields.get("story_points") is not None and int(fields["story_points"]) < 0:
            raise ValidationError("Story points cannot be negative")
        if fields.get("column_order") is not None and fields["column_order"] < 0:
            raise ValidationError("Column order must be zero or a positive number")

        start, due = fields.get("start_date"), fields.get("due_date")
        if isinstance(start, date) and isinstance(due, date) and start > due:
            raise ValidationError("Start date must be on or before the due date")


def _jsonable(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    return value
