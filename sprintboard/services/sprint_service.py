from __future__ import annotations

from typing import (
    Any,
    Dict,
    List,
    Optional,
    TYPE_CHECKING
)
from datetime import date
from enum import Enum
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc
from sqlalchemy.exc import IntegrityError

from ..config import settings
from ..core.constants import ActivityAction, StatusCategory
from ..core.exceptions import (
    ConflictError,
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
)
from ..utils.dates import utcnow
from .activity_service import ActivityService
from .project_service import ProjectService
from .workflow_service import WorkflowService, category_map, resolved_category

if TYPE_CHECKING:
    from ..models.sprint import Sprint
    from ..models.task import Task

# Type aliases
ProjectId = int
SprintId = int
StoryPoints = int

UPDATABLE_FIELDS = ("name", "goal", "start_date", "end_date", "capacity")


class SprintStatus(str, Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CompletionDisposition(str, Enum):
    BACKLOG = "backlog"
    SPRINT = "sprint"


class SprintService:
    """
    Sprint lifecycle: planning -> active -> completed, with cancellation.

    Start and completion run under a project row lock; the database also
    refuses a second active sprint for the same project.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._logger = logging.getLogger(__name__)
        self._projects = ProjectService(db)
        self._workflow = WorkflowService(db)
        self._activity = ActivityService(db)

    async def create_sprint(
        self,
        project_id: ProjectId,
        name: str,
        start_date: date,
        end_date: date,
        goal: Optional[str] = None,
        capacity: Optional[StoryPoints] = None,
        require_goal: Optional[bool] = None,
        require_estimates: Optional[bool] = None,
        enforce_capacity: Optional[bool] = None,
        creator_id: Optional[str] = None
    ) -> Sprint:
        """Create a sprint in planning status."""

        from ..models.sprint import Sprint

        self._logger.info("Creating sprint '%s' for project %d", name, project_id)

        if not (name or "").strip():
            raise ValidationError("Sprint name cannot be empty")
        self._validate_sprint_dates(start_date, end_date)
        self._validate_capacity(capacity)

        try:
            project = await self._projects.lock_project(project_id)
            project.sprint_counter = (project.sprint_counter or 0) + 1

            sprint = Sprint(
                project_id=project.id,
                number=project.sprint_counter,
                name=name.strip(),
                goal=(goal or "").strip() or None,
                start_date=start_date,
                end_date=end_date,
                status=SprintStatus.PLANNING.value,
                capacity=capacity,
                committed_points=0,
                over_capacity=False,
                require_goal=settings.sprint_require_goal if require_goal is None else require_goal,
                require_estimates=settings.sprint_require_estimates if require_estimates is None else require_estimates,
                enforce_capacity=settings.sprint_enforce_capacity if enforce_capacity is None else enforce_capacity,
                participants=[],
                created_by=creator_id
            )

            self.db.add(sprint)
            await self.db.flush()

            self._activity.record(
                project_id=project.id,
                action=ActivityAction.SPRINT_CREATED,
                sprint_id=sprint.id,
                actor=creator_id,
                details={"name": sprint.name, "number": sprint.number}
            )

            await self.db.commit()

            self._logger.info("Created sprint %d", sprint.id)
            return sprint

        except Exception as e:
            await self.db.rollback()
            self._logger.error("Failed to create sprint: %s", str(e))
            raise

    async def get_sprint(self, sprint_id: SprintId) -> Sprint:
        """Get sprint by ID."""

        from ..models.sprint import Sprint

        stmt = select(Sprint).where(Sprint.id == sprint_id)

        result = await self.db.execute(stmt)
        sprint = result.scalar_one_or_none()

        if sprint is None:
            raise NotFoundError("Sprint", sprint_id)

        return sprint

    async def get_active_sprint(self, project_id: ProjectId) -> Optional[Sprint]:
        from ..models.sprint import Sprint

        stmt = select(Sprint).where(
            Sprint.project_id == project_id,
            Sprint.status == SprintStatus.ACTIVE.value
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_project_sprints(
        self,
        project_id: ProjectId,
        status: Optional[str] = None,
        limit: int = 10,
        offset: int = 0
    ) -> List[Sprint]:
        """Get sprints for a project, newest first."""

        from ..models.sprint import Sprint

        stmt = select(Sprint).where(Sprint.project_id == project_id)

        if status is not None:
            if not is_valid_sprint_status(status):
                raise ValidationError(f"Invalid sprint status '{status}'")
            stmt = stmt.where(Sprint.status == SprintStatus(status).value)

        stmt = stmt.order_by(desc(Sprint.number)).limit(limit).offset(offset)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def sprint_tasks(self, sprint_id: SprintId) -> List[Task]:
        from ..models.task import Task

        stmt = select(Task).where(Task.sprint_id == sprint_id).order_by(Task.column_order, Task.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def update_sprint(
        self,
        sprint_id: SprintId,
        patch: Dict[str, Any],
        actor: Optional[str] = None
    ) -> Sprint:
        """Edit name, goal, dates or capacity of a planning or active sprint."""

        unknown = sorted(set(patch) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")

        sprint = await self.get_sprint(sprint_id)

        try:
            if sprint.status not in (SprintStatus.PLANNING.value, SprintStatus.ACTIVE.value):
                raise ConflictError(f"A {sprint.status} sprint cannot be edited")

            if "name" in patch:
                if not (patch["name"] or "").strip():
                    raise ValidationError("Sprint name cannot be empty")
                sprint.name = patch["name"].strip()
            if "goal" in patch:
                sprint.goal = (patch["goal"] or "").strip() or None
            if "capacity" in patch:
                self._validate_capacity(patch["capacity"])
                sprint.capacity = patch["capacity"]

            start_date = patch.get("start_date") or sprint.start_date
            end_date = patch.get("end_date") or sprint.end_date
            if "start_date" in patch or "end_date" in patch:
                self._validate_sprint_dates(start_date, end_date)
                sprint.start_date = start_date
                sprint.end_date = end_date

            await self.db.commit()

            self._logger.info("Updated sprint %d: %s", sprint_id, sorted(patch))
            return sprint

        except Exception as e:
            await self.db.rollback()
            self._logger.error("Failed to update sprint %d: %s", sprint_id, str(e))
            raise

    async def start_sprint(
        self,
        sprint_id: SprintId,
        skip_validation: bool = False,
        participants: Optional[List[str]] = None,
        justification: Optional[str] = None,
        actor: Optional[str] = None
    ) -> Sprint:
        """Activate a planning sprint and record the team's commitment."""

        sprint = await self.get_sprint(sprint_id)

        try:
            await self._projects.lock_project(sprint.project_id)
            sprint = await self._lock_sprint(sprint_id)

            self._check_transition(sprint, SprintStatus.ACTIVE)

            active = await self.get_active_sprint(sprint.project_id)
            if active is not None and active.id != sprint.id:
                raise ConflictError(
                    f"Sprint '{active.name}' is already active. Complete it first.",
                    details={"active_sprint_id": active.id}
                )

            tasks = await self.sprint_tasks(sprint.id)
            committed_points = sum(task.story_points or 0 for task in tasks)
            over_capacity = bool(sprint.capacity) and committed_points > sprint.capacity

            if not skip_validation:
                errors = self._start_validation_errors(sprint, tasks, committed_points)
                if errors:
                    raise ValidationError(
                        "Sprint cannot be started due to validation errors",
                        details={"validation_errors": errors}
                    )
            elif over_capacity and not (justification or "").strip():
                raise ValidationError(
                    "Over-capacity sprint requires justification",
                    details={
                        "committed_points": committed_points,
                        "capacity": sprint.capacity,
                        "utilization": self._calculate_utilization(committed_points, sprint.capacity)
                    }
                )

            sprint.status = SprintStatus.ACTIVE.value
            sprint.started_at = utcnow()
            sprint.started_by = actor
            sprint.committed_points = committed_points
            sprint.over_capacity = over_capacity
            sprint.participants = list(participants or [])

            self._activity.record(
                project_id=sprint.project_id,
                action=ActivityAction.SPRINT_STARTED,
                sprint_id=sprint.id,
                actor=actor,
                details={
                    "committed_points": committed_points,
                    "task_ids": [task.id for task in tasks],
                    "over_capacity": over_capacity,
                    "skipped_validation": bool(skip_validation),
                    "justification": justification
                }
            )

            await self.db.flush()
            await self.db.commit()

            self._logger.info("Started sprint %d with %d committed points", sprint.id, committed_points)
            return sprint

        except IntegrityError:
            await self.db.rollback()
            self._logger.warning("Sprint %d lost the race for the active slot", sprint_id)
            raise ConflictError("Another sprint of this project is already active")
        except Exception as e:
            await self.db.rollback()
            self._logger.error("Failed to start sprint %d: %s", sprint_id, str(e))
            raise

    async def complete_sprint(
        self,
        sprint_id: SprintId,
        move_incomplete_to_backlog: bool = False,
        move_to_sprint_id: Optional[SprintId] = None,
        actor: Optional[str] = None
    ) -> Sprint:
        """Close an active sprint, recording velocity and disposing of unfinished work."""

        sprint = await self.get_sprint(sprint_id)

        try:
            await self._projects.lock_project(sprint.project_id)
            sprint = await self._lock_sprint(sprint_id)

            self._check_transition(sprint, SprintStatus.COMPLETED)

            if move_incomplete_to_backlog and move_to_sprint_id is not None:
                raise ValidationError("Choose either the backlog or another sprint for incomplete tasks, not both")

            categories = category_map(await self._workflow.list_statuses(sprint.project_id))
            tasks = await self.sprint_tasks(sprint.id)
            completed = [t for t in tasks if resolved_category(t, categories) == StatusCategory.DONE.value]
            incomplete = [t for t in tasks if resolved_category(t, categories) != StatusCategory.DONE.value]

            disposition: Optional[CompletionDisposition] = None
            if move_incomplete_to_backlog:
                disposition = CompletionDisposition.BACKLOG
            elif move_to_sprint_id is not None:
                disposition = CompletionDisposition.SPRINT
                await self._validate_target_sprint(sprint, move_to_sprint_id)

            if incomplete and disposition is None:
                raise ValidationError(
                    f"{len(incomplete)} incomplete task(s) need a destination: the backlog or another sprint",
                    details={"incomplete_task_ids": [t.id for t in incomplete]}
                )

            velocity = sum(task.story_points or 0 for task in completed)

            for task in incomplete:
                task.sprint_id = move_to_sprint_id if disposition == CompletionDisposition.SPRINT else None

            sprint.status = SprintStatus.COMPLETED.value
            sprint.completed_at = utcnow()
            sprint.completed_points = velocity

            self._activity.record(
                project_id=sprint.project_id,
                action=ActivityAction.SPRINT_COMPLETED,
                sprint_id=sprint.id,
                actor=actor,
                details={
                    "velocity": velocity,
                    "committed_points": sprint.committed_points,
                    "completed_task_ids": [t.id for t in completed],
                    "incomplete_task_ids": [t.id for t in incomplete],
                    "disposition": disposition.value if disposition else None,
                    "move_to_sprint_id": move_to_sprint_id
                }
            )

            await self.db.commit()

            self._logger.info(
                "Completed sprint %d: velocity %d, %d task(s) carried over",
                sprint.id, velocity, len(incomplete)
            )
            return sprint

        except Exception as e:
            await self.db.rollback()
            self._logger.error("Failed to complete sprint %d: %s", sprint_id, str(e))
            raise

    async def cancel_sprint(self, sprint_id: SprintId, actor: Optional[str] = None) -> Sprint:
        """Cancel a planning or active sprint. Unfinished tasks return to the backlog."""

        sprint = await self.get_sprint(sprint_id)

        try:
            await self._projects.lock_project(sprint.project_id)
            sprint = await self._lock_sprint(sprint_id)

            self._check_transition(sprint, SprintStatus.CANCELLED)

            categories = category_map(await self._workflow.list_statuses(sprint.project_id))
            returned = [
                task for task in await self.sprint_tasks(sprint.id)
                if resolved_category(task, categories) != StatusCategory.DONE.value
            ]
            for task in returned:
                task.sprint_id = None

            sprint.status = SprintStatus.CANCELLED.value

            self._activity.record(
                project_id=sprint.project_id,
                action=ActivityAction.SPRINT_CANCELLED,
                sprint_id=sprint.id,
                actor=actor,
                details={"returned_task_ids": [task.id for task in returned]}
            )

            await self.db.commit()

            self._logger.info("Cancelled sprint %d", sprint.id)
            return sprint

        except Exception as e:
            await self.db.rollback()
            self._logger.error("Failed to cancel sprint %d: %s", sprint_id, str(e))
            raise

    async def delete_sprint(self, sprint_id: SprintId, actor: Optional[str] = None) -> None:
        """Delete a planning sprint that holds no tasks."""

        from ..models.task import Task

        sprint = await self.get_sprint(sprint_id)

        try:
            await self._projects.lock_project(sprint.project_id)
            sprint = await self._lock_sprint(sprint_id)

            if sprint.status != SprintStatus.PLANNING.value:
                raise ConflictError(f"Only planning sprints can be deleted; this one is {sprint.status}")

            result = await self.db.execute(select(func.count(Task.id)).where(Task.sprint_id == sprint.id))
            task_count = result.scalar() or 0
            if task_count > 0:
                raise ConflictError(
                    f"Cannot delete sprint with {task_count} task(s). Move them out first.",
                    details={"task_count": task_count}
                )

            await self.db.delete(sprint)
            await self.db.commit()

            self._logger.info("Deleted sprint %d", sprint_id)

        except Exception as e:
            await self.db.rollback()
            self._logger.error("Failed to delete sprint %d: %s", sprint_id, str(e))
            raise

    # Private methods

    async def _lock_sprint(self, sprint_id: SprintId) -> Sprint:
        from ..models.sprint import Sprint

        stmt = (
            select(Sprint)
            .where(Sprint.id == sprint_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        sprint = result.scalar_one_or_none()

        if sprint is None:
            raise NotFoundError("Sprint", sprint_id)

        return sprint

    def _check_transition(self, sprint: Sprint, new: SprintStatus) -> None:
        current = SprintStatus(sprint.status)
        if not self._is_valid_status_transition(current, new):
            raise InvalidStatusTransitionError(current.value, new.value)

    def _is_valid_status_transition(self, current: SprintStatus, new: SprintStatus) -> bool:
        """Check valid status transitions."""

        valid_transitions: Dict[SprintStatus, List[SprintStatus]] = {
            SprintStatus.PLANNING: [SprintStatus.ACTIVE, SprintStatus.CANCELLED],
            SprintStatus.ACTIVE: [SprintStatus.COMPLETED, SprintStatus.CANCELLED],
            SprintStatus.COMPLETED: [],
            SprintStatus.CANCELLED: []
        }

        return new in valid_transitions.get(current, [])

    def _validate_sprint_dates(self, start_date: date, end_date: date) -> None:
        """Validate sprint dates."""

        if start_date >= end_date:
            raise ValidationError("Start date must be before end date")

        duration = (end_date - start_date).days
        if duration > settings.max_sprint_days:
            raise ValidationError(f"Sprint duration cannot exceed {settings.max_sprint_days} days")

    def _validate_capacity(self, capacity: Optional[StoryPoints]) -> None:
        if capacity is not None and capacity < 0:
            raise ValidationError("Capacity cannot be negative")

    async def _validate_target_sprint(self, sprint: Sprint, target_id: SprintId) -> None:
        from ..models.sprint import Sprint

        if target_id == sprint.id:
            raise ValidationError("Incomplete tasks cannot be moved into the sprint being completed")

        result = await self.db.execute(select(Sprint).where(Sprint.id == target_id))
        target = result.scalar_one_or_none()

        if target is None or target.project_id != sprint.project_id:
            raise ValidationError(f"Sprint {target_id} does not belong to this project")
        if target.status not in (SprintStatus.PLANNING.value, SprintStatus.ACTIVE.value):
            raise ValidationError(f"Sprint {target_id} is {target.status} and cannot take tasks")

    def _start_validation_errors(
        self,
        sprint: Sprint,
        tasks: List[Task],
        committed_points: StoryPoints
    ) -> List[str]:
        """Every failed start check, in a fixed order."""

        errors: List[str] = []

        if sprint.require_goal and not sprint.goal:
            errors.append("Sprint goal is required")

        if not tasks:
            errors.append("Sprint has no tasks")

        if sprint.require_estimates:
            unestimated = [task for task in tasks if not task.story_points]
            if unestimated:
                errors.append(
                    f"{len(unestimated)} task(s) without estimates: "
                    f"{', '.join(task.key for task in unestimated)}"
                )

        if sprint.enforce_capacity and (sprint.capacity or 0) > 0 and committed_points > sprint.capacity:
            errors.append(
                f"Committed points ({committed_points}) exceed available capacity ({sprint.capacity})"
            )

        return errors

    def _calculate_utilization(self, planned: StoryPoints, capacity: Optional[StoryPoints]) -> float:
        """Calculate capacity utilization percentage."""

        if not capacity:
            return 0.0

        return round((planned / capacity) * 100, 1)


def is_valid_sprint_status(status: str) -> bool:
    """Type guard to check if string is valid SprintStatus."""
    try:
        SprintStatus(status)
        return True
    except ValueError:
        return False


__all__ = [
    "SprintService",
    "SprintStatus",
    "CompletionDisposition",
    "is_valid_sprint_status",
]
