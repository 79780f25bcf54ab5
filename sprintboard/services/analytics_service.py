from __future__ import annotations

from typing import (
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    TYPE_CHECKING
)
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from fractions import Fraction
import logging
import math

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from pydantic import BaseModel, Field

from ..config import settings
from ..core.constants import ActivityAction, StatusCategory
from ..core.exceptions import ValidationError
from ..utils.dates import end_of_day, ensure_utc, utcnow
from .activity_service import ActivityService
from .project_service import ProjectService
from .sprint_service import SprintService, SprintStatus
from .workflow_service import WorkflowService, category_map, resolved_category

if TYPE_CHECKING:
    from ..models.activity import ActivityEntry
    from ..models.sprint import Sprint
    from ..models.task import Task

ProjectId = int
SprintId = int
StoryPoints = int

DONE = StatusCategory.DONE.value
IN_PROGRESS = StatusCategory.IN_PROGRESS.value
TODO = StatusCategory.TODO.value


class VelocityTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"
    INSUFFICIENT_DATA = "insufficient_data"


class ConfidenceLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Pydantic models
class VelocityMetrics(BaseModel):
    average_velocity: float
    velocity_trend: VelocityTrend
    sprints_analyzed: int
    confidence: ConfidenceLevel


class SprintVelocity(BaseModel):
    sprint_id: SprintId
    number: int
    name: str
    committed_points: StoryPoints
    completed_points: StoryPoints
    completed_at: Optional[datetime] = None


class VelocityChart(BaseModel):
    project_id: ProjectId
    sprints: List[SprintVelocity]
    metrics: VelocityMetrics


class CurrentSprintMetrics(BaseModel):
    total_items: int
    completed_items: int
    in_progress_items: int
    total_points: StoryPoints
    completed_points: StoryPoints
    remaining_points: StoryPoints
    completion_rate: float
    current_velocity: float
    days_elapsed: int
    days_remaining: int


class CompletionForecast(BaseModel):
    completion_probability: str
    projected_completion_date: Optional[date]
    days_needed: Optional[int]
    likelihood: str
    recommendations: List[str] = Field(default_factory=list)


class DailyBurndownPoint(BaseModel):
    date: date
    remaining_points: StoryPoints
    ideal_remaining: float
    is_weekend: bool = False


class BurndownAnalysis(BaseModel):
    sprint_id: SprintId
    sprint_name: str
    daily_data: List[DailyBurndownPoint]
    current_metrics: CurrentSprintMetrics
    completion_forecast: CompletionForecast
    generated_at: datetime


class CumulativeFlowPoint(BaseModel):
    date: date
    todo: int = 0
    in_progress: int = 0
    done: int = 0


class CumulativeFlow(BaseModel):
    project_id: ProjectId
    days: int
    data: List[CumulativeFlowPoint]


class WeightedProgress(BaseModel):
    project_id: ProjectId
    sprint_id: Optional[SprintId] = None
    percentage: int
    task_count: int
    status_count: int


def calculate_weighted_progress(status_ids: Sequence[str], task_status_ids: Iterable[str]) -> int:
    """Mean position of tasks along the ordered workflow, as a 0-100 percentage.

    A task in status i of n contributes i/(n-1); tasks whose status is not in
    ``status_ids`` contribute 0. Rounds half up.
    """
    n = len(status_ids)
    task_status_ids = list(task_status_ids)
    if n <= 1 or not task_status_ids:
        return 0

    index = {status_id: i for i, status_id in enumerate(status_ids)}
    total = sum(index.get(status_id, 0) for status_id in task_status_ids)
    percentage = Fraction(total * 100, (n - 1) * len(task_status_ids))

    return max(0, min(100, math.floor(percentage + Fraction(1, 2))))


def category_at(entries: Sequence[ActivityEntry], at: datetime, current_category: str) -> str:
    """Category of a task at instant ``at``, reconstructed from its status history.

    ``entries`` are the task's status-bearing entries, oldest first.
    """
    latest_before: Optional[ActivityEntry] = None
    for entry in entries:
        if ensure_utc(entry.created_at) <= at:
            latest_before = entry
        else:
            if latest_before is None:
                return entry.from_category or entry.to_category or current_category
            break

    if latest_before is not None:
        return latest_before.to_category or current_category

    return current_category


class AnalyticsService:
    """Progress, burndown, velocity and cumulative flow, read back from the activity log"""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._logger = logging.getLogger(__name__)
        self._projects = ProjectService(db)
        self._workflow = WorkflowService(db)
        self._sprints = SprintService(db)
        self._activity = ActivityService(db)

    async def weighted_progress(
        self,
        project_id: ProjectId,
        sprint_id: Optional[SprintId] = None
    ) -> WeightedProgress:
        """Weighted progress of a sprint's tasks, or of the whole project"""

        from ..models.task import Task

        await self._projects.get_project(project_id)
        statuses = await self._workflow.list_statuses(project_id)

        stmt = select(Task.status_id).where(Task.project_id == project_id)
        if sprint_id is not None:
            stmt = stmt.where(Task.sprint_id == sprint_id)
        result = await self.db.execute(stmt)
        task_status_ids = list(result.scalars().all())

        return WeightedProgress(
            project_id=project_id,
            sprint_id=sprint_id,
            percentage=calculate_weighted_progress([s.status_id for s in statuses], task_status_ids),
            task_count=len(task_status_ids),
            status_count=len(statuses)
        )

    async def burndown(self, sprint_id: SprintId, today: Optional[date] = None) -> BurndownAnalysis:
        """Daily remaining points from sprint start to min(end, today)."""

        sprint = await self._sprints.get_sprint(sprint_id)
        today = today or utcnow().date()

        tasks = await self._burndown_tasks(sprint)
        categories = category_map(await self._workflow.list_statuses(sprint.project_id))
        history = await self._activity.status_history(task.id for task in tasks)

        daily_data: List[DailyBurndownPoint] = []
        current_date = sprint.start_date

        while current_date <= min(sprint.end_date, today):
            at = end_of_day(current_date)
            remaining = sum(
                task.story_points or 0
                for task in tasks
                if category_at(history[task.id], at, resolved_category(task, categories)) != DONE
            )

            daily_data.append(
                DailyBurndownPoint(
                    date=current_date,
                    remaining_points=remaining,
                    ideal_remaining=round(self._calculate_ideal_remaining(sprint, tasks, current_date), 2),
                    is_weekend=current_date.weekday() >= 5
                )
            )

            current_date += timedelta(days=1)

        current_metrics = self._calculate_current_metrics(sprint, tasks, categories, today)

        self._logger.debug("Burndown for sprint %d: %d points", sprint_id, len(daily_data))

        return BurndownAnalysis(
            sprint_id=sprint.id,
            sprint_name=sprint.name,
            daily_data=daily_data,
            current_metrics=current_metrics,
            completion_forecast=self._generate_completion_forecast(current_metrics, today),
            generated_at=datetime.now(timezone.utc)
        )

    async def velocity_chart(self, project_id: ProjectId, limit: Optional[int] = None) -> VelocityChart:
        """Committed vs completed points of the last ``limit`` completed sprints, oldest first."""

        from ..models.sprint import Sprint

        limit = limit or settings.velocity_window
        if limit < 1:
            raise ValidationError("Limit must be at least 1")

        await self._projects.get_project(project_id)

        stmt = (
            select(Sprint)
            .where(
                Sprint.project_id == project_id,
                Sprint.status == SprintStatus.COMPLETED.value
            )
            .order_by(desc(Sprint.completed_at), desc(Sprint.number))
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        newest_first = list(result.scalars().all())

        velocities = [float(sprint.completed_points or 0) for sprint in newest_first]

        if velocities:
            metrics = VelocityMetrics(
                average_velocity=round(sum(velocities) / len(velocities), 2),
                velocity_trend=self._analyze_velocity_trend(velocities),
                sprints_analyzed=len(velocities),
                confidence=self._calculate_confidence(velocities)
            )
        else:
            metrics = VelocityMetrics(
                average_velocity=0.0,
                velocity_trend=VelocityTrend.INSUFFICIENT_DATA,
                sprints_analyzed=0,
                confidence=ConfidenceLevel.LOW
            )

        return VelocityChart(
            project_id=project_id,
            sprints=[
                SprintVelocity(
                    sprint_id=sprint.id,
                    number=sprint.number,
                    name=sprint.name,
                    committed_points=sprint.committed_points or 0,
                    completed_points=sprint.completed_points or 0,
                    completed_at=ensure_utc(sprint.completed_at)
                )
                for sprint in reversed(newest_first)
            ],
            metrics=metrics
        )

    async def cumulative_flow(
        self,
        project_id: ProjectId,
        days: Optional[int] = None,
        today: Optional[date] = None
    ) -> CumulativeFlow:
        """Per-day task counts by category over the last ``days`` days."""

        from ..models.task import Task

        days = days or settings.cumulative_flow_days
        if not 1 <= days <= 365:
            raise ValidationError("Days must be between 1 and 365")

        await self._projects.get_project(project_id)
        today = today or utcnow().date()

        result = await self.db.execute(select(Task).where(Task.project_id == project_id))
        tasks = list(result.scalars().all())
        categories = category_map(await self._workflow.list_statuses(project_id))
        history = await self._activity.status_history(task.id for task in tasks)

        data: List[CumulativeFlowPoint] = []
        for offset in range(days - 1, -1, -1):
            day = today - timedelta(days=offset)
            at = end_of_day(day)
            counts: Dict[str, int] = {TODO: 0, IN_PROGRESS: 0, DONE: 0}

            for task in tasks:
                if ensure_utc(task.created_at) > at:
                    continue
                category = category_at(history[task.id], at, resolved_category(task, categories))
                if category in counts:
                    counts[category] += 1

            data.append(CumulativeFlowPoint(date=day, **counts))

        return CumulativeFlow(project_id=project_id, days=days, data=data)

    # Private methods

    async def _burndown_tasks(self, sprint: Sprint) -> List[Task]:
        """Tasks in the sprint now, plus those carried out of it at completion."""

        from ..models.task import Task

        tasks = await self._sprints.sprint_tasks(sprint.id)

        completion = await self._activity.latest_sprint_event(sprint.id, ActivityAction.SPRINT_COMPLETED)
        if completion is not None:
            known = {task.id for task in tasks}
            details = completion.details or {}
            moved_ids = [
                task_id
                for task_id in details.get("completed_task_ids", []) + details.get("incomplete_task_ids", [])
                if task_id not in known
            ]
            if moved_ids:
                result = await self.db.execute(select(Task).where(Task.id.in_(moved_ids)))
                tasks.extend(result.scalars().all())

        return tasks

    def _calculate_ideal_remaining(self, sprint: Sprint, tasks: List[Task], target_date: date) -> float:
        """Calculate ideal remaining work."""

        total_days = (sprint.end_date - sprint.start_date).days
        days_passed = (target_date - sprint.start_date).days

        if total_days <= 0:
            return 0.0

        baseline = float(
            sprint.committed_points
            or sprint.capacity
            or sum(task.story_points or 0 for task in tasks)
        )
        progress = days_passed / total_days

        return max(0.0, baseline * (1.0 - progress))

    def _calculate_current_metrics(
        self,
        sprint: Sprint,
        tasks: List[Task],
        categories: Dict[str, str],
        today: date
    ) -> CurrentSprintMetrics:
        """Calculate current sprint metrics."""

        if not tasks:
            return CurrentSprintMetrics(
                total_items=0,
                completed_items=0,
                in_progress_items=0,
                total_points=0,
                completed_points=0,
                remaining_points=0,
                completion_rate=0.0,
                current_velocity=0.0,
                days_elapsed=0,
                days_remaining=0
            )

        resolved = [(task, resolved_category(task, categories)) for task in tasks]

        total_items = len(tasks)
        completed_items = len([task for task, category in resolved if category == DONE])
        in_progress_items = len([task for task, category in resolved if category == IN_PROGRESS])

        total_points = sum(task.story_points or 0 for task in tasks)
        completed_points = sum(
            task.story_points or 0 for task, category in resolved if category == DONE
        )

        days_elapsed = max((min(today, sprint.end_date) - sprint.start_date).days, 0)
        days_remaining = max((sprint.end_date - today).days, 0)

        completion_rate = (completed_points / total_points * 100) if total_points > 0 else 0.0
        current_velocity = completed_points / max(days_elapsed, 1)

        return CurrentSprintMetrics(
            total_items=total_items,
            completed_items=completed_items,
            in_progress_items=in_progress_items,
            total_points=total_points,
            completed_points=completed_points,
            remaining_points=total_points - completed_points,
            completion_rate=round(completion_rate, 1),
            current_velocity=round(current_velocity, 2),
            days_elapsed=days_elapsed,
            days_remaining=days_remaining
        )

    def _generate_completion_forecast(self, metrics: CurrentSprintMetrics, today: date) -> CompletionForecast:
        """Generate completion forecast."""

        if metrics.total_items and metrics.remaining_points == 0:
            return CompletionForecast(
                completion_probability="complete",
                projected_completion_date=today,
                days_needed=0,
                likelihood="All committed work is done",
                recommendations=self._get_forecast_recommendations("high")
            )

        if metrics.current_velocity <= 0:
            return CompletionForecast(
                completion_probability="unknown",
                projected_completion_date=None,
                days_needed=None,
                likelihood="Cannot determine without velocity data",
                recommendations=["Track progress and update estimates"]
            )

        days_needed = int(metrics.remaining_points / metrics.current_velocity)
        projected_date = today + timedelta(days=days_needed)

        # Determine probability
        if days_needed <= metrics.days_remaining * 0.8:
            probability = "high"
            likelihood = "Very likely to complete on time"
        elif days_needed <= metrics.days_remaining:
            probability = "medium"
            likelihood = "Likely to complete on time"
        elif days_needed <= metrics.days_remaining * 1.2:
            probability = "low"
            likelihood = "May require scope adjustment"
        else:
            probability = "very_low"
            likelihood = "Unlikely without significant changes"

        return CompletionForecast(
            completion_probability=probability,
            projected_completion_date=projected_date,
            days_needed=days_needed,
            likelihood=likelihood,
            recommendations=self._get_forecast_recommendations(probability)
        )

    def _get_forecast_recommendations(self, probability: str) -> List[str]:
        """Get recommendations based on completion probability."""

        if probability == "very_low":
            return [
                "Consider reducing sprint scope immediately",
                "Move unstarted tasks back to the backlog",
                "Focus on highest priority items only"
            ]
        elif probability == "low":
            return [
                "Review scope and consider removing lower priority items",
                "Address any blockers quickly",
                "Increase team focus on sprint goal"
            ]
        elif probability == "medium":
            return [
                "Monitor progress closely",
                "Be prepared to adjust scope if needed"
            ]
        else:  # high
            return [
                "Current pace is good",
                "Maintain current momentum"
            ]

    def _analyze_velocity_trend(self, velocities: List[float]) -> VelocityTrend:
        """Analyze velocity trend. ``velocities`` is newest first."""

        if len(velocities) < 3:
            return VelocityTrend.INSUFFICIENT_DATA

        mid = len(velocities) // 2
        recent_avg = sum(velocities[:mid]) / mid
        older_avg = sum(velocities[mid:]) / (len(velocities) - mid)

        if recent_avg > older_avg * 1.15:
            return VelocityTrend.IMPROVING
        elif recent_avg < older_avg * 0.85:
            return VelocityTrend.DECLINING
        else:
            return VelocityTrend.STABLE

    def _calculate_confidence(self, velocities: List[float]) -> ConfidenceLevel:
        """Calculate confidence level."""

        if len(velocities) < 3:
            return ConfidenceLevel.LOW

        avg = sum(velocities) / len(velocities)
        if avg == 0:
            return ConfidenceLevel.LOW

        # Coefficient of variation
        variance = sum((v - avg) ** 2 for v in velocities) / len(velocities)
        std_dev = variance ** 0.5
        cv = std_dev / avg

        if len(velocities) >= 5 and cv < 0.2:
            return ConfidenceLevel.HIGH
        elif len(velocities) >= 3 and cv < 0.3:
            return ConfidenceLevel.MEDIUM
        else:
            return ConfidenceLevel.LOW
