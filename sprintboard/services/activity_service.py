from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from ..models.activity import ActivityEntry
from ..core.constants import ActivityAction, STATUS_BEARING_ACTIONS
from ..utils.dates import utcnow


class ActivityService:
    """Append-only activity log shared by the task, sprint and workflow services.

    Entries are added to the caller's session and committed with the caller's
    transaction, so a rolled-back mutation never leaves a log entry behind.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def record(
        self,
        project_id: int,
        action: ActivityAction,
        task_id: Optional[int] = None,
        sprint_id: Optional[int] = None,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        from_category: Optional[str] = None,
        to_category: Optional[str] = None,
        actor: Optional[str] = None,
        comment: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        at: Optional[datetime] = None,
    ) -> ActivityEntry:
        entry = ActivityEntry(
            project_id=project_id,
            task_id=task_id,
            sprint_id=sprint_id,
            action=action.value,
            from_status=from_status,
            to_status=to_status,
            from_category=from_category,
            to_category=to_category,
            actor=actor,
            comment=comment,
            details=details or {},
            created_at=at or utcnow(),
        )
        self.db.add(entry)
        return entry

    async def list_for_project(
        self,
        project_id: int,
        action: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ActivityEntry]:
        stmt = select(ActivityEntry).where(ActivityEntry.project_id == project_id)

        if action:
            stmt = stmt.where(ActivityEntry.action == action)

        stmt = stmt.order_by(desc(ActivityEntry.created_at), desc(ActivityEntry.id))
        stmt = stmt.limit(limit).offset(offset)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def status_history(self, task_ids: Iterable[int]) -> Dict[int, List[ActivityEntry]]:
        """Status-bearing entries per task, oldest first."""

        ids = list(task_ids)
        history: Dict[int, List[ActivityEntry]] = {task_id: [] for task_id in ids}
        if not ids:
            return history

        stmt = (
            select(ActivityEntry)
            .where(
                ActivityEntry.task_id.in_(ids),
                ActivityEntry.action.in_(STATUS_BEARING_ACTIONS),
            )
            .order_by(ActivityEntry.created_at, ActivityEntry.id)
        )
        result = await self.db.execute(stmt)

        for entry in result.scalars().all():
            history[entry.task_id].append(entry)

        return history

    async def latest_sprint_event(self, sprint_id: int, action: ActivityAction) -> Optional[ActivityEntry]:
        stmt = (
            select(ActivityEntry)
            .where(
                ActivityEntry.sprint_id == sprint_id,
                ActivityEntry.action == action.value,
            )
            .order_by(desc(ActivityEntry.created_at), desc(ActivityEntry.id))
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
