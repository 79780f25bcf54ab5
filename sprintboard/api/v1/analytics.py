from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from ...database import get_db
from ...core.auth import Principal, get_current_principal
from ...services.analytics_service import AnalyticsService
from ...services.sprint_service import SprintService
from ..deps import authorized_project, success

router = APIRouter()


@router.get("/sprints/{sprint_id}/burndown", response_model=dict)
async def get_sprint_burndown(
    sprint_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Get burndown chart data for sprint"""

    sprint = await SprintService(db).get_sprint(sprint_id)
    await authorized_project(db, principal, sprint.project_id)

    burndown = await AnalyticsService(db).burndown(sprint_id)

    return success(burndown)


@router.get("/projects/{project_id}/velocity", response_model=dict)
async def get_velocity(
    project_id: int,
    limit: Optional[int] = Query(None, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Committed vs completed points of recent sprints"""

    await authorized_project(db, principal, project_id)
    chart = await AnalyticsService(db).velocity_chart(project_id, limit=limit)

    return success(chart)


@router.get("/projects/{project_id}/cumulative-flow", response_model=dict)
async def get_cumulative_flow(
    project_id: int,
    days: Optional[int] = Query(None, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    await authorized_project(db, principal, project_id)
    flow = await AnalyticsService(db).cumulative_flow(project_id, days=days)

    return success(flow)


@router.get("/projects/{project_id}/progress", response_model=dict)
async def get_progress(
    project_id: int,
    sprint_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Weighted progress of the active sprint, a given sprint, or the whole project"""

    await authorized_project(db, principal, project_id)

    if sprint_id is None:
        active = await SprintService(db).get_active_sprint(project_id)
        sprint_id = active.id if active else None

    progress = await AnalyticsService(db).weighted_progress(project_id, sprint_id=sprint_id)

    return success(progress)
