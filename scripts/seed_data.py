#!/usr/bin/env python3
"""
Seed Data Script for Sprintboard

Creates a demo scrum project for development:
- 1 Project seeded with the scrum workflow and board
- 1 Active sprint, started 3 days ago
- ~20 tasks spread over the workflow and the backlog

Usage:
    python scripts/seed_data.py              # Add seed data
    python scripts/seed_data.py --clear      # Clear all data first
"""
import asyncio
import sys
import os
from datetime import date, timedelta
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sprintboard.core.auth import Principal
from sprintboard.database import async_session, engine
from sprintboard.models import (
    ActivityEntry,
    Base,
    Board,
    BoardColumn,
    Project,
    Sprint,
    Task,
    WorkflowStatus,
)
from sprintboard.services.project_service import ProjectService
from sprintboard.services.sprint_service import SprintService
from sprintboard.services.task_service import TaskService


# ==================== DATA DEFINITIONS ====================

DEMO_LEAD = Principal(id="alice", organization_id="demo-org", role="lead")

# Tasks planned into the sprint, with the status they end up in
SPRINT_TASKS = [
    {"title": "Password Reset Flow", "priority": "high", "story_points": 3, "status": "done"},
    {"title": "API Rate Limiting", "priority": "high", "story_points": 3, "status": "done"},
    {"title": "Pagination for Lists", "priority": "medium", "story_points": 2, "status": "in-review"},
    {"title": "User Profile Page", "priority": "medium", "story_points": 5, "status": "in-progress"},
    {"title": "Error Logging System", "priority": "high", "story_points": 3, "status": "in-progress"},
    {"title": "CSV Import", "priority": "medium", "story_points": 5, "status": "ready"},
    {"title": "Two-Factor Authentication", "priority": "medium", "story_points": 8, "status": "ready"},
]

BACKLOG_TASKS = [
    {"title": "Admin Dashboard", "priority": "high", "story_points": 8},
    {"title": "Social Media Sharing", "priority": "low", "story_points": 3},
    {"title": "Export to Excel", "priority": "medium", "story_points": 3},
    {"title": "Dark Mode", "priority": "low", "story_points": 5},
    {"title": "Audit Log", "priority": "low", "story_points": 5},
    {"title": "Webhook System", "priority": "low", "story_points": 8},
    {"title": "Improve Performance", "priority": "high", "story_points": None},
    {"title": "Mobile App", "priority": "high", "story_points": None},
]


# ==================== SEED FUNCTIONS ====================

async def clear_all_data(session: AsyncSession):
    """Clear all data from the database"""
    print("🗑️  Clearing existing data...")

    # Delete in correct order (respecting foreign keys)
    for model in (ActivityEntry, Task, Sprint, BoardColumn, Board, WorkflowStatus, Project):
        await session.execute(delete(model))

    await session.commit()
    print("✅ All data cleared")


async def create_project(session: AsyncSession) -> Project:
    print("\n📁 Creating project...")

    project = await ProjectService(session).create_project(
        DEMO_LEAD,
        key="DEMO",
        name="Demo Product",
        methodology="scrum",
        description="Sample project for local development"
    )

    print(f"  ✓ Created: {project.name} ({project.key}), methodology {project.methodology}")
    return project


async def create_sprint(session: AsyncSession, project: Project) -> Sprint:
    print(f"\n🏃 Creating sprint for {project.name}...")

    sprint_start = date.today() - timedelta(days=3)
    sprint = await SprintService(session).create_sprint(
        project.id,
        name="Sprint 1",
        goal="Harden authentication and ship profile pages",
        start_date=sprint_start,
        end_date=sprint_start + timedelta(days=14),
        capacity=40,
        creator_id=DEMO_LEAD.id
    )

    print(f"  ✓ Created: {sprint.name}")
    print(f"    Start: {sprint.start_date}, End: {sprint.end_date}")
    return sprint


async def create_tasks(session: AsyncSession, project: Project, sprint: Sprint):
    print(f"\n📋 Creating tasks for {project.name}...")

    service = TaskService(session)
    sprint_task_ids = []
    for item in SPRINT_TASKS:
        task = await service.create_task(
            project.id,
            title=item["title"],
            actor=DEMO_LEAD.id,
            priority=item["priority"],
            story_points=item["story_points"],
            sprint_id=sprint.id
        )
        sprint_task_ids.append((task.id, item["status"]))

    for item in BACKLOG_TASKS:
        await service.create_task(
            project.id,
            title=item["title"],
            actor=DEMO_LEAD.id,
            priority=item["priority"],
            story_points=item["story_points"]
        )

    print(f"  ✓ Created {len(SPRINT_TASKS)} sprint tasks and {len(BACKLOG_TASKS)} backlog tasks")
    return sprint_task_ids


async def start_and_progress(session: AsyncSession, sprint: Sprint, sprint_task_ids):
    print(f"\n🚀 Starting {sprint.name}...")

    sprint = await SprintService(session).start_sprint(sprint.id, participants=[DEMO_LEAD.id], actor=DEMO_LEAD.id)
    print(f"  ✓ Committed {sprint.committed_points} points")

    service = TaskService(session)
    for task_id, status_id in sprint_task_ids:
        await service.move_task(task_id, status_id, actor=DEMO_LEAD.id)

    print(f"  ✓ Moved {len(sprint_task_ids)} tasks across the board")


# ==================== MAIN ====================

async def seed_database(clear_first: bool = False):
    """Main seed function"""
    print("=" * 60)
    print("🌱 Sprintboard - Database Seeding")
    print("=" * 60)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        if clear_first:
            await clear_all_data(session)

        project = await create_project(session)
        sprint = await create_sprint(session, project)
        sprint_task_ids = await create_tasks(session, project, sprint)
        await start_and_progress(session, sprint, sprint_task_ids)

    await engine.dispose()

    print("\n" + "=" * 60)
    print("✅ Database seeding complete!")
    print("=" * 60)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Seed Sprintboard database")
    parser.add_argument("--clear", action="store_true", help="Clear all data before seeding")
    args = parser.parse_args()

    asyncio.run(seed_database(clear_first=args.clear))
