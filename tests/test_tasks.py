"""Task store: creation, patching, transitions and board moves."""

from datetime import date, timedelta

import pytest
from sqlalchemy import select

from sprintboard.core.exceptions import NotFoundError, ValidationError
from sprintboard.models import ActivityEntry
from sprintboard.services.sprint_service import SprintService
from sprintboard.services.task_service import TaskService, blank_to_none
from sprintboard.services.workflow_service import WorkflowService


async def activity_for(db, task_id):
    result = await db.execute(
        select(ActivityEntry).where(ActivityEntry.task_id == task_id).order_by(ActivityEntry.id)
    )
    return list(result.scalars().all())


async def planning_sprint(db, project_id, name="Sprint 1"):
    today = date.today()
    return await SprintService(db).create_sprint(
        project_id, name=name, start_date=today, end_date=today + timedelta(days=14), goal="Ship"
    )


class TestCreateTask:
    @pytest.mark.asyncio
    async def test_numbering_and_initial_status(self, db, project_id):
        service = TaskService(db)
        first = await service.create_task(project_id, title="First", actor="user-lead")
        second = await service.create_task(project_id, title="Second")

        assert first.key == "PRJ-1"
        assert second.key == "PRJ-2"
        assert first.status == {"id": "backlog", "name": "Backlog", "category": "todo"}
        assert first.status_version == 1
        assert first.reporter == "user-lead"
        assert first.completed_at is None

    @pytest.mark.asyncio
    async def test_logs_creation(self, db, project_id):
        task = await TaskService(db).create_task(project_id, title="Logged")

        entries = await activity_for(db, task.id)
        assert [e.action for e in entries] == ["task_created"]
        assert entries[0].from_category is None
        assert entries[0].to_status == "backlog"
        assert entries[0].to_category == "todo"

    @pytest.mark.asyncio
    async def test_explicit_status(self, db, project_id):
        task = await TaskService(db).create_task(project_id, title="Started", status_id="in-progress")
        assert task.status_category == "in_progress"

    @pytest.mark.asyncio
    async def test_unknown_status_rejected(self, db, project_id):
        with pytest.raises(ValidationError):
            await TaskService(db).create_task(project_id, title="Lost", status_id="limbo")

    @pytest.mark.asyncio
    async def test_blank_optionals_normalized(self, db, project_id):
        task = await TaskService(db).create_task(
            project_id,
            title="Blank",
            assignee="",
            story_points="",
            due_date="",
            start_date="  ",
            sprint_id="",
            description="",
        )

        assert task.assignee is None
        assert task.story_points is None
        assert task.due_date is None
        assert task.start_date is None
        assert task.sprint_id is None
        assert task.description is None

    @pytest.mark.asyncio
    async def test_sprint_must_be_open_and_local(self, db, project_id):
        with pytest.raises(ValidationError):
            await TaskService(db).create_task(project_id, title="Orphan", sprint_id=999)

    @pytest.mark.asyncio
    async def test_planned_into_sprint(self, db, project_id):
        sprint = await planning_sprint(db, project_id)
        task = await TaskService(db).create_task(project_id, title="Planned", sprint_id=sprint.id, story_points=3)
        assert task.sprint_id == sprint.id

    @pytest.mark.asyncio
    async def test_empty_title_rejected(self, db, project_id):
        with pytest.raises(ValidationError):
            await TaskService(db).create_task(project_id, title="   ")

    def test_blank_to_none(self):
        assert blank_to_none("") is None
        assert blank_to_none(" ") is None
        assert blank_to_none(0) == 0
        assert blank_to_none("x") == "x"


class TestUpdateTask:
    @pytest.mark.asyncio
    async def test_patch_fields(self, db, project_id):
        service = TaskService(db)
        task = await service.create_task(project_id, title="Draft")
        task_id = task.id

        task = await service.update_task(task_id, {"title": "Final", "story_points": 5, "assignee": ""})

        assert task.title == "Final"
        assert task.story_points == 5
        assert task.assignee is None
        assert task.status_id == "backlog"

        entries = await activity_for(db, task_id)
        assert entries[-1].action == "task_updated"
        assert entries[-1].details["changes"] == {"title": "Final", "story_points": 5}

    @pytest.mark.asyncio
    async def test_status_cannot_be_patched(self, db, project_id):
        task = await TaskService(db).create_task(project_id, title="Stay")
        with pytest.raises(ValidationError):
            await TaskService(db).update_task(task.id, {"status_id": "done"})

    @pytest.mark.asyncio
    async def test_snapshot_refreshed_on_write(self, db, project_id):
        service = TaskService(db)
        task = await service.create_task(project_id, title="Snap")
        task_id = task.id

        await WorkflowService(db).update_status(project_id, "backlog", {"name": "Icebox"})
        task = await service.update_task(task_id, {"priority": "high"})

        assert task.status_name == "Icebox"
        assert task.status_version == 2

    @pytest.mark.asyncio
    async def test_missing_task(self, db, project_id):
        with pytest.raises(NotFoundError):
            await TaskService(db).update_task(999, {"title": "Ghost"})


class TestStatusMovement:
    @pytest.mark.asyncio
    async def test_move_any_to_any(self, db, project_id):
        service = TaskService(db)
        task = await service.create_task(project_id, title="Jump")
        task_id = task.id

        task = await service.move_task(task_id, "done")
        assert task.status_category == "done"
        assert task.completed_at is not None

        task = await service.move_task(task_id, "backlog")
        assert task.status_id == "backlog"
        assert task.completed_at is None

        entries = await activity_for(db, task_id)
        assert [e.action for e in entries] == ["task_created", "task_moved", "task_moved"]
        assert (entries[1].from_category, entries[1].to_category) == ("todo", "done")

    @pytest.mark.asyncio
    async def test_transition_records_comment(self, db, project_id):
        service = TaskService(db)
        task = await service.create_task(project_id, title="Review me")
        task_id = task.id

        await service.transition_task(task_id, "in-review", comment="Ready for eyes")

        entries = await activity_for(db, task_id)
        assert entries[-1].action == "status_changed"
        assert entries[-1].comment == "Ready for eyes"
        assert entries[-1].to_status == "in-review"

    @pytest.mark.asyncio
    async def test_unknown_target_rejected(self, db, project_id):
        service = TaskService(db)
        task = await service.create_task(project_id, title="Nowhere")
        task_id = task.id

        with pytest.raises(ValidationError):
            await service.move_task(task_id, "limbo")
        with pytest.raises(ValidationError):
            await service.transition_task(task_id, "limbo")

    @pytest.mark.asyncio
    async def test_same_target_is_a_no_op(self, db, project_id):
        service = TaskService(db)
        task = await service.create_task(project_id, title="Again")
        task_id = task.id

        await service.move_task(task_id, "in-progress")
        task = await service.move_task(task_id, "in-progress")

        assert task.status_id == "in-progress"
        entries = await activity_for(db, task_id)
        assert [e.action for e in entries] == ["task_created", "task_moved"]

    @pytest.mark.asyncio
    async def test_move_to_backlog_clears_sprint(self, db, project_id):
        sprint = await planning_sprint(db, project_id)
        service = TaskService(db)
        task = await service.create_task(project_id, title="Bounce", sprint_id=sprint.id)

        task = await service.move_task(task.id, "ready", sprint_id=None)

        assert task.sprint_id is None
        assert task.status_id == "ready"

    @pytest.mark.asyncio
    async def test_move_keeps_sprint_when_unset(self, db, project_id):
        sprint = await planning_sprint(db, project_id)
        service = TaskService(db)
        task = await service.create_task(project_id, title="Stay put", sprint_id=sprint.id)

        task = await service.move_task(task.id, "ready")
        assert task.sprint_id == sprint.id

    @pytest.mark.asyncio
    async def test_column_order_appends_and_can_be_set(self, db, project_id):
        service = TaskService(db)
        a = await service.create_task(project_id, title="A")
        b = await service.create_task(project_id, title="B")
        assert (a.column_order, b.column_order) == (0, 1)

        moved = await service.move_task(b.id, "ready")
        assert moved.column_order == 0

        moved = await service.move_task(a.id, "ready", column_order=5)
        assert moved.column_order == 5

    @pytest.mark.asyncio
    async def test_listing_and_backlog(self, db, project_id):
        sprint = await planning_sprint(db, project_id)
        service = TaskService(db)
        await service.create_task(project_id, title="In sprint", sprint_id=sprint.id)
        await service.create_task(project_id, title="Loose")

        assert [t.title for t in await service.list_tasks(project_id, sprint_id=sprint.id)] == ["In sprint"]
        assert [t.title for t in await service.list_backlog(project_id)] == ["Loose"]
        assert len(await service.list_tasks(project_id)) == 2
