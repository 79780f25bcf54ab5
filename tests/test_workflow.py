"""Workflow registry and board synchronization."""

import pytest
from sqlalchemy import select

from sprintboard.core.exceptions import ConflictError, NotFoundError, ValidationError
from sprintboard.models import ActivityEntry
from sprintboard.services.board_service import BoardService, default_color
from sprintboard.services.project_service import ProjectService
from sprintboard.services.task_service import TaskService
from sprintboard.services.workflow_service import WorkflowService, humanize, reindex


SCRUM_IDS = ["backlog", "ready", "in-progress", "in-review", "done"]


async def status_ids(db, project_id):
    return [s.status_id for s in await WorkflowService(db).list_statuses(project_id)]


async def column_ids(db, project_id):
    board = await BoardService(db).get_board(project_id)
    return [c.status_id for c in board.columns]


class TestHelpers:
    def test_humanize(self):
        assert humanize("qa-review") == "Qa Review"
        assert humanize("in_progress") == "In Progress"

    def test_default_color(self):
        assert default_color("done") == "#10B981"
        assert default_color("in_progress") == "#F59E0B"
        assert default_color("todo") == "#6B7280"
        assert default_color(None) == "#6B7280"


class TestProjectBootstrap:
    @pytest.mark.asyncio
    async def test_scrum_defaults_seeded(self, db, project_id):
        assert await status_ids(db, project_id) == SCRUM_IDS
        assert await column_ids(db, project_id) == SCRUM_IDS

        initial = await WorkflowService(db).get_initial_status(project_id)
        assert initial.status_id == "backlog"

    @pytest.mark.asyncio
    async def test_kanban_defaults_seeded(self, db, lead):
        project = await ProjectService(db).create_project(lead, key="KAN", name="Flow", methodology="kanban")
        assert await status_ids(db, project.id) == ["todo", "in-progress", "review", "done"]

    @pytest.mark.asyncio
    async def test_duplicate_key_conflicts(self, db, lead, project_id):
        with pytest.raises(ConflictError):
            await ProjectService(db).create_project(lead, key="PRJ", name="Again")

    @pytest.mark.asyncio
    async def test_unknown_methodology_rejected(self, db, lead):
        with pytest.raises(ValidationError):
            await ProjectService(db).create_project(lead, key="BAD", name="Bad", methodology="chaos")

    @pytest.mark.asyncio
    async def test_missing_project(self, db):
        with pytest.raises(NotFoundError):
            await ProjectService(db).get_project(999)


class TestAddStatus:
    @pytest.mark.asyncio
    async def test_qa_review_becomes_last_column(self, db, project_id):
        await WorkflowService(db).add_status(project_id, status_id="qa-review", category="in_progress")

        board = await BoardService(db).get_board(project_id)
        last = board.columns[-1]
        assert last.status_id == "qa-review"
        assert last.name == "Qa Review"
        assert last.color == "#F59E0B"
        assert last.category == "in_progress"
        assert [c.order for c in board.columns] == list(range(6))

    @pytest.mark.asyncio
    async def test_bumps_version_and_logs(self, db, project_id):
        await WorkflowService(db).add_status(project_id, status_id="blocked", category="todo", actor="user-lead")

        project = await ProjectService(db).get_project(project_id)
        assert project.workflow_version == 2

        result = await db.execute(
            select(ActivityEntry).where(ActivityEntry.action == "workflow_changed")
        )
        entries = list(result.scalars().all())
        assert len(entries) == 1
        assert entries[0].details["status_id"] == "blocked"

    @pytest.mark.asyncio
    async def test_duplicate_id_conflicts(self, db, project_id):
        with pytest.raises(ConflictError):
            await WorkflowService(db).add_status(project_id, status_id="done", category="done")

    @pytest.mark.asyncio
    async def test_bad_slug_and_category_rejected(self, db, project_id):
        service = WorkflowService(db)
        with pytest.raises(ValidationError):
            await service.add_status(project_id, status_id="Not A Slug", category="todo")
        with pytest.raises(ValidationError):
            await service.add_status(project_id, status_id="parked", category="someday")

    @pytest.mark.asyncio
    async def test_initial_flag_moves(self, db, project_id):
        service = WorkflowService(db)
        await service.add_status(project_id, status_id="triage", category="todo", is_initial=True)

        statuses = await service.list_statuses(project_id)
        assert [s.status_id for s in statuses if s.is_initial] == ["triage"]
        assert (await service.get_initial_status(project_id)).status_id == "triage"


class TestUpdateStatus:
    @pytest.mark.asyncio
    async def test_partial_update_reaches_board(self, db, project_id):
        await WorkflowService(db).update_status(project_id, "ready", {"name": "Ready for Dev", "color": "#000000"})

        board = await BoardService(db).get_board(project_id)
        column = next(c for c in board.columns if c.status_id == "ready")
        assert column.name == "Ready for Dev"
        assert column.color == "#000000"

    @pytest.mark.asyncio
    async def test_cleared_color_falls_back_to_category(self, db, project_id):
        await WorkflowService(db).update_status(project_id, "done", {"color": None})

        board = await BoardService(db).get_board(project_id)
        assert board.columns[-1].color == "#10B981"

    @pytest.mark.asyncio
    async def test_missing_status(self, db, project_id):
        with pytest.raises(NotFoundError):
            await WorkflowService(db).update_status(project_id, "nope", {"name": "Nope"})

    @pytest.mark.asyncio
    async def test_order_is_immutable(self, db, project_id):
        with pytest.raises(ValidationError):
            await WorkflowService(db).update_status(project_id, "ready", {"order": 0})

    @pytest.mark.asyncio
    async def test_single_initial_status(self, db, project_id):
        service = WorkflowService(db)
        await service.update_status(project_id, "ready", {"is_initial": True})

        statuses = await service.list_statuses(project_id)
        assert [s.status_id for s in statuses if s.is_initial] == ["ready"]


class TestDeleteStatus:
    @pytest.mark.asyncio
    async def test_referenced_status_conflicts_and_nothing_changes(self, db, project_id):
        await TaskService(db).create_task(project_id, title="Pinned", status_id="ready")

        with pytest.raises(ConflictError):
            await WorkflowService(db).delete_status(project_id, "ready")

        assert await status_ids(db, project_id) == SCRUM_IDS
        assert await column_ids(db, project_id) == SCRUM_IDS
        project = await ProjectService(db).get_project(project_id)
        assert project.workflow_version == 1

    @pytest.mark.asyncio
    async def test_unreferenced_status_removed_and_order_dense(self, db, project_id):
        service = WorkflowService(db)
        await service.delete_status(project_id, "ready")

        statuses = await service.list_statuses(project_id)
        assert [s.status_id for s in statuses] == ["backlog", "in-progress", "in-review", "done"]
        assert [s.order for s in statuses] == [0, 1, 2, 3]
        assert await column_ids(db, project_id) == ["backlog", "in-progress", "in-review", "done"]

    @pytest.mark.asyncio
    async def test_missing_status(self, db, project_id):
        with pytest.raises(NotFoundError):
            await WorkflowService(db).delete_status(project_id, "nope")


class TestReorderStatuses:
    @pytest.mark.asyncio
    async def test_permutation_round_trips(self, db, three_status_project_id):
        service = WorkflowService(db)
        await service.reorder_statuses(three_status_project_id, ["done", "backlog", "in-progress"])

        assert await status_ids(db, three_status_project_id) == ["done", "backlog", "in-progress"]
        assert await column_ids(db, three_status_project_id) == ["done", "backlog", "in-progress"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "ordered",
        [
            ["done", "backlog"],
            ["done", "backlog", "backlog"],
            ["done", "backlog", "in-progress", "extra"],
        ],
    )
    async def test_non_permutation_rejected(self, db, three_status_project_id, ordered):
        with pytest.raises(ValidationError):
            await WorkflowService(db).reorder_statuses(three_status_project_id, ordered)

        assert await status_ids(db, three_status_project_id) == ["backlog", "in-progress", "done"]

    def test_reindex_reports_problems(self):
        class Row:
            def __init__(self, status_id):
                self.status_id = status_id
                self.order = None

        rows = [Row("a"), Row("b")]
        with pytest.raises(ValidationError) as exc_info:
            reindex(rows, ["a", "a", "c"])

        assert exc_info.value.details == {"duplicates": ["a"], "missing": ["b"], "unknown": ["c"]}


class TestBoardColumns:
    @pytest.mark.asyncio
    async def test_sync_is_idempotent(self, db, project_id):
        service = BoardService(db)
        first = [(c.id, c.status_id) for c in (await service.get_board(project_id)).columns]
        second = [(c.id, c.status_id) for c in (await service.get_board(project_id)).columns]
        assert first == second

    @pytest.mark.asyncio
    async def test_wip_limit_survives_resync(self, db, project_id):
        service = BoardService(db)
        await service.update_column(project_id, "in-progress", {"wip_limit": 3})
        await WorkflowService(db).add_status(project_id, status_id="qa", category="in_progress")

        board = await service.get_board(project_id)
        column = next(c for c in board.columns if c.status_id == "in-progress")
        assert column.wip_limit == 3

    @pytest.mark.asyncio
    async def test_negative_wip_limit_rejected(self, db, project_id):
        with pytest.raises(ValidationError):
            await BoardService(db).update_column(project_id, "in-progress", {"wip_limit": -1})

    @pytest.mark.asyncio
    async def test_create_column_adds_status(self, db, project_id):
        board = await BoardService(db).create_column(
            project_id, name="QA Review", category="in_progress", wip_limit=2
        )

        assert board.columns[-1].status_id == "qa-review"
        assert board.columns[-1].wip_limit == 2
        assert (await status_ids(db, project_id))[-1] == "qa-review"

    @pytest.mark.asyncio
    async def test_column_reorder_and_delete_go_through_registry(self, db, three_status_project_id):
        service = BoardService(db)
        board = await service.reorder_columns(three_status_project_id, ["in-progress", "backlog", "done"])
        assert [c.status_id for c in board.columns] == ["in-progress", "backlog", "done"]

        board = await service.delete_column(three_status_project_id, "in-progress")
        assert [c.status_id for c in board.columns] == ["backlog", "done"]
        assert await status_ids(db, three_status_project_id) == ["backlog", "done"]
