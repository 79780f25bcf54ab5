"""HTTP surface: envelopes, authorization and an end-to-end board flow."""

from datetime import date, timedelta

import pytest

from .conftest import auth_headers


async def create_project(client, principal, key="WEB", methodology="scrum"):
    response = await client.post(
        "/api/v1/projects",
        json={"key": key, "name": "Web", "methodology": methodology},
        headers=auth_headers(principal),
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]["id"]


class TestEnvelopes:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_missing_token_is_unauthorized(self, client):
        response = await client.get("/api/v1/projects/1")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"]["kind"] == "unauthorized"

    @pytest.mark.asyncio
    async def test_garbage_token_is_unauthorized(self, client):
        response = await client.get("/api/v1/projects/1", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_not_found(self, client, lead):
        response = await client.get("/api/v1/projects/999", headers=auth_headers(lead))

        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "not_found"

    @pytest.mark.asyncio
    async def test_body_validation_is_400(self, client, lead):
        project_id = await create_project(client, lead)
        response = await client.post(
            f"/api/v1/projects/{project_id}/sprints",
            json={"name": "No dates"},
            headers=auth_headers(lead),
        )

        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "validation"


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_other_organization_forbidden(self, client, lead, outsider):
        project_id = await create_project(client, lead)

        response = await client.get(f"/api/v1/projects/{project_id}", headers=auth_headers(outsider))

        assert response.status_code == 403
        assert response.json()["error"]["kind"] == "forbidden"

    @pytest.mark.asyncio
    async def test_viewer_reads_but_cannot_write(self, client, lead, viewer):
        project_id = await create_project(client, lead)

        read = await client.get(f"/api/v1/projects/{project_id}/board", headers=auth_headers(viewer))
        assert read.status_code == 200

        write = await client.post(
            f"/api/v1/projects/{project_id}/tasks", json={"title": "Nope"}, headers=auth_headers(viewer)
        )
        assert write.status_code == 403

    @pytest.mark.asyncio
    async def test_member_cannot_change_workflow(self, client, lead, member):
        project_id = await create_project(client, lead)

        response = await client.post(
            f"/api/v1/projects/{project_id}/workflow/statuses",
            json={"id": "qa", "category": "in_progress"},
            headers=auth_headers(member),
        )
        assert response.status_code == 403

        task = await client.post(
            f"/api/v1/projects/{project_id}/tasks", json={"title": "Allowed"}, headers=auth_headers(member)
        )
        assert task.status_code == 201


class TestBoardFlow:
    @pytest.mark.asyncio
    async def test_workflow_board_and_tasks(self, client, lead):
        headers = auth_headers(lead)
        project_id = await create_project(client, lead, key="FLOW", methodology="kanban")

        added = await client.post(
            f"/api/v1/projects/{project_id}/workflow/statuses",
            json={"id": "qa-review", "category": "in_progress"},
            headers=headers,
        )
        assert added.status_code == 201
        assert added.json()["data"]["order"] == 4

        board = (await client.get(f"/api/v1/projects/{project_id}/board", headers=headers)).json()["data"]
        assert [c["status_id"] for c in board["columns"]] == ["todo", "in-progress", "review", "done", "qa-review"]
        assert board["columns"][-1]["color"] == "#F59E0B"

        created = await client.post(
            f"/api/v1/projects/{project_id}/tasks",
            json={"title": "Build it", "assignee": "", "story_points": ""},
            headers=headers,
        )
        assert created.status_code == 201
        task = created.json()["data"]
        assert task["key"] == "FLOW-1"
        assert task["status"] == {"id": "todo", "name": "To Do", "category": "todo"}
        assert task["assignee"] is None
        assert task["story_points"] is None

        moved = await client.post(
            f"/api/v1/tasks/{task['id']}/move", json={"status_id": "done"}, headers=headers
        )
        assert moved.status_code == 200
        assert moved.json()["data"]["status"]["category"] == "done"

        unknown = await client.post(
            f"/api/v1/tasks/{task['id']}/transition", json={"status_id": "limbo"}, headers=headers
        )
        assert unknown.status_code == 400

        conflict = await client.delete(
            f"/api/v1/projects/{project_id}/workflow/statuses/done", headers=headers
        )
        assert conflict.status_code == 409
        assert conflict.json()["error"]["kind"] == "conflict"

        full = (await client.get(f"/api/v1/projects/{project_id}/board/full", headers=headers)).json()["data"]
        assert set(full["tasks_by_status"]) == {"todo", "in-progress", "review", "done", "qa-review"}
        assert [t["key"] for t in full["tasks_by_status"]["done"]] == ["FLOW-1"]
        assert full["unmapped_tasks"] == []
        assert full["active_sprint"] is None
        assert full["weighted_progress"] == 75
        done_column = next(c for c in full["board"]["columns"] if c["status_id"] == "done")
        assert done_column["task_count"] == 1

    @pytest.mark.asyncio
    async def test_reorder_route(self, client, lead):
        headers = auth_headers(lead)
        project_id = await create_project(client, lead, key="ORD", methodology="kanban")

        response = await client.patch(
            f"/api/v1/projects/{project_id}/workflow/statuses/reorder",
            json={"ordered_ids": ["done", "todo", "in-progress", "review"]},
            headers=headers,
        )
        assert response.status_code == 200
        assert [s["status_id"] for s in response.json()["data"]] == ["done", "todo", "in-progress", "review"]

        bad = await client.patch(
            f"/api/v1/projects/{project_id}/workflow/statuses/reorder",
            json={"ordered_ids": ["done"]},
            headers=headers,
        )
        assert bad.status_code == 400

    @pytest.mark.asyncio
    async def test_wip_limit_flags_column(self, client, lead):
        headers = auth_headers(lead)
        project_id = await create_project(client, lead, key="WIP", methodology="kanban")

        limited = await client.patch(
            f"/api/v1/projects/{project_id}/board/columns/todo", json={"wip_limit": 1}, headers=headers
        )
        assert limited.status_code == 200

        for title in ("One", "Two"):
            await client.post(f"/api/v1/projects/{project_id}/tasks", json={"title": title}, headers=headers)

        full = (await client.get(f"/api/v1/projects/{project_id}/board/full", headers=headers)).json()["data"]
        todo = full["board"]["columns"][0]
        assert (todo["wip_limit"], todo["task_count"], todo["over_wip_limit"]) == (1, 2, True)


class TestSprintFlow:
    @pytest.mark.asyncio
    async def test_sprint_lifecycle_over_http(self, client, lead):
        headers = auth_headers(lead)
        project_id = await create_project(client, lead, key="SPR")
        today = date.today()

        def sprint_body(name):
            return {
                "name": name,
                "goal": "Ship",
                "start_date": today.isoformat(),
                "end_date": (today + timedelta(days=10)).isoformat(),
            }

        s1 = (await client.post(f"/api/v1/projects/{project_id}/sprints", json=sprint_body("S1"), headers=headers)).json()["data"]
        s2 = (await client.post(f"/api/v1/projects/{project_id}/sprints", json=sprint_body("S2"), headers=headers)).json()["data"]

        task_ids = []
        for points in (5, 3):
            created = await client.post(
                f"/api/v1/projects/{project_id}/tasks",
                json={"title": f"{points} pts", "sprint_id": s1["id"], "story_points": points},
                headers=headers,
            )
            task_ids.append(created.json()["data"]["id"])
        await client.post(
            f"/api/v1/projects/{project_id}/tasks",
            json={"title": "S2 work", "sprint_id": s2["id"], "story_points": 1},
            headers=headers,
        )

        started = await client.post(f"/api/v1/sprints/{s1['id']}/start", json={}, headers=headers)
        assert started.status_code == 200
        assert started.json()["data"]["committed_points"] == 8

        second = await client.post(f"/api/v1/sprints/{s2['id']}/start", json={}, headers=headers)
        assert second.status_code == 409

        full = (await client.get(f"/api/v1/projects/{project_id}/board/full", headers=headers)).json()["data"]
        assert full["active_sprint"]["id"] == s1["id"]
        assert sum(len(tasks) for tasks in full["tasks_by_status"].values()) == 2

        await client.post(f"/api/v1/tasks/{task_ids[0]}/move", json={"status_id": "done"}, headers=headers)

        refused = await client.post(f"/api/v1/sprints/{s1['id']}/complete", json={}, headers=headers)
        assert refused.status_code == 400

        completed = await client.post(
            f"/api/v1/sprints/{s1['id']}/complete", json={"move_incomplete_to_backlog": True}, headers=headers
        )
        assert completed.status_code == 200
        assert completed.json()["data"]["completed_points"] == 5

        backlog = (await client.get(f"/api/v1/projects/{project_id}/backlog", headers=headers)).json()["data"]
        assert [t["id"] for t in backlog] == [task_ids[1]]

        velocity = (await client.get(f"/api/v1/analytics/projects/{project_id}/velocity", headers=headers)).json()["data"]
        assert [s["completed_points"] for s in velocity["sprints"]] == [5]

        burndown = await client.get(f"/api/v1/analytics/sprints/{s1['id']}/burndown", headers=headers)
        assert burndown.status_code == 200

        flow = await client.get(
            f"/api/v1/analytics/projects/{project_id}/cumulative-flow?days=7", headers=headers
        )
        assert len(flow.json()["data"]["data"]) == 7

        activity = (await client.get(f"/api/v1/projects/{project_id}/activity", headers=headers)).json()["data"]
        assert activity[0]["action"] == "sprint_completed"
