"""HTTP-level tests: status codes, error bodies, actor resolution."""
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from taskmanager_core.api.main import app
from taskmanager_core.database import get_db
from taskmanager_core.models import UserRole


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def as_user(actor):
    return {"X-User-Id": str(actor.id)}


def create_task(client, actor, project, title="API task"):
    response = client.post(
        "/api/v1/tasks/",
        json={
            "title": title,
            "user_story": "As a user I want an API",
            "acceptance_criteria": "It responds",
            "project_id": str(project.id),
        },
        headers=as_user(actor),
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestActorResolution:
    def test_missing_header_is_401(self, client):
        response = client.get("/api/v1/tasks/")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthenticated"

    def test_malformed_header_is_401(self, client):
        response = client.get("/api/v1/tasks/", headers={"X-User-Id": "not-a-uuid"})
        assert response.status_code == 401

    def test_unknown_user_is_401(self, client):
        response = client.get("/api/v1/tasks/", headers={"X-User-Id": str(uuid4())})
        assert response.status_code == 401

    def test_health_needs_no_actor(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestTaskEndpoints:
    def test_create_and_fetch(self, client, project, team_leader):
        body = create_task(client, team_leader, project)
        assert body["state"] == "BACKLOG"
        assert body["version"] == 1

        response = client.get(f"/api/v1/tasks/{body['id']}", headers=as_user(team_leader))
        assert response.status_code == 200
        assert response.json()["title"] == "API task"

    def test_state_change_flow(self, client, project, team_leader, team_member):
        task_id = create_task(client, team_leader, project)["id"]

        response = client.patch(
            f"/api/v1/tasks/{task_id}/state",
            json={"state": "IN_ANALYSIS"},
            headers=as_user(team_member),
        )
        assert response.status_code == 200
        assert response.json()["state"] == "IN_ANALYSIS"
        assert response.json()["version"] == 2

        history = client.get(f"/api/v1/task-state-histories/task/{task_id}", headers=as_user(team_member))
        assert history.status_code == 200
        assert [(e["old_state"], e["new_state"]) for e in history.json()] == [
            ("BACKLOG", "IN_ANALYSIS"),
            (None, "BACKLOG"),
        ]

    def test_invalid_transition_is_400(self, client, project, team_leader):
        task_id = create_task(client, team_leader, project)["id"]
        response = client.patch(
            f"/api/v1/tasks/{task_id}/state",
            json={"state": "COMPLETED", "reason": "done"},
            headers=as_user(team_leader),
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_state_transition"
        assert body["details"]["from"] == "BACKLOG"
        assert body["details"]["to"] == "COMPLETED"

    def test_missing_reason_is_400(self, client, project, team_leader):
        task_id = create_task(client, team_leader, project)["id"]
        response = client.patch(
            f"/api/v1/tasks/{task_id}/state",
            json={"state": "CANCELLED", "reason": "  "},
            headers=as_user(team_leader),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "missing_required_reason"

    def test_stale_version_is_409(self, client, project, team_leader):
        task_id = create_task(client, team_leader, project)["id"]
        response = client.patch(
            f"/api/v1/tasks/{task_id}/state",
            json={"state": "IN_ANALYSIS", "expected_version": 7},
            headers=as_user(team_leader),
        )
        assert response.status_code == 409
        assert response.json()["details"]["current_version"] == 1

    def test_team_member_delete_is_403(self, client, project, team_leader, team_member):
        task_id = create_task(client, team_leader, project)["id"]
        response = client.delete(f"/api/v1/tasks/{task_id}", headers=as_user(team_member))
        assert response.status_code == 403
        assert response.json()["error"] == "permission_denied"

    def test_delete_is_204_then_404(self, client, project, team_leader):
        task_id = create_task(client, team_leader, project)["id"]
        response = client.delete(f"/api/v1/tasks/{task_id}", headers=as_user(team_leader))
        assert response.status_code == 204

        response = client.get(f"/api/v1/tasks/{task_id}", headers=as_user(team_leader))
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_request_body_validation_is_400(self, client, project, team_leader):
        response = client.post(
            "/api/v1/tasks/",
            json={"title": "x", "project_id": str(project.id)},
            headers=as_user(team_leader),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_allowed_transitions(self, client, project, team_leader):
        task_id = create_task(client, team_leader, project)["id"]
        response = client.get(f"/api/v1/tasks/{task_id}/allowed-transitions", headers=as_user(team_leader))
        assert response.status_code == 200
        assert response.json()["allowed_transitions"] == ["IN_ANALYSIS", "CANCELLED"]


class TestProjectEndpoints:
    def test_duplicate_member_is_409(self, client, build, project, pm, dept):
        member = build.user(UserRole.TEAM_MEMBER, department=dept)
        url = f"/api/v1/projects/{project.id}/members/{member.id}"

        first = client.post(url, headers=as_user(pm))
        assert first.status_code == 200
        assert first.json()["team_member_ids"] == [str(member.id)]

        second = client.post(url, headers=as_user(pm))
        assert second.status_code == 409
        assert str(member.id) in second.json()["message"]

    def test_remove_non_member_is_409(self, client, build, project, pm, dept):
        user = build.user(UserRole.TEAM_MEMBER, department=dept)
        response = client.delete(f"/api/v1/projects/{project.id}/members/{user.id}", headers=as_user(pm))
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    def test_create_project(self, client, pm, dept):
        response = client.post(
            "/api/v1/projects/",
            json={"title": "Mobile app", "department_id": dept.id},
            headers=as_user(pm),
        )
        assert response.status_code == 201
        assert response.json()["status"] == "PENDING"


class TestDepartmentAndUserEndpoints:
    def test_admin_creates_department_and_user(self, client, admin):
        response = client.post("/api/v1/departments/", json={"name": "Research"}, headers=as_user(admin))
        assert response.status_code == 201
        department_id = response.json()["id"]

        response = client.post(
            "/api/v1/users/",
            json={
                "first_name": "Marie",
                "last_name": "Curie",
                "email": "marie@example.com",
                "department_id": department_id,
                "roles": ["TEAM_LEADER"],
            },
            headers=as_user(admin),
        )
        assert response.status_code == 201
        assert response.json()["roles"] == ["TEAM_LEADER"]

    def test_duplicate_department_is_409(self, client, admin, dept):
        response = client.post("/api/v1/departments/", json={"name": dept.name}, headers=as_user(admin))
        assert response.status_code == 409

    def test_me(self, client, team_member):
        response = client.get("/api/v1/users/me", headers=as_user(team_member))
        assert response.status_code == 200
        assert response.json()["id"] == str(team_member.id)


class TestCommentEndpoints:
    def test_comment_lifecycle(self, client, project, team_leader, team_member):
        task_id = create_task(client, team_leader, project)["id"]

        response = client.post(
            "/api/v1/comments/",
            json={"task_id": task_id, "content": "Picking this up"},
            headers=as_user(team_member),
        )
        assert response.status_code == 201
        comment = response.json()
        assert comment["task_title"] == "API task"
        assert comment["user_id"] == str(team_member.id)

        listed = client.get(f"/api/v1/comments/task/{task_id}", headers=as_user(team_leader))
        assert [c["id"] for c in listed.json()] == [comment["id"]]

        response = client.put(
            f"/api/v1/comments/{comment['id']}",
            json={"content": "Done"},
            headers=as_user(team_member),
        )
        assert response.json()["content"] == "Done"

        response = client.delete(f"/api/v1/comments/{comment['id']}", headers=as_user(team_leader))
        assert response.status_code == 204
        assert client.get(f"/api/v1/comments/{comment['id']}", headers=as_user(team_member)).status_code == 404

    def test_blank_comment_is_400(self, client, project, team_leader):
        task_id = create_task(client, team_leader, project)["id"]
        response = client.post(
            "/api/v1/comments/",
            json={"task_id": task_id, "content": "   "},
            headers=as_user(team_leader),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_team_member_cannot_list_by_user_403(self, client, team_member):
        response = client.get(f"/api/v1/comments/user/{team_member.id}", headers=as_user(team_member))
        assert response.status_code == 403
