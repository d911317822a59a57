from __future__ import annotations

from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from crmdesk.models.entities import SharedTaskGrant, User


def _headers(user: User) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


def _create_event(client: TestClient, user: User, **overrides: object) -> dict:
    payload = {"title": "Client call", "start_time": "2026-03-10T09:00:00", "end_time": "2026-03-10T10:00:00"}
    payload.update(overrides)
    response = client.post("/api/v1/events", headers=_headers(user), json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _create_task(client: TestClient, user: User, **overrides: object) -> dict:
    payload = {"title": "Send proposal", "priority": "high"}
    payload.update(overrides)
    response = client.post("/api/v1/tasks", headers=_headers(user), json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _share(client: TestClient, owner: User, task_id: str, users: list[User], permission: str = "view"):
    return client.post(
        f"/api/v1/tasks/{task_id}/share",
        headers=_headers(owner),
        json={"user_ids": [str(user.id) for user in users], "permission_level": permission},
    )


# ---------- Events ----------
def test_create_personal_and_shared_events(client: TestClient, alice: User) -> None:
    personal = _create_event(client, alice)
    shared = _create_event(client, alice, title="Team sync", is_shared=True)

    assert personal["is_shared"] is False
    assert personal["owner_id"] == str(alice.id)
    assert shared["is_shared"] is True
    assert shared["owner_id"] is None
    assert shared["created_by"] == str(alice.id)


def test_event_end_before_start_is_rejected(client: TestClient, alice: User) -> None:
    response = client.post(
        "/api/v1/events",
        headers=_headers(alice),
        json={"title": "Backwards", "start_time": "2026-03-10T10:00:00", "end_time": "2026-03-10T09:00:00"},
    )

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_update_with_only_end_time_compares_against_stored_start(client: TestClient, alice: User) -> None:
    event = _create_event(client, alice, start_time="2026-10-20T10:00:00+00:00", end_time=None, is_shared=True)

    response = client.put(
        f"/api/v1/events/{event['id']}",
        headers=_headers(alice),
        json={"end_time": "2026-10-20T11:00:00+00:00"},
    )
    assert response.status_code == 200, response.text
    assert response.json()["data"]["end_time"] == "2026-10-20T11:00:00+00:00"

    response = client.put(
        f"/api/v1/events/{event['id']}",
        headers=_headers(alice),
        json={"end_time": "2026-10-20T09:00:00+00:00"},
    )
    assert response.status_code == 400


def test_create_event_with_mixed_offsets_is_normalized_to_utc(client: TestClient, alice: User) -> None:
    event = _create_event(client, alice, start_time="2026-10-20T10:00:00Z", end_time="2026-10-20T11:00:00")

    assert event["start_time"] == "2026-10-20T10:00:00+00:00"
    assert event["end_time"] == "2026-10-20T11:00:00+00:00"

    # 12:00+02:00 is 10:00 UTC, before the naive 11:00 start.
    response = client.post(
        "/api/v1/events",
        headers=_headers(alice),
        json={"title": "Offset", "start_time": "2026-10-20T11:00:00", "end_time": "2026-10-20T12:00:00+02:00"},
    )
    assert response.status_code == 400


def test_personal_event_is_hidden_from_other_users(client: TestClient, alice: User, bob: User) -> None:
    event = _create_event(client, alice)

    assert client.get(f"/api/v1/events/{event['id']}", headers=_headers(alice)).status_code == 200
    assert client.get(f"/api/v1/events/{event['id']}", headers=_headers(bob)).status_code == 404
    assert client.put(
        f"/api/v1/events/{event['id']}", headers=_headers(bob), json={"title": "Hijacked"}
    ).status_code == 404
    assert client.delete(f"/api/v1/events/{event['id']}", headers=_headers(bob)).status_code == 404


def test_toggling_event_sharing_keeps_owner_consistent(client: TestClient, alice: User, bob: User) -> None:
    event = _create_event(client, alice)

    response = client.put(f"/api/v1/events/{event['id']}", headers=_headers(alice), json={"is_shared": True})
    assert response.status_code == 200
    assert response.json()["data"]["owner_id"] is None

    # Bob can now see and edit it; making it personal hands it to him.
    response = client.put(f"/api/v1/events/{event['id']}", headers=_headers(bob), json={"is_shared": False})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["is_shared"] is False
    assert data["owner_id"] == str(bob.id)
    assert client.get(f"/api/v1/events/{event['id']}", headers=_headers(alice)).status_code == 404


def test_list_events_date_window_is_half_open(client: TestClient, alice: User) -> None:
    _create_event(client, alice, title="Early", start_time="2026-03-01T08:00:00", end_time=None)
    _create_event(client, alice, title="Middle", start_time="2026-03-05T08:00:00", end_time=None)
    _create_event(client, alice, title="Boundary", start_time="2026-03-10T08:00:00", end_time=None)

    response = client.get(
        "/api/v1/events",
        headers=_headers(alice),
        params={"start_date": "2026-03-01", "end_date": "2026-03-10"},
    )

    assert response.status_code == 200
    assert [row["title"] for row in response.json()["data"]] == ["Early", "Middle"]


def test_list_events_rejects_inverted_window(client: TestClient, alice: User) -> None:
    response = client.get(
        "/api/v1/events",
        headers=_headers(alice),
        params={"start_date": "2026-03-10", "end_date": "2026-03-01"},
    )

    assert response.status_code == 400


def test_delete_event(client: TestClient, alice: User) -> None:
    event = _create_event(client, alice)

    response = client.delete(f"/api/v1/events/{event['id']}", headers=_headers(alice))
    assert response.status_code == 204
    assert client.get(f"/api/v1/events/{event['id']}", headers=_headers(alice)).status_code == 404


# ---------- Tasks ----------
def test_task_defaults_to_caller_as_assignee(client: TestClient, alice: User) -> None:
    task = _create_task(client, alice)

    assert task["assignee_id"] == str(alice.id)
    assert task["status"] == "pending"
    assert task["priority"] == "high"


def test_task_for_unknown_assignee_is_rejected(client: TestClient, alice: User) -> None:
    response = client.post(
        "/api/v1/tasks",
        headers=_headers(alice),
        json={"title": "Orphan", "assignee_id": "00000000-0000-0000-0000-000000000009"},
    )

    assert response.status_code == 400


def test_task_filters(client: TestClient, alice: User) -> None:
    _create_task(client, alice, title="Done", status="completed")
    _create_task(client, alice, title="Open", status="pending", priority="low")

    response = client.get("/api/v1/tasks", headers=_headers(alice), params={"status": "completed"})
    assert [row["title"] for row in response.json()["data"]] == ["Done"]

    response = client.get("/api/v1/tasks", headers=_headers(alice), params={"priority": "low"})
    assert [row["title"] for row in response.json()["data"]] == ["Open"]


def test_share_task_grants_visibility(client: TestClient, alice: User, bob: User, carol: User) -> None:
    task = _create_task(client, alice)

    response = _share(client, alice, task["id"], [bob])
    assert response.status_code == 201
    grants = response.json()["data"]
    assert [grant["grantee_id"] for grant in grants] == [str(bob.id)]
    assert grants[0]["permission_level"] == "view"
    assert grants[0]["granted_by"] == str(alice.id)

    bob_tasks = client.get("/api/v1/tasks", headers=_headers(bob), params={"view": "shared"}).json()["data"]
    assert [row["id"] for row in bob_tasks] == [task["id"]]
    assert client.get("/api/v1/tasks", headers=_headers(bob), params={"view": "personal"}).json()["data"] == []
    assert client.get("/api/v1/tasks", headers=_headers(carol)).json()["data"] == []
    assert client.get(f"/api/v1/tasks/{task['id']}", headers=_headers(carol)).status_code == 404

    # Sharing never touches the task row itself.
    refreshed = client.get(f"/api/v1/tasks/{task['id']}", headers=_headers(alice)).json()["data"]
    assert refreshed["assignee_id"] == str(alice.id)
    assert refreshed["is_shared"] is False


def test_resharing_updates_permission_without_duplicates(
    client: TestClient,
    db_session: Session,
    alice: User,
    bob: User,
) -> None:
    task = _create_task(client, alice)

    assert _share(client, alice, task["id"], [bob]).status_code == 201
    response = _share(client, alice, task["id"], [bob, bob], permission="edit")
    assert response.status_code == 201
    assert [grant["permission_level"] for grant in response.json()["data"]] == ["edit"]

    count = db_session.scalar(select(func.count(SharedTaskGrant.id)))
    assert count == 1


def test_sharing_with_assignee_is_skipped(client: TestClient, alice: User) -> None:
    task = _create_task(client, alice)

    response = _share(client, alice, task["id"], [alice])

    assert response.status_code == 201
    assert response.json()["data"] == []


def test_share_requires_at_least_one_user(client: TestClient, alice: User) -> None:
    task = _create_task(client, alice)

    response = client.post(f"/api/v1/tasks/{task['id']}/share", headers=_headers(alice), json={"user_ids": []})

    assert response.status_code == 400


def test_view_grantee_cannot_edit_or_share(client: TestClient, alice: User, bob: User, carol: User) -> None:
    task = _create_task(client, alice)
    _share(client, alice, task["id"], [bob])

    assert client.put(
        f"/api/v1/tasks/{task['id']}", headers=_headers(bob), json={"status": "completed"}
    ).status_code == 404
    assert _share(client, bob, task["id"], [carol]).status_code == 404
    assert client.delete(f"/api/v1/tasks/{task['id']}", headers=_headers(bob)).status_code == 404


def test_edit_grantee_can_update_but_not_delete(client: TestClient, alice: User, bob: User) -> None:
    task = _create_task(client, alice)
    _share(client, alice, task["id"], [bob], permission="edit")

    response = client.put(f"/api/v1/tasks/{task['id']}", headers=_headers(bob), json={"status": "in_progress"})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "in_progress"

    assert client.delete(f"/api/v1/tasks/{task['id']}", headers=_headers(bob)).status_code == 404


def test_unshare_revokes_visibility(client: TestClient, alice: User, bob: User) -> None:
    task = _create_task(client, alice)
    _share(client, alice, task["id"], [bob])

    response = client.delete(f"/api/v1/tasks/{task['id']}/share/{bob.id}", headers=_headers(alice))
    assert response.status_code == 204
    assert client.get(f"/api/v1/tasks/{task['id']}", headers=_headers(bob)).status_code == 404

    response = client.delete(f"/api/v1/tasks/{task['id']}/share/{bob.id}", headers=_headers(alice))
    assert response.status_code == 404


def test_list_grants(client: TestClient, alice: User, bob: User, carol: User) -> None:
    task = _create_task(client, alice)
    _share(client, alice, task["id"], [bob, carol])

    response = client.get(f"/api/v1/tasks/{task['id']}/grants", headers=_headers(bob))

    assert response.status_code == 200
    assert {grant["grantee_id"] for grant in response.json()["data"]} == {str(bob.id), str(carol.id)}


def test_deleting_task_removes_its_grants(client: TestClient, db_session: Session, alice: User, bob: User) -> None:
    task = _create_task(client, alice)
    _share(client, alice, task["id"], [bob])

    response = client.delete(f"/api/v1/tasks/{task['id']}", headers=_headers(alice))

    assert response.status_code == 204
    assert db_session.scalar(select(func.count(SharedTaskGrant.id))) == 0
    assert client.get("/api/v1/tasks", headers=_headers(bob)).json()["data"] == []


def test_calendar_stats(client: TestClient, alice: User, bob: User) -> None:
    _create_event(client, alice, start_time="2999-01-01T09:00:00", end_time=None)
    _create_event(client, alice, start_time="2000-01-01T09:00:00", end_time=None)
    _create_event(client, bob, start_time="2999-01-01T09:00:00", end_time=None)
    _create_task(client, alice, status="completed", priority="low")
    _create_task(client, alice, status="pending", priority="high")
    _create_task(client, alice, status="pending", priority="high")
    _create_task(client, bob)

    response = client.get("/api/v1/calendar/stats", headers=_headers(alice))

    assert response.status_code == 200
    stats = response.json()["data"]
    assert stats["upcoming_events"] == 1
    assert stats["total_tasks"] == 3
    assert stats["completed_tasks"] == 1
    assert stats["tasks_by_status"] == {"completed": 1, "pending": 2}
    assert stats["tasks_by_priority"] == {"low": 1, "high": 2}
    assert stats["completion_rate"] == "33.33"
