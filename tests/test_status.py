import pytest


def set_status(client, studio, session_id, value, headers=None):
    return client.patch(
        f"/studios/{studio.id}/sessions/{session_id}/status",
        json={"status": value},
        headers=headers or studio.owner_headers,
    )


def test_session_runs_through_its_lifecycle(sessions_client, book, studio):
    created = book().json()

    started = set_status(sessions_client, studio, created["id"], "in_progress")
    assert started.status_code == 200
    assert started.json() == {"status": "in_progress"}

    done = set_status(sessions_client, studio, created["id"], "completed")
    assert done.json() == {"status": "completed"}


def test_finished_is_stored_as_completed(sessions_client, book, studio):
    created = book().json()

    response = set_status(sessions_client, studio, created["id"], "finished")
    assert response.status_code == 200
    assert response.json() == {"status": "completed"}

    stored = sessions_client.get(f"/studios/{studio.id}/sessions/{created['id']}", headers=studio.owner_headers)
    assert stored.json()["status"] == "completed"


@pytest.mark.parametrize("value", ["live", "active", "no_show", "bogus", ""])
def test_unsupported_status_values_are_rejected(sessions_client, book, studio, value):
    created = book().json()

    response = set_status(sessions_client, studio, created["id"], value)
    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"
    assert response.json()["message"] == "Unsupported status transition"


def test_terminal_status_cannot_be_reopened(sessions_client, book, studio):
    created = book().json()
    set_status(sessions_client, studio, created["id"], "completed")

    response = set_status(sessions_client, studio, created["id"], "scheduled")
    assert response.status_code == 400
    body = response.json()
    assert body["current_status"] == "completed"
    assert body["requested_status"] == "scheduled"


def test_same_status_is_a_no_op(sessions_client, book, studio):
    created = book().json()

    response = set_status(sessions_client, studio, created["id"], "scheduled")
    assert response.status_code == 200
    assert response.json() == {"status": "scheduled"}


def test_restoring_a_cancelled_session_rechecks_conflicts(sessions_client, book, studio):
    first = book().json()
    set_status(sessions_client, studio, first["id"], "cancelled")
    replacement = book().json()

    blocked = set_status(sessions_client, studio, first["id"], "scheduled")
    assert blocked.status_code == 409
    assert blocked.json()["error"] == "ROOM_CONFLICT"
    assert blocked.json()["conflict_details"]["conflicting_session_id"] == replacement["id"]

    set_status(sessions_client, studio, replacement["id"], "cancelled")
    restored = set_status(sessions_client, studio, first["id"], "scheduled")
    assert restored.status_code == 200


def test_status_change_requires_admin(sessions_client, book, studio):
    created = book().json()

    response = set_status(sessions_client, studio, created["id"], "cancelled", headers=studio.member_headers)
    assert response.status_code == 403


def test_status_change_on_missing_session(sessions_client, studio):
    response = set_status(sessions_client, studio, "missing", "cancelled")
    assert response.status_code == 404
