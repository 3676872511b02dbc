from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

STUDIO_TIMEZONE = "America/New_York"


def local_day(offset_days: int) -> str:
    today = datetime.now(ZoneInfo(STUDIO_TIMEZONE)).date()
    return (today + timedelta(days=offset_days)).isoformat()


def test_buckets_split_upcoming_and_recent(sessions_client, book, studio):
    tomorrow = book(date=local_day(1), start_time="10:00", end_time="12:00").json()
    yesterday = book(date=local_day(-1), start_time="10:00", end_time="12:00").json()
    cancelled = book(date=local_day(2), start_time="10:00", end_time="12:00").json()
    sessions_client.patch(
        f"/studios/{studio.id}/sessions/{cancelled['id']}/status",
        json={"status": "cancelled"},
        headers=studio.owner_headers,
    )

    response = sessions_client.get(f"/studios/{studio.id}/sessions/buckets", headers=studio.member_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["today"] == local_day(0)
    assert body["timezone"] == STUDIO_TIMEZONE

    assert body["active"] == {"header": None, "total": 0, "groups": []}

    upcoming = body["upcoming"]
    assert upcoming["total"] == 1
    assert upcoming["header"].startswith("Tomorrow · ")
    assert upcoming["groups"][0]["header"] is None
    item = upcoming["groups"][0]["items"][0]
    assert item["session"]["id"] == tomorrow["id"]
    assert item["display_status"] == "scheduled"
    assert item["time_range"] == "10:00 AM - 12:00 PM"

    recent = body["recently_finished"]
    assert recent["total"] == 1
    assert recent["groups"][0]["date_key"] == local_day(-1)
    assert recent["groups"][0]["items"][0]["session"]["id"] == yesterday["id"]


def test_buckets_search_matches_client_and_room(sessions_client, book, studio):
    book(date=local_day(1), start_time="10:00", end_time="12:00")
    book(date=local_day(1), start_time="13:00", end_time="14:00", room_id=studio.room_b.id, client_id=studio.other_client.id)

    url = f"/studios/{studio.id}/sessions/buckets"
    by_client = sessions_client.get(url, params={"q": "night"}, headers=studio.member_headers).json()
    assert by_client["upcoming"]["total"] == 1
    assert by_client["upcoming"]["groups"][0]["items"][0]["session"]["client"]["name"] == "Night Shift"

    by_room = sessions_client.get(url, params={"q": " ROOM a "}, headers=studio.member_headers).json()
    assert by_room["upcoming"]["total"] == 1

    by_day = sessions_client.get(url, params={"q": local_day(1)}, headers=studio.member_headers).json()
    assert by_day["upcoming"]["total"] == 2


def test_buckets_require_membership(sessions_client, studio):
    response = sessions_client.get(f"/studios/{studio.id}/sessions/buckets", headers=studio.outsider_headers)
    assert response.status_code == 403


def test_availability_reports_conflicts(sessions_client, book, studio):
    existing = book(engineer_id=studio.engineer.id).json()
    url = f"/studios/{studio.id}/availability"

    busy = sessions_client.get(
        url,
        params={
            "room_id": studio.room_a.id,
            "engineer_id": studio.engineer.id,
            "start_at": "2030-03-12T11:00:00",
            "end_at": "2030-03-12T13:00:00",
        },
        headers=studio.member_headers,
    )
    assert busy.status_code == 200
    body = busy.json()
    assert body["available"] is False
    assert body["room_conflict"]["conflicting_session_id"] == existing["id"]
    assert body["engineer_conflict"]["conflicting_session_id"] == existing["id"]

    touching = sessions_client.get(
        url,
        params={"room_id": studio.room_a.id, "start_at": "2030-03-12T12:00:00", "end_at": "2030-03-12T13:00:00"},
        headers=studio.member_headers,
    )
    assert touching.json() == {"available": True, "room_conflict": None, "engineer_conflict": None}

    excluded = sessions_client.get(
        url,
        params={
            "room_id": studio.room_a.id,
            "start_at": "2030-03-12T11:00:00",
            "end_at": "2030-03-12T13:00:00",
            "exclude_session_id": existing["id"],
        },
        headers=studio.member_headers,
    )
    assert excluded.json()["available"] is True


def test_availability_validates_input(sessions_client, studio):
    url = f"/studios/{studio.id}/availability"

    inverted = sessions_client.get(
        url,
        params={"room_id": studio.room_a.id, "start_at": "2030-03-12T13:00:00", "end_at": "2030-03-12T12:00:00"},
        headers=studio.member_headers,
    )
    assert inverted.status_code == 400

    no_resource = sessions_client.get(
        url,
        params={"start_at": "2030-03-12T11:00:00", "end_at": "2030-03-12T12:00:00"},
        headers=studio.member_headers,
    )
    assert no_resource.status_code == 400

    missing_window = sessions_client.get(url, params={"room_id": studio.room_a.id}, headers=studio.member_headers)
    assert missing_window.status_code == 400
