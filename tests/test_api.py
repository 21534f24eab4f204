import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from threadfolio.core.security import create_access_token
from threadfolio.main import CORS_ALLOW_HEADERS, CORS_ALLOW_METHODS, app

MONDAY = "2025-03-03"


@pytest.fixture
def client():
    # Each lifespan disposes the in-memory engine, so every test starts from an empty database
    with TestClient(app) as c:
        yield c


@pytest.fixture
def shop_id(client, auth_headers):
    response = client.post("/api/v1/shops", json={"name": "Atelier"}, headers=auth_headers())
    assert response.status_code == 201
    return response.json()["id"]


def _book(client, headers, shop_id, start, end, day=MONDAY, **extra):
    body = {"shop_id": shop_id, "title": "Fitting", "date": day, "start_time": start, "end_time": end, **extra}
    return client.post("/api/v1/appointments", json=body, headers=headers)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_requires_bearer_token(client):
    response = client.get("/api/v1/shops")
    assert response.status_code == 401
    assert response.json()["code"] == "unauthorized"
    assert response.headers["WWW-Authenticate"] == "Bearer"

    response = client.get("/api/v1/shops", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_shop_listing_is_per_owner(client, auth_headers, shop_id):
    mine = client.get("/api/v1/shops", headers=auth_headers()).json()
    assert [s["id"] for s in mine] == [shop_id]
    theirs = client.get("/api/v1/shops", headers=auth_headers("owner-2")).json()
    assert theirs == []


def test_booking_conflict_flow(client, auth_headers, shop_id):
    headers = auth_headers()
    first = _book(client, headers, shop_id, "10:00:00", "11:00:00")
    assert first.status_code == 201
    body = first.json()
    assert body["status"] == "scheduled"
    assert body["type"] == "other"

    clash = _book(client, headers, shop_id, "10:30:00", "11:30:00")
    assert clash.status_code == 409
    assert clash.json()["code"] == "conflict"

    adjacent = _book(client, headers, shop_id, "11:00:00", "12:00:00")
    assert adjacent.status_code == 201

    out_of_hours = _book(client, headers, shop_id, "17:00:00", "18:00:00")
    assert out_of_hours.status_code == 422
    assert out_of_hours.json()["code"] == "out_of_hours"

    inverted = _book(client, headers, shop_id, "12:00:00", "11:00:00")
    assert inverted.status_code == 422
    assert inverted.json()["code"] == "validation_error"

    listed = client.get(
        "/api/v1/appointments",
        params={"shop_id": shop_id, "start_date": MONDAY, "end_date": MONDAY},
        headers=headers,
    ).json()
    assert [a["start_time"] for a in listed] == ["10:00:00", "11:00:00"]


def test_reschedule_and_cancel(client, auth_headers, shop_id):
    headers = auth_headers()
    appointment_id = _book(client, headers, shop_id, "10:00:00", "11:00:00").json()["id"]
    other_id = _book(client, headers, shop_id, "13:00:00", "14:00:00").json()["id"]

    moved = client.patch(
        f"/api/v1/appointments/{appointment_id}",
        json={"start_time": "10:30:00", "end_time": "11:30:00"},
        headers=headers,
    )
    assert moved.status_code == 200
    assert moved.json()["start_time"] == "10:30:00"

    clash = client.patch(
        f"/api/v1/appointments/{other_id}",
        json={"start_time": "11:00:00", "end_time": "12:00:00"},
        headers=headers,
    )
    assert clash.status_code == 409

    cancelled = client.post(f"/api/v1/appointments/{appointment_id}/cancel", headers=headers)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    again = client.post(f"/api/v1/appointments/{appointment_id}/cancel", headers=headers)
    assert again.json() == cancelled.json()

    fetched = client.get(f"/api/v1/appointments/{appointment_id}", headers=headers)
    assert fetched.json()["status"] == "cancelled"

    with_cancelled = client.get(
        "/api/v1/appointments",
        params={"shop_id": shop_id, "start_date": MONDAY, "end_date": MONDAY, "include_cancelled": True},
        headers=headers,
    ).json()
    assert {a["id"] for a in with_cancelled} == {appointment_id, other_id}


def test_other_owner_sees_not_found(client, auth_headers, shop_id):
    appointment_id = _book(client, auth_headers(), shop_id, "10:00:00", "11:00:00").json()["id"]
    stranger = auth_headers("owner-2")

    assert client.get(f"/api/v1/appointments/{appointment_id}", headers=stranger).status_code == 404
    response = _book(client, stranger, shop_id, "12:00:00", "13:00:00")
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_counts_endpoint(client, auth_headers, shop_id):
    headers = auth_headers()
    _book(client, headers, shop_id, "10:00:00", "11:00:00")
    _book(client, headers, shop_id, "12:00:00", "13:00:00")
    _book(client, headers, shop_id, "10:00:00", "11:00:00", day="2025-03-04")

    response = client.get(
        "/api/v1/appointments/counts",
        params={"shop_id": shop_id, "start_date": MONDAY, "end_date": "2025-03-09"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["counts"] == {MONDAY: 2, "2025-03-04": 1}


def test_cached_counts_refresh_after_each_change(counts_redis, client, auth_headers, shop_id):
    headers = auth_headers()
    params = {"shop_id": shop_id, "start_date": MONDAY, "end_date": MONDAY}

    def counts():
        response = client.get("/api/v1/appointments/counts", params=params, headers=headers)
        assert response.status_code == 200
        return response.json()["counts"]

    assert counts() == {}
    assert counts() == {}

    booked = _book(client, headers, shop_id, "10:00:00", "11:00:00").json()
    assert counts() == {MONDAY: 1}

    client.patch(f"/api/v1/appointments/{booked['id']}", json={"date": "2025-03-04"}, headers=headers)
    assert counts() == {}

    # A rejected booking changes nothing and the cached entry still holds
    clash = _book(client, headers, shop_id, "10:00:00", "11:00:00", day="2025-03-04")
    assert clash.status_code == 409
    assert counts() == {}


def test_error_responses_carry_cors_headers(client):
    response = client.get("/api/v1/shops", headers={"Origin": "http://localhost:3000"})
    assert response.status_code == 401
    assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert response.headers["Access-Control-Allow-Headers"] == ", ".join(CORS_ALLOW_HEADERS)
    assert response.headers["Access-Control-Allow-Methods"] == ", ".join(CORS_ALLOW_METHODS)


def test_available_slots(client, auth_headers, shop_id):
    headers = auth_headers()
    client.put(
        f"/api/v1/shops/{shop_id}/calendar-settings",
        json={"buffer_time_minutes": 0, "default_appointment_duration": 60},
        headers=headers,
    )
    _book(client, headers, shop_id, "10:00:00", "11:00:00")

    response = client.get(
        "/api/v1/slots/available", params={"shop_id": shop_id, "date": MONDAY}, headers=headers
    )
    assert response.status_code == 200
    slots = response.json()["slots"]
    assert len(slots) == 8
    assert [s["start_time"] for s in slots if not s["available"]] == ["10:00:00"]

    sunday = client.get(
        "/api/v1/slots/available", params={"shop_id": shop_id, "date": "2025-03-09"}, headers=headers
    )
    assert sunday.json()["slots"] == []


def test_shop_hours_round_trip(client, auth_headers, shop_id):
    headers = auth_headers()
    defaults = client.get(f"/api/v1/shops/{shop_id}/hours", headers=headers).json()
    assert len(defaults) == 7
    assert defaults[0]["is_closed"] is True  # Sunday
    assert defaults[1]["open_time"] == "09:00:00"

    saved = client.put(
        f"/api/v1/shops/{shop_id}/hours",
        json=[
            {"day_of_week": 1, "open_time": "12:00:00", "close_time": "20:00:00"},
            {"day_of_week": 2, "is_closed": True},
        ],
        headers=headers,
    )
    assert saved.status_code == 200
    assert saved.json()[1]["close_time"] == "20:00:00"

    evening = _book(client, headers, shop_id, "18:00:00", "19:00:00")
    assert evening.status_code == 201

    duplicate = client.put(
        f"/api/v1/shops/{shop_id}/hours",
        json=[
            {"day_of_week": 1, "open_time": "12:00:00", "close_time": "20:00:00"},
            {"day_of_week": 1, "is_closed": True},
        ],
        headers=headers,
    )
    assert duplicate.status_code == 422

    bad = client.put(
        f"/api/v1/shops/{shop_id}/hours",
        json=[{"day_of_week": 3, "open_time": "18:00:00", "close_time": "09:00:00"}],
        headers=headers,
    )
    assert bad.status_code == 422


def test_appointment_with_client(client, auth_headers, shop_id):
    headers = auth_headers()
    created = client.post(
        f"/api/v1/shops/{shop_id}/clients",
        json={"first_name": "Grace", "last_name": "Hopper", "email": "grace@example.com"},
        headers=headers,
    )
    assert created.status_code == 201
    client_id = created.json()["id"]

    booked = _book(client, headers, shop_id, "10:00:00", "11:00:00", client_id=client_id)
    assert booked.json()["client"]["first_name"] == "Grace"


def test_stream_pushes_changes(client, auth_headers, shop_id):
    token = create_access_token("owner-1")
    with client.websocket_connect(f"/api/v1/appointments/stream?shop_id={shop_id}&token={token}") as ws:
        booked = _book(client, auth_headers(), shop_id, "10:00:00", "11:00:00").json()
        message = ws.receive_json()
        assert message["event"] == "created"
        assert message["appointment"]["id"] == booked["id"]

        client.post(f"/api/v1/appointments/{booked['id']}/cancel", headers=auth_headers())
        message = ws.receive_json()
        assert message["event"] == "updated"
        assert message["appointment"]["status"] == "cancelled"


def test_stream_rejects_foreign_shop(client, shop_id):
    token = create_access_token("owner-2")
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/api/v1/appointments/stream?shop_id={shop_id}&token={token}") as ws:
            ws.receive_json()
