from datetime import datetime, timezone

from conftest import MARKER, iso, login, seed_floor


NOW = datetime(2024, 6, 5, 10, 0, 59, tzinfo=timezone.utc)


def _running(supabase, row_id="d1", machine_id="m1", start=None):
    row = {
        "id": row_id,
        "machine_id": machine_id,
        "operator_id": "ole",
        "start_time": start or iso(2024, 6, 5, 9),
        "end_time": None,
        "duration": 0,
        "comment": "",
    }
    supabase.rows("downtimes").append(row)
    return row


def _yesterdays_marker(supabase, post_number="4"):
    supabase.rows("downtimes").append(
        {
            "id": "y1",
            "machine_id": "m3",
            "operator_id": "ole",
            "start_time": iso(2024, 6, 4, 15),
            "end_time": iso(2024, 6, 4, 15, 5),
            "duration": 5,
            "comment": "lot change",
            "post_number": post_number,
        }
    )


def test_operator_starts_a_stoppage(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    frozen_now(NOW)
    login(client)

    response = client.post("/api/downtimes", json={"machine_id": "m1"})

    assert response.status_code == 201
    body = response.get_json()
    assert body["machine_name"] == "Press"
    assert body["operator_name"] == "Ole"
    assert body["active"] is True
    stored = fake_supabase.rows("downtimes")
    assert len(stored) == 1
    assert stored[0]["machine_id"] == "m1"
    assert stored[0]["operator_id"] == "ole"
    assert stored[0]["end_time"] is None
    assert stored[0]["date"] == "2024-06-05"


def test_second_timer_on_same_machine_is_rejected(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    _running(fake_supabase)
    frozen_now(NOW)
    login(client)

    response = client.post("/api/downtimes", json={"machine_id": "m1"})

    assert response.status_code == 409
    assert len(fake_supabase.rows("downtimes")) == 1


def test_start_requires_a_known_machine(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    frozen_now(NOW)
    login(client)

    assert client.post("/api/downtimes", json={}).status_code == 400
    assert client.post("/api/downtimes", json={"machine_id": "m9"}).status_code == 404


def test_stop_stamps_duration_and_current_post(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    _yesterdays_marker(fake_supabase)
    _running(fake_supabase)
    frozen_now(NOW)
    login(client)

    response = client.post("/api/downtimes/d1/stop", json={"comment": "Jam"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["duration_minutes"] == 60
    assert body["post_number"] == "4"
    assert body["comment"] == "Jam"
    assert body["active"] is False


def test_stop_requires_a_reason(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    _running(fake_supabase)
    frozen_now(NOW)
    login(client)

    response = client.post("/api/downtimes/d1/stop", json={"comment": "  "})

    assert response.status_code == 400
    assert fake_supabase.rows("downtimes")[0]["end_time"] is None


def test_stopping_the_marker_machine_needs_a_post_number(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    _running(fake_supabase, machine_id="m3")
    frozen_now(NOW)
    login(client)

    missing = client.post("/api/downtimes/d1/stop", json={"comment": "Lot change"})
    assert missing.status_code == 400

    response = client.post(
        "/api/downtimes/d1/stop", json={"comment": "Lot change", "post_number": "17"}
    )
    assert response.status_code == 200
    body = response.get_json()
    assert body["machine_name"] == MARKER
    assert body["is_marker"] is True
    assert fake_supabase.rows("downtimes")[0]["post_number"] == "17"


def test_stopping_twice_conflicts(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    _running(fake_supabase)
    frozen_now(NOW)
    login(client)

    assert client.post("/api/downtimes/d1/stop", json={"comment": "Jam"}).status_code == 200
    assert client.post("/api/downtimes/d1/stop", json={"comment": "Jam"}).status_code == 409
    assert client.post("/api/downtimes/nope/stop", json={"comment": "Jam"}).status_code == 404


def test_viewer_cannot_record(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    frozen_now(NOW)
    login(client, user_id="tv", role="viewer")

    response = client.post("/api/downtimes", json={"machine_id": "m1"})

    assert response.status_code == 403


def test_api_requires_login(client, fake_supabase):
    response = client.post("/api/downtimes", json={"machine_id": "m1"})

    assert response.status_code == 401


def test_pages_redirect_to_login(client):
    response = client.get("/home")

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/login")


def test_manager_edits_a_stoppage(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    _running(fake_supabase)
    frozen_now(NOW)
    login(client, user_id="sjef", role="manager")
    client.post("/api/downtimes/d1/stop", json={"comment": "Jam"})

    invalid = client.patch("/api/downtimes/d1", json={"duration_minutes": 0})
    assert invalid.status_code == 400
    invalid = client.patch("/api/downtimes/d1", json={"duration_minutes": "abc"})
    assert invalid.status_code == 400

    response = client.patch(
        "/api/downtimes/d1",
        json={"duration_minutes": 45, "comment": "Jam cleared", "photo_url": "http://img/1.png"},
    )

    assert response.status_code == 200
    stored = fake_supabase.rows("downtimes")[0]
    assert stored["duration"] == 45
    assert stored["comment"] == "Jam cleared"
    assert stored["photo_url"] == "http://img/1.png"


def test_operator_cannot_edit_or_delete(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    _running(fake_supabase)
    frozen_now(NOW)
    login(client)

    assert client.patch("/api/downtimes/d1", json={"duration_minutes": 5}).status_code == 403
    assert client.delete("/api/downtimes/d1").status_code == 403


def test_manager_deletes_a_stoppage(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    _running(fake_supabase)
    frozen_now(NOW)
    login(client, user_id="sjef", role="manager")

    response = client.delete("/api/downtimes/d1")

    assert response.status_code == 200
    assert response.get_json() == {"deleted": 1}
    assert fake_supabase.rows("downtimes") == []
    assert client.delete("/api/downtimes/d1").status_code == 404


def test_store_failure_aborts_mutations(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    fake_supabase.failing.add("downtimes")
    frozen_now(NOW)
    login(client)

    response = client.post("/api/downtimes", json={"machine_id": "m1"})

    assert response.status_code == 500


def test_dashboard_depends_on_role(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    _yesterdays_marker(fake_supabase)
    _running(fake_supabase)
    frozen_now(NOW)

    login(client, user_id="tv", role="viewer")
    viewer = client.get("/api/dashboard").get_json()
    assert viewer["kind"] == "viewer"
    assert viewer["refresh_seconds"] == 5
    assert viewer["production"]["current_post_number"] == "4"
    assert "machines" not in viewer

    login(client)
    operator = client.get("/api/dashboard").get_json()
    assert operator["kind"] == "operator"
    assert operator["refresh_seconds"] == 1
    assert [machine["id"] for machine in operator["machines"]] == ["m1", "m2", "m3"]
    assert [event["id"] for event in operator["active"]] == ["d1"]

    login(client, user_id="admin", role="admin")
    admin = client.get("/api/dashboard").get_json()
    assert admin["refresh_seconds"] == 10
    assert {user["user_id"] for user in admin["users"]} == {"ole", "sjef"}
    assert "week" in admin


def test_dashboard_reports_store_errors(client, fake_supabase, frozen_now):
    fake_supabase.failing.add("machines")
    frozen_now(NOW)
    login(client, user_id="tv", role="viewer")

    body = client.get("/api/dashboard").get_json()

    assert body["error"].startswith("Failed to fetch machines")
    assert body["active"] == []


def test_home_renders_for_manager(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    frozen_now(NOW)
    login(client, user_id="sjef", role="manager")

    response = client.get("/home")

    assert response.status_code == 200
    assert b"Manager dashboard" in response.data


def test_history_filters_by_date(client, fake_supabase, frozen_now):
    seed_floor(fake_supabase)
    _yesterdays_marker(fake_supabase)
    _running(fake_supabase)
    frozen_now(NOW)
    login(client, user_id="sjef", role="manager")

    everything = client.get("/api/downtimes").get_json()
    assert [row["id"] for row in everything] == ["d1", "y1"]

    today = client.get("/api/downtimes?from=2024-06-05&to=2024-06-05").get_json()
    assert [row["id"] for row in today] == ["d1"]
