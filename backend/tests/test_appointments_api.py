# Overview: Pytest coverage for the HTTP surface; status codes, payload shapes and the polling protocol.

"""
API Tests

Covers:
- Identity headers are required on every mutating route
- Error mapping: 400 validation / transition, 404 unknown, 409 conflict
- Availability lookups agree with booking outcomes
- Blocked time blocks bookings
- Change polling: baseline, delta, filters, cleanup
- /health and /version
"""


def _post_booking(client, headers, payload):
    return client.post("/api/appointments/", json=payload, headers=headers)


class TestActorHeaders:
    def test_mutations_require_identity(self, client, db_session, booking_payload):
        assert _post_booking(client, {}, booking_payload()).status_code == 401
        assert client.post("/api/appointments/1/status", json={"status": "confirmed"}).status_code == 401
        assert client.get("/api/changes/poll").status_code == 401

    def test_blank_identity_rejected(self, client, db_session, booking_payload):
        resp = _post_booking(client, {"X-User-Id": "   "}, booking_payload())
        assert resp.status_code == 401

    def test_reads_are_open(self, client, db_session):
        assert client.get("/api/appointments/").status_code == 200


class TestBookingRoutes:
    def test_create_returns_201_with_warnings(self, client, db_session, actor_headers, booking_payload, haircut):
        resp = _post_booking(client, actor_headers, booking_payload(
            additional_services=[{"service_id": haircut.id}],
        ))

        assert resp.status_code == 201
        body = resp.get_json()
        appt = body["appointment"]
        assert appt["booking_reference"].startswith("BK-")
        assert appt["start_at"] == "2026-03-02T14:00:00Z"
        assert appt["end_at"] == "2026-03-02T15:00:00Z"
        assert appt["status"] == "pending"
        assert appt["status_history"][0]["updated_by"] == "Front Desk"
        assert len(body["warnings"]) == 1

    def test_double_booking_is_409(self, client, db_session, actor_headers, booking_payload):
        assert _post_booking(client, actor_headers, booking_payload()).status_code == 201

        resp = _post_booking(client, actor_headers, booking_payload(start_at="2026-03-02T14:30:00Z"))

        assert resp.status_code == 409
        assert "Staff member" in resp.get_json()["error"]

    def test_validation_is_400(self, client, db_session, actor_headers, booking_payload):
        resp = _post_booking(client, actor_headers, booking_payload(duration_minutes=0))
        assert resp.status_code == 400

        resp = client.post("/api/appointments/", data="not json", headers=actor_headers)
        assert resp.status_code == 400

    def test_unknown_service_is_404(self, client, db_session, actor_headers, booking_payload):
        resp = _post_booking(client, actor_headers, booking_payload(service_id=999999))
        assert resp.status_code == 404

    def test_get_and_list(self, client, db_session, actor_headers, booking_payload, alex):
        created = _post_booking(client, actor_headers, booking_payload()).get_json()["appointment"]

        resp = client.get(f"/api/appointments/{created['id']}")
        assert resp.status_code == 200
        assert resp.get_json()["appointment"]["booking_reference"] == created["booking_reference"]

        listed = client.get(f"/api/appointments/?staff_id={alex.id}&date=2026-03-02").get_json()
        assert [a["id"] for a in listed["appointments"]] == [created["id"]]

        assert client.get("/api/appointments/999999").status_code == 404
        assert client.get("/api/appointments/?date=yesterday").status_code == 400


class TestStatusRoutes:
    def test_transition_then_terminal_is_400(self, client, db_session, actor_headers, booking_payload):
        appt_id = _post_booking(client, actor_headers, booking_payload()).get_json()["appointment"]["id"]
        url = f"/api/appointments/{appt_id}/status"

        resp = client.post(url, json={"status": "completed"}, headers=actor_headers)
        assert resp.status_code == 200
        body = resp.get_json()["appointment"]
        assert body["status"] == "completed"
        assert all(line["completed"] for line in body["services"])

        resp = client.post(url, json={"status": "confirmed"}, headers=actor_headers)
        assert resp.status_code == 400

    def test_unknown_status_is_400(self, client, db_session, actor_headers, booking_payload):
        appt_id = _post_booking(client, actor_headers, booking_payload()).get_json()["appointment"]["id"]
        resp = client.post(f"/api/appointments/{appt_id}/status", json={"status": "done"}, headers=actor_headers)
        assert resp.status_code == 400

    def test_unknown_appointment_is_404(self, client, db_session, actor_headers):
        resp = client.post("/api/appointments/999999/status", json={"status": "confirmed"}, headers=actor_headers)
        assert resp.status_code == 404


class TestPatchAndStaffRoutes:
    def test_patch_reports_dropped_items(self, client, db_session, actor_headers, booking_payload, color):
        appt_id = _post_booking(client, actor_headers, booking_payload()).get_json()["appointment"]["id"]

        resp = client.patch(f"/api/appointments/{appt_id}", json={
            "notes": "Prefers scissors",
            "additional_services": [
                {"id": "temp-1", "service_id": color.id},
                {"id": "temp-2", "service_id": 999999},
            ],
        }, headers=actor_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["appointment"]["notes"] == "Prefers scissors"
        assert [s["service_id"] for s in body["appointment"]["additional_services"]] == [color.id]
        assert len(body["warnings"]) == 1

    def test_patch_conflict_is_409(self, client, db_session, actor_headers, booking_payload):
        _post_booking(client, actor_headers, booking_payload())
        later = _post_booking(client, actor_headers, booking_payload(start_at="2026-03-02T16:00:00Z"))
        later_id = later.get_json()["appointment"]["id"]

        resp = client.patch(
            f"/api/appointments/{later_id}",
            json={"start_at": "2026-03-02T14:30:00Z"},
            headers=actor_headers,
        )
        assert resp.status_code == 409

    def test_patch_completed_appointment_echoing_status(self, client, db_session, actor_headers, booking_payload, shampoo):
        appt_id = _post_booking(client, actor_headers, booking_payload()).get_json()["appointment"]["id"]
        client.post(f"/api/appointments/{appt_id}/status", json={"status": "completed"}, headers=actor_headers)
        url = f"/api/appointments/{appt_id}"

        resp = client.patch(url, json={
            "status": "completed",
            "products": [{"id": "temp-1", "product_id": shampoo.id}],
        }, headers=actor_headers)

        assert resp.status_code == 200
        body = resp.get_json()["appointment"]
        assert body["status"] == "completed"
        assert [p["product_id"] for p in body["products"]] == [shampoo.id]

        resp = client.patch(url, json={"status": "confirmed"}, headers=actor_headers)
        assert resp.status_code == 400

    def test_reassign(self, client, db_session, actor_headers, booking_payload, sam, jordan):
        appt_id = _post_booking(client, actor_headers, booking_payload()).get_json()["appointment"]["id"]
        _post_booking(client, actor_headers, booking_payload(staff_id=sam.id, client_id="client-2"))
        url = f"/api/appointments/{appt_id}/reassign"

        assert client.post(url, json={}, headers=actor_headers).status_code == 400
        assert client.post(url, json={"staff_id": sam.id}, headers=actor_headers).status_code == 409

        resp = client.post(url, json={"staff_id": jordan.id}, headers=actor_headers)
        assert resp.status_code == 200
        assert resp.get_json()["appointment"]["staff_id"] == jordan.id

    def test_complete_single_line(self, client, db_session, actor_headers, booking_payload, color):
        body = _post_booking(client, actor_headers, booking_payload(
            additional_services=[{"service_id": color.id}],
        )).get_json()["appointment"]
        line_id = body["additional_services"][0]["id"]
        url = f"/api/appointments/{body['id']}/services/{line_id}/complete"

        assert client.post(url, json={"completed": "yes"}, headers=actor_headers).status_code == 400

        resp = client.post(url, headers=actor_headers)
        assert resp.status_code == 200
        appt = resp.get_json()["appointment"]
        assert appt["status"] == "pending"
        assert [line["completed"] for line in appt["services"]] == [False, True]

    def test_delete(self, client, db_session, actor_headers, booking_payload):
        appt_id = _post_booking(client, actor_headers, booking_payload()).get_json()["appointment"]["id"]

        assert client.delete(f"/api/appointments/{appt_id}", headers=actor_headers).status_code == 200
        assert client.delete(f"/api/appointments/{appt_id}", headers=actor_headers).status_code == 404


class TestAvailabilityRoutes:
    def test_staff_lookup_matches_booking_outcome(self, client, db_session, actor_headers, booking_payload, alex):
        _post_booking(client, actor_headers, booking_payload())
        url = f"/api/availability/staff/{alex.id}"

        busy = client.get(url, query_string={"start_at": "2026-03-02T14:30:00Z", "duration_minutes": 60})
        free = client.get(url, query_string={"start_at": "2026-03-02T15:00:00Z", "duration_minutes": 60})

        assert busy.status_code == 200
        assert busy.get_json()["available"] is False
        assert busy.get_json()["reason"].startswith(f"Staff member {alex.id}")
        assert free.get_json()["available"] is True
        assert free.get_json()["conflicts"] == []

    def test_exclude_own_appointment(self, client, db_session, actor_headers, booking_payload, alex):
        appt_id = _post_booking(client, actor_headers, booking_payload()).get_json()["appointment"]["id"]

        resp = client.get(f"/api/availability/staff/{alex.id}", query_string={
            "start_at": "2026-03-02T14:30:00Z",
            "duration_minutes": 60,
            "exclude_appointment_id": appt_id,
        })

        assert resp.get_json()["available"] is True

    def test_location_lookup(self, client, db_session, actor_headers, booking_payload, downtown, alex, sam):
        _post_booking(client, actor_headers, booking_payload())

        resp = client.get(f"/api/availability/location/{downtown.id}", query_string={
            "start_at": "2026-03-02T14:00:00Z",
            "duration_minutes": 30,
        })

        body = resp.get_json()
        assert body["available"] == [sam.id]
        assert body["unavailable"] == [alex.id]

    def test_bad_query(self, client, db_session, alex):
        url = f"/api/availability/staff/{alex.id}"
        assert client.get(url, query_string={"duration_minutes": 60}).status_code == 400
        assert client.get(url, query_string={"start_at": "2026-03-02T14:00:00Z"}).status_code == 400
        assert client.get(url, query_string={
            "start_at": "2026-03-02T14:00:00Z", "duration_minutes": 0,
        }).status_code == 400
        assert client.get("/api/availability/staff/999999", query_string={
            "start_at": "2026-03-02T14:00:00Z", "duration_minutes": 30,
        }).status_code == 404


class TestBlockedTimeRoutes:
    def test_blocked_time_blocks_booking(self, client, db_session, actor_headers, booking_payload, alex, downtown):
        resp = client.post("/api/blocked-times/", json={
            "staff_id": alex.id,
            "location_id": downtown.id,
            "start_at": "2026-03-02T14:30:00Z",
            "duration_minutes": 30,
            "reason": "Lunch",
        }, headers=actor_headers)
        assert resp.status_code == 201
        blocked_id = resp.get_json()["blocked_time"]["id"]

        booking = _post_booking(client, actor_headers, booking_payload())
        assert booking.status_code == 409
        assert "blocked time" in booking.get_json()["error"]

        listed = client.get(f"/api/blocked-times/?staff_id={alex.id}").get_json()["blocked_times"]
        assert [b["id"] for b in listed] == [blocked_id]

        assert client.delete(f"/api/blocked-times/{blocked_id}", headers=actor_headers).status_code == 200
        assert _post_booking(client, actor_headers, booking_payload()).status_code == 201

    def test_blocked_time_may_overlay_existing_booking(self, client, db_session, actor_headers, booking_payload, alex, downtown):
        _post_booking(client, actor_headers, booking_payload())

        resp = client.post("/api/blocked-times/", json={
            "staff_id": alex.id,
            "location_id": downtown.id,
            "start_at": "2026-03-02T14:00:00Z",
            "duration_minutes": 60,
        }, headers=actor_headers)

        assert resp.status_code == 201

    def test_validation(self, client, db_session, actor_headers, alex, downtown):
        base = {"staff_id": alex.id, "location_id": downtown.id, "start_at": "2026-03-02T14:00:00Z"}

        assert client.post("/api/blocked-times/", json=base, headers=actor_headers).status_code == 400
        assert client.post("/api/blocked-times/", json={**base, "duration_minutes": 0},
                           headers=actor_headers).status_code == 400
        assert client.post("/api/blocked-times/", json={**base, "staff_id": 999999, "duration_minutes": 30},
                           headers=actor_headers).status_code == 404


class TestChangePolling:
    def test_baseline_then_delta(self, client, db_session, actor_headers, booking_payload):
        baseline = client.get("/api/changes/poll", headers=actor_headers).get_json()
        assert baseline["changes"] == []
        assert baseline["timestamp"].endswith("Z")

        appt_id = _post_booking(client, actor_headers, booking_payload()).get_json()["appointment"]["id"]
        client.post(f"/api/appointments/{appt_id}/status", json={"status": "confirmed"}, headers=actor_headers)

        resp = client.get("/api/changes/poll", query_string={"since": baseline["timestamp"]}, headers=actor_headers)

        body = resp.get_json()
        assert resp.status_code == 200
        assert [(c["entity_type"], c["change_type"]) for c in body["changes"]] == [
            ("Appointment", "CREATE"),
            ("Appointment", "UPDATE"),
        ]
        assert all(c["entity_id"] == str(appt_id) for c in body["changes"])
        assert all(c["user_id"] == "user-1" for c in body["changes"])
        assert body["timestamp"] == body["changes"][-1]["timestamp"]
        assert body["has_more"] is False

        again = client.get("/api/changes/poll", query_string={"since": body["timestamp"]}, headers=actor_headers)
        assert again.get_json()["changes"] == []

    def test_filters(self, client, db_session, actor_headers, booking_payload, alex, downtown, uptown):
        baseline = client.get("/api/changes/poll", headers=actor_headers).get_json()["timestamp"]
        _post_booking(client, actor_headers, booking_payload())
        _post_booking(client, actor_headers, booking_payload(location_id=uptown.id, start_at="2026-03-02T16:00:00Z"))
        client.post("/api/blocked-times/", json={
            "staff_id": alex.id, "location_id": downtown.id,
            "start_at": "2026-03-02T18:00:00Z", "duration_minutes": 30,
        }, headers=actor_headers)

        by_type = client.get("/api/changes/poll", query_string={
            "since": baseline, "entity_types": "BlockedTime",
        }, headers=actor_headers).get_json()["changes"]
        by_location = client.get("/api/changes/poll", query_string={
            "since": baseline, "location_id": uptown.id,
        }, headers=actor_headers).get_json()["changes"]

        assert [c["entity_type"] for c in by_type] == ["BlockedTime"]
        assert [c["location_id"] for c in by_location] == [uptown.id]

    def test_bad_params(self, client, db_session, actor_headers):
        assert client.get("/api/changes/poll", query_string={"since": "nope"},
                          headers=actor_headers).status_code == 400
        assert client.get("/api/changes/poll", query_string={
            "since": "2026-03-02T14:00:00.000Z", "entity_types": "Spaceship",
        }, headers=actor_headers).status_code == 400

    def test_cleanup(self, client, db_session, actor_headers, booking_payload):
        _post_booking(client, actor_headers, booking_payload())

        kept = client.post("/api/changes/cleanup", json={}, headers=actor_headers)
        assert kept.status_code == 200
        assert kept.get_json() == {"deleted_count": 0}

        assert client.post("/api/changes/cleanup", json={"hours_to_keep": -1},
                           headers=actor_headers).status_code == 400


class TestSystemRoutes:
    def test_health_degraded_without_locations(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "degraded"
        assert body["checks"]["change_log"]["status"] == "healthy"

    def test_health_healthy_with_catalog(self, client, db_session, downtown):
        body = client.get("/health").get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["locations"] == 1

    def test_version(self, client, db_session):
        body = client.get("/version").get_json()
        assert body["api_version"] == "1.0.0"
        assert body["server_time"].endswith("Z")
        assert "SECRET_KEY" not in body
