from __future__ import annotations

from staffclock.models import AuditLog, TimeEntry, User


def _clock_in(client, headers, **body):
    return client.post("/time-entries/clock-in", headers=headers, json=body or None)


def test_clock_in_then_out_after_three_and_a_half_hours(client, staff_headers, clock):
    started = _clock_in(client, staff_headers)
    assert started.status_code == 201
    entry = started.json()["entry"]
    assert entry["status"] == "active"
    assert entry["userId"] == "user-3"
    assert entry["date"] == "2024-03-06"
    assert entry["clockOut"] is None
    assert entry["totalHours"] is None

    clock.advance(hours=3, minutes=30)
    finished = client.post("/time-entries/clock-out", headers=staff_headers)

    assert finished.status_code == 200
    entry = finished.json()["entry"]
    assert entry["totalHours"] == 3.5
    assert entry["status"] == "completed"
    assert entry["clockOut"] is not None


def test_second_clock_in_conflicts(client, staff_headers, db):
    _clock_in(client, staff_headers)
    second = _clock_in(client, staff_headers)

    assert second.status_code == 409
    assert second.json() == {"success": False, "error": "Already clocked in"}
    assert db.query(TimeEntry).count() == 1


def test_clock_out_without_active_entry_conflicts(client, staff_headers):
    response = client.post("/time-entries/clock-out", headers=staff_headers)

    assert response.status_code == 409
    assert response.json()["error"] == "No active clock-in found"


def test_work_date_uses_tenant_timezone(client, staff_headers, clock):
    from datetime import datetime, timezone

    # 02:30 UTC on the 7th is still the evening of the 6th in New York.
    clock.set(datetime(2024, 3, 7, 2, 30, tzinfo=timezone.utc))
    entry = _clock_in(client, staff_headers).json()["entry"]

    assert entry["date"] == "2024-03-06"


def test_breaks_are_subtracted_from_worked_hours(client, staff_headers, clock):
    _clock_in(client, staff_headers)
    clock.advance(hours=2)
    assert client.post("/time-entries/break/start", headers=staff_headers).status_code == 200
    clock.advance(minutes=30)
    ended = client.post("/time-entries/break/end", headers=staff_headers)
    assert ended.json()["entry"]["totalBreakMinutes"] == 30.0
    clock.advance(hours=2)

    entry = client.post("/time-entries/clock-out", headers=staff_headers).json()["entry"]

    assert entry["totalHours"] == 4.0
    assert len(entry["breaks"]) == 1
    assert entry["breaks"][0]["endedAt"] is not None


def test_clock_out_closes_an_open_break(client, staff_headers, clock):
    _clock_in(client, staff_headers)
    clock.advance(hours=1)
    client.post("/time-entries/break/start", headers=staff_headers)
    clock.advance(minutes=15)

    entry = client.post("/time-entries/clock-out", headers=staff_headers).json()["entry"]

    assert entry["totalBreakMinutes"] == 15.0
    assert entry["totalHours"] == 1.0


def test_break_state_errors(client, staff_headers):
    no_shift = client.post("/time-entries/break/start", headers=staff_headers)
    assert no_shift.status_code == 409

    _clock_in(client, staff_headers)
    not_on_break = client.post("/time-entries/break/end", headers=staff_headers)
    assert not_on_break.status_code == 400
    assert not_on_break.json()["error"] == "No break in progress"

    client.post("/time-entries/break/start", headers=staff_headers)
    twice = client.post("/time-entries/break/start", headers=staff_headers)
    assert twice.status_code == 400
    assert twice.json()["error"] == "Break already in progress"


def test_breaks_disabled_by_tenant_policy(client, admin_headers, staff_headers):
    client.put("/tenant/settings", headers=admin_headers, json={"settings": {"breaks": {"enabled": False}}})
    _clock_in(client, staff_headers)

    response = client.post("/time-entries/break/start", headers=staff_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Break tracking is disabled for this organization"


def test_entries_auto_approve_when_manager_approval_not_required(client, staff_headers, clock):
    _clock_in(client, staff_headers)
    clock.advance(hours=8)

    entry = client.post("/time-entries/clock-out", headers=staff_headers).json()["entry"]

    assert entry["isApproved"] is True
    assert entry["approvalStatus"] == "auto_approved"


def test_entries_wait_for_approval_when_required(client, admin_headers, staff_headers, clock):
    client.put(
        "/tenant/settings",
        headers=admin_headers,
        json={"settings": {"approvals": {"requireManagerApproval": True, "autoApprovalThreshold": 2}}},
    )
    _clock_in(client, staff_headers)
    clock.advance(hours=1)
    short = client.post("/time-entries/clock-out", headers=staff_headers).json()["entry"]

    _clock_in(client, staff_headers)
    clock.advance(hours=6)
    long = client.post("/time-entries/clock-out", headers=staff_headers).json()["entry"]

    assert short["approvalStatus"] == "auto_approved"
    assert long["isApproved"] is False
    assert long["approvalStatus"] == "pending"


def test_manager_approves_completed_entry(client, admin_headers, manager_headers, staff_headers, clock):
    client.put("/tenant/settings", headers=admin_headers, json={"settings": {"approvals": {"requireManagerApproval": True}}})
    _clock_in(client, staff_headers)
    clock.advance(hours=4)
    entry_id = client.post("/time-entries/clock-out", headers=staff_headers).json()["entry"]["id"]

    staff_attempt = client.patch(f"/time-entries/{entry_id}/approve", headers=staff_headers)
    approved = client.patch(f"/time-entries/{entry_id}/approve", headers=manager_headers)

    assert staff_attempt.status_code == 403
    assert approved.status_code == 200
    entry = approved.json()["entry"]
    assert entry["isApproved"] is True
    assert entry["approvalStatus"] == "approved"
    assert entry["approvedBy"] == "user-2"


def test_active_entry_cannot_be_approved(client, manager_headers, staff_headers):
    entry_id = _clock_in(client, staff_headers).json()["entry"]["id"]

    response = client.patch(f"/time-entries/{entry_id}/approve", headers=manager_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Only completed entries can be approved"


def test_active_endpoint_returns_current_entry_or_null(client, staff_headers):
    assert client.get("/time-entries/active", headers=staff_headers).json()["entry"] is None

    entry_id = _clock_in(client, staff_headers).json()["entry"]["id"]

    assert client.get("/time-entries/active", headers=staff_headers).json()["entry"]["id"] == entry_id


def test_listing_is_newest_first_and_staff_see_only_their_own(client, manager_headers, staff_headers, clock):
    _clock_in(client, manager_headers)
    clock.advance(hours=1)
    client.post("/time-entries/clock-out", headers=manager_headers)
    for _ in range(2):
        _clock_in(client, staff_headers)
        clock.advance(hours=1)
        client.post("/time-entries/clock-out", headers=staff_headers)

    staff_view = client.get("/time-entries", headers=staff_headers, params={"userId": "user-2"}).json()["entries"]
    manager_view = client.get("/time-entries", headers=manager_headers).json()["entries"]

    assert {entry["userId"] for entry in staff_view} == {"user-3"}
    assert len(staff_view) == 2
    assert len(manager_view) == 3
    clock_ins = [entry["clockIn"] for entry in manager_view]
    assert clock_ins == sorted(clock_ins, reverse=True)


def test_listing_filters_by_inclusive_dates_and_status(client, manager_headers, staff_headers, clock):
    _clock_in(client, staff_headers)
    clock.advance(hours=2)
    client.post("/time-entries/clock-out", headers=staff_headers)
    clock.advance(days=1)
    _clock_in(client, staff_headers)

    same_day = client.get(
        "/time-entries",
        headers=manager_headers,
        params={"startDate": "2024-03-06", "endDate": "2024-03-06"},
    ).json()["entries"]
    active = client.get("/time-entries", headers=manager_headers, params={"status": "active"}).json()["entries"]
    approved = client.get("/time-entries", headers=manager_headers, params={"isApproved": "true"}).json()["entries"]

    assert [entry["date"] for entry in same_day] == ["2024-03-06"]
    assert [entry["date"] for entry in active] == ["2024-03-07"]
    assert len(approved) == 1


def test_start_after_end_is_rejected(client, manager_headers):
    response = client.get(
        "/time-entries",
        headers=manager_headers,
        params={"startDate": "2024-03-07", "endDate": "2024-03-01"},
    )

    assert response.status_code == 400


def test_staff_cannot_read_colleagues_entry(client, manager_headers, staff_headers):
    entry_id = _clock_in(client, manager_headers).json()["entry"]["id"]

    own = client.get(f"/time-entries/{entry_id}", headers=manager_headers)
    other = client.get(f"/time-entries/{entry_id}", headers=staff_headers)
    missing = client.get("/time-entries/entry-missing", headers=manager_headers)

    assert own.status_code == 200
    assert other.status_code == 403
    assert missing.status_code == 404
    assert missing.json()["error"] == "Time entry not found"


def test_manager_edit_recomputes_hours(client, manager_headers, staff_headers, clock):
    _clock_in(client, staff_headers)
    clock.advance(hours=3)
    entry_id = client.post("/time-entries/clock-out", headers=staff_headers).json()["entry"]["id"]

    response = client.put(
        f"/time-entries/{entry_id}",
        headers=manager_headers,
        json={"clockOut": "2024-03-06T19:00:00Z", "adminNotes": "Forgot to clock out"},
    )

    assert response.status_code == 200
    entry = response.json()["entry"]
    assert entry["totalHours"] == 5.0
    assert entry["adminNotes"] == "Forgot to clock out"


def test_manager_closing_an_open_entry_applies_auto_approval(client, manager_headers, staff_headers):
    entry_id = _clock_in(client, staff_headers).json()["entry"]["id"]

    response = client.put(f"/time-entries/{entry_id}", headers=manager_headers, json={"clockOut": "2024-03-06T18:00:00Z"})

    entry = response.json()["entry"]
    assert entry["status"] == "completed"
    assert entry["totalHours"] == 4.0
    assert entry["isApproved"] is True
    assert entry["approvalStatus"] == "auto_approved"
    assert client.get("/time-entries/active", headers=staff_headers).json()["entry"] is None


def test_edit_with_clock_out_before_clock_in_is_rejected(client, manager_headers, staff_headers, clock):
    _clock_in(client, staff_headers)
    clock.advance(hours=3)
    entry_id = client.post("/time-entries/clock-out", headers=staff_headers).json()["entry"]["id"]

    response = client.put(f"/time-entries/{entry_id}", headers=manager_headers, json={"clockOut": "2024-03-06T13:00:00Z"})

    assert response.status_code == 400
    assert response.json()["error"] == "Clock out time must be after clock in time"


def test_staff_cannot_edit_entries(client, staff_headers, clock):
    _clock_in(client, staff_headers)
    clock.advance(hours=1)
    entry_id = client.post("/time-entries/clock-out", headers=staff_headers).json()["entry"]["id"]

    response = client.put(f"/time-entries/{entry_id}", headers=staff_headers, json={"notes": "changed"})

    assert response.status_code == 403


def test_cancel_active_entry_allows_clocking_in_again(client, manager_headers, staff_headers, db):
    entry_id = _clock_in(client, staff_headers).json()["entry"]["id"]

    cancelled = client.patch(f"/time-entries/{entry_id}/cancel", headers=manager_headers, json={"reason": "Wrong shift"})
    again = _clock_in(client, staff_headers)
    twice = client.patch(f"/time-entries/{entry_id}/cancel", headers=manager_headers)

    assert cancelled.status_code == 200
    assert cancelled.json()["entry"]["status"] == "cancelled"
    assert cancelled.json()["entry"]["adminNotes"] == "Wrong shift"
    assert again.status_code == 201
    assert twice.status_code == 400
    assert db.query(TimeEntry).count() == 2


def test_other_tenants_entries_are_forbidden(client, manager_headers, staff_headers):
    entry_id = _clock_in(client, staff_headers).json()["entry"]["id"]
    created = client.post(
        "/tenant/create",
        json={
            "name": "Other Org",
            "subdomain": "other-org",
            "businessType": "office",
            "admin": {"name": "Other Admin", "email": "admin@other.org", "pin": "8080"},
        },
    )
    other_headers = {"Authorization": f"Bearer {created.json()['token']}"}

    read = client.get(f"/time-entries/{entry_id}", headers=other_headers)
    approve = client.patch(f"/time-entries/{entry_id}/cancel", headers=other_headers)
    listing = client.get("/time-entries", headers=other_headers).json()["entries"]

    assert read.status_code == 403
    assert approve.status_code == 403
    assert listing == []


def test_mutations_are_audited(client, staff_headers, clock, db):
    _clock_in(client, staff_headers)
    clock.advance(hours=1)
    client.post("/time-entries/clock-out", headers=staff_headers)

    actions = [row.action for row in db.query(AuditLog).filter(AuditLog.user_id == "user-3").order_by(AuditLog.id)]

    assert actions == ["login", "clock_in", "clock_out"]


def test_location_required_when_configured(client, admin_headers, staff_headers):
    client.put(
        "/tenant/settings",
        headers=admin_headers,
        json={"settings": {"location": {"requireLocationForClocking": True}}},
    )

    missing = _clock_in(client, staff_headers)
    provided = _clock_in(client, staff_headers, location={"address": "Front desk"})

    assert missing.status_code == 403
    assert missing.json()["error"] == "Location is required to clock in"
    assert provided.status_code == 201
    assert provided.json()["entry"]["location"] == {"address": "Front desk"}


def test_geofence_rejects_far_away_gps(client, admin_headers, staff_headers):
    client.put(
        "/tenant/settings",
        headers=admin_headers,
        json={
            "settings": {
                "location": {
                    "enforceGeofencing": True,
                    "allowedLocations": [
                        {"name": "HQ", "type": "gps", "value": "40.7128,-74.0060", "radius": 200},
                    ],
                }
            }
        },
    )

    far = _clock_in(client, staff_headers, location={"latitude": 40.7580, "longitude": -73.9855})
    near = _clock_in(client, staff_headers, location={"latitude": 40.7130, "longitude": -74.0058})

    assert far.status_code == 403
    assert far.json()["error"] == "Clock-in location is not allowed"
    assert near.status_code == 201


def test_admins_are_exempt_from_location_policy(client, admin_headers):
    client.put(
        "/tenant/settings",
        headers=admin_headers,
        json={"settings": {"location": {"requireLocationForClocking": True}}},
    )

    assert _clock_in(client, admin_headers).status_code == 201


def test_deactivated_user_token_stops_working(client, staff_headers, db):
    user = db.get(User, "user-3")
    user.is_active = False
    db.commit()

    response = _clock_in(client, staff_headers)

    assert response.status_code == 401
