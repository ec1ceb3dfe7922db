from roster_module.errors import StoreError
from roster_module.models import AttendanceRecord, Course
from roster_module.store import RosterStore

DAY = "2024-01-05"


def _sheet(client, headers, course_id, day=DAY):
    response = client.get("/api/v1/roster/attendance", params={"course_id": course_id, "date": day}, headers=headers)
    assert response.status_code == 200
    return response.json()


def _presence(sheet):
    return {row["student_id"]: row["present"] for row in sheet["rows"]}


def test_sheet_lists_active_roster_absent_by_default(client, auth_headers, school):
    sheet = _sheet(client, auth_headers, school["math"])

    assert _presence(sheet) == {school["sam"]: False, school["lee"]: False, school["kim"]: False}
    assert sheet["all_present"] is False
    assert all(row["marked_by"] is None for row in sheet["rows"])


def test_viewing_sheet_does_not_persist_defaults(client, auth_headers, school, db):
    _sheet(client, auth_headers, school["math"])
    assert RosterStore(db).select(AttendanceRecord) == []


def test_toggle_marks_student_present_and_attributes_teacher(client, auth_headers, school):
    response = client.post(
        "/api/v1/roster/attendance/toggle",
        json={
            "course_id": school["math"],
            "teacher_id": school["alice"],
            "date": DAY,
            "student_id": school["sam"],
            "displayed_present": False,
        },
        headers=auth_headers,
    )
    assert response.status_code == 200

    row = next(r for r in response.json()["rows"] if r["student_id"] == school["sam"])
    assert row["present"] is True
    assert row["marked_by"] == str(school["alice"])
    assert row["marked_by_name"] == "Alice"
    assert row["timestamp"] is not None


def test_toggle_twice_returns_to_absent(client, auth_headers, school):
    body = {"course_id": school["math"], "teacher_id": school["alice"], "date": DAY, "student_id": school["lee"]}
    client.post("/api/v1/roster/attendance/toggle", json={**body, "displayed_present": False}, headers=auth_headers)
    response = client.post(
        "/api/v1/roster/attendance/toggle", json={**body, "displayed_present": True}, headers=auth_headers
    )

    assert _presence(response.json())[school["lee"]] is False


def test_toggle_uses_current_course_name(client, auth_headers, school, db):
    RosterStore(db).update(Course, school["math"], {"name": "Algebra"})
    client.post(
        "/api/v1/roster/attendance/toggle",
        json={
            "course_id": school["math"],
            "teacher_id": school["alice"],
            "date": DAY,
            "student_id": school["sam"],
        },
        headers=auth_headers,
    )

    [record] = RosterStore(db).select(AttendanceRecord, student_id=school["sam"])
    assert record.course == "Algebra"


def test_toggle_without_teacher_is_rejected_before_any_write(client, auth_headers, school, monkeypatch):
    calls = []
    monkeypatch.setattr(RosterStore, "upsert", lambda self, *a, **kw: calls.append(a))

    response = client.post(
        "/api/v1/roster/attendance/toggle",
        json={"course_id": school["math"], "date": DAY, "student_id": school["sam"]},
        headers=auth_headers,
    )

    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"
    assert calls == []


def test_toggle_rejects_inactive_teacher_and_course(client, auth_headers, school):
    inactive_teacher = client.post(
        "/api/v1/roster/attendance/toggle",
        json={"course_id": school["math"], "teacher_id": school["bob"], "date": DAY, "student_id": school["sam"]},
        headers=auth_headers,
    )
    inactive_course = client.post(
        "/api/v1/roster/attendance/toggle",
        json={"course_id": school["art"], "teacher_id": school["alice"], "date": DAY, "student_id": school["ana"]},
        headers=auth_headers,
    )

    assert inactive_teacher.status_code == 422
    assert inactive_course.status_code == 422


def test_toggle_rejects_student_outside_roster(client, auth_headers, school):
    for student in ("old", "ana"):
        response = client.post(
            "/api/v1/roster/attendance/toggle",
            json={
                "course_id": school["math"],
                "teacher_id": school["alice"],
                "date": DAY,
                "student_id": school[student],
            },
            headers=auth_headers,
        )
        assert response.status_code == 422


def test_mark_all_present_covers_active_roster(client, auth_headers, school):
    response = client.post(
        "/api/v1/roster/attendance/mark-all",
        json={"course_id": school["math"], "teacher_id": school["alice"], "date": DAY, "present": True},
        headers=auth_headers,
    )
    assert response.status_code == 200

    sheet = response.json()
    assert sheet["all_present"] is True
    assert set(_presence(sheet)) == {school["sam"], school["lee"], school["kim"]}


def test_mark_all_absent_overwrites_previous_marks(client, auth_headers, school):
    body = {"course_id": school["math"], "teacher_id": school["alice"], "date": DAY}
    client.post("/api/v1/roster/attendance/mark-all", json={**body, "present": True}, headers=auth_headers)
    response = client.post("/api/v1/roster/attendance/mark-all", json={**body, "present": False}, headers=auth_headers)

    assert set(_presence(response.json()).values()) == {False}
    assert all(row["marked_by"] == str(school["alice"]) for row in response.json()["rows"])


def test_failed_mark_all_leaves_stored_state_untouched(client, auth_headers, school, monkeypatch):
    def failing_upsert(self, model, rows, *, on_conflict):
        raise StoreError("Failed to upsert into attendance: OperationalError")

    monkeypatch.setattr(RosterStore, "upsert", failing_upsert)
    response = client.post(
        "/api/v1/roster/attendance/mark-all",
        json={"course_id": school["math"], "teacher_id": school["alice"], "date": DAY, "present": True},
        headers=auth_headers,
    )
    monkeypatch.undo()

    assert response.status_code == 502
    assert response.json() == {"error": "store_error", "detail": "Failed to upsert into attendance: OperationalError"}
    assert set(_presence(_sheet(client, auth_headers, school["math"])).values()) == {False}


def test_attendance_is_scoped_by_date(client, auth_headers, school):
    client.post(
        "/api/v1/roster/attendance/mark-all",
        json={"course_id": school["math"], "teacher_id": school["alice"], "date": DAY, "present": True},
        headers=auth_headers,
    )

    next_day = _sheet(client, auth_headers, school["math"], day="2024-01-06")
    assert set(_presence(next_day).values()) == {False}


def test_sheet_for_inactive_or_unknown_course_is_refused(client, auth_headers, school):
    inactive = client.get(
        "/api/v1/roster/attendance", params={"course_id": school["art"], "date": DAY}, headers=auth_headers
    )
    unknown = client.get("/api/v1/roster/attendance", params={"course_id": 9999, "date": DAY}, headers=auth_headers)

    assert inactive.status_code == 422
    assert unknown.status_code == 404
    assert unknown.json()["error"] == "not_found"


def test_marked_timestamp_carries_utc_offset(client, auth_headers, school):
    response = client.post(
        "/api/v1/roster/attendance/toggle",
        json={"course_id": school["math"], "teacher_id": school["alice"], "date": DAY, "student_id": school["sam"]},
        headers=auth_headers,
    )

    row = next(r for r in response.json()["rows"] if r["student_id"] == school["sam"])
    assert row["timestamp"].endswith(("Z", "+00:00"))
