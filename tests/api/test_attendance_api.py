import pytest
from fastapi.testclient import TestClient

from rollcall.backend.main import app
from rollcall.backend.api.auth import get_current_user
from rollcall.backend.api.dependencies import get_clock, get_db_client
from rollcall.backend.models.db_models import Role, UserAccount
from tests.fakes import VENUE, FixedClock, local, make_auth, make_template, make_user

# Lifespan is not entered: TestClient is used without a `with` block,
# so no database or Redis is needed.


@pytest.fixture
def session_template(fake_db):
    template = make_template()
    fake_db.templates[template.session_id] = template
    return template


@pytest.fixture
def as_user(fake_db):
    clock = FixedClock(local(2024, 1, 1, 9, 5))

    def login(user_id: str = "u1", role: Role = Role.END_USER) -> TestClient:
        app.dependency_overrides[get_current_user] = lambda: make_auth(user_id, role)
        app.dependency_overrides[get_db_client] = lambda: fake_db
        app.dependency_overrides[get_clock] = lambda: clock
        return TestClient(app)

    yield login
    app.dependency_overrides.clear()


def scan_body(template, **overrides):
    body = {
        "session_id": str(template.session_id),
        "scanned_session_id": str(template.session_id),
        "user_location": {"latitude": VENUE.latitude, "longitude": VENUE.longitude},
        "device_id": "device-A",
    }
    body.update(overrides)
    return body


def test_health_check():
    response = TestClient(app).get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_scan_records_attendance(as_user, session_template, fake_db):
    response = as_user("u1").post("/api/v1/attendance/scan", json=scan_body(session_template))

    assert response.status_code == 201
    data = response.json()
    assert data["attendance_status"] == "Verified"
    assert data["late_by_minutes"] == 5
    assert data["occurrence_date"] == "2024-01-01"
    assert "device_id" not in data
    assert fake_db.bindings["u1"].device_id == "device-A"


def test_second_scan_is_a_conflict(as_user, session_template):
    client = as_user("u1")
    assert client.post("/api/v1/attendance/scan", json=scan_body(session_template)).status_code == 201

    response = client.post("/api/v1/attendance/scan", json=scan_body(session_template))
    assert response.status_code == 409
    assert response.json()["kind"] == "AlreadyMarked"


def test_scanning_another_sessions_code_is_rejected(as_user, session_template):
    other = make_template()
    response = as_user("u1").post(
        "/api/v1/attendance/scan", json=scan_body(session_template, scanned_session_id=str(other.session_id))
    )
    assert response.status_code == 400
    assert response.json() == {"kind": "SessionMismatch", "detail": "The scanned code does not belong to the selected session."}


def test_blank_device_id_fails_request_validation(as_user, session_template):
    response = as_user("u1").post("/api/v1/attendance/scan", json=scan_body(session_template, device_id="   "))
    assert response.status_code == 422


def test_selectable_sessions_lists_live_occurrence(as_user, session_template):
    response = as_user("u1").get("/api/v1/sessions/selectable")

    assert response.status_code == 200
    [entry] = response.json()
    assert entry["status"] == "Live"
    assert entry["template"]["session_id"] == str(session_template.session_id)


def test_my_records_after_scan(as_user, session_template):
    client = as_user("u2")
    client.post("/api/v1/attendance/scan", json=scan_body(session_template, device_id="device-B"))

    response = client.get("/api/v1/attendance/me", params={"limit": 10})
    assert response.status_code == 200
    assert [r["user_id"] for r in response.json()] == ["u2"]


def test_force_mark_requires_privilege(as_user, session_template):
    body = {"user_id": "u2", "status": "ForcedPresent"}

    denied = as_user("u1").post(f"/api/v1/sessions/{session_template.session_id}/force-mark", json=body)
    assert denied.status_code == 403
    assert denied.json()["kind"] == "NotAuthorized"

    allowed = as_user("boss", Role.MANAGER).post(f"/api/v1/sessions/{session_template.session_id}/force-mark", json=body)
    assert allowed.status_code == 201
    assert allowed.json()["approved_by"] == "boss"


def test_device_reset_by_company_admin(as_user, fake_db, session_template):
    fake_db.users["u1"] = UserAccount(**make_user("u1").model_dump(), password_hash="x")
    as_user("u1").post("/api/v1/attendance/scan", json=scan_body(session_template))
    assert "u1" in fake_db.bindings

    assert as_user("u1").delete("/api/v1/admin/users/u1/device").status_code == 403
    assert as_user("admin", Role.COMPANY_ADMIN).delete("/api/v1/admin/users/u1/device").status_code == 204
    assert "u1" not in fake_db.bindings


    entries = as_user("admin", Role.COMPANY_ADMIN).get("/api/v1/admin/audit-log").json()
    assert [(e["action"], e["target_user_id"]) for e in entries] == [("DeviceReset", "u1")]
    assert as_user("u1").get("/api/v1/admin/audit-log").status_code == 403


def test_batch_report(as_user, fake_db, session_template):
    manager = as_user("boss", Role.MANAGER)
    created = manager.post("/api/v1/batches", json={"name": "Grade 7"})
    assert created.status_code == 201
    batch_id = created.json()["batch_id"]

    moved = manager.patch(f"/api/v1/sessions/{session_template.session_id}", json={"batch_id": batch_id})
    assert moved.status_code == 200
    assert [s["session_id"] for s in manager.get(f"/api/v1/batches/{batch_id}/sessions").json()] == [str(session_template.session_id)]

    body = {"batch_ids": [batch_id], "start_date": "2024-01-01", "end_date": "2024-01-01"}
    logs = manager.post("/api/v1/reports/session-logs", json=body).json()
    assert [(log["name"], log["occurrence_date"]) for log in logs] == [("Morning Standup", "2024-01-01")]

    refused = manager.delete(f"/api/v1/batches/{batch_id}")
    assert refused.status_code == 422
    deleted = manager.delete(f"/api/v1/batches/{batch_id}", params={"detach_sessions": "true"})
    assert deleted.json() == {"batch_id": batch_id, "sessions_detached": 1}
