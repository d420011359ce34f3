"""
Tests for check-in / check-out: geofence resolution at punch time, the
one-open-session rule, display fields, listing order, manager deletes and
the monthly worked vs scheduled summary.
"""

import threading
import time
from datetime import date, datetime, time as clock, timezone

import pytest
from sqlmodel import Session, select

from conftest import MANAGER, OTHER_WORKER, VIEWER, WORKER
from core.exceptions import ConflictError, NotFoundError, ValidationError
from models.attendance_session import AttendanceSession
from services import attendance_service
from services.attendance_service import AttendanceService, present_session, worker_lock
from services.broadcaster import broadcaster, worker_topic
from services.schedule_service import ScheduleService
from services.site_registry import SiteRegistry
from utils.device import DeviceClass
from utils.geofence import Coordinates

MOBILE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148"


@pytest.fixture
def main_office(db):
    return SiteRegistry.create(db, "Main Office", latitude=40.7128, longitude=-74.0060)


def count_sessions(engine, worker_id):
    with Session(engine) as session:
        return len(session.exec(select(AttendanceSession).where(AttendanceSession.worker_id == worker_id)).all())


def test_check_in_resolves_site_within_geofence(client, main_office):
    # ~78 m from Main Office
    response = client.post(
        "/shifts/check-in",
        json={"latitude": 40.7135, "longitude": -74.0060},
        headers={"User-Agent": MOBILE_UA},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["worker_id"] == WORKER["uid"]
    assert body["is_open"] is True
    assert body["check_out"] is None
    assert body["check_in"]["resolved_site_name"] == "Main Office"
    assert body["check_in"]["device_class"] == "mobile"
    assert body["check_in"]["map_link"] is None
    assert body["check_in"]["time"].endswith("Z")


def test_check_in_without_location_is_unresolved(client, main_office):
    response = client.post("/shifts/check-in", json={"latitude": None, "longitude": None})

    assert response.status_code == 201
    check_in = response.json()["check_in"]
    assert check_in["resolved_site_name"] is None
    assert check_in["latitude"] is None
    assert check_in["map_link"] is None


def test_check_in_outside_geofence_keeps_raw_location(client, main_office):
    response = client.post("/shifts/check-in", json={"latitude": 40.7138, "longitude": -74.0060})

    check_in = response.json()["check_in"]
    assert check_in["resolved_site_name"] is None
    assert check_in["latitude"] == 40.7138
    assert check_in["map_link"] == "https://www.google.com/maps?q=40.7138,-74.006"


def test_second_check_in_conflicts_and_persists_nothing(client, engine):
    assert client.post("/shifts/check-in", json={}).status_code == 201

    response = client.post("/shifts/check-in", json={})

    assert response.status_code == 409
    assert response.json() == {
        "error": "ConflictError",
        "message": "Open shift already exists. Please check out first.",
    }
    assert count_sessions(engine, WORKER["uid"]) == 1


def test_check_out_without_open_session_is_not_found(client, engine):
    response = client.post("/shifts/check-out", json={})

    assert response.status_code == 404
    assert response.json()["error"] == "NotFoundError"
    assert count_sessions(engine, WORKER["uid"]) == 0


def test_check_out_closes_session_and_resolves_separately(client, main_office):
    client.post("/shifts/check-in", json={})

    response = client.post("/shifts/check-out", json={"latitude": 40.7128, "longitude": -74.0060})

    assert response.status_code == 200
    body = response.json()
    assert body["is_open"] is False
    assert body["check_in"]["resolved_site_name"] is None
    assert body["check_out"]["resolved_site_name"] == "Main Office"
    assert body["duration_hours"] is not None

    # Checked out: a new session may start
    assert client.get("/shifts/open").json() is None
    assert client.post("/shifts/check-in", json={}).status_code == 201


def test_sessions_are_per_worker(client, login):
    assert client.post("/shifts/check-in", json={}).status_code == 201

    login(OTHER_WORKER)
    assert client.post("/shifts/check-in", json={}).status_code == 201
    assert client.post("/shifts/check-out", json={}).status_code == 200

    login(WORKER)
    assert client.get("/shifts/open").json()["worker_id"] == WORKER["uid"]


def test_display_fields_use_12h_clock_and_day_month_year(db, main_office):
    record = AttendanceService.check_in(
        db,
        WORKER["uid"],
        Coordinates(40.7128, -74.0060),
        DeviceClass.DESKTOP,
        at=datetime(2025, 1, 10, 14, 5, tzinfo=timezone.utc),
    )
    AttendanceService.check_out(
        db,
        WORKER["uid"],
        None,
        at=datetime(2025, 1, 10, 22, 35, tzinfo=timezone.utc),
    )
    db.refresh(record)

    view = present_session(record)
    assert view.check_in.time_12h == "02:05 PM"
    assert view.check_in.display_date == "10/1/2025"
    assert view.check_in.day.isoformat() == "2025-01-10"
    assert view.check_out.time_12h == "10:35 PM"
    assert view.check_out.resolved_site_name is None
    assert view.duration_hours == 8.5


def test_my_sessions_listed_newest_first(client, db):
    for day in (3, 5, 4):
        AttendanceService.check_in(db, WORKER["uid"], None, at=datetime(2025, 1, day, 9, tzinfo=timezone.utc))
        AttendanceService.check_out(db, WORKER["uid"], None, at=datetime(2025, 1, day, 17, tzinfo=timezone.utc))

    response = client.get("/shifts/me")

    assert response.status_code == 200
    days = [row["check_in"]["day"] for row in response.json()]
    assert days == ["2025-01-05", "2025-01-04", "2025-01-03"]
    assert client.get("/shifts").json() == response.json()


def test_staff_can_read_other_workers_sessions(client, login):
    client.post("/shifts/check-in", json={})

    login(OTHER_WORKER)
    assert client.get(f"/shifts/worker/{WORKER['uid']}").status_code == 403

    login(VIEWER)
    response = client.get(f"/shifts/worker/{WORKER['uid']}")
    assert response.status_code == 200
    assert len(response.json()) == 1


def test_manager_deletes_session(client, login, engine):
    session_id = client.post("/shifts/check-in", json={}).json()["id"]

    assert client.delete(f"/shifts/{session_id}").status_code == 403

    login(VIEWER)
    assert client.delete(f"/shifts/{session_id}").status_code == 403

    login(MANAGER)
    assert client.delete(f"/shifts/{session_id}").status_code == 204
    assert client.delete(f"/shifts/{session_id}").status_code == 404
    assert count_sessions(engine, WORKER["uid"]) == 0


def test_check_out_service_raises_not_found(db):
    with pytest.raises(NotFoundError):
        AttendanceService.check_out(db, WORKER["uid"], None)


def test_racing_check_ins_leave_one_open_session(engine):
    attempts = 8
    barrier = threading.Barrier(attempts)
    outcomes = []
    outcomes_lock = threading.Lock()

    def punch():
        with Session(engine) as session:
            barrier.wait()
            try:
                AttendanceService.check_in(session, "racer", None)
                result = "ok"
            except ConflictError:
                result = "conflict"
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=punch) for _ in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert outcomes.count("ok") == 1
    assert outcomes.count("conflict") == attempts - 1
    assert count_sessions(engine, "racer") == 1


def test_full_day_then_new_independent_session(db, main_office):
    nine = datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)
    five = datetime(2025, 1, 10, 17, 0, tzinfo=timezone.utc)

    first = AttendanceService.check_in(db, WORKER["uid"], Coordinates(40.7133, -74.0060), at=nine)
    assert first.check_in_site_name == "Main Office"

    with pytest.raises(ConflictError):
        AttendanceService.check_in(db, WORKER["uid"], None, at=nine)
    assert len(AttendanceService.list_sessions(db, WORKER["uid"])) == 1

    closed = AttendanceService.check_out(db, WORKER["uid"], Coordinates(40.7128, -74.0060), at=five)
    assert closed.id == first.id
    assert closed.check_out_site_name == "Main Office"
    assert present_session(closed).duration_hours == 8.0

    second = AttendanceService.check_in(db, WORKER["uid"], None)
    assert second.id != first.id
    assert second.check_in_site_name is None
    assert [s.id for s in AttendanceService.list_sessions(db, WORKER["uid"])] == [second.id, first.id]


def test_punches_without_a_body(client, main_office):
    response = client.post("/shifts/check-in")

    assert response.status_code == 201
    assert response.json()["check_in"]["resolved_site_name"] is None
    assert response.json()["check_in"]["latitude"] is None

    response = client.post("/shifts/check-out")
    assert response.status_code == 200
    assert response.json()["is_open"] is False


class EventLog:
    label = "event-log"

    def __init__(self):
        self.events = []

    def deliver(self, message):
        self.events.append(message["event"])
        return True


def test_check_out_event_never_overtakes_check_in_event(engine, monkeypatch):
    log = EventLog()
    broadcaster.subscribe(worker_topic("racer"), log)
    presenting_open = threading.Event()
    original = attendance_service.present_session

    def slow_present(record):
        if record.is_open:
            presenting_open.set()
            time.sleep(0.2)
        return original(record)

    monkeypatch.setattr(attendance_service, "present_session", slow_present)

    def punch(action):
        with Session(engine) as session:
            action(session, "racer", None)

    check_in = threading.Thread(target=punch, args=(AttendanceService.check_in,))
    check_in.start()
    assert presenting_open.wait(timeout=10)
    check_out = threading.Thread(target=punch, args=(AttendanceService.check_out,))
    check_out.start()
    check_in.join(timeout=10)
    check_out.join(timeout=10)

    assert log.events == ["session-created", "session-updated"]


def seed_month(db):
    worked = [
        (datetime(2025, 3, 3, 9, tzinfo=timezone.utc), datetime(2025, 3, 3, 17, tzinfo=timezone.utc)),
        (datetime(2025, 3, 10, 8, tzinfo=timezone.utc), datetime(2025, 3, 10, 12, 30, tzinfo=timezone.utc)),
        (datetime(2025, 2, 27, 9, tzinfo=timezone.utc), datetime(2025, 2, 27, 13, tzinfo=timezone.utc)),
    ]
    for start, end in worked:
        AttendanceService.check_in(db, WORKER["uid"], None, at=start)
        AttendanceService.check_out(db, WORKER["uid"], None, at=end)
    AttendanceService.check_in(
        db, WORKER["uid"], Coordinates(40.7128, -74.0060), at=datetime(2025, 3, 20, 9, tzinfo=timezone.utc)
    )

    ScheduleService.assign(db, WORKER["uid"], date(2025, 3, 3), clock(9), clock(17))
    ScheduleService.assign(db, WORKER["uid"], date(2025, 3, 11), clock(9), clock(15))
    ScheduleService.assign(db, WORKER["uid"], date(2025, 2, 27), clock(9), clock(17))
    ScheduleService.assign(db, OTHER_WORKER["uid"], date(2025, 3, 3), clock(9), clock(17))


def test_summary_compares_worked_and_scheduled_hours(db, main_office):
    seed_month(db)

    summary = AttendanceService.summary(db, WORKER["uid"], "2025-03")

    assert summary.month == "2025-03"
    assert summary.current_status == "In"
    assert summary.current_site_name == "Main Office"
    assert summary.last_check_in == datetime(2025, 3, 20, 9, tzinfo=timezone.utc)
    # The open session is not worked time yet
    assert summary.session_count == 2
    assert summary.worked_hours == 12.5
    assert summary.scheduled_entry_count == 2
    assert summary.scheduled_hours == 14.0
    assert summary.difference_hours == -1.5


def test_summary_defaults_to_the_current_month(db, main_office):
    seed_month(db)
    AttendanceService.check_out(db, WORKER["uid"], None, at=datetime(2025, 3, 20, 17, tzinfo=timezone.utc))

    summary = AttendanceService.summary(
        db, WORKER["uid"], now=datetime(2025, 2, 28, 12, tzinfo=timezone.utc)
    )

    assert summary.month == "2025-02"
    assert summary.current_status == "Out"
    assert summary.current_site_name is None
    assert summary.last_check_in is None
    assert (summary.worked_hours, summary.scheduled_hours) == (4.0, 8.0)
    assert summary.difference_hours == -4.0


@pytest.mark.parametrize("month", ["March", "2025-13", "2025-03-01", ""])
def test_summary_rejects_malformed_month(db, month):
    with pytest.raises(ValidationError):
        AttendanceService.summary(db, WORKER["uid"], month)


def test_summary_endpoints(client, db, login, main_office):
    seed_month(db)

    response = client.get("/shifts/me/summary", params={"month": "2025-03"})
    assert response.status_code == 200
    body = response.json()
    assert body["worker_id"] == WORKER["uid"]
    assert body["current_status"] == "In"
    assert body["last_check_in"].endswith("Z")
    assert (body["worked_hours"], body["scheduled_hours"]) == (12.5, 14.0)

    assert client.get("/shifts/me/summary", params={"month": "March"}).status_code == 400

    login(OTHER_WORKER)
    assert client.get(f"/shifts/worker/{WORKER['uid']}/summary").status_code == 403

    login(VIEWER)
    response = client.get(f"/shifts/worker/{WORKER['uid']}/summary", params={"month": "2025-03"})
    assert response.status_code == 200
    assert response.json() == body


def test_worker_lock_is_reused_per_worker():
    assert worker_lock("lock-a") is worker_lock("lock-a")
    assert worker_lock("lock-a") is not worker_lock("lock-b")
