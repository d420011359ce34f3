"""
Tests for manager-assigned schedule entries: validation, updates, deletes,
site snapshots, per-site rosters and the per-day site analytics.
"""

from datetime import date, time

import pytest

from conftest import MANAGER, OTHER_WORKER, VIEWER, WORKER
from core.exceptions import NotFoundError, ValidationError
from models.schedule_entry import ScheduleEntry
from services import reconciliation
from services.schedule_service import ScheduleService
from services.site_registry import SiteRegistry

SHIFT = {
    "worker_id": WORKER["uid"],
    "shift_date": "2025-03-14",
    "start_time": "09:00:00",
    "end_time": "17:00:00",
}


@pytest.fixture
def manager(login):
    login(MANAGER)
    return MANAGER


@pytest.fixture
def warehouse(db):
    return SiteRegistry.create(db, "Warehouse", latitude=34.05, longitude=-118.25)


def test_assign_shift_records_hours(client, manager, login):
    response = client.post("/employee-shifts/assign", json=SHIFT)

    assert response.status_code == 201
    body = response.json()
    assert body["worker_id"] == WORKER["uid"]
    assert body["category"] == "Work"
    assert body["created_by"] == MANAGER["uid"]

    login(WORKER)
    summary = client.get("/employee-shifts/me/summary").json()
    assert summary["total_hours"] == 8.0
    assert summary["rows"][0]["hours"] == 8.0
    assert summary["rows"][0]["start_12h"] == "09:00 AM"
    assert summary["rows"][0]["end_12h"] == "05:00 PM"
    assert summary["rows"][0]["day_name"] == "Friday"


def test_assign_rejects_end_before_start(client, manager):
    response = client.post(
        "/employee-shifts/assign",
        json={**SHIFT, "start_time": "17:00:00", "end_time": "09:00:00"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"
    assert client.get(f"/employee-shifts/employee/{WORKER['uid']}").json() == []


def test_assign_rejects_zero_length_shift(client, manager):
    response = client.post(
        "/employee-shifts/assign",
        json={**SHIFT, "end_time": "09:00:00"},
    )
    assert response.status_code == 400


@pytest.mark.parametrize("missing", ["worker_id", "shift_date", "start_time", "end_time"])
def test_assign_requires_fields(client, manager, missing):
    payload = {key: value for key, value in SHIFT.items() if key != missing}

    response = client.post("/employee-shifts/assign", json=payload)

    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"


def test_assign_to_unknown_site_is_not_found(client, manager):
    response = client.post("/employee-shifts/assign", json={**SHIFT, "site_id": 999})
    assert response.status_code == 404


def test_only_managers_assign(client, login):
    assert client.post("/employee-shifts/assign", json=SHIFT).status_code == 403
    login(VIEWER)
    response = client.post("/employee-shifts/assign", json=SHIFT)
    assert response.status_code == 403
    assert response.json()["error"] == "ForbiddenError"


def test_overlapping_entries_are_allowed(client, manager):
    assert client.post("/employee-shifts/assign", json=SHIFT).status_code == 201
    assert client.post(
        "/employee-shifts/assign",
        json={**SHIFT, "start_time": "12:00:00", "end_time": "20:00:00"},
    ).status_code == 201

    assert len(client.get(f"/employee-shifts/employee/{WORKER['uid']}").json()) == 2


def test_update_validates_merged_window(client, manager):
    entry_id = client.post("/employee-shifts/assign", json=SHIFT).json()["id"]

    response = client.put(f"/employee-shifts/{entry_id}", json={"end_time": "08:00:00"})
    assert response.status_code == 400

    response = client.put(f"/employee-shifts/{entry_id}", json={"end_time": "13:30:00", "notes": "Early close"})
    assert response.status_code == 200
    body = response.json()
    assert body["start_time"] == "09:00:00"
    assert body["end_time"] == "13:30:00"
    assert body["notes"] == "Early close"
    assert body["updated_by"] == MANAGER["uid"]


def test_update_and_delete_missing_entry(client, manager):
    assert client.put("/employee-shifts/4242", json={"notes": "x"}).status_code == 404
    assert client.delete("/employee-shifts/4242").status_code == 404


def test_delete_entry(client, manager, login):
    entry_id = client.post("/employee-shifts/assign", json=SHIFT).json()["id"]

    assert client.delete(f"/employee-shifts/{entry_id}").status_code == 204

    login(WORKER)
    assert client.get("/employee-shifts/me").json() == []


def test_clear_worker_day_only_touches_that_worker_and_day(client, manager):
    client.post("/employee-shifts/assign", json=SHIFT)
    client.post("/employee-shifts/assign", json={**SHIFT, "start_time": "18:00:00", "end_time": "20:00:00"})
    client.post("/employee-shifts/assign", json={**SHIFT, "shift_date": "2025-03-15"})
    client.post("/employee-shifts/assign", json={**SHIFT, "worker_id": OTHER_WORKER["uid"]})

    response = client.delete(f"/employee-shifts/employee/{WORKER['uid']}/day/2025-03-14")

    assert response.status_code == 204
    remaining = client.get(f"/employee-shifts/employee/{WORKER['uid']}").json()
    assert [row["shift_date"] for row in remaining] == ["2025-03-15"]
    assert len(client.get(f"/employee-shifts/employee/{OTHER_WORKER['uid']}").json()) == 1


def test_worker_cannot_read_another_workers_schedule(client):
    assert client.get(f"/employee-shifts/employee/{OTHER_WORKER['uid']}").status_code == 403
    assert client.get(f"/employee-shifts/employee/{OTHER_WORKER['uid']}/summary").status_code == 403


def test_site_name_survives_site_deletion(db, warehouse):
    entry = ScheduleService.assign(
        db, WORKER["uid"], date(2025, 3, 14), time(9), time(17), site_id=warehouse.id, actor="manager-1"
    )
    assert entry.site_name_snapshot == "Warehouse"

    SiteRegistry.delete(db, warehouse.id)

    db.refresh(entry)
    assert entry.site_id is None
    assert entry.site_name_snapshot == "Warehouse"


def test_update_moves_site_snapshot(db, warehouse):
    office = SiteRegistry.create(db, "Office")
    entry = ScheduleService.assign(db, WORKER["uid"], date(2025, 3, 14), time(9), time(17), site_id=warehouse.id)

    ScheduleService.update(db, entry.id, {"site_id": office.id})
    assert entry.site_name_snapshot == "Office"

    ScheduleService.update(db, entry.id, {"site_id": None})
    assert entry.site_name_snapshot is None


def test_update_rejects_unknown_fields(db):
    entry = ScheduleService.assign(db, WORKER["uid"], date(2025, 3, 14), time(9), time(17))

    with pytest.raises(ValidationError):
        ScheduleService.update(db, entry.id, {"worker_id": "someone-else"})
    with pytest.raises(ValidationError):
        ScheduleService.update(db, entry.id, {"shift_date": None})


def test_worker_schedule_ordering(db):
    ScheduleService.assign(db, WORKER["uid"], date(2025, 3, 15), time(8), time(12))
    ScheduleService.assign(db, WORKER["uid"], date(2025, 3, 14), time(13), time(17))
    ScheduleService.assign(db, WORKER["uid"], date(2025, 3, 14), time(7), time(11))

    entries = ScheduleService.list_for_worker(db, WORKER["uid"])

    assert [(e.shift_date.day, e.start_time.hour) for e in entries] == [(14, 7), (14, 13), (15, 8)]


def test_roster_and_site_hours(client, db, manager, warehouse):
    office = SiteRegistry.create(db, "Annex")
    day = date(2025, 3, 14)
    ScheduleService.assign(db, WORKER["uid"], day, time(9), time(17), site_id=warehouse.id)
    ScheduleService.assign(db, WORKER["uid"], day, time(18), time(20), site_id=warehouse.id)
    ScheduleService.assign(db, OTHER_WORKER["uid"], day, time(10), time(14, 30), site_id=warehouse.id)
    ScheduleService.assign(db, OTHER_WORKER["uid"], day, time(8), time(9), site_id=office.id)
    ScheduleService.assign(db, OTHER_WORKER["uid"], date(2025, 3, 15), time(8), time(16), site_id=office.id)

    roster = client.get(f"/locations/{warehouse.id}/employees/2025-03-14").json()
    assert [(row["worker_id"], row["hours"]) for row in roster] == [
        (WORKER["uid"], 8.0),
        (WORKER["uid"], 2.0),
        (OTHER_WORKER["uid"], 4.5),
    ]

    analytics = client.get("/locations/analytics/2025-03-14").json()
    assert [(row["name"], row["worker_count"], row["total_hours"]) for row in analytics] == [
        ("Annex", 1, 1.0),
        ("Warehouse", 2, 14.5),
    ]


def test_roster_for_unknown_site(db):
    with pytest.raises(NotFoundError):
        ScheduleService.roster_for_site(db, 77, date(2025, 3, 14))


def test_entries_are_stored_with_audit_fields(db):
    entry = ScheduleService.assign(db, WORKER["uid"], date(2025, 3, 14), time(9), time(17), actor="manager-1")

    stored = db.get(ScheduleEntry, entry.id)
    assert stored.created_by == "manager-1"
    assert stored.created_at is not None
    assert stored.updated_at is None


def test_assigned_entry_at_site_totals_eight_hours(db):
    office = SiteRegistry.create(db, "Main Office", latitude=40.7128, longitude=-74.0060)

    ScheduleService.assign(
        db, WORKER["uid"], date(2025, 1, 13), time(9), time(17), site_id=office.id, actor=MANAGER["uid"]
    )

    entries = ScheduleService.list_for_worker(db, WORKER["uid"])
    assert len(entries) == 1
    assert entries[0].shift_date == date(2025, 1, 13)
    assert entries[0].site_name_snapshot == "Main Office"
    assert reconciliation.total_hours(entries) == 8.0
