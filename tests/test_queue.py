import pytest
from sqlalchemy.exc import IntegrityError

from carelink import crud, schemas


def entry(department="general", priority="normal", patient="p1"):
    return schemas.QueueCreate(
        patient_id=patient, doctor_id="d1", patient_name="Patient", doctor_name="Doctor",
        department=department, priority=priority,
    )


@pytest.mark.parametrize("priority,waiting,expected", [
    ("emergency", 7, 0),
    ("urgent", 3, 15),
    ("normal", 3, 30),
    ("normal", 0, 0),
])
def test_estimate_wait_time(priority, waiting, expected):
    assert crud.estimate_wait_time(priority, waiting) == expected


def test_numbers_increase_across_departments(db):
    numbers = [
        crud.add_to_queue(db, entry("cardiology")).queue_number,
        crud.add_to_queue(db, entry("pediatrics")).queue_number,
        crud.add_to_queue(db, entry("cardiology")).queue_number,
    ]
    assert numbers == [1, 2, 3]


def test_numbers_skip_past_finished_entries(db):
    first = crud.add_to_queue(db, entry())
    crud.update_queue_status(db, first.id, "completed")
    assert crud.add_to_queue(db, entry()).queue_number == 2


def test_wait_time_counts_waiting_in_same_department(db):
    crud.add_to_queue(db, entry("cardiology"))
    crud.add_to_queue(db, entry("cardiology"))
    crud.add_to_queue(db, entry("pediatrics"))

    assert crud.add_to_queue(db, entry("cardiology")).estimated_wait_time == 20
    assert crud.add_to_queue(db, entry("cardiology", "urgent")).estimated_wait_time == 15
    assert crud.add_to_queue(db, entry("cardiology", "emergency")).estimated_wait_time == 0


def test_new_entry_defaults(db):
    created = crud.add_to_queue(db, schemas.QueueCreate(
        patient_id="p", doctor_id="d", patient_name="P", doctor_name="D"))
    assert created.status == "waiting"
    assert created.department == "general"
    assert created.reason == ""


def test_status_timestamps(db):
    queued = crud.add_to_queue(db, entry())
    started = crud.update_queue_status(db, queued.id, "in-progress")
    assert started.started_at is not None
    assert started.completed_at is None
    done = crud.update_queue_status(db, queued.id, "completed")
    assert done.completed_at is not None


def test_list_shows_open_entries_oldest_first(db):
    a = crud.add_to_queue(db, entry("cardiology"))
    b = crud.add_to_queue(db, entry("pediatrics"))
    c = crud.add_to_queue(db, entry("cardiology"))
    crud.update_queue_status(db, b.id, "cancelled")
    crud.update_queue_status(db, c.id, "in-progress")

    assert [e.id for e in crud.list_queue(db)] == [a.id, c.id]
    assert [e.id for e in crud.list_queue(db, "pediatrics")] == []


def test_number_collision_is_retried(db, monkeypatch):
    crud.add_to_queue(db, entry())
    real = crud._today_entries
    calls = []

    def stale_then_real(session, day):
        calls.append(day)
        return [] if len(calls) == 1 else real(session, day)

    monkeypatch.setattr(crud, "_today_entries", stale_then_real)

    assert crud.add_to_queue(db, entry()).queue_number == 2
    assert len(calls) == 2


def test_collision_gives_up_after_max_attempts(db, monkeypatch):
    crud.add_to_queue(db, entry())
    monkeypatch.setattr(crud, "_today_entries", lambda session, day: [])

    with pytest.raises(IntegrityError):
        crud.add_to_queue(db, entry(), max_attempts=2)


def test_queue_subscription(db):
    seen = []
    crud.subscribe_to_queue(lambda entries: seen.append(len(entries)), department="cardiology")
    crud.add_to_queue(db, entry("cardiology"))
    crud.add_to_queue(db, entry("pediatrics"))
    assert seen == [0, 1, 1]
