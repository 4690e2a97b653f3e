from datetime import timedelta

import pytest

from carelink import crud, models, schemas
from carelink.crud import NotFound


@pytest.fixture
def pair(make_user):
    return make_user(role="patient", full_name="Meera"), make_user(role="doctor", full_name="Dr. Kapoor")


@pytest.fixture
def start_call(db, pair):
    patient, doctor = pair

    def _start(call_type="video"):
        return crud.initiate_call(db, schemas.CallCreate(
            patient_id=patient.id, doctor_id=doctor.id,
            patient_name=patient.full_name, doctor_name=doctor.full_name,
            call_type=call_type,
        ))
    return _start


def test_new_call_is_ringing(db, start_call):
    call_id = start_call()
    call = db.query(models.Call).filter(models.Call.id == call_id).one()
    assert call.status == "ringing"
    assert call.call_type == "video"
    assert call.end_time is None


def test_answer_then_end(db, start_call):
    call_id = start_call("audio")
    assert crud.answer_call(db, call_id).status == "connected"

    call = db.query(models.Call).filter(models.Call.id == call_id).one()
    call.start_time = call.start_time - timedelta(seconds=90)
    db.commit()

    ended = crud.end_call(db, call_id)
    assert ended.status == "ended"
    assert ended.end_time is not None
    assert 90 <= ended.duration < 100


@pytest.mark.parametrize("action,status", [
    (crud.decline_call, "declined"),
    (crud.mark_call_missed, "missed"),
])
def test_unanswered_calls_end(db, start_call, action, status):
    call = action(db, start_call())
    assert call.status == status
    assert call.end_time is not None


def test_unknown_call(db):
    with pytest.raises(NotFound):
        crud.answer_call(db, "missing")


def test_active_calls_per_side(db, pair, start_call):
    patient, doctor = pair
    ringing = start_call()
    connected = start_call()
    crud.answer_call(db, connected)
    crud.end_call(db, start_call())

    for user, role in ((patient, "patient"), (doctor, "doctor")):
        ids = {c.id for c in crud.list_active_calls(db, user.id, role)}
        assert ids == {ringing, connected}


def test_active_calls_rejects_other_roles(db, pair):
    with pytest.raises(ValueError):
        crud.list_active_calls(db, pair[0].id, "hospital")


def test_snapshot_picks_incoming_and_current(db, pair, start_call):
    patient, _ = pair
    ringing = start_call()
    connected = start_call()
    crud.answer_call(db, connected)

    snapshot = crud.call_snapshot(crud.list_active_calls(db, patient.id, "patient"))
    assert snapshot["incoming_call"].id == ringing
    assert snapshot["current_call"].id == connected
    assert len(snapshot["active_calls"]) == 2


def test_empty_snapshot():
    assert crud.call_snapshot([]) == {"active_calls": [], "incoming_call": None, "current_call": None}


def test_incoming_call_subscription(db, pair, start_call):
    _, doctor = pair
    seen = []
    unsubscribe = crud.subscribe_to_incoming_calls(
        doctor.id, "doctor", lambda snap: seen.append(snap["incoming_call"] and snap["incoming_call"].id))
    assert seen == [None]

    call_id = start_call()
    assert seen[-1] == call_id

    crud.decline_call(db, call_id)
    assert seen[-1] is None

    unsubscribe()
    start_call()
    assert seen[-1] is None
