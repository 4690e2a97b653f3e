from datetime import timedelta

import pytest

from carelink import crud, schemas
from carelink.crud import NotFound


@pytest.fixture
def ward(db):
    def _bed(number, status="available", department="general", ward_name="A", bed_type="general", hospital_id=None):
        return crud.add_bed(db, schemas.BedCreate(
            bed_number=number, ward=ward_name, department=department, type=bed_type, status=status,
        ), hospital_id)
    return _bed


def booking(bed, urgency="normal"):
    return schemas.BedBookingCreate(
        patient_id="p1", doctor_id="d1", patient_name="Ravi", doctor_name="Dr. Iyer",
        bed_id=bed.id, ward=bed.ward, department=bed.department, urgency=urgency,
    )


def test_stats(db, ward):
    ward("1")
    ward("2")
    ward("3", status="occupied")
    ward("4", status="maintenance")
    assert crud.get_bed_stats(db) == {"total": 4, "available": 2, "occupied": 1, "maintenance": 1}


def test_filters(db, ward, make_user):
    hospital = make_user(role="hospital")
    ward("1", department="icu", ward_name="ICU-1", hospital_id=hospital.id)
    ward("2", department="general", ward_name="G-1")
    ward("3", department="icu", ward_name="ICU-1")

    assert len(crud.list_beds(db, department="icu")) == 2
    assert [b.bed_number for b in crud.list_beds(db, hospital_id=hospital.id)] == ["1"]
    assert sorted(b.bed_number for b in crud.get_beds_by_ward(db, "ICU-1")) == ["1", "3"]


def test_emergency_availability_includes_maintenance(db, ward):
    ward("1")
    ward("2", status="maintenance")
    ward("3", status="occupied")

    assert [b.bed_number for b in crud.check_bed_availability(db)] == ["1"]
    assert sorted(b.bed_number for b in crud.check_bed_availability(db, urgency="emergency")) == ["1", "2"]


def test_normal_booking_is_pending(db, ward):
    bed = ward("1")
    created = crud.book_bed(db, booking(bed))
    db.refresh(bed)
    assert created.status == "pending"
    assert created.approved_at is None
    assert created.bed_number == "1"
    assert bed.status == "available"


def test_emergency_booking_reserves_bed(db, ward):
    bed = ward("1")
    created = crud.book_bed(db, booking(bed, "emergency"))
    db.refresh(bed)
    assert created.status == "approved"
    assert created.approved_at is not None
    assert bed.status == "reserved"
    assert bed.patient_id == "p1"
    assert bed.reserved_until - created.requested_at == timedelta(hours=24)


@pytest.mark.parametrize("status", ["occupied", "reserved"])
def test_taken_beds_cannot_be_booked(db, ward, status):
    bed = ward("1")
    crud.update_bed_status(db, bed.id, status, "someone", "Someone")
    with pytest.raises(ValueError):
        crud.book_bed(db, booking(bed, "emergency"))


def test_maintenance_bed_can_be_booked_in_emergency(db, ward):
    bed = ward("1", status="maintenance")
    crud.book_bed(db, booking(bed, "emergency"))
    db.refresh(bed)
    assert bed.status == "reserved"


def test_unknown_bed(db):
    with pytest.raises(NotFound):
        crud.book_bed(db, schemas.BedBookingCreate(
            patient_id="p", doctor_id="d", patient_name="P", doctor_name="D",
            bed_id="missing", ward="A", department="general",
        ))


def test_releasing_bed_clears_patient_and_reservation(db, ward):
    bed = ward("1")
    crud.book_bed(db, booking(bed, "emergency"))
    freed = crud.update_bed_status(db, bed.id, "available")
    assert freed.patient_id is None
    assert freed.patient_name is None
    assert freed.reserved_until is None


def test_bookings_listed_per_side(db, ward):
    bed = ward("1")
    crud.book_bed(db, booking(bed))
    assert len(crud.list_bookings(db, "p1", "patient")) == 1
    assert len(crud.list_bookings(db, "d1", "doctor")) == 1
    assert crud.list_bookings(db, "p2", "patient") == []


def test_bed_and_booking_subscriptions(db, ward):
    beds_seen, bookings_seen = [], []
    crud.subscribe_to_beds(lambda beds: beds_seen.append([b.status for b in beds]), department="general")
    crud.subscribe_to_bookings("p1", "patient", lambda bookings: bookings_seen.append(len(bookings)))

    bed = ward("1")
    ward("2", department="icu")
    crud.book_bed(db, booking(bed, urgency="emergency"))

    assert beds_seen[0] == []
    assert beds_seen[-1] == ["reserved"]
    assert bookings_seen == [0, 1]
