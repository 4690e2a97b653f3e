import pytest

from carelink import emergency
from tests.conftest import DELHI


def test_results_are_sorted_by_distance(db, make_hospital):
    make_hospital("Far", 8)
    make_hospital("Near", 1)
    make_hospital("Middle", 4)

    matches = emergency.find_nearby_hospitals(db, *DELHI)

    assert [m.hospital_name for m in matches] == ["Near", "Middle", "Far"]
    assert [m.distance for m in matches] == sorted(m.distance for m in matches)
    assert matches[0].distance == pytest.approx(1, abs=0.01)


def test_hospitals_outside_radius_are_excluded(db, make_hospital):
    make_hospital("Inside", 9.9)
    make_hospital("Outside", 10.1)

    names = [m.hospital_name for m in emergency.find_nearby_hospitals(db, *DELHI, max_distance=10)]
    assert names == ["Inside"]


def test_wider_radius_includes_more(db, make_hospital):
    make_hospital("A", 5)
    make_hospital("B", 12)
    assert len(emergency.find_nearby_hospitals(db, *DELHI, max_distance=10)) == 1
    assert len(emergency.find_nearby_hospitals(db, *DELHI, max_distance=15)) == 2


def test_only_hospital_accounts_are_matched(db, make_user, make_hospital):
    make_user(role="doctor", lat=DELHI[0], lon=DELHI[1])
    make_user(role="patient", lat=DELHI[0], lon=DELHI[1])
    make_hospital("City Hospital", 2)

    matches = emergency.find_nearby_hospitals(db, *DELHI)
    assert [m.hospital_name for m in matches] == ["City Hospital"]


def test_hospital_without_coordinates_is_skipped(db, make_user, make_hospital):
    make_user(role="hospital", full_name="Nowhere", hospital_data={"hospital_name": "Nowhere"})
    make_user(role="hospital", full_name="Half", lat=DELHI[0])
    make_hospital("Somewhere", 3)

    assert [m.hospital_name for m in emergency.find_nearby_hospitals(db, *DELHI)] == ["Somewhere"]


def test_account_coordinates_used_when_profile_has_none(db, make_hospital):
    make_hospital("Row Coords", 2, use_profile=False)

    matches = emergency.find_nearby_hospitals(db, *DELHI)
    assert len(matches) == 1
    assert matches[0].distance == pytest.approx(2, abs=0.01)


def test_zero_coordinates_are_real_coordinates(db, make_user):
    make_user(role="hospital", full_name="Null Island", hospital_data={
        "hospital_name": "Null Island",
        "coordinates": {"latitude": 0.0, "longitude": 0.0},
    })
    matches = emergency.find_nearby_hospitals(db, 0.01, 0.0)
    assert [m.hospital_name for m in matches] == ["Null Island"]


def test_capacity_fields_and_defaults(db, make_user, make_hospital):
    make_hospital("Full", 1, available_beds=0, icu_beds=2)
    make_hospital("Open", 2, available_beds=7, ambulances_available=0)
    make_user(role="hospital", full_name="Bare Account", lat=DELHI[0] + 0.027, lon=DELHI[1])

    full, open_, bare = emergency.find_nearby_hospitals(db, *DELHI)

    assert full.can_respond is False
    assert full.icu_beds == 2
    assert full.ambulances_available == 1
    assert open_.can_respond is True
    assert open_.available_beds == 7
    assert open_.ambulances_available == 0
    assert bare.hospital_name == "Bare Account"
    assert bare.available_beds == 0
    assert bare.can_respond is False


def test_response_time_and_coordinates(db, make_hospital):
    make_hospital("Near", 3)
    match = emergency.find_nearby_hospitals(db, *DELHI)[0]
    assert match.response_time == "1 mins"
    assert match.coordinates.longitude == DELHI[1]


def test_no_hospitals_returns_empty_list(db):
    assert emergency.find_nearby_hospitals(db, *DELHI) == []


def test_out_of_range_coordinates_are_skipped(db, make_user, make_hospital):
    make_user(role="hospital", full_name="Wrapped", lat=DELHI[0] + 360, lon=DELHI[1])
    make_user(role="hospital", full_name="Bad Profile", hospital_data={
        "hospital_name": "Bad Profile",
        "coordinates": {"latitude": DELHI[0], "longitude": DELHI[1] + 360},
    })
    make_hospital("Valid", 2)

    assert [m.hospital_name for m in emergency.find_nearby_hospitals(db, *DELHI)] == ["Valid"]
    assert emergency.check_emergency_services_availability(db, *DELHI)["services_within_20km"] == 1
