import itertools

import pytest

from carelink.utils import geo

DELHI = (28.6139, 77.2090)
MUMBAI = (19.0760, 72.8777)
KOLKATA = (22.5726, 88.3639)
CHENNAI = (13.0827, 80.2707)
POINTS = [DELHI, MUMBAI, KOLKATA, CHENNAI, (0.0, 0.0), (-33.8688, 151.2093)]


def test_delhi_to_mumbai():
    assert 1150 <= geo.distance_km(DELHI, MUMBAI) <= 1160


@pytest.mark.parametrize("a,b", list(itertools.combinations(POINTS, 2)))
def test_distance_is_symmetric(a, b):
    assert geo.distance_km(a, b) == pytest.approx(geo.distance_km(b, a))


@pytest.mark.parametrize("point", POINTS)
def test_distance_to_self_is_zero(point):
    assert geo.distance_km(point, point) == 0


def test_triangle_inequality():
    for a, b, c in itertools.permutations(POINTS, 3):
        assert geo.distance_km(a, c) <= geo.distance_km(a, b) + geo.distance_km(b, c) + 1e-9


def test_one_degree_of_latitude():
    assert geo.distance_km((10.0, 20.0), (11.0, 20.0)) == pytest.approx(111.195, abs=0.01)


@pytest.mark.parametrize("distance,expected", [
    (0, "0 mins"),
    (0.5, "1 mins"),
    (40, "1 mins"),
    (41, "2 mins"),
    (120, "3 mins"),
])
def test_response_time(distance, expected):
    assert geo.response_time(distance) == expected


def test_address_falls_back_to_coordinates(monkeypatch):
    monkeypatch.setattr(geo, "reverse_geocode", lambda lat, lon: None)
    assert geo.address_from_coordinates(12.5, 77.25) == "12.5, 77.25"


def test_address_uses_reverse_geocode(monkeypatch):
    monkeypatch.setattr(geo, "reverse_geocode", lambda lat, lon: "Connaught Place, New Delhi")
    assert geo.address_from_coordinates(*DELHI) == "Connaught Place, New Delhi"


def test_reverse_geocode_request_error_returns_none(monkeypatch):
    def boom(*args, **kwargs):
        raise geo.requests.exceptions.ConnectionError("offline")

    monkeypatch.setattr(geo.requests, "get", boom)
    assert geo.reverse_geocode(*DELHI) is None


def test_reverse_geocode_retries_timeouts(monkeypatch):
    calls = []

    def slow(*args, **kwargs):
        calls.append(kwargs["params"])
        raise geo.requests.exceptions.Timeout("slow")

    monkeypatch.setattr(geo.requests, "get", slow)
    monkeypatch.setattr(geo.time, "sleep", lambda seconds: None)

    assert geo.reverse_geocode(*DELHI, max_retries=3) is None
    assert len(calls) == 3
    assert calls[0]["format"] == "json"
