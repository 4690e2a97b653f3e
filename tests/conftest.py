import os

# Point the app at an in-memory database before anything from carelink is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient

from carelink import models
from carelink.database import Base, SessionLocal, engine
from carelink.utils.events import bus
import carelink.auth.utils_auth as auth_utils

DELHI = (28.6139, 77.2090)


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    bus._subscribers.clear()


@pytest.fixture(autouse=True)
def sms_outbox(monkeypatch):
    sent = []
    monkeypatch.setattr("carelink.emergency.address_from_coordinates", lambda lat, lon: f"{lat}, {lon}")
    monkeypatch.setattr("carelink.emergency.send_sms", lambda phone, msg: sent.append((phone, msg)))
    return sent


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    def _make(role="patient", full_name="Test User", phone=None, lat=None, lon=None, hospital_data=None, email=None):
        user = models.User(
            full_name=full_name,
            email=email or f"{models.new_id()}@example.com",
            phone=phone,
            role=role,
            password_hash="not-a-real-hash",
            lat=lat,
            lon=lon,
            hospital_data=hospital_data,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_hospital(make_user):
    """Hospital ``km_north`` kilometres north of central Delhi."""
    def _make(name, km_north, available_beds=5, phone=None, use_profile=True, **profile):
        lat = DELHI[0] + km_north / 111.195
        lon = DELHI[1]
        data = {"hospital_name": name, "available_beds": available_beds, **profile}
        if use_profile:
            data["coordinates"] = {"latitude": lat, "longitude": lon}
            return make_user(role="hospital", full_name=name, phone=phone, hospital_data=data)
        return make_user(role="hospital", full_name=name, phone=phone, lat=lat, lon=lon, hospital_data=data)
    return _make


@pytest.fixture
def client():
    from carelink.main import app
    return TestClient(app)


def auth_headers(user):
    return {"Authorization": f"Bearer {auth_utils.create_access_token(user.id, user.role)}"}
