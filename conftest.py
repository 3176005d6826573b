import os
import tempfile

# must be set before config/main are imported
_tmpdir = tempfile.mkdtemp(prefix="ellarises-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmpdir, 'test.db')}"
os.environ.setdefault("SECRET_KEY", "test-secret")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from auth import hash_password
from main import app, db


@pytest.fixture(autouse=True)
def clean_db():
    db.clear()
    db.seed_reference_data()
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_participant():
    def _make(first="Sofia", last="Garcia", email=None, role="participant", **extra):
        values = {
            "participant_first_name": first,
            "participant_last_name": last,
            "participant_email": email or f"{first.lower()}.{last.lower()}@example.com",
            "participant_role": role,
            **extra,
        }
        return app.state.participants.create(values)
    return _make


@pytest.fixture
def make_user(make_participant):
    def _make(username, password="password123", role="participant", first=None, last="Tester"):
        participant_id = make_participant(first=first or username.capitalize(), last=last, role=role)
        user_id = app.state.users.create_user(username, hash_password(password), participant_id)
        return {"user_id": user_id, "participant_id": participant_id, "username": username, "password": password}
    return _make


def login(client, username, password="password123"):
    response = client.post("/login", data={"username": username, "password": password}, follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/"
    return response


@pytest.fixture
def admin(make_user):
    return make_user("admin", role="admin")


@pytest.fixture
def member(make_user):
    return make_user("sofia")


@pytest.fixture
def manager_client(admin):
    c = TestClient(app)
    login(c, admin["username"])
    return c


@pytest.fixture
def member_client(member):
    c = TestClient(app)
    login(c, member["username"])
    return c


@pytest.fixture
def make_occurrence():
    def _make(start=None, event_name="STEAM Workshop", event_type="Workshop", template_id=None, **extra):
        if template_id is None:
            template_id = app.state.templates.create({"event_name": event_name, "event_type": event_type})
        start = start or datetime.now() + timedelta(days=7)
        return app.state.events.create({
            "template_id": template_id,
            "event_datetime_start": start,
            "event_datetime_end": start + timedelta(hours=2),
            "event_location": "Community Center",
            "event_capacity": 20,
            **extra,
        })
    return _make
