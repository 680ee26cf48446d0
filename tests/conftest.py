import os

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set testing environment before the application reads its settings
os.environ["TESTING"] = "1"
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///./test.db")

from aiforhealth.main import app
from aiforhealth.core.database import get_db, get_redis, Base
from aiforhealth.core.security import UserRole, get_password_hash
from aiforhealth.models.user import User

from .utils import PASSWORD, register, login

# Create test database
SQLALCHEMY_DATABASE_URL = os.environ["TEST_DATABASE_URL"]
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db

@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def fake_redis():
    server = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    app.dependency_overrides[get_redis] = lambda: server
    yield server
    app.dependency_overrides.pop(get_redis, None)

@pytest.fixture
def client(test_db, fake_redis):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

@pytest.fixture
def db_session(test_db):
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def patient(client):
    """A registered patient: user payload, auth headers and patient profile id."""
    user = register(client, "patient@example.com", first_name="Pat", last_name="Jones")
    headers = login(client, "patient@example.com")
    profile = client.get("/api/v1/patients/me", headers=headers).json()
    return {"user": user, "headers": headers, "id": profile["id"]}

@pytest.fixture
def other_patient(client):
    user = register(client, "other@example.com", first_name="Olive", last_name="Smith")
    headers = login(client, "other@example.com")
    profile = client.get("/api/v1/patients/me", headers=headers).json()
    return {"user": user, "headers": headers, "id": profile["id"]}

@pytest.fixture
def doctor(client):
    """A registered doctor without a clinic, so every future time is bookable."""
    user = register(
        client, "doctor@example.com", role="doctor",
        first_name="Grace", last_name="House",
        specialization="Cardiology", license_number="LIC-1001",
    )
    headers = login(client, "doctor@example.com")
    profile = client.get("/api/v1/doctors/me", headers=headers).json()
    return {"user": user, "headers": headers, "id": profile["id"]}

@pytest.fixture
def admin_headers(client, db_session):
    admin = User(
        email="admin@example.com",
        password_hash=get_password_hash(PASSWORD),
        role=UserRole.ADMIN,
        is_active=True,
        is_verified=True,
    )
    db_session.add(admin)
    db_session.commit()
    return login(client, "admin@example.com")
