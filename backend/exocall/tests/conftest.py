import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
# Nothing listens here: event publishing and login throttling fail open.
os.environ.setdefault("REDIS_URL", "redis://127.0.0.1:1/0")
os.environ.setdefault("RUN_MIGRATIONS", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("EXOTEL_API_KEY", "test-key")
os.environ.setdefault("EXOTEL_API_SECRET", "test-secret")
os.environ.setdefault("EXOTEL_SID", "testaccount")
os.environ.setdefault("EXOTEL_FROM_NUMBER", "08047000000")
os.environ.setdefault("EXOTEL_CALLER_ID", "08047000001")
os.environ.setdefault("PUBLIC_BASE_URL", "https://hooks.example.test")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from exocall.core import database
from exocall.core.config import settings
from exocall.core.database import Base
from exocall.core.security import hash_password
from exocall.main import app
from exocall.models import (
    HealthCheck,
    PhoneNumber,
    SmsCallback,
    SyncStatus,
    User,
    UserPhoneAssignment,
    VoiceCallback,
)

engine = database.engine
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    admin = User(username="admin", hashed_password=hash_password("adminpassword"), role="ADMIN")
    manager = User(username="manager", hashed_password=hash_password("managerpassword"), role="MANAGER")
    agent = User(username="agent", hashed_password=hash_password("agentpassword"), role="AGENT")
    loner = User(username="loner", hashed_password=hash_password("lonerpassword"), role="AGENT")
    db.add_all([admin, manager, agent, loner])
    db.commit()
    line = PhoneNumber(number="08047112233", friendly_name="Support", department_name="Support")
    db.add(line)
    db.commit()
    db.add(UserPhoneAssignment(user_id=agent.id, phone_number_id=line.id))
    db.commit()
    db.close()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clean_event_tables():
    yield
    session = TestingSessionLocal()
    try:
        for model in (VoiceCallback, SmsCallback, HealthCheck, SyncStatus):
            session.query(model).delete()
        session.commit()
    finally:
        session.close()


@pytest.fixture()
def exotel_settings():
    return settings


@pytest.fixture()
def client():
    app.dependency_overrides[database.get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def login(client, username, password):
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    return response.json()["access_token"]


def auth_headers(client, username, password):
    return {"Authorization": f"Bearer {login(client, username, password)}"}


@pytest.fixture()
def admin_headers(client):
    return auth_headers(client, "admin", "adminpassword")


@pytest.fixture()
def manager_headers(client):
    return auth_headers(client, "manager", "managerpassword")


@pytest.fixture()
def agent_headers(client):
    return auth_headers(client, "agent", "agentpassword")


@pytest.fixture()
def loner_headers(client):
    return auth_headers(client, "loner", "lonerpassword")
