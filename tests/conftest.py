"""
Pytest configuration for the chat backend tests
"""

import os

# Point the app at an in-memory database and keep external services off
# BEFORE importing any sihha modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LIVEKIT_URL"] = ""
os.environ["LIVEKIT_API_KEY"] = ""
os.environ["LIVEKIT_API_SECRET"] = ""
os.environ.pop("OPENAI_API_KEY", None)

import itertools
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import sihha.models  # noqa: F401
from sihha.database import Base, get_db
from sihha.dependencies import get_clock
from sihha.models.user import User, ROLE_DOCTOR, ROLE_PATIENT
from sihha.services.livekit_token_service import LiveKitTokenService
from sihha.utils.security import create_access_token, get_password_hash

DEFAULT_PASSWORD = "secret123"


class FakeClock:
    """Manually advanced clock; every service under test reads time from it."""

    def __init__(self, start: datetime = datetime(2026, 3, 10, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self.now = self.now + timedelta(seconds=seconds, **kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture(scope="session")
def password_hash():
    return get_password_hash(DEFAULT_PASSWORD)


@pytest.fixture
def make_user(db, clock, password_hash):
    counter = itertools.count(1)

    def _make(role=ROLE_PATIENT, name=None, **fields):
        n = next(counter)
        user = User(
            id=f"{role}-{n}",
            name=name or f"{role.title()} Number {n}",
            phone_number=f"+23566{n:06d}",
            password_hash=password_hash,
            role=role,
            created_at=clock(),
            **fields,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def patient(make_user):
    return make_user(ROLE_PATIENT, name="Amina Patient")


@pytest.fixture
def doctor(make_user):
    return make_user(ROLE_DOCTOR, name="Dr Youssouf", specialty="general", hospital_name="CHU N'Djamena")


@pytest.fixture
def other_doctor(make_user):
    return make_user(ROLE_DOCTOR, name="Dr Haoua")


@pytest.fixture
def tokens():
    return LiveKitTokenService(
        url="wss://calls.example.test",
        api_key="lk-key",
        api_secret="lk-secret-for-tests",
        room_prefix="sihha",
        ttl_seconds=900,
    )


@pytest.fixture
def client(db, clock):
    from sihha.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


def intake(doctor_id: str, /, **overrides) -> dict:
    payload = {
        "doctor_id": doctor_id,
        "subject_type": "self",
        "subject_name": None,
        "age_years": 34,
        "gender": "female",
        "weight_kg": 61.5,
        "state_code": "n_djamena",
        "spoken_language": "ar",
        "symptoms": "Fever and dry cough for three days",
    }
    payload.update(overrides)
    return payload
