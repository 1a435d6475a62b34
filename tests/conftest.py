"""
Shared fixtures.

The environment is set before the application modules are imported so the
cached settings pick up a fast bcrypt cost, a fixed JWT secret and no
background scheduler. Every test gets a fresh in-memory database.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["MAIL_HOST"] = ""
os.environ["EXPOSE_RESET_TOKEN"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["TOKEN_EXPIRE_MINUTES"] = "60"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import get_settings
from database import Base, get_db
from emails import get_mailer
from main import app

PASSWORD = "12345678"


class FakeMailer:
    """Records outgoing auth emails instead of sending them."""

    def __init__(self):
        self.sent = []

    def send_confirmation_email(self, name, email, token):
        self.sent.append({"kind": "confirm", "name": name, "email": email, "token": token})
        return "<confirm@test>"

    def send_password_reset_token(self, name, email, token):
        self.sent.append({"kind": "reset", "name": name, "email": email, "token": token})
        return "<reset@test>"

    def last_token(self, email, kind="confirm"):
        for message in reversed(self.sent):
            if message["email"] == email and message["kind"] == kind:
                return message["token"]
        return None


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def client(session_factory, mailer):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(client, mailer):
    """Register, confirm and log in a user; returns its details and bearer headers."""

    def _make_user(email, name="Test User", password=PASSWORD):
        response = client.post(
            "/api/auth/register",
            json={"name": name, "email": email, "password": password},
        )
        assert response.status_code == 201
        token = mailer.last_token(email)
        response = client.post("/api/auth/confirm-account", json={"token": token})
        assert response.status_code == 200
        response = client.post(
            "/api/auth/login", json={"email": email, "password": password}
        )
        assert response.status_code == 200
        jwt_token = response.json()["token"]
        return {
            "email": email,
            "name": name,
            "password": password,
            "headers": {"Authorization": f"Bearer {jwt_token}"},
        }

    return _make_user


@pytest.fixture
def user(make_user):
    return make_user("owner@email.com", name="Budget Owner")


@pytest.fixture
def other_user(make_user):
    return make_user("intruder@email.com", name="Someone Else")
