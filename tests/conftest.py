import os
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from database import Base, get_db
from models.email_verification import EmailVerification
from services.exceptions import DeliveryError
from services.mail_dispatcher import MailDispatcher, get_mail_dispatcher
from services.verification_service import VerificationService
from services.verification_store import VerificationStore
from app import app

# Use a test database URL (set this in your environment or hardcode for local dev)
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite:///./test_verification.db")
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False} if TEST_DATABASE_URL.startswith("sqlite") else {})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

MAIL_ENV_VARS = (
    "SMTP_HOST", "SMTP_PORT", "SMTP_USER", "SMTP_PASS", "SMTP_FROM_EMAIL",
    "SMTP_FROM_NAME", "SMTP_USE_SSL", "SMTP_TIMEOUT", "MAIL_BACKEND", "APP_ENV",
)


class FakeClock:
    def __init__(self, start=datetime(2026, 1, 15, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class RecordingDispatcher(MailDispatcher):
    """Captures outgoing mail; set ``fail_with`` to make the next sends raise."""

    def __init__(self):
        self.sent = []
        self.fail_with = None

    def send(self, to_email, subject, text, html):
        self.check_address(to_email)
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"to": to_email, "subject": subject, "text": text, "html": html})


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    # Create tables before any tests
    Base.metadata.create_all(bind=engine)
    yield
    # Drop tables after all tests
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    session = TestingSessionLocal()
    try:
        session.query(EmailVerification).delete()
        session.commit()
    finally:
        session.close()


@pytest.fixture(autouse=True)
def isolated_mail_env(monkeypatch):
    for name in MAIL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_mail_dispatcher.cache_clear()
    yield
    get_mail_dispatcher.cache_clear()


@pytest.fixture
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def other_db():
    """A second, independent session for interleaving concurrent callers."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def store(db, clock):
    return VerificationStore(db, clock=clock)


@pytest.fixture
def service(store, dispatcher, clock):
    return VerificationService(store, dispatcher, clock=clock)


@pytest.fixture
def failing_dispatcher():
    dispatcher = RecordingDispatcher()
    dispatcher.fail_with = DeliveryError("Failed to send email: connection refused")
    return dispatcher


@pytest.fixture
def client(db, dispatcher):
    # Override dependencies to use the test DB and a recording mail dispatcher
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mail_dispatcher] = lambda: dispatcher
    yield TestClient(app)
    app.dependency_overrides = {}
