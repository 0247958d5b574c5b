"""
Shared test fixtures.

Provides a FastAPI TestClient wired to:
  • an in-memory SQLite database (StaticPool, fresh per test)
  • a recording email sender (no provider calls)

The app's startup hook (create_all on the real engine, cleanup scheduler) is
not run: the client is created without entering its context manager.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CLEANUP_CRON_ENABLED"] = "false"

import re  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.database import Base, get_db  # noqa: E402
from app.dependencies import get_email_sender  # noqa: E402
from app.main import app  # noqa: E402
from app import models  # noqa: F401,E402
from app.services.errors import EmailDeliveryFailed  # noqa: E402
from app.services.notifications import EmailSender  # noqa: E402

CODE_RE = re.compile(r"\b(\d{6})\b")


class RecordingSender(EmailSender):
    """Keeps every message instead of sending it; can be told to fail."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail_with: str | None = None

    def send(self, to_email, subject, html_content, text_content=None):
        if self.fail_with:
            raise EmailDeliveryFailed(self.fail_with)
        self.sent.append({"to": to_email, "subject": subject, "html": html_content, "text": text_content or ""})

    def last_code(self, to_email: str | None = None) -> str:
        messages = [m for m in self.sent if to_email is None or m["to"] == to_email]
        assert messages, "no verification email was sent"
        return CODE_RE.search(messages[-1]["text"]).group(1)


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def sender():
    return RecordingSender()


@pytest.fixture()
def client(session_factory, sender):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_email_sender] = lambda: sender
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


