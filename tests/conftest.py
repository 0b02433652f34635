"""Pytest configuration and shared fixtures for repository test runs."""

import os

os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_AUDIENCE"] = "authenticated"
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENABLE_AUDIT_LOGGING"] = "true"
os.environ["GROQ_API_KEY"] = ""
os.environ["GOOGLE_API_KEY"] = ""
os.environ["RETRY_DELAY_SECONDS"] = "0"
os.environ["RATE_LIMIT_PER_MINUTE"] = "30"

from datetime import datetime, timedelta  # noqa: E402
from typing import Optional  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tutorapi.core.config import get_settings  # noqa: E402
from tutorapi.core.rate_limiter import reset_rate_limiter  # noqa: E402
from tutorapi.database.connection import DatabaseConnection, set_database  # noqa: E402
from tutorapi.database.models import Base, UserRole  # noqa: E402
from tutorapi.llm.client import LLMResult  # noqa: E402

get_settings.cache_clear()

TEST_SECRET = "test-secret"


class FakeLLM:
    """Stand-in for LLMClient returning a canned answer."""

    def __init__(self, content: str = "Zacznijmy od wzoru na deltę.", total_tokens: int = 120,
                 error: Optional[Exception] = None):
        self.content = content
        self.total_tokens = total_tokens
        self.error = error
        self.calls = []

    def generate(self, user_message, system_prompt, history=None, model=None) -> LLMResult:
        self.calls.append({
            "user_message": user_message,
            "system_prompt": system_prompt,
            "history": history,
            "model": model,
        })
        if self.error is not None:
            raise self.error
        return LLMResult(content=self.content, model="fake-model", usage={"total_tokens": self.total_tokens})


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def database(engine):
    connection = DatabaseConnection(engine=engine)
    set_database(connection)
    yield connection
    set_database(None)


@pytest.fixture
def session(database):
    """Plain session; tests commit before handing data to the API."""
    session = sessionmaker(bind=database.engine)()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def make_token():
    def _make_token(user_id: str, email: Optional[str] = None, expires_in: int = 3600,
                    secret: str = TEST_SECRET, audience: str = "authenticated") -> str:
        payload = {
            "sub": user_id,
            "aud": audience,
            "exp": datetime.utcnow() + timedelta(seconds=expires_in),
        }
        if email:
            payload["email"] = email
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make_token


@pytest.fixture
def auth_headers(make_token):
    def _auth_headers(user_id: str, email: Optional[str] = None) -> dict:
        return {"Authorization": f"Bearer {make_token(user_id, email)}"}

    return _auth_headers


@pytest.fixture
def make_admin(session):
    def _make_admin(user_id: str) -> str:
        session.add(UserRole(user_id=user_id, role="admin"))
        session.commit()
        return user_id

    return _make_admin


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def client(database, fake_llm):
    """TestClient with the LLM replaced by FakeLLM."""
    from fastapi.testclient import TestClient

    from tutorapi.api.main import app
    from tutorapi.llm.client import get_llm_client

    reset_rate_limiter()
    app.dependency_overrides[get_llm_client] = lambda: fake_llm
    yield TestClient(app)
    app.dependency_overrides.clear()
    reset_rate_limiter()
