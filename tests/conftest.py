import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_TABLES"] = "false"

from unittest.mock import Mock  # noqa: E402

import pytest  # noqa: E402

from app.config import settings  # noqa: E402
from app.database import Base, SessionLocal, engine  # noqa: E402
import app.models  # noqa: E402,F401


@pytest.fixture
def db_session():
    """Mock database session."""
    return Mock()


@pytest.fixture
def db():
    """Real session on a fresh in-memory SQLite schema."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def mock_env(monkeypatch):
    """Provider credentials as they would come from the environment."""
    monkeypatch.setattr(settings, "openai_api_key", "test-key")
    monkeypatch.setattr(settings, "zapi_instance_id", "instance-1")
    monkeypatch.setattr(settings, "zapi_token", "token-1")
    monkeypatch.setattr(settings, "zapi_client_token", "client-token")
    monkeypatch.setattr(settings, "webhook_secret", None)
    monkeypatch.setattr(settings, "admin_api_key", "admin-key")
