from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from crmdesk.core.auth import ensure_user
from crmdesk.core.rate_limit import FixedWindowRateLimiter, get_rate_limiter
from crmdesk.db.base import Base
from crmdesk.db.dependencies import get_db_session
import crmdesk.models.entities  # noqa: F401
from crmdesk.main import create_app
from crmdesk.models.entities import User


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def rate_limiter() -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(limit=1000, window_seconds=60)


@pytest.fixture()
def client(db_session: Session, rate_limiter: FixedWindowRateLimiter) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def alice(db_session: Session) -> User:
    return ensure_user(db_session, email="alice@crm.test", full_name="Alice Adams")


@pytest.fixture()
def bob(db_session: Session) -> User:
    return ensure_user(db_session, email="bob@crm.test", full_name="Bob Brown")


@pytest.fixture()
def carol(db_session: Session) -> User:
    return ensure_user(db_session, email="carol@crm.test", full_name="Carol Clark")
