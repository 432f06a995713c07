"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta
from typing import Generator
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from homebase_finance.api.main import create_app
from homebase_finance.api.dependencies import get_alert_client, get_processor_client
from homebase_finance.infrastructure.clients.alerts import AlertClient
from homebase_finance.infrastructure.clients.processor import ProcessorClient
from homebase_finance.infrastructure.database.models import Base
from homebase_finance.infrastructure.database.session import get_db
from homebase_finance.services.accounts import ProviderAccounts
from mock_servers.processor_server import main as processor_server


# Test database (a file, so worker threads can open their own connections)
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeClock:
    """Deterministic stand-in for utcnow()"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Factory for extra sessions on the same test database (one per thread)"""
    return TestingSessionLocal


@pytest.fixture
def clock() -> FakeClock:
    # Wednesday
    return FakeClock(datetime(2026, 3, 11, 15, 0, 0))


@pytest.fixture
def processor() -> MagicMock:
    """Payment processor double; tests set return values per call"""
    return MagicMock(spec=ProcessorClient)


@pytest.fixture
def alert_client() -> MagicMock:
    client = MagicMock(spec=AlertClient)
    client.send_integrity_alert = AsyncMock(return_value=None)
    return client


@pytest.fixture
def make_provider(db: Session):
    """Create a provider account with the given tier and balances"""

    def _make(
        provider_id: str = "prov_1",
        tier: str = "free",
        available: int = 0,
        pending: int = 0,
        payout_delay_days: int = 2,
        instant: bool = False,
    ):
        ProviderAccounts(db).upsert(
            provider_id,
            tier=tier,
            payout_delay_days=payout_delay_days,
            instant_payout_eligible=instant,
        )
        if available or pending:
            account = ProviderAccounts(db).providers.get(provider_id)
            account.available_balance_cents = available
            account.pending_balance_cents = pending
            db.commit()
        return provider_id

    return _make


@pytest.fixture
def client(db: Session, processor: MagicMock, alert_client: MagicMock) -> TestClient:
    """Create FastAPI test client with test database and mocked outbound clients"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_processor_client] = lambda: processor
    app.dependency_overrides[get_alert_client] = lambda: alert_client
    return TestClient(app)


@pytest.fixture
def mock_processor() -> ProcessorClient:
    """Real processor client talking in-process to a freshly seeded mock processor"""
    processor_server.reset_state()
    return ProcessorClient(base_url="http://testserver", api_key="sk_test", http_client=TestClient(processor_server.app))
