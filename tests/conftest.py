import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from starlette.testclient import TestClient

from rifafacil import notifications
from rifafacil.config import Settings
from rifafacil.database import get_db
from rifafacil.main import create_app
from rifafacil.models import Base
from rifafacil.raffles import create_raffle
from rifafacil.schemas import RaffleCreate
from tests.fixtures.payloads import make_raffle_payload
from tests.helpers.admin import ADMIN_PASSWORD
from tests.helpers.relay import NOTIFICATION_URL, FakeRelay


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh in-memory SQLite DB per test."""
    engine = create_engine(
        f"sqlite:///file:testdb_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def settings():
    return Settings(
        database_url="sqlite://",
        admin_password=ADMIN_PASSWORD,
        notification_url=NOTIFICATION_URL,
    )


@pytest.fixture(scope="function")
def app(db_engine, settings):
    """Create a FastAPI app with isolated DB per test."""
    application = create_app(settings=settings)
    SessionLocal = sessionmaker(bind=db_engine, autocommit=False, autoflush=False)

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(app):
    """HTTP test client."""
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture(scope="function")
def db_session(db_engine):
    """Raw DB session for direct inspection/insertion."""
    SessionLocal = sessionmaker(bind=db_engine, autocommit=False, autoflush=False)
    db = SessionLocal()
    yield db
    db.close()


@pytest.fixture(scope="function", autouse=True)
def relay(monkeypatch):
    """Route notification POSTs to an in-memory relay."""
    fake = FakeRelay()
    monkeypatch.setattr(notifications.requests, "post", fake.post)
    return fake


@pytest.fixture(scope="function")
def open_raffle(db_session):
    """Insert a 20-ticket raffle at R$ 5.00 directly into DB."""
    return create_raffle(db_session, RaffleCreate(**make_raffle_payload()))
