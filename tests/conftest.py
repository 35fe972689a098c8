from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.pool import NullPool

from apps.webapp.main import create_app
from core.config import Settings
from core.database.connection import ConnectionPool
from core.database.orm_models import create_schema
from core.database.repositories.payment_repository import PaymentLedger
from core.database.repositories.user_repository import AccountDirectory

BASIC_PLAN_ID = 1
PREMIUM_PLAN_ID = 2


@pytest.fixture
def settings():
    return Settings(environment="test")


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'gym.db'}",
        poolclass=NullPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def pool(engine):
    pool = ConnectionPool.from_engine(engine, max_connections=5)
    yield pool
    pool.close_all()


@pytest.fixture
def directory(pool):
    return AccountDirectory(pool)


@pytest.fixture
def ledger(pool):
    return PaymentLedger(pool)


@pytest.fixture
def ana(directory):
    """Cliente con plan básico (sin acceso al panel)."""
    return directory.create_client(name="Ana", dni="123", email="ana@example.com", phone="341555000", plan_id=BASIC_PLAN_ID)


@pytest.fixture
def client(settings, pool):
    app = create_app(settings, pool)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def today():
    return date.today()
