"""Shared test fixtures for all test modules."""

import contextlib
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core import database as db_module
from app.core.database import Base, get_db
from app.services.payment_gateway import ChargeResult, PaymentGateway

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for direct service and repository testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


class FakeGateway(PaymentGateway):
    """Payment gateway double that returns queued charge statuses."""

    def __init__(self, *statuses: str, error: Exception | None = None):
        self.statuses = list(statuses) or ["succeeded"]
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def confirm_charge(
        self,
        amount: Decimal,
        currency: str,
        customer_ref: str | None,
        payment_method_ref: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChargeResult:
        self.calls.append(
            {
                "amount": amount,
                "currency": currency,
                "customer_ref": customer_ref,
                "payment_method_ref": payment_method_ref,
                "metadata": metadata,
            }
        )
        if self.error is not None:
            raise self.error
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return ChargeResult(status=status, id=f"pi_test_{len(self.calls)}")


class FakeNotifier:
    """Notification gateway double that records every message."""

    def __init__(self, deliver: bool = True):
        self.deliver = deliver
        self.sent: list[tuple[str, str, str | None, str]] = []

    async def send(self, channel: str, destination: str, subject: str | None, content: str) -> bool:
        self.sent.append((channel, destination, subject, content))
        return self.deliver
