"""Pytest configuration: in-memory ledger database and service fixtures."""

import os

# Set test database URL BEFORE any imports from utility_ledger
# so the module-level engine never points at a developer database
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.setdefault("LEDGER_RETRY_BACKOFF", "0.01")

from datetime import date  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from utility_ledger.models import Base  # noqa: E402
from utility_ledger.services import build_engine  # noqa: E402
from utility_ledger.services.events import EventPublisher  # noqa: E402
from utility_ledger.services.ledger_service import BillingCycleLedger  # noqa: E402
from utility_ledger.services.payment_service import PaymentAllocator  # noqa: E402
from utility_ledger.services.reconciliation_service import ReconciliationAuditor  # noqa: E402
from utility_ledger.services.tenant_service import TenantDirectory  # noqa: E402


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create test database session."""
    SessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def publisher():
    """Isolated event publisher (the process-wide one is left untouched)."""
    return EventPublisher()


@pytest.fixture
def ledger(db_session, publisher):
    return BillingCycleLedger(db_session, publisher=publisher)


@pytest.fixture
def allocator(db_session, publisher):
    return PaymentAllocator(db_session, publisher=publisher)


@pytest.fixture
def auditor(db_session):
    return ReconciliationAuditor(db_session)


@pytest.fixture
def tenant(db_session):
    """Create sample tenant."""
    return TenantDirectory(db_session).register_tenant(
        name="Grace Wanjiru", unit_number="A1", meter_number="WM-1001"
    )


@pytest.fixture
def other_tenant(db_session):
    """Create a second tenant."""
    return TenantDirectory(db_session).register_tenant(
        name="Peter Otieno", unit_number="B4", meter_number="WM-2004"
    )


@pytest.fixture
def make_cycle(ledger):
    """Create a cycle with the standard test tariff (rate 50, standing 100)."""

    def _make(tenant_id, month, current_reading, year=2025, rate="50", standing="100", due_date=None):
        change = ledger.create_cycle(
            tenant_id=tenant_id,
            month=month,
            year=year,
            current_reading=Decimal(str(current_reading)),
            rate_per_unit=Decimal(rate),
            standing_charge=Decimal(standing),
            due_date=due_date or date(year, month, 28),
        )
        return change.cycle

    return _make
