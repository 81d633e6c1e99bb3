"""Shared pytest fixtures: in-memory database, reference data and services."""

import os

# Set test environment BEFORE any imports from condo_finance
# so the module-level engine and locale never touch a real database or .env
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LOCALE"] = "pt_BR"

from datetime import date  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from condo_finance.config import Settings  # noqa: E402
from condo_finance.models import Base, Condominium, Unit  # noqa: E402
from condo_finance.services import enable_sqlite_foreign_keys  # noqa: E402
from condo_finance.services.analytics_service import AnalyticsService  # noqa: E402
from condo_finance.services.financial_service import FinancialService  # noqa: E402
from condo_finance.services.payment_service import PaymentService  # noqa: E402
from condo_finance.services.report_service import ReportService  # noqa: E402

TODAY = date(2024, 1, 20)


class RecordingNotifier:
    """Notifier double that remembers every event it receives."""

    def __init__(self):
        self.events = []

    def payment_overdue(self, payment):
        self.events.append(("overdue", payment.id))

    def payment_registered(self, payment):
        self.events.append(("registered", payment.id))


@pytest.fixture
def settings():
    """Settings with defaults only (no .env)."""
    return Settings(_env_file=None)


@pytest.fixture
def db_session():
    """Create test database session."""
    engine = create_engine("sqlite:///:memory:")
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def clock():
    return lambda: TODAY


@pytest.fixture
def condominium(db_session):
    condo = Condominium(name="Residencial Jardim", tax_id="12.345.678/0001-90", address="Rua A, 100")
    db_session.add(condo)
    db_session.commit()
    return condo


@pytest.fixture
def other_condominium(db_session):
    condo = Condominium(name="Edificio Aurora")
    db_session.add(condo)
    db_session.commit()
    return condo


@pytest.fixture
def units(db_session, condominium):
    """Two 50 m2 apartments in block A."""
    created = [
        Unit(condominium_id=condominium.id, block="A", number="101", area=Decimal("50")),
        Unit(condominium_id=condominium.id, block="A", number="102", area=Decimal("50")),
    ]
    db_session.add_all(created)
    db_session.commit()
    return created


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def payment_service(db_session, settings, clock, notifier):
    return PaymentService(db_session, notifier=notifier, settings=settings, clock=clock)


@pytest.fixture
def financial_service(db_session, settings, clock):
    return FinancialService(db_session, settings=settings, clock=clock)


@pytest.fixture
def analytics_service(db_session, settings, clock):
    return AnalyticsService(db_session, settings=settings, clock=clock)


@pytest.fixture
def report_service(db_session, settings, clock):
    return ReportService(db_session, settings=settings, clock=clock)


@pytest.fixture
def today():
    return TODAY
