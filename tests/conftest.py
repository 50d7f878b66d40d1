"""
Pytest fixtures for the back office test suite.

Provides:
- Database sessions with per-test rollback isolation
- A BackOffice facade on a deterministic clock
- Seeded financial years, parties, products and stock

Environment Variables:
- DATABASE_URL: connection URL.  Defaults to in-memory SQLite.  Tests marked
  ``postgres`` need a PostgreSQL URL and are skipped otherwise.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from pathlib import Path
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

import backoffice_config
from backoffice_config import get_active_config
from backoffice_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from backoffice_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from backoffice_kernel.domain.clock import DeterministicClock
from backoffice_kernel.domain.dtos import LineInput
from backoffice_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from backoffice_kernel.models.party import PartyKind
from backoffice_services import BackOffice


# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite://"

DEFAULTS_YAML = Path(backoffice_config.__file__).parent / "defaults.yaml"

# 2024-07-15 10:00 UTC, inside FY 2024-25
TEST_NOW = datetime(2024, 7, 15, 10, 0, 0, tzinfo=timezone.utc)


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def pytest_collection_modifyitems(config, items):
    if get_database_url().startswith("postgresql"):
        return
    skip_pg = pytest.mark.skip(reason="requires DATABASE_URL pointing at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture backoffice logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, office):
            office.create_invoice(...)
            logs = captured_logs()
            assert any(r["message"] == "invoice_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("backoffice")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(
        get_database_url(), echo=False,
        pool_size=10, max_overflow=10, pool_timeout=10,
    )
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end.

    Immutability listeners are registered once and remain active.
    """
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection; its
    own commits only release savepoints.  The outer transaction is rolled
    back at teardown, undoing everything the test wrote.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Facade and collaborators
# =============================================================================


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(TEST_NOW)


@pytest.fixture(scope="session")
def settings():
    return get_active_config(DEFAULTS_YAML)


@pytest.fixture
def office(session, settings, deterministic_clock) -> BackOffice:
    return BackOffice(session, settings, deterministic_clock)


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def fy_2024(office, test_actor_id):
    return office.create_financial_year(
        "2024-25", date(2024, 4, 1), date(2025, 3, 31), test_actor_id, is_active=True
    )


@pytest.fixture
def fy_2025(office, test_actor_id, fy_2024):
    return office.create_financial_year(
        "2025-26", date(2025, 4, 1), date(2026, 3, 31), test_actor_id
    )


@pytest.fixture
def dealer(office, test_actor_id, fy_2024):
    """Registered dealer in the home state (Telangana, 36)."""
    return office.create_party(
        "D001", "Sharma Traders", PartyKind.DEALER, test_actor_id,
        state_code="36", gst_number="36AAACS1234A1Z1", payment_terms_days=30,
    )


@pytest.fixture
def outstation_dealer(office, test_actor_id, fy_2024):
    """Unregistered dealer in Maharashtra (27)."""
    return office.create_party(
        "D002", "Patil Medicals", PartyKind.DEALER, test_actor_id,
        state_code="27", payment_terms_days=15,
    )


@pytest.fixture
def supplier(office, test_actor_id, fy_2024):
    return office.create_party(
        "S001", "Metro Pharma Ltd", PartyKind.SUPPLIER, test_actor_id,
        state_code="36", gst_number="36AAACM5678B1Z2", payment_terms_days=45,
    )


@pytest.fixture
def product(office, test_actor_id):
    """18% product, HSN 3004."""
    return office.create_product(
        "PARA500", "Paracetamol 500mg x10", test_actor_id,
        gst_rate=Decimal("18"), hsn_code="3004", uqc="BOX",
        sale_price=Decimal("100"), purchase_price=Decimal("60"),
    )


@pytest.fixture
def exempt_product(office, test_actor_id):
    """Nil-rated product, so line totals equal quantity times rate."""
    return office.create_product(
        "RICE25", "Rice 25kg", test_actor_id,
        gst_rate=Decimal("0"), hsn_code="1006", uqc="BAG",
    )


@pytest.fixture
def batch(office, product, test_actor_id, fy_2024):
    return office.receive_stock(
        product.id, "B001", Decimal("100"), Decimal("60"), test_actor_id,
        txn_date=date(2024, 4, 1), exp_date=date(2026, 3, 31),
    )


@pytest.fixture
def exempt_batch(office, exempt_product, test_actor_id, fy_2024):
    return office.receive_stock(
        exempt_product.id, "R001", Decimal("1000"), Decimal("800"), test_actor_id,
        txn_date=date(2024, 4, 1),
    )


@pytest.fixture
def sell(office, dealer, product, batch, test_actor_id):
    """
    Issue an invoice of ``product`` from ``batch``.

    Usage::

        invoice = sell(qty="10", rate="100")
        invoice = sell(party=outstation_dealer, doc_date=date(2024, 5, 2))
    """

    def _sell(qty="10", rate="100", party=None, doc_date=date(2024, 7, 1), **kwargs):
        return office.create_invoice(
            party_id=(party or dealer).id,
            doc_date=doc_date,
            lines=[
                LineInput(
                    product_id=product.id,
                    qty=Decimal(qty),
                    rate=Decimal(rate),
                    batch_id=batch.id,
                )
            ],
            actor_id=test_actor_id,
            **kwargs,
        )

    return _sell


@pytest.fixture
def bill_exact(office, dealer, exempt_product, exempt_batch, test_actor_id):
    """Issue a nil-rated invoice whose total is exactly ``amount``."""

    def _bill(amount, doc_date=date(2024, 7, 1), party=None):
        return office.create_invoice(
            party_id=(party or dealer).id,
            doc_date=doc_date,
            lines=[
                LineInput(
                    product_id=exempt_product.id,
                    qty=Decimal("1"),
                    rate=Decimal(amount),
                    batch_id=exempt_batch.id,
                )
            ],
            actor_id=test_actor_id,
        )

    return _bill
