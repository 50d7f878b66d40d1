"""
Fixtures for multi-connection tests.

These tests commit for real, so they cannot use the rollback-isolated
``session`` fixture.  Data is removed with TRUNCATE at teardown.
"""

import threading

import pytest
from sqlalchemy import text

from backoffice_kernel.db.base import Base
from backoffice_kernel.db.engine import get_session_factory


def truncate_all_tables(engine) -> None:
    """TRUNCATE every table (bypasses the ORM immutability listeners)."""
    table_names = [t.name for t in reversed(Base.metadata.sorted_tables)]
    with engine.connect() as conn:
        conn.execute(text("TRUNCATE " + ", ".join(table_names) + " CASCADE"))
        conn.commit()


@pytest.fixture
def pg_session_factory(db_engine, db_tables):
    """
    Session factory for worker threads.

    Every session handed out is tracked, rolled back and closed at teardown,
    after which all tables are truncated.
    """
    factory = get_session_factory()
    created = []
    lock = threading.Lock()

    def tracked_factory():
        with lock:
            sess = factory()
            created.append(sess)
            return sess

    truncate_all_tables(db_engine)
    yield tracked_factory

    for sess in created:
        if sess.in_transaction():
            sess.rollback()
        sess.close()
    truncate_all_tables(db_engine)
