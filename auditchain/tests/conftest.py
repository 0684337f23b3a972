import logging

import pytest

from auditchain.core.clock import FixedClock
from auditchain.log import SqlAuditStore, create_audit_engine, metadata_obj
from auditchain.migration import initialize_audit_log


@pytest.fixture
def db_url(tmp_path):
    # file-backed so that threads and separate engines share one database
    return f"sqlite:///{tmp_path / 'audit.db'}"


@pytest.fixture
def engine(db_url):
    engine = create_audit_engine(db_url)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store(engine, clock):
    """Schema only, no triggers: tests may tamper with rows directly."""
    metadata_obj.create_all(engine)
    return SqlAuditStore(engine, clock=clock)


@pytest.fixture
def protected_store(engine, clock):
    """Full startup sequence: schema, backfill (no-op), immutability triggers."""
    initialize_audit_log(engine)
    return SqlAuditStore(engine, clock=clock)


@pytest.fixture(autouse=True)
def restore_root_logging():
    """setup_logging() replaces root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
