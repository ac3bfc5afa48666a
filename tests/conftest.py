"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from cometode.db import create_db_engine, init_db, make_session_factory, seed_catalog  # noqa: E402
from cometode.delivery.state_store import StateStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (require database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FakeClock:
    """Controllable clock returning naive UTC datetimes."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    """Fixed clock at midday UTC, advanced explicitly by tests."""
    return FakeClock(datetime(2024, 5, 1, 12, 0, 0))


@pytest.fixture
def session_factory(tmp_path):
    """Session factory over a fresh SQLite file."""
    engine = create_db_engine(tmp_path / "cometode.db")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def seeded_factory(session_factory):
    """Session factory with the bundled catalog loaded."""
    seed_catalog(session_factory)
    return session_factory


@pytest.fixture
def store(seeded_factory, clock):
    """State store over the seeded catalog with a fixed clock."""
    return StateStore(seeded_factory, clock=clock)


@pytest.fixture
def service(store):
    """Study service over the seeded store."""
    from cometode.study import StudyService

    return StudyService(store, session_cap=5)
