"""Pytest configuration for the loomsync test suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from loomsync.core.data.cache import InMemoryCollectionCache
from loomsync.core.data.remote import InMemoryRemoteStore
from loomsync.core.logging import configure_logging
from loomsync.core.services import ChangeBus, ReconciliationEngine, SyncSettings


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register command-line options for controlling integration tests."""

    parser.addoption(
        "--loomsync-run-integration",
        action="store_true",
        default=False,
        help="Run loomsync integration tests that spawn processes or poll real journals.",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register the integration marker for loomsync tests."""

    config.addinivalue_line(
        "markers",
        "integration: marks loomsync tests touching several processes or the real file system journal",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly requested."""

    if config.getoption("--loomsync-run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="integration tests require --loomsync-run-integration")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture(autouse=True)
def reset_logging():
    """Restore the default stderr sink after tests that reconfigure logging."""

    yield
    configure_logging()


class FakeClock:
    """Manually advanced clock for cache freshness tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> InMemoryCollectionCache:
    return InMemoryCollectionCache(clock=clock)


@pytest.fixture
def remote() -> InMemoryRemoteStore:
    return InMemoryRemoteStore()


@pytest.fixture
def bus() -> ChangeBus:
    return ChangeBus(view_id="view-a")


@pytest.fixture
def engine(cache: InMemoryCollectionCache, remote: InMemoryRemoteStore, bus: ChangeBus) -> ReconciliationEngine:
    settings = SyncSettings(fresh_threshold_ms=30_000, remote_timeout=0.5)
    return ReconciliationEngine(cache, remote, bus, settings)

