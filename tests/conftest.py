"""Pytest configuration and fixtures."""

import os
from typing import List

import pytest

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-service-key")

from pgmirror.cdc.retry import RetryScheduler  # noqa: E402
from pgmirror.cdc.stats import StatsTracker  # noqa: E402
from pgmirror.config.tables import TableRegistry, default_registry  # noqa: E402
from tests.fakes import FakeFetcher, FakeMirror  # noqa: E402


@pytest.fixture
def registry() -> TableRegistry:
    return default_registry()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def mirror() -> FakeMirror:
    return FakeMirror()


@pytest.fixture
def stats() -> StatsTracker:
    tracker = StatsTracker()
    tracker.reset()
    return tracker


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def retry(sleeps) -> RetryScheduler:
    """Retry scheduler with the production delays that records instead of sleeping."""
    return RetryScheduler(max_attempts=3, base_delay=1.0, max_delay=10.0, sleep=sleeps.append)
