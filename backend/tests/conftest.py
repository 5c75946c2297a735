"""
Shared test fixtures for the revenue split ledger test suite.

  - store: a fresh, empty MemoryStore per test (reads as the default seed:
           operator "u_admin", tenants "u_test1" @ 75% and "u_test2" @ 80%)
  - rng:   a seeded random.Random so seed view counts are reproducible
  - make_distribution: writes a DistributionEvent straight into the ledger,
           bypassing distribute_content's random seed views
"""

import os
import random
import sys
from datetime import datetime, timezone

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from models.schemas import DistributionEvent
from services.distribution_ledger import load_distributions, save_distributions
from services.store import MemoryStore


@pytest.fixture
def store():
    return MemoryStore(prefix="test_")


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def make_distribution(store):
    """
    Factory fixture: make_distribution(tenant_id, views, outcome="success").

    Each call appends one distribution and returns it.
    """
    counter = {"n": 0}

    def _make(tenant_id: str, views: int, outcome: str = "success") -> DistributionEvent:
        counter["n"] += 1
        dist = DistributionEvent(
            id=f"d_test_{counter['n']}",
            content_id="s_test",
            tenant_id=tenant_id,
            created_at=datetime(2026, 2, 20, 10, 0, 0, tzinfo=timezone.utc),
            view_count=views,
            outcome=outcome,
        )
        save_distributions(store, load_distributions(store) + [dist])
        return dist

    return _make
