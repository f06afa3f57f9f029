"""Pytest configuration and fixtures for plan_engine tests."""

from __future__ import annotations

import random
from typing import Callable, Generator

import pytest
from prometheus_client import CollectorRegistry

from plan_engine.adapters.outbound import DuckDBBackend
from plan_engine.domain.entities import InMemoryTable, Pipeline
from plan_engine.infrastructure.config import Config
from plan_engine.infrastructure.metrics import MetricsRegistry

DEMO_COLUMNS = ("user_name", "product", "predicted_offer_affinity")

DEMO_ROWS = [
    ("Alice", "apple", 0.9),
    ("Alice", "banana", 0.7),
    ("Alice", "cherry", 0.4),
    ("Alice", "date", 0.2),
    ("Bob", "apple", 0.3),
    ("Bob", "banana", 0.85),
    ("Bob", "cherry", 0.6),
    ("Bob", "date", 0.1),
]


def _random_table(seed: int, users: int = 4, products: int = 6) -> InMemoryTable:
    rng = random.Random(seed)
    rows = []
    for u in range(users):
        for p in range(products):
            affinity = None if rng.random() < 0.1 else round(rng.random(), 1)
            rows.append(
                {
                    "user_name": f"user_{u}",
                    "product": f"product_{p}",
                    "predicted_offer_affinity": affinity,
                    "quantity": rng.randint(0, 5),
                }
            )
    rng.shuffle(rows)
    return InMemoryTable.from_records(rows)


@pytest.fixture
def random_table() -> Callable[..., InMemoryTable]:
    """Factory for seeded random data with ties, NULLs and a unique (user, product) key."""
    return _random_table


@pytest.fixture
def demo_table() -> InMemoryTable:
    """Two users, four products each, with distinct affinities per user."""
    return InMemoryTable.from_records([dict(zip(DEMO_COLUMNS, row)) for row in DEMO_ROWS])


@pytest.fixture
def demo_pipeline() -> Pipeline:
    """Pipeline rooted at the demo table's declaration."""
    return Pipeline.describe_table("d", DEMO_COLUMNS)


@pytest.fixture
def ranked_pipeline(demo_pipeline: Pipeline) -> Pipeline:
    """Top two products per user by affinity."""
    return demo_pipeline.extend(
        "simple_rank",
        "rank()",
        partition_by=["user_name"],
        order_by=["predicted_offer_affinity"],
        reverse=True,
    ).select_rows("simple_rank <= 2")


@pytest.fixture
def test_config() -> Config:
    """Configuration with defaults, independent of the environment."""
    return Config()


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def duckdb_backend() -> Generator[DuckDBBackend, None, None]:
    """Provide an in-memory DuckDB backend."""
    backend = DuckDBBackend()
    yield backend
    backend.close()


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "property: Property-based tests")
    config.addinivalue_line("markers", "slow: Slow tests")
