"""Pytest configuration and fixtures for query_engine tests."""

from __future__ import annotations

from datetime import date

import pytest
from prometheus_client import CollectorRegistry

from query_engine.adapters.outbound import InMemoryCatalog
from query_engine.domain.entities import Relation, Schema
from query_engine.domain.value_objects import QueryContext
from query_engine.infrastructure.config import Config, QueryConfig
from query_engine.infrastructure.metrics import MetricsRegistry


@pytest.fixture
def orders() -> Relation:
    """orders(order_id, region, sales) from the aggregation scenarios."""
    schema = Schema.of(("order_id", "integer"), ("region", "text"), ("sales", "integer"))
    return Relation.from_rows(schema, [(1, "West", 100), (2, "East", 200), (3, "West", 300)])


@pytest.fixture
def returns() -> Relation:
    """returns(order_id, reason) with no rows."""
    return Relation.from_rows(Schema.of(("order_id", "integer"), ("reason", "text")), [])


@pytest.fixture
def employees() -> Relation:
    """employees(emp_id, name, dept, salary, manager_id, hired)."""
    schema = Schema.of(
        ("emp_id", "integer"),
        ("name", "text"),
        ("dept", "text"),
        ("salary", "integer"),
        ("manager_id", "integer"),
        ("hired", "date"),
    )
    return Relation.from_rows(
        schema,
        [
            (1, "Ada", "eng", 120, None, date(2019, 3, 1)),
            (2, "Grace", "eng", 150, 1, date(2020, 7, 15)),
            (3, "Linus", "eng", 120, 1, date(2021, 1, 10)),
            (4, "Barbara", "ops", 90, None, date(2018, 11, 5)),
            (5, "Ken", "ops", None, 4, date(2022, 2, 28)),
            (6, "Edsger", "research", 200, None, date(2017, 6, 30)),
        ],
    )


@pytest.fixture
def context() -> QueryContext:
    """Default per-query settings."""
    return QueryContext()


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def catalog(
    metrics_registry: MetricsRegistry,
    orders: Relation,
    returns: Relation,
    employees: Relation,
) -> InMemoryCatalog:
    """Catalog holding orders, returns and employees."""
    catalog = InMemoryCatalog(metrics=metrics_registry)
    catalog.register("orders", orders)
    catalog.register("returns", returns)
    catalog.register("employees", employees)
    return catalog


@pytest.fixture
def test_config() -> Config:
    """Provide a configuration that ignores the environment defaults."""
    return Config(query=QueryConfig())


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
