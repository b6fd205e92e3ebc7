# src/protofixture/testing.py
"""pytest fixture builders around a PrototypeFactory.

Usage in a conftest.py:
    factory = factory_fixture(hooks=NORTHWIND_HOOKS)
    db = handle_fixture("factory")

    def test_customers_seeded(db: DatabaseHandle) -> None:
        assert db.session.scalars(select(Customer)).first() is not None
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from typing import Any, Literal

import pytest

from protofixture.core.config import FactorySettings
from protofixture.database.handle import DatabaseHandle, HandleFactory
from protofixture.factory import FactoryHooks, PrototypeFactory

FixtureScope = Literal["session", "package", "module", "class", "function"]


def factory_fixture(
    settings: FactorySettings | None = None,
    *,
    hooks: FactoryHooks | None = None,
    handle_factory: HandleFactory | None = None,
    scope: FixtureScope = "session",
    name: str | None = None,
) -> Any:
    """Build a fixture yielding a PrototypeFactory, disposed at teardown.

    Session scope (the default) means the prototype is built once for the
    whole run.
    """

    @pytest.fixture(scope=scope, name=name)
    def _factory() -> Iterator[PrototypeFactory]:
        with PrototypeFactory(settings, hooks=hooks, handle_factory=handle_factory) as factory:
            yield factory

    return _factory


def handle_fixture(
    factory_name: str = "factory",
    *,
    name: str | None = None,
) -> Any:
    """Build a function-scoped fixture yielding a handle on a fresh clone.

    Args:
        factory_name: Name of the fixture providing the PrototypeFactory.
        name: Fixture name (default: the variable it is assigned to).
    """

    @pytest.fixture(name=name)
    def _handle(request: pytest.FixtureRequest) -> Iterator[DatabaseHandle]:
        factory: PrototypeFactory = request.getfixturevalue(factory_name)
        with factory.create_context() as handle:
            yield handle

    return _handle


def connection_fixture(
    factory_name: str = "factory",
    *,
    name: str | None = None,
) -> Any:
    """Build a function-scoped fixture yielding a raw cloned connection."""

    @pytest.fixture(name=name)
    def _connection(request: pytest.FixtureRequest) -> Iterator[sqlite3.Connection]:
        factory: PrototypeFactory = request.getfixturevalue(factory_name)
        connection = factory.create_connection()
        try:
            yield connection
        finally:
            connection.close()

    return _connection
