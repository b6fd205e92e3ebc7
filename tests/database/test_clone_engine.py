# tests/database/test_clone_engine.py
"""Tests for page-level cloning of the prototype."""

import sqlite3
from collections.abc import Iterator
from pathlib import Path

import pytest


@pytest.fixture
def prototype() -> Iterator[sqlite3.Connection]:
    connection = sqlite3.connect(":memory:", check_same_thread=False)
    connection.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT)")
    connection.executemany("INSERT INTO items (name) VALUES (?)", [("alpha",), ("beta",)])
    connection.commit()
    yield connection
    connection.close()


class TestClone:
    """clone()."""

    def test_clone_copies_schema_and_rows(self, prototype: sqlite3.Connection) -> None:
        from protofixture.database.clone import clone

        instance = clone(prototype, "sqlite://")
        try:
            assert instance.execute("SELECT name FROM items ORDER BY id").fetchall() == [("alpha",), ("beta",)]
        finally:
            instance.close()

    def test_writes_to_clone_do_not_reach_prototype(self, prototype: sqlite3.Connection) -> None:
        from protofixture.database.clone import clone

        instance = clone(prototype, "sqlite://")
        instance.execute("DELETE FROM items")
        instance.commit()
        instance.close()

        assert prototype.execute("SELECT COUNT(*) FROM items").fetchone() == (2,)

    def test_later_prototype_writes_do_not_reach_clone(self, prototype: sqlite3.Connection) -> None:
        from protofixture.database.clone import clone

        instance = clone(prototype, "sqlite://")
        prototype.execute("INSERT INTO items (name) VALUES ('gamma')")
        prototype.commit()
        try:
            assert instance.execute("SELECT COUNT(*) FROM items").fetchone() == (2,)
        finally:
            instance.close()

    def test_clone_to_file(self, prototype: sqlite3.Connection, tmp_path: Path) -> None:
        from protofixture.database.clone import clone

        path = tmp_path / "instance.db"
        instance = clone(prototype, f"sqlite:///{path}")
        instance.close()

        reopened = sqlite3.connect(path)
        try:
            assert reopened.execute("SELECT COUNT(*) FROM items").fetchone() == (2,)
        finally:
            reopened.close()

    def test_backup_failure_propagates(self) -> None:
        from protofixture.database.clone import clone

        closed = sqlite3.connect(":memory:")
        closed.close()

        with pytest.raises(sqlite3.ProgrammingError):
            clone(closed, "sqlite://")


class TestCloneEngine:
    """CloneEngine."""

    def test_counts_clones(self, prototype: sqlite3.Connection) -> None:
        from protofixture.database.clone import CloneEngine

        engine = CloneEngine("sqlite://")
        instances = [engine.clone(prototype) for _ in range(3)]
        for instance in instances:
            instance.close()

        assert engine.clone_count == 3

    def test_closed_engine_refuses_clones(self, prototype: sqlite3.Connection) -> None:
        from protofixture.database.clone import CloneEngine
        from protofixture.errors import FactoryDisposedError

        engine = CloneEngine("sqlite://")
        engine.close()

        assert engine.closed is True
        with pytest.raises(FactoryDisposedError):
            engine.clone(prototype)
        assert engine.clone_count == 0
