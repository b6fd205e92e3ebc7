# tests/database/test_handles.py
"""Tests for Session-backed handles bound to one connection."""

import sqlite3
from collections.abc import Iterator

import pytest
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from protofixture.database.handle import HandleOptions


@pytest.fixture
def connection() -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.execute("CREATE TABLE parent (id INTEGER PRIMARY KEY)")
    conn.execute("CREATE TABLE child (id INTEGER PRIMARY KEY, parent_id INTEGER REFERENCES parent(id))")
    conn.commit()
    yield conn
    conn.close()


class TestBuildHandle:
    """build_handle()."""

    def test_session_runs_on_given_connection(self, connection: sqlite3.Connection) -> None:
        from protofixture.database.handle import build_handle

        with build_handle(connection, is_prototype=False, owns_connection=False) as handle:
            handle.session.execute(text("INSERT INTO parent (id) VALUES (1)"))
            handle.commit()
            assert handle.connection is connection
            assert handle.session.connection().connection.dbapi_connection is connection

        assert connection.execute("SELECT id FROM parent").fetchall() == [(1,)]

    def test_closing_non_owning_handle_keeps_connection_open(self, connection: sqlite3.Connection) -> None:
        from protofixture.database.handle import build_handle

        handle = build_handle(connection, is_prototype=False, owns_connection=False)
        handle.close()

        assert handle.closed is True
        assert connection.execute("SELECT 1").fetchone() == (1,)

    def test_closing_owning_handle_closes_connection(self) -> None:
        from protofixture.database.handle import build_handle

        owned = sqlite3.connect(":memory:", check_same_thread=False)
        handle = build_handle(owned, is_prototype=False, owns_connection=True)
        handle.session.execute(text("SELECT 1"))
        handle.close()
        handle.close()  # idempotent

        with pytest.raises(sqlite3.ProgrammingError):
            owned.execute("SELECT 1")

    def test_second_handle_sees_committed_data(self, connection: sqlite3.Connection) -> None:
        from protofixture.database.handle import build_handle

        with build_handle(connection, is_prototype=False, owns_connection=False) as writer:
            writer.session.execute(text("INSERT INTO parent (id) VALUES (5)"))
            writer.commit()

        with build_handle(connection, is_prototype=False, owns_connection=False) as reader:
            assert reader.session.execute(text("SELECT id FROM parent")).scalars().all() == [5]

    def test_foreign_keys_enforced_by_default(self, connection: sqlite3.Connection) -> None:
        from sqlalchemy.exc import IntegrityError

        from protofixture.database.handle import build_handle

        with build_handle(connection, is_prototype=False, owns_connection=False) as handle:
            with pytest.raises(IntegrityError):
                handle.session.execute(text("INSERT INTO child (id, parent_id) VALUES (1, 99)"))
                handle.commit()

    def test_foreign_keys_can_be_disabled(self, connection: sqlite3.Connection) -> None:
        from protofixture.database.handle import build_handle

        with build_handle(connection, is_prototype=False, owns_connection=False, foreign_keys=False) as handle:
            handle.session.execute(text("INSERT INTO child (id, parent_id) VALUES (1, 99)"))
            handle.commit()

        assert connection.execute("SELECT COUNT(*) FROM child").fetchone() == (1,)

    def test_configure_hook_receives_builder_and_flag(self, connection: sqlite3.Connection) -> None:
        from protofixture.database.handle import build_handle

        seen: list[tuple[HandleOptions, bool]] = []

        def configure(options: HandleOptions, is_prototype: bool) -> None:
            options.session_kwargs["expire_on_commit"] = False
            seen.append((options, is_prototype))

        with build_handle(connection, is_prototype=True, owns_connection=False, configure=configure) as handle:
            assert handle.is_prototype is True
            assert handle.session.expire_on_commit is False

        assert len(seen) == 1
        assert seen[0][0].connection is connection
        assert seen[0][1] is True

    def test_configure_hook_can_rebind_connection(self, connection: sqlite3.Connection) -> None:
        from protofixture.database.handle import build_handle

        other = sqlite3.connect(":memory:", check_same_thread=False)

        def configure(options: HandleOptions, is_prototype: bool) -> None:
            options.connection = other

        with build_handle(connection, is_prototype=False, owns_connection=False, configure=configure) as handle:
            assert handle.connection is other
        other.close()

    def test_rebinding_owned_connection_closes_the_original(self) -> None:
        from protofixture.database.handle import build_handle

        cloned = sqlite3.connect(":memory:", check_same_thread=False)
        replacement = sqlite3.connect(":memory:", check_same_thread=False)

        def configure(options: HandleOptions, is_prototype: bool) -> None:
            options.connection = replacement

        handle = build_handle(cloned, is_prototype=False, owns_connection=True, configure=configure)
        with pytest.raises(sqlite3.ProgrammingError):
            cloned.execute("SELECT 1")

        handle.session.execute(text("SELECT 1"))
        handle.close()
        with pytest.raises(sqlite3.ProgrammingError):
            replacement.execute("SELECT 1")

    def test_non_owning_handle_leaves_open_transaction(self, connection: sqlite3.Connection) -> None:
        from protofixture.database.handle import build_handle

        connection.execute("INSERT INTO parent (id) VALUES (3)")

        with build_handle(connection, is_prototype=False, owns_connection=False) as handle:
            assert handle.session.execute(text("SELECT id FROM parent")).scalars().all() == [3]

        assert connection.in_transaction
        connection.commit()
        assert connection.execute("SELECT id FROM parent").fetchall() == [(3,)]

    def test_custom_handle_factory(self, connection: sqlite3.Connection) -> None:
        from protofixture.database.handle import build_handle

        class AuditSession(Session):
            pass

        def handle_factory(engine: Engine, options: HandleOptions) -> Session:
            return AuditSession(bind=engine, autoflush=False)

        with build_handle(connection, is_prototype=False, owns_connection=False, handle_factory=handle_factory) as handle:
            assert isinstance(handle.session, AuditSession)
            assert handle.session.autoflush is False

    def test_handle_factory_returning_wrong_type(self, connection: sqlite3.Connection) -> None:
        from protofixture.database.handle import build_handle
        from protofixture.errors import FactoryConfigurationError

        def handle_factory(engine: Engine, options: HandleOptions) -> Session:
            return "not a session"  # type: ignore[return-value]

        with pytest.raises(FactoryConfigurationError, match=r"\(engine: sqlalchemy.engine.Engine"):
            build_handle(connection, is_prototype=False, owns_connection=False, handle_factory=handle_factory)

    def test_repr_names_role(self, connection: sqlite3.Connection) -> None:
        from protofixture.database.handle import build_handle

        handle = build_handle(connection, is_prototype=True, owns_connection=False)

        assert "prototype" in repr(handle)
        handle.close()
        assert "closed" in repr(handle)
