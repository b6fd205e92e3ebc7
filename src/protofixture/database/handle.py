# src/protofixture/database/handle.py
"""Mapped-access handles bound to a single SQLite connection.

A handle is a SQLAlchemy ORM Session whose engine can only ever hand out
one DBAPI connection: the one the handle was built for. StaticPool plus a
creator returning that connection gives exactly that, so two handles built
on the same connection see the same data, and closing a handle does not
close the connection unless the handle owns it.

A handle that does not own its connection is a view: building it, reading
through it and closing it leave the connection's open transaction alone,
so uncommitted writes made elsewhere on the connection survive.
"""

import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Self

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from protofixture.errors import FactoryConfigurationError


@dataclass
class HandleOptions:
    """Builder passed to the configure hook before each handle is created.

    Hooks may add engine or session keyword arguments, toggle the
    foreign key PRAGMA, or rebind ``connection`` entirely.
    """

    connection: sqlite3.Connection
    engine_kwargs: dict[str, Any] = field(default_factory=dict)
    session_kwargs: dict[str, Any] = field(default_factory=dict)
    foreign_keys: bool = True


HandleFactory = Callable[[Engine, HandleOptions], Session]
ConfigureHook = Callable[[HandleOptions, bool], None]

HANDLE_FACTORY_SHAPE = "(engine: sqlalchemy.engine.Engine, options: HandleOptions) -> sqlalchemy.orm.Session"


def default_handle_factory(engine: Engine, options: HandleOptions) -> Session:
    """Create a plain Session bound to the handle engine."""
    return Session(bind=engine, **options.session_kwargs)


class RollbackGuard:
    """Skips the rollbacks SQLAlchemy issues on its own while held.

    SQLAlchemy rolls the DBAPI connection back after the first connect of an
    engine and when a Session releases its connection. On a shared
    connection either one discards writes made by somebody else. An explicit
    ``session.rollback()`` outside ``hold()`` still rolls back.
    """

    def __init__(self, engine: Engine) -> None:
        self._do_rollback = engine.dialect.do_rollback
        self._held = False
        # One dialect per engine; first connect, Connection and pool reset
        # all resolve do_rollback on this instance
        engine.dialect.do_rollback = self._rollback  # type: ignore[method-assign]

    @property
    def held(self) -> bool:
        return self._held

    def _rollback(self, dbapi_connection: Any) -> None:
        if not self._held:
            self._do_rollback(dbapi_connection)

    @contextmanager
    def hold(self) -> Iterator[None]:
        self._held = True
        try:
            yield
        finally:
            self._held = False


def create_handle_engine(options: HandleOptions, *, reset_on_return: bool = True) -> Engine:
    """Create an engine that only ever yields ``options.connection``.

    Args:
        options: Configured handle options.
        reset_on_return: Roll back when the pool takes the connection back.
            Off for handles that do not own their connection.
    """
    connection = options.connection
    engine_kwargs = dict(options.engine_kwargs)
    if not reset_on_return:
        engine_kwargs.setdefault("pool_reset_on_return", None)
    engine = create_engine(
        "sqlite://",
        creator=lambda: connection,
        poolclass=StaticPool,
        **engine_kwargs,
    )
    pragma = "PRAGMA foreign_keys=ON" if options.foreign_keys else "PRAGMA foreign_keys=OFF"

    # No-op inside an open transaction; the earlier setting then stays
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection: sqlite3.Connection, connection_record: object) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute(pragma)
        cursor.close()

    return engine


class DatabaseHandle:
    """A Session bound to one connection, plus that connection.

    Usage:
        with factory.create_context() as db:
            db.session.add(Customer(customer_id="ALFKI", company_name="Alfreds"))
            db.session.commit()
    """

    def __init__(
        self,
        session: Session,
        engine: Engine,
        connection: sqlite3.Connection,
        *,
        owns_connection: bool,
        is_prototype: bool = False,
        guard: RollbackGuard | None = None,
    ) -> None:
        self._session = session
        self._engine = engine
        self._connection = connection
        self._owns_connection = owns_connection
        self._is_prototype = is_prototype
        self._guard = guard
        self._closed = False

    @property
    def session(self) -> Session:
        """The mapped-access Session."""
        return self._session

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def connection(self) -> sqlite3.Connection:
        """The raw sqlite3 connection every statement of this handle runs on."""
        return self._connection

    @property
    def owns_connection(self) -> bool:
        return self._owns_connection

    @property
    def is_prototype(self) -> bool:
        return self._is_prototype

    @property
    def closed(self) -> bool:
        return self._closed

    def commit(self) -> None:
        """Commit the session's pending changes."""
        self._session.commit()

    def close(self) -> None:
        """Close the session; close the connection too if this handle owns it.

        A handle that does not own its connection releases it without
        rolling back, so pending work of other users of the connection
        survives. Idempotent.
        """
        if self._closed:
            return
        self._closed = True
        if self._guard is not None:
            with self._guard.hold():
                self._session.close()
        else:
            self._session.close()
        if self._owns_connection:
            # StaticPool closes the one connection it holds on dispose
            self._engine.dispose()
            self._connection.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        role = "prototype" if self._is_prototype else "instance"
        state = "closed" if self._closed else "open"
        return f"<DatabaseHandle {role} {state} owns_connection={self._owns_connection}>"


def build_handle(
    connection: sqlite3.Connection,
    *,
    is_prototype: bool,
    owns_connection: bool,
    configure: ConfigureHook | None = None,
    handle_factory: HandleFactory = default_handle_factory,
    foreign_keys: bool = True,
    echo: bool = False,
) -> DatabaseHandle:
    """Configure options, create the engine and session, and wrap them.

    When the configure hook rebinds ``options.connection`` on an owning
    handle, the connection passed in is closed right away and the handle
    owns the replacement instead.

    Args:
        connection: Connection the handle is bound to.
        is_prototype: Passed to the configure hook.
        owns_connection: Whether closing the handle closes the connection.
        configure: Hook called with the options builder before creation.
        handle_factory: Builds the Session from the engine and options.
        foreign_keys: Initial value of the foreign key PRAGMA option.
        echo: Echo SQL through the engine.

    Raises:
        FactoryConfigurationError: If handle_factory does not return a Session.
    """
    options = HandleOptions(connection=connection, foreign_keys=foreign_keys)
    if echo:
        options.engine_kwargs["echo"] = True
    if configure is not None:
        configure(options, is_prototype)
    if owns_connection and options.connection is not connection:
        connection.close()

    engine = create_handle_engine(options, reset_on_return=owns_connection)
    guard = None
    if not owns_connection:
        guard = RollbackGuard(engine)
        # First connect initializes the dialect and rolls back; do it now,
        # under the guard, rather than on the session's first statement
        with guard.hold():
            engine.connect().close()

    session = handle_factory(engine, options)
    if not isinstance(session, Session):
        raise FactoryConfigurationError(
            f"Handle factory returned {type(session).__name__}; expected a callable of shape {HANDLE_FACTORY_SHAPE}"
        )
    return DatabaseHandle(
        session,
        engine,
        options.connection,
        owns_connection=owns_connection,
        is_prototype=is_prototype,
        guard=guard,
    )
