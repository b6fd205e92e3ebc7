# src/protofixture/factory.py
"""Prototype factory: one migrated, seeded database per test at clone cost.

The first request builds the prototype (migrate, seed, commit). Every
request, the first included, clones the prototype into a fresh instance
and hands that out as a raw connection or a Session-backed handle.

Usage:
    factory = PrototypeFactory(
        hooks=FactoryHooks(
            migrate=create_all(Base.metadata),
            seed=load_northwind,
        )
    )

    def test_orders_start_empty() -> None:
        with factory.create_context() as db:
            assert db.session.scalars(select(Order)).all() == []
"""

import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Self

from protofixture.core.config import FactorySettings
from protofixture.core.logging import get_logger
from protofixture.database.clone import CloneEngine
from protofixture.database.handle import (
    HANDLE_FACTORY_SHAPE,
    ConfigureHook,
    DatabaseHandle,
    HandleFactory,
    build_handle,
    default_handle_factory,
)
from protofixture.database.prototype import (
    BuildOnceLatch,
    PrepareDecision,
    SessionHook,
    build_prototype,
    should_prepare,
)
from protofixture.errors import (
    FactoryConfigurationError,
    FactoryDisposedError,
    MissingConnectionError,
)

logger = get_logger(__name__)


class FactoryState(StrEnum):
    """Lifecycle of a factory's prototype."""

    UNBUILT = "unbuilt"
    BUILDING = "building"
    BUILT = "built"
    POISONED = "poisoned"
    DISPOSED = "disposed"


@dataclass(frozen=True)
class FactoryHooks:
    """Extension points of a factory. Every hook is optional.

    Attributes:
        migrate: Applies the schema to the prototype session.
        seed: Inserts baseline rows; runs after migrate, before the commit.
        should_prepare: Decides between preparing and reusing an existing
            snapshot. Defaults to protofixture.database.should_prepare.
        configure: Called with the HandleOptions builder and an
            is_prototype flag every time a handle is constructed.
        on_prepared: Called once after a successful preparation commit.
    """

    migrate: SessionHook | None = None
    seed: SessionHook | None = None
    should_prepare: PrepareDecision | None = None
    configure: ConfigureHook | None = None
    on_prepared: Callable[[], None] | None = None


class PrototypeFactory:
    """Hands out isolated clones of a lazily built prototype database.

    Thread-safe: concurrent first callers block while one of them builds
    the prototype. Instances are never shared; callers close what they get.
    """

    def __init__(
        self,
        settings: FactorySettings | None = None,
        *,
        hooks: FactoryHooks | None = None,
        handle_factory: HandleFactory | None = None,
    ) -> None:
        """Initialize the factory. Nothing is opened until the first request.

        Args:
            settings: Connection URLs and handle options (default: both
                prototype and instances in memory).
            hooks: Migration, seeding and handle configuration hooks.
            handle_factory: Builds the Session for a handle, shape
                (Engine, HandleOptions) -> Session.

        Raises:
            FactoryConfigurationError: If handle_factory is not callable.
        """
        if handle_factory is None:
            handle_factory = default_handle_factory
        elif not callable(handle_factory):
            raise FactoryConfigurationError(
                f"handle_factory must be a callable of shape {HANDLE_FACTORY_SHAPE}, got {type(handle_factory).__name__}"
            )

        self._settings = settings if settings is not None else FactorySettings()
        self._hooks = hooks if hooks is not None else FactoryHooks()
        self._handle_factory = handle_factory
        self._latch: BuildOnceLatch[sqlite3.Connection] = BuildOnceLatch()
        self._cloner = CloneEngine(self._settings.instance_url)
        self._building = False
        self._disposed = False
        self._build_count = 0
        self._prepared = False

    @property
    def settings(self) -> FactorySettings:
        return self._settings

    @property
    def hooks(self) -> FactoryHooks:
        return self._hooks

    @property
    def prototype_url(self) -> str:
        """URL of the prototype database."""
        return self._settings.prototype_url

    @property
    def instance_url(self) -> str:
        """URL every instance is cloned to."""
        return self._settings.instance_url

    @property
    def prototype_connection(self) -> sqlite3.Connection | None:
        """The prototype connection, or None if it has not been built."""
        return self._latch.peek()

    @property
    def build_count(self) -> int:
        """Number of prototype constructions (0 or 1)."""
        return self._build_count

    @property
    def clone_count(self) -> int:
        return self._cloner.clone_count

    @property
    def prepared(self) -> bool:
        """Whether the prototype was migrated and seeded (False for a reused snapshot)."""
        return self._prepared

    @property
    def state(self) -> FactoryState:
        if self._disposed:
            return FactoryState.DISPOSED
        if self._latch.is_poisoned:
            return FactoryState.POISONED
        if self._latch.is_built:
            return FactoryState.BUILT
        if self._building:
            return FactoryState.BUILDING
        return FactoryState.UNBUILT

    def build(self) -> None:
        """Build the prototype now rather than on the first request.

        No-op once built. Useful to pay the build cost at session start.
        """
        self._ensure_prototype()

    def create_connection(self) -> sqlite3.Connection:
        """Return a new open connection holding a copy of the prototype.

        Builds the prototype on first use. The caller owns the returned
        connection and must close it.

        Raises:
            FactoryDisposedError: If the factory has been disposed.
            PrototypeBuildError: If an earlier prototype build failed.
        """
        prototype = self._ensure_prototype()
        return self._cloner.clone(prototype)

    def create_context(self, connection: sqlite3.Connection | None = None) -> DatabaseHandle:
        """Return a handle on a fresh clone, or on a connection the caller holds.

        Without an argument the handle owns its freshly cloned connection
        and closes it on close(). With a connection, see wrap_connection().
        """
        if connection is not None:
            return self.wrap_connection(connection)

        instance = self.create_connection()
        try:
            return self._instance_handle(instance, owns_connection=True)
        except Exception:
            instance.close()
            raise

    def wrap_connection(self, connection: Any) -> DatabaseHandle:
        """Bind a new handle to an existing connection. Never clones or builds.

        The handle does not own the connection; closing it leaves the
        connection open for further handles.

        Raises:
            MissingConnectionError: If connection is None or not a sqlite3.Connection.
        """
        if connection is None:
            raise MissingConnectionError("connection is required to wrap an existing database")
        if not isinstance(connection, sqlite3.Connection):
            raise MissingConnectionError(f"Expected a sqlite3.Connection, got {type(connection).__name__}")
        return self._instance_handle(connection, owns_connection=False)

    def dispose(self) -> None:
        """Close the prototype connection if it was built. Idempotent.

        Waits for an in-flight build to finish first. Instances already
        handed out stay open and remain the caller's responsibility.
        Must not be called from inside a hook.
        """
        with self._latch.lock:
            if self._disposed:
                return
            self._disposed = True
            self._cloner.close()
            prototype = self._latch.peek()
            if prototype is not None:
                prototype.close()
        logger.debug(
            "factory_disposed",
            prototype_url=self.prototype_url,
            clone_count=self.clone_count,
        )

    def close(self) -> None:
        """Alias of dispose()."""
        self.dispose()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.dispose()

    def _ensure_prototype(self) -> sqlite3.Connection:
        if self._disposed:
            raise FactoryDisposedError("Factory has been disposed")
        return self._latch.get(self._build_prototype)

    def _build_prototype(self) -> sqlite3.Connection:
        # Runs under the latch lock; dispose() may have won the lock first
        if self._disposed:
            raise FactoryDisposedError("Factory was disposed before the prototype was built")
        self._building = True
        try:
            connection = build_prototype(
                self._settings.prototype_url,
                make_handle=self._prototype_handle,
                migrate=self._hooks.migrate,
                seed=self._hooks.seed,
                decide=self._hooks.should_prepare or should_prepare,
                on_prepared=self._on_prepared,
            )
        finally:
            self._building = False
        self._build_count += 1
        return connection

    def _on_prepared(self) -> None:
        self._prepared = True
        if self._hooks.on_prepared is not None:
            self._hooks.on_prepared()

    def _prototype_handle(self, connection: sqlite3.Connection) -> DatabaseHandle:
        return build_handle(
            connection,
            is_prototype=True,
            owns_connection=False,
            configure=self._hooks.configure,
            handle_factory=self._handle_factory,
            foreign_keys=self._settings.foreign_keys,
            echo=self._settings.echo,
        )

    def _instance_handle(self, connection: sqlite3.Connection, *, owns_connection: bool) -> DatabaseHandle:
        return build_handle(
            connection,
            is_prototype=False,
            owns_connection=owns_connection,
            configure=self._hooks.configure,
            handle_factory=self._handle_factory,
            foreign_keys=self._settings.foreign_keys,
            echo=self._settings.echo,
        )
