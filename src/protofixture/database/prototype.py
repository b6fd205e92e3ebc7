# src/protofixture/database/prototype.py
"""Building the prototype database exactly once.

The prototype is the template every instance is cloned from. It is either
prepared here (migrate, seed, one commit) or, when it names a snapshot file
that already exists, opened as-is and trusted.
"""

import sqlite3
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Generic, TypeVar

from sqlalchemy.engine import URL, make_url
from sqlalchemy.orm import Session

from protofixture.core.logging import get_logger
from protofixture.database.connection import database_path, describe_database, open_connection
from protofixture.database.handle import DatabaseHandle
from protofixture.errors import PrototypeBuildError

logger = get_logger(__name__)

T = TypeVar("T")

SessionHook = Callable[[Session], None]
PrepareDecision = Callable[[URL], bool]


def should_prepare(url: str | URL) -> bool:
    """Decide whether the prototype at ``url`` needs migration and seeding.

    In-memory targets always do. A file target does only when the file
    does not exist yet; an existing file is a snapshot from an earlier run.
    """
    path = database_path(url)
    if path is None:
        return True
    return not Path(path).resolve().exists()


class BuildOnceLatch(Generic[T]):
    """Double-checked, write-once lazy value.

    The first get() runs the build under a lock while concurrent callers
    wait; afterwards get() returns the stored value without locking.

    A build that raises poisons the latch. The caller that ran it sees the
    original exception; every later caller gets PrototypeBuildError chained
    to it, and the build never runs again.
    """

    def __init__(self) -> None:
        self._value: T | None = None
        self._built = False
        self._failure: Exception | None = None
        self._lock = threading.Lock()

    @property
    def lock(self) -> threading.Lock:
        """Lock held for the whole duration of a build."""
        return self._lock

    @property
    def is_built(self) -> bool:
        return self._built

    @property
    def is_poisoned(self) -> bool:
        return self._failure is not None

    @property
    def failure(self) -> Exception | None:
        return self._failure

    def peek(self) -> T | None:
        """Return the value if it has been built, without building it."""
        return self._value if self._built else None

    def get(self, build: Callable[[], T]) -> T:
        if self._built:
            return self._value  # type: ignore[return-value]
        with self._lock:
            if not self._built:
                if self._failure is not None:
                    raise PrototypeBuildError(
                        f"Prototype build already failed with {type(self._failure).__name__}: {self._failure}"
                    ) from self._failure
                try:
                    value = build()
                except Exception as exc:
                    self._failure = exc
                    raise
                self._value = value
                # Publish the value before the flag; unlocked readers check the flag
                self._built = True
        return self._value  # type: ignore[return-value]


def build_prototype(
    url: str | URL,
    *,
    make_handle: Callable[[sqlite3.Connection], DatabaseHandle],
    migrate: SessionHook | None = None,
    seed: SessionHook | None = None,
    decide: PrepareDecision = should_prepare,
    on_prepared: Callable[[], None] | None = None,
) -> sqlite3.Connection:
    """Open the prototype connection and prepare it if needed.

    The preparation decision is taken before the connection is opened,
    because opening a missing file creates it.

    Args:
        url: Prototype database URL.
        make_handle: Builds a prototype handle (not owning the connection).
        migrate: Applies the schema. Called once when preparing.
        seed: Inserts baseline rows. Called after migrate, before the commit.
        decide: Preparation decision, see should_prepare().
        on_prepared: Called after the preparation commit.

    Returns:
        The open prototype connection.

    Raises:
        Exception: Whatever migrate, seed, on_prepared or SQLite raised.
            The half-built connection is closed first, and a database file
            created by this build is deleted.
    """
    parsed = make_url(url)
    database = describe_database(parsed)
    prepare = decide(parsed)
    path = database_path(parsed)
    target_file = Path(path).resolve() if path is not None else None
    created = target_file is not None and not target_file.exists()
    connection = open_connection(parsed)

    if not prepare:
        logger.info("prototype_snapshot_reused", database=database)
        return connection

    started = time.perf_counter()
    logger.debug("prototype_build_started", database=database, creates_file=created)
    try:
        with make_handle(connection) as handle:
            if migrate is not None:
                migrate(handle.session)
            if seed is not None:
                seed(handle.session)
            handle.session.commit()
        if on_prepared is not None:
            on_prepared()
    except Exception as exc:
        connection.close()
        if created and target_file is not None:
            # A half-prepared file would be trusted as a snapshot next run;
            # a file that was there before the build is never removed
            target_file.unlink(missing_ok=True)
        logger.error(
            "prototype_build_failed",
            database=database,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise

    logger.info(
        "prototype_prepared",
        database=database,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return connection
