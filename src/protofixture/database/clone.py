# src/protofixture/database/clone.py
"""Cloning the prototype with SQLite's online backup API.

Copies pages, not rows, so a clone costs about as much as reading the
prototype once regardless of how slow migration and seeding were.
"""

import sqlite3
import threading

from sqlalchemy.engine import URL

from protofixture.core.logging import get_logger
from protofixture.database.connection import describe_database, open_connection
from protofixture.errors import FactoryDisposedError

logger = get_logger(__name__)


def clone(prototype: sqlite3.Connection, target_url: str | URL) -> sqlite3.Connection:
    """Copy the prototype into a new connection opened at ``target_url``.

    Args:
        prototype: Open, fully prepared prototype connection.
        target_url: SQLAlchemy URL the new connection is opened at.

    Returns:
        Open connection holding an independent copy of the prototype.

    Raises:
        sqlite3.Error: If opening the target or the backup fails. The
            target connection is closed before re-raising.
    """
    target = open_connection(target_url)
    try:
        prototype.backup(target)
    except Exception:
        target.close()
        raise
    return target


class CloneEngine:
    """Clones one shared prototype, one backup at a time.

    Every backup reads the same prototype connection; the lock keeps
    concurrent test threads from stepping through it simultaneously.
    """

    def __init__(self, target_url: str | URL) -> None:
        self._target_url = target_url
        self._lock = threading.Lock()
        self._clone_count = 0
        self._closed = False

    @property
    def target_url(self) -> str | URL:
        return self._target_url

    @property
    def clone_count(self) -> int:
        """Number of clones produced so far."""
        return self._clone_count

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Refuse further clones. Waits for an in-flight backup to finish."""
        with self._lock:
            self._closed = True

    def clone(self, prototype: sqlite3.Connection) -> sqlite3.Connection:
        with self._lock:
            if self._closed:
                raise FactoryDisposedError("Factory has been disposed; no further instances can be cloned")
            instance = clone(prototype, self._target_url)
            self._clone_count += 1
            count = self._clone_count
        logger.debug("instance_cloned", database=describe_database(self._target_url), clone_count=count)
        return instance
