# src/protofixture/database/connection.py
"""Opening raw SQLite connections from SQLAlchemy-style URLs.

Connections are returned open and ready. Errors from sqlite3 surface
unchanged; nothing here retries.
"""

import sqlite3
from pathlib import Path
from typing import Any
from urllib.parse import quote, urlencode

from sqlalchemy.engine import URL, make_url

# URL query params that map onto sqlite3.connect() keyword arguments.
# Everything else (mode, cache, immutable, vfs) is a SQLite URI parameter
# and only takes effect through a file: URI.
_CONNECT_KWARGS = {"uri", "timeout", "detect_types", "cached_statements", "isolation_level"}


def _as_url(url: str | URL) -> URL:
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        raise ValueError(
            f"Only SQLite databases can be cloned, got driver '{parsed.drivername}'. "
            f"Use a URL such as sqlite:///:memory: or sqlite:///path/to/prototype.db"
        )
    return parsed


def database_path(url: str | URL) -> str | None:
    """Return the database file named by a URL, or None for in-memory targets."""
    database = _as_url(url).database
    if database in (None, "", ":memory:"):
        return None
    return database


def is_memory_url(url: str | URL) -> bool:
    """Whether the URL addresses a transient in-memory database."""
    return database_path(url) is None


def describe_database(url: str | URL) -> str:
    """Readable database location for log events: the file path or ':memory:'."""
    path = database_path(url)
    return ":memory:" if path is None else str(Path(path).resolve())


def open_connection(url: str | URL) -> sqlite3.Connection:
    """Open a live SQLite connection for a SQLAlchemy URL.

    Connections are opened with check_same_thread=False so that a
    connection created while building a fixture can be used from the
    thread that runs the test.

    Args:
        url: SQLAlchemy SQLite URL, e.g. "sqlite:///:memory:" or
            "sqlite:////tmp/prototype.db?timeout=10"

    Returns:
        Open sqlite3.Connection

    Raises:
        ValueError: If the URL does not use the sqlite driver
        sqlite3.Error: If SQLite cannot open the target
    """
    parsed = _as_url(url)
    path = database_path(parsed)

    connect_kwargs: dict[str, Any] = {"check_same_thread": False}
    uri_params: dict[str, str] = {}

    for key, raw_value in parsed.query.items():
        value = raw_value if isinstance(raw_value, str) else raw_value[0]
        if key in _CONNECT_KWARGS:
            if key == "uri":
                connect_kwargs[key] = value.lower() in ("true", "1", "yes")
            elif key == "timeout":
                connect_kwargs[key] = float(value)
            elif key in ("detect_types", "cached_statements"):
                connect_kwargs[key] = int(value)
            else:
                connect_kwargs[key] = value
        else:
            uri_params[key] = value

    if path is None:
        target = ":memory:"
    else:
        target = str(Path(path).resolve())

    if uri_params:
        # file::memory:?... keeps in-memory semantics through the URI interface
        location = ":memory:" if path is None else quote(target)
        target = f"file:{location}?{urlencode(uri_params)}"
        connect_kwargs["uri"] = True

    return sqlite3.connect(target, **connect_kwargs)
