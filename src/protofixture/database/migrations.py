# src/protofixture/database/migrations.py
"""Ready-made migrate hooks for the prototype build."""

from collections.abc import Callable
from pathlib import Path

from sqlalchemy import MetaData
from sqlalchemy.orm import Session

from protofixture.core.logging import get_logger

logger = get_logger(__name__)


def create_all(metadata: MetaData) -> Callable[[Session], None]:
    """Return a migrate hook that creates every table in ``metadata``.

    Works with Core tables and declarative models alike
    (pass ``Base.metadata`` for the latter).
    """

    def migrate(session: Session) -> None:
        metadata.create_all(session.connection())
        logger.debug("metadata_created", tables=sorted(metadata.tables))

    return migrate


def _load_migration_files(directory: Path) -> list[Path]:
    return sorted(directory.glob("*.sql"))


def run_sql_scripts(directory: Path | str) -> Callable[[Session], None]:
    """Return a migrate hook that executes ``*.sql`` files in name order.

    Scripts run through sqlite3's executescript(), so each file may hold
    many statements. executescript() commits any pending transaction before
    it starts.

    Raises:
        FileNotFoundError: When the hook runs and the directory is missing.
    """
    root = Path(directory)

    def migrate(session: Session) -> None:
        if not root.is_dir():
            raise FileNotFoundError(f"Migration directory not found: {root}")
        dbapi_connection = session.connection().connection.dbapi_connection
        for migration in _load_migration_files(root):
            dbapi_connection.executescript(migration.read_text(encoding="utf-8"))  # type: ignore[union-attr]
            logger.debug("migration_applied", migration=migration.name)

    return migrate
