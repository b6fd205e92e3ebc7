# src/protofixture/core/config.py
"""
Configuration schema and loading for prototype factories.

Uses Pydantic for validation and Dynaconf for YAML + environment loading.
Settings are frozen (immutable) after construction.
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

MEMORY_URL = "sqlite:///:memory:"
DEFAULT_SNAPSHOT_FILENAME = "prototype.db"


def _validate_sqlite_url(value: str) -> str:
    try:
        url = make_url(value)
    except ArgumentError as e:
        raise ValueError(f"Invalid database URL {value!r}: {e}") from e
    if url.get_backend_name() != "sqlite":
        raise ValueError(f"Only SQLite URLs are supported, got backend '{url.get_backend_name()}' in {value!r}")
    return value


def _is_memory(value: str) -> bool:
    try:
        return make_url(value).database in (None, "", ":memory:")
    except ArgumentError:
        # Left to the field validator to report
        return False


class FactorySettings(BaseModel):
    """Connection addresses and engine options for a prototype factory.

    Example YAML:
        prototype_url: sqlite:////tmp/project/prototype.db
        instance_url: sqlite:///:memory:
        snapshot: true
        foreign_keys: true
    """

    model_config = {"frozen": True}

    # NOTE: str instead of Path - these are SQLAlchemy URLs, not file paths
    prototype_url: str = Field(
        default=MEMORY_URL,
        description="SQLAlchemy URL of the prototype database",
    )
    instance_url: str = Field(
        default=MEMORY_URL,
        description="SQLAlchemy URL every cloned instance is opened at",
    )
    snapshot: bool = Field(
        default=False,
        description="Persist the prototype to a file and reuse it across runs",
    )
    snapshot_filename: str = Field(
        default=DEFAULT_SNAPSHOT_FILENAME,
        description="File name searched for when snapshot mode resolves its location",
    )
    foreign_keys: bool = Field(
        default=True,
        description="Enable PRAGMA foreign_keys on every handle",
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements issued through handles",
    )

    @field_validator("prototype_url", "instance_url")
    @classmethod
    def validate_sqlite_url(cls, v: str) -> str:
        """Reject non-SQLite and unparseable URLs at config time."""
        return _validate_sqlite_url(v)

    @field_validator("snapshot_filename")
    @classmethod
    def validate_snapshot_filename(cls, v: str) -> str:
        """Snapshot filename must be a bare name, not a path."""
        if not v or Path(v).name != v:
            raise ValueError(f"snapshot_filename must be a bare file name, got {v!r}")
        return v

    @model_validator(mode="before")
    @classmethod
    def resolve_snapshot(cls, data: Any) -> Any:
        """Tie snapshot mode to a file-backed prototype.

        snapshot=true without a file prototype_url locates the snapshot
        with locate_snapshot(snapshot_filename) from the working directory.
        A file-backed prototype_url implies snapshot mode, since an existing
        file is always reused; an explicit snapshot=false with one is rejected.
        """
        if not isinstance(data, dict):
            return data
        prototype_url = data.get("prototype_url", MEMORY_URL)
        file_backed = isinstance(prototype_url, str) and not _is_memory(prototype_url)
        snapshot = data.get("snapshot")
        if file_backed:
            if snapshot is not None and not snapshot:
                raise ValueError(
                    f"prototype_url {prototype_url!r} names a file, which is reused as a snapshot; "
                    "set snapshot: true or use an in-memory prototype_url"
                )
            return {**data, "snapshot": True}
        if snapshot:
            filename = data.get("snapshot_filename", DEFAULT_SNAPSHOT_FILENAME)
            return {**data, "prototype_url": f"sqlite:///{locate_snapshot(filename)}"}
        return data

    @classmethod
    def for_snapshot(
        cls,
        path: Path | str | None = None,
        **overrides: Any,
    ) -> "FactorySettings":
        """Build settings whose prototype lives in a durable snapshot file.

        Args:
            path: Snapshot file. When omitted it is resolved with
                locate_snapshot() from the current working directory.
            **overrides: Any other FactorySettings field.

        Returns:
            Settings with snapshot=True and prototype_url pointing at the file.
        """
        filename = overrides.pop("snapshot_filename", DEFAULT_SNAPSHOT_FILENAME)
        snapshot_path = Path(path) if path is not None else locate_snapshot(filename)
        return cls(
            prototype_url=f"sqlite:///{snapshot_path.resolve()}",
            snapshot=True,
            snapshot_filename=filename,
            **overrides,
        )


def locate_snapshot(
    filename: str = DEFAULT_SNAPSHOT_FILENAME,
    start: Path | str | None = None,
) -> Path:
    """Find a snapshot file by walking up from a starting directory.

    Checks ``start``, then each parent in turn, and returns the first
    directory that already holds ``filename``. When no directory does, the
    file is placed in ``start`` itself so the first build creates it there.

    Resolve this once, before constructing the factory, and pass the
    result in. Nothing here is memoized.

    Args:
        filename: Bare snapshot file name.
        start: Directory to start from (default: current working directory).

    Returns:
        Path of the existing snapshot, or ``start / filename``.
    """
    origin = Path(start) if start is not None else Path.cwd()
    origin = origin.resolve()
    for directory in (origin, *origin.parents):
        candidate = directory / filename
        if candidate.is_file():
            return candidate
    return origin / filename


def load_settings(config_path: Path) -> FactorySettings:
    """Load factory settings from YAML with environment variable overrides.

    Precedence:
    1. Environment variables (PROTOFIXTURE_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema - lowest priority

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated FactorySettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="PROTOFIXTURE",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys and a few internal ones
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}

    return FactorySettings(**raw_config)
