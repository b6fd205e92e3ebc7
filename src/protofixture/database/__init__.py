# src/protofixture/database/__init__.py
"""Connections, prototype builds, clones and handles."""

from protofixture.database.clone import CloneEngine, clone
from protofixture.database.connection import (
    database_path,
    describe_database,
    is_memory_url,
    open_connection,
)
from protofixture.database.handle import (
    DatabaseHandle,
    HandleOptions,
    RollbackGuard,
    build_handle,
    default_handle_factory,
)
from protofixture.database.migrations import create_all, run_sql_scripts
from protofixture.database.prototype import BuildOnceLatch, build_prototype, should_prepare

__all__ = [
    "BuildOnceLatch",
    "CloneEngine",
    "DatabaseHandle",
    "HandleOptions",
    "RollbackGuard",
    "build_handle",
    "build_prototype",
    "clone",
    "create_all",
    "database_path",
    "default_handle_factory",
    "describe_database",
    "is_memory_url",
    "open_connection",
    "run_sql_scripts",
    "should_prepare",
]
