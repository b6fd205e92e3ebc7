"""
protofixture: migrated, seeded SQLite databases for every test, built once.

A prototype database is prepared a single time per factory and each test
receives a page-level clone of it.
"""

from protofixture.core.config import FactorySettings, load_settings, locate_snapshot
from protofixture.database.handle import DatabaseHandle, HandleOptions
from protofixture.errors import (
    FactoryConfigurationError,
    FactoryDisposedError,
    MissingConnectionError,
    PrototypeBuildError,
    ProtofixtureError,
)
from protofixture.factory import FactoryHooks, FactoryState, PrototypeFactory

__version__ = "0.2.0"

__all__ = [
    "DatabaseHandle",
    "FactoryConfigurationError",
    "FactoryDisposedError",
    "FactoryHooks",
    "FactorySettings",
    "FactoryState",
    "HandleOptions",
    "MissingConnectionError",
    "PrototypeBuildError",
    "PrototypeFactory",
    "ProtofixtureError",
    "load_settings",
    "locate_snapshot",
]
