# src/protofixture/core/__init__.py
"""Core infrastructure: configuration and logging."""

from protofixture.core.config import (
    DEFAULT_SNAPSHOT_FILENAME,
    MEMORY_URL,
    FactorySettings,
    load_settings,
    locate_snapshot,
)
from protofixture.core.logging import (
    configure_logging,
    get_logger,
)

__all__ = [
    "DEFAULT_SNAPSHOT_FILENAME",
    "MEMORY_URL",
    "FactorySettings",
    "configure_logging",
    "get_logger",
    "load_settings",
    "locate_snapshot",
]
