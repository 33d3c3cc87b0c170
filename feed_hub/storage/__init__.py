"""
Persistence backends.

This package provides the repository interface the core depends on and
two implementations: an in-memory store and a SQLite database.
"""

from ..config import StorageConfig
from .base import Repository, SubscriptionFilter
from .memory import InMemoryRepository
from .sqlite import SqliteRepository

__all__ = [
    "Repository",
    "SubscriptionFilter",
    "InMemoryRepository",
    "SqliteRepository",
    "build_repository",
]


def build_repository(cfg: StorageConfig) -> Repository:
    """Build the repository selected by ``cfg.backend``."""
    backend = cfg.backend.lower().strip()
    if backend == "memory":
        return InMemoryRepository()
    if backend == "sqlite":
        return SqliteRepository(cfg.path)
    raise ValueError(f"Unsupported storage backend: {cfg.backend}. Supported: memory, sqlite")
