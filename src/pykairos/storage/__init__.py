"""Storage backends for durable run and hook persistence.

Provides storage implementations behind a common interface:
    - RunRegistry: Abstract interface
    - SqliteRunRegistry: SQLite-backed storage
    - InMemoryRunRegistry: In-memory storage for testing

Design: Adapter Pattern + Dependency Inversion
    The Runtime depends on RunRegistry only, enabling easy swapping between
    storage backends.
"""

from pykairos.storage.base import RunRegistry, StorageError

# Lazy imports keep aiosqlite out of processes that only use the
# in-memory registry.


def __getattr__(name: str):
    """Lazy import storage implementations."""
    if name == "InMemoryRunRegistry":
        from pykairos.storage.memory import InMemoryRunRegistry

        return InMemoryRunRegistry
    elif name == "SqliteRunRegistry":
        from pykairos.storage.sqlite import SqliteRunRegistry

        return SqliteRunRegistry
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "RunRegistry",
    "StorageError",
    "SqliteRunRegistry",
    "InMemoryRunRegistry",
]
