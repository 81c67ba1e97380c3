"""Environment state shared across command executions."""

from shode.environment.store import (
    EnvironmentSession,
    EnvironmentSnapshot,
    EnvironmentStore,
    InvalidDirectoryError,
)

__all__ = [
    "EnvironmentSession",
    "EnvironmentSnapshot",
    "EnvironmentStore",
    "InvalidDirectoryError",
]
