"""Thread-safe environment variable and working directory store."""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path


class InvalidDirectoryError(ValueError):
    """Raised when changing into a path that is not an existing directory."""


class _ReadWriteLock:
    """Many concurrent readers or a single writer."""

    def __init__(self) -> None:
        self._condition = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._condition:
            while self._writer:
                self._condition.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._condition:
            while self._writer or self._readers:
                self._condition.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._condition:
                self._writer = False
                self._condition.notify_all()


@dataclass(frozen=True)
class EnvironmentSnapshot:
    """Point-in-time copy of the environment handed to child processes.

    Attributes:
        variables: Environment variables at snapshot time.
        working_dir: Working directory at snapshot time.
    """

    variables: dict[str, str]
    working_dir: Path

    def fingerprint(self) -> int:
        """Return a hash identifying this exact environment and directory."""

        return hash((tuple(sorted(self.variables.items())), str(self.working_dir)))


@dataclass
class EnvironmentSession:
    """Detached, mutable copy of the store that can later be applied back."""

    working_dir: Path
    variables: dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> str:
        return self.variables.get(key, "")

    def set(self, key: str, value: str) -> None:
        self.variables[key] = value


class EnvironmentStore:
    """Variable map and working directory shared by an execution engine.

    Reads may run concurrently; every mutation excludes all other access.
    """

    def __init__(
        self,
        variables: Mapping[str, str] | None = None,
        working_dir: Path | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            variables: Initial variables. Defaults to an empty mapping.
            working_dir: Initial working directory. Defaults to the process cwd.
        """

        self._lock = _ReadWriteLock()
        self._variables: dict[str, str] = dict(variables or {})
        self._original: dict[str, str] = dict(self._variables)
        self._working_dir = (working_dir or Path.cwd()).resolve()

    @classmethod
    def from_os(cls, working_dir: Path | None = None) -> EnvironmentStore:
        """Create a store seeded from the host process environment."""

        return cls(variables=dict(os.environ), working_dir=working_dir)

    def get(self, key: str) -> str:
        """Return a variable value, or an empty string when unset."""

        with self._lock.read():
            return self._variables.get(key, "")

    def contains(self, key: str) -> bool:
        with self._lock.read():
            return key in self._variables

    def set(self, key: str, value: str) -> None:
        with self._lock.write():
            self._variables[key] = value

    def unset(self, key: str) -> None:
        with self._lock.write():
            self._variables.pop(key, None)

    def all(self) -> dict[str, str]:
        """Return a copy of every variable."""

        with self._lock.read():
            return dict(self._variables)

    def working_dir(self) -> Path:
        with self._lock.read():
            return self._working_dir

    def change_dir(self, path: str | Path) -> Path:
        """Change the working directory.

        Args:
            path: Absolute path, or a path relative to the current directory.

        Returns:
            The new working directory.

        Raises:
            InvalidDirectoryError: If the target is not an existing directory.
        """

        with self._lock.write():
            candidate = Path(path)
            if not candidate.is_absolute():
                candidate = self._working_dir / candidate
            candidate = candidate.resolve()
            if not candidate.is_dir():
                raise InvalidDirectoryError(f"directory does not exist: {candidate}")
            self._working_dir = candidate
            return candidate

    def resolve_path(self, path: str | Path) -> Path:
        """Resolve a path against the current working directory."""

        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return self.working_dir() / candidate

    def snapshot_all(self) -> EnvironmentSnapshot:
        """Return a consistent copy of variables and working directory."""

        with self._lock.read():
            return EnvironmentSnapshot(
                variables=dict(self._variables),
                working_dir=self._working_dir,
            )

    @property
    def path(self) -> str:
        return self.get("PATH")

    def append_to_path(self, directory: str) -> None:
        with self._lock.write():
            current = self._variables.get("PATH", "")
            self._variables["PATH"] = f"{current}{os.pathsep}{directory}" if current else directory

    def prepend_to_path(self, directory: str) -> None:
        with self._lock.write():
            current = self._variables.get("PATH", "")
            self._variables["PATH"] = f"{directory}{os.pathsep}{current}" if current else directory

    def home_dir(self) -> str:
        """Return HOME, falling back to the value the store started with."""

        with self._lock.read():
            return self._variables.get("HOME") or self._original.get("HOME", "")

    def restore_original(self) -> None:
        """Discard all changes made to variables since construction."""

        with self._lock.write():
            self._variables = dict(self._original)

    def create_session(self) -> EnvironmentSession:
        with self._lock.read():
            return EnvironmentSession(
                working_dir=self._working_dir,
                variables=dict(self._variables),
            )

    def apply_session(self, session: EnvironmentSession) -> None:
        """Replace the store contents with a session's state."""

        with self._lock.write():
            self._working_dir = session.working_dir
            self._variables = dict(session.variables)
