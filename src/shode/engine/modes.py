"""Choose how each command is executed."""

from __future__ import annotations

import shutil
from collections.abc import Callable, Iterable

from shode.engine.results import ExecutionMode
from shode.syntax.nodes import CommandNode


class ExecutionModeSelector:
    """Route commands to intrinsics or external processes.

    A command whose name exactly matches a registered intrinsic is always
    interpreted, even when a same-named binary exists on the search path.
    Everything else runs as a process; unresolvable names still go to the
    process path so the spawn failure is reported in-band.
    """

    def __init__(
        self,
        intrinsic_names: Iterable[str],
        search_path: Callable[[], str | None] | None = None,
        which: Callable[..., str | None] = shutil.which,
    ) -> None:
        """Initialize the selector.

        Args:
            intrinsic_names: Closed set of intrinsic command names.
            search_path: Returns the PATH used to resolve binaries; None uses
                the host PATH.
            which: Binary lookup function with ``shutil.which`` semantics.
        """

        self._intrinsics = frozenset(intrinsic_names)
        self._search_path = search_path
        self._which = which

    def decide(self, command: CommandNode) -> ExecutionMode:
        if self.is_intrinsic(command.name):
            return ExecutionMode.INTERPRETED
        return ExecutionMode.PROCESS

    def is_intrinsic(self, name: str) -> bool:
        return name in self._intrinsics

    def resolve_binary(self, name: str) -> str | None:
        """Return the full path of an external binary, or None."""

        path = self._search_path() if self._search_path is not None else None
        return self._which(name, path=path or None)

    def is_external_available(self, name: str) -> bool:
        return self.resolve_binary(name) is not None
