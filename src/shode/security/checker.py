"""Default blacklist-based security policy."""

from __future__ import annotations

import os
import threading
from collections.abc import Iterable
from typing import Any, Final

from shode.security.base import SecurityGate, SecurityViolation
from shode.syntax.nodes import CommandNode

DEFAULT_DANGEROUS_COMMANDS: Final[frozenset[str]] = frozenset(
    {
        "rm",
        "dd",
        "mkfs",
        "fdisk",
        "format",
        "shutdown",
        "reboot",
        "halt",
        "poweroff",
        "useradd",
        "userdel",
        "usermod",
        "passwd",
        "chown",
        "chmod",
        "kill",
        "killall",
    }
)
DEFAULT_NETWORK_COMMANDS: Final[frozenset[str]] = frozenset(
    {"iptables", "ip6tables", "ifconfig", "route", "nmap", "netcat", "nc"}
)
DEFAULT_SENSITIVE_PATHS: Final[tuple[str, ...]] = (
    "/etc/passwd",
    "/etc/shadow",
    "/etc/sudoers",
    "/root/",
    "/boot/",
    "/proc/sys",
)
_CREDENTIAL_FLAGS: Final[tuple[str, ...]] = ("--password", "--passwd")
_CREDENTIAL_PREFIXES: Final[tuple[str, ...]] = ("--password=", "--passwd=", "-p=")


class SecurityChecker(SecurityGate):
    """Reject dangerous, network-configuring or credential-leaking commands.

    The dangerous command list can be tuned at runtime and is safe to modify
    while other threads are checking commands.
    """

    def __init__(
        self,
        dangerous_commands: Iterable[str] | None = None,
        network_commands: Iterable[str] | None = None,
        sensitive_paths: Iterable[str] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._dangerous = set(
            DEFAULT_DANGEROUS_COMMANDS if dangerous_commands is None else dangerous_commands
        )
        self._network = frozenset(
            DEFAULT_NETWORK_COMMANDS if network_commands is None else network_commands
        )
        self._sensitive = tuple(
            DEFAULT_SENSITIVE_PATHS if sensitive_paths is None else sensitive_paths
        )

    def check(self, command: CommandNode) -> None:
        """Raise SecurityViolation when the command breaks policy."""

        base = _base_name(command.name)
        if self.is_dangerous(base):
            raise SecurityViolation(f"dangerous command '{base}' is not allowed")
        if base in self._network:
            raise SecurityViolation(f"network command '{base}' is not allowed")
        sensitive = self.sensitive_files(command)
        if sensitive:
            raise SecurityViolation(f"access to sensitive path '{sensitive[0]}' is not allowed")
        if any(_is_credential_flag(arg) for arg in command.args):
            raise SecurityViolation("passwords must not be passed on the command line")

    def add_dangerous_command(self, name: str) -> None:
        with self._lock:
            self._dangerous.add(name)

    def remove_dangerous_command(self, name: str) -> None:
        with self._lock:
            self._dangerous.discard(name)

    def is_dangerous(self, name: str) -> bool:
        with self._lock:
            return name in self._dangerous

    def sensitive_files(self, command: CommandNode) -> list[str]:
        """Return arguments (and redirect targets) that touch sensitive paths."""

        candidates = list(command.args)
        if command.redirect is not None and command.redirect.target_file:
            candidates.append(command.redirect.target_file)
        return [
            value
            for value in candidates
            if any(value == path.rstrip("/") or value.startswith(path) for path in self._sensitive)
        ]

    def security_report(self, command: CommandNode) -> dict[str, Any]:
        """Return a structured description of the command's risk factors."""

        base = _base_name(command.name)
        return {
            "command": command.name,
            "arguments": list(command.args),
            "is_dangerous_command": self.is_dangerous(base),
            "is_network_command": base in self._network,
            "sensitive_files": self.sensitive_files(command),
            "has_inline_credentials": any(_is_credential_flag(arg) for arg in command.args),
        }


def _base_name(name: str) -> str:
    return os.path.basename(name)


def _is_credential_flag(arg: str) -> bool:
    return arg in _CREDENTIAL_FLAGS or arg.startswith(_CREDENTIAL_PREFIXES)
