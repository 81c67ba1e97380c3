"""Registry for intrinsic definitions."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from shode.intrinsics.base import Intrinsic, IntrinsicOutput


class IntrinsicRegistryError(RuntimeError):
    """Raised when intrinsic registry operations fail."""


class IntrinsicNotFoundError(IntrinsicRegistryError):
    """Raised when an intrinsic is not found in the registry."""


class IntrinsicRegistrationError(IntrinsicRegistryError):
    """Raised when an intrinsic cannot be registered."""


class IntrinsicRegistry:
    """Closed set of intrinsics addressable by exact name."""

    def __init__(self) -> None:
        self._intrinsics: dict[str, Intrinsic] = {}

    def register(self, intrinsic: Intrinsic) -> None:
        """Register an intrinsic by name.

        Raises:
            IntrinsicRegistrationError: If the name is already registered.
        """

        if intrinsic.name in self._intrinsics:
            raise IntrinsicRegistrationError(f"Intrinsic '{intrinsic.name}' is already registered")
        self._intrinsics[intrinsic.name] = intrinsic

    def get(self, name: str) -> Intrinsic:
        """Retrieve an intrinsic by name.

        Raises:
            IntrinsicNotFoundError: If no intrinsic exists with the given name.
        """

        try:
            return self._intrinsics[name]
        except KeyError as exc:
            raise IntrinsicNotFoundError(f"unknown standard library function: {name}") from exc

    def __contains__(self, name: object) -> bool:
        return name in self._intrinsics

    def names(self) -> frozenset[str]:
        return frozenset(self._intrinsics)

    def list_intrinsics(self) -> Iterable[Intrinsic]:
        return list(self._intrinsics.values())

    def call(
        self,
        name: str,
        args: Sequence[str],
        input_text: str | None = None,
    ) -> IntrinsicOutput:
        """Invoke a named intrinsic with positional arguments."""

        return self.get(name).invoke(args, input_text=input_text)
