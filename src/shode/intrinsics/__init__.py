"""Built-in operations executed without spawning a process."""

from shode.intrinsics.base import Intrinsic, IntrinsicError, IntrinsicOutput
from shode.intrinsics.builtins import INTRINSIC_NAMES, StandardLibrary, build_default_intrinsics
from shode.intrinsics.registry import (
    IntrinsicNotFoundError,
    IntrinsicRegistrationError,
    IntrinsicRegistry,
)

__all__ = [
    "INTRINSIC_NAMES",
    "Intrinsic",
    "IntrinsicError",
    "IntrinsicNotFoundError",
    "IntrinsicOutput",
    "IntrinsicRegistrationError",
    "IntrinsicRegistry",
    "StandardLibrary",
    "build_default_intrinsics",
]
