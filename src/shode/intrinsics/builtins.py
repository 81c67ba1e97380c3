"""Built-in intrinsics for files, strings, and environment access."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from shode.environment.store import EnvironmentStore, InvalidDirectoryError
from shode.intrinsics.base import Intrinsic, IntrinsicError
from shode.intrinsics.registry import IntrinsicRegistry

INTRINSIC_NAMES: Final[frozenset[str]] = frozenset(
    {
        "Print",
        "Println",
        "Error",
        "Errorln",
        "ReadFile",
        "WriteFile",
        "ListFiles",
        "FileExists",
        "Contains",
        "Replace",
        "ToUpper",
        "ToLower",
        "Trim",
        "GetEnv",
        "SetEnv",
        "WorkingDir",
        "ChangeDir",
    }
)


class StandardLibrary:
    """In-process replacements for common shell utilities.

    File paths resolve against the environment store's working directory,
    and environment intrinsics read and write the store rather than the
    host process environment.
    """

    def __init__(self, environment: EnvironmentStore) -> None:
        self._environment = environment

    def read_file(self, filename: str) -> str:
        path = self._environment.resolve_path(filename)
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise IntrinsicError(f"failed to read file {filename}: {exc}") from exc

    def write_file(self, filename: str, content: str) -> None:
        path = self._environment.resolve_path(filename)
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise IntrinsicError(f"failed to write file {filename}: {exc}") from exc

    def list_files(self, directory: str) -> list[str]:
        path = self._environment.resolve_path(directory)
        try:
            return sorted(entry.name for entry in path.iterdir())
        except OSError as exc:
            raise IntrinsicError(f"failed to list directory {directory}: {exc}") from exc

    def file_exists(self, filename: str) -> bool:
        return self._environment.resolve_path(filename).exists()

    def get_env(self, key: str) -> str:
        return self._environment.get(key)

    def set_env(self, key: str, value: str) -> None:
        self._environment.set(key, value)

    def working_dir(self) -> str:
        return str(self._environment.working_dir())

    def change_dir(self, directory: str) -> None:
        try:
            self._environment.change_dir(directory)
        except InvalidDirectoryError as exc:
            raise IntrinsicError(str(exc)) from exc


def build_default_intrinsics(environment: EnvironmentStore) -> IntrinsicRegistry:
    """Create a registry populated with the standard intrinsics.

    Args:
        environment: Store backing file path resolution and variable access.

    Returns:
        IntrinsicRegistry containing every name in INTRINSIC_NAMES.
    """

    lib = StandardLibrary(environment)

    def print_(args: Sequence[str]) -> str:
        return args[0] if args else ""

    def println(args: Sequence[str]) -> str:
        return (args[0] if args else "") + "\n"

    def read_file(args: Sequence[str]) -> str:
        _require(args, 1, "ReadFile requires filename argument")
        return lib.read_file(args[0])

    def write_file(args: Sequence[str]) -> str:
        _require(args, 2, "WriteFile requires filename and content arguments")
        lib.write_file(args[0], args[1])
        return "File written"

    def list_files(args: Sequence[str]) -> str:
        return "\n".join(lib.list_files(args[0] if args else "."))

    def file_exists(args: Sequence[str]) -> str:
        _require(args, 1, "FileExists requires filename argument")
        return _bool_text(lib.file_exists(args[0]))

    def contains(args: Sequence[str]) -> str:
        _require(args, 2, "Contains requires haystack and needle arguments")
        return _bool_text(args[1] in args[0])

    def replace(args: Sequence[str]) -> str:
        _require(args, 3, "Replace requires string, old, and new arguments")
        return args[0].replace(args[1], args[2])

    def to_upper(args: Sequence[str]) -> str:
        return args[0].upper() if args else ""

    def to_lower(args: Sequence[str]) -> str:
        return args[0].lower() if args else ""

    def trim(args: Sequence[str]) -> str:
        return args[0].strip() if args else ""

    def get_env(args: Sequence[str]) -> str:
        _require(args, 1, "GetEnv requires environment variable name")
        return lib.get_env(args[0])

    def set_env(args: Sequence[str]) -> str:
        _require(args, 2, "SetEnv requires key and value arguments")
        lib.set_env(args[0], args[1])
        return "Environment variable set"

    def working_dir(args: Sequence[str]) -> str:
        return lib.working_dir()

    def change_dir(args: Sequence[str]) -> str:
        _require(args, 1, "ChangeDir requires directory path")
        lib.change_dir(args[0])
        return "Directory changed"

    registry = IntrinsicRegistry()
    for intrinsic in (
        Intrinsic("Print", print_, "Write text to stdout.", accepts_input=True),
        Intrinsic("Println", println, "Write a line to stdout.", accepts_input=True),
        Intrinsic("Error", print_, "Write text to stderr.", stream="stderr", accepts_input=True),
        Intrinsic("Errorln", println, "Write a line to stderr.", stream="stderr", accepts_input=True),
        Intrinsic("ReadFile", read_file, "Read a file's contents."),
        Intrinsic("WriteFile", write_file, "Write content to a file."),
        Intrinsic("ListFiles", list_files, "List directory entries."),
        Intrinsic("FileExists", file_exists, "Report whether a path exists."),
        Intrinsic("Contains", contains, "Substring test.", accepts_input=True),
        Intrinsic("Replace", replace, "Replace all occurrences.", accepts_input=True),
        Intrinsic("ToUpper", to_upper, "Convert to upper case.", accepts_input=True),
        Intrinsic("ToLower", to_lower, "Convert to lower case.", accepts_input=True),
        Intrinsic("Trim", trim, "Strip surrounding whitespace.", accepts_input=True),
        Intrinsic("GetEnv", get_env, "Read an environment variable."),
        Intrinsic("SetEnv", set_env, "Set an environment variable."),
        Intrinsic("WorkingDir", working_dir, "Print the working directory."),
        Intrinsic("ChangeDir", change_dir, "Change the working directory."),
    ):
        registry.register(intrinsic)
    return registry


def _require(args: Sequence[str], count: int, message: str) -> None:
    if len(args) < count:
        raise IntrinsicError(message)


def _bool_text(value: bool) -> str:
    return "true" if value else "false"
