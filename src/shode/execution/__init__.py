"""Process execution primitives."""

from shode.execution.base import ProcessOutcome, ProcessRunner
from shode.execution.context import ExecutionContext
from shode.execution.local_exec import LocalProcessRunner

__all__ = ["ExecutionContext", "LocalProcessRunner", "ProcessOutcome", "ProcessRunner"]
