"""Execution engine: orchestration, caching, pooling, and control flow."""

from shode.engine.cache import CacheStats, CommandCache
from shode.engine.control_flow import DEFAULT_MAX_WHILE_ITERATIONS, ControlFlowInterpreter
from shode.engine.engine import ExecutionEngine
from shode.engine.errors import (
    EngineError,
    LoopLimitExceededError,
    UnsupportedConditionError,
    UnsupportedNodeError,
)
from shode.engine.modes import ExecutionModeSelector
from shode.engine.pool import (
    PoolCancelledError,
    PoolClosedError,
    PoolSlot,
    PoolStats,
    PoolTimeoutError,
    ProcessPool,
)
from shode.engine.redirection import RedirectionError, RedirectionManager, StdioBinding
from shode.engine.results import CommandResult, ExecutionMode, ExecutionResult, PipelineResult

__all__ = [
    "CacheStats",
    "CommandCache",
    "CommandResult",
    "ControlFlowInterpreter",
    "DEFAULT_MAX_WHILE_ITERATIONS",
    "EngineError",
    "ExecutionEngine",
    "ExecutionMode",
    "ExecutionModeSelector",
    "ExecutionResult",
    "LoopLimitExceededError",
    "PipelineResult",
    "PoolCancelledError",
    "PoolClosedError",
    "PoolSlot",
    "PoolStats",
    "PoolTimeoutError",
    "ProcessPool",
    "RedirectionError",
    "RedirectionManager",
    "StdioBinding",
    "UnsupportedConditionError",
    "UnsupportedNodeError",
]
