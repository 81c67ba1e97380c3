"""Execution engine orchestrating commands, pipelines, and control flow."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from shode.engine.cache import CommandCache
from shode.engine.control_flow import DEFAULT_MAX_WHILE_ITERATIONS, ControlFlowInterpreter
from shode.engine.errors import UnsupportedNodeError
from shode.engine.modes import ExecutionModeSelector
from shode.engine.pool import PoolCancelledError, PoolClosedError, PoolTimeoutError, ProcessPool
from shode.engine.redirection import RedirectionError, RedirectionManager, StdioBinding
from shode.engine.results import (
    CommandResult,
    ExecutionMode,
    ExecutionResult,
    PipelineResult,
    ResultAccumulator,
    failed_result,
)
from shode.environment.store import EnvironmentStore
from shode.execution.base import ProcessRunner
from shode.execution.context import ExecutionContext
from shode.execution.local_exec import LocalProcessRunner
from shode.intrinsics.base import IntrinsicError
from shode.intrinsics.builtins import build_default_intrinsics
from shode.intrinsics.registry import IntrinsicNotFoundError, IntrinsicRegistry
from shode.security.base import SecurityGate, SecurityViolation
from shode.security.checker import SecurityChecker
from shode.syntax.nodes import (
    AssignmentNode,
    CommandNode,
    ForNode,
    IfNode,
    Node,
    PipeNode,
    ScriptNode,
    WhileNode,
)
from shode.util.logging import get_logger
from shode.util.observability import ObservabilityManager, create_observability_manager

NodeOutcome = CommandResult | PipelineResult | ExecutionResult


class ExecutionEngine:
    """Execute shode scripts.

    One engine serves many ``execute`` calls. Its command cache and process
    pool persist across calls and may be shared with other engines; the
    environment store is shared by every node of a script, so assignments
    and loop variables are visible to everything that runs after them.

    Script-level failures (security rejections, non-zero exits, redirect
    and spawn errors) are returned in-band. Only EngineError subclasses
    raise, and they carry the partial result accumulated so far.
    """

    def __init__(
        self,
        environment: EnvironmentStore | None = None,
        intrinsics: IntrinsicRegistry | None = None,
        security: SecurityGate | None = None,
        *,
        runner: ProcessRunner | None = None,
        cache: CommandCache | None = None,
        pool: ProcessPool | None = None,
        mode_selector: ExecutionModeSelector | None = None,
        observability: ObservabilityManager | None = None,
        cache_enabled: bool = True,
        pool_acquire_timeout_s: float | None = None,
        max_while_iterations: int = DEFAULT_MAX_WHILE_ITERATIONS,
    ) -> None:
        """Initialize the engine.

        Args:
            environment: Variable and working directory store. Defaults to a
                store seeded from the host environment.
            intrinsics: Registry of in-process built-ins.
            security: Gate consulted before every command.
            runner: Spawns external processes.
            cache: Result cache for eligible process commands.
            pool: Bounds concurrently running external processes.
            mode_selector: Chooses interpreted or process execution.
            observability: Structured event logger and metrics.
            cache_enabled: Whether the cache is consulted at all.
            pool_acquire_timeout_s: Maximum wait for a pool slot.
            max_while_iterations: Hard ceiling on while-loop iterations.
        """

        self._environment = environment if environment is not None else EnvironmentStore.from_os()
        self._intrinsics = (
            intrinsics if intrinsics is not None else build_default_intrinsics(self._environment)
        )
        self._security = security if security is not None else SecurityChecker()
        self._runner = runner if runner is not None else LocalProcessRunner()
        self._cache = cache if cache is not None else CommandCache()
        self._pool = pool if pool is not None else ProcessPool()
        self._selector = (
            mode_selector
            if mode_selector is not None
            else ExecutionModeSelector(
                self._intrinsics.names(),
                search_path=lambda: self._environment.path,
            )
        )
        self._observability = (
            observability if observability is not None else create_observability_manager()
        )
        self._redirection = RedirectionManager(self._environment.resolve_path)
        self._control_flow = ControlFlowInterpreter(
            self, self._environment, max_while_iterations=max_while_iterations
        )
        self.cache_enabled = cache_enabled
        self._pool_acquire_timeout_s = pool_acquire_timeout_s
        self._handlers: dict[type[Any], Callable[[Any, ExecutionContext], NodeOutcome]] = {
            CommandNode: self.execute_command,
            PipeNode: self.execute_pipeline,
            IfNode: self._control_flow.execute_if,
            ForNode: self._control_flow.execute_for,
            WhileNode: self._control_flow.execute_while,
            AssignmentNode: lambda node, _context: self._control_flow.execute_assignment(node),
        }
        self._logger = get_logger(self.__class__.__name__)

    @property
    def environment(self) -> EnvironmentStore:
        return self._environment

    @property
    def security(self) -> SecurityGate:
        return self._security

    @property
    def cache(self) -> CommandCache:
        return self._cache

    @property
    def pool(self) -> ProcessPool:
        return self._pool

    @property
    def observability(self) -> ObservabilityManager:
        return self._observability

    def execute(self, script: ScriptNode, context: ExecutionContext | None = None) -> ExecutionResult:
        """Execute a script from the top.

        Nodes run strictly in order; the first failing node stops the script
        and its exit code becomes the script's.

        Args:
            script: Parsed script; never modified.
            context: Cancellation/deadline context. Defaults to a background
                context that never fires.

        Returns:
            ExecutionResult aggregating every executed command.

        Raises:
            EngineError: For unsupported node kinds, unsupported condition
                kinds, or a while loop exceeding its iteration ceiling.
        """

        context = context if context is not None else ExecutionContext.background()
        evicted_before = self._pool.stats().evicted
        try:
            result = self.execute_block(script, context)
        finally:
            evicted = self._pool.stats().evicted - evicted_before
            if evicted:
                self._observability.metrics.increment("pool.evicted", evicted)
        self._observability.log_event(
            "script.completed",
            {
                "nodes": len(script.nodes),
                "commands": len(result.command_results),
                "success": result.success,
                "exit_code": result.exit_code,
                "duration_s": round(result.duration_s, 6),
            },
        )
        return result

    def execute_block(self, script: ScriptNode, context: ExecutionContext) -> ExecutionResult:
        """Execute a script body, stopping at the first failing node."""

        accumulator = ResultAccumulator()
        with accumulator.capture_partial():
            for node in script.nodes:
                outcome = self._dispatch(node, context)
                if isinstance(outcome, CommandResult):
                    accumulator.add_command(outcome)
                elif isinstance(outcome, PipelineResult):
                    accumulator.add_pipeline(outcome)
                else:
                    accumulator.add_execution(outcome)
                if not outcome.success:
                    return accumulator.build(success=False, exit_code=outcome.exit_code)
        return accumulator.build()

    def execute_command(
        self,
        command: CommandNode,
        context: ExecutionContext | None = None,
        *,
        input_text: str | None = None,
    ) -> CommandResult:
        """Execute one command after the security check.

        Args:
            command: Command to run.
            context: Cancellation/deadline context.
            input_text: Text supplied as stdin (from a previous pipeline stage).

        Returns:
            CommandResult stamped with its duration and execution mode.
        """

        context = context if context is not None else ExecutionContext.background()
        start = time.monotonic()

        try:
            self._security.check(command)
        except SecurityViolation as exc:
            self._observability.metrics.increment("security.rejected")
            self._observability.log_event(
                "command.rejected",
                {"command": command.name, "reason": str(exc)},
                level="WARNING",
            )
            return replace(
                failed_result(command, f"security violation: {exc}"),
                duration_s=time.monotonic() - start,
            )

        mode = self._selector.decide(command)
        if context.cancelled:
            result = failed_result(command, f"command cancelled: {context.reason}")
        elif mode is ExecutionMode.INTERPRETED:
            result = self._execute_interpreted(command, input_text)
        else:
            # HYBRID is reserved and currently runs as a process.
            result = self._execute_process(command, context, input_text)

        result = replace(result, duration_s=time.monotonic() - start, mode=mode)
        self._record(result)
        return result

    def execute_pipeline(
        self,
        pipe: PipeNode,
        context: ExecutionContext | None = None,
    ) -> PipelineResult:
        """Execute a pipeline with buffered data flow between stages.

        Each stage's complete stdout becomes the next stage's stdin. The
        pipeline stops at the first failing stage.

        Raises:
            UnsupportedNodeError: If a pipeline leaf is not a command.
        """

        context = context if context is not None else ExecutionContext.background()
        stages = self.flatten_pipeline(pipe)
        results: list[CommandResult] = []
        previous_output: str | None = None

        for index, stage in enumerate(stages):
            result = self.execute_command(
                stage,
                context,
                input_text=previous_output if index > 0 else None,
            )
            results.append(result)
            if not result.success:
                return PipelineResult(
                    success=False,
                    exit_code=result.exit_code,
                    output=result.output,
                    error_text=result.error_text,
                    stage_results=tuple(results),
                )
            previous_output = result.output

        self._observability.log_event(
            "pipeline.completed",
            {"stages": [stage.name for stage in stages]},
            level="DEBUG",
        )
        return PipelineResult(
            success=True,
            exit_code=0,
            output=results[-1].output,
            error_text="",
            stage_results=tuple(results),
        )

    def flatten_pipeline(self, node: Node) -> list[CommandNode]:
        """Return pipeline stages in order (left subtree before right)."""

        if isinstance(node, CommandNode):
            return [node]
        if isinstance(node, PipeNode):
            return self.flatten_pipeline(node.left) + self.flatten_pipeline(node.right)
        raise UnsupportedNodeError(
            f"unsupported pipeline stage type: {type(node).__name__}"
        )

    def close(self) -> None:
        """Release pooled resources."""

        self._pool.close()

    def __enter__(self) -> ExecutionEngine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _dispatch(self, node: Node, context: ExecutionContext) -> NodeOutcome:
        handler = self._handlers.get(type(node))
        if handler is None:
            raise UnsupportedNodeError(f"unsupported node type: {type(node).__name__}")
        return handler(node, context)

    def _execute_interpreted(self, command: CommandNode, input_text: str | None) -> CommandResult:
        try:
            with self._redirection.bind(command.redirect) as binding:
                return self._run_intrinsic(command, binding, input_text)
        except RedirectionError as exc:
            return failed_result(command, f"redirect error: {exc}")

    def _run_intrinsic(
        self,
        command: CommandNode,
        binding: StdioBinding,
        input_text: str | None,
    ) -> CommandResult:
        redirected_input = self._redirection.read_input(binding)
        if redirected_input is not None:
            input_text = redirected_input
        try:
            produced = self._intrinsics.call(command.name, command.args, input_text=input_text)
        except (IntrinsicError, IntrinsicNotFoundError) as exc:
            return failed_result(command, str(exc))
        output, error_text = self._redirection.deliver(binding, produced.stdout, produced.stderr)
        return CommandResult(
            command=command,
            success=True,
            exit_code=0,
            output=output,
            error_text=error_text,
        )

    def _execute_process(
        self,
        command: CommandNode,
        context: ExecutionContext,
        input_text: str | None,
    ) -> CommandResult:
        snapshot = self._environment.snapshot_all()
        cacheable = self.cache_enabled and command.redirect is None and input_text is None
        fingerprint = snapshot.fingerprint() if cacheable else None
        if cacheable:
            cached = self._cache.get(command.name, command.args, fingerprint)
            if cached is not None:
                self._observability.metrics.increment("cache.hit")
                return replace(cached, cached=True)
            self._observability.metrics.increment("cache.miss")

        try:
            with self._redirection.bind(command.redirect) as binding:
                with self._pool.slot(
                    command.name,
                    timeout_s=self._acquire_timeout(context),
                    context=context,
                ):
                    outcome = self._runner.run(
                        [command.name, *command.args],
                        cwd=snapshot.working_dir,
                        env=snapshot.variables,
                        input_text=input_text,
                        context=context,
                        **binding.subprocess_kwargs(),
                    )
        except RedirectionError as exc:
            return failed_result(command, f"redirect error: {exc}")
        except PoolCancelledError as exc:
            return failed_result(command, f"command cancelled: {exc}")
        except (PoolTimeoutError, PoolClosedError, OSError) as exc:
            self._logger.info("Failed to start %s: %s", command.name, exc)
            return failed_result(command, f"failed to start process: {exc}")

        if outcome.cancelled:
            return CommandResult(
                command=command,
                success=False,
                exit_code=outcome.exit_code,
                output=outcome.stdout,
                error_text=f"command cancelled: {outcome.cancel_reason}",
            )

        result = CommandResult(
            command=command,
            success=outcome.exit_code == 0,
            exit_code=outcome.exit_code,
            output=outcome.stdout,
            error_text=outcome.stderr,
        )
        if cacheable and result.success:
            self._cache.put(command.name, command.args, result, fingerprint)
        return result

    def _acquire_timeout(self, context: ExecutionContext) -> float | None:
        remaining = context.remaining()
        if remaining is None:
            return self._pool_acquire_timeout_s
        if self._pool_acquire_timeout_s is None:
            return remaining
        return min(remaining, self._pool_acquire_timeout_s)

    def _record(self, result: CommandResult) -> None:
        mode = result.mode.value if result.mode is not None else "none"
        metrics = self._observability.metrics
        metrics.increment(f"commands.{mode}")
        metrics.record_duration(f"command.{mode}", result.duration_s)
        if not result.success:
            metrics.increment("commands.failed")
        self._observability.log_event(
            "command.completed",
            {
                "command": result.command.name,
                "mode": mode,
                "exit_code": result.exit_code,
                "cached": result.cached,
                "duration_s": round(result.duration_s, 6),
            },
            level="DEBUG",
        )
