"""Interpreter for if/for/while/assignment nodes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shode.engine.errors import LoopLimitExceededError, UnsupportedConditionError
from shode.engine.results import ExecutionResult, ResultAccumulator
from shode.environment.store import EnvironmentStore
from shode.execution.context import ExecutionContext
from shode.syntax.nodes import AssignmentNode, CommandNode, ForNode, IfNode, Node, WhileNode
from shode.util.logging import get_logger

if TYPE_CHECKING:
    from shode.engine.engine import ExecutionEngine

DEFAULT_MAX_WHILE_ITERATIONS = 10_000


class ControlFlowInterpreter:
    """Execute control-flow nodes, recursing into the engine for bodies.

    Bodies run sequentially; loop iterations never overlap. A failing body
    stops the loop and the failure is returned in-band. Only the while-loop
    iteration ceiling and unsupported condition kinds raise.
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        environment: EnvironmentStore,
        max_while_iterations: int = DEFAULT_MAX_WHILE_ITERATIONS,
    ) -> None:
        if max_while_iterations < 1:
            raise ValueError("max_while_iterations must be at least 1.")
        self._engine = engine
        self._environment = environment
        self._max_while_iterations = max_while_iterations
        self._logger = get_logger(self.__class__.__name__)

    @property
    def max_while_iterations(self) -> int:
        return self._max_while_iterations

    def execute_if(self, node: IfNode, context: ExecutionContext) -> ExecutionResult:
        if self.evaluate_condition(node.condition, context):
            return self._engine.execute_block(node.then_body, context)
        if node.else_body is not None:
            return self._engine.execute_block(node.else_body, context)
        return ResultAccumulator().build()

    def execute_for(self, node: ForNode, context: ExecutionContext) -> ExecutionResult:
        accumulator = ResultAccumulator()
        with accumulator.capture_partial():
            for item in node.items:
                self._environment.set(node.variable, item)
                body_result = self._engine.execute_block(node.body, context)
                accumulator.add_execution(body_result)
                if not body_result.success:
                    return accumulator.build(success=False, exit_code=body_result.exit_code)
        return accumulator.build()

    def execute_while(self, node: WhileNode, context: ExecutionContext) -> ExecutionResult:
        """Run a while loop.

        The iteration counter is checked before every condition evaluation,
        so an always-true condition is evaluated exactly
        ``max_while_iterations`` times before LoopLimitExceededError.
        """

        accumulator = ResultAccumulator()
        iterations = 0
        with accumulator.capture_partial():
            while True:
                if iterations >= self._max_while_iterations:
                    self._logger.warning(
                        "While loop hit the iteration ceiling of %s", self._max_while_iterations
                    )
                    raise LoopLimitExceededError(self._max_while_iterations)
                iterations += 1

                if not self.evaluate_condition(node.condition, context):
                    break

                body_result = self._engine.execute_block(node.body, context)
                accumulator.add_execution(body_result)
                if not body_result.success:
                    return accumulator.build(success=False, exit_code=body_result.exit_code)
        return accumulator.build()

    def execute_assignment(self, node: AssignmentNode) -> ExecutionResult:
        self._environment.set(node.name, node.value)
        return ResultAccumulator().build()

    def evaluate_condition(self, condition: Node, context: ExecutionContext) -> bool:
        """Run a condition command and report whether it succeeded.

        Raises:
            UnsupportedConditionError: If the condition is not a CommandNode.
        """

        if not isinstance(condition, CommandNode):
            raise UnsupportedConditionError(
                f"unsupported condition node type: {type(condition).__name__}"
            )
        result = self._engine.execute_command(condition, context)
        return result.success and result.exit_code == 0
