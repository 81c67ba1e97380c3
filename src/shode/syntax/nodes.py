"""Immutable AST node types for shode scripts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class RedirectNode:
    """Input/output redirection attached to a command.

    Attributes:
        op: Redirection operator (``>``, ``>>``, ``<``, ``2>&1`` or ``&>``).
        target_file: File the operator binds to. Empty for ``2>&1``.
        fd: File descriptor the operator applies to (0, 1 or 2).
    """

    op: str
    target_file: str = ""
    fd: int = 1


@dataclass(frozen=True)
class CommandNode:
    """A single command invocation.

    Attributes:
        name: Command or intrinsic name.
        args: Positional arguments in order.
        redirect: Optional redirection applied to the command's stdio.
    """

    name: str
    args: tuple[str, ...] = ()
    redirect: RedirectNode | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))

    def __str__(self) -> str:
        return " ".join([self.name, *self.args])


@dataclass(frozen=True)
class PipeNode:
    """Binary pipe between two nodes; chains are left-associative."""

    left: Node
    right: Node


@dataclass(frozen=True)
class ScriptNode:
    """An ordered sequence of nodes."""

    nodes: tuple[Node, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", tuple(self.nodes))

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self):
        return iter(self.nodes)


@dataclass(frozen=True)
class IfNode:
    """Conditional execution.

    Attributes:
        condition: Node evaluated for its success status.
        then_body: Script run when the condition succeeds.
        else_body: Optional script run when the condition fails.
    """

    condition: Node
    then_body: ScriptNode = field(default_factory=ScriptNode)
    else_body: ScriptNode | None = None


@dataclass(frozen=True)
class ForNode:
    """Iterate a body over a pre-materialized list of items."""

    variable: str
    items: tuple[str, ...] = ()
    body: ScriptNode = field(default_factory=ScriptNode)

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))


@dataclass(frozen=True)
class WhileNode:
    """Repeat a body while a condition succeeds."""

    condition: Node
    body: ScriptNode = field(default_factory=ScriptNode)


@dataclass(frozen=True)
class AssignmentNode:
    """Assign a value to an environment variable."""

    name: str
    value: str = ""


Node = Union[
    CommandNode,
    PipeNode,
    RedirectNode,
    IfNode,
    ForNode,
    WhileNode,
    AssignmentNode,
]


def script(*nodes: Node) -> ScriptNode:
    """Build a ScriptNode from positional nodes."""

    return ScriptNode(nodes=tuple(nodes))


def pipeline(*commands: CommandNode) -> Node:
    """Build a left-associative PipeNode chain from commands.

    Raises:
        ValueError: If no commands are provided.
    """

    if not commands:
        raise ValueError("A pipeline requires at least one command.")
    node: Node = commands[0]
    for command in commands[1:]:
        node = PipeNode(left=node, right=command)
    return node
