"""Script syntax: AST nodes and the simple parser."""

from shode.syntax.nodes import (
    AssignmentNode,
    CommandNode,
    ForNode,
    IfNode,
    Node,
    PipeNode,
    RedirectNode,
    ScriptNode,
    WhileNode,
    pipeline,
    script,
)
from shode.syntax.parser import ParseError, SimpleParser

__all__ = [
    "AssignmentNode",
    "CommandNode",
    "ForNode",
    "IfNode",
    "Node",
    "ParseError",
    "PipeNode",
    "RedirectNode",
    "ScriptNode",
    "SimpleParser",
    "WhileNode",
    "pipeline",
    "script",
]
