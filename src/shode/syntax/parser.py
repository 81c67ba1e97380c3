"""Minimal line-oriented parser producing shode AST nodes."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from shode.syntax.nodes import (
    AssignmentNode,
    CommandNode,
    Node,
    PipeNode,
    RedirectNode,
    ScriptNode,
)

_ASSIGNMENT: Final[re.Pattern[str]] = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)=(.*)$", re.DOTALL)

# operator token -> (op, fd, takes_target)
_REDIRECTS: Final[dict[str, tuple[str, int, bool]]] = {
    ">": (">", 1, True),
    ">>": (">>", 1, True),
    "<": ("<", 0, True),
    "2>": (">", 2, True),
    "2>>": (">>", 2, True),
    "&>": ("&>", 1, True),
    "2>&1": ("2>&1", 2, False),
}


class ParseError(ValueError):
    """Raised when script text cannot be parsed."""

    def __init__(self, message: str, line: int) -> None:
        super().__init__(f"line {line}: {message}")
        self.line = line


@dataclass(frozen=True)
class _Token:
    text: str
    quoted_from: int | None = None

    @property
    def unquoted(self) -> bool:
        return self.quoted_from is None


class SimpleParser:
    """Parse shell-like text into a ScriptNode.

    One statement per line or per unquoted ``;``. Supports quoting, pipes,
    a single trailing redirection per command, and ``NAME=value`` assignments.
    Control-flow constructs are not parsed.
    """

    def parse_string(self, source: str) -> ScriptNode:
        """Parse a block of script text."""

        nodes: list[Node] = []
        for line_number, line in enumerate(source.splitlines(), start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            tokens = self._tokenize(stripped, line_number)
            for statement in _split(tokens, ";"):
                if statement:
                    nodes.append(self._parse_statement(statement, line_number))
        return ScriptNode(nodes=tuple(nodes))

    def parse_file(self, path: Path) -> ScriptNode:
        """Parse a script file from disk."""

        return self.parse_string(path.read_text(encoding="utf-8"))

    def _parse_statement(self, tokens: list[_Token], line: int) -> Node:
        if len(tokens) == 1:
            assignment = _as_assignment(tokens[0])
            if assignment is not None:
                return assignment

        segments = _split(tokens, "|")
        if not all(segments):
            raise ParseError("empty pipeline stage", line)
        node: Node = self._parse_command(segments[0], line)
        for segment in segments[1:]:
            node = PipeNode(left=node, right=self._parse_command(segment, line))
        return node

    def _parse_command(self, tokens: list[_Token], line: int) -> CommandNode:
        words: list[str] = []
        redirect: RedirectNode | None = None
        index = 0
        while index < len(tokens):
            token = tokens[index]
            entry = _REDIRECTS.get(token.text) if token.unquoted else None
            if entry is None:
                if redirect is not None:
                    raise ParseError(f"unexpected token after redirection: {token.text}", line)
                words.append(token.text)
                index += 1
                continue
            if redirect is not None:
                raise ParseError("only one redirection per command is supported", line)
            op, fd, takes_target = entry
            target = ""
            if takes_target:
                if index + 1 >= len(tokens):
                    raise ParseError(f"missing target for '{token.text}'", line)
                target = tokens[index + 1].text
                index += 1
            redirect = RedirectNode(op=op, target_file=target, fd=fd)
            index += 1

        if not words:
            raise ParseError("redirection without a command", line)
        return CommandNode(name=words[0], args=tuple(words[1:]), redirect=redirect)

    def _tokenize(self, line: str, line_number: int) -> list[_Token]:
        tokens: list[_Token] = []
        current: list[str] = []
        quoted_from: int | None = None
        quote_char = ""
        started = False

        def flush() -> None:
            nonlocal current, quoted_from, started
            if started:
                tokens.append(_Token("".join(current), quoted_from))
            current = []
            quoted_from = None
            started = False

        for char in line:
            if quote_char:
                if char == quote_char:
                    quote_char = ""
                else:
                    current.append(char)
                continue
            if char in {'"', "'"}:
                quote_char = char
                if quoted_from is None:
                    quoted_from = len(current)
                started = True
            elif char in {" ", "\t"}:
                flush()
            elif char in {"|", ";"}:
                flush()
                tokens.append(_Token(char))
            else:
                current.append(char)
                started = True

        if quote_char:
            raise ParseError("unterminated quote", line_number)
        flush()
        return tokens


def _split(tokens: list[_Token], separator: str) -> list[list[_Token]]:
    groups: list[list[_Token]] = [[]]
    for token in tokens:
        if token.unquoted and token.text == separator:
            groups.append([])
        else:
            groups[-1].append(token)
    return groups


def _as_assignment(token: _Token) -> AssignmentNode | None:
    match = _ASSIGNMENT.match(token.text)
    if match is None:
        return None
    if token.quoted_from is not None and token.quoted_from <= len(match.group(1)):
        return None
    return AssignmentNode(name=match.group(1), value=match.group(2))
