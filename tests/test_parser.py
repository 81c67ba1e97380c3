from __future__ import annotations

from pathlib import Path

import pytest

from shode.syntax import (
    AssignmentNode,
    CommandNode,
    ParseError,
    PipeNode,
    RedirectNode,
    SimpleParser,
    pipeline,
)


def test_parses_commands_and_skips_comments() -> None:
    parser = SimpleParser()

    script = parser.parse_string(
        """
# greeting
echo hello world

ls -la; pwd
"""
    )

    assert [node.name for node in script] == ["echo", "ls", "pwd"]
    assert script.nodes[0] == CommandNode(name="echo", args=("hello", "world"))
    assert script.nodes[1].args == ("-la",)


def test_quoted_arguments_keep_spaces_and_separators() -> None:
    script = SimpleParser().parse_string("echo 'a | b; c' \"x y\"")

    assert script.nodes == (CommandNode(name="echo", args=("a | b; c", "x y")),)


def test_pipes_build_left_associative_chain() -> None:
    script = SimpleParser().parse_string("cat f | grep x | wc -l")

    node = script.nodes[0]
    assert isinstance(node, PipeNode)
    assert isinstance(node.left, PipeNode)
    assert node.left.left == CommandNode(name="cat", args=("f",))
    assert node.left.right == CommandNode(name="grep", args=("x",))
    assert node.right == CommandNode(name="wc", args=("-l",))
    assert node == pipeline(node.left.left, node.left.right, node.right)


@pytest.mark.parametrize(
    ("source", "expected"),
    [
        ("echo hi > out.txt", RedirectNode(op=">", target_file="out.txt", fd=1)),
        ("echo hi >> out.txt", RedirectNode(op=">>", target_file="out.txt", fd=1)),
        ("cat < in.txt", RedirectNode(op="<", target_file="in.txt", fd=0)),
        ("ls missing 2> err.txt", RedirectNode(op=">", target_file="err.txt", fd=2)),
        ("ls missing 2>> err.txt", RedirectNode(op=">>", target_file="err.txt", fd=2)),
        ("ls missing &> all.txt", RedirectNode(op="&>", target_file="all.txt", fd=1)),
        ("ls missing 2>&1", RedirectNode(op="2>&1", target_file="", fd=2)),
    ],
)
def test_parses_redirections(source: str, expected: RedirectNode) -> None:
    command = SimpleParser().parse_string(source).nodes[0]

    assert isinstance(command, CommandNode)
    assert command.redirect == expected


def test_assignment_lines() -> None:
    script = SimpleParser().parse_string("GREETING=hello\nEMPTY=\n'QUOTED=no'")

    assert script.nodes[0] == AssignmentNode(name="GREETING", value="hello")
    assert script.nodes[1] == AssignmentNode(name="EMPTY", value="")
    assert script.nodes[2] == CommandNode(name="QUOTED=no")


def test_assignment_value_may_be_quoted() -> None:
    script = SimpleParser().parse_string("MSG='hello world'")

    assert script.nodes == (AssignmentNode(name="MSG", value="hello world"),)


@pytest.mark.parametrize(
    ("source", "message"),
    [
        ("echo 'open", "unterminated quote"),
        ("echo a | | wc", "empty pipeline stage"),
        ("echo a >", "missing target"),
        ("> out.txt", "redirection without a command"),
        ("echo a > one > two", "only one redirection"),
        ("echo a > out extra", "unexpected token after redirection"),
    ],
)
def test_malformed_input_reports_line(source: str, message: str) -> None:
    with pytest.raises(ParseError) as excinfo:
        SimpleParser().parse_string(f"echo ok\n{source}")

    assert excinfo.value.line == 2
    assert message in str(excinfo.value)
    assert str(excinfo.value).startswith("line 2:")


def test_parse_file(tmp_path: Path) -> None:
    script_path = tmp_path / "script.sh"
    script_path.write_text("Println hi\n", encoding="utf-8")

    script = SimpleParser().parse_file(script_path)

    assert script.nodes == (CommandNode(name="Println", args=("hi",)),)


def test_pipeline_helper_requires_commands() -> None:
    with pytest.raises(ValueError):
        pipeline()


def test_trailing_pipe_is_an_empty_stage() -> None:
    with pytest.raises(ParseError, match="empty pipeline stage"):
        SimpleParser().parse_string("echo a |")
