from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

import pytest

from shode.engine import (
    CommandResult,
    ExecutionEngine,
    ExecutionMode,
    ProcessPool,
    UnsupportedNodeError,
)
from shode.environment import EnvironmentStore
from shode.execution import ExecutionContext, ProcessOutcome, ProcessRunner
from shode.security import AllowAllGate
from shode.syntax import (
    AssignmentNode,
    CommandNode,
    RedirectNode,
    SimpleParser,
    pipeline,
    script,
)


class RecordingRunner(ProcessRunner):
    def __init__(self, stdout: str = "ok\n", exit_code: int = 0) -> None:
        self.stdout = stdout
        self.exit_code = exit_code
        self.calls: list[list[str]] = []

    def run(
        self,
        command: list[str],
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
        *,
        input_text: str | None = None,
        stdin: object = None,
        stdout: object = None,
        stderr: object = None,
        context: ExecutionContext | None = None,
    ) -> ProcessOutcome:
        self.calls.append(list(command))
        return ProcessOutcome(
            command=list(command),
            stdout=self.stdout,
            stderr="",
            exit_code=self.exit_code,
            duration_s=0.0,
        )


def _engine(tmp_path: Path, **kwargs: object) -> ExecutionEngine:
    return ExecutionEngine(EnvironmentStore.from_os(working_dir=tmp_path), **kwargs)


def test_pipeline_feeds_previous_stdout(tmp_path: Path) -> None:
    engine = _engine(tmp_path)
    tree = pipeline(
        CommandNode(name="echo", args=("a\nb\nc",)),
        CommandNode(name="grep", args=("b",)),
    )

    result = engine.execute(script(tree))

    assert result.success
    assert result.exit_code == 0
    assert result.output == "b\n"
    assert [r.command.name for r in result.command_results] == ["echo", "grep"]
    assert all(r.mode is ExecutionMode.PROCESS for r in result.command_results)


def test_pipeline_into_intrinsic_stage(tmp_path: Path) -> None:
    engine = _engine(tmp_path)

    result = engine.execute(SimpleParser().parse_string("echo hello | ToUpper"))

    assert result.output == "HELLO\n"
    assert result.command_results[1].mode is ExecutionMode.INTERPRETED


def test_pipeline_stops_at_failing_stage(tmp_path: Path) -> None:
    engine = _engine(tmp_path)

    result = engine.execute(SimpleParser().parse_string("echo a | grep zzz | wc -l"))

    assert not result.success
    assert result.exit_code == 1
    assert [r.command.name for r in result.command_results] == ["echo", "grep"]


def test_first_failure_stops_the_script(tmp_path: Path) -> None:
    engine = _engine(tmp_path)

    result = engine.execute(
        script(
            CommandNode(name="Print", args=("first",)),
            CommandNode(name="sh", args=("-c", "exit 7")),
            CommandNode(name="WriteFile", args=("never.txt", "x")),
        )
    )

    assert not result.success
    assert result.exit_code == 7
    assert len(result.command_results) == 2
    assert not (tmp_path / "never.txt").exists()


def test_successful_script_concatenates_output(tmp_path: Path) -> None:
    engine = _engine(tmp_path)

    result = engine.execute(SimpleParser().parse_string("Println one\necho two\nErrorln warn"))

    assert result.success
    assert result.output == "one\ntwo\n"
    assert result.error_text == "warn\n"
    assert len(result.command_results) == 3
    assert all(r.duration_s >= 0 for r in result.command_results)


def test_intrinsic_redirect_truncates_then_appends(tmp_path: Path) -> None:
    engine = _engine(tmp_path)

    result = engine.execute(SimpleParser().parse_string("Print X > f.txt\nPrint X >> f.txt"))

    assert result.success
    assert result.output == ""
    assert (tmp_path / "f.txt").read_text(encoding="utf-8") == "XX"


def test_process_redirect_writes_file_and_is_not_cached(tmp_path: Path) -> None:
    engine = _engine(tmp_path)
    command = CommandNode(
        name="echo",
        args=("hi",),
        redirect=RedirectNode(op=">", target_file="out.txt"),
    )

    first = engine.execute(script(command))
    (tmp_path / "out.txt").unlink()
    second = engine.execute(script(command))

    assert first.success and second.success
    assert (tmp_path / "out.txt").read_text(encoding="utf-8") == "hi\n"
    assert not second.command_results[0].cached
    assert len(engine.cache) == 0


def test_input_redirect_overrides_piped_input(tmp_path: Path) -> None:
    (tmp_path / "in.txt").write_text("from-file\n", encoding="utf-8")
    engine = _engine(tmp_path)

    result = engine.execute(SimpleParser().parse_string("echo from-pipe | cat < in.txt"))

    assert result.output == "from-file\n"


def test_stderr_merge_for_process(tmp_path: Path) -> None:
    engine = _engine(tmp_path)

    result = engine.execute(
        script(
            CommandNode(
                name="sh",
                args=("-c", "printf out; printf err >&2"),
                redirect=RedirectNode(op="2>&1", fd=2),
            )
        )
    )

    assert result.output == "outerr"
    assert result.error_text == ""


def test_cache_hit_replays_result_without_spawning(tmp_path: Path) -> None:
    runner = RecordingRunner(stdout="cached?\n")
    engine = _engine(tmp_path, runner=runner)
    command = CommandNode(name="echo", args=("x",))

    first = engine.execute(script(command))
    second = engine.execute(script(command))

    assert len(runner.calls) == 1
    assert first.output == second.output == "cached?\n"
    assert not first.command_results[0].cached
    assert second.command_results[0].cached
    counters = engine.observability.metrics.snapshot()["counters"]
    assert counters["cache.hit"] == 1
    assert counters["cache.miss"] == 1


def test_cache_bypass_changes_nothing_but_spawns(tmp_path: Path) -> None:
    runner = RecordingRunner(stdout="same\n")
    cached_engine = _engine(tmp_path, runner=runner)
    uncached_engine = _engine(tmp_path, runner=runner, cache_enabled=False)
    tree = script(CommandNode(name="echo", args=("same",)))

    cached = [cached_engine.execute(tree) for _ in range(3)]
    uncached = [uncached_engine.execute(tree) for _ in range(3)]

    assert [r.output for r in cached] == [r.output for r in uncached]
    assert [r.exit_code for r in cached] == [r.exit_code for r in uncached]
    assert len(runner.calls) == 4


def test_failed_and_piped_commands_are_not_cached(tmp_path: Path) -> None:
    runner = RecordingRunner(exit_code=2)
    engine = _engine(tmp_path, runner=runner)
    command = CommandNode(name="grep", args=("x",))

    engine.execute(script(command))
    engine.execute(script(command))
    engine.execute(script(pipeline(CommandNode(name="Print", args=("x",)), command)))

    assert len(runner.calls) == 3
    assert len(engine.cache) == 0


def test_security_rejection_is_in_band(tmp_path: Path) -> None:
    runner = RecordingRunner()
    engine = _engine(tmp_path, runner=runner)

    result = engine.execute(
        script(
            CommandNode(name="rm", args=("-rf", "/")),
            CommandNode(name="echo", args=("after",)),
        )
    )

    assert not result.success
    assert result.exit_code == 1
    rejected = result.command_results[0]
    assert rejected.error_text.startswith("security violation:")
    assert rejected.mode is None
    assert len(result.command_results) == 1
    assert runner.calls == []
    assert engine.observability.metrics.snapshot()["counters"]["security.rejected"] == 1


def test_security_gate_can_be_replaced(tmp_path: Path) -> None:
    runner = RecordingRunner()
    engine = ExecutionEngine(
        EnvironmentStore.from_os(working_dir=tmp_path),
        security=AllowAllGate(),
        runner=runner,
    )

    result = engine.execute(script(CommandNode(name="chmod", args=("+x", "f"))))

    assert result.success
    assert runner.calls == [["chmod", "+x", "f"]]


def test_intrinsics_take_precedence_and_never_spawn(tmp_path: Path) -> None:
    runner = RecordingRunner()
    engine = _engine(tmp_path, runner=runner)

    result = engine.execute(script(CommandNode(name="ToUpper", args=("abc",))))

    assert result.output == "ABC"
    assert result.command_results[0].mode is ExecutionMode.INTERPRETED
    assert runner.calls == []


def test_intrinsic_error_is_in_band(tmp_path: Path) -> None:
    engine = _engine(tmp_path)

    result = engine.execute(script(CommandNode(name="ReadFile")))

    assert not result.success
    assert result.exit_code == 1
    assert result.command_results[0].error_text == "ReadFile requires filename argument"


def test_spawn_failure_is_in_band(tmp_path: Path) -> None:
    engine = _engine(tmp_path)

    result = engine.execute(script(CommandNode(name="shode-definitely-missing-binary")))

    assert not result.success
    assert result.exit_code == 1
    assert result.command_results[0].error_text.startswith("failed to start process:")


def test_redirect_errors_are_in_band(tmp_path: Path) -> None:
    engine = _engine(tmp_path)

    missing = engine.execute(SimpleParser().parse_string("cat < missing.txt"))
    bad_op = engine.execute(
        script(CommandNode(name="Print", args=("x",), redirect=RedirectNode(op="<>", target_file="f")))
    )

    assert missing.exit_code == 1
    assert missing.command_results[0].error_text.startswith("redirect error: failed to open file")
    assert bad_op.exit_code == 1
    assert "unsupported redirect operator: <>" in bad_op.command_results[0].error_text


def test_real_exit_code_is_preserved(tmp_path: Path) -> None:
    engine = _engine(tmp_path)

    result = engine.execute(script(CommandNode(name="sh", args=("-c", "echo partial; exit 42"))))

    assert result.exit_code == 42
    assert result.command_results[0].output == "partial\n"


def test_assignments_reach_child_processes(tmp_path: Path) -> None:
    engine = _engine(tmp_path)

    result = engine.execute(
        script(
            AssignmentNode(name="GREETING", value="hello"),
            CommandNode(name="sh", args=("-c", 'printf "$GREETING"')),
        )
    )

    assert result.output == "hello"
    assert len(result.command_results) == 1
    assert engine.environment.get("GREETING") == "hello"


def test_change_dir_affects_later_commands(tmp_path: Path) -> None:
    (tmp_path / "sub").mkdir()
    engine = _engine(tmp_path)

    result = engine.execute(SimpleParser().parse_string("ChangeDir sub\npwd\nWriteFile made.txt x"))

    assert result.success
    assert result.output == "Directory changed" + str((tmp_path / "sub").resolve()) + "\nFile written"
    assert (tmp_path / "sub" / "made.txt").exists()


def test_unsupported_node_raises_with_partial_result(tmp_path: Path) -> None:
    engine = _engine(tmp_path)

    with pytest.raises(UnsupportedNodeError) as excinfo:
        engine.execute(
            script(
                CommandNode(name="Print", args=("before",)),
                RedirectNode(op=">", target_file="x"),
            )
        )

    partial = excinfo.value.partial_result
    assert partial is not None
    assert not partial.success
    assert partial.output == "before"
    assert [r.command.name for r in partial.command_results] == ["Print"]


def test_cancelled_context_refuses_commands(tmp_path: Path) -> None:
    runner = RecordingRunner()
    engine = _engine(tmp_path, runner=runner)
    context = ExecutionContext()
    context.cancel("user abort")

    result = engine.execute(script(CommandNode(name="echo", args=("x",))), context)

    assert not result.success
    assert result.exit_code == 1
    assert result.command_results[0].error_text == "command cancelled: user abort"
    assert runner.calls == []


def test_deadline_kills_running_command(tmp_path: Path) -> None:
    engine = _engine(tmp_path)

    result = engine.execute(
        script(
            CommandNode(name="sleep", args=("10",)),
            CommandNode(name="Print", args=("never",)),
        ),
        ExecutionContext(timeout_s=0.2),
    )

    assert not result.success
    assert result.exit_code != 0
    assert result.command_results[0].error_text == "command cancelled: deadline exceeded"
    assert len(result.command_results) == 1


def test_pool_exhaustion_is_a_spawn_failure(tmp_path: Path) -> None:
    pool = ProcessPool(max_size=1)
    held = pool.acquire("other")
    engine = _engine(tmp_path, runner=RecordingRunner(), pool=pool, pool_acquire_timeout_s=0.05)

    result = engine.execute(script(CommandNode(name="echo", args=("x",))))

    pool.release(held)
    assert result.exit_code == 1
    assert result.command_results[0].error_text.startswith("failed to start process:")


def test_engine_emits_structured_events(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="shode.events")
    engine = _engine(tmp_path)

    engine.execute(script(CommandNode(name="Print", args=("x",))))

    messages = [record.message for record in caplog.records if record.name == "shode.events"]
    assert any('"command.completed"' in message for message in messages)
    assert any('"script.completed"' in message for message in messages)
    counters = engine.observability.metrics.snapshot()["counters"]
    assert counters["commands.interpreted"] == 1


def test_engine_context_manager_closes_pool(tmp_path: Path) -> None:
    with _engine(tmp_path) as engine:
        engine.execute(script(CommandNode(name="echo", args=("x",))))

    result = engine.execute(script(CommandNode(name="echo", args=("y",))))

    assert result.exit_code == 1
    assert "process pool is closed" in result.command_results[0].error_text


def test_undecodable_files_fail_in_band(tmp_path: Path) -> None:
    (tmp_path / "bin.dat").write_bytes(b"\xff\xfe\x00bad")
    engine = _engine(tmp_path)

    read = engine.execute(script(CommandNode(name="ReadFile", args=("bin.dat",))))
    redirected = engine.execute(
        script(CommandNode(name="ToUpper", redirect=RedirectNode("<", "bin.dat", fd=0)))
    )

    assert read.exit_code == 1
    assert read.command_results[0].error_text.startswith("failed to read file bin.dat")
    assert redirected.exit_code == 1
    assert redirected.command_results[0].error_text.startswith("redirect error:")


def test_cancel_wakes_command_waiting_for_pool_slot(tmp_path: Path) -> None:
    pool = ProcessPool(max_size=1)
    held = pool.acquire("sleep")
    engine = _engine(tmp_path, runner=RecordingRunner(), pool=pool)
    context = ExecutionContext()
    results: list[CommandResult] = []

    worker = threading.Thread(
        target=lambda: results.append(engine.execute_command(CommandNode(name="true"), context))
    )
    worker.start()
    time.sleep(0.1)
    assert results == []

    context.cancel("stop")
    worker.join(timeout=2.0)
    pool.release(held)

    assert not worker.is_alive()
    assert results[0].exit_code == 1
    assert results[0].error_text == "command cancelled: stop"


def test_cache_misses_when_environment_changes(tmp_path: Path) -> None:
    runner = RecordingRunner()
    engine = _engine(tmp_path, runner=runner)
    tree = script(CommandNode(name="env"))

    engine.execute(tree)
    engine.execute(tree)
    engine.environment.set("STAGE", "two")
    engine.execute(tree)

    assert len(runner.calls) == 2
    counters = engine.observability.metrics.snapshot()["counters"]
    assert counters["cache.hit"] == 1
    assert counters["cache.miss"] == 2
