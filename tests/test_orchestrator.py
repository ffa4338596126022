import io
import sys

import pytest
from rich.console import Console

from codegen_cli.orchestrator import (
    RunAborted,
    RunPlan,
    Step,
    StepDefinitionError,
    TargetNotEmptyError,
    TaskOrchestrator,
    ensure_target_available,
)
from codegen_cli.progress import ProgressAnnouncer
from codegen_cli.runner import CommandRunner


def make_orchestrator():
    output = io.StringIO()
    console = Console(file=output, width=120, color_system=None)
    return TaskOrchestrator(CommandRunner(), ProgressAnnouncer(console)), output


def python_step(id, code, **kwargs):
    return Step.command(id, [sys.executable, "-c", code], f"running {id}", f"{id} done", f"{id} failed", **kwargs)


def test_run_completes_all_steps():
    orchestrator, output = make_orchestrator()
    calls = []
    plan = RunPlan([
        python_step("first", "pass"),
        Step.action("second", lambda: calls.append("second"), "running second", "second done", "second failed"),
    ])

    summary = orchestrator.run(plan)

    assert summary.ok
    assert summary.completed == 2
    assert summary.failed_at is None
    assert calls == ["second"]
    assert "2/2 steps" in output.getvalue()


def test_failing_command_aborts_the_run():
    orchestrator, output = make_orchestrator()
    calls = []
    plan = RunPlan([
        python_step("first", "pass"),
        python_step("second", "import sys; sys.stderr.write('boom'); sys.exit(2)"),
        Step.action("third", lambda: calls.append("third"), "running third", "third done", "third failed"),
    ])

    with pytest.raises(RunAborted) as exc_info:
        orchestrator.run(plan)

    error = exc_info.value
    assert error.step_id == "second"
    assert error.exit_code == 2
    assert error.diagnostic == "boom"
    assert error.summary.completed == 2
    assert error.summary.failed_at == 2
    assert error.summary.skipped == ["third"]
    assert calls == []

    text = output.getvalue()
    assert "second failed" in text
    assert "2/3 steps" in text
    assert "3/3 steps" not in text


def test_best_effort_command_does_not_abort():
    orchestrator, _ = make_orchestrator()
    plan = RunPlan([python_step("lint-fix", "import sys; sys.exit(1)", best_effort=True)])

    summary = orchestrator.run(plan)

    assert summary.ok


def test_in_process_exception_becomes_failure():
    def explode():
        raise OSError("disk full")

    orchestrator, _ = make_orchestrator()
    plan = RunPlan([Step.action("write", explode, "writing", "written", "write failed")])

    with pytest.raises(RunAborted) as exc_info:
        orchestrator.run(plan)

    assert exc_info.value.diagnostic == "disk full"
    assert exc_info.value.exit_code is None


def test_async_action_is_awaited():
    calls = []

    async def action():
        calls.append("ran")

    orchestrator, _ = make_orchestrator()
    orchestrator.run(RunPlan([Step.action("async", action, "running", "done", "failed")]))

    assert calls == ["ran"]


def test_empty_plan_renders_complete_bar():
    orchestrator, output = make_orchestrator()

    summary = orchestrator.run(RunPlan())

    assert summary.total == 0
    assert summary.ok
    assert "100%" in output.getvalue()
    assert "nothing to run" in output.getvalue()


def test_non_empty_target_is_refused_before_any_step(tmp_path):
    (tmp_path / "existing.txt").write_text("x")
    calls = []
    orchestrator, _ = make_orchestrator()
    plan = RunPlan(
        [Step.action("scaffold", lambda: calls.append("scaffold"), "a", "b", "c")],
        target=tmp_path,
    )

    with pytest.raises(TargetNotEmptyError):
        orchestrator.run(plan)
    assert calls == []


def test_empty_or_missing_target_is_accepted(tmp_path):
    ensure_target_available(tmp_path)
    ensure_target_available(tmp_path / "new-app")


def test_step_needs_a_valid_kind():
    with pytest.raises(StepDefinitionError):
        Step.command("scaffold", [], "a", "b", "c")
    with pytest.raises(StepDefinitionError):
        Step.action("", lambda: None, "a", "b", "c")
    with pytest.raises(StepDefinitionError):
        Step.action("broken", "not callable", "a", "b", "c")


def test_duplicate_step_ids_are_rejected():
    plan = RunPlan([Step.action("install", lambda: None, "a", "b", "c")])

    with pytest.raises(StepDefinitionError):
        plan.add(Step.action("install", lambda: None, "a", "b", "c"))
    assert plan.step_ids == ["install"]
