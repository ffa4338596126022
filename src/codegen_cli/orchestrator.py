from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Sequence, Union

from .progress import ProgressAnnouncer
from .runner import CodegenError, CommandError, CommandRunner

logger = logging.getLogger(__name__)


class StepDefinitionError(ValueError):
    """A step was built without a valid kind, or with a duplicate id."""


class TargetNotEmptyError(CodegenError):
    def __init__(self, target: Path):
        self.target = target
        super().__init__(f"Directory '{target}' already exists and is not empty")


@dataclass(frozen=True)
class StepMessages:
    running: str
    success: str
    failure: str


@dataclass(frozen=True)
class InProcessAction:
    """Runs ``func()`` in-process; awaitable results are awaited."""

    func: Callable[[], Any]


@dataclass(frozen=True)
class ExternalCommand:
    program: str
    args: tuple[str, ...] = ()
    cwd: Optional[Path] = None
    # Succeeds regardless of exit code (auto-fixers exit non-zero after partial fixes)
    best_effort: bool = False

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]


StepKind = Union[InProcessAction, ExternalCommand]


@dataclass(frozen=True)
class Step:
    id: str
    kind: StepKind
    messages: StepMessages

    def __post_init__(self) -> None:
        if not self.id:
            raise StepDefinitionError("Step id must not be empty")
        if not isinstance(self.kind, (InProcessAction, ExternalCommand)):
            raise StepDefinitionError(
                f"Step '{self.id}' needs either an in-process action or an external command"
            )
        if isinstance(self.kind, InProcessAction) and not callable(self.kind.func):
            raise StepDefinitionError(f"Step '{self.id}' action is not callable")

    @classmethod
    def action(cls, id: str, func: Callable[[], Any], running: str, success: str, failure: str) -> "Step":
        return cls(id, InProcessAction(func), StepMessages(running, success, failure))

    @classmethod
    def command(
        cls,
        id: str,
        argv: Sequence[str],
        running: str,
        success: str,
        failure: str,
        *,
        cwd: Optional[Path] = None,
        best_effort: bool = False,
    ) -> "Step":
        if not argv:
            raise StepDefinitionError(f"Step '{id}' has an empty command")
        program, *args = argv
        return cls(
            id,
            ExternalCommand(program, tuple(args), cwd=cwd, best_effort=best_effort),
            StepMessages(running, success, failure),
        )


@dataclass(frozen=True)
class StepOutcome:
    step_id: str
    succeeded: bool
    diagnostic: str = ""
    exit_code: Optional[int] = None

    @classmethod
    def success(cls, step_id: str) -> "StepOutcome":
        return cls(step_id, True)

    @classmethod
    def failure(cls, step_id: str, diagnostic: str, exit_code: Optional[int] = None) -> "StepOutcome":
        return cls(step_id, False, diagnostic, exit_code)


class RunPlan:
    """Ordered steps for one run; insertion order is execution order."""

    def __init__(self, steps: Sequence[Step] = (), *, target: Optional[Path] = None):
        self.target = target
        self._steps: list[Step] = []
        for step in steps:
            self.add(step)

    def add(self, step: Step) -> "RunPlan":
        if any(s.id == step.id for s in self._steps):
            raise StepDefinitionError(f"Duplicate step id '{step.id}'")
        self._steps.append(step)
        return self

    @property
    def step_ids(self) -> list[str]:
        return [s.id for s in self._steps]

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)


@dataclass
class RunSummary:
    total: int
    outcomes: list[StepOutcome] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return len(self.outcomes)

    @property
    def failed_at(self) -> Optional[int]:
        for index, outcome in enumerate(self.outcomes, start=1):
            if not outcome.succeeded:
                return index
        return None

    @property
    def ok(self) -> bool:
        return self.failed_at is None and not self.skipped


class RunAborted(CodegenError):
    def __init__(self, summary: RunSummary, outcome: StepOutcome):
        self.summary = summary
        self.outcome = outcome
        message = f"Step '{outcome.step_id}' failed"
        if outcome.exit_code is not None:
            message += f" (exit code {outcome.exit_code})"
        if outcome.diagnostic:
            message += f": {outcome.diagnostic}"
        super().__init__(message)

    @property
    def step_id(self) -> str:
        return self.outcome.step_id

    @property
    def exit_code(self) -> Optional[int]:
        return self.outcome.exit_code

    @property
    def diagnostic(self) -> str:
        return self.outcome.diagnostic


def ensure_target_available(target: Path) -> None:
    """Refuse to scaffold into an existing, non-empty directory."""
    if not target.exists():
        return
    if not target.is_dir() or any(target.iterdir()):
        raise TargetNotEmptyError(target)


class TaskOrchestrator:
    """Drives a RunPlan step by step and decides whether to abort."""

    def __init__(self, runner: Optional[CommandRunner] = None, announcer: Optional[ProgressAnnouncer] = None):
        self.runner = runner or CommandRunner()
        self.announcer = announcer or ProgressAnnouncer()

    def run(self, plan: RunPlan) -> RunSummary:
        return asyncio.run(self.execute(plan))

    async def execute(self, plan: RunPlan) -> RunSummary:
        if plan.target is not None:
            ensure_target_available(plan.target)

        steps = list(plan)
        summary = RunSummary(total=len(steps))
        if not steps:
            logger.info("Run plan is empty")
            self.announcer.show_progress(0, 0)
            return summary

        for index, step in enumerate(steps):
            outcome = await self._run_step(step)
            summary.outcomes.append(outcome)
            self.announcer.show_progress(summary.completed, summary.total)
            if not outcome.succeeded:
                summary.skipped = [s.id for s in steps[index + 1:]]
                logger.error("Aborting run at step %s; skipped: %s", step.id, ", ".join(summary.skipped) or "none")
                raise RunAborted(summary, outcome)

        logger.info("Run finished: %d/%d steps", summary.completed, summary.total)
        return summary

    async def _run_step(self, step: Step) -> StepOutcome:
        logger.info("Running step %s", step.id)
        self.announcer.start(step.messages.running)
        try:
            outcome = await self._perform(step)
            if outcome.succeeded:
                await self.announcer.succeed(step.messages.success)
            else:
                await self.announcer.fail(step.messages.failure)
        finally:
            await self.announcer.cancel()
        logger.info("Step %s %s", step.id, "succeeded" if outcome.succeeded else "failed")
        return outcome

    async def _perform(self, step: Step) -> StepOutcome:
        kind = step.kind
        if isinstance(kind, ExternalCommand):
            try:
                await self.runner.run(kind.program, kind.args, cwd=kind.cwd, best_effort=kind.best_effort)
            except CommandError as e:
                return StepOutcome.failure(step.id, e.stderr.strip() or str(e), e.exit_code)
            return StepOutcome.success(step.id)

        try:
            result = kind.func()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.debug("Step %s raised", step.id, exc_info=True)
            return StepOutcome.failure(step.id, str(e) or e.__class__.__name__)
        return StepOutcome.success(step.id)
