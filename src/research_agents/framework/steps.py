"""Sequential step pipeline with required/optional failure policy."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from research_agents.framework.errors import (
    CancellationError,
    ErrorDetail,
    ErrorKind,
    StepExecutionError,
    TaskError,
)
from research_agents.framework.events import ErrorEvent, Progress, StepComplete, TaskEvent
from research_agents.framework.models import ExecutionContext, StepRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StepOk:
    output: Any = None


@dataclass(frozen=True, slots=True)
class StepErr:
    message: str
    kind: ErrorKind = ErrorKind.STEP_EXECUTION
    code: str | None = None
    details: tuple[ErrorDetail, ...] = ()


StepOutcome = StepOk | StepErr


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry a failing step ``max_retries`` times, sleeping ``delays[attempt]`` seconds."""

    max_retries: int = 3
    delays: tuple[float, ...] = (1.0, 2.0, 4.0)

    def delay_for(self, attempt: int) -> float:
        if not self.delays:
            return 0.0
        return self.delays[min(attempt, len(self.delays) - 1)]


@dataclass(frozen=True, slots=True)
class Step:
    """One stage of a task pipeline."""

    id: str
    name: str
    execute: Callable[[ExecutionContext], Awaitable[StepOutcome]]
    required: bool = True
    validate: Callable[[Any], bool] | None = None
    retry: RetryPolicy | None = None


def _noop(_event: TaskEvent) -> None:
    return None


class StepExecutor:
    """Runs steps strictly in order against one execution context."""

    @staticmethod
    async def execute_steps(
        steps: Sequence[Step],
        context: ExecutionContext,
        notify: Callable[[TaskEvent], None] | None = None,
    ) -> None:
        """Execute ``steps``; raise ``StepExecutionError`` when a required step fails.

        Optional step failures are reported through ``notify`` and skipped: their
        id never appears in ``context.results``.
        """

        emit = notify or _noop
        _ensure_unique_ids(steps)
        total = len(steps)
        context.steps_total = total

        for index, step in enumerate(steps):
            context.token.raise_if_cancelled()
            context.current_step = step.name
            _report_progress(context, emit, index / total * 100, step.name)

            started_at = datetime.now(tz=UTC)
            outcome = await _run_step(step, context)
            if isinstance(outcome, StepOk) and not _passes_validation(step, outcome.output):
                outcome = StepErr(
                    f"Validation failed for step '{step.name}'",
                    code="invalid_output",
                )
            context.history.append(
                StepRecord(
                    step_id=step.id,
                    name=step.name,
                    started_at=started_at,
                    finished_at=datetime.now(tz=UTC),
                    success=isinstance(outcome, StepOk),
                ),
            )

            if isinstance(outcome, StepOk):
                context.results[step.id] = outcome.output
                emit(StepComplete(step_id=step.id, step_name=step.name, output=outcome.output))
                continue

            detail = ErrorDetail(
                kind=outcome.kind,
                message=outcome.message,
                code=outcome.code,
                step_id=step.id,
            )
            emit(ErrorEvent(error=detail, step_id=step.id))
            if step.required:
                logger.warning("Required step %s failed: %s", step.id, outcome.message)
                raise StepExecutionError(
                    message=outcome.message,
                    code=outcome.code or "step_failed",
                    step_id=step.id,
                    error_kind=outcome.kind,
                    details=list(outcome.details),
                )
            logger.info("Optional step %s failed, continuing: %s", step.id, outcome.message)

        context.current_step = None
        _report_progress(context, emit, 100.0, "Completed")


def _ensure_unique_ids(steps: Sequence[Step]) -> None:
    seen: set[str] = set()
    for step in steps:
        if step.id in seen:
            raise ValueError(f"Duplicate step id in pipeline: {step.id!r}")
        seen.add(step.id)


def _report_progress(
    context: ExecutionContext,
    emit: Callable[[TaskEvent], None],
    percent: float,
    label: str | None,
) -> None:
    percent = max(context.progress, min(100.0, round(percent, 2)))
    context.progress = percent
    emit(Progress(percent=percent, label=label))


def _passes_validation(step: Step, output: Any) -> bool:
    if step.validate is None:
        return True
    try:
        return bool(step.validate(output))
    except Exception as exc:  # noqa: BLE001
        logger.warning("Output validator of step %s raised: %s", step.id, exc)
        return False


async def _run_step(step: Step, context: ExecutionContext) -> StepOutcome:
    attempt = 0
    while True:
        outcome = await _attempt(step, context)
        policy = step.retry
        if isinstance(outcome, StepOk) or policy is None or attempt >= policy.max_retries:
            return outcome
        delay = policy.delay_for(attempt)
        attempt += 1
        logger.info(
            "Retrying step %s (%d/%d) in %.1fs: %s",
            step.id,
            attempt,
            policy.max_retries,
            delay,
            outcome.message,
        )
        if delay > 0:
            await asyncio.sleep(delay)
        context.token.raise_if_cancelled()


async def _attempt(step: Step, context: ExecutionContext) -> StepOutcome:
    try:
        outcome = await step.execute(context)
    except CancellationError:
        raise
    except TaskError as exc:
        return StepErr(exc.message, kind=exc.kind, code=exc.code)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Step %s raised %s: %s", step.id, type(exc).__name__, exc)
        return StepErr(str(exc) or type(exc).__name__, code=type(exc).__name__)
    if not isinstance(outcome, StepOk | StepErr):
        return StepErr(
            f"Step '{step.name}' returned {type(outcome).__name__} instead of StepOk/StepErr",
            code="invalid_outcome",
        )
    return outcome
