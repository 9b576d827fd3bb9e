"""Task base class implementing the run lifecycle state machine."""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from research_agents.framework.errors import (
    CancellationError,
    ErrorDetail,
    ErrorKind,
    StepExecutionError,
    TaskError,
    ValidationError,
)
from research_agents.framework.events import (
    Cancelled,
    Complete,
    ErrorEvent,
    EventChannel,
    Progress,
    StateChanged,
)
from research_agents.framework.models import (
    ExecutionContext,
    ResultMetadata,
    TaskConfig,
    TaskResult,
    TaskState,
)
from research_agents.framework.steps import Step, StepExecutor

logger = logging.getLogger(__name__)


def resolve_inputs(config: TaskConfig, inputs: Mapping[str, Any]) -> dict[str, Any]:
    """Check ``inputs`` against the declared schema and fill optional defaults."""

    resolved = dict(inputs)
    for name, spec in config.inputs.items():
        value = resolved.get(name)
        if value is None:
            if spec.required:
                raise ValidationError(f"Required input '{name}' is missing", code="missing_input")
            if spec.default is not None:
                resolved[name] = copy.deepcopy(spec.default)
            continue
        if not spec.matches_type(value):
            raise ValidationError(
                f"Input '{name}' has invalid type. Expected {spec.type}, "
                f"got {type(value).__name__}",
                code="invalid_input_type",
            )
        if spec.validator is not None and not spec.validator(value):
            raise ValidationError(f"Input '{name}' failed validation")
    return resolved


class Task(ABC):
    """Runnable unit: ``idle -> initializing -> executing -> completed|error|cancelled``.

    Subclasses implement ``initialize`` and ``execute``; ``execute`` normally
    drives a step pipeline through ``run_steps``. One instance serves one run
    at a time and may be run again once the previous run has finished.
    """

    def __init__(self, config: TaskConfig) -> None:
        self._config = config
        self._state = TaskState.IDLE
        self._context: ExecutionContext | None = None
        self.events = EventChannel()

    @property
    def config(self) -> TaskConfig:
        return self._config

    @property
    def state(self) -> TaskState:
        return self._state

    def get_config(self) -> TaskConfig:
        return self._config

    def get_state(self) -> TaskState:
        return self._state

    async def run(self, inputs: Mapping[str, Any]) -> TaskResult:
        """Run the task once. Never raises; failures are returned as results."""

        started = time.monotonic()
        if self._context is not None:
            error = ValidationError(
                f"Task {self._config.id!r} is already running",
                code="already_running",
            )
            return TaskResult(success=False, errors=[error.to_detail()])

        context = ExecutionContext(inputs=dict(inputs))
        self._context = context
        try:
            self._set_state(TaskState.INITIALIZING)
            context.inputs = resolve_inputs(self._config, context.inputs)
            await self.initialize(context)
            context.token.raise_if_cancelled()

            self._set_state(TaskState.EXECUTING)
            data = await self.execute(context)
            context.token.raise_if_cancelled()

            result = TaskResult(success=True, data=data, metadata=self._metadata(context, started))
            await self.on_complete(result)
            context.token.raise_if_cancelled()
            self._set_state(TaskState.COMPLETED)
        except asyncio.CancelledError:
            result = await self._fail(context, CancellationError(), started)
            self._finish_progress(context)
            self._context = None
            self.events.emit(Complete(result=result))
            raise
        except Exception as exc:  # noqa: BLE001
            result = await self._fail(context, exc, started)

        self._finish_progress(context)
        self._context = None
        logger.info(
            "Task %s finished: state=%s success=%s duration_ms=%d",
            self._config.id,
            self._state.value,
            result.success,
            result.metadata.duration_ms,
        )
        self.events.emit(Complete(result=result))
        return result

    def cancel(self) -> bool:
        """Signal the active run to stop.

        Returns ``False`` and emits nothing when no run is active.
        """

        context = self._context
        if context is None or not self._state.is_active:
            logger.debug("cancel() ignored for %s: no active run", self._config.id)
            return False
        context.token.cancel()
        self._set_state(TaskState.CANCELLED)
        self.events.emit(Cancelled())
        return True

    @abstractmethod
    async def initialize(self, context: ExecutionContext) -> None:
        """Prepare the run (check capabilities, open sessions)."""

    @abstractmethod
    async def execute(self, context: ExecutionContext) -> Any:
        """Produce the run's output data."""

    async def on_complete(self, result: TaskResult) -> None:
        return None

    async def on_error(self, error: Exception) -> None:
        return None

    async def run_steps(self, context: ExecutionContext, steps: Sequence[Step]) -> None:
        await StepExecutor.execute_steps(steps, context, self.events.emit)

    def _set_state(self, state: TaskState) -> None:
        context = self._context
        if context is not None and context.token.cancelled and state is not TaskState.CANCELLED:
            return
        if state is self._state and state is TaskState.CANCELLED:
            return
        self._state = state
        self.events.emit(StateChanged(state=state))

    async def _fail(self, context: ExecutionContext, exc: Exception, started: float) -> TaskResult:
        metadata = self._metadata(context, started)
        if context.token.cancelled or isinstance(exc, CancellationError):
            if self._state is not TaskState.CANCELLED:
                context.token.cancel()
                self._set_state(TaskState.CANCELLED)
                self.events.emit(Cancelled())
            return TaskResult(
                success=False,
                errors=[CancellationError().to_detail()],
                metadata=metadata,
            )

        if isinstance(exc, StepExecutionError):
            errors = [exc.to_detail(), *exc.details]
        elif isinstance(exc, TaskError):
            errors = [exc.to_detail()]
            self.events.emit(ErrorEvent(error=errors[0]))
        else:
            logger.exception("Task %s failed unexpectedly", self._config.id)
            errors = [
                ErrorDetail(
                    kind=ErrorKind.STEP_EXECUTION,
                    message=str(exc) or type(exc).__name__,
                    code=type(exc).__name__,
                ),
            ]
            self.events.emit(ErrorEvent(error=errors[0]))

        try:
            await self.on_error(exc)
        except Exception:
            logger.exception("on_error hook of %s failed", self._config.id)
        self._set_state(TaskState.ERROR)
        return TaskResult(success=False, errors=errors, metadata=metadata)

    def _finish_progress(self, context: ExecutionContext) -> None:
        if context.progress >= 100:
            return
        context.progress = 100.0
        self.events.emit(Progress(percent=100.0, label=self._state.value))

    @staticmethod
    def _metadata(context: ExecutionContext, started: float) -> ResultMetadata:
        return ResultMetadata(
            duration_ms=int((time.monotonic() - started) * 1000),
            cache_hit=False,
            steps_completed=context.steps_completed,
            steps_total=context.steps_total,
            completed_at=datetime.now(tz=UTC),
        )
