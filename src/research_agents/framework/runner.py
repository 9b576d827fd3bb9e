"""Public entry point: cache check, task dispatch, result caching."""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from research_agents.framework.cache import ResultCache, create_key
from research_agents.framework.errors import CancellationError, ErrorDetail, ValidationError
from research_agents.framework.events import (
    Cancelled,
    Complete,
    ErrorEvent,
    Progress,
    StateChanged,
    StepComplete,
    TaskEvent,
)
from research_agents.framework.models import TaskConfig, TaskResult, TaskState
from research_agents.framework.registry import TaskRegistry
from research_agents.framework.task import Task, resolve_inputs

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunHooks:
    """Optional caller callbacks for one run."""

    on_state_change: Callable[[TaskState], None] | None = None
    on_progress: Callable[[float, str | None], None] | None = None
    on_step_complete: Callable[[str, Any], None] | None = None
    on_error: Callable[[ErrorDetail], None] | None = None
    on_complete: Callable[[TaskResult], None] | None = None
    on_cancelled: Callable[[], None] | None = None

    def dispatch(self, event: TaskEvent) -> None:
        if isinstance(event, StateChanged):
            if self.on_state_change:
                self.on_state_change(event.state)
        elif isinstance(event, Progress):
            if self.on_progress:
                self.on_progress(event.percent, event.label)
        elif isinstance(event, StepComplete):
            if self.on_step_complete:
                self.on_step_complete(event.step_id, event.output)
        elif isinstance(event, ErrorEvent):
            if self.on_error:
                self.on_error(event.error)
        elif isinstance(event, Complete):
            if self.on_complete:
                self.on_complete(event.result)
        elif isinstance(event, Cancelled):
            if self.on_cancelled:
                self.on_cancelled()


@dataclass(slots=True)
class RunHandle:
    """Handle returned by ``TaskRunner.start_agent``."""

    task: Task
    result: asyncio.Task[TaskResult] = field(init=False)
    cancel_requested: bool = False

    def cancel(self) -> bool:
        """Request cancellation; effective even before the task has started."""

        self.cancel_requested = True
        return self.task.cancel()


def _requested(handle: RunHandle | None) -> bool:
    return handle is not None and handle.cancel_requested


class TaskRunner:
    """Facade combining registry lookup, result caching and hook wiring.

    With ``single_flight`` concurrent identical requests share one execution.
    A joiner whose shared run ends cancelled by another caller runs the task
    itself instead of inheriting that cancellation.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        cache: ResultCache | None = None,
        *,
        single_flight: bool = False,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.single_flight = single_flight
        self._in_flight: dict[str, asyncio.Future[TaskResult]] = {}

    async def run_agent(
        self,
        task_id: str,
        inputs: Mapping[str, Any],
        hooks: RunHooks | None = None,
        *,
        use_cache: bool = True,
    ) -> TaskResult:
        """Return a cached result or run a fresh instance of ``task_id``."""

        config = self.registry.config(task_id)
        task = self.registry.get(task_id)
        return await self._run(config, task, inputs, hooks, use_cache=use_cache, handle=None)

    def start_agent(
        self,
        task_id: str,
        inputs: Mapping[str, Any],
        hooks: RunHooks | None = None,
        *,
        use_cache: bool = True,
    ) -> RunHandle:
        """Schedule a run on the current event loop and return its cancel handle."""

        config = self.registry.config(task_id)
        handle = RunHandle(task=self.registry.get(task_id))
        handle.result = asyncio.create_task(
            self._run(config, handle.task, inputs, hooks, use_cache=use_cache, handle=handle),
            name=f"task-{task_id}",
        )
        return handle

    async def _run(
        self,
        config: TaskConfig,
        task: Task,
        inputs: Mapping[str, Any],
        hooks: RunHooks | None,
        *,
        use_cache: bool,
        handle: RunHandle | None,
    ) -> TaskResult:
        key = self._cache_key(config, inputs) if use_cache and self.cache is not None else None
        if key is None:
            return await self._execute(task, inputs, hooks, handle)

        cached = await self.cache.get(key)  # type: ignore[union-attr]
        if cached is not None and not _requested(handle):
            logger.info("Cache hit for %s (%s)", config.id, key[:12])
            return cached

        if self.single_flight:
            pending = self._in_flight.get(key)
            if pending is not None:
                logger.info("Joining in-flight run of %s (%s)", config.id, key[:12])
                shared = await self._join(pending)
                if shared is not None and (not shared.cancelled or _requested(handle)):
                    return copy.deepcopy(shared)
                logger.info("Shared run of %s was cancelled; running again", config.id)
                return await self._run(config, task, inputs, hooks, use_cache=True, handle=handle)
            future: asyncio.Future[TaskResult] = asyncio.get_running_loop().create_future()
            self._in_flight[key] = future
            try:
                result = await self._execute_and_store(config, task, inputs, hooks, handle, key)
                future.set_result(result)
                return result
            finally:
                self._in_flight.pop(key, None)
                if not future.done():
                    future.cancel()

        return await self._execute_and_store(config, task, inputs, hooks, handle, key)

    @staticmethod
    async def _join(pending: asyncio.Future[TaskResult]) -> TaskResult | None:
        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            if not pending.cancelled():
                raise
            return None

    async def _execute_and_store(
        self,
        config: TaskConfig,
        task: Task,
        inputs: Mapping[str, Any],
        hooks: RunHooks | None,
        handle: RunHandle | None,
        key: str,
    ) -> TaskResult:
        result = await self._execute(task, inputs, hooks, handle)
        if result.success:
            await self.cache.set(config.id, key, result)  # type: ignore[union-attr]
        return result

    async def _execute(
        self,
        task: Task,
        inputs: Mapping[str, Any],
        hooks: RunHooks | None,
        handle: RunHandle | None,
    ) -> TaskResult:
        unsubscribe = task.events.subscribe(hooks.dispatch) if hooks else None
        try:
            if _requested(handle):
                logger.info("Run of %s cancelled before start", task.config.id)
                result = TaskResult(success=False, errors=[CancellationError().to_detail()])
                task.events.emit(Cancelled())
                task.events.emit(Complete(result=result))
                return result
            return await task.run(inputs)
        finally:
            if unsubscribe is not None:
                unsubscribe()

    @staticmethod
    def _cache_key(config: TaskConfig, inputs: Mapping[str, Any]) -> str | None:
        try:
            return create_key(config, resolve_inputs(config, inputs))
        except ValidationError:
            return None
        except TypeError as exc:
            logger.warning("Inputs of %s are not cacheable: %s", config.id, exc)
            return None
