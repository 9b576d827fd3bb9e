"""Typed notification channel for task runs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any

from research_agents.framework.errors import ErrorDetail
from research_agents.framework.models import TaskResult, TaskState

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StateChanged:
    state: TaskState


@dataclass(frozen=True, slots=True)
class Progress:
    percent: float
    label: str | None = None


@dataclass(frozen=True, slots=True)
class StepComplete:
    step_id: str
    step_name: str
    output: Any


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    error: ErrorDetail
    step_id: str | None = None


@dataclass(frozen=True, slots=True)
class Complete:
    """Final event of every run, carrying its result whatever the outcome."""

    result: TaskResult


@dataclass(frozen=True, slots=True)
class Cancelled:
    pass


TaskEvent = StateChanged | Progress | StepComplete | ErrorEvent | Complete | Cancelled
Listener = Callable[[TaskEvent], None]


class EventChannel:
    """Ordered fan-out of task events to callbacks and async streams."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._queues: list[asyncio.Queue[TaskEvent]] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and return a function that removes it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: TaskEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener failed on %s", type(event).__name__)
        for queue in list(self._queues):
            queue.put_nowait(event)

    def stream(self) -> AsyncIterator[TaskEvent]:
        """Return an iterator over events up to (and including) the next ``Complete``.

        The stream is registered immediately, so create it before starting the run.
        """

        queue: asyncio.Queue[TaskEvent] = asyncio.Queue()
        self._queues.append(queue)
        return self._drain(queue)

    async def _drain(self, queue: asyncio.Queue[TaskEvent]) -> AsyncIterator[TaskEvent]:
        try:
            while True:
                event = await queue.get()
                yield event
                if isinstance(event, Complete):
                    return
        finally:
            self._queues.remove(queue)
