"""Task id -> factory lookup used by the runner."""

from __future__ import annotations

import logging
from collections.abc import Callable

from research_agents.framework.errors import UnknownTaskError
from research_agents.framework.models import TaskConfig
from research_agents.framework.task import Task

logger = logging.getLogger(__name__)

TaskFactory = Callable[[TaskConfig], Task]


class TaskRegistry:
    """Registry of task factories, populated once at startup.

    ``get`` builds a fresh task per call so concurrent runs of the same task
    id never share an event channel.
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[TaskConfig, TaskFactory]] = {}

    def register(self, config: TaskConfig, factory: TaskFactory) -> None:
        if config.id in self._entries:
            raise ValueError(f"Task with id {config.id!r} already registered")
        self._entries[config.id] = (config, factory)
        logger.debug("Registered task %s v%s", config.id, config.version)

    def get(self, task_id: str) -> Task:
        try:
            config, factory = self._entries[task_id]
        except KeyError:
            raise UnknownTaskError(task_id) from None
        return factory(config)

    def config(self, task_id: str) -> TaskConfig:
        try:
            return self._entries[task_id][0]
        except KeyError:
            raise UnknownTaskError(task_id) from None

    def configs(self) -> list[TaskConfig]:
        return [config for config, _ in self._entries.values()]

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
