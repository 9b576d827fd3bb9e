"""Concrete tasks and their registration."""

from __future__ import annotations

from research_agents.config import Settings
from research_agents.framework.registry import TaskRegistry
from research_agents.tasks.echo import ECHO_CONFIG, EchoTask
from research_agents.tasks.research_synthesis import (
    RESEARCH_SYNTHESIS_CONFIG,
    ResearchSynthesisTask,
    ServiceFactory,
    research_synthesis_config,
)


def register_default_tasks(
    registry: TaskRegistry,
    settings: Settings | None = None,
    *,
    service_factory: ServiceFactory | None = None,
) -> TaskRegistry:
    """Register the built-in tasks; ``service_factory`` overrides document extraction."""

    settings = settings or Settings()
    registry.register(ECHO_CONFIG, EchoTask)
    registry.register(
        research_synthesis_config(max_documents=settings.synthesis.max_documents),
        lambda config: ResearchSynthesisTask(
            config,
            settings=settings,
            service_factory=service_factory,
        ),
    )
    return registry


__all__ = [
    "ECHO_CONFIG",
    "RESEARCH_SYNTHESIS_CONFIG",
    "EchoTask",
    "ResearchSynthesisTask",
    "register_default_tasks",
    "research_synthesis_config",
]
