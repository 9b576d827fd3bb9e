"""Minimal two-step task used for smoke runs and framework tests."""

from __future__ import annotations

import logging
from typing import Any

from research_agents.framework.models import ExecutionContext, InputSpec, OutputFormat, TaskConfig
from research_agents.framework.steps import Step, StepOk, StepOutcome
from research_agents.framework.task import Task

logger = logging.getLogger(__name__)

ECHO_CONFIG = TaskConfig(
    id="echo",
    name="Echo",
    description="Returns its input message, optionally upper-cased.",
    version="1.0.0",
    inputs={
        "message": InputSpec(
            type="string",
            required=True,
            description="Text to echo back",
        ),
        "uppercase": InputSpec(type="boolean", default=False, description="Upper-case the text"),
    },
    output_format=OutputFormat.JSON,
    output_schema={"message": "string", "length": "number"},
)


class EchoTask(Task):
    def __init__(self, config: TaskConfig = ECHO_CONFIG) -> None:
        super().__init__(config)

    async def initialize(self, context: ExecutionContext) -> None:
        logger.debug("Echo run with %d characters", len(context.inputs["message"]))

    async def execute(self, context: ExecutionContext) -> Any:
        await self.run_steps(
            context,
            [
                Step(id="transform", name="Transform message", execute=self._transform),
                Step(id="measure", name="Measure message", execute=self._measure),
            ],
        )
        return {"message": context.results["transform"], "length": context.results["measure"]}

    async def _transform(self, context: ExecutionContext) -> StepOutcome:
        message: str = context.inputs["message"]
        return StepOk(message.upper() if context.inputs["uppercase"] else message)

    async def _measure(self, context: ExecutionContext) -> StepOutcome:
        return StepOk(len(context.results["transform"]))
