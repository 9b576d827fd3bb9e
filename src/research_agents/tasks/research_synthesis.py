"""Research synthesis: extract a batch of documents and report gaps against a question."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from functools import partial
from typing import Any

from research_agents.config import Settings
from research_agents.extraction.models import Document, DocumentSource, FileInput, SourceKind
from research_agents.extraction.service import DocumentExtractionService
from research_agents.framework.errors import (
    CancellationError,
    ErrorDetail,
    ErrorKind,
    ExtractionError,
)
from research_agents.framework.models import ExecutionContext, InputSpec, OutputFormat, TaskConfig
from research_agents.framework.steps import Step, StepErr, StepOk, StepOutcome
from research_agents.framework.task import Task
from research_agents.tasks import analysis

logger = logging.getLogger(__name__)

TASK_ID = "research-synthesis"
MAX_DOCUMENTS_LIMIT = 25

ServiceFactory = Callable[[], DocumentExtractionService]


def _is_source(item: Any) -> bool:
    if isinstance(item, FileInput | DocumentSource):
        return True
    if not isinstance(item, Mapping):
        return False
    value = item.get("value")
    return item.get("kind") in {"file", "url"} and isinstance(value, str) and bool(value.strip())


def _valid_documents(value: Any) -> bool:
    return bool(value) and all(_is_source(item) for item in value)


def _valid_question(value: Any) -> bool:
    return bool(value.strip())


def _valid_max_documents(value: Any) -> bool:
    return float(value).is_integer() and 1 <= value <= MAX_DOCUMENTS_LIMIT


def research_synthesis_config(*, max_documents: int = 10) -> TaskConfig:
    return TaskConfig(
        id=TASK_ID,
        name="Research Synthesis",
        description="Batch-process research documents and identify knowledge gaps",
        version="1.0.0",
        inputs={
            "documents": InputSpec(
                type="array",
                required=True,
                description='Sources as {"kind": "file"|"url", "value": str} or FileInput',
                validator=_valid_documents,
            ),
            "research_question": InputSpec(
                type="string",
                required=True,
                description="Research question guiding the analysis",
                validator=_valid_question,
            ),
            "include_methodologies": InputSpec(
                type="boolean",
                default=True,
                description="Run the optional methodology extraction step",
            ),
            "max_documents": InputSpec(
                type="number",
                default=max_documents,
                description="Maximum number of documents to process",
                validator=_valid_max_documents,
            ),
        },
        output_format=OutputFormat.MARKDOWN,
        output_schema={
            "overview": "object",
            "themes": "array",
            "methodologies": "array",
            "gaps": "array",
            "suggested_questions": "array",
            "report": "string",
            "failures": "array",
        },
    )


RESEARCH_SYNTHESIS_CONFIG = research_synthesis_config()


class ResearchSynthesisTask(Task):
    """validate -> extract -> overview -> themes -> methodologies -> gaps -> questions -> report.

    Per-document extraction failures are collected; the extract step fails
    only when no document could be extracted.
    """

    def __init__(
        self,
        config: TaskConfig = RESEARCH_SYNTHESIS_CONFIG,
        *,
        settings: Settings | None = None,
        service_factory: ServiceFactory | None = None,
    ) -> None:
        super().__init__(config)
        self._settings = settings or Settings()
        self._service_factory = service_factory or partial(
            DocumentExtractionService,
            self._settings.extraction,
        )

    async def initialize(self, context: ExecutionContext) -> None:
        logger.info(
            "Research synthesis over %d source(s): %s",
            len(context.inputs["documents"]),
            context.inputs["research_question"],
        )

    async def execute(self, context: ExecutionContext) -> dict[str, Any]:
        async with self._service_factory() as service:
            await self.run_steps(context, self.build_steps(context, service))

        results = context.results
        return {
            "overview": results["overview"],
            "themes": [theme.to_dict() for theme in results.get("themes", [])],
            "methodologies": [method.to_dict() for method in results.get("methodologies", [])],
            "gaps": [gap.to_dict() for gap in results["gaps"]],
            "suggested_questions": [question.to_dict() for question in results["questions"]],
            "report": results["report"],
            "failures": [failure.to_dict() for failure in results["extract"]["failures"]],
        }

    def build_steps(
        self,
        context: ExecutionContext,
        service: DocumentExtractionService,
    ) -> list[Step]:
        steps = [
            Step(id="validate", name="Validate inputs", execute=self._validate),
            Step(
                id="extract",
                name="Extract documents",
                execute=partial(self._extract, service),
            ),
            Step(id="overview", name="Build literature overview", execute=self._overview),
            Step(id="themes", name="Identify themes", execute=self._themes, required=False),
        ]
        if context.inputs["include_methodologies"]:
            steps.append(
                Step(
                    id="methodologies",
                    name="Extract methodologies",
                    execute=self._methodologies,
                    required=False,
                ),
            )
        steps += [
            Step(id="gaps", name="Identify research gaps", execute=self._gaps),
            Step(id="questions", name="Generate research questions", execute=self._questions),
            Step(
                id="report",
                name="Render report",
                execute=self._report,
                validate=lambda report: bool(report.strip()),
            ),
        ]
        return steps

    async def _validate(self, context: ExecutionContext) -> StepOutcome:
        documents = context.inputs["documents"]
        limit = int(context.inputs["max_documents"])
        if len(documents) > limit:
            return StepErr(
                f"Too many documents provided ({len(documents)}). Maximum is {limit}.",
                kind=ErrorKind.VALIDATION,
                code="too_many_documents",
            )

        sources: list[DocumentSource | FileInput] = []
        seen: set[tuple[str, str]] = set()
        for item in documents:
            source = _to_source(item)
            if isinstance(source, DocumentSource):
                identity = (source.kind.value, source.value)
                if identity in seen:
                    logger.warning("Skipping duplicate source %s", source.value)
                    continue
                seen.add(identity)
            sources.append(source)
        return StepOk({"sources": sources, "question": context.inputs["research_question"].strip()})

    async def _extract(
        self,
        service: DocumentExtractionService,
        context: ExecutionContext,
    ) -> StepOutcome:
        sources = context.results["validate"]["sources"]
        semaphore = asyncio.Semaphore(self._settings.synthesis.max_workers)

        async def extract_one(source: DocumentSource | FileInput) -> Document:
            async with semaphore:
                context.token.raise_if_cancelled()
                return await service.extract(source)

        outcomes = await asyncio.gather(
            *(extract_one(source) for source in sources),
            return_exceptions=True,
        )
        context.token.raise_if_cancelled()

        documents: list[Document] = []
        failures: list[ErrorDetail] = []
        for source, outcome in zip(sources, outcomes, strict=True):
            if isinstance(outcome, Document):
                documents.append(outcome)
            elif isinstance(outcome, CancellationError):
                raise outcome
            elif isinstance(outcome, ExtractionError):
                logger.warning("Extraction failed for %s: %s", _label(source), outcome)
                failures.append(outcome.to_detail(step_id="extract"))
            elif isinstance(outcome, Exception):
                logger.warning("Unexpected error extracting %s: %r", _label(source), outcome)
                failures.append(
                    ErrorDetail(
                        kind=ErrorKind.EXTRACTION,
                        message=str(outcome) or type(outcome).__name__,
                        code="unexpected_error",
                        step_id="extract",
                        source=_label(source),
                    ),
                )
            else:
                raise outcome

        if not documents:
            return StepErr(
                f"All {len(sources)} document(s) failed to extract",
                kind=ErrorKind.EXTRACTION,
                code="all_documents_failed",
                details=tuple(failures),
            )
        logger.info("Extracted %d/%d documents", len(documents), len(sources))
        return StepOk({"documents": documents, "failures": failures})

    async def _overview(self, context: ExecutionContext) -> StepOutcome:
        extracted = context.results["extract"]
        requested = len(context.results["validate"]["sources"])
        return StepOk(analysis.build_overview(extracted["documents"], requested))

    async def _themes(self, context: ExecutionContext) -> StepOutcome:
        question = context.results["validate"]["question"]
        return StepOk(analysis.identify_themes(context.results["extract"]["documents"], question))

    async def _methodologies(self, context: ExecutionContext) -> StepOutcome:
        return StepOk(analysis.extract_methodologies(context.results["extract"]["documents"]))

    async def _gaps(self, context: ExecutionContext) -> StepOutcome:
        return StepOk(
            analysis.identify_gaps(
                context.results["extract"]["documents"],
                context.results["validate"]["question"],
                methodologies=context.results.get("methodologies"),
            ),
        )

    async def _questions(self, context: ExecutionContext) -> StepOutcome:
        question = context.results["validate"]["question"]
        return StepOk(analysis.suggest_questions(question, context.results["gaps"]))

    async def _report(self, context: ExecutionContext) -> StepOutcome:
        results = context.results
        return StepOk(
            analysis.render_report(
                question=results["validate"]["question"],
                overview=results["overview"],
                themes=results.get("themes", []),
                methodologies=results.get("methodologies", []),
                gaps=results["gaps"],
                questions=results["questions"],
                failures=results["extract"]["failures"],
                version=self.config.version,
            ),
        )


def _to_source(item: Any) -> DocumentSource | FileInput:
    if isinstance(item, FileInput | DocumentSource):
        return item
    return DocumentSource(SourceKind(item["kind"]), item["value"].strip())


def _label(source: DocumentSource | FileInput) -> str:
    return source.name if isinstance(source, FileInput) else source.value
