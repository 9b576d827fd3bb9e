"""Controllers for research-agents CLI commands."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

import rich_click as click

from research_agents.config import Settings
from research_agents.extraction.models import FileInput
from research_agents.extraction.service import DocumentExtractionService, PickerCancelled
from research_agents.framework.cache import ResultCache
from research_agents.framework.errors import ErrorDetail
from research_agents.framework.models import TaskResult, TaskState
from research_agents.framework.registry import TaskRegistry
from research_agents.framework.runner import RunHooks, TaskRunner
from research_agents.framework.storage import SqlCacheStore
from research_agents.tasks import register_default_tasks
from research_agents.tasks.research_synthesis import TASK_ID as RESEARCH_TASK_ID


@dataclass(slots=True)
class ResearchRunCommand:
    """CLI inputs for a research synthesis run."""

    question: str
    urls: tuple[str, ...] = ()
    files: tuple[Path, ...] = ()
    pick: bool = False
    include_methodologies: bool = True
    output: Path | None = None
    timeout_seconds: int | None = None
    use_cache: bool = True
    db_path: Path | None = None


@dataclass(slots=True)
class CacheStatsCommand:
    db_path: Path | None


@dataclass(slots=True)
class CacheClearCommand:
    db_path: Path | None
    task_id: str | None


@dataclass(slots=True)
class CommandResult:
    """Lines to print plus overall outcome."""

    lines: list[str] = field(default_factory=list)
    success: bool = True
    error: str | None = None


class PromptFilePicker:
    """Terminal file picker: comma-separated paths, empty answer cancels."""

    async def pick(self, *, multiple: bool = True) -> list[FileInput]:
        answer = click.prompt(
            "PDF file path(s), comma separated (empty to cancel)",
            default="",
            show_default=False,
        )
        paths = [part.strip() for part in answer.split(",") if part.strip()]
        if not paths:
            raise PickerCancelled
        if not multiple:
            paths = paths[:1]
        return [FileInput.from_path(Path(path).expanduser()) for path in paths]


class ResearchCliController:
    """Coordinates task, run and cache command execution."""

    def list_tasks(self) -> list[str]:
        registry = register_default_tasks(TaskRegistry(), Settings.from_env())
        return [
            f"{config.id} v{config.version}: {config.name} - {config.description}"
            for config in registry.configs()
        ]

    def run_research(self, command: ResearchRunCommand) -> CommandResult:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()

        documents: list[object] = [{"kind": "url", "value": url} for url in command.urls]
        documents += [{"kind": "file", "value": str(path)} for path in command.files]
        if command.pick:
            documents += asyncio.run(_pick_files(settings))
        if not documents:
            return CommandResult(
                lines=["No documents selected."],
                success=False,
                error="Provide at least one --url or --file.",
            )

        inputs = {
            "documents": documents,
            "research_question": command.question,
            "include_methodologies": command.include_methodologies,
        }
        lines: list[str] = []
        use_cache = command.use_cache and settings.cache.enabled
        with _runner(settings, use_cache=use_cache) as runner:
            result = asyncio.run(
                _run_with_timeout(
                    runner,
                    inputs,
                    hooks=_line_hooks(lines),
                    timeout_seconds=command.timeout_seconds,
                    use_cache=use_cache,
                ),
            )
        return _summarize(result, lines, output=command.output)

    def cache_stats(self, command: CacheStatsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        with _cache(settings) as cache:
            stats = asyncio.run(cache.stats())
        return [
            f"Cache entries: total={stats.total} expired={stats.expired} "
            f"db_path={settings.cache.db_path}",
        ]

    def cache_clear(self, command: CacheClearCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        with _cache(settings) as cache:
            if command.task_id:
                removed = asyncio.run(cache.clear(command.task_id))
                return [f"Removed {removed} cache entries for task {command.task_id}."]
            removed = asyncio.run(cache.clear_all())
        return [f"Removed {removed} cache entries."]


@contextmanager
def _cache(settings: Settings) -> Iterator[ResultCache]:
    store = SqlCacheStore(settings.cache.db_path)
    try:
        yield ResultCache(
            store,
            ttl_seconds=settings.cache.ttl_seconds,
            max_entries=settings.cache.max_entries,
        )
    finally:
        store.close()


@contextmanager
def _runner(settings: Settings, *, use_cache: bool) -> Iterator[TaskRunner]:
    registry = register_default_tasks(TaskRegistry(), settings)
    if not use_cache:
        yield TaskRunner(registry)
        return
    with _cache(settings) as cache:
        yield TaskRunner(registry, cache, single_flight=settings.cache.single_flight)


async def _pick_files(settings: Settings) -> list[FileInput]:
    async with DocumentExtractionService(
        settings.extraction,
        file_picker=PromptFilePicker(),
    ) as service:
        return await service.select_files()


async def _run_with_timeout(
    runner: TaskRunner,
    inputs: dict[str, object],
    *,
    hooks: RunHooks,
    timeout_seconds: int | None,
    use_cache: bool,
) -> TaskResult:
    handle = runner.start_agent(RESEARCH_TASK_ID, inputs, hooks, use_cache=use_cache)
    if timeout_seconds is None:
        return await handle.result
    try:
        return await asyncio.wait_for(asyncio.shield(handle.result), timeout=timeout_seconds)
    except TimeoutError:
        handle.cancel()
        return await handle.result


def _line_hooks(lines: list[str]) -> RunHooks:
    def on_state_change(state: TaskState) -> None:
        lines.append(f"state={state.value}")

    def on_step_complete(step_id: str, _output: object) -> None:
        lines.append(f"step={step_id} status=ok")

    def on_error(error: ErrorDetail) -> None:
        lines.append(f"step={error.step_id or '-'} status=failed code={error.code or '-'}")

    return RunHooks(
        on_state_change=on_state_change,
        on_step_complete=on_step_complete,
        on_error=on_error,
    )


def _summarize(result: TaskResult, lines: list[str], *, output: Path | None) -> CommandResult:
    meta = result.metadata
    lines.append(
        f"Run finished: task={RESEARCH_TASK_ID} success={'yes' if result.success else 'no'} "
        f"cache_hit={'yes' if meta.cache_hit else 'no'} duration_ms={meta.duration_ms} "
        f"steps={meta.steps_completed}/{meta.steps_total}",
    )
    if not result.success:
        for error in result.errors:
            lines.append(
                f"  error kind={error.kind.value} code={error.code or '-'} "
                f"source={error.source or '-'} message={error.message}",
            )
        first = result.first_error
        return CommandResult(
            lines=lines,
            success=False,
            error=first.message if first else "Research synthesis failed.",
        )

    data = result.data
    overview = data["overview"]
    lines.append(
        f"Documents analyzed: {overview['total_documents']}/{overview['requested_documents']} "
        f"gaps={len(data['gaps'])} questions={len(data['suggested_questions'])}",
    )
    for failure in data["failures"]:
        lines.append(f"  skipped source={failure['source']} code={failure['code']}")
    if output is not None:
        output.write_text(data["report"], encoding="utf-8")
        lines.append(f"Report written to {output}")
    else:
        lines += ["", *data["report"].splitlines()]
    return CommandResult(lines=lines, success=True)
