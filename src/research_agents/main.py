"""CLI entrypoint for research-agents."""

import logging
from pathlib import Path

import rich_click as click

from research_agents import __version__
from research_agents.controllers import (
    CacheClearCommand,
    CacheStatsCommand,
    ResearchCliController,
    ResearchRunCommand,
)

click.rich_click.USE_MARKDOWN = True
CONTROLLER = ResearchCliController()


@click.group()
@click.version_option(version=__version__, prog_name="research-agents")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def research_agents(verbose: bool) -> None:
    """Research task runner CLI."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@research_agents.group()
def tasks() -> None:
    """Task commands."""


@tasks.command("list")
def tasks_list() -> None:
    """List registered tasks."""

    _emit_lines(CONTROLLER.list_tasks())


@tasks.group("run")
def tasks_run() -> None:
    """Run a registered task."""


@tasks_run.command("research-synthesis")
@click.option("--url", "urls", multiple=True, help="Document URL. Can be repeated.")
@click.option(
    "--file",
    "files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Local PDF file. Can be repeated.",
)
@click.option("--pick", is_flag=True, default=False, help="Prompt for PDF paths interactively.")
@click.option("--question", required=True, help="Research question guiding the analysis.")
@click.option(
    "--methodologies/--no-methodologies",
    default=True,
    show_default=True,
    help="Run the optional methodology extraction step.",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    default=None,
    help="Write the markdown report to this file instead of stdout.",
)
@click.option(
    "--timeout-seconds",
    type=click.IntRange(min=1),
    default=None,
    help="Cancel the run after this many seconds.",
)
@click.option("--no-cache", is_flag=True, default=False, help="Bypass the result cache.")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="Cache DB path.")
def run_research_synthesis(  # noqa: PLR0913
    urls: tuple[str, ...],
    files: tuple[Path, ...],
    pick: bool,
    question: str,
    methodologies: bool,
    output: Path | None,
    timeout_seconds: int | None,
    no_cache: bool,
    db_path: Path | None,
) -> None:
    """Extract documents and report research gaps for a question."""

    try:
        result = CONTROLLER.run_research(
            ResearchRunCommand(
                question=question,
                urls=urls,
                files=files,
                pick=pick,
                include_methodologies=methodologies,
                output=output,
                timeout_seconds=timeout_seconds,
                use_cache=not no_cache,
                db_path=db_path,
            ),
        )
    except (ValueError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(result.error or "Research synthesis failed.")


@research_agents.group()
def cache() -> None:
    """Result cache commands."""


@cache.command("stats")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="Cache DB path.")
def cache_stats(db_path: Path | None) -> None:
    """Show cached result counts."""

    _emit_lines(CONTROLLER.cache_stats(CacheStatsCommand(db_path=db_path)))


@cache.command("clear")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="Cache DB path.")
@click.option("--task-id", default=None, help="Only clear entries of this task.")
def cache_clear(db_path: Path | None, task_id: str | None) -> None:
    """Delete cached results."""

    _emit_lines(CONTROLLER.cache_clear(CacheClearCommand(db_path=db_path, task_id=task_id)))


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    research_agents()
