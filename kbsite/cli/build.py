"""CLI command for building the site snapshot."""

import sys
from pathlib import Path

import click
import structlog

from kbsite.cli.utils import (
    echo_banner,
    echo_violations,
    load_cli_config,
    load_kb_ids,
    resolve_archive_path,
)
from kbsite.ingestion.pipeline import BuildPipeline
from kbsite.utils.exceptions import IngestionError

logger = structlog.get_logger(__name__)


@click.command()
@click.argument(
    "archive_path", required=False, type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option(
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    help="Snapshot directory (default: from KB_SITE_PATH env var)",
)
@click.option("--workers", type=click.IntRange(min=1), help="Parse processes (default: KB_WORKERS)")
@click.option("--pattern", type=str, help="Glob for article files (default: KB_FILE_PATTERN)")
@click.option("--strict", is_flag=True, help="Treat dangling references as errors")
@click.option(
    "--strict-metadata", is_flag=True, help="Treat documents excluded at load as errors"
)
@click.option("--force", is_flag=True, help="Ignore the previous snapshot and rebuild everything")
@click.option(
    "--known-ids",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File of KB-IDs published elsewhere (one per line)",
)
def build(
    archive_path: Path | None,
    output: Path | None,
    workers: int | None,
    pattern: str | None,
    strict: bool,
    strict_metadata: bool,
    force: bool,
    known_ids: Path | None,
) -> None:
    """Build the knowledge-base snapshot from an article directory.

    Parses every article, builds the cross-reference graph and search index,
    validates the corpus and writes the snapshot plus build-report.json.
    Exits with status 1 when the build aborts or any error-severity
    violation is found.

    ARCHIVE_PATH: Directory holding the Markdown articles
    (default: from KB_ARCHIVE_PATH env var)

    Examples:

        \b
        # Build into the default site directory
        kb-build docs/kb

        \b
        # Full rebuild with 4 parse processes
        kb-build docs/kb --output build/site --workers 4 --force
    """
    config = load_cli_config()
    archive_path = resolve_archive_path(archive_path, config)
    site_path = output or config.site_path

    echo_banner("Build")
    click.echo(f"  Archive: {archive_path}")
    click.echo(f"  Output:  {site_path}")
    click.echo()

    external_ids: set[str] | None = None
    if known_ids is not None:
        try:
            external_ids = load_kb_ids(known_ids)
        except ValueError as e:
            click.echo(f"  Invalid --known-ids file: {e}", err=True)
            raise click.Abort() from e

    pipeline = BuildPipeline(
        site_path=site_path,
        mandatory_sections=config.mandatory_sections,
        strict_references=strict or config.strict_references,
        strict_metadata=strict_metadata or config.strict_metadata,
        workers=workers or config.workers,
        pattern=pattern or config.file_pattern,
        show_progress=True,
    )

    try:
        result = pipeline.run(archive_path, force=force, external_ids=external_ids)
    except IngestionError as e:
        click.echo(f"  Build failed: {e}", err=True)
        logger.error("build_failed", error=str(e))
        raise click.Abort() from e

    report = result.report
    stats = report.statistics
    echo_violations(report.validation.violations)

    click.echo("=" * 80)
    if report.fatal_error:
        click.echo(f"Build ABORTED: {report.fatal_error}")
    elif report.published:
        click.echo("Build Complete - published")
    else:
        click.echo("Build Complete - NOT published (validation errors)")
    click.echo("=" * 80)
    click.echo(f"  Articles Loaded:   {stats.documents_loaded}")
    click.echo(f"  Documents Failed:  {stats.documents_failed}")
    click.echo(f"  Articles Indexed:  {stats.articles_indexed}")
    click.echo(f"  Unchanged:         {stats.articles_unchanged}")
    click.echo(f"  Edges:             {stats.edges}")
    click.echo(f"  Errors:            {len(report.validation.errors)}")
    click.echo(f"  Warnings:          {len(report.validation.warnings)}")
    click.echo()

    exit_code = report.exit_code()
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    build()
