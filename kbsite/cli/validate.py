"""CLI command for validating an article archive without publishing it."""

import json
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

logger = structlog.get_logger(__name__)


@click.command()
@click.argument(
    "archive_path", required=False, type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option("--strict", is_flag=True, help="Treat dangling references as errors")
@click.option(
    "--strict-metadata", is_flag=True, help="Treat documents excluded at load as errors"
)
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.option("--pattern", type=str, help="Glob for article files (default: KB_FILE_PATTERN)")
@click.option(
    "--known-ids",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File of KB-IDs published elsewhere (one per line)",
)
def validate(
    archive_path: Path | None,
    strict: bool,
    strict_metadata: bool,
    as_json: bool,
    pattern: str | None,
    known_ids: Path | None,
) -> None:
    """Validate an article archive and print every violation.

    Nothing is written. The archive is checked on its own, without merging
    a previously published snapshot. Exits with status 1 when any
    error-severity violation is found.

    ARCHIVE_PATH: Directory holding the Markdown articles
    (default: from KB_ARCHIVE_PATH env var)

    Examples:

        \b
        kb-validate docs/kb --strict
        kb-validate docs/kb --json > report.json
    """
    config = load_cli_config()
    archive_path = resolve_archive_path(archive_path, config)

    external_ids: set[str] | None = None
    if known_ids is not None:
        try:
            external_ids = load_kb_ids(known_ids)
        except ValueError as e:
            click.echo(f"Invalid --known-ids file: {e}", err=True)
            logger.error("known_ids_load_failed", path=str(known_ids), error=str(e))
            raise click.Abort() from e

    pipeline = BuildPipeline(
        site_path=config.site_path,
        mandatory_sections=config.mandatory_sections,
        strict_references=strict or config.strict_references,
        strict_metadata=strict_metadata or config.strict_metadata,
        workers=config.workers,
        pattern=pattern or config.file_pattern,
        show_progress=not as_json,
    )
    result = pipeline.run(archive_path, force=True, external_ids=external_ids, write=False)
    report = result.report

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        echo_banner("Validate")
        click.echo(f"  Archive: {archive_path}")
        click.echo()
        echo_violations(report.validation.violations)
        click.echo("=" * 80)
        if report.fatal_error:
            click.echo(f"Validation FAILED: {report.fatal_error}")
        elif report.validation.has_errors():
            click.echo("Validation FAILED")
        else:
            click.echo("Validation PASSED")
        click.echo("=" * 80)
        click.echo(f"  Articles:  {report.statistics.documents_loaded}")
        click.echo(f"  Errors:    {len(report.validation.errors)}")
        click.echo(f"  Warnings:  {len(report.validation.warnings)}")
        click.echo()

    exit_code = report.exit_code()
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    validate()
