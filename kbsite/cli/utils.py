"""Shared utilities for CLI commands."""

from pathlib import Path

import click
import structlog

from kbsite.ingestion.article_parser import normalize_kb_id
from kbsite.ingestion.validators import Violation
from kbsite.orchestration.knowledge_base import KnowledgeBase
from kbsite.utils.config import Config
from kbsite.utils.exceptions import ConfigurationError, IndexCorruptionError
from kbsite.utils.logger import configure_logging

logger = structlog.get_logger(__name__)


def load_kb_ids(kb_ids_file: Path) -> set[str]:
    """Load KB-IDs from a text file (one per line, "#" comments allowed).

    Args:
        kb_ids_file: Path to file containing KB-IDs

    Returns:
        Set of canonical KB-ID strings

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file is empty or a line is not a KB-ID
    """
    if not kb_ids_file.exists():
        raise FileNotFoundError(f"KB-ID file not found: {kb_ids_file}")

    kb_ids = set()
    with kb_ids_file.open("r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            stripped_line = line.strip()
            if not stripped_line or stripped_line.startswith("#"):
                continue
            kb_id = normalize_kb_id(stripped_line)
            if kb_id is None:
                raise ValueError(f"Line {line_number} is not a KB-ID: {stripped_line!r}")
            kb_ids.add(kb_id)

    if not kb_ids:
        raise ValueError(f"No KB-IDs found in file: {kb_ids_file}")

    return kb_ids


def load_cli_config() -> Config:
    """Load configuration and configure logging, aborting on invalid settings."""
    try:
        config = Config()
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise click.Abort() from e
    configure_logging(config.log_level)
    return config


def resolve_archive_path(archive_path: Path | None, config: Config) -> Path:
    """Use the given archive directory, falling back to KB_ARCHIVE_PATH."""
    if archive_path is not None:
        return archive_path
    if not config.archive_path.is_dir():
        click.echo(
            f"Error: archive directory not found: {config.archive_path} "
            "(pass ARCHIVE_PATH or set KB_ARCHIVE_PATH)",
            err=True,
        )
        raise click.Abort()
    return config.archive_path


def echo_banner(title: str) -> None:
    click.echo("=" * 80)
    click.echo(f"KB Site - {title}")
    click.echo("=" * 80)
    click.echo()


def echo_violations(violations: list[Violation]) -> None:
    """Print violations grouped by severity, errors first."""
    for severity in ("error", "warning"):
        selected = [v for v in violations if v.severity == severity]
        if not selected:
            continue
        click.echo("-" * 80)
        click.echo(f"{severity.upper()}S ({len(selected)})")
        click.echo("-" * 80)
        for violation in selected:
            article = violation.article_id or "-"
            click.echo(f"  [{violation.rule_name}] {article}: {violation.detail}")
        click.echo()


def open_knowledge_base(site_path: Path, default_limit: int = 10) -> KnowledgeBase:
    """Load the published snapshot, aborting with a hint if there is none."""
    try:
        return KnowledgeBase.from_snapshot(site_path, default_limit=default_limit)
    except FileNotFoundError as e:
        click.echo(f"Error: no site snapshot at {site_path}. Run 'kb-build' first.", err=True)
        raise click.Abort() from e
    except (ValueError, IndexCorruptionError) as e:
        click.echo(f"Error: site snapshot at {site_path} is unreadable: {e}", err=True)
        logger.error("snapshot_load_failed", site_path=str(site_path), error=str(e))
        raise click.Abort() from e
