"""CLI command for site snapshot statistics."""

from pathlib import Path
from typing import Any

import click
import structlog

from kbsite.cli.utils import load_cli_config, open_knowledge_base

logger = structlog.get_logger(__name__)


def _display_summary(stats: dict[str, Any]) -> None:
    """Display corpus and index totals."""
    click.echo("-" * 80)
    click.echo("Summary")
    click.echo("-" * 80)
    click.echo(f"  Articles: {stats['articles']:,}")
    click.echo(f"  Deprecated: {stats['deprecated']:,}")
    click.echo(f"  Cross-Reference Edges: {stats['edges']:,}")
    click.echo(f"  Unresolved References: {stats['unresolved_references']:,}")
    click.echo(f"  Indexed Articles: {stats['indexed_articles']:,}")
    click.echo(f"  Unique Tokens: {stats['unique_tokens']:,}")
    click.echo(f"  Total Postings: {stats['total_postings']:,}")
    click.echo()


def _display_breakdown(stats: dict[str, Any]) -> None:
    click.echo("-" * 80)
    click.echo("Articles by Difficulty")
    click.echo("-" * 80)
    for difficulty, count in stats["by_difficulty"].items():
        click.echo(f"  {difficulty}: {count:,}")
    click.echo()

    click.echo("-" * 80)
    click.echo("Most Referenced Articles")
    click.echo("-" * 80)
    if not stats["most_referenced"]:
        click.echo("  none")
    for i, (article_id, count) in enumerate(stats["most_referenced"], 1):
        click.echo(f"  {i:2}. {article_id}: {count:,} referrers")
    click.echo()


@click.command()
@click.option(
    "--site",
    "site_path",
    type=click.Path(file_okay=False, path_type=Path),
    help="Snapshot directory (default: from KB_SITE_PATH env var)",
)
@click.option("--top", type=click.IntRange(min=1), default=5, help="Most-referenced articles shown")
def stats(site_path: Path | None, top: int) -> None:
    """Display statistics for the published site snapshot.

    Shows article counts by difficulty, cross-reference totals and
    search index size.
    """
    config = load_cli_config()
    site_path = site_path or config.site_path

    click.echo("=" * 80)
    click.echo("KB Site - Snapshot Statistics")
    click.echo("=" * 80)
    click.echo()
    click.echo(f"Site Path: {site_path}")
    click.echo()

    kb = open_knowledge_base(site_path)
    snapshot_stats = kb.statistics(top=top)
    logger.info(
        "snapshot_stats_computed", site_path=str(site_path), articles=snapshot_stats["articles"]
    )
    _display_summary(snapshot_stats)
    _display_breakdown(snapshot_stats)


if __name__ == "__main__":
    stats()
