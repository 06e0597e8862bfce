"""CLI command for full-text search over a built site."""

import time
from pathlib import Path

import click
import structlog

from kbsite.cli.utils import load_cli_config, open_knowledge_base
from kbsite.orchestration.knowledge_base import SearchHit

logger = structlog.get_logger(__name__)


def _display_results(query_text: str, hits: list[SearchHit], latency_ms: float) -> None:
    """Display ranked hits.

    Args:
        query_text: The original query text
        hits: Ranked search hits
        latency_ms: Search latency in milliseconds
    """
    click.echo("=" * 80)
    click.echo("SEARCH RESULTS")
    click.echo("=" * 80)
    click.echo(f"Query: {query_text}")
    click.echo(f"Results: {len(hits)} articles")
    click.echo(f"Latency: {latency_ms:.2f}ms")
    click.echo("=" * 80)
    click.echo()

    if not hits:
        click.echo("No results found.")
        return

    for i, hit in enumerate(hits, start=1):
        click.echo(f"[{i}] {hit.id}  Score: {hit.score:.6f}")
        click.echo(f"    Title: {hit.title}")
        click.echo(f"    Snippet: {hit.snippet}")
        click.echo()


@click.command()
@click.argument("query_text")
@click.option(
    "--site",
    "site_path",
    type=click.Path(file_okay=False, path_type=Path),
    help="Snapshot directory (default: from KB_SITE_PATH env var)",
)
@click.option("--limit", type=click.IntRange(min=1), help="Maximum hits (default: KB_SEARCH_LIMIT)")
def search(query_text: str, site_path: Path | None, limit: int | None) -> None:
    """Search the published knowledge base.

    Title matches rank above heading matches, which rank above body
    matches. Wrap words in double quotes to search for a phrase.

    QUERY_TEXT: Words or "quoted phrases" to look for

    Examples:

        \b
        kb-search "swiftui previews"
        kb-search '"code signing" certificate' --limit 3
    """
    config = load_cli_config()
    kb = open_knowledge_base(site_path or config.site_path, default_limit=config.search_limit)

    start = time.perf_counter()
    try:
        hits = kb.search(query_text, limit=limit)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort() from e
    latency_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "search_completed", query=query_text, hits=len(hits), latency_ms=round(latency_ms, 2)
    )

    _display_results(query_text, hits, latency_ms)


if __name__ == "__main__":
    search()
