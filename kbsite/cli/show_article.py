"""CLI command for displaying one article with its cross-references."""

from pathlib import Path

import click
import structlog

from kbsite.cli.utils import load_cli_config, open_knowledge_base
from kbsite.orchestration.knowledge_base import ArticleView
from kbsite.utils.exceptions import ArticleNotFoundError

logger = structlog.get_logger(__name__)


def _display_basic_info(article: ArticleView) -> None:
    """Display front matter."""
    click.echo("-" * 80)
    click.echo("Basic Information")
    click.echo("-" * 80)
    click.echo(f"  Article ID: {article.id}")
    click.echo(f"  Title: {article.title}")
    click.echo(f"  Difficulty: {article.difficulty or 'N/A'}")
    click.echo(f"  Last Updated: {article.last_updated or 'N/A'}")
    click.echo(f"  Estimated Time: {article.estimated_time or 'N/A'}")
    if article.deprecated:
        replacement = f" (superseded by {article.superseded_by})" if article.superseded_by else ""
        click.echo(f"  DEPRECATED{replacement}")
    click.echo()


def _display_references(related: list[str], referrers: list[str]) -> None:
    click.echo("-" * 80)
    click.echo("Cross-References")
    click.echo("-" * 80)
    click.echo(f"  Related: {', '.join(related) if related else 'none'}")
    click.echo(f"  Referenced by: {', '.join(referrers) if referrers else 'none'}")
    click.echo()


def _display_sections(article: ArticleView, full: bool) -> None:
    click.echo("-" * 80)
    click.echo("Sections")
    click.echo("-" * 80)
    for section in article.sections:
        click.echo(f"## {section.name}")
        if full:
            click.echo(section.body)
        elif section.subheadings:
            for heading in section.subheadings:
                click.echo(f"  - {heading}")
        click.echo()


def _display_sources(article: ArticleView) -> None:
    if not article.sources:
        return
    click.echo("-" * 80)
    click.echo("Sources")
    click.echo("-" * 80)
    for citation in article.sources:
        label = f"{citation.label}: " if citation.label else ""
        accessed = f" (accessed {citation.accessed})" if citation.accessed else ""
        click.echo(f"  {label}{citation.url}{accessed}")
    click.echo()


@click.command()
@click.argument("article_id")
@click.option(
    "--site",
    "site_path",
    type=click.Path(file_okay=False, path_type=Path),
    help="Snapshot directory (default: from KB_SITE_PATH env var)",
)
@click.option("--full", is_flag=True, help="Print section bodies, not just headings")
def show_article(article_id: str, site_path: Path | None, full: bool) -> None:
    """Display a published article and its cross-references.

    ARTICLE_ID: The KB-ID to look up (e.g. KB-020)
    """
    config = load_cli_config()
    kb = open_knowledge_base(site_path or config.site_path)

    click.echo("=" * 80)
    click.echo("KB Site - Article Details")
    click.echo("=" * 80)
    click.echo()

    try:
        article = kb.get_article(article_id)
        related = kb.get_related(article_id)
        referrers = kb.get_referrers(article_id)
    except ArticleNotFoundError as e:
        logger.warning("article_not_found", article_id=e.article_id)
        click.echo(f"Error: Article '{e.article_id}' not found", err=True)
        raise click.Abort() from e

    _display_basic_info(article)
    _display_references(related, referrers)
    _display_sections(article, full)
    _display_sources(article)


if __name__ == "__main__":
    show_article()
