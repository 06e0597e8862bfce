"""Repository for the published article store."""

import json
from pathlib import Path

import structlog

from kbsite.ingestion.models import Article

logger = structlog.get_logger(__name__)


class ArticleRepository:
    """Persists parsed articles as a JSON list sorted by KB-ID."""

    def __init__(self, articles_path: Path) -> None:
        self.articles_path = articles_path

    def save(self, articles: list[Article]) -> None:
        """Write articles to disk.

        Raises:
            OSError: If file write fails
        """
        self.articles_path.parent.mkdir(parents=True, exist_ok=True)
        data = [article.to_dict() for article in sorted(articles, key=lambda a: a.article_id)]
        payload = json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False)
        self.articles_path.write_text(payload + "\n", encoding="utf-8")
        logger.info("articles_saved", filepath=str(self.articles_path), article_count=len(data))

    def load(self) -> dict[str, Article]:
        """Load articles keyed by KB-ID.

        Raises:
            FileNotFoundError: If the articles file doesn't exist
            ValueError: If the file is not a valid article list
        """
        if not self.articles_path.exists():
            raise FileNotFoundError(f"Articles file not found: {self.articles_path}")

        try:
            data = json.loads(self.articles_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid articles file {self.articles_path}: {e}") from e

        if not isinstance(data, list):
            raise ValueError("Invalid articles data: expected a list")

        try:
            articles = [Article.from_dict(entry) for entry in data]
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid article entry: {e}") from e

        logger.info(
            "articles_loaded", filepath=str(self.articles_path), article_count=len(articles)
        )
        return {article.article_id: article for article in articles}
