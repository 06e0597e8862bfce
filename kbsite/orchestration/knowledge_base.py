"""Read-only query facade over a built knowledge base.

This is the only surface a presentation layer (site renderer, CLI, web view)
talks to. It returns immutable view models and never exposes the article
store, the cross-reference graph or the search index themselves.
"""

import re
from collections import Counter
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict

from kbsite.common.constants import ARTICLES_FILE, GRAPH_FILE, SEARCH_INDEX_FILE
from kbsite.ingestion.models import Article
from kbsite.ingestion.pipeline import BuildResult
from kbsite.repositories.article_repository import ArticleRepository
from kbsite.repositories.graph_repository import CrossReferenceGraph, GraphRepository
from kbsite.repositories.search_index_repository import SearchIndex, SearchIndexRepository
from kbsite.utils.exceptions import ArticleNotFoundError, IngestionError

logger = structlog.get_logger(__name__)

SNIPPET_RADIUS = 80
SNIPPET_FALLBACK_LENGTH = 160


class SectionView(BaseModel):
    """Section of an article as seen by callers."""

    model_config = ConfigDict(frozen=True)

    name: str
    body: str
    subheadings: tuple[str, ...] = ()


class CitationView(BaseModel):
    """Source citation as seen by callers."""

    model_config = ConfigDict(frozen=True)

    url: str
    accessed: str | None = None
    label: str | None = None


class ArticleView(BaseModel):
    """Article as seen by callers.

    related_ids holds only references that resolve to published articles.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    difficulty: str | None
    last_updated: str | None
    estimated_time: str | None
    deprecated: bool
    superseded_by: str | None
    sections: tuple[SectionView, ...]
    related_ids: tuple[str, ...]
    sources: tuple[CitationView, ...]


class SearchHit(BaseModel):
    """One ranked search result."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    score: float
    snippet: str


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


class KnowledgeBase:
    """Query facade: get_article, search and get_related.

    Example:
        >>> kb = KnowledgeBase.from_snapshot(Path("data/site"))
        >>> for hit in kb.search("swiftui previews"):
        ...     print(hit.id, hit.title, hit.score)
        >>> kb.get_related("KB-020")
        ['KB-021', 'KB-024']
    """

    def __init__(
        self,
        articles: dict[str, Article],
        graph: CrossReferenceGraph,
        index: SearchIndex,
        default_limit: int = 10,
    ) -> None:
        self._articles = dict(articles)
        self._graph = graph
        self._index = index
        self._default_limit = default_limit

    @classmethod
    def from_build(cls, result: BuildResult, default_limit: int = 10) -> "KnowledgeBase":
        """Wrap the output of a finished build.

        Raises:
            IngestionError: If the build aborted before producing a corpus
        """
        if result.graph is None or result.index is None:
            raise IngestionError(
                f"Build did not produce a knowledge base: {result.report.fatal_error}"
            )
        return cls(result.articles, result.graph, result.index, default_limit=default_limit)

    @classmethod
    def from_snapshot(cls, site_path: str | Path, default_limit: int = 10) -> "KnowledgeBase":
        """Load a published snapshot directory.

        Raises:
            FileNotFoundError: If a snapshot file is missing
            ValueError: If the article store or graph is invalid
            IndexCorruptionError: If the search index is invalid
        """
        site_path = Path(site_path)
        articles = ArticleRepository(site_path / ARTICLES_FILE).load()
        graph = GraphRepository(site_path / GRAPH_FILE).load()
        index = SearchIndexRepository(site_path / SEARCH_INDEX_FILE).load_index()
        logger.info("knowledge_base_loaded", site_path=str(site_path), articles=len(articles))
        return cls(articles, graph, index, default_limit=default_limit)

    def list_articles(self) -> list[str]:
        """All published KB-IDs, sorted."""
        return sorted(self._articles)

    def get_article(self, article_id: str) -> ArticleView:
        """Look up one article.

        Args:
            article_id: KB-ID such as "KB-020"

        Returns:
            Immutable ArticleView

        Raises:
            ArticleNotFoundError: If the article does not exist
        """
        article = self._require(article_id)
        return ArticleView(
            id=article.article_id,
            title=article.title,
            difficulty=article.difficulty.value if article.difficulty else None,
            last_updated=article.last_updated,
            estimated_time=article.estimated_time,
            deprecated=article.deprecated,
            superseded_by=article.superseded_by,
            sections=tuple(
                SectionView(name=s.name, body=s.body, subheadings=tuple(s.subheadings))
                for s in article.sections
            ),
            related_ids=tuple(self._graph.related(article.article_id)),
            sources=tuple(
                CitationView(url=c.url, accessed=c.accessed, label=c.label)
                for c in article.sources
            ),
        )

    def get_related(self, article_id: str) -> list[str]:
        """Resolved Related Articles of an article.

        Args:
            article_id: KB-ID of the article

        Returns:
            KB-IDs in Related Articles order (empty list if none)

        Raises:
            ArticleNotFoundError: If the article itself does not exist
        """
        self._require(article_id)
        return self._graph.related(article_id)

    def get_referrers(self, article_id: str) -> list[str]:
        """Articles listing this one under Related Articles.

        Raises:
            ArticleNotFoundError: If the article does not exist
        """
        self._require(article_id)
        return self._graph.referrers(article_id)

    def search(self, query: str, limit: int | None = None) -> list[SearchHit]:
        """Full-text search.

        Args:
            query: Search text; "double quotes" mark phrases
            limit: Maximum number of hits (defaults to the configured limit)

        Returns:
            Hits ordered best first; empty list if nothing matches

        Raises:
            ValueError: If the query is empty
        """
        ranked = self._index.search(
            query, limit=self._default_limit if limit is None else limit
        )
        hits = []
        for article_id, score in ranked:
            article = self._articles.get(article_id)
            if article is None:
                logger.warning("search_hit_without_article", article_id=article_id)
                continue
            tokens = self._index.matched_tokens(article_id, query)
            hits.append(
                SearchHit(
                    id=article_id,
                    title=article.title,
                    score=score,
                    snippet=self._snippet(article, tokens),
                )
            )
        logger.info("search_served", query_text=query[:100], results_count=len(hits))
        return hits

    def statistics(self, top: int = 5) -> dict[str, Any]:
        """Aggregate counts for reporting.

        Args:
            top: Number of most-referenced articles to include

        Returns:
            Dictionary of plain counts and (KB-ID, count) pairs
        """
        by_difficulty: Counter[str] = Counter(
            a.difficulty.value if a.difficulty else "Unspecified" for a in self._articles.values()
        )
        incoming = Counter(
            {article_id: len(self._graph.referrers(article_id)) for article_id in self._articles}
        )
        return {
            "articles": len(self._articles),
            "deprecated": sum(1 for a in self._articles.values() if a.deprecated),
            "by_difficulty": dict(sorted(by_difficulty.items())),
            "edges": self._graph.edge_count(),
            "unresolved_references": len(self._graph.unresolved),
            "most_referenced": [
                (article_id, count)
                for article_id, count in sorted(incoming.items(), key=lambda x: (-x[1], x[0]))[:top]
                if count > 0
            ],
            **self._index.get_index_stats(),
        }

    def _require(self, article_id: str) -> Article:
        article = self._articles.get(article_id.strip().upper())
        if article is None:
            raise ArticleNotFoundError(article_id)
        return article

    @staticmethod
    def _snippet(article: Article, tokens: list[str]) -> str:
        """Text around the first body occurrence of a matched token.

        Falls back to the start of the first section when the match is in the
        title or headings only.
        """
        for section in article.sections:
            body = _collapse(section.body)
            for token in tokens:
                match = re.search(rf"(?<![^\W_]){re.escape(token)}(?![^\W_])", body, re.IGNORECASE)
                if match is None:
                    continue
                start = max(0, match.start() - SNIPPET_RADIUS)
                end = min(len(body), match.end() + SNIPPET_RADIUS)
                prefix = "..." if start > 0 else ""
                suffix = "..." if end < len(body) else ""
                return f"{prefix}{body[start:end].strip()}{suffix}"

        for section in article.sections:
            body = _collapse(section.body)
            if body:
                if len(body) <= SNIPPET_FALLBACK_LENGTH:
                    return body
                return body[:SNIPPET_FALLBACK_LENGTH].rstrip() + "..."
        return article.title
