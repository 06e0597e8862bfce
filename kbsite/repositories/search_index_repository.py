"""Repository for the full-text inverted search index."""

import json
import re
import time
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NamedTuple

import structlog

from kbsite.common.constants import (
    BODY_FIELD,
    FIELD_WEIGHTS,
    HEADING_FIELD,
    SECTION_WEIGHTS,
    STOPWORDS,
    TITLE_FIELD,
    TITLE_SECTION,
)
from kbsite.ingestion.models import Article
from kbsite.utils.exceptions import IndexCorruptionError

logger = structlog.get_logger(__name__)

INDEX_FORMAT_VERSION = 1
TOKEN_PATTERN = re.compile(r"[^\W_]+", re.UNICODE)
PHRASE_PATTERN = re.compile(r'"([^"]+)"')


class Posting(NamedTuple):
    """One occurrence of a token.

    Attributes:
        article_id: KB-ID of the article
        section: Canonical section name ("Title" for the article title)
        field: "title", "heading" or "body"
        offset: Token position within the (section, field) stream
    """

    article_id: str
    section: str
    field: str
    offset: int


def tokenize(text: str) -> list[str]:
    """Lowercase, split on non-alphanumerics and drop stopwords.

    Args:
        text: Text to tokenize

    Returns:
        List of normalized tokens (empty list if text is empty)
    """
    if not text:
        return []
    return [token for token in TOKEN_PATTERN.findall(text.lower()) if token not in STOPWORDS]


@dataclass
class IndexFragment:
    """Index contribution of a single article.

    Fragments are write-once: built from one article, merged into the shared
    index, never mutated afterwards.

    Attributes:
        article_id: KB-ID of the article
        content_hash: Hash of the article text the fragment was built from
        postings: token -> sorted postings
    """

    article_id: str
    content_hash: str
    postings: dict[str, list[Posting]] = field(default_factory=dict)


def build_fragment(article: Article) -> IndexFragment:
    """Tokenize every field of an article into an index fragment.

    Pure function of the article, so rebuilding an unchanged article yields an
    identical fragment.

    Args:
        article: Parsed article

    Returns:
        IndexFragment with sorted postings
    """
    postings: dict[str, list[Posting]] = defaultdict(list)

    def add(section: str, field_name: str, text: str) -> None:
        for offset, token in enumerate(tokenize(text)):
            postings[token].append(Posting(article.article_id, section, field_name, offset))

    add(TITLE_SECTION, TITLE_FIELD, article.title)
    for section in article.sections:
        add(section.name, HEADING_FIELD, " ".join([section.name, *section.subheadings]))
        add(section.name, BODY_FIELD, section.body)

    return IndexFragment(
        article_id=article.article_id,
        content_hash=article.content_hash,
        postings={token: sorted(entries) for token, entries in sorted(postings.items())},
    )


def _posting_weight(posting: Posting) -> float:
    weight = FIELD_WEIGHTS[posting.field]
    if posting.field == BODY_FIELD:
        weight *= SECTION_WEIGHTS.get(posting.section, 1.0)
    return weight


class SearchIndex:
    """Positional inverted index over article titles, headings and bodies.

    Each article contributes one fragment. Merging is per document: adding or
    replacing one article's fragment never touches postings of another, so
    unrelated fragments can be merged in any order with the same result.

    Attributes:
        postings: token -> sorted list of Posting
        doc_hashes: article_id -> content hash of the indexed version
    """

    def __init__(self) -> None:
        self.postings: dict[str, list[Posting]] = {}
        self.doc_hashes: dict[str, str] = {}
        self._doc_tokens: dict[str, set[str]] = {}

    def __len__(self) -> int:
        return len(self.doc_hashes)

    def __contains__(self, article_id: object) -> bool:
        return article_id in self.doc_hashes

    def needs_update(self, article: Article) -> bool:
        """Whether the article is new or changed since it was indexed."""
        return self.doc_hashes.get(article.article_id) != article.content_hash

    def merge(self, fragment: IndexFragment) -> None:
        """Merge a fragment into the index.

        Merging a fragment whose hash is already indexed is a no-op. A changed
        fragment replaces the article's previous postings.

        Args:
            fragment: Fragment built by build_fragment()
        """
        current = self.doc_hashes.get(fragment.article_id)
        if current == fragment.content_hash:
            return
        if current is not None:
            self.remove(fragment.article_id)

        for token, entries in fragment.postings.items():
            existing = self.postings.get(token)
            if existing is None:
                self.postings[token] = list(entries)
            else:
                self.postings[token] = sorted(existing + entries)

        self.doc_hashes[fragment.article_id] = fragment.content_hash
        self._doc_tokens[fragment.article_id] = set(fragment.postings)

    def remove(self, article_id: str) -> None:
        """Remove all postings of an article (no-op if not indexed)."""
        tokens = self._doc_tokens.pop(article_id, set())
        for token in tokens:
            remaining = [p for p in self.postings.get(token, []) if p.article_id != article_id]
            if remaining:
                self.postings[token] = remaining
            else:
                self.postings.pop(token, None)
        self.doc_hashes.pop(article_id, None)

    def clear(self) -> None:
        self.postings = {}
        self.doc_hashes = {}
        self._doc_tokens = {}

    def index_articles(self, articles: list[Article], force: bool = False) -> list[str]:
        """Index new or changed articles, skipping unchanged ones.

        Args:
            articles: Articles to index
            force: Rebuild fragments even when the content hash is unchanged

        Returns:
            KB-IDs that were (re)indexed
        """
        start_time = time.time()
        updated: list[str] = []
        for article in articles:
            if force:
                self.remove(article.article_id)
            elif not self.needs_update(article):
                continue
            self.merge(build_fragment(article))
            updated.append(article.article_id)

        logger.info(
            "search_index_updated",
            articles_indexed=len(updated),
            articles_skipped=len(articles) - len(updated),
            unique_tokens=len(self.postings),
            build_time_ms=round((time.time() - start_time) * 1000, 2),
        )
        return updated

    def verify(self) -> None:
        """Check merge invariants.

        Raises:
            IndexCorruptionError: If postings are unsorted or duplicated, point
                at unindexed articles, or disagree with the per-article token sets
        """
        seen_tokens: dict[str, set[str]] = defaultdict(set)
        for token, entries in self.postings.items():
            if not entries:
                raise IndexCorruptionError(f"Empty posting list for token {token!r}")
            for previous, current in zip(entries, entries[1:], strict=False):
                if not previous < current:
                    raise IndexCorruptionError(
                        f"Postings for token {token!r} are not strictly sorted"
                    )
            for posting in entries:
                if posting.article_id not in self.doc_hashes:
                    raise IndexCorruptionError(
                        f"Token {token!r} references unindexed article {posting.article_id}"
                    )
                seen_tokens[posting.article_id].add(token)

        for article_id in self.doc_hashes:
            if seen_tokens.get(article_id, set()) != self._doc_tokens.get(article_id, set()):
                raise IndexCorruptionError(f"Token set mismatch for article {article_id}")

    def search(self, query: str, limit: int | None = None) -> list[tuple[str, float]]:
        """Rank articles for a token, a bag of tokens or a quoted phrase.

        Articles are ordered by the best field they match in (title, then
        heading, then body), then by section-weighted term frequency, then by
        KB-ID. A quoted phrase only matches consecutive tokens in one field.

        Args:
            query: Search text; "double quotes" mark phrases
            limit: Maximum number of results

        Returns:
            List of (article_id, score) tuples, best first

        Raises:
            ValueError: If the query is empty
        """
        if not query or not query.strip():
            raise ValueError("Query cannot be empty")

        phrases = [tokenize(p) for p in PHRASE_PATTERN.findall(query)]
        phrases = [p for p in phrases if p]
        terms = tokenize(PHRASE_PATTERN.sub(" ", query))

        scores: dict[str, float] = defaultdict(float)
        tiers: dict[str, float] = defaultdict(float)

        for term in terms:
            for posting in self.postings.get(term, []):
                self._score(posting, scores, tiers)

        for phrase in phrases:
            for posting in self._phrase_matches(phrase):
                self._score(posting, scores, tiers)

        ranked = sorted(scores, key=lambda doc: (-tiers[doc], -scores[doc], doc))
        if limit is not None:
            ranked = ranked[:limit]

        logger.debug(
            "search_completed",
            query_text=query[:100],
            terms=len(terms),
            phrases=len(phrases),
            results_count=len(ranked),
        )
        return [(article_id, round(scores[article_id], 6)) for article_id in ranked]

    @staticmethod
    def _score(posting: Posting, scores: dict[str, float], tiers: dict[str, float]) -> None:
        weight = _posting_weight(posting)
        scores[posting.article_id] += weight
        tiers[posting.article_id] = max(tiers[posting.article_id], FIELD_WEIGHTS[posting.field])

    def _phrase_matches(self, phrase: list[str]) -> list[Posting]:
        """Postings of the first token where the whole phrase follows consecutively."""
        if len(phrase) == 1:
            return list(self.postings.get(phrase[0], []))

        positions = [
            {(p.article_id, p.section, p.field, p.offset) for p in self.postings.get(token, [])}
            for token in phrase[1:]
        ]
        matches = []
        for posting in self.postings.get(phrase[0], []):
            key = (posting.article_id, posting.section, posting.field)
            if all((*key, posting.offset + i) in positions[i - 1] for i in range(1, len(phrase))):
                matches.append(posting)
        return matches

    def matched_tokens(self, article_id: str, query: str) -> list[str]:
        """Query tokens that occur in the given article."""
        tokens = tokenize(query.replace('"', " "))
        return [
            token
            for token in dict.fromkeys(tokens)
            if any(p.article_id == article_id for p in self.postings.get(token, []))
        ]

    def to_dict(self) -> dict[str, Any]:
        """Convert index to a JSON-serializable dictionary with stable ordering."""
        return {
            "version": INDEX_FORMAT_VERSION,
            "doc_hashes": dict(sorted(self.doc_hashes.items())),
            "postings": {
                token: [list(posting) for posting in self.postings[token]]
                for token in sorted(self.postings)
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SearchIndex":
        """Rebuild an index from to_dict() output and verify it.

        Raises:
            IndexCorruptionError: If the data is malformed or violates invariants
        """
        if not isinstance(data, dict) or data.get("version") != INDEX_FORMAT_VERSION:
            raise IndexCorruptionError("Unsupported or missing search index format version")

        index = cls()
        try:
            index.doc_hashes = {str(k): str(v) for k, v in data["doc_hashes"].items()}
            for token, entries in data["postings"].items():
                index.postings[token] = [Posting(*entry) for entry in entries]
                for entry in index.postings[token]:
                    index._doc_tokens.setdefault(entry.article_id, set()).add(token)
        except (KeyError, TypeError, AttributeError) as e:
            raise IndexCorruptionError(f"Malformed search index data: {e}") from e

        for article_id in index.doc_hashes:
            index._doc_tokens.setdefault(article_id, set())
        index.verify()
        return index

    def get_index_stats(self) -> dict[str, Any]:
        """Get statistics about the current index.

        Returns:
            Dictionary with indexed_articles, unique_tokens and total_postings
        """
        return {
            "indexed_articles": len(self.doc_hashes),
            "unique_tokens": len(self.postings),
            "total_postings": sum(len(entries) for entries in self.postings.values()),
        }


class SearchIndexRepository:
    """Persists the search index as JSON."""

    def __init__(self, index_path: Path) -> None:
        self.index_path = index_path

    def save_index(self, index: SearchIndex) -> None:
        """Save index to disk.

        Keys are sorted, so an unchanged index is written byte-identically.

        Raises:
            OSError: If file write fails
        """
        self.index_path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(index.to_dict(), sort_keys=True, separators=(",", ":"))
        self.index_path.write_text(payload + "\n", encoding="utf-8")
        logger.info(
            "search_index_saved",
            filepath=str(self.index_path),
            **index.get_index_stats(),
        )

    def load_index(self) -> SearchIndex:
        """Load index from disk.

        Raises:
            FileNotFoundError: If index file doesn't exist
            IndexCorruptionError: If the file is unreadable as an index
        """
        if not self.index_path.exists():
            raise FileNotFoundError(f"Index file not found: {self.index_path}")

        try:
            data = json.loads(self.index_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise IndexCorruptionError(f"Search index file is not valid JSON: {e}") from e

        index = SearchIndex.from_dict(data)
        logger.info("search_index_loaded", filepath=str(self.index_path), **index.get_index_stats())
        return index
