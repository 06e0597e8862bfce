"""Data models for knowledge-base articles."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from kbsite.common.constants import DATE_FORMATS


class Difficulty(str, Enum):
    """Article difficulty level."""

    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"

    @classmethod
    def parse(cls, value: str | None) -> "Difficulty | None":
        """Parse free-text difficulty ("beginner", "Intermediate (30 min)").

        Args:
            value: Raw front matter value

        Returns:
            Matching Difficulty, or None if absent or unrecognised
        """
        if not value:
            return None
        words = value.strip().split()
        if not words:
            return None
        first = words[0].strip(".,;:()").lower()
        for member in cls:
            if member.value.lower() == first:
                return member
        return None


@dataclass
class Section:
    """A level-2 section of an article.

    Attributes:
        name: Canonical section name (e.g., "Overview", "Related Articles")
        body: Section text without its own heading line
        subheadings: Normalized text of nested (###, ####) headings in order
    """

    name: str
    body: str
    subheadings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CrossReference:
    """Directed reference from one article to another by KB-ID.

    Attributes:
        source_id: KB-ID of the referencing article
        target_id: KB-ID named in the Related Articles bullet
        label: Remaining bullet text (usually the target's title)
    """

    source_id: str
    target_id: str
    label: str = ""


@dataclass(frozen=True)
class SourceCitation:
    """External source cited by an article.

    Attributes:
        url: Cited URL as written
        accessed: Accessed-date text, if given
        label: Bullet text preceding the URL, if any
    """

    url: str
    accessed: str | None = None
    label: str | None = None


@dataclass
class Article:
    """A parsed knowledge-base article.

    Attributes:
        article_id: Unique KB-ID (e.g., "KB-020")
        title: Article title
        difficulty: Parsed difficulty, None if missing or unrecognised
        last_updated: "Last Updated" value as written
        estimated_time: "Estimated Time" value as written
        sections: Level-2 sections in document order
        related: Related Articles references in document order
        sources: Source citations in document order
        content_hash: sha256 of the article's raw text
        source_path: File (and bundle position) the article was read from
        status: Optional publication status ("Published", "Deprecated")
        superseded_by: KB-ID replacing a deprecated article
        extra_metadata: Front matter fields without a dedicated attribute
        raw_difficulty: Difficulty value as written
    """

    article_id: str
    title: str
    difficulty: Difficulty | None = None
    last_updated: str | None = None
    estimated_time: str | None = None
    sections: list[Section] = field(default_factory=list)
    related: list[CrossReference] = field(default_factory=list)
    sources: list[SourceCitation] = field(default_factory=list)
    content_hash: str = ""
    source_path: str | None = None
    status: str | None = None
    superseded_by: str | None = None
    extra_metadata: dict[str, str] = field(default_factory=dict)
    raw_difficulty: str | None = None

    def __post_init__(self) -> None:
        """Validate article data after initialization.

        Raises:
            ValueError: If article_id or title is empty
        """
        if not self.article_id or not self.article_id.strip():
            raise ValueError("Article ID cannot be empty")
        if not self.title or not self.title.strip():
            raise ValueError("Title cannot be empty")

    @property
    def deprecated(self) -> bool:
        return (self.status or "").strip().lower() in {"deprecated", "superseded"}

    @property
    def section_names(self) -> list[str]:
        return [section.name for section in self.sections]

    def section(self, name: str) -> Section | None:
        """Return the first section with the given canonical name."""
        for section in self.sections:
            if section.name == name:
                return section
        return None

    @property
    def last_updated_date(self) -> date | None:
        """Parse last_updated using the accepted date formats.

        Returns:
            Parsed date, or None if missing or in an unknown format
        """
        if not self.last_updated:
            return None
        value = self.last_updated.strip()
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(value, fmt).date()
            except ValueError:
                continue
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert article to a JSON-serializable dictionary."""
        return {
            "article_id": self.article_id,
            "title": self.title,
            "difficulty": self.difficulty.value if self.difficulty else None,
            "raw_difficulty": self.raw_difficulty,
            "last_updated": self.last_updated,
            "estimated_time": self.estimated_time,
            "status": self.status,
            "superseded_by": self.superseded_by,
            "content_hash": self.content_hash,
            "source_path": self.source_path,
            "extra_metadata": dict(self.extra_metadata),
            "sections": [
                {"name": s.name, "body": s.body, "subheadings": list(s.subheadings)}
                for s in self.sections
            ],
            "related": [{"target_id": r.target_id, "label": r.label} for r in self.related],
            "sources": [
                {"url": c.url, "accessed": c.accessed, "label": c.label} for c in self.sources
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Article":
        """Rebuild an article from to_dict() output.

        Raises:
            KeyError: If article_id or title is missing
            ValueError: If a value is invalid
        """
        article_id = data["article_id"]
        return cls(
            article_id=article_id,
            title=data["title"],
            difficulty=Difficulty(data["difficulty"]) if data.get("difficulty") else None,
            raw_difficulty=data.get("raw_difficulty"),
            last_updated=data.get("last_updated"),
            estimated_time=data.get("estimated_time"),
            status=data.get("status"),
            superseded_by=data.get("superseded_by"),
            content_hash=data.get("content_hash", ""),
            source_path=data.get("source_path"),
            extra_metadata=dict(data.get("extra_metadata", {})),
            sections=[
                Section(name=s["name"], body=s["body"], subheadings=list(s.get("subheadings", [])))
                for s in data.get("sections", [])
            ],
            related=[
                CrossReference(source_id=article_id, target_id=r["target_id"], label=r["label"])
                for r in data.get("related", [])
            ],
            sources=[
                SourceCitation(url=c["url"], accessed=c.get("accessed"), label=c.get("label"))
                for c in data.get("sources", [])
            ],
        )


@dataclass
class RawDocument:
    """One article's raw text after bundle splitting.

    Attributes:
        text: Raw article text
        source: File path, with "#<n>" appended for the n-th article of a bundle
    """

    text: str
    source: str


@dataclass
class ParseOutcome:
    """Result of parsing one raw document (returned across process boundaries).

    Attributes:
        source: Where the document came from
        article: Parsed article, None on failure
        error: Failure message, None on success
    """

    source: str
    article: Article | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.article is not None
