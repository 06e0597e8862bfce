"""Parsing of raw knowledge-base articles into Article records.

Front matter is free text: bold key-value lines ("**Article ID:** KB-020"),
optionally several per line separated by "|". A leading YAML block is also
accepted. Everything after the first level-2 heading is split into canonical
sections, from which Related Articles references and Sources citations are
extracted.
"""

import re
from string import capwords
from typing import Any

import structlog
import yaml

from kbsite.common.constants import (
    CANONICAL_SECTIONS,
    DOC_SEPARATOR_PATTERN,
    KB_ID_PATTERN,
    METADATA_KEYS,
    RELATED_SECTION,
    SOURCES_SECTION,
)
from kbsite.ingestion.models import (
    Article,
    CrossReference,
    Difficulty,
    ParseOutcome,
    RawDocument,
    Section,
    SourceCitation,
)
from kbsite.utils.content_hash import compute_content_hash
from kbsite.utils.exceptions import MalformedMetadataError

logger = structlog.get_logger(__name__)

HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)(?:\s+#+)?\s*$")
FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")
BULLET_PATTERN = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(.*)$")
# "**Key:** value", "**Key**: value" or "Key: value"
KEY_VALUE_PATTERN = re.compile(
    r"^\s*(?:[-*+]\s+)?(\*\*|__)?\s*([A-Za-z][A-Za-z \-]{0,40}?)\s*(?:\*\*|__)?\s*:\s*"
    r"(?:\*\*|__)?\s*(.*?)\s*(?:\*\*|__)?\s*$"
)
# URL parts allow one level of balanced parentheses, e.g. animation(_:value:)
MARKDOWN_LINK_PATTERN = re.compile(
    r"\[([^\]]*)\]\(((?:[^()\s]|\([^()\s]*\))+)(?:\s+\"[^\"]*\")?\)"
)
SCHEME_URL_PATTERN = re.compile(
    r"[A-Za-z][A-Za-z0-9+.\-]*:/{1,2}(?:[^\s<>()\]]|\([^\s()<>]*\))*"
)
BARE_URL_PATTERN = re.compile(r"\bwww\.(?:[^\s<>()\]]|\([^\s()<>]*\))+")
ACCESSED_PATTERN = re.compile(r"\(?\baccessed\b\s*:?\s*([^)\n]+?)\s*\)?\s*$", re.IGNORECASE)
HORIZONTAL_RULE_PATTERN = re.compile(r"^\s*([-*_])(?:\s*\1){2,}\s*$")
NUMBERING_PATTERN = re.compile(r"^\d+[.)]\s+")
EMPHASIS_CHARS = "*_`"


def split_bundle(text: str, source: str) -> list[RawDocument]:
    """Split a raw blob on the bundle sentinel.

    A blob without the sentinel yields a single document named after the
    source. Bundled articles are named "<source>#<n>" (1-based). Empty
    fragments are dropped.

    Args:
        text: Raw file contents
        source: File path or other origin label

    Returns:
        RawDocument per non-empty fragment, in order
    """
    fragments = DOC_SEPARATOR_PATTERN.split(text)
    if len(fragments) == 1:
        return [RawDocument(text=text, source=source)] if text.strip() else []

    documents = []
    for position, fragment in enumerate(fragments, start=1):
        if fragment.strip():
            documents.append(RawDocument(text=fragment, source=f"{source}#{position}"))
    return documents


def normalize_heading(text: str) -> str:
    """Normalize a heading to canonical casing.

    Known section names map to their canonical form ("OVERVIEW" and
    "overview" both become "Overview"); other all-caps headings are
    capitalized word by word; anything else keeps its author casing.
    """
    cleaned = text.strip().strip(EMPHASIS_CHARS).strip().rstrip(":").strip()
    lookup = NUMBERING_PATTERN.sub("", cleaned).lower()
    if lookup in CANONICAL_SECTIONS:
        return CANONICAL_SECTIONS[lookup]
    if cleaned.isupper():
        return capwords(cleaned.lower())
    return cleaned


def normalize_kb_id(value: str) -> str | None:
    """Extract the first KB-ID from text in canonical "KB-<digits>" form."""
    match = KB_ID_PATTERN.search(value)
    if match is None:
        return None
    return f"KB-{match.group(1)}"


def _strip_markup(text: str) -> str:
    return re.sub(r"[*_`]+", "", text).strip()


class ArticleParser:
    """Parses one raw article into an Article record.

    Parsing is pure: the same text always yields an equal Article.

    Example:
        >>> parser = ArticleParser()
        >>> article = parser.parse(raw_text, source="kb/KB-020.md")
        >>> article.article_id
        'KB-020'
    """

    def parse(self, text: str, source: str | None = None) -> Article:
        """Parse raw article text.

        Args:
            text: Raw article text (front matter and body)
            source: Origin label used in errors and logs

        Returns:
            Parsed Article

        Raises:
            MalformedMetadataError: If the Article ID is missing or not a KB-ID
        """
        normalized = text.replace("\r\n", "\n").replace("\r", "\n")
        lines = normalized.split("\n")

        yaml_fields, lines = self._split_yaml_front_matter(lines, source)
        preamble, body_lines = self._split_preamble(lines)

        fields, title_heading = self._scan_front_matter(preamble)
        fields = {**fields, **yaml_fields}

        raw_id = fields.pop("article_id", None)
        if not raw_id:
            raise MalformedMetadataError("Missing Article ID in front matter", source=source)
        article_id = normalize_kb_id(raw_id)
        if article_id is None:
            raise MalformedMetadataError(
                f"Article ID is not a KB-ID: {raw_id!r}", source=source
            )

        sections = self._parse_sections(body_lines)
        title = title_heading or fields.pop("title", None) or article_id
        fields.pop("title", None)

        raw_difficulty = fields.pop("difficulty", None)
        superseded_raw = fields.pop("superseded_by", None)

        article = Article(
            article_id=article_id,
            title=title,
            difficulty=Difficulty.parse(raw_difficulty),
            raw_difficulty=raw_difficulty,
            last_updated=fields.pop("last_updated", None),
            estimated_time=fields.pop("estimated_time", None),
            status=fields.pop("status", None),
            superseded_by=normalize_kb_id(superseded_raw) if superseded_raw else None,
            sections=sections,
            content_hash=compute_content_hash(text),
            source_path=source,
            extra_metadata=fields,
        )
        article.related = self._extract_related(article_id, article.section(RELATED_SECTION))
        article.sources = self._extract_sources(article.section(SOURCES_SECTION))

        logger.debug(
            "article_parsed",
            article_id=article_id,
            source=source,
            sections=len(sections),
            related=len(article.related),
            sources=len(article.sources),
        )
        return article

    def _split_yaml_front_matter(
        self, lines: list[str], source: str | None
    ) -> tuple[dict[str, str], list[str]]:
        """Consume a leading YAML front matter block if present.

        A block that is not valid YAML or not a mapping is left in place and
        handed to the tolerant key-value scan instead.

        Returns:
            Tuple of (mapped fields, remaining lines)
        """
        if not lines or lines[0].strip() != "---":
            return {}, lines

        closing_index = None
        for i in range(1, len(lines)):
            if lines[i].strip() == "---":
                closing_index = i
                break
        if closing_index is None:
            return {}, lines

        try:
            data: Any = yaml.safe_load("\n".join(lines[1:closing_index]))
        except yaml.YAMLError as e:
            logger.debug("yaml_front_matter_unparseable", source=source, error=str(e))
            return {}, lines

        if not isinstance(data, dict):
            return {}, lines

        fields: dict[str, str] = {}
        for key, value in data.items():
            if value is None:
                continue
            name = str(key).strip().lower().replace("_", " ")
            fields[METADATA_KEYS.get(name, name)] = str(value).strip()
        return fields, lines[closing_index + 1 :]

    def _split_preamble(self, lines: list[str]) -> tuple[list[str], list[str]]:
        """Split lines at the first level-2 heading outside code fences."""
        in_fence = False
        for i, line in enumerate(lines):
            if FENCE_PATTERN.match(line):
                in_fence = not in_fence
                continue
            if not in_fence and line.startswith("## "):
                return lines[:i], lines[i:]
        return lines, []

    def _scan_front_matter(self, preamble: list[str]) -> tuple[dict[str, str], str | None]:
        """Tolerant key-value scan of the preamble.

        Lines may hold several "|"-separated fields. Known keys are mapped to
        record attributes; unknown keys are kept only when written in bold so
        that prose such as "Note: ..." is not mistaken for metadata.

        Returns:
            Tuple of (fields, first "# " heading text or None)
        """
        fields: dict[str, str] = {}
        title: str | None = None

        for line in preamble:
            stripped = line.strip()
            if not stripped or HORIZONTAL_RULE_PATTERN.match(stripped):
                continue

            heading = HEADING_PATTERN.match(stripped)
            if heading:
                if title is None and len(heading.group(1)) == 1:
                    title = _strip_markup(heading.group(2))
                continue

            for part in stripped.split("|"):
                match = KEY_VALUE_PATTERN.match(part)
                if match is None:
                    continue
                bold, key, value = match.group(1), match.group(2), match.group(3)
                key = key.strip().lower()
                value = value.strip().strip(EMPHASIS_CHARS).strip()
                if not value:
                    continue
                if key in METADATA_KEYS:
                    fields.setdefault(METADATA_KEYS[key], value)
                elif bold:
                    fields.setdefault(key, value)

        return fields, title

    def _parse_sections(self, body_lines: list[str]) -> list[Section]:
        """Split body lines into level-2 sections with canonical names.

        Nested headings become subheadings of the enclosing section. A section
        name that appears twice is merged into its first occurrence.
        """
        sections: list[Section] = []
        by_name: dict[str, Section] = {}
        current: Section | None = None
        current_lines: list[str] = []
        in_fence = False

        def flush() -> None:
            if current is None:
                return
            body = "\n".join(current_lines).strip()
            if current.body and body:
                current.body = f"{current.body}\n\n{body}"
            elif body:
                current.body = body

        for line in body_lines:
            if FENCE_PATTERN.match(line):
                in_fence = not in_fence
                current_lines.append(line)
                continue

            heading = None if in_fence else HEADING_PATTERN.match(line)
            if heading and len(heading.group(1)) == 2:
                flush()
                name = normalize_heading(heading.group(2))
                if name in by_name:
                    current = by_name[name]
                else:
                    current = Section(name=name, body="")
                    by_name[name] = current
                    sections.append(current)
                current_lines = []
            elif heading and len(heading.group(1)) > 2 and current is not None:
                current.subheadings.append(normalize_heading(heading.group(2)))
            else:
                current_lines.append(line)

        flush()
        return sections

    def _extract_related(self, article_id: str, section: Section | None) -> list[CrossReference]:
        """Extract one CrossReference per Related Articles bullet naming a KB-ID."""
        if section is None:
            return []

        references: list[CrossReference] = []
        for line in section.body.split("\n"):
            bullet = BULLET_PATTERN.match(line)
            if bullet is None:
                continue
            text = bullet.group(1)
            match = KB_ID_PATTERN.search(text)
            if match is None:
                continue
            target_id = f"KB-{match.group(1)}"
            label = _strip_markup(text[: match.start()] + text[match.end() :])
            label = MARKDOWN_LINK_PATTERN.sub(lambda m: m.group(1), label)
            label = label.strip(" []():-–—").strip()
            references.append(
                CrossReference(source_id=article_id, target_id=target_id, label=label)
            )
        return references

    def _extract_sources(self, section: Section | None) -> list[SourceCitation]:
        """Extract one SourceCitation per Sources bullet containing a URL-like token."""
        if section is None:
            return []

        citations: list[SourceCitation] = []
        for line in section.body.split("\n"):
            bullet = BULLET_PATTERN.match(line)
            if bullet is None:
                continue
            text = bullet.group(1).strip()

            label: str | None = None
            link = MARKDOWN_LINK_PATTERN.search(text)
            if link:
                url = link.group(2)
                label = _strip_markup(link.group(1)) or None
                remainder = text[link.end() :]
            else:
                match = SCHEME_URL_PATTERN.search(text) or BARE_URL_PATTERN.search(text)
                if match is None:
                    continue
                url = match.group(0)
                prefix = _strip_markup(text[: match.start()]).strip(" -:–—")
                label = prefix or None
                remainder = text[match.end() :]

            url = url.rstrip(".,;:")
            accessed_match = ACCESSED_PATTERN.search(remainder)
            accessed = accessed_match.group(1).strip() if accessed_match else None
            citations.append(SourceCitation(url=url, accessed=accessed, label=label))
        return citations


def parse_document(document: RawDocument) -> ParseOutcome:
    """Parse one raw document, capturing metadata failures in the outcome.

    Top-level function so it can be sent to worker processes.

    Args:
        document: Raw document to parse

    Returns:
        ParseOutcome with either the article or the error message
    """
    try:
        article = ArticleParser().parse(document.text, source=document.source)
    except (MalformedMetadataError, ValueError) as e:
        return ParseOutcome(source=document.source, error=str(e))
    return ParseOutcome(source=document.source, article=article)
