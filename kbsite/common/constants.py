"""Constants for article parsing, indexing and validation."""

import re

# Articles bundled into one blob are separated by this sentinel
DOC_SEPARATOR_PATTERN = re.compile(r"<\|RELATED_DOC_SEP-[^|>]*\|>")

# KB identifiers (e.g. KB-020)
KB_ID_PATTERN = re.compile(r"\bKB-(\d+)\b", re.IGNORECASE)

# Front matter keys (lowercased, trailing colon stripped) -> record attribute
METADATA_KEYS = {
    "article id": "article_id",
    "article": "article_id",
    "id": "article_id",
    "kb id": "article_id",
    "kb-id": "article_id",
    "title": "title",
    "difficulty": "difficulty",
    "difficulty level": "difficulty",
    "level": "difficulty",
    "last updated": "last_updated",
    "updated": "last_updated",
    "estimated time": "estimated_time",
    "time": "estimated_time",
    "reading time": "estimated_time",
    "status": "status",
    "superseded by": "superseded_by",
}

# Front matter fields every article should carry (article_id is mandatory and enforced on load)
RECOMMENDED_METADATA_FIELDS = ["difficulty", "last_updated", "estimated_time"]

# Canonical section headings, keyed by lowercased heading text
CANONICAL_SECTIONS = {
    "overview": "Overview",
    "introduction": "Overview",
    "prerequisites": "Prerequisites",
    "requirements": "Prerequisites",
    "steps": "Steps",
    "step-by-step instructions": "Steps",
    "step by step": "Steps",
    "instructions": "Steps",
    "troubleshooting": "Troubleshooting",
    "common issues": "Troubleshooting",
    "tips": "Tips",
    "tips and best practices": "Tips",
    "best practices": "Tips",
    "related articles": "Related Articles",
    "related": "Related Articles",
    "see also": "Related Articles",
    "sources": "Sources",
    "references": "Sources",
    "citations": "Sources",
}

RELATED_SECTION = "Related Articles"
SOURCES_SECTION = "Sources"

DEFAULT_MANDATORY_SECTIONS = ["Overview", "Steps", RELATED_SECTION, SOURCES_SECTION]

# Search field weights; the field tier decides ranking before term frequency
TITLE_FIELD = "title"
HEADING_FIELD = "heading"
BODY_FIELD = "body"
FIELD_WEIGHTS = {
    TITLE_FIELD: 10.0,
    HEADING_FIELD: 3.0,
    BODY_FIELD: 1.0,
}
TITLE_SECTION = "Title"

# Section multipliers applied on top of field weights for body text
SECTION_WEIGHTS = {
    "Overview": 1.5,
    "Steps": 1.2,
    "Troubleshooting": 1.2,
    "Tips": 1.0,
    "Prerequisites": 0.8,
    RELATED_SECTION: 0.5,
    SOURCES_SECTION: 0.3,
}

STOPWORDS = frozenset(
    [
        "a",
        "about",
        "after",
        "all",
        "also",
        "an",
        "and",
        "any",
        "are",
        "as",
        "at",
        "be",
        "been",
        "before",
        "but",
        "by",
        "can",
        "do",
        "does",
        "each",
        "for",
        "from",
        "has",
        "have",
        "how",
        "if",
        "in",
        "into",
        "is",
        "it",
        "its",
        "may",
        "more",
        "not",
        "of",
        "on",
        "or",
        "other",
        "so",
        "such",
        "than",
        "that",
        "the",
        "their",
        "them",
        "then",
        "there",
        "these",
        "they",
        "this",
        "to",
        "use",
        "using",
        "was",
        "were",
        "what",
        "when",
        "which",
        "while",
        "will",
        "with",
        "you",
        "your",
    ]
)

# Citation URLs must use one of these schemes
ALLOWED_URL_SCHEMES = ("http", "https")

# Accepted "Last Updated" formats
DATE_FORMATS = ["%Y-%m-%d", "%B %d, %Y", "%b %d, %Y", "%d %B %Y"]

# Snapshot file names written by the build pipeline
ARTICLES_FILE = "articles.json"
GRAPH_FILE = "graph.json"
SEARCH_INDEX_FILE = "search_index.json"
REPORT_FILE = "build-report.json"
