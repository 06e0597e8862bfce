"""Consistency validation of a built corpus.

The validator only reads: it inspects articles, the cross-reference graph
and the search index, and reports every violation it finds in one pass.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from kbsite.common.constants import (
    DEFAULT_MANDATORY_SECTIONS,
    RECOMMENDED_METADATA_FIELDS,
)
from kbsite.ingestion.article_parser import normalize_heading
from kbsite.ingestion.models import Article
from kbsite.repositories.graph_repository import CrossReferenceGraph
from kbsite.repositories.search_index_repository import SearchIndex
from kbsite.utils.exceptions import DanglingReferenceWarning, DuplicateArticleIdError

logger = structlog.get_logger(__name__)

Severity = Literal["error", "warning"]

# Rule names
DANGLING_REFERENCE = "dangling_reference"
DUPLICATE_ARTICLE_ID = "duplicate_article_id"
MISSING_SECTION = "missing_section"
MALFORMED_CITATION_URL = "malformed_citation_url"
MALFORMED_METADATA = "malformed_metadata"
SELF_REFERENCE = "self_reference"
DEPRECATED_REFERENCE = "deprecated_reference"
MISSING_METADATA_FIELD = "missing_metadata_field"
INVALID_DATE = "invalid_date"
INDEX_MISMATCH = "index_mismatch"

# Exception class each rule corresponds to, for reporting
RULE_KINDS: dict[str, type] = {
    DANGLING_REFERENCE: DanglingReferenceWarning,
    DUPLICATE_ARTICLE_ID: DuplicateArticleIdError,
}

_URL_ADAPTER: TypeAdapter[HttpUrl] = TypeAdapter(HttpUrl)


class Violation(BaseModel):
    """One validation finding."""

    model_config = ConfigDict(frozen=True)

    rule_name: str
    article_id: str | None
    detail: str
    severity: Severity

    @property
    def kind(self) -> str | None:
        """Name of the exception class the rule corresponds to, if any."""
        kind = RULE_KINDS.get(self.rule_name)
        return kind.__name__ if kind else None


@dataclass
class ValidationReport:
    """All violations found by one validation pass.

    Attributes:
        violations: Findings in rule order, then KB-ID order
    """

    violations: list[Violation] = field(default_factory=list)

    @property
    def errors(self) -> list[Violation]:
        return [v for v in self.violations if v.severity == "error"]

    @property
    def warnings(self) -> list[Violation]:
        return [v for v in self.violations if v.severity == "warning"]

    def has_errors(self) -> bool:
        return bool(self.errors)

    def exit_code(self) -> int:
        """Process exit code: 1 if any error-severity violation exists, else 0."""
        return 1 if self.has_errors() else 0

    def by_rule(self, rule_name: str) -> list[Violation]:
        return [v for v in self.violations if v.rule_name == rule_name]

    def extend(self, violations: list[Violation]) -> None:
        self.violations.extend(violations)

    def to_dict(self) -> dict[str, Any]:
        """Convert report to a JSON-serializable dictionary."""
        return {
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "violations": [v.model_dump() for v in self.violations],
        }


def is_well_formed_url(url: str) -> bool:
    """Check that a citation URL is an absolute http(s) URL with a host."""
    try:
        _URL_ADAPTER.validate_python(url)
    except PydanticValidationError:
        return False
    return True


def find_duplicate_ids(articles: list[Article]) -> dict[str, list[str]]:
    """Map each KB-ID declared more than once to the sources declaring it."""
    sources: dict[str, list[str]] = defaultdict(list)
    for article in articles:
        sources[article.article_id].append(article.source_path or "<unknown>")
    return {article_id: paths for article_id, paths in sorted(sources.items()) if len(paths) > 1}


class ConsistencyValidator:
    """Runs every consistency rule and collects all violations.

    Rules never short-circuit: a corpus with duplicate IDs still has its
    references, sections and citations checked.

    Attributes:
        mandatory_sections: Section names every article must have, in any casing
        strict_references: Report dangling references as errors instead of warnings
        strict_metadata: Report documents excluded at load as errors instead of warnings
    """

    def __init__(
        self,
        mandatory_sections: list[str] | None = None,
        strict_references: bool = False,
        strict_metadata: bool = False,
    ) -> None:
        self.mandatory_sections = (
            [normalize_heading(name) for name in mandatory_sections]
            if mandatory_sections is not None
            else list(DEFAULT_MANDATORY_SECTIONS)
        )
        self.strict_references = strict_references
        self.strict_metadata = strict_metadata

    def validate(
        self,
        articles: list[Article],
        graph: CrossReferenceGraph | None = None,
        index: SearchIndex | None = None,
        load_failures: list[tuple[str, str]] | None = None,
        external_ids: set[str] | None = None,
    ) -> ValidationReport:
        """Validate a corpus.

        Args:
            articles: Every loaded article, duplicates included
            graph: Cross-reference graph built over the articles
            index: Search index built over the articles
            load_failures: (source, error) pairs for documents excluded at load
            external_ids: KB-IDs known to exist outside this corpus

        Returns:
            ValidationReport listing every violation
        """
        report = ValidationReport()

        report.extend(self._check_load_failures(load_failures or []))
        report.extend(self._check_duplicates(articles))
        report.extend(self._check_references(articles, graph, external_ids or set()))
        report.extend(self._check_sections(articles))
        report.extend(self._check_citations(articles))
        report.extend(self._check_metadata(articles))
        if index is not None:
            report.extend(self._check_index(articles, index))

        logger.info(
            "validation_complete",
            articles=len(articles),
            errors=len(report.errors),
            warnings=len(report.warnings),
        )
        return report

    def _check_load_failures(self, load_failures: list[tuple[str, str]]) -> list[Violation]:
        return [
            Violation(
                rule_name=MALFORMED_METADATA,
                article_id=None,
                detail=f"{source}: {error}",
                severity="error" if self.strict_metadata else "warning",
            )
            for source, error in load_failures
        ]

    def _check_duplicates(self, articles: list[Article]) -> list[Violation]:
        return [
            Violation(
                rule_name=DUPLICATE_ARTICLE_ID,
                article_id=article_id,
                detail=f"{article_id} is declared by {len(paths)} documents: {', '.join(paths)}",
                severity="error",
            )
            for article_id, paths in find_duplicate_ids(articles).items()
        ]

    def _check_references(
        self,
        articles: list[Article],
        graph: CrossReferenceGraph | None,
        external_ids: set[str],
    ) -> list[Violation]:
        """Dangling, self and deprecated-target references."""
        violations: list[Violation] = []
        by_id = {article.article_id: article for article in articles}
        known_ids = set(by_id) | external_ids

        if graph is not None:
            dangling = [
                (r.source_id, r.target_id)
                for r in graph.unresolved
                if r.target_id not in known_ids
            ]
            self_refs = [(r.source_id, r.target_id) for r in graph.self_references]
        else:
            references = [(a.article_id, r.target_id) for a in articles for r in a.related]
            dangling = sorted({ref for ref in references if ref[1] not in known_ids})
            self_refs = sorted({ref for ref in references if ref[0] == ref[1]})

        seen: set[tuple[str, str]] = set()
        for source_id, target_id in dangling:
            if (source_id, target_id) in seen:
                continue
            seen.add((source_id, target_id))
            violations.append(
                Violation(
                    rule_name=DANGLING_REFERENCE,
                    article_id=source_id,
                    detail=f"{source_id} -> {target_id}: referenced article does not exist",
                    severity="error" if self.strict_references else "warning",
                )
            )

        for source_id, _target_id in dict.fromkeys(self_refs):
            violations.append(
                Violation(
                    rule_name=SELF_REFERENCE,
                    article_id=source_id,
                    detail=f"{source_id} lists itself under Related Articles",
                    severity="warning",
                )
            )

        for article in sorted(articles, key=lambda a: a.article_id):
            for target_id in dict.fromkeys(r.target_id for r in article.related):
                target = by_id.get(target_id)
                if target is not None and target_id != article.article_id and target.deprecated:
                    detail = f"{article.article_id} -> {target_id}: target is deprecated"
                    if target.superseded_by:
                        detail += f"; use {target.superseded_by} instead"
                    violations.append(
                        Violation(
                            rule_name=DEPRECATED_REFERENCE,
                            article_id=article.article_id,
                            detail=detail,
                            severity="warning",
                        )
                    )
        return violations

    def _check_sections(self, articles: list[Article]) -> list[Violation]:
        violations = []
        for article in sorted(articles, key=lambda a: a.article_id):
            present = set(article.section_names)
            for name in self.mandatory_sections:
                if name not in present:
                    violations.append(
                        Violation(
                            rule_name=MISSING_SECTION,
                            article_id=article.article_id,
                            detail=f"Missing mandatory section: {name}",
                            severity="error",
                        )
                    )
        return violations

    def _check_citations(self, articles: list[Article]) -> list[Violation]:
        violations = []
        for article in sorted(articles, key=lambda a: a.article_id):
            for citation in article.sources:
                if not is_well_formed_url(citation.url):
                    violations.append(
                        Violation(
                            rule_name=MALFORMED_CITATION_URL,
                            article_id=article.article_id,
                            detail=f"Malformed source URL: {citation.url}",
                            severity="error",
                        )
                    )
        return violations

    def _check_metadata(self, articles: list[Article]) -> list[Violation]:
        """Recommended front matter fields and date format."""
        violations = []
        for article in sorted(articles, key=lambda a: a.article_id):
            values = {
                "difficulty": article.difficulty,
                "last_updated": article.last_updated,
                "estimated_time": article.estimated_time,
            }
            for field_name in RECOMMENDED_METADATA_FIELDS:
                if not values[field_name]:
                    detail = f"Missing or unrecognised front matter field: {field_name}"
                    if field_name == "difficulty" and article.raw_difficulty:
                        detail = f"Unrecognised difficulty: {article.raw_difficulty}"
                    violations.append(
                        Violation(
                            rule_name=MISSING_METADATA_FIELD,
                            article_id=article.article_id,
                            detail=detail,
                            severity="warning",
                        )
                    )
            if article.last_updated and article.last_updated_date is None:
                violations.append(
                    Violation(
                        rule_name=INVALID_DATE,
                        article_id=article.article_id,
                        detail=f"Unrecognised Last Updated date: {article.last_updated}",
                        severity="warning",
                    )
                )
        return violations

    def _check_index(self, articles: list[Article], index: SearchIndex) -> list[Violation]:
        """Every article indexed at its current hash, nothing else indexed."""
        violations = []
        expected = {article.article_id: article.content_hash for article in articles}
        for article_id in sorted(expected):
            indexed_hash = index.doc_hashes.get(article_id)
            if indexed_hash is None:
                detail = "Article is not in the search index"
            elif indexed_hash != expected[article_id]:
                detail = "Search index holds a stale version of the article"
            else:
                continue
            violations.append(
                Violation(
                    rule_name=INDEX_MISMATCH, article_id=article_id, detail=detail, severity="error"
                )
            )
        for article_id in sorted(set(index.doc_hashes) - set(expected)):
            violations.append(
                Violation(
                    rule_name=INDEX_MISMATCH,
                    article_id=article_id,
                    detail="Search index holds an article that is not in the corpus",
                    severity="error",
                )
            )
        return violations
