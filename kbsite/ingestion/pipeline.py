"""Build pipeline turning an article archive into a published site snapshot."""

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from kbsite.common.constants import ARTICLES_FILE, GRAPH_FILE, REPORT_FILE, SEARCH_INDEX_FILE
from kbsite.ingestion.markdown_loader import LoadFailure, MarkdownLoader
from kbsite.ingestion.models import Article
from kbsite.ingestion.validators import ConsistencyValidator, ValidationReport, find_duplicate_ids
from kbsite.repositories.article_repository import ArticleRepository
from kbsite.repositories.graph_repository import CrossReferenceGraph, GraphRepository
from kbsite.repositories.search_index_repository import SearchIndex, SearchIndexRepository
from kbsite.utils.exceptions import DuplicateArticleIdError, IndexCorruptionError, IngestionError

logger = structlog.get_logger(__name__)


@dataclass
class BuildStatistics:
    """Statistics for one build run.

    Attributes:
        documents_loaded: Articles parsed from the archive
        documents_failed: Documents excluded at load
        articles_carried_forward: Published articles kept from the previous snapshot
        articles_indexed: Articles (re)indexed in this run
        articles_unchanged: Articles whose index fragment was reused
        edges: Resolved cross-reference edges
        unresolved_references: References to unknown KB-IDs
        full_reindex: Whether the index was rebuilt from scratch after corruption
        start_time: Start time as unix timestamp
        end_time: End time as unix timestamp
    """

    documents_loaded: int = 0
    documents_failed: int = 0
    articles_carried_forward: int = 0
    articles_indexed: int = 0
    articles_unchanged: int = 0
    edges: int = 0
    unresolved_references: int = 0
    full_reindex: bool = False
    start_time: float = 0.0
    end_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert statistics to dictionary for JSON serialization."""
        return {
            "documents_loaded": self.documents_loaded,
            "documents_failed": self.documents_failed,
            "articles_carried_forward": self.articles_carried_forward,
            "articles_indexed": self.articles_indexed,
            "articles_unchanged": self.articles_unchanged,
            "edges": self.edges,
            "unresolved_references": self.unresolved_references,
            "full_reindex": self.full_reindex,
            "duration_ms": int((self.end_time - self.start_time) * 1000),
        }


@dataclass
class BuildReport:
    """Outcome of a build, produced even when the build aborts.

    Attributes:
        published: True when the batch built and validated without errors
        fatal_error: Name and message of a batch-fatal error, if one aborted the build
        validation: Violations from the consistency validator
        statistics: Run statistics
        load_failures: Documents excluded at load
    """

    published: bool
    validation: ValidationReport
    statistics: BuildStatistics
    fatal_error: str | None = None
    load_failures: list[LoadFailure] = field(default_factory=list)

    def exit_code(self) -> int:
        return 1 if self.fatal_error or self.validation.has_errors() else 0

    def to_dict(self) -> dict[str, Any]:
        """Convert report to dictionary for JSON serialization."""
        return {
            "published": self.published,
            "fatal_error": self.fatal_error,
            "statistics": self.statistics.to_dict(),
            "load_failures": [{"source": f.source, "error": f.error} for f in self.load_failures],
            **self.validation.to_dict(),
        }


@dataclass
class BuildResult:
    """Everything a build produced.

    Attributes:
        report: Build report
        articles: Corpus keyed by KB-ID (empty when the build aborted)
        graph: Cross-reference graph (None when the build aborted)
        index: Search index (None when the build aborted)
    """

    report: BuildReport
    articles: dict[str, Article] = field(default_factory=dict)
    graph: CrossReferenceGraph | None = None
    index: SearchIndex | None = None


class BuildPipeline:
    """Orchestrates a corpus build.

    Steps:
    1. Load and parse every document (parallel per document)
    2. Reject the batch if two documents share a KB-ID
    3. Merge with the previously published snapshot
    4. Build the cross-reference graph and resolve references
    5. Re-index changed articles only (content-hash gated); rebuild the whole
       index if the shared index fails its invariants
    6. Validate, write the snapshot and the build report

    A failed validation does not roll back the snapshot; it only leaves the
    batch unpublished.
    """

    def __init__(
        self,
        site_path: str | Path,
        mandatory_sections: list[str] | None = None,
        strict_references: bool = False,
        strict_metadata: bool = False,
        workers: int = 1,
        pattern: str = "*.md",
        show_progress: bool = False,
    ) -> None:
        """Initialize pipeline components.

        Args:
            site_path: Directory receiving the snapshot and build report
            mandatory_sections: Sections every article must have
            strict_references: Treat dangling references as errors
            strict_metadata: Treat documents excluded at load as errors
            workers: Parse processes
            pattern: Glob pattern for article files
            show_progress: Display progress bars
        """
        self.site_path = Path(site_path)
        self.workers = workers
        self.pattern = pattern
        self.show_progress = show_progress
        self.validator = ConsistencyValidator(
            mandatory_sections=mandatory_sections,
            strict_references=strict_references,
            strict_metadata=strict_metadata,
        )
        self.article_repository = ArticleRepository(self.site_path / ARTICLES_FILE)
        self.graph_repository = GraphRepository(self.site_path / GRAPH_FILE)
        self.index_repository = SearchIndexRepository(self.site_path / SEARCH_INDEX_FILE)
        self.report_path = self.site_path / REPORT_FILE
        self.stats = BuildStatistics()

    def run(
        self,
        archive_path: str | Path,
        force: bool = False,
        external_ids: set[str] | None = None,
        write: bool = True,
    ) -> BuildResult:
        """Build the site snapshot from an archive directory.

        Args:
            archive_path: Directory holding article files
            force: Ignore the previous snapshot and rebuild everything
            external_ids: KB-IDs published elsewhere (not dangling when referenced)
            write: Persist the snapshot and report to site_path

        Returns:
            BuildResult; its report is always populated

        Raises:
            FileNotFoundError: If the archive directory doesn't exist
            IngestionError: If the snapshot cannot be written
        """
        self.stats = BuildStatistics(start_time=time.time())
        logger.info(
            "build_started",
            archive_path=str(archive_path),
            site_path=str(self.site_path),
            workers=self.workers,
            force=force,
        )

        loader = MarkdownLoader(archive_path)
        loaded = loader.load_all(
            pattern=self.pattern, workers=self.workers, show_progress=self.show_progress
        )
        self.stats.documents_loaded = len(loaded.articles)
        self.stats.documents_failed = len(loaded.failures)
        failures = [(f.source, f.error) for f in loaded.failures]

        try:
            self._ensure_unique_ids(loaded.articles)
        except DuplicateArticleIdError as e:
            logger.error("build_aborted", error_type=type(e).__name__, error=e.message)
            validation = self.validator.validate(
                loaded.articles, load_failures=failures, external_ids=external_ids
            )
            result = BuildResult(
                report=self._finish_report(
                    validation, loaded.failures, fatal_error=f"{type(e).__name__}: {e.message}"
                )
            )
            if write:
                self._write_report(result.report)
            return result

        articles = self._merge_with_previous(loaded.articles, force)
        known_ids = set(articles) | (external_ids or set())

        graph = CrossReferenceGraph()
        graph.build(list(articles.values()))
        graph.resolve(known_ids)
        self.stats.edges = graph.edge_count()
        self.stats.unresolved_references = len(graph.unresolved)

        index = self._update_index(articles, force)

        validation = self.validator.validate(
            list(articles.values()),
            graph=graph,
            index=index,
            load_failures=failures,
            external_ids=external_ids,
        )
        report = self._finish_report(validation, loaded.failures)
        result = BuildResult(report=report, articles=articles, graph=graph, index=index)

        if write:
            self._write_snapshot(result)
            self._write_report(report)
        return result

    def _ensure_unique_ids(self, articles: list[Article]) -> None:
        """Raise if any KB-ID is declared by more than one document.

        Raises:
            DuplicateArticleIdError: With every duplicated KB-ID and its sources
        """
        duplicates = find_duplicate_ids(articles)
        if duplicates:
            raise DuplicateArticleIdError(
                f"Duplicate article IDs: {', '.join(duplicates)}", duplicates=duplicates
            )

    def _merge_with_previous(self, loaded: list[Article], force: bool) -> dict[str, Article]:
        """Overlay loaded articles on the previously published ones.

        Published articles are never hard-deleted: one missing from this batch
        is carried forward from the previous snapshot.
        """
        articles: dict[str, Article] = {}
        if not force:
            try:
                articles = self.article_repository.load()
            except FileNotFoundError:
                articles = {}
            except ValueError as e:
                logger.warning("previous_snapshot_unreadable", error=str(e))
                articles = {}

        loaded_ids = {article.article_id for article in loaded}
        carried = sorted(set(articles) - loaded_ids)
        if carried:
            logger.info("articles_carried_forward", article_ids=carried)
        self.stats.articles_carried_forward = len(carried)

        for article in loaded:
            articles[article.article_id] = article
        return dict(sorted(articles.items()))

    def _update_index(self, articles: dict[str, Article], force: bool) -> SearchIndex:
        """Re-index changed articles, falling back to a full re-index on corruption."""
        index = SearchIndex()
        if not force:
            try:
                index = self.index_repository.load_index()
            except FileNotFoundError:
                index = SearchIndex()
            except IndexCorruptionError as e:
                logger.error("search_index_corrupted", error=e.message, action="full_reindex")
                self.stats.full_reindex = True
                index = SearchIndex()

        for article_id in sorted(set(index.doc_hashes) - set(articles)):
            index.remove(article_id)

        corpus = list(articles.values())
        updated = index.index_articles(corpus)
        try:
            index.verify()
        except IndexCorruptionError as e:
            logger.error("search_index_corrupted", error=e.message, action="full_reindex")
            self.stats.full_reindex = True
            index.clear()
            updated = index.index_articles(corpus, force=True)
            index.verify()

        self.stats.articles_indexed = len(updated)
        self.stats.articles_unchanged = len(corpus) - len(updated)
        return index

    def _finish_report(
        self,
        validation: ValidationReport,
        load_failures: list[LoadFailure],
        fatal_error: str | None = None,
    ) -> BuildReport:
        self.stats.end_time = time.time()
        report = BuildReport(
            published=fatal_error is None and not validation.has_errors(),
            validation=validation,
            statistics=self.stats,
            fatal_error=fatal_error,
            load_failures=list(load_failures),
        )
        logger.info(
            "build_finished",
            published=report.published,
            fatal_error=fatal_error,
            errors=len(validation.errors),
            warnings=len(validation.warnings),
            **self.stats.to_dict(),
        )
        return report

    def _write_snapshot(self, result: BuildResult) -> None:
        """Persist articles, graph and index.

        Raises:
            IngestionError: If any file cannot be written
        """
        if result.graph is None or result.index is None:
            return
        try:
            self.article_repository.save(list(result.articles.values()))
            self.graph_repository.save(result.graph)
            self.index_repository.save_index(result.index)
        except OSError as e:
            logger.error("snapshot_write_failed", error=str(e), site_path=str(self.site_path))
            raise IngestionError(f"Failed to write site snapshot: {e}") from e

    def _write_report(self, report: BuildReport) -> None:
        """Write the build report as JSON.

        Raises:
            IngestionError: If the report cannot be written
        """
        try:
            self.report_path.parent.mkdir(parents=True, exist_ok=True)
            with self.report_path.open("w", encoding="utf-8") as f:
                json.dump(report.to_dict(), f, indent=2)
            logger.info("build_report_saved", path=str(self.report_path))
        except OSError as e:
            logger.error("build_report_save_failed", error=str(e))
            raise IngestionError(f"Failed to write build report: {e}") from e
