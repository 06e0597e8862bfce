"""Markdown file loader for the build pipeline.

Reads article files from an archive directory, splits bundled files on the
document sentinel and parses every article. Parsing is independent per
document, so it can be fanned out to worker processes; results always come
back in input order.
"""

from collections.abc import Iterable, Iterator
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from tqdm import tqdm

from kbsite.ingestion.article_parser import parse_document, split_bundle
from kbsite.ingestion.models import Article, ParseOutcome, RawDocument

logger = structlog.get_logger(__name__)


@dataclass
class LoadFailure:
    """A document excluded from the corpus.

    Attributes:
        source: File (and bundle position) of the document
        error: Reason it was excluded
    """

    source: str
    error: str


@dataclass
class LoadResult:
    """Articles and failures from one load.

    Attributes:
        articles: Parsed articles in file order (duplicates not yet checked)
        failures: Documents that could not be read or parsed
    """

    articles: list[Article] = field(default_factory=list)
    failures: list[LoadFailure] = field(default_factory=list)


class MarkdownLoader:
    """Load knowledge-base articles from an archive directory.

    Supports:
    - Glob pattern matching for file selection
    - Bundled files holding several sentinel-separated articles
    - Parallel per-document parsing

    Example:
        >>> loader = MarkdownLoader("docs/kb")
        >>> result = loader.load_all(workers=4)
        >>> for failure in result.failures:
        ...     print(failure.source, failure.error)
    """

    DEFAULT_ARCHIVE_PATH = Path("data/kb-archive")

    def __init__(self, archive_path: str | Path | None = None) -> None:
        """Initialize loader.

        Args:
            archive_path: Path to the article directory.
                         Defaults to data/kb-archive
        """
        self.archive_path = Path(archive_path) if archive_path else self.DEFAULT_ARCHIVE_PATH
        self.logger = logger.bind(component="markdown_loader")
        self.files_read = 0
        self.documents_loaded = 0
        self.documents_failed = 0

    def iter_documents(
        self, pattern: str = "*.md", failures: list[LoadFailure] | None = None
    ) -> Iterator[RawDocument]:
        """Read matching files and yield their (possibly bundled) documents.

        Args:
            pattern: Glob pattern for file matching (default: "*.md")
            failures: Optional list collecting unreadable files

        Yields:
            RawDocument per article, in sorted file order

        Raises:
            FileNotFoundError: If archive directory doesn't exist
            NotADirectoryError: If archive path is not a directory
        """
        if not self.archive_path.exists():
            raise FileNotFoundError(f"Archive directory not found: {self.archive_path}")

        if not self.archive_path.is_dir():
            raise NotADirectoryError(f"Archive path is not a directory: {self.archive_path}")

        for file_path in sorted(self.archive_path.glob(pattern)):
            if not file_path.is_file():
                continue
            try:
                text = file_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                self.logger.error(
                    "file_read_error",
                    file_path=str(file_path),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if failures is not None:
                    failures.append(LoadFailure(source=str(file_path), error=str(e)))
                continue

            self.files_read += 1
            yield from split_bundle(text, str(file_path))

    def load_all(
        self,
        pattern: str = "*.md",
        workers: int = 1,
        show_progress: bool = False,
    ) -> LoadResult:
        """Load and parse every article in the archive.

        Args:
            pattern: Glob pattern for file matching
            workers: Number of parse processes (1 parses in-process)
            show_progress: Display a tqdm progress bar

        Returns:
            LoadResult with parsed articles and excluded documents

        Raises:
            FileNotFoundError: If archive directory doesn't exist
        """
        self.files_read = 0
        failures: list[LoadFailure] = []
        documents = list(self.iter_documents(pattern, failures=failures))

        self.logger.info(
            "loading_articles",
            archive_path=str(self.archive_path),
            pattern=pattern,
            files=self.files_read,
            documents=len(documents),
            workers=workers,
        )

        result = self.parse_documents(documents, workers=workers, show_progress=show_progress)
        result.failures = failures + result.failures
        return result

    def load_text(self, text: str, source: str = "<memory>") -> LoadResult:
        """Parse articles from an in-memory blob (bundles allowed)."""
        return self.parse_documents(split_bundle(text, source))

    def parse_documents(
        self,
        documents: list[RawDocument],
        workers: int = 1,
        show_progress: bool = False,
    ) -> LoadResult:
        """Parse raw documents, isolating per-document failures.

        Args:
            documents: Raw documents in corpus order
            workers: Number of parse processes (1 parses in-process)
            show_progress: Display a tqdm progress bar

        Returns:
            LoadResult in input order
        """
        self.documents_loaded = 0
        self.documents_failed = 0
        result = LoadResult()

        for outcome in self._map_parse(documents, workers, show_progress):
            if outcome.article is not None:
                self.documents_loaded += 1
                result.articles.append(outcome.article)
                continue

            self.documents_failed += 1
            self.logger.warning(
                "document_excluded",
                source=outcome.source,
                error=outcome.error,
            )
            result.failures.append(
                LoadFailure(source=outcome.source, error=outcome.error or "unknown error")
            )

        self.logger.info(
            "loading_complete",
            total_loaded=self.documents_loaded,
            total_failed=self.documents_failed,
        )
        return result

    def _map_parse(
        self, documents: list[RawDocument], workers: int, show_progress: bool
    ) -> Iterable[ParseOutcome]:
        """Run parse_document over documents, in order, serially or in a process pool."""
        progress = tqdm(
            total=len(documents),
            desc="Parsing articles",
            unit="article",
            disable=not show_progress,
        )
        with progress:
            if workers <= 1 or len(documents) <= 1:
                for document in documents:
                    yield parse_document(document)
                    progress.update(1)
                return

            chunksize = max(1, len(documents) // (workers * 4))
            with ProcessPoolExecutor(max_workers=workers) as executor:
                for outcome in executor.map(parse_document, documents, chunksize=chunksize):
                    yield outcome
                    progress.update(1)

    def get_statistics(self) -> dict[str, int]:
        """Get loader statistics.

        Returns:
            Dictionary with files_read, documents_loaded, documents_failed counts
        """
        return {
            "files_read": self.files_read,
            "documents_loaded": self.documents_loaded,
            "documents_failed": self.documents_failed,
        }

    def count_files(self, pattern: str = "*.md") -> int:
        """Count number of matching files in archive."""
        return len([p for p in self.archive_path.glob(pattern) if p.is_file()])
