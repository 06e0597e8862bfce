"""Custom exception hierarchy for the application."""


class KBSiteError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, is_retryable: bool = False) -> None:
        """Initialize exception.

        Args:
            message: Error message
            is_retryable: Whether the operation can be retried
        """
        super().__init__(message)
        self.message = message
        self.is_retryable = is_retryable


class ConfigurationError(KBSiteError):
    """Configuration or environment setup error."""

    pass


class IngestionError(KBSiteError):
    """Corpus loading or build pipeline error."""

    pass


class MalformedMetadataError(IngestionError):
    """Article front matter cannot be parsed (fatal for that document only)."""

    def __init__(self, message: str, source: str | None = None) -> None:
        """Initialize exception.

        Args:
            message: Error message
            source: File or blob position the document came from
        """
        super().__init__(message)
        self.source = source


class DuplicateArticleIdError(IngestionError):
    """Two or more articles share a KB-ID (fatal for the whole batch)."""

    def __init__(self, message: str, duplicates: dict[str, list[str]] | None = None) -> None:
        """Initialize exception.

        Args:
            message: Error message
            duplicates: Mapping of duplicated KB-ID to the sources declaring it
        """
        super().__init__(message)
        self.duplicates = duplicates or {}


class IndexCorruptionError(KBSiteError):
    """Shared search index violates a merge invariant; requires a full re-index."""

    pass


class ArticleNotFoundError(KBSiteError):
    """Requested article does not exist in the published snapshot."""

    def __init__(self, article_id: str) -> None:
        """Initialize exception.

        Args:
            article_id: KB-ID that was looked up
        """
        super().__init__(f"Article not found: {article_id}")
        self.article_id = article_id


class DanglingReferenceWarning(UserWarning):
    """A Related Articles entry points at a KB-ID that is not in the corpus."""

    pass
