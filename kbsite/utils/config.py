"""Configuration management for environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

from kbsite.common.constants import DEFAULT_MANDATORY_SECTIONS
from kbsite.utils.exceptions import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


class Config:
    """Application configuration loaded from environment variables."""

    def __init__(self) -> None:
        """Load configuration from .env file and environment.

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        env_path = Path(".env")
        if env_path.exists():
            load_dotenv(env_path)

        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.archive_path = Path(os.getenv("KB_ARCHIVE_PATH", "data/kb-archive"))
        self.site_path = Path(os.getenv("KB_SITE_PATH", "data/site"))
        self.file_pattern = os.getenv("KB_FILE_PATTERN", "*.md")
        self.workers = self._get_int("KB_WORKERS", 1, minimum=1)
        self.search_limit = self._get_int("KB_SEARCH_LIMIT", 10, minimum=1)
        self.strict_references = self._get_bool("KB_STRICT_REFERENCES", False)
        self.strict_metadata = self._get_bool("KB_STRICT_METADATA", False)
        self.mandatory_sections = self._get_list(
            "KB_MANDATORY_SECTIONS", DEFAULT_MANDATORY_SECTIONS
        )

    def _get_int(self, key: str, default: int, minimum: int | None = None) -> int:
        """Get integer environment variable.

        Args:
            key: Environment variable name
            default: Value used when the variable is not set
            minimum: Smallest accepted value

        Returns:
            Parsed integer

        Raises:
            ConfigurationError: If value is not an integer or below minimum
        """
        raw = os.getenv(key)
        if raw is None or raw.strip() == "":
            return default
        try:
            value = int(raw)
        except ValueError as e:
            raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from e
        if minimum is not None and value < minimum:
            raise ConfigurationError(f"{key} must be >= {minimum}, got {value}")
        return value

    def _get_bool(self, key: str, default: bool) -> bool:
        """Get boolean environment variable.

        Raises:
            ConfigurationError: If value is not a recognised boolean
        """
        raw = os.getenv(key)
        if raw is None:
            return default
        normalized = raw.strip().lower()
        if normalized in _TRUE_VALUES:
            return True
        if normalized in _FALSE_VALUES:
            return False
        raise ConfigurationError(f"{key} must be a boolean, got {raw!r}")

    def _get_list(self, key: str, default: list[str]) -> list[str]:
        """Get comma-separated list environment variable."""
        raw = os.getenv(key)
        if raw is None or not raw.strip():
            return list(default)
        return [item.strip() for item in raw.split(",") if item.strip()]
