"""Pytest configuration and shared fixtures."""

import shutil
from collections.abc import Callable, Iterable
from pathlib import Path

import pytest

CONFIG_ENV_VARS = [
    "LOG_LEVEL",
    "KB_ARCHIVE_PATH",
    "KB_SITE_PATH",
    "KB_FILE_PATTERN",
    "KB_WORKERS",
    "KB_STRICT_REFERENCES",
    "KB_STRICT_METADATA",
    "KB_MANDATORY_SECTIONS",
    "KB_SEARCH_LIMIT",
]


def build_article_text(
    article_id: str,
    title: str | None = None,
    related: Iterable[str] = (),
    overview: str = "This article explains a common Xcode workflow.",
    steps: str = "1. Open the project in Xcode.\n2. Build and run.",
    sources: Iterable[str] = ("https://developer.apple.com/documentation/xcode",),
    difficulty: str = "Beginner",
    last_updated: str = "2024-11-05",
    estimated_time: str = "10 minutes",
    extra_sections: dict[str, str] | None = None,
) -> str:
    """Render a well-formed knowledge-base article."""
    lines = [
        f"# {title or f'Article {article_id}'}",
        "",
        f"**Article ID:** {article_id} | **Difficulty:** {difficulty} | "
        f"**Last Updated:** {last_updated} | **Estimated Time:** {estimated_time}",
        "",
        "## Overview",
        "",
        overview,
        "",
        "## Steps",
        "",
        steps,
        "",
    ]
    for name, body in (extra_sections or {}).items():
        lines.extend([f"## {name}", "", body, ""])
    lines.extend(["## Related Articles", ""])
    lines.extend(f"- {target}" for target in related)
    lines.extend(["", "## Sources", ""])
    lines.extend(f"- {url}" for url in sources)
    return "\n".join(lines) + "\n"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep configuration variables from the developer's shell out of tests."""
    for var in CONFIG_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def test_data_dir() -> Path:
    """Return path to test data directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def make_article() -> Callable[..., str]:
    """Return the article text factory."""
    return build_article_text


@pytest.fixture
def write_corpus(tmp_path: Path) -> Callable[[dict[str, str]], Path]:
    """Return a helper writing {filename: text} into a fresh archive directory."""

    def _write(files: dict[str, str], name: str = "archive") -> Path:
        archive = tmp_path / name
        archive.mkdir(parents=True, exist_ok=True)
        for filename, text in files.items():
            (archive / filename).write_text(text, encoding="utf-8")
        return archive

    return _write


@pytest.fixture
def fixture_archive(tmp_path: Path, test_data_dir: Path) -> Path:
    """Copy the three-article fixture corpus into a temporary archive."""
    archive = tmp_path / "kb-archive"
    shutil.copytree(test_data_dir / "articles", archive)
    return archive


@pytest.fixture
def site_dir(tmp_path: Path) -> Path:
    """Return path to a temporary site snapshot directory."""
    return tmp_path / "site"
