"""Unit tests for MarkdownLoader."""

from collections.abc import Callable
from pathlib import Path
from unittest.mock import patch

import pytest

from kbsite.ingestion.markdown_loader import MarkdownLoader


class TestMarkdownLoader:
    """Test cases for MarkdownLoader."""

    def test_default_archive_path(self) -> None:
        loader = MarkdownLoader()

        assert loader.archive_path == Path("data/kb-archive")

    def test_missing_archive_raises(self, tmp_path: Path) -> None:
        loader = MarkdownLoader(tmp_path / "missing")

        with pytest.raises(FileNotFoundError, match="Archive directory not found"):
            loader.load_all()

    def test_archive_path_must_be_directory(self, tmp_path: Path) -> None:
        file_path = tmp_path / "file.md"
        file_path.write_text("x", encoding="utf-8")

        with pytest.raises(NotADirectoryError):
            MarkdownLoader(file_path).load_all()

    def test_loads_fixture_corpus_in_file_order(self, test_data_dir: Path) -> None:
        loader = MarkdownLoader(test_data_dir / "articles")

        result = loader.load_all()

        assert [a.article_id for a in result.articles] == ["KB-020", "KB-021", "KB-022"]
        assert result.failures == []
        assert loader.get_statistics() == {
            "files_read": 3,
            "documents_loaded": 3,
            "documents_failed": 0,
        }

    def test_splits_bundled_file(self, test_data_dir: Path) -> None:
        result = MarkdownLoader(test_data_dir / "bundles").load_all()

        assert [a.article_id for a in result.articles] == ["KB-023", "KB-024"]
        assert result.articles[0].source_path.endswith("playgrounds_pair.md#1")
        assert result.articles[1].source_path.endswith("playgrounds_pair.md#2")

    def test_malformed_document_is_excluded_not_fatal(
        self,
        write_corpus: Callable[..., Path],
        make_article: Callable[..., str],
    ) -> None:
        archive = write_corpus(
            {
                "a.md": make_article("KB-001"),
                "b.md": "# Draft without an ID\n\n## Overview\n\nText.\n",
                "c.md": make_article("KB-003"),
            }
        )
        loader = MarkdownLoader(archive)

        result = loader.load_all()

        assert [a.article_id for a in result.articles] == ["KB-001", "KB-003"]
        assert len(result.failures) == 1
        assert result.failures[0].source.endswith("b.md")
        assert "Missing Article ID" in result.failures[0].error
        assert loader.get_statistics()["documents_failed"] == 1

    def test_unreadable_file_is_recorded(self, write_corpus: Callable[..., Path]) -> None:
        archive = write_corpus({})
        (archive / "binary.md").write_bytes(b"\xff\xfe\x00not utf-8")

        result = MarkdownLoader(archive).load_all()

        assert result.articles == []
        assert len(result.failures) == 1
        assert result.failures[0].source.endswith("binary.md")

    def test_pattern_filters_files(
        self,
        write_corpus: Callable[..., Path],
        make_article: Callable[..., str],
    ) -> None:
        archive = write_corpus({"a.md": make_article("KB-001"), "b.txt": make_article("KB-002")})
        loader = MarkdownLoader(archive)

        assert [a.article_id for a in loader.load_all(pattern="*.txt").articles] == ["KB-002"]
        assert loader.count_files() == 1
        assert loader.count_files("*") == 2

    def test_load_text_handles_bundles(self, make_article: Callable[..., str]) -> None:
        text = make_article("KB-001") + "<|RELATED_DOC_SEP-x|>" + make_article("KB-002")

        result = MarkdownLoader().load_text(text, source="inline")

        assert [a.article_id for a in result.articles] == ["KB-001", "KB-002"]
        assert result.articles[1].source_path == "inline#2"

    def test_parallel_parse_preserves_order(
        self,
        write_corpus: Callable[..., Path],
        make_article: Callable[..., str],
    ) -> None:
        files = {f"kb-{n:03}.md": make_article(f"KB-{n:03}") for n in range(1, 9)}
        archive = write_corpus(files)

        serial = MarkdownLoader(archive).load_all(workers=1)
        parallel = MarkdownLoader(archive).load_all(workers=2)

        assert [a.article_id for a in parallel.articles] == [
            a.article_id for a in serial.articles
        ]
        assert parallel.articles == serial.articles

    def test_serial_parse_does_not_start_process_pool(
        self,
        write_corpus: Callable[..., Path],
        make_article: Callable[..., str],
    ) -> None:
        archive = write_corpus({"a.md": make_article("KB-001"), "b.md": make_article("KB-002")})

        with patch("kbsite.ingestion.markdown_loader.ProcessPoolExecutor") as mock_pool:
            MarkdownLoader(archive).load_all(workers=1)

        mock_pool.assert_not_called()
