"""Unit tests for ArticleRepository."""

import json
from pathlib import Path

import pytest

from kbsite.ingestion.markdown_loader import MarkdownLoader
from kbsite.repositories.article_repository import ArticleRepository


class TestArticleRepository:
    """Test cases for ArticleRepository."""

    def test_save_and_load_round_trip(self, tmp_path: Path, test_data_dir: Path) -> None:
        articles = MarkdownLoader(test_data_dir / "articles").load_all().articles
        repository = ArticleRepository(tmp_path / "site" / "articles.json")

        repository.save(articles)
        loaded = repository.load()

        assert sorted(loaded) == ["KB-020", "KB-021", "KB-022"]
        for article in articles:
            assert loaded[article.article_id] == article

    def test_saved_list_sorted_by_id(self, tmp_path: Path, test_data_dir: Path) -> None:
        articles = MarkdownLoader(test_data_dir / "articles").load_all().articles
        path = tmp_path / "articles.json"

        ArticleRepository(path).save(list(reversed(articles)))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert [entry["article_id"] for entry in data] == ["KB-020", "KB-021", "KB-022"]

    def test_load_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Articles file not found"):
            ArticleRepository(tmp_path / "articles.json").load()

    def test_load_rejects_non_list(self, tmp_path: Path) -> None:
        path = tmp_path / "articles.json"
        path.write_text('{"article_id": "KB-1"}', encoding="utf-8")

        with pytest.raises(ValueError, match="expected a list"):
            ArticleRepository(path).load()

    def test_load_rejects_entry_without_title(self, tmp_path: Path) -> None:
        path = tmp_path / "articles.json"
        path.write_text('[{"article_id": "KB-1"}]', encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid article entry"):
            ArticleRepository(path).load()
