"""Unit tests for article data models."""

from datetime import date

import pytest

from kbsite.ingestion.models import Article, Difficulty, ParseOutcome, Section


class TestDifficulty:
    """Test cases for Difficulty.parse."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Beginner", Difficulty.BEGINNER),
            ("intermediate", Difficulty.INTERMEDIATE),
            ("Advanced (30 min)", Difficulty.ADVANCED),
            ("Expert", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse(self, raw: str | None, expected: Difficulty | None) -> None:
        assert Difficulty.parse(raw) is expected


class TestArticle:
    """Test cases for Article."""

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(ValueError, match="Article ID cannot be empty"):
            Article(article_id=" ", title="Title")

    def test_empty_title_rejected(self) -> None:
        with pytest.raises(ValueError, match="Title cannot be empty"):
            Article(article_id="KB-1", title="")

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("2024-11-05", date(2024, 11, 5)),
            ("November 12, 2024", date(2024, 11, 12)),
            ("Nov 12, 2024", date(2024, 11, 12)),
            ("12 November 2024", date(2024, 11, 12)),
            ("last week", None),
            (None, None),
        ],
    )
    def test_last_updated_date(self, raw: str | None, expected: date | None) -> None:
        article = Article(article_id="KB-1", title="T", last_updated=raw)

        assert article.last_updated_date == expected

    @pytest.mark.parametrize(
        ("status", "deprecated"),
        [("Deprecated", True), ("superseded", True), ("Published", False), (None, False)],
    )
    def test_deprecated(self, status: str | None, deprecated: bool) -> None:
        assert Article(article_id="KB-1", title="T", status=status).deprecated is deprecated

    def test_section_lookup(self) -> None:
        article = Article(
            article_id="KB-1",
            title="T",
            sections=[Section(name="Overview", body="a"), Section(name="Steps", body="b")],
        )

        assert article.section("Steps").body == "b"
        assert article.section("Sources") is None
        assert article.section_names == ["Overview", "Steps"]


def test_parse_outcome_ok() -> None:
    assert ParseOutcome(source="a", article=Article(article_id="KB-1", title="T")).ok
    assert not ParseOutcome(source="a", error="boom").ok
