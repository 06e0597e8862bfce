"""Unit tests for the KnowledgeBase query facade."""

from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from kbsite.ingestion.pipeline import BuildPipeline, BuildReport, BuildResult, BuildStatistics
from kbsite.ingestion.validators import ValidationReport
from kbsite.orchestration import ArticleView, KnowledgeBase, SearchHit
from kbsite.utils.exceptions import ArticleNotFoundError, IngestionError


@pytest.fixture
def kb(fixture_archive: Path, site_dir: Path) -> KnowledgeBase:
    BuildPipeline(site_dir).run(fixture_archive)
    return KnowledgeBase.from_snapshot(site_dir)


class TestKnowledgeBase:
    """Test cases for KnowledgeBase."""

    def test_identity_round_trip(self, kb: KnowledgeBase) -> None:
        for article_id in kb.list_articles():
            assert kb.get_article(article_id).id == article_id

    def test_list_articles_sorted(self, kb: KnowledgeBase) -> None:
        assert kb.list_articles() == ["KB-020", "KB-021", "KB-022"]

    def test_get_article_view(self, kb: KnowledgeBase) -> None:
        article = kb.get_article("KB-020")

        assert isinstance(article, ArticleView)
        assert article.title == "How to Create SwiftUI Previews"
        assert article.difficulty == "Beginner"
        assert article.deprecated is False
        assert article.related_ids == ("KB-021", "KB-022")
        assert [s.name for s in article.sections][0] == "Overview"
        assert article.sources[0].accessed == "2024-11-01"

    def test_get_article_normalizes_id(self, kb: KnowledgeBase) -> None:
        assert kb.get_article(" kb-021 ").id == "KB-021"

    def test_get_article_unknown_raises(self, kb: KnowledgeBase) -> None:
        with pytest.raises(ArticleNotFoundError) as exc_info:
            kb.get_article("KB-999")

        assert exc_info.value.article_id == "KB-999"

    def test_article_view_is_immutable(self, kb: KnowledgeBase) -> None:
        article = kb.get_article("KB-020")

        with pytest.raises(PydanticValidationError):
            article.title = "Changed"

    def test_get_related(self, kb: KnowledgeBase) -> None:
        assert kb.get_related("KB-020") == ["KB-021", "KB-022"]
        assert kb.get_related("KB-021") == ["KB-020"]

    def test_get_related_returns_copy(self, kb: KnowledgeBase) -> None:
        kb.get_related("KB-020").append("KB-999")

        assert kb.get_related("KB-020") == ["KB-021", "KB-022"]

    def test_get_related_unknown_raises(self, kb: KnowledgeBase) -> None:
        with pytest.raises(ArticleNotFoundError):
            kb.get_related("KB-999")

    def test_get_referrers(self, kb: KnowledgeBase) -> None:
        assert kb.get_referrers("KB-022") == ["KB-020"]

    def test_search_ranks_title_match_first(self, kb: KnowledgeBase) -> None:
        hits = kb.search("previews")

        assert all(isinstance(hit, SearchHit) for hit in hits)
        assert hits[0].id == "KB-020"
        assert hits[0].title == "How to Create SwiftUI Previews"
        assert "previews render your views" in hits[0].snippet
        assert {hit.id for hit in hits[1:]} == {"KB-021", "KB-022"}

    def test_search_respects_default_limit(self, fixture_archive: Path, site_dir: Path) -> None:
        BuildPipeline(site_dir).run(fixture_archive)
        kb = KnowledgeBase.from_snapshot(site_dir, default_limit=1)

        assert len(kb.search("previews")) == 1
        assert len(kb.search("previews", limit=2)) == 2

    def test_search_explicit_zero_limit(self, fixture_archive: Path, site_dir: Path) -> None:
        BuildPipeline(site_dir).run(fixture_archive)
        kb = KnowledgeBase.from_snapshot(site_dir, default_limit=1)

        assert kb.search("previews", limit=0) == []

    def test_search_no_results(self, kb: KnowledgeBase) -> None:
        assert kb.search("kubernetes") == []

    def test_search_empty_query_raises(self, kb: KnowledgeBase) -> None:
        with pytest.raises(ValueError):
            kb.search("")

    def test_statistics(self, kb: KnowledgeBase) -> None:
        stats = kb.statistics()

        assert stats["articles"] == 3
        assert stats["deprecated"] == 0
        assert stats["edges"] == 5
        assert stats["unresolved_references"] == 0
        assert stats["by_difficulty"] == {"Advanced": 1, "Beginner": 1, "Intermediate": 1}
        assert stats["most_referenced"] == [("KB-020", 2), ("KB-021", 2), ("KB-022", 1)]
        assert stats["indexed_articles"] == 3

    def test_from_build(self, fixture_archive: Path, site_dir: Path) -> None:
        result = BuildPipeline(site_dir).run(fixture_archive, write=False)

        kb = KnowledgeBase.from_build(result)

        assert kb.get_related("KB-022") == ["KB-020", "KB-021"]

    def test_from_build_rejects_aborted_build(self) -> None:
        report = BuildReport(
            published=False,
            validation=ValidationReport(),
            statistics=BuildStatistics(),
            fatal_error="DuplicateArticleIdError: Duplicate article IDs: KB-001",
        )

        with pytest.raises(IngestionError, match="did not produce"):
            KnowledgeBase.from_build(BuildResult(report=report))

    def test_from_snapshot_missing_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            KnowledgeBase.from_snapshot(tmp_path / "nowhere")
