"""Integration tests for full site builds over on-disk archives."""

import json
from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import CliRunner

from kbsite.__main__ import main
from kbsite.ingestion.pipeline import BuildPipeline
from kbsite.orchestration import KnowledgeBase

SNAPSHOT_FILES = ("articles.json", "graph.json", "search_index.json")


def _snapshot_bytes(site_dir: Path) -> dict[str, bytes]:
    return {name: (site_dir / name).read_bytes() for name in SNAPSHOT_FILES}


@pytest.mark.integration
class TestSiteBuild:
    """Build, rebuild and query a site end to end."""

    def test_build_then_query(self, fixture_archive: Path, site_dir: Path) -> None:
        report = BuildPipeline(site_dir).run(fixture_archive).report
        kb = KnowledgeBase.from_snapshot(site_dir)

        assert report.published is True
        assert kb.list_articles() == ["KB-020", "KB-021", "KB-022"]
        assert kb.get_related("KB-022") == ["KB-020", "KB-021"]
        assert kb.search("previews")[0].id == "KB-020"

    def test_unchanged_rebuild_is_byte_identical(
        self, fixture_archive: Path, site_dir: Path
    ) -> None:
        BuildPipeline(site_dir).run(fixture_archive)
        first = _snapshot_bytes(site_dir)

        result = BuildPipeline(site_dir).run(fixture_archive)

        assert result.report.statistics.articles_indexed == 0
        assert _snapshot_bytes(site_dir) == first

    def test_incremental_change_reaches_queries(
        self, fixture_archive: Path, site_dir: Path
    ) -> None:
        BuildPipeline(site_dir).run(fixture_archive)
        path = fixture_archive / "KB-020.md"
        path.write_text(
            path.read_text(encoding="utf-8").replace(
                "How to Create SwiftUI Previews", "How to Create SwiftUI Canvases"
            ),
            encoding="utf-8",
        )

        BuildPipeline(site_dir).run(fixture_archive)
        kb = KnowledgeBase.from_snapshot(site_dir)

        assert kb.get_article("KB-020").title == "How to Create SwiftUI Canvases"
        assert kb.search("canvases")[0].id == "KB-020"

    def test_single_dangling_reference(
        self,
        write_corpus: Callable[..., Path],
        make_article: Callable[..., str],
        site_dir: Path,
    ) -> None:
        archive = write_corpus(
            {
                "KB-009.md": make_article(
                    "KB-009", related=["KB-020: How to Create SwiftUI Previews"]
                )
            }
        )

        report = BuildPipeline(site_dir).run(archive).report

        assert [(v.rule_name, v.detail) for v in report.validation.violations] == [
            ("dangling_reference", "KB-009 -> KB-020: referenced article does not exist")
        ]
        assert report.exit_code() == 0

    def test_bundle_with_missing_targets(self, test_data_dir: Path, site_dir: Path) -> None:
        result = BuildPipeline(site_dir).run(test_data_dir / "bundles")

        dangling = result.report.validation.by_rule("dangling_reference")
        assert sorted(result.articles) == ["KB-023", "KB-024"]
        assert sorted(v.detail.split(":")[0] for v in dangling) == [
            "KB-024 -> KB-025",
            "KB-024 -> KB-026",
        ]
        assert result.graph.has_edge("KB-023", "KB-024")
        assert result.graph.has_edge("KB-024", "KB-023")

    def test_duplicate_ids_fail_the_build(
        self,
        write_corpus: Callable[..., Path],
        make_article: Callable[..., str],
        site_dir: Path,
    ) -> None:
        archive = write_corpus({"one.md": make_article("KB-007"), "two.md": make_article("KB-007")})

        report = BuildPipeline(site_dir).run(archive).report

        assert report.exit_code() == 1
        assert report.published is False
        with pytest.raises(FileNotFoundError):
            KnowledgeBase.from_snapshot(site_dir)

    def test_title_outranks_body(
        self,
        write_corpus: Callable[..., Path],
        make_article: Callable[..., str],
        site_dir: Path,
    ) -> None:
        archive = write_corpus(
            {
                "a.md": make_article(
                    "KB-001",
                    title="Device Setup",
                    overview="The simulator simulator simulator runs your app.",
                ),
                "b.md": make_article("KB-002", title="Simulator Basics"),
            }
        )
        BuildPipeline(site_dir).run(archive)

        hits = KnowledgeBase.from_snapshot(site_dir).search("simulator")

        assert [hit.id for hit in hits] == ["KB-002", "KB-001"]

    def test_parallel_build_matches_serial(
        self, fixture_archive: Path, tmp_path: Path
    ) -> None:
        serial_dir = tmp_path / "serial"
        parallel_dir = tmp_path / "parallel"

        BuildPipeline(serial_dir, workers=1).run(fixture_archive)
        BuildPipeline(parallel_dir, workers=2).run(fixture_archive)

        assert _snapshot_bytes(serial_dir) == _snapshot_bytes(parallel_dir)

    def test_corrupted_index_is_rebuilt(self, fixture_archive: Path, site_dir: Path) -> None:
        BuildPipeline(site_dir).run(fixture_archive)
        first = _snapshot_bytes(site_dir)
        (site_dir / "search_index.json").write_text("{truncated", encoding="utf-8")

        result = BuildPipeline(site_dir).run(fixture_archive)

        assert result.report.statistics.full_reindex is True
        assert _snapshot_bytes(site_dir) == first


@pytest.mark.integration
class TestCommandGroup:
    """Drive the kbsite command group end to end."""

    def test_version(self) -> None:
        result = CliRunner().invoke(main, ["--version"])

        assert result.exit_code == 0
        assert "kbsite, version 0.1.0" in result.output

    def test_build_show_search_stats(self, fixture_archive: Path, site_dir: Path) -> None:
        runner = CliRunner()

        build = runner.invoke(main, ["build", str(fixture_archive), "--output", str(site_dir)])
        show = runner.invoke(main, ["show", "KB-021", "--site", str(site_dir)])
        search = runner.invoke(main, ["search", "animations", "--site", str(site_dir)])
        stats = runner.invoke(main, ["stats", "--site", str(site_dir)])

        assert build.exit_code == 0, build.output
        assert "Referenced by: KB-020, KB-022" in show.output
        assert "[1] KB-021" in search.output
        assert "Articles: 3" in stats.output

    def test_validate_json(self, fixture_archive: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "ERROR")

        result = CliRunner().invoke(main, ["validate", str(fixture_archive), "--json"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["statistics"]["documents_loaded"] == 3
