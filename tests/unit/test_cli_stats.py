"""Unit tests for the kb-stats CLI command."""

from pathlib import Path

from click.testing import CliRunner

from kbsite.cli.stats import stats
from kbsite.ingestion.pipeline import BuildPipeline


class TestStatsCLI:
    """Test kb-stats CLI command."""

    def test_summary(self, fixture_archive: Path, site_dir: Path) -> None:
        BuildPipeline(site_dir).run(fixture_archive)

        result = CliRunner().invoke(stats, ["--site", str(site_dir)])

        assert result.exit_code == 0, result.output
        assert f"Site Path: {site_dir}" in result.output
        assert "Articles: 3" in result.output
        assert "Cross-Reference Edges: 5" in result.output
        assert "Unresolved References: 0" in result.output
        assert "Indexed Articles: 3" in result.output

    def test_breakdown(self, fixture_archive: Path, site_dir: Path) -> None:
        BuildPipeline(site_dir).run(fixture_archive)

        result = CliRunner().invoke(stats, ["--site", str(site_dir)])

        assert "Beginner: 1" in result.output
        assert "Advanced: 1" in result.output
        assert "1. KB-020: 2 referrers" in result.output

    def test_top_option(self, fixture_archive: Path, site_dir: Path) -> None:
        BuildPipeline(site_dir).run(fixture_archive)

        result = CliRunner().invoke(stats, ["--site", str(site_dir), "--top", "1"])

        assert "KB-020: 2 referrers" in result.output
        assert "KB-021: 2 referrers" not in result.output

    def test_missing_snapshot_aborts(self, site_dir: Path) -> None:
        result = CliRunner().invoke(stats, ["--site", str(site_dir)])

        assert result.exit_code == 1
        assert "Run 'kb-build' first" in result.output
