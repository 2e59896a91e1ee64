"""Tests for the command line interface (no network access)."""

from __future__ import annotations

import logging

import pytest
from typer.testing import CliRunner

from tenderfeed.cli import main, settings
from tenderfeed.cli.commands import projects, scrape, sources
from tenderfeed.cli.main import app
from tenderfeed.core.normalize import TenderRecord
from tenderfeed.persistence.db import get_session
from tenderfeed.persistence.repo import ProjectRepository, RunRepository, SourceSettingRepository

runner = CliRunner()


@pytest.fixture
def cli(database, tmp_path, monkeypatch):
    """Invoke the CLI against the in-memory test database."""
    config = tmp_path / "app.yaml"
    config.write_text(
        f"""
data_dir: {tmp_path / "data"}
database:
  url: "sqlite://"
logging:
  level: WARNING
  file: null
  rich_console: false
""",
        encoding="utf-8",
    )
    monkeypatch.setattr(settings, "_loaded", None)
    monkeypatch.setattr(settings, "config_path", None)
    # Wide tables keep keys and titles on one line
    for module in (main, projects, scrape, sources):
        monkeypatch.setattr(module.console, "width", 200)

    def invoke(*args: str):
        return runner.invoke(app, ["--config", str(config), *args])

    yield invoke
    logging.getLogger("tenderfeed").handlers.clear()


class TestSourcesCommands:
    def test_disable_and_enable(self, cli) -> None:
        result = cli("sources", "disable", "kenora-tenders")
        assert result.exit_code == 0, result.output
        with get_session() as session:
            assert not SourceSettingRepository(session).is_enabled("kenora-tenders")

        assert cli("sources", "enable", "kenora-tenders").exit_code == 0
        with get_session() as session:
            assert SourceSettingRepository(session).is_enabled("kenora-tenders")

    def test_unknown_source(self, cli) -> None:
        result = cli("sources", "disable", "atlantis")
        assert result.exit_code == 1
        assert "Unknown source" in result.output

    def test_set_params_validates_and_masks(self, cli) -> None:
        result = cli("sources", "set", "bc-bid", "session_id=abc", "pages=3")
        assert result.exit_code == 0, result.output
        assert "abc" not in result.output
        assert "pages=3" in result.output

        with get_session() as session:
            assert SourceSettingRepository(session).params("bc-bid") == {"session_id": "abc", "pages": "3"}

        assert cli("sources", "set", "bc-bid", "session_id=").exit_code == 0
        with get_session() as session:
            assert SourceSettingRepository(session).params("bc-bid") == {"pages": "3"}

    def test_set_rejects_bad_values(self, cli) -> None:
        assert cli("sources", "set", "merx-ottawa", "max_pages=many").exit_code == 1
        assert cli("sources", "set", "merx-ottawa", "max_pages").exit_code == 1

    def test_list(self, cli) -> None:
        result = cli("sources", "list")
        assert result.exit_code == 0, result.output
        assert "toronto-bids-portal" in result.output


class TestScrapeCommands:
    def test_unknown_source(self, cli) -> None:
        result = cli("scrape", "run", "atlantis")
        assert result.exit_code == 1
        assert "Unknown source" in result.output

    def test_runs_listing(self, cli) -> None:
        assert "No runs recorded yet" in cli("scrape", "runs").output

        with get_session() as session:
            runs = RunRepository(session)
            runs.finish(runs.start("pei-tenders"), "warning", message="nothing new")

        result = cli("scrape", "runs", "--source", "pei-tenders")
        assert result.exit_code == 0, result.output
        assert "pei-tenders" in result.output
        assert "warning" in result.output


class TestProjectsCommands:
    def test_list(self, cli) -> None:
        assert "No projects match" in cli("projects", "list").output

        with get_session() as session:
            ProjectRepository(session).upsert(
                TenderRecord(
                    source_key="kenora-tenders",
                    external_id="Tenders/snow.pdf",
                    title="Snow Removal",
                    source_status="Open",
                )
            )

        result = cli("projects", "list", "--source", "kenora-tenders")
        assert result.exit_code == 0, result.output
        assert "Snow Removal" in result.output
        assert "1 shown of 1 total" in result.output


def test_init_seeds_every_source(cli) -> None:
    result = cli("init")
    assert result.exit_code == 0, result.output

    with get_session() as session:
        assert len(SourceSettingRepository(session).get_all()) == 12


def test_status(cli) -> None:
    result = cli("status")
    assert result.exit_code == 0, result.output
    assert "Total projects" in result.output


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "tenderfeed" in result.output
