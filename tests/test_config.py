"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from tenderfeed.core.config import AppConfig, ConfigError, load_app_config, parse_param_pairs


def write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "app.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadAppConfig:
    def test_missing_file_gives_defaults(self, tmp_path, monkeypatch) -> None:
        monkeypatch.delenv("HTTP_VERIFY_SSL", raising=False)
        config = load_app_config(tmp_path / "absent.yaml")

        assert config == AppConfig()
        assert config.http.verify_ssl is True
        assert config.http.max_retries == 3
        assert config.http.retry_wait_ms == 500
        assert config.run.max_run_seconds is None

    def test_missing_file_honours_verify_env(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("HTTP_VERIFY_SSL", "false")
        assert load_app_config(tmp_path / "absent.yaml").http.verify_ssl is False

    def test_environment_fills_unset_keys_only(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("TENDERFEED_DATABASE_URL", "sqlite:///elsewhere.db")
        monkeypatch.setenv("TENDERFEED_LOG_LEVEL", "DEBUG")
        path = write(tmp_path, "database:\n  url: sqlite:///from-file.db\n")

        config = load_app_config(path)

        assert config.database.url == "sqlite:///from-file.db"
        assert config.logging.level == "DEBUG"

    def test_env_expansion(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("BC_BID_SESSION_ID", "sess-1")
        monkeypatch.delenv("BC_BID_CSRF_TOKEN", raising=False)
        monkeypatch.setenv("HTTP_VERIFY_SSL", "0")
        path = write(
            tmp_path,
            """
http:
  verify_ssl: ${HTTP_VERIFY_SSL:-true}
sources:
  bc-bid:
    enabled: true
    params:
      session_id: ${BC_BID_SESSION_ID}
      csrf_token: ${BC_BID_CSRF_TOKEN:-}
      pages: ${BC_BID_PAGES:-3}
""",
        )
        config = load_app_config(path)

        assert config.http.verify_ssl is False
        assert config.sources["bc-bid"].params == {"session_id": "sess-1", "csrf_token": "", "pages": "3"}

    def test_empty_sections(self, tmp_path) -> None:
        config = load_app_config(write(tmp_path, "sources:\n  kenora-tenders:\n    enabled: false\n"))
        assert config.sources["kenora-tenders"].enabled is False
        assert config.sources["kenora-tenders"].params == {}

    def test_empty_file(self, tmp_path, monkeypatch) -> None:
        monkeypatch.delenv("HTTP_VERIFY_SSL", raising=False)
        assert load_app_config(write(tmp_path, "")) == AppConfig()

    def test_invalid_yaml(self, tmp_path) -> None:
        with pytest.raises(ConfigError, match="Invalid YAML") as info:
            load_app_config(write(tmp_path, "http: [unclosed"))
        assert info.value.details

    def test_validation_error(self, tmp_path) -> None:
        path = write(tmp_path, "politeness:\n  min_delay_ms: 500\n  max_delay_ms: 100\n")
        with pytest.raises(ConfigError) as info:
            load_app_config(path)
        assert info.value.path == path
        assert "max_delay_ms" in info.value.details

    def test_top_level_must_be_mapping(self, tmp_path) -> None:
        with pytest.raises(ConfigError, match="mapping"):
            load_app_config(write(tmp_path, "- a\n- b\n"))


class TestParamPairs:
    def test_pairs(self) -> None:
        assert parse_param_pairs(["limit=20", " pages = 3 ", "cookie_header=a=1; b=2", "token="]) == {
            "limit": "20",
            "pages": "3",
            "cookie_header": "a=1; b=2",
            "token": "",
        }
        assert parse_param_pairs(None) == {}

    @pytest.mark.parametrize("bad", ["limit", "=5"])
    def test_bad_pair(self, bad: str) -> None:
        with pytest.raises(ConfigError):
            parse_param_pairs([bad])


def test_shipped_config_loads(monkeypatch) -> None:
    monkeypatch.delenv("HTTP_VERIFY_SSL", raising=False)
    config = load_app_config(Path(__file__).parent.parent / "configs" / "app.yaml")

    assert config.database.url.startswith("sqlite:///")
    assert config.run.max_run_seconds == 900
    assert "bc-bid" in config.sources
