"""Tests for configuration module."""

import json
import os
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
import pytz

from activity_digest.config import DEFAULT_MODELS, Settings, load_settings
from activity_digest.retry import RetryPolicy


class TestSettings:
    """Tests for Settings class."""

    def test_default_values(self):
        """Test that default values are set correctly."""
        settings = Settings(_env_file=None)

        assert settings.mode == "organization"
        assert settings.period_days == 7
        assert settings.batch_size == 10
        assert settings.max_retries == 3
        assert settings.retry_initial_delay == 1.0
        assert settings.max_direct_commits == 50
        assert settings.pr_body_max_length == 500
        assert settings.cache_dir == ".cache"
        assert settings.cache_ttl_minutes == 30
        assert settings.ai_provider == "anthropic"
        assert settings.strict_rate_limit_detection is True
        assert settings.archive_dir == "archive"
        assert settings.log_format == "text"

    def test_repo_list_with_whitespace(self):
        settings = Settings(_env_file=None, repos="owner/repo1, owner/repo2 ,owner/repo3")
        assert settings.repo_list == ["owner/repo1", "owner/repo2", "owner/repo3"]

    def test_repo_list_empty(self):
        assert Settings(_env_file=None, repos="").repo_list == []

    def test_invalid_repo_format(self):
        with pytest.raises(ValueError, match="Invalid repository format"):
            Settings(_env_file=None, repos="owner/repo,not-a-repo")

    def test_topic_and_filter_lists(self):
        settings = Settings(
            _env_file=None,
            topics="cli, api",
            include_repos="svc-",
            exclude_repos="archive,legacy",
        )
        assert settings.topic_list == ["cli", "api"]
        assert settings.include_list == ["svc-"]
        assert settings.exclude_list == ["archive", "legacy"]

    def test_invalid_timezone(self):
        with pytest.raises(ValueError, match="Invalid timezone"):
            Settings(_env_file=None, timezone="Mars/Olympus")

    def test_visibility_filters_exclusive(self):
        with pytest.raises(ValueError, match="only_public and only_private"):
            Settings(_env_file=None, only_public=True, only_private=True)

    @pytest.mark.parametrize("batch_size", [0, 51])
    def test_batch_size_bounds(self, batch_size):
        with pytest.raises(ValueError):
            Settings(_env_file=None, batch_size=batch_size)

    def test_env_variables(self):
        env = {"GITHUB_TOKEN": "ghp_env", "MODE": "user", "GITHUB_USER": "alice", "BATCH_SIZE": "4"}
        with patch.dict(os.environ, env):
            settings = Settings(_env_file=None)
        assert settings.github_token == "ghp_env"
        assert settings.mode == "user"
        assert settings.github_user == "alice"
        assert settings.batch_size == 4

    def test_config_json(self, tmp_path, monkeypatch):
        (tmp_path / "config.json").write_text(
            json.dumps({"organization": "octo", "period_days": 14, "language": "Portuguese"})
        )
        monkeypatch.chdir(tmp_path)

        settings = Settings(_env_file=None)

        assert settings.organization == "octo"
        assert settings.period_days == 14
        assert settings.language == "Portuguese"

    def test_env_overrides_config_json(self, tmp_path, monkeypatch):
        (tmp_path / "config.json").write_text(json.dumps({"organization": "from-file"}))
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("ORGANIZATION", "from-env")

        assert Settings(_env_file=None).organization == "from-env"

    def test_load_settings_overrides(self, monkeypatch):
        monkeypatch.setenv("PERIOD_DAYS", "3")
        settings = load_settings(_env_file=None, period_days=30)
        assert settings.period_days == 30


class TestCheckSource:
    """Tests for Settings.check_source."""

    @pytest.mark.parametrize(
        "mode,message",
        [
            ("organization", "Organization name is required"),
            ("user", "Username is required"),
            ("topics", "At least one topic is required"),
            ("file", "Repository file path is required"),
            ("list", "At least one repository is required"),
        ],
    )
    def test_missing_source(self, mode, message):
        settings = Settings(_env_file=None, mode=mode)
        with pytest.raises(ValueError, match=message):
            settings.check_source()

    def test_valid_source(self):
        Settings(_env_file=None, mode="list", repos="octo/api").check_source()


class TestDerivedConfig:
    """Tests for retry, period and LLM helpers."""

    def test_retry_policy(self):
        settings = Settings(_env_file=None, max_retries=5, retry_initial_delay=0.5)
        assert settings.get_retry_policy() == RetryPolicy(max_retries=5, initial_delay=0.5)

    def test_period_starts_at_midnight(self):
        settings = Settings(_env_file=None, period_days=7, timezone="America/New_York")
        now = datetime(2024, 3, 15, 18, 30, tzinfo=timezone.utc)

        start, end = settings.get_period(now)

        tz = pytz.timezone("America/New_York")
        assert start == tz.localize(datetime(2024, 3, 8, 0, 0))
        assert end == now
        assert start.date().isoformat() == "2024-03-08"

    def test_llm_config_anthropic_default_model(self):
        settings = Settings(_env_file=None, anthropic_api_key="sk-ant")
        config = settings.get_llm_config()
        assert config["api_key"] == "sk-ant"
        assert config["model"] == DEFAULT_MODELS["anthropic"]
        assert config["max_tokens"] == 4000

    def test_llm_config_generic_key_wins(self):
        settings = Settings(
            _env_file=None,
            ai_provider="openai",
            ai_api_key="sk-generic",
            openai_api_key="sk-openai",
            ai_model="gpt-4o-mini",
        )
        config = settings.get_llm_config()
        assert config["api_key"] == "sk-generic"
        assert config["model"] == "gpt-4o-mini"
