"""Summary: Tests for configuration loading.

Importance: Ensures defaults, .env, and environment overrides behave correctly.
Alternatives: Validate configuration manually during runtime.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from mailient.config import AppConfig, load_defaults, load_dotenv


DEFAULTS = {
    "db_path": "test.db",
    "ai_provider": "mock",
    "openai_api_key": "",
    "openai_model": "gpt-4o-mini",
    "openrouter_api_key": "",
    "openrouter_model": "deepseek/deepseek-r1-0528:free",
    "openrouter_fallback_models": "qwen/a:free, ,google/b:free",
    "ollama_url": "http://localhost:11434",
    "ollama_model": "llama3",
    "api_host": "127.0.0.1",
    "api_port": "8000",
    "api_key": "",
    "default_user_name": "Local User",
    "default_user_email": "local@mailient",
    "token_secret": "test-secret",
    "app_base_url": "http://localhost:8000",
    "search_provider": "gmail",
    "search_fixture_path": "data/mock_emails.json",
    "gmail_api_base_url": "https://gmail.googleapis.com/gmail/v1",
    "google_calendar_base_url": "https://www.googleapis.com/calendar/v3",
    "cal_api_url": "https://api.cal.com/v2",
    "cal_api_key": "",
}
OVERRIDDEN = (
    "MAILIENT_DB_PATH",
    "MAILIENT_AI_PROVIDER",
    "MAILIENT_API_PORT",
    "MAILIENT_SEARCH_PROVIDER",
    "OPENAI_API_KEY",
    "OPENROUTER_API_KEY",
    "OPENROUTER_FALLBACK_MODELS",
    "CAL_API_KEY",
)


def _write_defaults(root: Path) -> None:
    (root / "config").mkdir()
    (root / "config" / "defaults.json").write_text(json.dumps(DEFAULTS), encoding="utf-8")


def test_load_defaults_reads_json(tmp_path: Path) -> None:
    """Summary: Verify defaults are parsed from JSON.

    Importance: Confirms config file is the source of truth for variables.
    Alternatives: Hardcode defaults in the test.
    """

    defaults_path = tmp_path / "defaults.json"
    defaults_path.write_text("{\"db_path\": \"test.db\"}", encoding="utf-8")
    defaults = load_defaults(defaults_path)
    assert defaults["db_path"] == "test.db"


def test_load_defaults_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_defaults(tmp_path / "missing.json")


def test_load_dotenv_sets_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Ensure .env values populate environment variables without overriding.

    Importance: Real environment variables win over local .env files.
    Alternatives: Let .env values replace the environment.
    """

    env_path = tmp_path / ".env"
    env_path.write_text(
        "# local settings\nMAILIENT_AI_PROVIDER=\"ollama\"\nMAILIENT_API_KEY=from-file\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("MAILIENT_AI_PROVIDER", "unset")
    monkeypatch.delenv("MAILIENT_AI_PROVIDER")
    monkeypatch.setenv("MAILIENT_API_KEY", "from-env")
    load_dotenv(env_path)
    assert os.getenv("MAILIENT_AI_PROVIDER") == "ollama"
    assert os.getenv("MAILIENT_API_KEY") == "from-env"


def test_app_config_uses_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Verify AppConfig honors defaults when env is absent.

    Importance: Confirms config file remains the baseline for variables.
    Alternatives: Inline defaults directly in the AppConfig class.
    """

    _write_defaults(tmp_path)
    monkeypatch.chdir(tmp_path)
    for name in OVERRIDDEN:
        monkeypatch.delenv(name, raising=False)
    config = AppConfig.from_env()
    assert config.db_path == "test.db"
    assert config.ai_provider == "mock"
    assert config.openai_api_key is None
    assert config.openrouter_api_key is None
    assert config.openrouter_fallback_models == ("qwen/a:free", "google/b:free")
    assert config.api_port == 8000
    assert config.search_provider == "gmail"
    assert config.token_secret == "test-secret"
    assert config.cal_api_key == ""


def test_app_config_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_defaults(tmp_path)
    monkeypatch.chdir(tmp_path)
    for name in OVERRIDDEN:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MAILIENT_SEARCH_PROVIDER", "mock")
    monkeypatch.setenv("MAILIENT_API_PORT", "9001")
    monkeypatch.setenv("CAL_API_KEY", "cal-key")
    monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")
    monkeypatch.setenv("OPENROUTER_FALLBACK_MODELS", "x/one:free")
    config = AppConfig.from_env()
    assert config.search_provider == "mock"
    assert config.api_port == 9001
    assert config.cal_api_key == "cal-key"
    assert config.openrouter_api_key == "or-key"
    assert config.openrouter_fallback_models == ("x/one:free",)
