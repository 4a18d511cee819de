"""Summary: Application configuration for Mailient Arcus.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for collaborators and storage.

    Importance: Ensures the chat orchestrator and its clients derive settings from one source.
    Alternatives: Read environment variables ad hoc inside each client.
    """

    db_path: str
    ai_provider: str
    openai_api_key: str | None
    openai_model: str
    openrouter_api_key: str | None
    openrouter_model: str
    openrouter_fallback_models: tuple[str, ...]
    ollama_url: str
    ollama_model: str
    api_host: str
    api_port: int
    api_key: str
    default_user_name: str
    default_user_email: str
    token_secret: str
    app_base_url: str
    search_provider: str
    search_fixture_path: str
    gmail_api_base_url: str
    google_calendar_base_url: str
    cal_api_url: str
    cal_api_key: str

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        return AppConfig(
            db_path=os.getenv("MAILIENT_DB_PATH", defaults["db_path"]),
            ai_provider=os.getenv("MAILIENT_AI_PROVIDER", defaults["ai_provider"]),
            openai_api_key=os.getenv("OPENAI_API_KEY") or defaults["openai_api_key"] or None,
            openai_model=os.getenv("OPENAI_MODEL", defaults["openai_model"]),
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY")
            or defaults["openrouter_api_key"]
            or None,
            openrouter_model=os.getenv("OPENROUTER_MODEL", defaults["openrouter_model"]),
            openrouter_fallback_models=split_list(
                os.getenv("OPENROUTER_FALLBACK_MODELS", defaults["openrouter_fallback_models"])
            ),
            ollama_url=os.getenv("OLLAMA_URL", defaults["ollama_url"]),
            ollama_model=os.getenv("OLLAMA_MODEL", defaults["ollama_model"]),
            api_host=os.getenv("MAILIENT_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("MAILIENT_API_PORT", defaults["api_port"])),
            api_key=os.getenv("MAILIENT_API_KEY", defaults["api_key"]),
            default_user_name=os.getenv(
                "MAILIENT_DEFAULT_USER_NAME", defaults["default_user_name"]
            ),
            default_user_email=os.getenv(
                "MAILIENT_DEFAULT_USER_EMAIL", defaults["default_user_email"]
            ),
            token_secret=os.getenv("MAILIENT_TOKEN_SECRET", defaults["token_secret"]),
            app_base_url=os.getenv("MAILIENT_APP_BASE_URL", defaults["app_base_url"]),
            search_provider=os.getenv("MAILIENT_SEARCH_PROVIDER", defaults["search_provider"]),
            search_fixture_path=os.getenv(
                "MAILIENT_SEARCH_FIXTURE", defaults["search_fixture_path"]
            ),
            gmail_api_base_url=os.getenv("GMAIL_API_BASE_URL", defaults["gmail_api_base_url"]),
            google_calendar_base_url=os.getenv(
                "GOOGLE_CALENDAR_BASE_URL", defaults["google_calendar_base_url"]
            ),
            cal_api_url=os.getenv("CAL_API_URL", defaults["cal_api_url"]),
            cal_api_key=os.getenv("CAL_API_KEY", defaults["cal_api_key"]),
        )


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def split_list(value: str) -> tuple[str, ...]:
    """Summary: Split a comma-separated setting into trimmed, non-empty items."""

    return tuple(item.strip() for item in value.split(",") if item.strip())


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps API keys and OAuth secrets out of code for local runs.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))
