"""
Configuration for the OSINT Copilot client.

Settings come from (lowest to highest precedence):
- dataclass defaults
- copilot.yaml (or the file named by COPILOT_CONFIG)
- environment variables, after .env is loaded
"""

import os
import yaml
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field
from dotenv import load_dotenv

from remote.retry import RetryConfig

# Load .env - local first, then user config dir
load_dotenv()
USER_CONFIG_DIR = Path.home() / ".osint-copilot"
if (USER_CONFIG_DIR / "config.env").exists():
    load_dotenv(USER_CONFIG_DIR / "config.env")

DEFAULT_CONFIG_FILE = Path("copilot.yaml")
DEFAULT_DATA_DIR = Path("copilot-data")


# Chat and job submission: the user is waiting, fail fast
INTERACTIVE_RETRY = RetryConfig(
    max_attempts=3,
    base_delay=0.5,
    max_delay=2.0,
    base_timeout=30.0,
    max_timeout=60.0,
)

# Extraction, report download, leak search: long-running, tolerate flaky networks
BACKGROUND_RETRY = RetryConfig(
    max_attempts=7,
    base_delay=1.0,
    max_delay=32.0,
    base_timeout=45.0,
    max_timeout=120.0,
    timeout_multiplier=1.5,
)


@dataclass
class ApiSettings:
    """Remote service endpoint and credentials."""
    base_url: str = "https://api.osint-copilot.com"
    api_key: str = ""
    chat_model: str = "gpt-4o-mini"
    darkweb_model: str = "gpt-5-mini"
    darkweb_threads: int = 8
    leak_search_country: Optional[str] = None
    leak_search_max_providers: int = 5
    leak_search_parallel: bool = True


@dataclass
class StorageSettings:
    """Where conversations and entities live on disk."""
    data_dir: Path = DEFAULT_DATA_DIR

    @property
    def conversations_dir(self) -> Path:
        return self.data_dir / "conversations"

    @property
    def entities_file(self) -> Path:
        return self.data_dir / "entities.json"


@dataclass
class PollingSettings:
    """Job polling budgets (seconds)."""
    report_budget: float = 5 * 60
    darkweb_budget: float = 10 * 60
    max_consecutive_errors: int = 5


@dataclass
class Settings:
    api: ApiSettings = field(default_factory=ApiSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    polling: PollingSettings = field(default_factory=PollingSettings)
    interactive_retry: RetryConfig = field(default_factory=lambda: INTERACTIVE_RETRY)
    background_retry: RetryConfig = field(default_factory=lambda: BACKGROUND_RETRY)
    max_chunk_chars: int = 8000

    @property
    def has_api_key(self) -> bool:
        return bool(self.api.api_key)


def _apply_section(target, values: dict) -> None:
    """Copy known keys from a YAML section onto a dataclass."""
    for key, value in (values or {}).items():
        if hasattr(target, key):
            setattr(target, key, value)
        else:
            print(f"[config] Ignoring unknown setting: {key}")


def load_settings(config_file: Optional[Path] = None) -> Settings:
    """Build settings from defaults, YAML file, then environment."""
    settings = Settings()

    path = config_file or Path(os.environ.get("COPILOT_CONFIG", DEFAULT_CONFIG_FILE))
    if path.exists():
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        _apply_section(settings.api, data.get("api"))
        _apply_section(settings.polling, data.get("polling"))
        storage = data.get("storage") or {}
        if "data_dir" in storage:
            settings.storage.data_dir = Path(storage["data_dir"])
        if "max_chunk_chars" in data:
            settings.max_chunk_chars = int(data["max_chunk_chars"])

    if os.environ.get("COPILOT_API_URL"):
        settings.api.base_url = os.environ["COPILOT_API_URL"]
    if os.environ.get("COPILOT_API_KEY"):
        settings.api.api_key = os.environ["COPILOT_API_KEY"]
    if os.environ.get("COPILOT_DATA_DIR"):
        settings.storage.data_dir = Path(os.environ["COPILOT_DATA_DIR"])

    settings.api.base_url = settings.api.base_url.rstrip("/")
    return settings
