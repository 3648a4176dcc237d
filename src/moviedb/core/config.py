"""Configuration loading utilities."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

CONFIG_DIR = Path(os.environ.get("MOVIEDB_CONFIG_DIR", Path.home() / ".config" / "moviedb"))
CONFIG_FILE = CONFIG_DIR / "config.json"

DEFAULT_BASE_URL = "https://api.themoviedb.org/3/"


@dataclass(frozen=True, slots=True)
class Credentials:
    """API key plus the optional user session."""

    api_key: str = ""
    session_id: str = ""


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Construction-time settings for a :class:`~moviedb.services.client.MovieDb`."""

    credentials: Credentials = field(default_factory=Credentials)
    base_url: str = DEFAULT_BASE_URL
    use_default_limits: bool = False
    limit_ceiling: int = 40
    window_millis: int = 10_000
    timeout: Optional[int] = None  # milliseconds
    max_queue_wait_millis: Optional[int] = None

    @property
    def window_seconds(self) -> float:
        return self.window_millis / 1000

    @classmethod
    def load(cls, override: Optional[Dict[str, Any]] = None) -> "ClientConfig":
        """Load config from disk/.env, applying overrides."""

        _inject_dotenv()

        data: Dict[str, Any] = {}
        if CONFIG_FILE.exists():
            with CONFIG_FILE.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        if override:
            data.update(override)

        defaults = cls()
        creds_data = data.get("credentials", {})
        env_creds = _credentials_from_environment()
        creds_payload = {**creds_data, **env_creds, **(override or {}).get("credentials", {})}
        return cls(
            credentials=Credentials(**creds_payload) if creds_payload else Credentials(),
            base_url=data.get("base_url", defaults.base_url),
            use_default_limits=bool(data.get("use_default_limits", defaults.use_default_limits)),
            limit_ceiling=int(data.get("limit_ceiling", defaults.limit_ceiling)),
            window_millis=int(data.get("window_millis", defaults.window_millis)),
            timeout=data.get("timeout", defaults.timeout),
            max_queue_wait_millis=data.get("max_queue_wait_millis", defaults.max_queue_wait_millis),
        )


# Credential field -> environment variables, first non-empty wins.
CREDENTIAL_ENV = {
    "api_key": ("MOVIEDB_API_KEY", "TMDB_API_KEY"),
    "session_id": ("MOVIEDB_SESSION_ID", "TMDB_SESSION_ID"),
}


def _inject_dotenv() -> None:
    path = Path(os.environ.get("MOVIEDB_ENV_FILE", Path.cwd() / ".env"))
    if not path.is_file():
        return
    for key, value in _read_dotenv(path.read_text(encoding="utf-8")).items():
        os.environ.setdefault(key, value)


def _read_dotenv(text: str) -> Dict[str, str]:
    """``KEY=value`` pairs from a dotenv file; ``export`` prefixes and quotes are stripped."""

    pairs: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key or key.startswith("#"):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        pairs[key] = value
    return pairs


def _credentials_from_environment() -> Dict[str, str]:
    found: Dict[str, str] = {}
    for name, variables in CREDENTIAL_ENV.items():
        value = next((os.environ[var] for var in variables if os.environ.get(var)), "")
        if value:
            found[name] = value
    return found


def load_from_env() -> Credentials:
    """Credentials taken from the environment only."""

    return Credentials(**_credentials_from_environment())
