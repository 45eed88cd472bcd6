from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from platformdirs import PlatformDirs

from .local_storage import DEFAULT_QUOTA_BYTES
from .remote.firestore import DEFAULT_BASE_URL, DEFAULT_DATABASE

logger = logging.getLogger(__name__)

APP_NAME = "glyphshare"
APP_AUTHOR = "glyphshare"
CONFIG_FILENAME = "config.json"
PLACEHOLDER_API_KEY = "YOUR_API_KEY"

ENV_API_KEY = "GLYPHSHARE_API_KEY"
ENV_PROJECT_ID = "GLYPHSHARE_PROJECT_ID"
ENV_DATA_DIR = "GLYPHSHARE_DATA_DIR"
ENV_SEED = "GLYPHSHARE_SEED"


def _dirs() -> PlatformDirs:
    return PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR)


def default_data_dir() -> Path:
    return Path(_dirs().user_data_dir)


def default_config_path() -> Path:
    return Path(_dirs().user_config_dir) / CONFIG_FILENAME


@dataclass
class RemoteConfig:
    """Connection settings for the shared Firestore database.

    Left empty (or with the placeholder api key) the app runs local-only.
    """

    api_key: str = ""
    project_id: str = ""
    database: str = DEFAULT_DATABASE
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 30.0

    @property
    def is_configured(self) -> bool:
        key = self.api_key.strip()
        return bool(key) and key != PLACEHOLDER_API_KEY and bool(self.project_id.strip())


@dataclass
class AppConfig:
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    data_dir: Path = field(default_factory=default_data_dir)
    local_quota_bytes: int = DEFAULT_QUOTA_BYTES
    random_seed: Optional[int] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AppConfig":
        """Build a config from a JSON-style dict. Missing fields keep defaults."""
        cfg = cls()
        remote = raw.get("remote")
        if isinstance(remote, dict):
            cfg.remote = RemoteConfig(
                api_key=str(remote.get("api_key", "")),
                project_id=str(remote.get("project_id", "")),
                database=str(remote.get("database", DEFAULT_DATABASE)),
                base_url=str(remote.get("base_url", DEFAULT_BASE_URL)),
                timeout=float(remote.get("timeout", 30.0)),
            )
        if raw.get("data_dir"):
            cfg.data_dir = Path(str(raw["data_dir"])).expanduser()
        if "local_quota_bytes" in raw:
            cfg.local_quota_bytes = int(raw["local_quota_bytes"])
        if raw.get("random_seed") is not None:
            cfg.random_seed = int(raw["random_seed"])
        return cfg

    def to_dict(self) -> Dict[str, Any]:
        return {
            "remote": asdict(self.remote),
            "data_dir": str(self.data_dir),
            "local_quota_bytes": self.local_quota_bytes,
            "random_seed": self.random_seed,
        }

    @classmethod
    def from_json(cls, path: Path) -> "AppConfig":
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")
        return cls.from_dict(raw)

    def to_json(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, sort_keys=True)

    def apply_env(self, environ: Optional[Dict[str, str]] = None) -> "AppConfig":
        env = os.environ if environ is None else environ
        if env.get(ENV_API_KEY):
            self.remote.api_key = env[ENV_API_KEY]
        if env.get(ENV_PROJECT_ID):
            self.remote.project_id = env[ENV_PROJECT_ID]
        if env.get(ENV_DATA_DIR):
            self.data_dir = Path(env[ENV_DATA_DIR]).expanduser()
        seed = env.get(ENV_SEED)
        if seed:
            try:
                self.random_seed = int(seed)
            except ValueError:
                logger.warning("Ignoring non-integer %s=%r", ENV_SEED, seed)
        return self

    @classmethod
    def load(cls, path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> "AppConfig":
        """Load the config file (if any) and apply environment overrides.

        An unreadable or malformed file is logged and ignored.
        """
        config_path = path or default_config_path()
        cfg = cls()
        if config_path.exists():
            try:
                cfg = cls.from_json(config_path)
                logger.info("Loaded config from %s", config_path)
            except (OSError, ValueError, TypeError) as e:
                logger.warning("Failed to load config from %s: %s", config_path, e)
                cfg = cls()
        elif path is not None:
            logger.warning("Config file %s does not exist; using defaults", path)
        return cfg.apply_env(environ)
