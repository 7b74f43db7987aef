"""
Centralized configuration management.

Configuration is read from, in increasing priority:
1) `env.example` (committed, safe placeholders)
2) `env.local` (optional, MUST NOT be committed)
3) System environment variables

Files are looked up in the current working directory, so the CLI picks up the
env files of the directory it is run from.
"""

import os
from pathlib import Path

from dotenv import dotenv_values
from loguru import logger

ENV_FILES = ("env.example", "env.local")


class EnvironConfig:
    """
    Singleton holding the merged environment, with typed getters that fall
    back to a default for unset or blank values.
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(EnvironConfig, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._config: dict[str, str | None] = {}
            self._load_config(Path.cwd())
            EnvironConfig._initialized = True

    def _load_config(self, root: Path):
        for filename in ENV_FILES:
            path = root / filename
            if path.exists():
                self._config.update(dotenv_values(path))
                logger.debug("Loaded environment variables from {}", path)

        self._config.update(os.environ)

    def get(self, key, default=None):
        return self._config.get(key, default)

    def get_str(self, key: str, default: str = "") -> str:
        value = (self._config.get(key) or "").strip()
        return value or default

    def get_int(self, key: str, default: int) -> int:
        value = self.get_str(key)
        return int(value) if value else default

    def get_float(self, key: str, default: float) -> float:
        value = self.get_str(key)
        return float(value) if value else default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get_str(key).lower()
        if not value:
            return default
        return value in ("1", "true", "yes", "on")


# Global configuration instance
config = EnvironConfig()
