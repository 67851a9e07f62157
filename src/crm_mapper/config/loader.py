"""Configuration loader for the CRM export mapper.

Provides centralized access to provider, prompt and editing settings.
Environment variables override the YAML file where noted.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

logger = structlog.get_logger(__name__)

CONFIG_FILE = Path(__file__).parent / "mapper_config.yaml"


class ConfigLoader:
    """Loads and provides access to mapper configuration."""

    _instance: Optional[ConfigLoader] = None
    _config: Optional[dict[str, Any]] = None

    def __new__(cls) -> ConfigLoader:
        """Singleton pattern - ensure only one config instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize config loader (only runs once due to singleton)."""
        if self._config is None:
            self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        if CONFIG_FILE.exists():
            with open(CONFIG_FILE, encoding="utf-8") as f:
                self._config = yaml.safe_load(f) or {}
            logger.debug("config_loaded", path=str(CONFIG_FILE))
        else:
            logger.warning("config_file_not_found", path=str(CONFIG_FILE))
            self._config = {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key.

        Examples:
            config.get("llm.model")
            config.get("relay.timeout_seconds")
            config.get("nonexistent.key", default=100)
        """
        if not self._config:
            return default

        keys = key.split(".")
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def get_section(self, section: str) -> dict[str, Any]:
        """Get entire configuration section."""
        return self.get(section, default={})

    def reload(self) -> None:
        """Reload configuration from file."""
        self._config = None
        self._load_config()


# Singleton instance
_config = ConfigLoader()


def get_config() -> ConfigLoader:
    """Get the global config instance."""
    return _config


def get_llm_provider() -> str:
    """Provider name: anthropic, openai or relay. CRM_MAPPER_PROVIDER wins."""
    return os.getenv("CRM_MAPPER_PROVIDER") or _config.get("llm.provider", "anthropic")


def get_llm_model() -> str:
    """Anthropic model name."""
    return os.getenv("CLAUDE_MODEL") or _config.get("llm.model", "claude-sonnet-4-20250514")


def get_openai_model() -> str:
    return os.getenv("OPENAI_MODEL") or _config.get("llm.openai_model", "gpt-4o")


def get_llm_max_tokens() -> int:
    return _config.get("llm.max_tokens", 8192)


def get_llm_temperature() -> float:
    return _config.get("llm.temperature", 0.0)


def get_relay_url() -> str:
    """Endpoint of the prompt relay backend."""
    return os.getenv("CRM_MAPPER_RELAY_URL") or _config.get(
        "relay.url", "http://localhost:30003/api/generate"
    )


def get_relay_timeout() -> float:
    return float(_config.get("relay.timeout_seconds", 120))


def get_prompt_version(prompt_name: str) -> str:
    """Active prompt template version for a prompt family."""
    return _config.get(f"prompts.{prompt_name}", "v1.0")


def get_default_separator() -> str:
    """Separator used by Concatenate rules when the editor gives none."""
    return _config.get("editing.default_separator", ", ")
