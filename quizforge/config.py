"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

config.py - Settings for the AI boundary and export defaults

Checks (in order):
1. Environment variables: QUIZFORGE_API_KEY (or ANTHROPIC_API_KEY),
   QUIZFORGE_API_URL, QUIZFORGE_MODEL
2. The YAML file named by QUIZFORGE_CONFIG (default ./quizforge.yaml)
3. Built-in defaults

Example quizforge.yaml:

    api_url: https://quiz-proxy.example.edu/api/anthropic
    proxy: true
    model: claude-sonnet-4-20250514
    export:
      time_limit: 30
      attempts_allowed: 2

SECURITY: a config file holding an API key should not be readable by other
users; a warning is logged when it is.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from quizforge.errors import ConfigurationError
from quizforge.export import ExportSettings


logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 8000
DEFAULT_CONFIG_FILE = "quizforge.yaml"


@dataclass
class QuizForgeConfig:
    api_url: str = DEFAULT_API_URL
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    # The URL is a rate-limited proxy that holds the key server-side
    proxy: bool = False
    export: ExportSettings = field(default_factory=ExportSettings)
    source: Optional[Path] = None

    def require_api_access(self) -> None:
        """
        Fail before any network call when the AI path cannot authenticate.

        Raises:
            ConfigurationError: No API key and not talking to a proxy
        """
        if not self.api_key and not self.proxy:
            raise ConfigurationError(
                "No API key configured for AI parsing.\n\n"
                "Option 1 - Environment variable:\n"
                "  export QUIZFORGE_API_KEY='your_key'\n\n"
                "Option 2 - quizforge.yaml:\n"
                "  api_key: your_key\n"
                "  (then: chmod 600 quizforge.yaml)\n\n"
                "Option 3 - a rate-limited proxy:\n"
                "  api_url: https://your-proxy/api/anthropic\n"
                "  proxy: true"
            )


def _check_file_permissions(config_file: Path) -> None:
    """Warn if a config file holding a key has insecure permissions."""
    try:
        mode = os.stat(config_file).st_mode
        if mode & (stat.S_IRWXG | stat.S_IRWXO):
            logger.warning(
                "Config file %s holds an API key and is readable by other users. "
                "Fix with: chmod 600 %s", config_file, config_file,
            )
    except OSError:
        pass  # Can't check permissions (e.g., Windows)


def read_config_file(config_file: Path) -> Dict[str, Any]:
    """
    Load the YAML mapping from a config file.

    Raises:
        ConfigurationError: Unreadable file, malformed YAML, or a top level
            that is not a mapping
    """
    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {config_file}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Malformed YAML in {config_file}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_file} must contain a mapping")
    return data


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Config value {name!r} must be an integer, got {value!r}") from e


def load_config(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> QuizForgeConfig:
    """
    Build the effective configuration.

    Args:
        config_path: Explicit YAML path (overrides QUIZFORGE_CONFIG)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        QuizForgeConfig
    """
    env = os.environ if environ is None else environ
    config = QuizForgeConfig()

    path_value = config_path or env.get("QUIZFORGE_CONFIG")
    config_file = Path(path_value) if path_value else Path.cwd() / DEFAULT_CONFIG_FILE

    if config_file.is_file():
        data = read_config_file(config_file)
        config.source = config_file

        config.api_url = str(data.get("api_url") or config.api_url)
        config.api_key = data.get("api_key") or None
        config.model = str(data.get("model") or config.model)
        if data.get("max_tokens") is not None:
            config.max_tokens = _as_int(data["max_tokens"], "max_tokens")
        config.proxy = bool(data.get("proxy", False))

        export = data.get("export") or {}
        if not isinstance(export, dict):
            raise ConfigurationError(f"'export' in {config_file} must be a mapping")
        config.export = ExportSettings.from_mapping(export)

        if config.api_key:
            _check_file_permissions(config_file)
    elif path_value:
        raise ConfigurationError(f"Config file not found: {config_file}")

    # Environment wins over the file
    env_key = env.get("QUIZFORGE_API_KEY") or env.get("ANTHROPIC_API_KEY")
    if env_key:
        config.api_key = env_key
    if env.get("QUIZFORGE_API_URL"):
        config.api_url = env["QUIZFORGE_API_URL"]
    if env.get("QUIZFORGE_MODEL"):
        config.model = env["QUIZFORGE_MODEL"]

    logger.debug("Config: url=%s model=%s proxy=%s file=%s",
                 config.api_url, config.model, config.proxy, config.source)
    return config
