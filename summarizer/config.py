#!/usr/bin/env python3
"""
Pipeline Configuration
======================
Settings for the endpoint summarization pipeline.

Precedence (lowest to highest): dataclass defaults, config file (JSON/YAML),
``RESTAPI_*`` environment variables, CLI flags applied by ``main.py``.

The AI backend API key lives outside the dataclass: it is resolved from the
environment first, then from the user config file written by
``restapisummarizer config set api-key``.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Set

import yaml

logger = logging.getLogger("restapisummarizer.summarizer.config")

USER_CONFIG_DIR = Path.home() / ".restapisummarizer"
USER_CONFIG_FILE = USER_CONFIG_DIR / "config.yaml"
DEFAULT_CACHE_DIR = str(USER_CONFIG_DIR / "cache")

# Environment variables consulted for the API key, per provider
PROVIDER_KEY_ENV = {
    "gemini": ["GEMINI_API_KEY", "GOOGLE_API_KEY"],
    "anthropic": ["ANTHROPIC_API_KEY"],
    "openai": ["OPENAI_API_KEY"],
    "bedrock": ["AWS_ACCESS_KEY_ID"],
}


class ConfigError(ValueError):
    """Invalid configuration value or unreadable config file."""
    pass


@dataclass
class PipelineConfig:
    """
    Pipeline configuration with sensible defaults.
    Can be loaded from environment variables, config file, or CLI args.
    """
    # Dispatcher
    concurrency: int = 4
    run_timeout: Optional[float] = 300.0
    request_timeout: Optional[float] = 60.0
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 10.0
    backoff_jitter: float = 0.5

    # Cache
    use_cache: bool = True
    cache_dir: str = DEFAULT_CACHE_DIR
    cache_ttl_seconds: Optional[int] = None  # None = entries never expire

    # LLM provider
    llm_provider: str = "gemini"  # gemini, anthropic, openai, bedrock, mock
    model: Optional[str] = None  # If None, uses provider default
    max_tokens: int = 100
    temperature: float = 0.2
    max_summary_length: int = 50

    # Normalization / reporting
    unknown_methods: str = "warn"  # warn, drop
    max_failure_ratio: Optional[float] = None  # None = tolerate any per-item failure

    # Scanning
    max_file_size_mb: float = 10
    ignore_dirs: Set[str] = field(default_factory=set)

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Raise ConfigError for values the pipeline cannot run with."""
        if self.concurrency < 1:
            raise ConfigError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.max_attempts < 1:
            raise ConfigError(f"max_attempts must be >= 1, got {self.max_attempts}")
        for name in ("run_timeout", "request_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")
        if self.backoff_base < 0 or self.backoff_max < 0 or self.backoff_jitter < 0:
            raise ConfigError("backoff parameters must be non-negative")
        if self.unknown_methods not in ("warn", "drop"):
            raise ConfigError(f"unknown_methods must be 'warn' or 'drop', got {self.unknown_methods!r}")
        if self.max_failure_ratio is not None and not 0 < self.max_failure_ratio <= 1:
            raise ConfigError(f"max_failure_ratio must be in (0, 1], got {self.max_failure_ratio}")

    @classmethod
    def from_env(cls, base: Optional["PipelineConfig"] = None) -> "PipelineConfig":
        """
        Overlay ``RESTAPI_*`` environment variables on ``base`` (or defaults).

        Environment Variables:
            RESTAPI_CONCURRENCY, RESTAPI_RUN_TIMEOUT, RESTAPI_REQUEST_TIMEOUT,
            RESTAPI_MAX_ATTEMPTS, RESTAPI_CACHE_DIR, RESTAPI_CACHE_TTL,
            RESTAPI_NO_CACHE, RESTAPI_UNKNOWN_METHODS, RESTAPI_MAX_FAILURE_RATIO,
            LLM_PROVIDER / RESTAPI_PROVIDER, LLM_MODEL / RESTAPI_MODEL
        """
        data = base.to_dict() if base else {}

        def env(name: str) -> Optional[str]:
            value = os.getenv(name)
            return value if value not in (None, "") else None

        try:
            if env("RESTAPI_CONCURRENCY"):
                data["concurrency"] = int(env("RESTAPI_CONCURRENCY"))
            if env("RESTAPI_RUN_TIMEOUT"):
                data["run_timeout"] = float(env("RESTAPI_RUN_TIMEOUT"))
            if env("RESTAPI_REQUEST_TIMEOUT"):
                data["request_timeout"] = float(env("RESTAPI_REQUEST_TIMEOUT"))
            if env("RESTAPI_MAX_ATTEMPTS"):
                data["max_attempts"] = int(env("RESTAPI_MAX_ATTEMPTS"))
            if env("RESTAPI_CACHE_DIR"):
                data["cache_dir"] = env("RESTAPI_CACHE_DIR")
            if env("RESTAPI_CACHE_TTL"):
                data["cache_ttl_seconds"] = int(env("RESTAPI_CACHE_TTL"))
            if env("RESTAPI_MAX_FAILURE_RATIO"):
                data["max_failure_ratio"] = float(env("RESTAPI_MAX_FAILURE_RATIO"))
        except ValueError as e:
            raise ConfigError(f"Invalid numeric environment setting: {e}") from e

        if env("RESTAPI_NO_CACHE"):
            data["use_cache"] = env("RESTAPI_NO_CACHE").lower() not in ("1", "true", "yes")
        if env("RESTAPI_UNKNOWN_METHODS"):
            data["unknown_methods"] = env("RESTAPI_UNKNOWN_METHODS").lower()

        provider = env("RESTAPI_PROVIDER") or env("LLM_PROVIDER")
        if provider:
            data["llm_provider"] = provider.lower()
        model = env("RESTAPI_MODEL") or env("LLM_MODEL")
        if model:
            data["model"] = model

        return cls._from_mapping(data)

    @classmethod
    def from_file(cls, path: str) -> "PipelineConfig":
        """Load configuration from JSON or YAML file."""
        try:
            with open(path, 'r') as f:
                if path.endswith(('.yaml', '.yml')):
                    data = yaml.safe_load(f) or {}
                else:
                    data = json.load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot parse config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return cls._from_mapping(data)

    @classmethod
    def _from_mapping(cls, data: Dict[str, Any]) -> "PipelineConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
        values = {k: v for k, v in data.items() if k in known}

        # Convert ignore_dirs list to set if present
        if isinstance(values.get("ignore_dirs"), list):
            values["ignore_dirs"] = set(values["ignore_dirs"])
        try:
            return cls(**values)
        except TypeError as e:
            raise ConfigError(str(e)) from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["ignore_dirs"] = sorted(self.ignore_dirs)
        return data


# =============================================================================
# API KEY
# =============================================================================

def load_user_config() -> Dict[str, Any]:
    """Read ``~/.restapisummarizer/config.yaml``; a missing or broken file is empty."""
    if not USER_CONFIG_FILE.exists():
        return {}
    try:
        data = yaml.safe_load(USER_CONFIG_FILE.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not read {USER_CONFIG_FILE}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def resolve_api_key(provider: str = "gemini") -> Optional[str]:
    """
    Find the API key for ``provider``.

    Order: ``LLM_API_KEY``, provider-specific environment variables, then the
    user config file (``<provider>_api_key`` or ``api_key``).
    """
    for name in ["LLM_API_KEY"] + PROVIDER_KEY_ENV.get(provider, []):
        value = os.getenv(name)
        if value:
            return value

    user_config = load_user_config()
    return user_config.get(f"{provider}_api_key") or user_config.get("api_key")


def save_api_key(api_key: str, provider: str = "gemini") -> Path:
    """Persist the key to the user config file, keeping any other settings."""
    data = load_user_config()
    data[f"{provider}_api_key"] = api_key
    USER_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    USER_CONFIG_FILE.write_text(yaml.safe_dump(data, default_flow_style=False), encoding="utf-8")
    logger.info(f"Saved {provider} API key to {USER_CONFIG_FILE}")
    return USER_CONFIG_FILE


def mask_api_key(key: str) -> str:
    """Mask an API key for display."""
    if len(key) <= 8:
        return "****"
    return key[:4] + "..." + key[-4:]
