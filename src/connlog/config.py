"""
Configuration management.

Uses Pydantic Settings for environment variable handling and validation.
Values come from (highest priority first) the process environment, a ``.env``
file and an optional ``config.yaml``.
"""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        config_path = os.environ.get("CONNLOG_CONFIG_FILE")

    if config_path is None:
        # Look for config.yaml in common locations
        possible_paths = [
            "config.yaml",  # Current directory
            "../../config.yaml",  # Project root from src/connlog
        ]

        for path in possible_paths:
            if os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
            return config_data
    return {}


class RateLimitSettings(BaseSettings):
    """Per-client admission control."""

    requests: int = Field(
        default=5,
        gt=0,
        validation_alias=AliasChoices("CONNLOG_RATE_LIMIT_REQUESTS", "RATE_LIMIT"),
        description="Admitted requests per window and per client address",
    )
    window_seconds: int = Field(
        default=60,
        gt=0,
        validation_alias=AliasChoices("CONNLOG_RATE_LIMIT_WINDOW_SECONDS", "RATE_WINDOW_SECONDS"),
        description="Fixed window length in seconds",
    )
    sweep_interval_seconds: int = Field(
        default=300,
        gt=0,
        description="How often expired visitor entries are evicted",
    )

    model_config = SettingsConfigDict(
        env_prefix="CONNLOG_RATE_LIMIT_",
        case_sensitive=False,
        populate_by_name=True,
    )


class StorageSettings(BaseSettings):
    """Append-only connection log."""

    log_path: Path = Field(default=Path("logs.jsonl"), description="JSON Lines file receiving records")

    model_config = SettingsConfigDict(env_prefix="CONNLOG_STORAGE_", case_sensitive=False)


class RedactionSettings(BaseSettings):
    """Sensitive key handling."""

    extra_keys: List[str] = Field(
        default_factory=list,
        description="Keys redacted in addition to the built-in deny-list (JSON list in env)",
    )

    model_config = SettingsConfigDict(env_prefix="CONNLOG_REDACTION_", case_sensitive=False)


class NotificationSettings(BaseSettings):
    """Outbound chat notifications. A target without configuration is disabled."""

    discord_webhook_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("CONNLOG_NOTIFY_DISCORD_WEBHOOK_URL", "DISCORD_WEBHOOK_URL"),
        description="Discord-style webhook receiving {'content': text}",
    )
    telegram_bot_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("CONNLOG_NOTIFY_TELEGRAM_BOT_TOKEN", "TELEGRAM_BOT_TOKEN"),
        description="Telegram bot token",
    )
    telegram_chat_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("CONNLOG_NOTIFY_TELEGRAM_CHAT_ID", "TELEGRAM_CHAT_ID"),
        description="Telegram chat receiving the messages",
    )
    telegram_api_base: str = Field(default="https://api.telegram.org", description="Telegram Bot API base URL")
    timeout_seconds: float = Field(default=5.0, gt=0, description="Total timeout per outbound call")
    queue_size: int = Field(default=1000, gt=0, description="Pending notifications before new ones are dropped")
    workers: int = Field(default=2, gt=0, description="Concurrent delivery workers")
    drain_timeout_seconds: float = Field(default=5.0, ge=0, description="Shutdown wait for queued notifications")

    @field_validator("discord_webhook_url", "telegram_bot_token", "telegram_chat_id", mode="before")
    def blank_as_unset(cls, v: Any) -> Any:
        """Treat empty values as not configured."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    model_config = SettingsConfigDict(
        env_prefix="CONNLOG_NOTIFY_",
        case_sensitive=False,
        populate_by_name=True,
    )


class Settings(BaseSettings):
    """Main application settings."""

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="console", pattern=r"^(console|json)$", description="console or json")
    max_body_bytes: int = Field(default=1 << 20, gt=0, description="Maximum accepted request body (1 MiB)")

    # Component settings
    limiter: RateLimitSettings = Field(default_factory=RateLimitSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    redaction: RedactionSettings = Field(default_factory=RedactionSettings)
    notify: NotificationSettings = Field(default_factory=NotificationSettings)

    model_config = SettingsConfigDict(env_prefix="CONNLOG_", case_sensitive=False)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with .env, config file and env support."""

    # .env never overrides variables already present in the environment
    load_dotenv(os.environ.get("CONNLOG_ENV_FILE", ".env"), override=False)

    # Load config file data
    config_data = load_config_file()

    # Config file provides defaults, env vars override
    if config_data:
        _set_env_from_config(config_data)

    return Settings()


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    # First name is the one written, any of them already set wins over the file
    mappings = {
        ("server", "host"): ("CONNLOG_HOST",),
        ("server", "port"): ("CONNLOG_PORT",),
        ("server", "debug"): ("CONNLOG_DEBUG",),
        ("server", "log_level"): ("CONNLOG_LOG_LEVEL",),
        ("server", "log_format"): ("CONNLOG_LOG_FORMAT",),
        ("server", "max_body_bytes"): ("CONNLOG_MAX_BODY_BYTES",),
        ("rate_limit", "requests"): ("CONNLOG_RATE_LIMIT_REQUESTS", "RATE_LIMIT"),
        ("rate_limit", "window_seconds"): ("CONNLOG_RATE_LIMIT_WINDOW_SECONDS", "RATE_WINDOW_SECONDS"),
        ("rate_limit", "sweep_interval_seconds"): ("CONNLOG_RATE_LIMIT_SWEEP_INTERVAL_SECONDS",),
        ("storage", "log_path"): ("CONNLOG_STORAGE_LOG_PATH",),
        ("notify", "discord_webhook_url"): ("CONNLOG_NOTIFY_DISCORD_WEBHOOK_URL", "DISCORD_WEBHOOK_URL"),
        ("notify", "telegram_bot_token"): ("CONNLOG_NOTIFY_TELEGRAM_BOT_TOKEN", "TELEGRAM_BOT_TOKEN"),
        ("notify", "telegram_chat_id"): ("CONNLOG_NOTIFY_TELEGRAM_CHAT_ID", "TELEGRAM_CHAT_ID"),
        ("notify", "telegram_api_base"): ("CONNLOG_NOTIFY_TELEGRAM_API_BASE",),
        ("notify", "timeout_seconds"): ("CONNLOG_NOTIFY_TIMEOUT_SECONDS",),
        ("notify", "queue_size"): ("CONNLOG_NOTIFY_QUEUE_SIZE",),
        ("notify", "workers"): ("CONNLOG_NOTIFY_WORKERS",),
        ("notify", "drain_timeout_seconds"): ("CONNLOG_NOTIFY_DRAIN_TIMEOUT_SECONDS",),
    }

    for (section, key), env_vars in mappings.items():
        if not any(name in os.environ for name in env_vars):
            value = (config_data.get(section) or {}).get(key)
            if value is not None:
                os.environ[env_vars[0]] = str(value)

    # Handle extra redaction keys specially (convert list to JSON string)
    if "CONNLOG_REDACTION_EXTRA_KEYS" not in os.environ:
        extra_keys = (config_data.get("redaction") or {}).get("extra_keys")
        if extra_keys:
            os.environ["CONNLOG_REDACTION_EXTRA_KEYS"] = json.dumps(extra_keys)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
