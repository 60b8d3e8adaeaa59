"""Configuration management using TOML + environment variables."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from telegram.constants import ParseMode

CONFIG_DIR = Path.home() / ".telegram-notify"
CONFIG_FILE = CONFIG_DIR / "config.toml"

DEFAULT_API_URL = "https://api.telegram.org"
DEFAULT_LIMIT = 1024


class ConfigurationError(Exception):
    """Invalid or incomplete configuration."""


@dataclass
class TelegramConfig:
    token: str = ""
    chat_id: str = ""
    parse_mode: str = ParseMode.HTML.value
    api_url: str = DEFAULT_API_URL
    timeout: float = 30.0


@dataclass
class NotifyConfig:
    origin_id: str = ""
    limit: int = DEFAULT_LIMIT
    on_success: bool = False


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: str = ""


@dataclass
class AppConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def require_credentials(self) -> tuple[str, str]:
        """Return (token, chat_id) or fail if either is missing."""
        if not self.telegram.token:
            raise ConfigurationError("telegram token not defined (TELEGRAM_NOTIFY_TOKEN)")
        if not self.telegram.chat_id:
            raise ConfigurationError("telegram chat id not defined (TELEGRAM_NOTIFY_CHAT_ID)")
        return self.telegram.token, self.telegram.chat_id


def _config_path() -> Path:
    if env_path := os.environ.get("TELEGRAM_NOTIFY_CONFIG"):
        return Path(env_path).expanduser()
    return CONFIG_FILE


SUPPORTED_PARSE_MODES = (ParseMode.HTML.value, ParseMode.MARKDOWN_V2.value)


def _parse_mode(value: str) -> str:
    # Legacy "Markdown" has no way to escape every special character
    if value not in SUPPORTED_PARSE_MODES:
        allowed = ", ".join(SUPPORTED_PARSE_MODES)
        raise ConfigurationError(f"unsupported parse mode {value!r} (expected one of: {allowed})")
    return value


def _number(name: str, value: str, kind: type) -> int | float:
    try:
        return kind(value)
    except ValueError:
        raise ConfigurationError(f"invalid value for {name}: {value!r}") from None


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from TOML file with env var overrides."""
    config = AppConfig()
    config_file = path or _config_path()

    if config_file.exists():
        try:
            with open(config_file, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"invalid config file {config_file}: {e}") from e

        telegram = data.get("telegram", {})
        config.telegram.token = str(telegram.get("token", config.telegram.token))
        config.telegram.chat_id = str(telegram.get("chat_id", config.telegram.chat_id))
        config.telegram.parse_mode = telegram.get("parse_mode", config.telegram.parse_mode)
        config.telegram.api_url = telegram.get("api_url", config.telegram.api_url)
        config.telegram.timeout = telegram.get("timeout", config.telegram.timeout)

        notify = data.get("notify", {})
        config.notify.origin_id = notify.get("origin_id", config.notify.origin_id)
        config.notify.limit = notify.get("limit", config.notify.limit)
        config.notify.on_success = notify.get("on_success", config.notify.on_success)

        logging_cfg = data.get("logging", {})
        config.logging.level = logging_cfg.get("level", config.logging.level)
        config.logging.file = logging_cfg.get("file", config.logging.file)

    # Environment variable overrides
    if env_token := os.environ.get("TELEGRAM_NOTIFY_TOKEN"):
        config.telegram.token = env_token
    if env_chat_id := os.environ.get("TELEGRAM_NOTIFY_CHAT_ID"):
        config.telegram.chat_id = env_chat_id
    if env_parse_mode := os.environ.get("TELEGRAM_NOTIFY_PARSE_MODE"):
        config.telegram.parse_mode = env_parse_mode
    if env_api_url := os.environ.get("TELEGRAM_NOTIFY_API_URL"):
        config.telegram.api_url = env_api_url
    if env_timeout := os.environ.get("TELEGRAM_NOTIFY_TIMEOUT"):
        config.telegram.timeout = _number("TELEGRAM_NOTIFY_TIMEOUT", env_timeout, float)
    if env_limit := os.environ.get("TELEGRAM_NOTIFY_LIMIT"):
        config.notify.limit = _number("TELEGRAM_NOTIFY_LIMIT", env_limit, int)
    if env_log_level := os.environ.get("TELEGRAM_NOTIFY_LOG_LEVEL"):
        config.logging.level = env_log_level
    if env_log_file := os.environ.get("TELEGRAM_NOTIFY_LOG_FILE"):
        config.logging.file = env_log_file

    config.telegram.parse_mode = _parse_mode(config.telegram.parse_mode)
    if not isinstance(config.notify.limit, int) or config.notify.limit < 0:
        raise ConfigurationError(f"limit must be a non-negative integer, got {config.notify.limit!r}")

    return config
