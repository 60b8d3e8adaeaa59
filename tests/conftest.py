"""Shared test fixtures."""

from __future__ import annotations

import pytest

from telegram_notify.config import AppConfig, LoggingConfig, NotifyConfig, TelegramConfig
from telegram_notify.models import SentMessage
from telegram_notify.services.bot_api import ProtocolError

ENV_VARS = (
    "TELEGRAM_NOTIFY_CONFIG",
    "TELEGRAM_NOTIFY_TOKEN",
    "TELEGRAM_NOTIFY_CHAT_ID",
    "TELEGRAM_NOTIFY_PARSE_MODE",
    "TELEGRAM_NOTIFY_API_URL",
    "TELEGRAM_NOTIFY_TIMEOUT",
    "TELEGRAM_NOTIFY_LIMIT",
    "TELEGRAM_NOTIFY_LOG_LEVEL",
    "TELEGRAM_NOTIFY_LOG_FILE",
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep the developer's environment and config file out of tests."""
    import telegram_notify.config as cfg_module

    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cfg_module, "CONFIG_FILE", tmp_path / "nonexistent.toml")


@pytest.fixture
def app_config(tmp_path):
    """Create a test configuration."""
    return AppConfig(
        telegram=TelegramConfig(token="test-token", chat_id="-100123", parse_mode="HTML"),
        notify=NotifyConfig(origin_id="", limit=1024, on_success=False),
        logging=LoggingConfig(level="DEBUG", file=str(tmp_path / "test.log")),
    )


class FakeTelegramClient:
    """Records sends instead of talking to the Bot API."""

    def __init__(self, user_name: str = "notify_bot", fail_on: int | None = None) -> None:
        self.user_name = user_name
        self.fail_on = fail_on
        self.calls: list[dict] = []
        self.closed = False

    async def send_message(self, chat_id, text, *, parse_mode, reply_to=None, disable_notification=False):
        call = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": parse_mode,
            "reply_to": reply_to,
            "disable_notification": disable_notification,
        }
        self.calls.append(call)
        if self.fail_on is not None and len(self.calls) == self.fail_on:
            raise ProtocolError("telegram: request failed: Bad Request: chat not found")
        return SentMessage(message_id=100 + len(self.calls))

    async def aclose(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()


@pytest.fixture
def fake_client():
    return FakeTelegramClient()
