"""Tests for CLI module."""

from __future__ import annotations

import logging

import pytest
from typer.testing import CliRunner

from telegram_notify import __version__
from telegram_notify.cli import (
    EXIT_CANNOT_EXECUTE,
    EXIT_NOT_FOUND,
    EXIT_USAGE,
    EXIT_WRAPPER_FAILURE,
    app,
    run_and_notify,
)
from telegram_notify.models import CommandResult
from telegram_notify.services.bot_api import AuthenticationError

runner = CliRunner()


@pytest.fixture
def credentials(monkeypatch):
    monkeypatch.setenv("TELEGRAM_NOTIFY_TOKEN", "123456:TEST")
    monkeypatch.setenv("TELEGRAM_NOTIFY_CHAT_ID", "-100123")


@pytest.fixture
def connect(fake_client, monkeypatch):
    """Route TelegramClient.connect to the fake client and record its arguments."""
    import telegram_notify.cli as cli_module

    connects: list[dict] = []

    async def fake_connect(token, **kwargs):
        connects.append({"token": token, **kwargs})
        return fake_client

    monkeypatch.setattr(cli_module.TelegramClient, "connect", fake_connect)
    return connects


class TestCli:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"telegram-notify v{__version__}" in result.output

    def test_no_command(self, connect):
        result = runner.invoke(app, [])
        assert result.exit_code == EXIT_USAGE
        assert connect == []

    def test_quiet_success_makes_no_network_call(self, connect, fake_client):
        # No credentials either: they are only needed when notifying
        result = runner.invoke(app, ["true"])
        assert result.exit_code == 0
        assert connect == []
        assert fake_client.calls == []

    def test_failure_sends_summary_only(self, credentials, connect, fake_client):
        result = runner.invoke(app, ["false"])

        assert result.exit_code == 1
        assert connect[0]["token"] == "123456:TEST"
        (call,) = fake_client.calls
        assert call["chat_id"] == "-100123"
        assert call["disable_notification"] is False
        assert call["reply_to"] is None
        assert "Failure" in call["text"]
        assert "<b>Exit status:</b> 1" in call["text"]
        assert fake_client.closed

    def test_success_flag_sends_stdout_as_reply(self, credentials, connect, fake_client):
        result = runner.invoke(app, ["--success", "echo", "hi"])

        assert result.exit_code == 0
        summary, stdout_msg = fake_client.calls
        assert summary["disable_notification"] is True
        assert "Success" in summary["text"]
        assert "<b>Streams:</b> stdout" in summary["text"]
        assert stdout_msg["reply_to"] == 101
        assert stdout_msg["disable_notification"] is True
        assert "<pre>hi\n</pre>" in stdout_msg["text"]

    def test_limit_keeps_tail(self, credentials, connect, fake_client):
        result = runner.invoke(app, ["--success", "--limit", "2", "echo", "hello"])

        assert result.exit_code == 0
        assert "<pre>...o\n</pre>" in fake_client.calls[1]["text"]

    def test_origin_id(self, credentials, connect, fake_client):
        result = runner.invoke(app, ["--id", "web-01", "false"])

        assert result.exit_code == 1
        assert fake_client.calls[0]["text"].startswith("<b>web-01:</b> Failure")

    def test_command_flags_pass_through(self, credentials, connect, fake_client):
        result = runner.invoke(app, ["--success", "echo", "--id", "--limit"])

        assert result.exit_code == 0
        assert "<code>echo --id --limit</code>" in fake_client.calls[0]["text"]
        assert not fake_client.calls[0]["text"].startswith("<b>")

    def test_missing_credentials(self, connect):
        result = runner.invoke(app, ["false"])
        assert result.exit_code == EXIT_WRAPPER_FAILURE
        assert connect == []

    def test_launch_failure(self, credentials, connect, fake_client):
        result = runner.invoke(app, ["/nonexistent/definitely-not-a-program"])

        assert result.exit_code == EXIT_NOT_FOUND
        (call,) = fake_client.calls
        assert "Command error" in call["text"]

    def test_launch_failure_notification_fails(self, credentials, connect, fake_client):
        fake_client.fail_on = 1
        result = runner.invoke(app, ["/nonexistent/definitely-not-a-program"])
        assert result.exit_code == EXIT_WRAPPER_FAILURE

    def test_summary_failure(self, credentials, connect, fake_client):
        fake_client.fail_on = 1
        result = runner.invoke(app, ["--success", "echo", "hi"])

        assert result.exit_code == EXIT_WRAPPER_FAILURE
        assert len(fake_client.calls) == 1

    def test_connect_failure(self, credentials, monkeypatch):
        import telegram_notify.cli as cli_module

        async def failing_connect(token, **kwargs):
            raise AuthenticationError("telegram: identity lookup failed: ConnectError")

        monkeypatch.setattr(cli_module.TelegramClient, "connect", failing_connect)
        result = runner.invoke(app, ["false"])
        assert result.exit_code == EXIT_WRAPPER_FAILURE

    def test_markdown_dialect_from_env(self, credentials, connect, fake_client, monkeypatch):
        monkeypatch.setenv("TELEGRAM_NOTIFY_PARSE_MODE", "MarkdownV2")
        result = runner.invoke(app, ["false"])

        assert result.exit_code == 1
        assert fake_client.calls[0]["parse_mode"] == "MarkdownV2"
        assert "*Exit status:* 1" in fake_client.calls[0]["text"]

    def test_invalid_config_does_not_block_quiet_success(self, monkeypatch, connect):
        monkeypatch.setenv("TELEGRAM_NOTIFY_PARSE_MODE", "BBCode")
        result = runner.invoke(app, ["true"])
        assert result.exit_code == 0
        assert connect == []

    def test_invalid_config_still_runs_command(self, monkeypatch, connect, tmp_path):
        marker = tmp_path / "ran"
        monkeypatch.setenv("TELEGRAM_NOTIFY_LIMIT", "lots")
        result = runner.invoke(app, ["touch", str(marker)])

        assert result.exit_code == 0
        assert marker.exists()

    def test_invalid_config_reported_when_notifying(self, credentials, monkeypatch, connect, tmp_path):
        marker = tmp_path / "ran"
        monkeypatch.setenv("TELEGRAM_NOTIFY_LIMIT", "lots")
        result = runner.invoke(app, ["--success", "touch", str(marker)])

        assert result.exit_code == EXIT_WRAPPER_FAILURE
        assert marker.exists()
        assert "TELEGRAM_NOTIFY_LIMIT" in result.output
        assert connect == []

    def test_malformed_config_file_reported_on_failure(self, credentials, monkeypatch, connect, tmp_path):
        config_file = tmp_path / "config.toml"
        config_file.write_text("[telegram\n")
        monkeypatch.setenv("TELEGRAM_NOTIFY_CONFIG", str(config_file))
        result = runner.invoke(app, ["false"])

        assert result.exit_code == EXIT_WRAPPER_FAILURE
        assert connect == []

    def test_unwritable_log_file_does_not_block_quiet_success(self, monkeypatch, connect, tmp_path):
        marker = tmp_path / "ran"
        monkeypatch.setenv("TELEGRAM_NOTIFY_LOG_FILE", "/proc/nope/x.log")
        result = runner.invoke(app, ["touch", str(marker)])

        assert result.exit_code == 0
        assert marker.exists()

    def test_unwritable_log_file_reported_when_notifying(self, credentials, monkeypatch, connect):
        monkeypatch.setenv("TELEGRAM_NOTIFY_LOG_FILE", "/proc/nope/x.log")
        result = runner.invoke(app, ["false"])

        assert result.exit_code == EXIT_WRAPPER_FAILURE
        assert isinstance(result.exception, SystemExit)
        assert "cannot open log file" in result.output
        assert connect == []


class StubRunner:
    def __init__(self, result: CommandResult) -> None:
        self.result = result
        self.argv = None

    async def run(self, argv):
        self.argv = argv
        return self.result


class TestRunAndNotify:
    @pytest.mark.asyncio
    async def test_signal_status_is_propagated(self, app_config, connect, fake_client):
        stub = StubRunner(CommandResult(argv=("sleep", "100"), exit_status=143, stderr=b"Terminated\n"))
        status = await run_and_notify(["sleep", "100"], app_config, logging.getLogger("test"), runner=stub)

        assert status == 143
        assert stub.argv == ["sleep", "100"]
        assert "<b>Exit status:</b> 143" in fake_client.calls[0]["text"]
        assert fake_client.calls[1]["reply_to"] == 101
        assert connect[0]["api_url"] == app_config.telegram.api_url

    @pytest.mark.asyncio
    async def test_permission_denied_status(self, app_config, connect, fake_client):
        error = PermissionError(13, "Permission denied", "./script.sh")
        stub = StubRunner(CommandResult(argv=("./script.sh",), execution_error=error))
        status = await run_and_notify(["./script.sh"], app_config, logging.getLogger("test"), runner=stub)

        assert status == EXIT_CANNOT_EXECUTE
        assert len(fake_client.calls) == 1

    @pytest.mark.asyncio
    async def test_malformed_api_url_is_wrapper_failure(self, app_config):
        app_config.telegram.api_url = "http://[::1"
        stub = StubRunner(CommandResult(argv=("false",), exit_status=1))
        status = await run_and_notify(["false"], app_config, logging.getLogger("test"), runner=stub)

        assert status == EXIT_WRAPPER_FAILURE
