"""CLI entry point using typer."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from telegram_notify import __version__
from telegram_notify.config import AppConfig, ConfigurationError, LoggingConfig, load_config
from telegram_notify.services.bot_api import TelegramClient, TelegramError
from telegram_notify.services.notifier import Notifier, should_notify
from telegram_notify.services.runner import CommandRunner, InvalidArgument
from telegram_notify.utils.formatting import format_command, get_dialect

EXIT_USAGE = 2
EXIT_WRAPPER_FAILURE = 125
EXIT_CANNOT_EXECUTE = 126
EXIT_NOT_FOUND = 127

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

app = typer.Typer(
    name="telegram-notify",
    help="Run a command and report its outcome to a Telegram chat.",
    add_completion=False,
)
err_console = Console(stderr=True)


def setup_logging(config: LoggingConfig) -> logging.Logger:
    """Configure logging once per process and return the application logger."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        log_path = Path(config.file).expanduser().resolve()
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(str(log_path)))
        except OSError as e:
            raise ConfigurationError(f"cannot open log file {log_path}: {e.strerror or e}") from e

    logging.basicConfig(
        level=getattr(logging, config.level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )
    # httpx logs full request URLs, and the bot token is part of the path
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logging.getLogger("telegram_notify")


def launch_failure_status(error: OSError) -> int:
    if isinstance(error, FileNotFoundError):
        return EXIT_NOT_FOUND
    return EXIT_CANNOT_EXECUTE


def _report_error(message: str, logger: logging.Logger | None = None) -> None:
    if logger is not None:
        logger.error(message)
    err_console.print(f"[red]telegram-notify: {escape(message)}[/red]", highlight=False)


async def run_and_notify(
    argv: list[str],
    config: AppConfig,
    logger: logging.Logger,
    runner: CommandRunner | None = None,
    config_error: ConfigurationError | None = None,
) -> int:
    """Run ``argv`` and report it; returns the process exit status.

    Logging is set up and configuration problems are reported only once
    a notification is due; the command always runs first. ``config_error``
    is a failure from loading ``config``, which then holds the defaults.
    """
    runner = runner or CommandRunner(logger=logger)
    result = await runner.run(argv)

    if not should_notify(result, config.notify.on_success):
        return result.exit_status

    if config_error is not None:
        _report_error(str(config_error))
        return EXIT_WRAPPER_FAILURE
    try:
        logger = setup_logging(config.logging)
    except ConfigurationError as e:
        _report_error(str(e))
        return EXIT_WRAPPER_FAILURE

    try:
        token, chat_id = config.require_credentials()
    except ConfigurationError as e:
        _report_error(str(e), logger)
        return EXIT_WRAPPER_FAILURE

    try:
        client = await TelegramClient.connect(
            token,
            api_url=config.telegram.api_url,
            timeout=config.telegram.timeout,
            logger=logger,
        )
        async with client:
            logger.info("Sending notification as %s", client.user_name)
            notifier = Notifier(
                client,
                chat_id,
                get_dialect(config.telegram.parse_mode),
                origin_id=config.notify.origin_id,
                limit=config.notify.limit,
                on_success=config.notify.on_success,
                logger=logger,
            )
            if result.execution_error is not None:
                await notifier.report_launch_failure(result)
            else:
                await notifier.report(result)
    except TelegramError as e:
        _report_error(str(e), logger)
        return EXIT_WRAPPER_FAILURE

    if result.execution_error is not None:
        _report_error(f"failed to run program: {format_command(result.argv)}: {result.execution_error}", logger)
        return launch_failure_status(result.execution_error)

    return result.exit_status


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"telegram-notify v{__version__}")
        raise typer.Exit()


@app.command(context_settings={"allow_interspersed_args": False})
def main(
    ctx: typer.Context,
    command: Optional[list[str]] = typer.Argument(None, help="Command to run, followed by its arguments"),
    origin_id: Optional[str] = typer.Option(
        None, "--id", help="Notification origin identifier (e.g. machine hostname)"
    ),
    success: bool = typer.Option(False, "--success", help="Send a notification even if the command succeeds"),
    limit: Optional[int] = typer.Option(
        None, "--limit", min=0, help="Limit size of stream data (in bytes) to send in notifications"
    ),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
) -> None:
    """Run COMMAND and report failures (or every run, with --success) to Telegram."""
    if not command:
        typer.echo(ctx.get_usage(), err=True)
        raise typer.Exit(EXIT_USAGE)

    config_error: ConfigurationError | None = None
    try:
        config = load_config()
    except ConfigurationError as e:
        # Reported only if the run needs a notification
        config, config_error = AppConfig(), e

    if origin_id is not None:
        config.notify.origin_id = origin_id
    if limit is not None:
        config.notify.limit = limit
    config.notify.on_success = success or config.notify.on_success

    logger = logging.getLogger("telegram_notify")

    try:
        status = asyncio.run(run_and_notify(command, config, logger, config_error=config_error))
    except InvalidArgument as e:
        _report_error(str(e), logger)
        raise typer.Exit(EXIT_USAGE)

    raise typer.Exit(status)


if __name__ == "__main__":
    app()
