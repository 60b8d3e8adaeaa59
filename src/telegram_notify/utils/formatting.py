"""Message formatting and escaping utilities for Telegram."""

from __future__ import annotations

import html
import logging
import shlex
from collections.abc import Sequence

from telegram.constants import ParseMode
from telegram.helpers import escape_markdown

from telegram_notify.models import CommandResult

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "..."


class MarkupDialect:
    """Builds message fragments for one Telegram parse mode.

    Every method takes raw text and returns markup in which that text can
    only ever render literally.
    """

    parse_mode: str

    def text(self, value: str) -> str:
        raise NotImplementedError

    def bold(self, value: str) -> str:
        raise NotImplementedError

    def code(self, value: str) -> str:
        raise NotImplementedError

    def pre(self, value: str) -> str:
        raise NotImplementedError


class HtmlDialect(MarkupDialect):
    parse_mode = ParseMode.HTML.value

    def text(self, value: str) -> str:
        return html.escape(value)

    def bold(self, value: str) -> str:
        return f"<b>{html.escape(value)}</b>"

    def code(self, value: str) -> str:
        return f"<code>{html.escape(value)}</code>"

    def pre(self, value: str) -> str:
        return f"<pre>{html.escape(value)}</pre>"


class MarkdownV2Dialect(MarkupDialect):
    parse_mode = ParseMode.MARKDOWN_V2.value

    def text(self, value: str) -> str:
        return escape_markdown(value, version=2)

    def bold(self, value: str) -> str:
        return f"*{escape_markdown(value, version=2)}*"

    def code(self, value: str) -> str:
        return f"`{escape_markdown(value, version=2, entity_type='code')}`"

    def pre(self, value: str) -> str:
        # A leading newline keeps the first line from being read as a language tag
        return f"```\n{escape_markdown(value, version=2, entity_type='pre')}\n```"


_DIALECTS: dict[str, type[MarkupDialect]] = {
    HtmlDialect.parse_mode: HtmlDialect,
    MarkdownV2Dialect.parse_mode: MarkdownV2Dialect,
}


def get_dialect(parse_mode: str) -> MarkupDialect:
    """Return the dialect for a Telegram parse mode."""
    try:
        return _DIALECTS[parse_mode]()
    except KeyError:
        raise ValueError(f"Unsupported parse mode: {parse_mode}") from None


def truncate_tail(data: bytes, limit: int) -> tuple[bytes, bool]:
    """Keep the last ``limit`` bytes of a stream. Returns (data, truncated)."""
    if len(data) > limit:
        return data[len(data) - limit :], True
    return data, False


def decode_stream(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def format_duration(ms: int) -> str:
    """Format milliseconds to human-readable duration."""
    if ms < 1000:
        return f"{ms}ms"
    elif ms < 60000:
        return f"{ms / 1000:.1f}s"
    else:
        minutes = ms // 60000
        seconds = (ms % 60000) // 1000
        return f"{minutes}m {seconds}s"


def format_command(argv: Sequence[str]) -> str:
    """Render argv as a copy-pasteable shell command line."""
    return shlex.join(argv)


def _origin_prefix(dialect: MarkupDialect, origin_id: str) -> str:
    if not origin_id:
        return ""
    return dialect.bold(f"{origin_id}:") + " "


def _field(dialect: MarkupDialect, label: str, value: str) -> str:
    return f"{dialect.bold(label + ':')} {value}\n"


def format_summary(result: CommandResult, dialect: MarkupDialect, origin_id: str = "") -> str:
    """Summary message for a command that ran to completion."""
    outcome = "Success" if result.exit_status == 0 else "Failure"
    msg = _origin_prefix(dialect, origin_id) + dialect.text(outcome) + "\n\n"
    msg += _field(dialect, "Command", dialect.code(format_command(result.argv)))
    msg += _field(dialect, "Elapsed time", dialect.text(format_duration(result.elapsed_ms)))
    msg += _field(dialect, "Exit status", dialect.text(str(result.exit_status)))
    names = [name for name, _ in result.streams()]
    if names:
        msg += _field(dialect, "Streams", dialect.text(", ".join(names)))
    return msg


def format_launch_error(result: CommandResult, dialect: MarkupDialect, origin_id: str = "") -> str:
    """Message for a command that could not be started."""
    msg = _origin_prefix(dialect, origin_id) + dialect.text("Command error") + "\n\n"
    msg += _field(dialect, "Command", dialect.code(format_command(result.argv)))
    msg += _field(dialect, "Elapsed time", dialect.text(format_duration(result.elapsed_ms)))
    msg += dialect.pre(str(result.execution_error))
    return msg


def format_stream(name: str, data: bytes, dialect: MarkupDialect, limit: int) -> str:
    """Dump of one captured stream, keeping only its tail past ``limit`` bytes."""
    tail, truncated = truncate_tail(data, limit)
    if truncated:
        logger.debug("Truncated %s from %d to %d bytes", name, len(data), limit)
    content = decode_stream(tail)
    if truncated:
        content = TRUNCATION_MARKER + content
    return f"{dialect.bold(name + ':')}\n{dialect.pre(content)}"
