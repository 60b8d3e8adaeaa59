"""Notification sequence: one summary message plus chained stream dumps."""

from __future__ import annotations

import enum
import logging
from typing import Protocol

from telegram_notify.config import DEFAULT_LIMIT
from telegram_notify.models import CommandResult, SentMessage
from telegram_notify.utils.formatting import (
    MarkupDialect,
    format_launch_error,
    format_stream,
    format_summary,
)


class MessageSender(Protocol):
    user_name: str

    async def send_message(
        self,
        chat_id: str,
        text: str,
        *,
        parse_mode: str,
        reply_to: int | None = None,
        disable_notification: bool = False,
    ) -> SentMessage: ...


class NotifyState(enum.Enum):
    IDLE = "idle"
    IDENTITY_RESOLVED = "identity_resolved"
    SUMMARY_SENT = "summary_sent"
    STREAMS_SENT = "streams_sent"
    DONE = "done"
    ABORTED = "aborted"


def should_notify(result: CommandResult, on_success: bool) -> bool:
    """Whether a run has to be reported at all."""
    return not result.succeeded or on_success


class Notifier:
    """Reports one command run to a chat.

    Sends stop at the first failure; stream dumps are only sent after the
    summary went through, as replies to it.
    """

    def __init__(
        self,
        client: MessageSender,
        chat_id: str,
        dialect: MarkupDialect,
        *,
        origin_id: str = "",
        limit: int = DEFAULT_LIMIT,
        on_success: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.chat_id = chat_id
        self.dialect = dialect
        self.origin_id = origin_id
        self.limit = limit
        self.on_success = on_success
        self.logger = logger or logging.getLogger(__name__)
        self.state = NotifyState.IDENTITY_RESOLVED if client.user_name else NotifyState.IDLE

    async def _send(self, text: str, reply_to: int | None, quiet: bool) -> SentMessage:
        try:
            return await self.client.send_message(
                self.chat_id,
                text,
                parse_mode=self.dialect.parse_mode,
                reply_to=reply_to,
                disable_notification=quiet,
            )
        except Exception:
            self.state = NotifyState.ABORTED
            raise

    async def report(self, result: CommandResult) -> list[SentMessage]:
        """Send the summary, then each non-empty stream as a reply to it."""
        quiet = self.on_success and result.exit_status == 0
        summary = await self._send(format_summary(result, self.dialect, self.origin_id), None, quiet)
        self.state = NotifyState.SUMMARY_SENT
        self.logger.info("Sent summary for status %d", result.exit_status)

        sent = [summary]
        streams = result.streams()
        for name, data in streams:
            text = format_stream(name, data, self.dialect, self.limit)
            sent.append(await self._send(text, summary.message_id, quiet))
            self.logger.info("Sent %s (%d bytes captured)", name, len(data))

        self.state = NotifyState.STREAMS_SENT if streams else NotifyState.DONE
        return sent

    async def report_launch_failure(self, result: CommandResult) -> SentMessage:
        """Send the single "command error" message for a run that never started."""
        sent = await self._send(format_launch_error(result, self.dialect, self.origin_id), None, False)
        self.state = NotifyState.DONE
        return sent
