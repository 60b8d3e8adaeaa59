"""Data models for telegram-notify."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one wrapped command run.

    ``execution_error`` is only set when the process could not be started;
    the stream buffers are empty in that case.
    """

    argv: tuple[str, ...] = ()
    exit_status: int = 0
    stdout: bytes = b""
    stderr: bytes = b""
    execution_error: OSError | None = None
    elapsed_ms: int = 0

    @property
    def launched(self) -> bool:
        return self.execution_error is None

    @property
    def succeeded(self) -> bool:
        return self.launched and self.exit_status == 0

    def streams(self) -> list[tuple[str, bytes]]:
        """Non-empty captured streams, stdout first."""
        named = [("stdout", self.stdout), ("stderr", self.stderr)]
        return [(name, data) for name, data in named if data]


@dataclass(frozen=True)
class BotIdentity:
    user_name: str


@dataclass(frozen=True)
class OutgoingMessage:
    """A single sendMessage call."""

    chat_id: str
    text: str
    parse_mode: str
    reply_to_message_id: int | None = None
    disable_notification: bool = False

    def to_form(self) -> dict[str, str]:
        form = {"chat_id": self.chat_id, "text": self.text, "parse_mode": self.parse_mode}
        if self.disable_notification:
            form["disable_notification"] = "true"
        if self.reply_to_message_id is not None:
            form["reply_to_message_id"] = str(self.reply_to_message_id)
        return form


@dataclass(frozen=True)
class SentMessage:
    message_id: int


