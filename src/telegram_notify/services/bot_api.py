"""Minimal Telegram Bot API client: identity lookup and sendMessage."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import httpx
from telegram.constants import MessageLimit

from telegram_notify.config import DEFAULT_API_URL
from telegram_notify.models import BotIdentity, OutgoingMessage, SentMessage

T = TypeVar("T")


class TelegramError(Exception):
    """Base class for Bot API failures."""


class TransportError(TelegramError):
    """The round trip failed: network error or unreadable body."""


class ProtocolError(TelegramError):
    """The API answered but rejected the request or omitted expected data."""


class AuthenticationError(TelegramError):
    """The identity lookup could not be completed."""


@dataclass(frozen=True)
class Envelope(Generic[T]):
    """Bot API response wrapper: ``{ok, description?, result}``."""

    ok: bool
    description: str | None
    result: T | None

    @classmethod
    def parse(cls, payload: Any, decode_result: Callable[[Any], T]) -> Envelope[T]:
        if not isinstance(payload, dict):
            raise TransportError("telegram: malformed response body")
        ok = payload.get("ok") is True
        description = payload.get("description") or None
        result = decode_result(payload.get("result")) if ok else None
        return cls(ok=ok, description=description, result=result)

    def unwrap(self) -> T:
        if not self.ok:
            if self.description:
                raise ProtocolError(f"telegram: request failed: {self.description}")
            raise ProtocolError("telegram: request failed")
        if self.result is None:
            raise ProtocolError("telegram: response is missing result")
        return self.result


def _decode_identity(raw: Any) -> BotIdentity:
    user_name = raw.get("username") if isinstance(raw, dict) else None
    if not user_name:
        raise ProtocolError("telegram: failed to find bot username")
    return BotIdentity(user_name=str(user_name))


def _decode_message(raw: Any) -> SentMessage:
    message_id = raw.get("message_id") if isinstance(raw, dict) else None
    if not isinstance(message_id, int):
        raise ProtocolError("telegram: response is missing message_id")
    return SentMessage(message_id=message_id)


class TelegramClient:
    """Bot API client bound to one token.

    Use :meth:`connect` to build one; it resolves the bot identity up front
    and caches it for the client's lifetime.
    """

    def __init__(
        self,
        token: str,
        http: httpx.AsyncClient,
        api_url: str = DEFAULT_API_URL,
        logger: logging.Logger | None = None,
    ) -> None:
        self._token = token
        self._http = http
        self._api_url = api_url.rstrip("/")
        self.logger = logger or logging.getLogger(__name__)
        self.identity: BotIdentity | None = None

    @classmethod
    async def connect(
        cls,
        token: str,
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float | None = 30.0,
        http: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> TelegramClient:
        """Create a client and resolve the bot identity with getMe."""
        client = cls(token, http or httpx.AsyncClient(timeout=timeout), api_url=api_url, logger=logger)
        try:
            client.identity = await client._request("getMe", {}, _decode_identity)
        except TransportError as e:
            await client.aclose()
            raise AuthenticationError(f"telegram: identity lookup failed: {e}") from e
        except TelegramError:
            await client.aclose()
            raise
        return client

    @property
    def user_name(self) -> str:
        return self.identity.user_name if self.identity else ""

    async def _request(self, method: str, params: dict[str, str], decode_result: Callable[[Any], T]) -> T:
        url = f"{self._api_url}/bot{self._token}/{method}"
        try:
            response = await self._http.post(url, data=params)
            payload = response.json()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            # str(e) can include the request URL, which carries the token
            raise TransportError(f"telegram: {method}: {type(e).__name__}") from e
        except ValueError as e:
            raise TransportError(f"telegram: {method}: malformed response body") from e
        return Envelope.parse(payload, decode_result).unwrap()

    async def send(self, message: OutgoingMessage) -> SentMessage:
        if len(message.text) > MessageLimit.MAX_TEXT_LENGTH:
            self.logger.warning(
                "Message text is %d characters; Telegram accepts at most %d",
                len(message.text),
                MessageLimit.MAX_TEXT_LENGTH,
            )
        sent = await self._request("sendMessage", message.to_form(), _decode_message)
        self.logger.debug("Sent message %d to chat %s", sent.message_id, message.chat_id)
        return sent

    async def send_message(
        self,
        chat_id: str,
        text: str,
        *,
        parse_mode: str,
        reply_to: int | None = None,
        disable_notification: bool = False,
    ) -> SentMessage:
        """Send a text message, optionally as a reply to ``reply_to``."""
        return await self.send(
            OutgoingMessage(
                chat_id=chat_id,
                text=text,
                parse_mode=parse_mode,
                reply_to_message_id=reply_to,
                disable_notification=disable_notification,
            )
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> TelegramClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
