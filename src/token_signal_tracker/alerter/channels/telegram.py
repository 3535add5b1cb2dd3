"""Telegram Bot API channel."""

from __future__ import annotations

import logging

import aiohttp

from token_signal_tracker.alerter.dispatcher import NotificationError
from token_signal_tracker.alerter.models import FormattedAlert

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.telegram.org"
DEFAULT_TIMEOUT_SECONDS = 10.0
MAX_MESSAGE_LENGTH = 4096


class TelegramChannel:
    """Sends formatted alerts to one chat via ``sendMessage`` (MarkdownV2)."""

    name = "telegram"

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        *,
        api_base_url: str = DEFAULT_API_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._api_base_url = api_base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def send(self, alert: FormattedAlert) -> None:
        url = f"{self._api_base_url}/bot{self._bot_token}/sendMessage"
        payload = {
            "chat_id": self._chat_id,
            "text": alert.telegram_markdown[:MAX_MESSAGE_LENGTH],
            "parse_mode": "MarkdownV2",
            "disable_web_page_preview": True,
        }
        try:
            async with self._get_session().post(url, json=payload) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise NotificationError(f"Telegram returned {resp.status}: {text[:200]}")
        except aiohttp.ClientError as e:
            raise NotificationError(f"Telegram request failed: {e}") from e
        logger.debug("Sent Telegram alert: %s", alert.title)

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
