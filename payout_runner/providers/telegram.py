"""Telegram Bot API notification gateway."""

import logging
from typing import Optional

import httpx

from payout_runner.config import settings
from payout_runner.engine.retry import ProviderError, error_for_status
from payout_runner.providers.base import NotificationGateway

logger = logging.getLogger("payout_runner.providers.telegram")


class TelegramGateway(NotificationGateway):
    def __init__(
        self,
        api_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_url = (api_url or settings.telegram_api_url).rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=timeout_s if timeout_s is not None else settings.http_timeout_s,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(self, text: str, chat_id: int, bot_token: str) -> None:
        # Messages go out as a MarkdownV2 code block so amounts and emails need no escaping
        body = {"chat_id": chat_id, "text": f"```{text}```", "parse_mode": "MarkdownV2"}
        try:
            r = await self._client.post(f"{self._api_url}/bot{bot_token}/sendMessage", json=body)
        except httpx.HTTPError as e:
            raise ProviderError(f"sendMessage to {chat_id} failed: {e}") from e

        if r.status_code >= 400:
            try:
                detail = r.json().get("description", "")
            except ValueError:
                detail = r.text[:200]
            raise error_for_status(r.status_code, f"sendMessage to {chat_id} -> HTTP {r.status_code}: {detail}")

        logger.debug("sendMessage to %s -> HTTP %d", chat_id, r.status_code)
