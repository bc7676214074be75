from __future__ import annotations

import logging

import httpx

from slotflow.application.exceptions import ExternalServiceError
from slotflow.application.ports.notifier import NotifierPort


class TelegramNotifier(NotifierPort):
    """Sends plain-text messages through the Telegram Bot API. User ids are chat ids."""

    def __init__(
        self,
        bot_token: str,
        admin_chat_ids: list[str] | None = None,
        base_url: str = "https://api.telegram.org",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required for Telegram notifications")
        self._send_endpoint = f"{base_url.rstrip('/')}/bot{bot_token}/sendMessage"
        self._admin_chat_ids = list(admin_chat_ids or [])
        self._client = client or httpx.AsyncClient(timeout=10.0)
        self._logger = logging.getLogger(__name__)

    async def _send(self, chat_id: str, text: str) -> None:
        try:
            resp = await self._client.post(self._send_endpoint, json={"chat_id": chat_id, "text": text})
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Telegram unreachable: {e}") from e
        if resp.status_code >= 400:
            try:
                description = resp.json().get("description")
            except ValueError:
                description = resp.text
            self._logger.error(
                "Telegram send failed",
                extra={"status": resp.status_code, "error": description, "text_length": len(text)},
            )
            raise ExternalServiceError(f"Telegram send failed with status {resp.status_code}")

    async def notify_user(self, user_id: str, text: str) -> None:
        await self._send(user_id, text)

    async def notify_admin(self, text: str) -> None:
        if not self._admin_chat_ids:
            self._logger.warning("No admin chat configured", extra={"text_length": len(text)})
            return
        for chat_id in self._admin_chat_ids:
            await self._send(chat_id, text)
