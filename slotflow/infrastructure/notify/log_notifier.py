from __future__ import annotations

import logging

from slotflow.application.ports.notifier import NotifierPort


class LogNotifier(NotifierPort):
    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)
        self.sent: list[tuple[str, str]] = []

    async def notify_user(self, user_id: str, text: str) -> None:
        self.sent.append((user_id, text))
        self._logger.info("Mock notify user", extra={"user_id": user_id, "text": text})

    async def notify_admin(self, text: str) -> None:
        self.sent.append(("admin", text))
        self._logger.info("Mock notify admin", extra={"text": text})
