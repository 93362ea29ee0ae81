from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

from luffy_v1.platform import PlatformClient, PlatformError
from luffy_v1.services.logger_service import LoggerService
from luffy_v1.state import SleepFn


SEND_TRIES = 3
SEND_BACKOFF_SEC = 1.0


class SendService:
    def __init__(
        self,
        platform: PlatformClient,
        logger: LoggerService,
        *,
        tries: int = SEND_TRIES,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.platform = platform
        self.logger = logger
        self.tries = max(1, int(tries))
        self._sleep = sleep

    async def send(
        self,
        thread_id: str,
        text: str = "",
        *,
        reply_to: str | None = None,
        attachments: Sequence[Any] = (),
        sticker_id: str | None = None,
    ) -> bool:
        for attempt in range(1, self.tries + 1):
            try:
                await self.platform.send_message(
                    thread_id,
                    text,
                    reply_to=reply_to or None,
                    attachments=attachments,
                    sticker_id=sticker_id,
                )
                return True
            except PlatformError as exc:
                self.logger.log("send.retry", thread_id=thread_id, attempt=attempt, error=str(exc)[:300])
                await self._sleep(SEND_BACKOFF_SEC * attempt)
        self.logger.log("send.failed", thread_id=thread_id, text=text[:200])
        return False
