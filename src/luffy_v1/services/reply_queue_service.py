from __future__ import annotations

import asyncio
import random

from luffy_v1.services.list_service import ListService
from luffy_v1.services.logger_service import LoggerService
from luffy_v1.services.send_service import SendService
from luffy_v1.state import BotState, PendingReply, ReplyQueue, SleepFn


REPLY_INTERVAL_SEC = 20
FALLBACK_LINE = "hello"


class ReplyQueueService:
    """Serialized auto-replies, one drain loop per target."""

    def __init__(
        self,
        state: BotState,
        lists: ListService,
        sender: SendService,
        logger: LoggerService,
        *,
        sleep: SleepFn = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.state = state
        self.lists = lists
        self.sender = sender
        self.logger = logger
        self._sleep = sleep
        self._rng = rng or random.Random()

    def enqueue(self, target_id: str, thread_id: str, message_id: str) -> bool:
        """Queue one reply. Returns True when this call started the drain loop."""
        queue = self.state.reply_queues.setdefault(target_id, ReplyQueue())
        queue.pending.append(PendingReply(thread_id=thread_id, message_id=message_id))
        if queue.draining:
            return False
        queue.draining = True
        queue.task = asyncio.create_task(self._drain(target_id, queue), name=f"reply-queue-{target_id}")
        return True

    def is_draining(self, target_id: str) -> bool:
        queue = self.state.reply_queues.get(target_id)
        return bool(queue and queue.draining)

    def pending(self, target_id: str) -> int:
        queue = self.state.reply_queues.get(target_id)
        return len(queue.pending) if queue else 0

    async def _drain(self, target_id: str, queue: ReplyQueue) -> None:
        try:
            while queue.pending:
                item = queue.pending.popleft()
                try:
                    lines = await self.lists.lines()
                    text = self._rng.choice(lines) if lines else FALLBACK_LINE
                    await self.sender.send(item.thread_id, text, reply_to=item.message_id)
                except Exception as exc:  # noqa: BLE001
                    self.logger.log("reply_queue.send_failed", target_id=target_id, thread_id=item.thread_id, error=str(exc)[:300])
                await self._sleep(REPLY_INTERVAL_SEC)
        finally:
            queue.draining = False
            queue.task = None
