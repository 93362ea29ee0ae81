from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from luffy_v1.services.logger_service import LoggerService


SCRIPTED = "scripted"
MEDIA = "media"
STICKER = "sticker"
TIMER_BEHAVIORS = (SCRIPTED, MEDIA, STICKER)

SleepFn = Callable[[float], Awaitable[Any]]
TickFn = Callable[[Any], Awaitable[bool]]
FinishFn = Callable[[Any], Awaitable[None]]


@dataclass
class CycleContext:
    thread_id: str
    items: tuple[str, ...]
    prefix: str = ""
    index: int = 0

    @property
    def exhausted(self) -> bool:
        return self.index >= len(self.items)

    def next_item(self) -> str:
        item = self.items[self.index]
        self.index += 1
        return item


@dataclass
class MediaContext:
    thread_id: str
    attachments: tuple[Any, ...]
    sends: int = 0


@dataclass
class TimerEntry:
    behavior: str
    thread_id: str
    period: float
    context: Any
    task: asyncio.Task | None = None


@dataclass
class PendingReply:
    thread_id: str
    message_id: str


@dataclass
class ReplyQueue:
    pending: deque[PendingReply] = field(default_factory=deque)
    draining: bool = False
    task: asyncio.Task | None = None


class TimerRegistry:
    """
    Repeating timers keyed by (behavior, thread).

    Each entry owns its context record and the task that ticks it. A tick returning
    False ends the timer; the optional finish callback runs after the entry has been
    released, so a finished timer is never reported as running.
    """

    def __init__(self, logger: LoggerService, *, sleep: SleepFn = asyncio.sleep) -> None:
        self.logger = logger
        self._sleep = sleep
        self._entries: dict[tuple[str, str], TimerEntry] = {}

    def start(
        self,
        behavior: str,
        thread_id: str,
        period: float,
        context: Any,
        tick: TickFn,
        on_finish: FinishFn | None = None,
    ) -> TimerEntry:
        if behavior not in TIMER_BEHAVIORS:
            raise ValueError(f"unknown timer behavior: {behavior}")
        self.stop(behavior, thread_id)
        entry = TimerEntry(behavior=behavior, thread_id=thread_id, period=float(period), context=context)
        self._entries[(behavior, thread_id)] = entry
        entry.task = asyncio.create_task(self._run(entry, tick, on_finish), name=f"timer-{behavior}-{thread_id}")
        return entry

    def stop(self, behavior: str, thread_id: str) -> bool:
        entry = self._entries.pop((behavior, thread_id), None)
        if entry is None:
            return False
        if entry.task is not None and not entry.task.done():
            entry.task.cancel()
        return True

    def is_running(self, behavior: str, thread_id: str) -> bool:
        return (behavior, thread_id) in self._entries

    def entry(self, behavior: str, thread_id: str) -> TimerEntry | None:
        return self._entries.get((behavior, thread_id))

    def context(self, behavior: str, thread_id: str) -> Any:
        entry = self._entries.get((behavior, thread_id))
        return entry.context if entry else None

    def active(self, behavior: str) -> list[str]:
        return sorted(thread for kind, thread in self._entries if kind == behavior)

    def count(self) -> int:
        return len(self._entries)

    def cancel_all(self) -> int:
        keys = list(self._entries)
        for behavior, thread_id in keys:
            self.stop(behavior, thread_id)
        return len(keys)

    async def _run(self, entry: TimerEntry, tick: TickFn, on_finish: FinishFn | None) -> None:
        key = (entry.behavior, entry.thread_id)
        try:
            while True:
                await self._sleep(entry.period)
                try:
                    keep_going = await tick(entry.context)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:  # noqa: BLE001
                    self.logger.log(
                        "timer.tick_failed",
                        behavior=entry.behavior,
                        thread_id=entry.thread_id,
                        error=str(exc)[:300],
                    )
                    continue
                if not keep_going:
                    break
        finally:
            if self._entries.get(key) is entry:
                del self._entries[key]
        self.logger.log("timer.finished", behavior=entry.behavior, thread_id=entry.thread_id)
        if on_finish is not None:
            try:
                await on_finish(entry.context)
            except Exception as exc:  # noqa: BLE001
                self.logger.log("timer.finish_failed", behavior=entry.behavior, thread_id=entry.thread_id, error=str(exc)[:300])


class BotState:
    """Everything the bot remembers between events. Rebuilt empty on restart."""

    def __init__(self, logger: LoggerService, *, sleep: SleepFn = asyncio.sleep) -> None:
        self.timers = TimerRegistry(logger, sleep=sleep)
        self.reply_queues: dict[str, ReplyQueue] = {}
        self._locked_names: dict[str, str] = {}
        self._target_id: str | None = None
        self._last_media: dict[str, tuple[Any, ...]] = {}
        self._capture_windows: dict[str, asyncio.Task] = {}

    # Locked group names
    def lock_name(self, thread_id: str, name: str) -> None:
        self._locked_names[thread_id] = name

    def unlock_name(self, thread_id: str) -> bool:
        return self._locked_names.pop(thread_id, None) is not None

    def locked_name(self, thread_id: str) -> str | None:
        return self._locked_names.get(thread_id)

    # Dynamic target
    @property
    def target_id(self) -> str | None:
        return self._target_id

    def set_target(self, user_id: str) -> None:
        self._target_id = user_id.strip() or None

    def clear_target(self) -> None:
        self._target_id = None

    def is_target(self, sender_id: str, static_targets: list[str]) -> bool:
        if self._target_id and self._target_id == sender_id:
            return True
        return sender_id in static_targets

    # Captured media
    def remember_media(self, thread_id: str, attachments: tuple[Any, ...]) -> None:
        self._last_media[thread_id] = tuple(attachments)

    def forget_media(self, thread_id: str) -> bool:
        return self._last_media.pop(thread_id, None) is not None

    def media_for(self, thread_id: str) -> tuple[Any, ...] | None:
        return self._last_media.get(thread_id)

    # Capture windows
    def arm_capture(self, thread_id: str, window: asyncio.Task) -> None:
        self.disarm_capture(thread_id)
        self._capture_windows[thread_id] = window

    def disarm_capture(self, thread_id: str, *, cancel: bool = True) -> bool:
        window = self._capture_windows.pop(thread_id, None)
        if window is None:
            return False
        if cancel and not window.done():
            window.cancel()
        return True

    def is_capture_armed(self, thread_id: str) -> bool:
        return thread_id in self._capture_windows

    def shutdown(self) -> int:
        cancelled = self.timers.cancel_all()
        for thread_id in list(self._capture_windows):
            self.disarm_capture(thread_id)
        for queue in self.reply_queues.values():
            if queue.task is not None and not queue.task.done():
                queue.task.cancel()
            queue.pending.clear()
            queue.draining = False
        return cancelled
