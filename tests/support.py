from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace
from typing import Any

from luffy_v1.config import Settings
from luffy_v1.platform import PlatformError, ThreadInfo
from luffy_v1.services.command_service import CommandService
from luffy_v1.services.dispatch_service import Dispatcher
from luffy_v1.services.list_service import ListService
from luffy_v1.services.logger_service import LoggerService
from luffy_v1.services.reply_queue_service import ReplyQueueService
from luffy_v1.services.send_service import SendService
from luffy_v1.state import BotState
from luffy_v1.storage import MessagePackStore


class FakeClock:
    """Virtual time. Durations listed in `hold` block until the waiting task is cancelled."""

    def __init__(self, hold: tuple[float, ...] = ()) -> None:
        self.now = 0.0
        self.calls: list[float] = []
        self.hold = set(hold)

    async def sleep(self, seconds: float) -> None:
        self.calls.append(seconds)
        if seconds in self.hold:
            await asyncio.Event().wait()
        self.now += seconds
        await asyncio.sleep(0)


@dataclass
class Sent:
    thread_id: str
    text: str
    reply_to: str | None
    attachments: tuple[Any, ...]
    sticker_id: str | None
    at: float


class FakePlatform:
    def __init__(
        self,
        clock: FakeClock | None = None,
        *,
        members: tuple[str, ...] = ("1", "2", "3"),
        me: str = "999",
    ) -> None:
        self.clock = clock or FakeClock()
        self.members = members
        self.me = me
        self.sent: list[Sent] = []
        self.titles: list[tuple[str, str]] = []
        self.nicknames: list[tuple[str, str, str]] = []
        self.nickname_attempts: list[str] = []
        self.removed: list[tuple[str, str]] = []
        self.fail_sends = 0
        self.unreachable: set[str] = set()
        self.nickname_failures: dict[str, int] = {}
        self.fail_titles = False
        self.fail_thread_info = False

    async def send_message(self, thread_id, text="", *, reply_to=None, attachments=(), sticker_id=None) -> None:
        if self.fail_sends > 0:
            self.fail_sends -= 1
            raise PlatformError("rate limited")
        if thread_id in self.unreachable:
            raise PlatformError(f"cannot message {thread_id}")
        self.sent.append(Sent(thread_id, text, reply_to, tuple(attachments), sticker_id, self.clock.now))

    async def set_title(self, thread_id, title) -> None:
        if self.fail_titles:
            raise PlatformError("missing permissions")
        self.titles.append((thread_id, title))

    async def change_nickname(self, thread_id, user_id, nickname) -> None:
        self.nickname_attempts.append(user_id)
        remaining = self.nickname_failures.get(user_id, 0)
        if remaining > 0:
            self.nickname_failures[user_id] = remaining - 1
            raise PlatformError("rate limited")
        self.nicknames.append((thread_id, user_id, nickname))

    async def get_thread_info(self, thread_id) -> ThreadInfo:
        if self.fail_thread_info:
            raise PlatformError("unknown thread")
        return ThreadInfo(thread_id=thread_id, name="group", participant_ids=self.members)

    async def remove_user_from_group(self, user_id, thread_id) -> None:
        self.removed.append((user_id, thread_id))

    async def get_current_user_id(self) -> str:
        return self.me

    def texts(self, thread_id: str | None = None) -> list[str]:
        return [row.text for row in self.sent if thread_id is None or row.thread_id == thread_id]


def make_settings(tmp_path: Path, **overrides: str) -> Settings:
    values = {
        "OWNER_IDS": "42",
        "CREDENTIAL_PATH": str(tmp_path / "appstate.json"),
        "LINES_PATH": str(tmp_path / "np.txt"),
        "STICKERS_PATH": str(tmp_path / "Sticker.txt"),
        "FRIENDS_PATH": str(tmp_path / "Friend.txt"),
        "TARGETS_PATH": str(tmp_path / "Target.txt"),
        "LIST_RELOAD_MODE": "reread",
        "LOG_STORE_PATH": str(tmp_path / "log.msgpack"),
    }
    values.update(overrides)
    return Settings.from_values(values)


def write_list(path: Path, entries: list[str]) -> None:
    path.write_text("\n".join(entries) + "\n", encoding="utf-8")


def make_services(
    tmp_path: Path,
    *,
    clock: FakeClock | None = None,
    platform: FakePlatform | None = None,
    lines: list[str] | None = None,
    stickers: list[str] | None = None,
    friends: list[str] | None = None,
    targets: list[str] | None = None,
    **overrides: str,
) -> SimpleNamespace:
    settings = make_settings(tmp_path, **overrides)
    for path, entries in (
        (settings.lines_path, lines),
        (settings.stickers_path, stickers),
        (settings.friends_path, friends),
        (settings.targets_path, targets),
    ):
        if entries is not None:
            write_list(path, entries)
    clock = clock or FakeClock()
    platform = platform or FakePlatform(clock)
    store = MessagePackStore(settings.log_store_path)
    logger = LoggerService(store)
    state = BotState(logger, sleep=clock.sleep)
    lists = ListService(settings, logger)
    sender = SendService(platform, logger, sleep=clock.sleep)
    replies = ReplyQueueService(state, lists, sender, logger, sleep=clock.sleep)
    commands = CommandService(settings, platform, state, lists, sender, logger, sleep=clock.sleep)
    dispatcher = Dispatcher(settings, state, lists, commands, replies, logger)
    return SimpleNamespace(
        settings=settings,
        clock=clock,
        platform=platform,
        store=store,
        logger=logger,
        state=state,
        lists=lists,
        sender=sender,
        replies=replies,
        commands=commands,
        dispatcher=dispatcher,
    )


def logged_events(store: MessagePackStore) -> list[str]:
    return [str(row["event"]) for row in store.data["logs"]]


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)
