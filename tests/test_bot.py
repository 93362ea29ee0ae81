from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from types import SimpleNamespace

import discord
import pytest

from luffy_v1 import bot as bot_module
from luffy_v1.bot import LuffyBot, run_bot
from luffy_v1.state import SCRIPTED, CycleContext

from support import FakeClock, FakePlatform, logged_events, make_settings, settle


class StubChannel:
    def __init__(self, cid: int, history: dict[int, object]) -> None:
        self.id = cid
        self.history = history
        self.fetched: list[int] = []

    async def fetch_message(self, message_id: int) -> object:
        self.fetched.append(message_id)
        found = self.history.get(message_id)
        if found is None:
            raise discord.NotFound(SimpleNamespace(status=404, reason="stub"), "unknown message")
        return found


class StubRunBot:
    """Stands in for LuffyBot inside run_bot: `start` blocks until shutdown."""

    def __init__(self, *, login_error: Exception | None = None, send_signal: bool = False) -> None:
        self.logger = SimpleNamespace(rows=[], log=lambda event, **data: self.logger.rows.append(event))
        self.login_error = login_error
        self.send_signal = send_signal
        self.shutdowns = 0
        self.closed = asyncio.Event()

    async def __aenter__(self) -> "StubRunBot":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def start(self, token: str) -> None:
        if self.login_error is not None:
            raise self.login_error
        if self.send_signal:
            signal.raise_signal(signal.SIGINT)
        await self.closed.wait()

    async def shutdown(self) -> None:
        self.shutdowns += 1
        self.closed.set()


def _make_bot(tmp_path: Path) -> tuple[LuffyBot, FakePlatform]:
    bot = LuffyBot(make_settings(tmp_path))
    fake = FakePlatform()
    clock = FakeClock()
    bot.commands.platform = fake
    bot.sender.platform = fake
    bot.commands._sleep = clock.sleep
    bot.sender._sleep = clock.sleep

    async def closed() -> None:
        return None

    bot.close = closed
    return bot, fake


def test_main_exits_with_status_one_without_a_session_file(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)

    with pytest.raises(SystemExit) as excinfo:
        bot_module.main()

    assert excinfo.value.code == 1
    assert "appstate.json" in capsys.readouterr().err


def test_main_rejects_a_session_file_without_token(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "appstate.json").write_text('{"cookies": []}', encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        bot_module.main()

    assert excinfo.value.code == 1
    assert "token" in capsys.readouterr().err


def test_shutdown_cancels_timers_windows_and_drains(tmp_path: Path) -> None:
    bot, _ = _make_bot(tmp_path)

    async def tick(context: object) -> bool:
        return True

    async def scenario() -> list[asyncio.Task]:
        entry = bot.state.timers.start(SCRIPTED, "t1", 60, CycleContext(thread_id="t1", items=("a",)), tick)
        window = asyncio.create_task(asyncio.sleep(60))
        bot.state.arm_capture("t1", window)
        bot.replies.enqueue("7", "t1", "m1")
        await settle()
        drain = bot.state.reply_queues["7"].task
        assert drain is not None

        await bot.shutdown()
        await bot.shutdown()
        await settle()
        return [entry.task, window, drain]

    tasks = asyncio.run(scenario())
    assert all(task.cancelled() for task in tasks)
    assert bot.state.timers.count() == 0
    assert bot.state.is_capture_armed("t1") is False
    assert bot.replies.is_draining("7") is False
    assert logged_events(bot.store).count("bot.shutdown") == 1
    assert bot.settings.log_store_path.exists()


def test_run_bot_returns_zero_after_interrupt() -> None:
    stub = StubRunBot(send_signal=True)

    assert asyncio.run(run_bot(stub, "token")) == 0
    assert stub.shutdowns >= 1


def test_run_bot_returns_one_on_login_failure() -> None:
    stub = StubRunBot(login_error=discord.LoginFailure("bad token"))

    assert asyncio.run(run_bot(stub, "token")) == 1
    assert stub.logger.rows == ["bot.login_failed"]
    assert stub.shutdowns == 1


def test_uncached_reply_is_fetched_for_forward(tmp_path: Path) -> None:
    bot, fake = _make_bot(tmp_path)
    original = SimpleNamespace(id=55, content="pass it on", attachments=[])
    channel = StubChannel(10, {55: original})
    message = SimpleNamespace(
        id=2,
        channel=channel,
        author=SimpleNamespace(id=42),
        content="/forward",
        attachments=[],
        reference=SimpleNamespace(message_id=55, resolved=None, cached_message=None),
    )

    asyncio.run(bot.on_message(message))

    assert channel.fetched == [55]
    assert fake.texts("1") == ["pass it on"]
    assert fake.texts("10")[-1] == "✅ Forwarding complete."


def test_deleted_reply_still_gets_the_usage_notice(tmp_path: Path) -> None:
    bot, fake = _make_bot(tmp_path)
    reference = SimpleNamespace(message_id=55, channel_id=10, guild_id=None)
    reference.resolved = discord.DeletedReferencedMessage(reference)
    reference.cached_message = None
    channel = StubChannel(10, {})
    message = SimpleNamespace(
        id=2, channel=channel, author=SimpleNamespace(id=42), content="/forward", attachments=[], reference=reference
    )

    asyncio.run(bot.on_message(message))

    assert channel.fetched == []
    assert fake.texts("10") == ["❗ Reply to a message to forward it to all group members."]
