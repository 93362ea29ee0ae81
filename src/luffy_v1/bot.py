from __future__ import annotations

import asyncio
import dataclasses
import signal
import sys

import discord

from luffy_v1.config import Settings, load_credential
from luffy_v1.events import InboundEvent, normalize_event, rename_event, reply_ref
from luffy_v1.platform import PlatformError
from luffy_v1.services.command_service import CommandService
from luffy_v1.services.discord_platform import DiscordPlatform, credential_token
from luffy_v1.services.dispatch_service import Dispatcher
from luffy_v1.services.list_service import ListService
from luffy_v1.services.logger_service import LoggerService
from luffy_v1.services.reply_queue_service import ReplyQueueService
from luffy_v1.services.send_service import SendService
from luffy_v1.services.status_service import StatusService
from luffy_v1.state import BotState
from luffy_v1.storage import MessagePackStore


class LuffyBot(discord.Client):
    def __init__(self, settings: Settings) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        intents.messages = True
        intents.message_content = True
        intents.dm_messages = True
        super().__init__(intents=intents)
        self.settings = settings
        self.store = MessagePackStore(settings.log_store_path)
        self.logger = LoggerService(self.store)
        self.platform = DiscordPlatform(self)
        self.lists = ListService(settings, self.logger)
        self.state = BotState(self.logger)
        self.sender = SendService(self.platform, self.logger)
        self.replies = ReplyQueueService(self.state, self.lists, self.sender, self.logger)
        self.commands = CommandService(settings, self.platform, self.state, self.lists, self.sender, self.logger)
        self.dispatcher = Dispatcher(settings, self.state, self.lists, self.commands, self.replies, self.logger)
        self.status_page = StatusService(settings, self.logger)
        self._autosave_task: asyncio.Task | None = None
        self._shutting_down = False

    async def setup_hook(self) -> None:
        await self.store.load()
        self._autosave_task = asyncio.create_task(self.store.autosave_loop(), name="msgpack-autosave")
        await self.lists.load()
        if self.lists.mode == "watch":
            self.lists.start_watching()
        await self.status_page.start()
        if not self.settings.owner_ids:
            self.logger.log("bot.no_owners", hint="set OWNER_IDS in settings.txt")

    async def on_ready(self) -> None:
        self.logger.log("bot.ready", user_id=self.user.id if self.user else 0, guilds=len(self.guilds))

    async def on_message(self, message: discord.Message) -> None:
        if self.user is not None and message.author.id == self.user.id:
            return
        event = normalize_event(message)
        if event is None:
            return
        if event.reply is None or event.reply.is_empty:
            event = await self._with_replied_message(message, event)
        await self.dispatcher.handle_safe(event)

    async def _with_replied_message(self, message: discord.Message, event: InboundEvent) -> InboundEvent:
        try:
            replied = await self.platform.fetch_replied_message(message)
        except PlatformError as exc:
            self.logger.log("event.reply_unresolved", thread_id=event.thread_id, error=str(exc)[:300])
            return event
        if replied is None:
            return event
        return dataclasses.replace(event, reply=reply_ref(replied))

    async def on_guild_channel_update(self, before: discord.abc.GuildChannel, after: discord.abc.GuildChannel) -> None:
        await self._on_rename(before, after)

    async def on_thread_update(self, before: discord.Thread, after: discord.Thread) -> None:
        await self._on_rename(before, after)

    async def _on_rename(self, before: object, after: object) -> None:
        old_name = getattr(before, "name", None)
        new_name = getattr(after, "name", None)
        if old_name == new_name:
            return
        guild = getattr(after, "guild", None)
        # channel updates carry no actor; the guild stands in as sender
        event = rename_event(getattr(after, "id", None), getattr(guild, "id", None), str(new_name or ""))
        await self.dispatcher.handle_safe(event)

    async def shutdown(self) -> None:
        if self._shutting_down:
            return
        self._shutting_down = True
        cancelled = self.state.shutdown()
        self.logger.log("bot.shutdown", timers_cancelled=cancelled)
        self.lists.stop_watching()
        if self._autosave_task is not None and not self._autosave_task.done():
            self._autosave_task.cancel()
        await self.status_page.stop()
        await self.store.save()
        await self.close()


async def run_bot(bot: LuffyBot, token: str) -> int:
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(bot.shutdown()))
        except (NotImplementedError, RuntimeError):
            continue
        installed.append(sig)
    try:
        async with bot:
            try:
                await bot.start(token)
            except discord.LoginFailure as exc:
                bot.logger.log("bot.login_failed", error=str(exc)[:300])
                await bot.shutdown()
                return 1
        await bot.shutdown()
        return 0
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def main() -> None:
    try:
        settings = Settings.load()
        token = credential_token(load_credential(settings.credential_path))
    except RuntimeError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        sys.exit(1)
    bot = LuffyBot(settings)
    try:
        code = asyncio.run(run_bot(bot, token))
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)
