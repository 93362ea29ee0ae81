from __future__ import annotations

from typing import Any, Awaitable, Callable

from luffy_v1.config import Settings
from luffy_v1.events import InboundEvent, ParsedCommand, normalize_event, parse_command
from luffy_v1.services.command_service import STICKER_COMMAND, CommandService
from luffy_v1.services.list_service import ListService
from luffy_v1.services.logger_service import LoggerService
from luffy_v1.services.reply_queue_service import ReplyQueueService
from luffy_v1.state import BotState


Route = Callable[[InboundEvent, ParsedCommand], Awaitable[Any]]


class Dispatcher:
    def __init__(
        self,
        settings: Settings,
        state: BotState,
        lists: ListService,
        commands: CommandService,
        replies: ReplyQueueService,
        logger: LoggerService,
    ) -> None:
        self.settings = settings
        self.state = state
        self.lists = lists
        self.commands = commands
        self.replies = replies
        self.logger = logger
        self.owner_ids = frozenset(settings.owner_ids)
        self.routes: dict[str, Route] = {
            "/allname": lambda ev, cmd: commands.all_name(ev.thread_id, cmd.argument),
            "/groupname": lambda ev, cmd: commands.group_name(ev.thread_id, cmd.argument),
            "/lockgroupname": lambda ev, cmd: commands.lock_group_name(ev.thread_id, cmd.argument),
            "/unlockgroupname": lambda ev, cmd: commands.unlock_group_name(ev.thread_id),
            "/uid": lambda ev, cmd: commands.uid(ev.thread_id),
            "/exit": lambda ev, cmd: commands.exit_thread(ev.thread_id),
            "/rkb": lambda ev, cmd: commands.start_scripted(ev.thread_id, cmd.argument),
            "/stop": lambda ev, cmd: commands.stop_scripted(ev.thread_id),
            "/photo": lambda ev, cmd: commands.arm_capture(ev.thread_id),
            "/stopphoto": lambda ev, cmd: commands.stop_photo(ev.thread_id),
            "/forward": lambda ev, cmd: commands.forward(ev),
            "/target": lambda ev, cmd: commands.set_target(ev.thread_id, cmd.args),
            "/cleartarget": lambda ev, cmd: commands.clear_target(ev.thread_id),
            "/help": lambda ev, cmd: commands.help(ev.thread_id),
            "/stopsticker": lambda ev, cmd: commands.stop_sticker(ev.thread_id),
        }

    def is_owner(self, sender_id: str) -> bool:
        return sender_id in self.owner_ids

    async def handle_safe(self, raw: Any) -> None:
        try:
            event = normalize_event(raw)
            if event is None:
                return
            await self.handle(event)
        except Exception as exc:  # noqa: BLE001
            self.logger.log("event.failed", error=str(exc)[:300], kind=type(exc).__name__)

    async def handle(self, event: InboundEvent) -> str:
        """Route one event. Returns a short label of what happened, for logs and tests."""
        if event.attachments and self.state.is_capture_armed(event.thread_id):
            await self.commands.capture_media(event)

        if not event.body:
            if event.is_rename:
                await self.commands.guard_rename(event.thread_id, event.renamed_to or "")
                return "rename"
            return "empty"

        lines = await self.lists.lines()
        if lines and self.state.is_target(event.sender_id, await self.lists.targets()):
            self.replies.enqueue(event.sender_id, event.thread_id, event.message_id)

        if event.is_rename:
            await self.commands.guard_rename(event.thread_id, event.renamed_to or "")
            return "rename"

        friends = await self.lists.friends()
        if event.sender_id not in friends and self.commands.filter_matches(event.body):
            await self.commands.filter_reply(event)
            return "filtered"

        command = parse_command(event.body)
        if not self.is_owner(event.sender_id):
            if command.name == "/help":
                await self.commands.help(event.thread_id)
                return "help"
            return "ignored"

        route = self.routes.get(command.name)
        if route is None and command.name.startswith(STICKER_COMMAND):
            route = self._start_sticker
        if route is None:
            return "ignored"
        self.logger.log("command.run", command=command.name, thread_id=event.thread_id, sender_id=event.sender_id)
        await route(event, command)
        return command.name

    async def _start_sticker(self, event: InboundEvent, command: ParsedCommand) -> None:
        await self.commands.start_sticker(event.thread_id, command.name)
