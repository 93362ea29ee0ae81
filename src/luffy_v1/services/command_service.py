from __future__ import annotations

import asyncio

from luffy_v1.config import Settings
from luffy_v1.events import InboundEvent
from luffy_v1.platform import PlatformClient, PlatformError
from luffy_v1.services.list_service import ListService
from luffy_v1.services.logger_service import LoggerService
from luffy_v1.services.send_service import SendService
from luffy_v1.state import MEDIA, SCRIPTED, STICKER, BotState, CycleContext, MediaContext, SleepFn


SCRIPTED_PERIOD_SEC = 60
MEDIA_PERIOD_SEC = 30
CAPTURE_WINDOW_SEC = 60
STICKER_MIN_SEC = 5
STICKER_COMMAND = "/sticker"
NICKNAME_TRIES = 3
NICKNAME_BACKOFF_SEC = 2
NICKNAME_GAP_SEC = 1.5
FORWARD_GAP_SEC = 1.2

COMMAND_LIST = (
    "/allname <name>",
    "/groupname <name>",
    "/lockgroupname <name>",
    "/unlockgroupname",
    "/uid",
    "/exit",
    "/rkb <name>",
    "/stop",
    "/photo",
    "/stopphoto",
    "/forward",
    "/target <uid>",
    "/cleartarget",
    "/sticker<seconds>",
    "/stopsticker",
    "/help",
)


def build_help_text(bot_name: str) -> str:
    return "\n".join(
        [
            "╭────────────────────╮",
            f"       💜   [[ {bot_name} ]]    💜",
            "╰────────────────────╯",
            *COMMAND_LIST,
            "",
            "Commands are owner-only.",
        ]
    )


class CommandService:
    def __init__(
        self,
        settings: Settings,
        platform: PlatformClient,
        state: BotState,
        lists: ListService,
        sender: SendService,
        logger: LoggerService,
        *,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.platform = platform
        self.state = state
        self.lists = lists
        self.sender = sender
        self.logger = logger
        self._sleep = sleep
        self.help_text = build_help_text(settings.bot_name)

    # Group name
    async def group_name(self, thread_id: str, name: str) -> None:
        if not name:
            await self.sender.send(thread_id, "Usage: /groupname <name>")
            return
        try:
            await self.platform.set_title(thread_id, name)
        except PlatformError as exc:
            self.logger.log("groupname.failed", thread_id=thread_id, error=str(exc)[:300])
            await self.sender.send(thread_id, "❌ Failed to change group name.")
            return
        await self.sender.send(thread_id, f"📝 Group name changed to: {name}")

    async def lock_group_name(self, thread_id: str, name: str) -> None:
        if not name:
            await self.sender.send(thread_id, "Usage: /lockgroupname <name>")
            return
        try:
            await self.platform.set_title(thread_id, name)
        except PlatformError as exc:
            self.logger.log("groupname.lock_failed", thread_id=thread_id, error=str(exc)[:300])
            await self.sender.send(thread_id, "❌ Locking failed.")
            return
        self.state.lock_name(thread_id, name)
        self.logger.log("groupname.locked", thread_id=thread_id, name=name)
        await self.sender.send(thread_id, f"🔒 Locked group name to: {name}")

    async def unlock_group_name(self, thread_id: str) -> None:
        self.state.unlock_name(thread_id)
        await self.sender.send(thread_id, "🔓 Group name unlocked.")

    async def guard_rename(self, thread_id: str, observed: str) -> bool:
        locked = self.state.locked_name(thread_id)
        if not locked or not observed or observed == locked:
            return False
        try:
            await self.platform.set_title(thread_id, locked)
        except PlatformError as exc:
            self.logger.log("groupname.revert_failed", thread_id=thread_id, error=str(exc)[:300])
            return False
        self.logger.log("groupname.reverted", thread_id=thread_id, observed=observed, locked=locked)
        await self.sender.send(thread_id, f'🔒 Reverted group name to "{locked}"')
        return True

    # Members
    async def all_name(self, thread_id: str, nickname: str) -> None:
        if not nickname:
            await self.sender.send(thread_id, "Usage: /allname <name>")
            return
        try:
            info = await self.platform.get_thread_info(thread_id)
        except PlatformError as exc:
            self.logger.log("allname.failed", thread_id=thread_id, error=str(exc)[:300])
            await self.sender.send(thread_id, "❌ Error processing /allname")
            return
        members = info.participant_ids
        await self.sender.send(thread_id, f"🛠 Changing nicknames for {len(members)} members...")
        changed = 0
        for user_id in members:
            if await self._change_nickname(thread_id, user_id, nickname):
                changed += 1
            await self._sleep(NICKNAME_GAP_SEC)
        self.logger.log("allname.done", thread_id=thread_id, members=len(members), changed=changed)
        await self.sender.send(thread_id, "✅ All nicknames processed.")

    async def _change_nickname(self, thread_id: str, user_id: str, nickname: str) -> bool:
        for attempt in range(1, NICKNAME_TRIES + 1):
            try:
                await self.platform.change_nickname(thread_id, user_id, nickname)
                return True
            except PlatformError as exc:
                self.logger.log("allname.retry", thread_id=thread_id, user_id=user_id, attempt=attempt, error=str(exc)[:300])
                await self._sleep(NICKNAME_BACKOFF_SEC * attempt)
        self.logger.log("allname.member_skipped", thread_id=thread_id, user_id=user_id)
        return False

    async def uid(self, thread_id: str) -> None:
        await self.sender.send(thread_id, f"🆔 Group ID: {thread_id}")

    async def exit_thread(self, thread_id: str) -> None:
        try:
            my_id = await self.platform.get_current_user_id()
            await self.platform.remove_user_from_group(my_id, thread_id)
        except PlatformError as exc:
            self.logger.log("exit.failed", thread_id=thread_id, error=str(exc)[:300])
            await self.sender.send(thread_id, "❌ Can't leave group.")
            return
        self.logger.log("exit.left", thread_id=thread_id)

    # Scripted cycle
    async def start_scripted(self, thread_id: str, name: str) -> None:
        lines = await self.lists.lines()
        if not lines:
            await self.sender.send(thread_id, f"{self.settings.lines_path.name} is missing or empty.")
            return
        if not name:
            await self.sender.send(thread_id, "Usage: /rkb <name>")
            return
        context = CycleContext(thread_id=thread_id, items=tuple(lines), prefix=name)
        self.state.timers.start(
            SCRIPTED,
            thread_id,
            SCRIPTED_PERIOD_SEC,
            context,
            self._scripted_tick,
            on_finish=self._scripted_finished,
        )
        self.logger.log("scripted.started", thread_id=thread_id, lines=len(lines))
        await self.sender.send(thread_id, f"🚀 rkb started for {name}")

    async def _scripted_tick(self, context: CycleContext) -> bool:
        if context.exhausted:
            return False
        await self.sender.send(context.thread_id, f"{context.prefix} {context.next_item()}")
        return True

    async def _scripted_finished(self, context: CycleContext) -> None:
        await self.sender.send(context.thread_id, "✅ rkb cycle finished.")

    async def stop_scripted(self, thread_id: str) -> bool:
        if self.state.timers.stop(SCRIPTED, thread_id):
            await self.sender.send(thread_id, "🛑 rkb stopped.")
            return True
        await self.sender.send(thread_id, "ℹ️ No rkb running in this chat.")
        return False

    # Media capture loop
    async def arm_capture(self, thread_id: str) -> None:
        self.state.timers.stop(MEDIA, thread_id)
        window = asyncio.create_task(self._capture_timeout(thread_id), name=f"capture-window-{thread_id}")
        self.state.arm_capture(thread_id, window)
        await self.sender.send(thread_id, "📸 Send a photo or video within 60 seconds to capture and loop it.")

    async def _capture_timeout(self, thread_id: str) -> None:
        await self._sleep(CAPTURE_WINDOW_SEC)
        if not self.state.disarm_capture(thread_id, cancel=False):
            return
        self.logger.log("photo.capture_expired", thread_id=thread_id)
        await self.sender.send(thread_id, "⏳ No media received — photo capture canceled.")

    async def capture_media(self, event: InboundEvent) -> bool:
        thread_id = event.thread_id
        if not event.attachments or not self.state.is_capture_armed(thread_id):
            return False
        self.state.disarm_capture(thread_id)
        self.state.remember_media(thread_id, event.attachments)
        context = MediaContext(thread_id=thread_id, attachments=tuple(event.attachments))
        self.state.timers.start(MEDIA, thread_id, MEDIA_PERIOD_SEC, context, self._media_tick)
        self.logger.log("photo.captured", thread_id=thread_id, attachments=len(event.attachments))
        await self.sender.send(thread_id, "✅ Photo/video captured — will resend every 30 seconds.")
        return True

    async def _media_tick(self, context: MediaContext) -> bool:
        attachments = self.state.media_for(context.thread_id) or context.attachments
        try:
            await self.platform.send_message(context.thread_id, attachments=attachments)
            context.sends += 1
        except PlatformError as exc:
            self.logger.log("photo.resend_failed", thread_id=context.thread_id, error=str(exc)[:300])
        return True

    async def stop_photo(self, thread_id: str) -> None:
        self.state.timers.stop(MEDIA, thread_id)
        self.state.forget_media(thread_id)
        self.state.disarm_capture(thread_id)
        await self.sender.send(thread_id, "🛑 Photo loop stopped.")

    # Forward
    async def forward(self, event: InboundEvent) -> None:
        thread_id = event.thread_id
        reply = event.reply
        if reply is None or reply.is_empty:
            await self.sender.send(thread_id, "❗ Reply to a message to forward it to all group members.")
            return
        try:
            info = await self.platform.get_thread_info(thread_id)
            my_id = await self.platform.get_current_user_id()
        except PlatformError as exc:
            self.logger.log("forward.failed", thread_id=thread_id, error=str(exc)[:300])
            await self.sender.send(thread_id, "❌ Error forwarding message.")
            return
        members = info.participant_ids
        await self.sender.send(thread_id, f"📨 Forwarding to {len(members)} members...")
        delivered = 0
        for user_id in members:
            if user_id == my_id:
                continue
            try:
                await self.platform.send_message(user_id, reply.body, attachments=reply.attachments)
                delivered += 1
            except PlatformError as exc:
                self.logger.log("forward.member_failed", thread_id=thread_id, user_id=user_id, error=str(exc)[:300])
            await self._sleep(FORWARD_GAP_SEC)
        self.logger.log("forward.done", thread_id=thread_id, delivered=delivered)
        await self.sender.send(thread_id, "✅ Forwarding complete.")

    # Target
    async def set_target(self, thread_id: str, args: tuple[str, ...]) -> None:
        if len(args) < 2 or not args[1].strip():
            await self.sender.send(thread_id, "Usage: /target <uid>")
            return
        self.state.set_target(args[1])
        self.logger.log("target.set", thread_id=thread_id, target_id=self.state.target_id)
        await self.sender.send(thread_id, f"✅ Target set to {self.state.target_id}")

    async def clear_target(self, thread_id: str) -> None:
        self.state.clear_target()
        await self.sender.send(thread_id, "Target cleared.")

    async def help(self, thread_id: str) -> None:
        await self.sender.send(thread_id, self.help_text)

    # Sticker cycle
    async def start_sticker(self, thread_id: str, command: str) -> None:
        stickers = await self.lists.stickers()
        if not stickers:
            await self.sender.send(thread_id, f"{self.settings.stickers_path.name} missing or empty.")
            return
        delay = parse_sticker_delay(command)
        if delay is None:
            await self.sender.send(thread_id, "Provide a delay in seconds (min 5). Example: /sticker10")
            return
        context = CycleContext(thread_id=thread_id, items=tuple(stickers))
        self.state.timers.start(STICKER, thread_id, delay, context, self._sticker_tick)
        self.logger.log("sticker.started", thread_id=thread_id, delay=delay, stickers=len(stickers))
        await self.sender.send(thread_id, f"📦 Sticker loop started (every {delay}s)")

    async def _sticker_tick(self, context: CycleContext) -> bool:
        if context.exhausted:
            return False
        sticker_id = context.next_item()
        try:
            await self.platform.send_message(context.thread_id, sticker_id=sticker_id)
        except PlatformError as exc:
            self.logger.log("sticker.send_failed", thread_id=context.thread_id, sticker_id=sticker_id, error=str(exc)[:300])
        return not context.exhausted

    async def stop_sticker(self, thread_id: str) -> bool:
        if self.state.timers.stop(STICKER, thread_id):
            await self.sender.send(thread_id, "🛑 Sticker loop stopped.")
            return True
        await self.sender.send(thread_id, "ℹ️ No sticker loop running.")
        return False

    # Trigger-word filter
    def filter_matches(self, body: str) -> bool:
        lowered = body.lower()
        names = self.settings.bad_names
        words = self.settings.trigger_words
        return any(name in lowered for name in names) and any(word in lowered for word in words)

    async def filter_reply(self, event: InboundEvent) -> None:
        self.logger.log("filter.hit", thread_id=event.thread_id, sender_id=event.sender_id)
        await self.sender.send(event.thread_id, self.settings.filter_reply, reply_to=event.message_id or None)


def parse_sticker_delay(command: str) -> int | None:
    raw = command[len(STICKER_COMMAND):] if command.startswith(STICKER_COMMAND) else command
    raw = raw.strip()
    if not raw.isdecimal():
        return None
    delay = int(raw)
    if delay < STICKER_MIN_SEC:
        return None
    return delay
