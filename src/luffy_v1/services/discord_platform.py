from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import discord

from luffy_v1.config import CredentialError
from luffy_v1.platform import PlatformError, ThreadInfo
from luffy_v1.utils.discord_utils import get_member, parse_snowflake


def credential_token(blob: dict[str, Any]) -> str:
    token = str(blob.get("token", "") or "").strip()
    if not token:
        raise CredentialError("Session file has no token.")
    return token


class DiscordPlatform:
    """PlatformClient backed by a discord.py client. Library errors become PlatformError."""

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    async def send_message(
        self,
        thread_id: str,
        text: str = "",
        *,
        reply_to: str | None = None,
        attachments: Sequence[Any] = (),
        sticker_id: str | None = None,
    ) -> None:
        destination = await self._resolve_destination(thread_id)
        kwargs: dict[str, Any] = {}
        if text:
            kwargs["content"] = text[:2000]
        try:
            if attachments:
                kwargs["files"] = [await attachment.to_file() for attachment in attachments]
            if sticker_id:
                sticker = parse_snowflake(sticker_id)
                if sticker is None:
                    raise PlatformError(f"invalid sticker id: {sticker_id}")
                kwargs["stickers"] = [discord.Object(id=sticker)]
            if reply_to:
                message_id = parse_snowflake(reply_to)
                if message_id is not None and hasattr(destination, "get_partial_message"):
                    kwargs["reference"] = destination.get_partial_message(message_id)
                    kwargs["mention_author"] = False
            if not kwargs.get("content") and "files" not in kwargs and "stickers" not in kwargs:
                return
            await destination.send(**kwargs)
        except discord.HTTPException as exc:
            raise PlatformError(str(exc)) from exc

    async def set_title(self, thread_id: str, title: str) -> None:
        channel = await self._resolve_channel(thread_id)
        if not hasattr(channel, "edit") or getattr(channel, "guild", None) is None:
            raise PlatformError(f"thread {thread_id} cannot be renamed")
        try:
            await channel.edit(name=title)
        except discord.HTTPException as exc:
            raise PlatformError(str(exc)) from exc

    async def change_nickname(self, thread_id: str, user_id: str, nickname: str) -> None:
        guild = await self._resolve_guild(thread_id)
        member_id = parse_snowflake(user_id)
        member = await get_member(self.client, guild, member_id) if member_id else None
        if member is None:
            raise PlatformError(f"member {user_id} not found")
        try:
            await member.edit(nick=nickname[:32])
        except discord.HTTPException as exc:
            raise PlatformError(str(exc)) from exc

    async def get_thread_info(self, thread_id: str) -> ThreadInfo:
        channel = await self._resolve_channel(thread_id)
        members = getattr(channel, "members", None)
        if members is None:
            recipients = getattr(channel, "recipients", None) or [getattr(channel, "recipient", None)]
            members = [user for user in recipients if user is not None]
        participant_ids = tuple(str(member.id) for member in members)
        return ThreadInfo(
            thread_id=str(thread_id),
            name=str(getattr(channel, "name", "") or ""),
            participant_ids=participant_ids,
        )

    async def remove_user_from_group(self, user_id: str, thread_id: str) -> None:
        guild = await self._resolve_guild(thread_id)
        try:
            if user_id == await self.get_current_user_id():
                await guild.leave()
                return
            member_id = parse_snowflake(user_id)
            member = await get_member(self.client, guild, member_id) if member_id else None
            if member is None:
                raise PlatformError(f"member {user_id} not found")
            await member.kick()
        except discord.HTTPException as exc:
            raise PlatformError(str(exc)) from exc

    async def get_current_user_id(self) -> str:
        user = self.client.user
        if user is None:
            raise PlatformError("client is not logged in")
        return str(user.id)

    async def fetch_replied_message(self, message: Any) -> Any | None:
        """
        The message `message` replies to.

        `reference.resolved` is only filled when the gateway sent the referenced
        message along; otherwise the cache is tried and then the channel history.
        Returns None for non-replies and for deleted targets.
        """

        reference = getattr(message, "reference", None)
        message_id = getattr(reference, "message_id", None)
        if message_id is None:
            return None
        resolved = getattr(reference, "resolved", None)
        if isinstance(resolved, discord.DeletedReferencedMessage):
            return None
        if resolved is not None:
            return resolved
        cached = getattr(reference, "cached_message", None)
        if cached is not None:
            return cached
        channel = getattr(message, "channel", None)
        if channel is None or not hasattr(channel, "fetch_message"):
            return None
        try:
            return await channel.fetch_message(message_id)
        except discord.NotFound:
            return None
        except discord.HTTPException as exc:
            raise PlatformError(str(exc)) from exc

    async def _resolve_channel(self, thread_id: str) -> Any:
        channel_id = parse_snowflake(thread_id)
        if channel_id is None:
            raise PlatformError(f"invalid thread id: {thread_id}")
        channel = self.client.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await self.client.fetch_channel(channel_id)
        except discord.NotFound as exc:
            raise PlatformError(f"thread {thread_id} not found") from exc
        except (discord.HTTPException, discord.InvalidData) as exc:
            raise PlatformError(str(exc)) from exc

    async def _resolve_destination(self, thread_id: str) -> Any:
        # member ids double as direct-message threads
        try:
            return await self._resolve_channel(thread_id)
        except PlatformError:
            user_id = parse_snowflake(thread_id)
            if user_id is None:
                raise
        user = self.client.get_user(user_id)
        if user is not None:
            return user
        try:
            return await self.client.fetch_user(user_id)
        except discord.HTTPException as exc:
            raise PlatformError(f"no thread or user {thread_id}") from exc

    async def _resolve_guild(self, thread_id: str) -> discord.Guild:
        channel = await self._resolve_channel(thread_id)
        guild = getattr(channel, "guild", None)
        if guild is None:
            raise PlatformError(f"thread {thread_id} is not a group")
        return guild
