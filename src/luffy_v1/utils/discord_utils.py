from __future__ import annotations

import discord


async def get_bot_member(bot: discord.Client, guild: discord.Guild) -> discord.Member | None:
    """
    Resolve the bot's Member object for a guild.

    `guild.me` can be None depending on cache state/intents; this helper tries cache
    and then falls back to an API fetch.
    """

    me = guild.me
    if me is not None:
        return me
    if bot.user is None:
        return None
    cached = guild.get_member(bot.user.id)
    if cached is not None:
        return cached
    try:
        return await guild.fetch_member(bot.user.id)
    except (discord.Forbidden, discord.HTTPException):
        return None


async def get_member(bot: discord.Client, guild: discord.Guild, user_id: int) -> discord.Member | None:
    if bot.user is not None and bot.user.id == user_id:
        return await get_bot_member(bot, guild)
    cached = guild.get_member(user_id)
    if cached is not None:
        return cached
    try:
        return await guild.fetch_member(user_id)
    except (discord.Forbidden, discord.HTTPException):
        return None


def parse_snowflake(value: str) -> int | None:
    try:
        out = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return out if out > 0 else None
