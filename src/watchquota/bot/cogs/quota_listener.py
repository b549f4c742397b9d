"""Quota listener Cog for Watchquota.

Feeds every guild message into the QuotaEnforcementService and performs the
Discord side of an automatic timeout.
"""

from __future__ import annotations

from datetime import datetime

import discord
from discord.ext import commands

from watchquota.services.quota_enforcement_service import (
    EnforcementOutcome,
    QuotaEnforcementService,
)
from watchquota.util.logger import get_logger

logger = get_logger("quota_listener_cog")


def has_role_named(member: discord.Member, role_name: str) -> bool:
    """Return True if the member has a role whose name matches case-insensitively."""
    wanted = role_name.lower()
    return any(role.name.lower() == wanted for role in getattr(member, "roles", []))


def can_bot_timeout(member: discord.Member) -> bool:
    """Whether the bot outranks ``member`` and holds Moderate Members."""
    guild = member.guild
    me = guild.me
    if me is None or member.id == guild.owner_id:
        return False
    if not me.guild_permissions.moderate_members:
        return False
    return me.top_role > member.top_role


class QuotaListenerCog(commands.Cog):
    """Cog that counts watchlisted members' messages."""

    def __init__(
        self,
        discord_bot_instance,
        enforcement_service: QuotaEnforcementService,
        watchlist_role_name: str = "watchlist",
    ):
        self.bot = discord_bot_instance
        self._enforcement = enforcement_service
        self._watchlist_role_name = watchlist_role_name
        logger.info("Quota listener cog loaded")

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message) -> None:
        """Track a guild message and time its author out when over quota."""
        if message.guild is None or message.author.bot:
            return

        member = message.author
        if not isinstance(member, discord.Member):
            return

        async def apply_timeout(until: datetime, reason: str) -> bool:
            try:
                await member.timeout(until, reason=reason)
            except (discord.Forbidden, discord.HTTPException) as exc:
                logger.error("Failed to timeout user %s: %s", member.id, exc)
                return False
            return True

        result = await self._enforcement.handle_message(
            guild_id=str(message.guild.id),
            user_id=str(member.id),
            user_name=member.name,
            is_watchlisted=has_role_named(member, self._watchlist_role_name),
            apply_timeout=apply_timeout,
            can_timeout=can_bot_timeout(member),
            already_timed_out=bool(getattr(member, "timed_out", False)),
        )

        if result.outcome is EnforcementOutcome.TIMED_OUT and result.timeout_until is not None:
            await self._notify_channel(message, result.quota_limit, result.timeout_until)

    @staticmethod
    async def _notify_channel(message: discord.Message, quota_limit: int, until: datetime) -> None:
        timestamp = int(until.timestamp())
        try:
            await message.channel.send(
                f"⚠️ {message.author.name} has exceeded their daily message quota "
                f"({quota_limit} messages) and has been timed out until <t:{timestamp}:F> (midnight UTC)."
            )
        except discord.HTTPException as exc:
            logger.error("Failed to send quota exceeded notification: %s", exc)


def setup(
    discord_bot_instance,
    enforcement_service: QuotaEnforcementService,
    watchlist_role_name: str = "watchlist",
) -> None:
    """Register the QuotaListenerCog with the bot."""
    discord_bot_instance.add_cog(
        QuotaListenerCog(discord_bot_instance, enforcement_service, watchlist_role_name)
    )
