"""
Tests for the quota listener cog using mocked Discord objects.
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from watchquota.bot.cogs import quota_listener
from watchquota.bot.cogs.quota_listener import QuotaListenerCog, can_bot_timeout, has_role_named
from watchquota.services.quota_enforcement_service import EnforcementOutcome, EnforcementResult

UNTIL = datetime(2024, 5, 2, tzinfo=timezone.utc)


def make_member(role_names=("watchlist",), timed_out=False):
    member = MagicMock(spec=discord.Member)
    member.id = 42
    member.name = "watched_user"
    member.bot = False
    member.timed_out = timed_out
    member.roles = [SimpleNamespace(name=name) for name in role_names]
    member.timeout = AsyncMock()
    return member


def make_message(author):
    message = MagicMock()
    message.guild.id = 1001
    message.author = author
    message.channel.send = AsyncMock()
    return message


@pytest.fixture
def enforcement():
    service = MagicMock()
    service.handle_message = AsyncMock(return_value=EnforcementResult(EnforcementOutcome.COUNTED, 1, 5))
    return service


@pytest.fixture
def cog(enforcement, monkeypatch):
    monkeypatch.setattr(quota_listener, "can_bot_timeout", lambda member: True)
    return QuotaListenerCog(MagicMock(), enforcement, "watchlist")


def test_has_role_named_is_case_insensitive():
    member = SimpleNamespace(roles=[SimpleNamespace(name="WatchList")])
    assert has_role_named(member, "watchlist")
    assert not has_role_named(member, "muted")


def test_can_bot_timeout_requires_permission_and_hierarchy():
    me = SimpleNamespace(guild_permissions=SimpleNamespace(moderate_members=True), top_role=10)
    guild = SimpleNamespace(me=me, owner_id=1)

    assert can_bot_timeout(SimpleNamespace(id=5, guild=guild, top_role=3))
    assert not can_bot_timeout(SimpleNamespace(id=5, guild=guild, top_role=10))
    assert not can_bot_timeout(SimpleNamespace(id=1, guild=guild, top_role=0))

    me.guild_permissions.moderate_members = False
    assert not can_bot_timeout(SimpleNamespace(id=5, guild=guild, top_role=3))


@pytest.mark.asyncio
async def test_direct_messages_are_ignored(cog, enforcement):
    message = make_message(make_member())
    message.guild = None

    await cog.on_message(message)

    enforcement.handle_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_bot_messages_are_ignored(cog, enforcement):
    author = make_member()
    author.bot = True

    await cog.on_message(make_message(author))

    enforcement.handle_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_message_is_forwarded_with_member_state(cog, enforcement):
    await cog.on_message(make_message(make_member(timed_out=True)))

    kwargs = enforcement.handle_message.await_args.kwargs
    assert kwargs["guild_id"] == "1001"
    assert kwargs["user_id"] == "42"
    assert kwargs["user_name"] == "watched_user"
    assert kwargs["is_watchlisted"] is True
    assert kwargs["can_timeout"] is True
    assert kwargs["already_timed_out"] is True


@pytest.mark.asyncio
async def test_unwatched_member_is_flagged(cog, enforcement):
    await cog.on_message(make_message(make_member(role_names=("member",))))
    assert enforcement.handle_message.await_args.kwargs["is_watchlisted"] is False


@pytest.mark.asyncio
async def test_apply_timeout_calls_discord(cog, enforcement):
    member = make_member()
    await cog.on_message(make_message(member))

    apply_timeout = enforcement.handle_message.await_args.kwargs["apply_timeout"]
    assert await apply_timeout(UNTIL, "Exceeded daily message quota (5 messages)") is True
    member.timeout.assert_awaited_once_with(UNTIL, reason="Exceeded daily message quota (5 messages)")


@pytest.mark.asyncio
async def test_apply_timeout_reports_forbidden(cog, enforcement):
    member = make_member()
    member.timeout.side_effect = discord.Forbidden(MagicMock(status=403, reason="Forbidden"), "Missing Permissions")
    await cog.on_message(make_message(member))

    apply_timeout = enforcement.handle_message.await_args.kwargs["apply_timeout"]
    assert await apply_timeout(UNTIL, "reason") is False


@pytest.mark.asyncio
async def test_channel_is_notified_after_timeout(cog, enforcement):
    enforcement.handle_message.return_value = EnforcementResult(EnforcementOutcome.TIMED_OUT, 6, 5, UNTIL)
    message = make_message(make_member())

    await cog.on_message(message)

    message.channel.send.assert_awaited_once()
    text = message.channel.send.await_args.args[0]
    assert "watched_user" in text
    assert "(5 messages)" in text
    assert f"<t:{int(UNTIL.timestamp())}:F>" in text


@pytest.mark.asyncio
async def test_no_notification_when_only_counted(cog, enforcement):
    message = make_message(make_member())
    await cog.on_message(message)
    message.channel.send.assert_not_awaited()
