"""
Tests for ModerationService: quota changes, frees and watchlist bookkeeping.
"""

import sqlite3
from unittest.mock import AsyncMock

import pytest

from watchquota.database.errors import ValidationError
from watchquota.services.moderation_service import ModerationService


@pytest.fixture
def service(database):
    return ModerationService(database, max_daily_quota=10000)


# ---------------------------------------------------------------------------
# Quota changes
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("bad", [-1, 10001, 2.5, "10", True, None])
def test_validate_quota_rejects(service, bad):
    with pytest.raises(ValidationError):
        service.validate_quota(bad)


@pytest.mark.parametrize("good", [0, 1, 10000])
def test_validate_quota_accepts(service, good):
    assert service.validate_quota(good) == good


@pytest.mark.asyncio
async def test_set_daily_quota_persists_and_logs(service, database):
    change = await service.set_daily_quota("g1", 50, "m1", "Mod")
    second = await service.set_daily_quota("g1", 20, "m2", "Other")

    assert (change.old_quota, change.new_quota) == (0, 50)
    assert (second.old_quota, second.new_quota) == (50, 20)
    assert await database.get_quota("g1") == 20

    entries = await database.get_action_logs("g1", action_type="quota_set")
    assert [e.details for e in entries] == [
        {"oldQuota": 0, "newQuota": 50},
        {"oldQuota": 50, "newQuota": 20},
    ]
    assert await database.get_command_usage("dailyMessageQuota") == 2


@pytest.mark.asyncio
async def test_set_daily_quota_rejects_out_of_range(service, database):
    with pytest.raises(ValidationError):
        await service.set_daily_quota("g1", 10001, "m1", "Mod")
    assert await database.get_quota("g1") == 0
    assert await database.get_action_logs("g1") == []


@pytest.mark.asyncio
async def test_set_daily_quota_write_failure_propagates(service, database, monkeypatch):
    monkeypatch.setattr(database, "set_quota", AsyncMock(side_effect=sqlite3.OperationalError("disk I/O error")))

    with pytest.raises(sqlite3.OperationalError):
        await service.set_daily_quota("g1", 5, "m1", "Mod")
    assert await database.get_action_logs("g1") == []


# ---------------------------------------------------------------------------
# Free
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_free_resets_counter_and_logs(service, database):
    for _ in range(4):
        await database.increment_message_count("g1", "u1")
    remove_timeout = AsyncMock()

    await service.free_user("g1", "u1", "User", "m1", "Mod", "appeal accepted", remove_timeout)

    remove_timeout.assert_awaited_once()
    assert await database.get_message_count("g1", "u1") == 0
    entries = await database.get_action_logs("g1")
    assert [e.action_type for e in entries] == ["free", "quota_reset"]
    assert entries[0].details == {"reason": "appeal accepted"}
    assert entries[1].details == {"reason": "Manual free by moderator: appeal accepted"}
    assert await database.get_command_usage("free") == 1


@pytest.mark.asyncio
async def test_free_stops_when_timeout_removal_fails(service, database):
    await database.increment_message_count("g1", "u1")
    remove_timeout = AsyncMock(side_effect=RuntimeError("missing permissions"))

    with pytest.raises(RuntimeError):
        await service.free_user("g1", "u1", "User", "m1", "Mod", "x", remove_timeout)

    assert await database.get_message_count("g1", "u1") == 1
    assert await database.get_action_logs("g1") == []


@pytest.mark.asyncio
async def test_free_survives_audit_failure(service, database, monkeypatch):
    await database.increment_message_count("g1", "u1")
    failing = AsyncMock(side_effect=sqlite3.OperationalError("database is locked"))
    monkeypatch.setattr(database, "log_free", failing)

    await service.free_user("g1", "u1", "User", "m1", "Mod", "x")

    assert failing.await_count == database.retry_max_attempts
    assert await database.get_message_count("g1", "u1") == 0
    entries = await database.get_action_logs("g1")
    assert [e.action_type for e in entries] == ["quota_reset"]


# ---------------------------------------------------------------------------
# Bookkeeping
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_record_manual_timeout(service, database):
    await service.record_manual_timeout("g1", "u1", "User", "m1", "Mod", "spam", 600000)

    entries = await database.get_action_logs("g1", action_type="timeout")
    assert entries[0].details == {"reason": "spam", "durationMs": 600000}
    assert await database.get_command_usage("timeout") == 1


@pytest.mark.asyncio
async def test_record_watchlist_changes(service, database):
    await service.record_watchlist_change("g1", "u1", "User", "m1", "Mod", added=True)
    await service.record_watchlist_change("g1", "u1", "User", "m1", "Mod", added=False)

    entries = await database.get_action_logs("g1")
    assert [e.action_type for e in entries] == ["watchlist_add", "watchlist_remove"]
    assert await database.get_command_usage("watchlist") == 1
    assert await database.get_command_usage("unwatchlist") == 1


@pytest.mark.asyncio
async def test_record_watchlist_role_created(service, database):
    await service.record_watchlist_role_created("g1", "My Guild", on_join=True)

    entries = await database.get_action_logs("g1")
    assert entries[0].action_type == "watchlist_role_created"
    assert entries[0].details == {"guildName": "My Guild", "automatic": True, "onJoin": True}


def test_services_package_exports_moderation_api():
    from watchquota import services

    assert services.ModerationService is ModerationService
    assert "QuotaEnforcementService" in services.__all__
