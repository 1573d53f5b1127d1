from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from puppet_bridge.database.errors import StorageError  # noqa: E402
from puppet_bridge.database.puppet import Puppet  # noqa: E402
from puppet_bridge.database.store import SQLiteDatabase  # noqa: E402
from puppet_bridge.ids import ContentURI, RemoteID, UserID  # noqa: E402
from puppet_bridge.puppets import PuppetManager  # noqa: E402


class _BrokenDB:
    def __init__(self) -> None:
        self.calls = 0

    async def _fail(self, *args: Any) -> Any:
        self.calls += 1
        raise StorageError("connection refused")

    async def query(self, sql: str, *args: Any) -> Any:
        return await self._fail(sql, *args)

    async def query_row(self, sql: str, *args: Any) -> Any:
        return await self._fail(sql, *args)

    async def execute(self, sql: str, *args: Any) -> Any:
        return await self._fail(sql, *args)


async def _manager(db_path: Path) -> PuppetManager:
    db = SQLiteDatabase(db_path)
    await db.init()
    return PuppetManager(db)


def test_storage_failures_are_logged_and_reported_as_absence(caplog: pytest.LogCaptureFixture) -> None:
    db = _BrokenDB()
    manager = PuppetManager(db)
    puppet = Puppet(remote_id=RemoteID.new_user("42"))

    async def scenario() -> tuple[Any, ...]:
        return (
            await manager.get_puppet(RemoteID.new_user("42")),
            await manager.get_puppet_by_custom_mxid(UserID("@alice:example.org")),
            await manager.get_all_puppets(),
            await manager.get_double_puppets(),
            await manager.save(puppet),
            await manager.mark_active(puppet, 1000),
        )

    with caplog.at_level(logging.WARNING, logger="puppet_bridge"):
        by_id, by_mxid, everyone, linked, saved, active = asyncio.run(scenario())

    assert by_id is None
    assert by_mxid is None
    assert everyone == []
    assert linked == []
    assert saved is False
    assert active is True
    assert puppet.last_activity_ts == 1000
    assert "Failed to load puppet 42@s.whatsapp.net" in caplog.text
    assert "Failed to update last_activity_ts" in caplog.text
    assert "Failed to update first_activity_ts" in caplog.text


def test_get_puppet_can_create_missing_user_puppets(tmp_path: Path) -> None:
    async def scenario() -> tuple[Puppet | None, Puppet | None, Puppet | None, Puppet | None]:
        manager = await _manager(tmp_path / "bridge.db")
        remote_id = RemoteID.new_user("1234567890")
        missing = await manager.get_puppet(remote_id)
        created = await manager.get_puppet(remote_id, create=True)
        loaded = await manager.get_puppet(remote_id)
        group = await manager.get_puppet(RemoteID("120363", "g.us"), create=True)
        return missing, created, loaded, group

    missing, created, loaded, group = asyncio.run(scenario())
    assert missing is None
    assert created is not None
    assert created.enable_presence and created.enable_receipts
    assert loaded == created
    assert group is None


def test_displayname_quality_policy(tmp_path: Path) -> None:
    async def scenario() -> tuple[list[bool], Puppet | None]:
        manager = await _manager(tmp_path / "bridge.db")
        puppet = await manager.get_puppet(RemoteID.new_user("1"), create=True)
        assert puppet is not None
        results = [
            await manager.update_displayname(puppet, "Push Name", 1),
            await manager.update_displayname(puppet, "Contact Name", 3),
            await manager.update_displayname(puppet, "Other Push Name", 1),
            await manager.update_displayname(puppet, "   ", 5),
        ]
        await manager.mark_profile_synced(puppet)
        results.append(await manager.update_displayname(puppet, "Contact Name", 3))
        return results, await manager.get_puppet(puppet.remote_id)

    results, stored = asyncio.run(scenario())
    assert results == [True, True, False, False, False]
    assert stored is not None
    assert stored.displayname == "Contact Name"
    assert stored.name_quality == 3
    assert stored.name_set is True
    assert stored.last_sync is not None


def test_changed_displayname_needs_propagation_again(tmp_path: Path) -> None:
    async def scenario() -> Puppet | None:
        manager = await _manager(tmp_path / "bridge.db")
        puppet = await manager.get_puppet(RemoteID.new_user("1"), create=True)
        assert puppet is not None
        await manager.update_displayname(puppet, "Alice", 2)
        await manager.mark_profile_synced(puppet, now=datetime(2024, 5, 1, tzinfo=timezone.utc))
        await manager.update_displayname(puppet, "Alice B.", 2)
        return await manager.get_puppet(puppet.remote_id)

    stored = asyncio.run(scenario())
    assert stored is not None
    assert stored.displayname == "Alice B."
    assert stored.name_set is False
    assert stored.last_sync == datetime(2024, 5, 1, tzinfo=timezone.utc)


def test_avatar_updates(tmp_path: Path) -> None:
    async def scenario() -> tuple[bool, bool, bool, Puppet | None]:
        manager = await _manager(tmp_path / "bridge.db")
        puppet = await manager.get_puppet(RemoteID.new_user("1"), create=True)
        assert puppet is not None
        uri = ContentURI("example.org", "media1")
        first = await manager.update_avatar(puppet, "hash1", uri)
        await manager.mark_profile_synced(puppet)
        unchanged = await manager.update_avatar(puppet, "hash1", uri)
        changed = await manager.update_avatar(puppet, "hash2", ContentURI("example.org", "media2"))
        return first, unchanged, changed, await manager.get_puppet(puppet.remote_id)

    first, unchanged, changed, stored = asyncio.run(scenario())
    assert (first, unchanged, changed) == (True, False, True)
    assert stored is not None
    assert stored.avatar == "hash2"
    assert str(stored.avatar_url) == "mxc://example.org/media2"
    assert stored.avatar_set is False


def test_clear_double_puppet(tmp_path: Path) -> None:
    async def scenario() -> tuple[bool, bool, list[Puppet], Puppet | None]:
        manager = await _manager(tmp_path / "bridge.db")
        puppet = await manager.get_puppet(RemoteID.new_user("1"), create=True)
        assert puppet is not None
        puppet.custom_mxid = UserID("@alice:example.org")
        puppet.access_token = "syt_token"
        puppet.next_batch = "batch"
        await manager.save(puppet)
        assert [p.remote_id for p in await manager.get_double_puppets()] == [puppet.remote_id]
        cleared = await manager.clear_double_puppet(puppet)
        again = await manager.clear_double_puppet(puppet)
        return (
            cleared,
            again,
            await manager.get_double_puppets(),
            await manager.get_puppet_by_custom_mxid(UserID("@alice:example.org")),
        )

    cleared, again, linked, by_mxid = asyncio.run(scenario())
    assert cleared is True
    assert again is False
    assert linked == []
    assert by_mxid is None


def test_mark_active_ignores_stale_events(tmp_path: Path) -> None:
    async def scenario() -> tuple[list[bool], Puppet | None]:
        manager = await _manager(tmp_path / "bridge.db")
        puppet = await manager.get_puppet(RemoteID.new_user("1"), create=True)
        assert puppet is not None
        results = [await manager.mark_active(puppet, ts) for ts in (1000, 500, 1000, 1500)]
        return results, await manager.get_puppet(puppet.remote_id)

    results, stored = asyncio.run(scenario())
    assert results == [True, False, False, True]
    assert stored is not None
    assert (stored.first_activity_ts, stored.last_activity_ts) == (1000, 1500)
