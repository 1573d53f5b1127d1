from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from .database.errors import StorageError
from .database.puppet import Puppet, PuppetQuery
from .ids import DEFAULT_USER_SERVER, ContentURI, RemoteID, UserID


logger = logging.getLogger("puppet_bridge")


class PuppetManager:
    """Puppet access for message handlers.

    Storage failures are logged and reported as "nothing found" / "not saved" so
    a persistence hiccup never aborts event processing.
    """

    def __init__(self, db: Any, *, user_server: str = DEFAULT_USER_SERVER) -> None:
        self.db = db
        self.user_server = user_server
        self.query = PuppetQuery(db, user_server=user_server)

    async def get_puppet(self, remote_id: RemoteID, *, create: bool = False) -> Puppet | None:
        try:
            puppet = await self.query.get(remote_id)
        except StorageError as exc:
            logger.error("Failed to load puppet %s: %s", remote_id, exc)
            return None
        if puppet is not None or not create:
            return puppet
        if remote_id.server != self.user_server:
            logger.warning("Not creating puppet for %s: not a user", remote_id)
            return None

        puppet = self.query.new()
        puppet.remote_id = remote_id
        try:
            await puppet.insert(self.db, user_server=self.user_server)
        except StorageError as exc:
            logger.warning("Failed to insert %s: %s", remote_id, exc)
        return puppet

    async def get_puppet_by_custom_mxid(self, mxid: UserID | str) -> Puppet | None:
        if not mxid:
            return None
        try:
            return await self.query.get_by_custom_mxid(mxid)
        except StorageError as exc:
            logger.error("Failed to load puppet by custom mxid %s: %s", mxid, exc)
            return None

    async def get_all_puppets(self) -> list[Puppet]:
        try:
            return await self.query.get_all()
        except StorageError as exc:
            logger.error("Failed to load puppets: %s", exc)
            return []

    async def get_double_puppets(self) -> list[Puppet]:
        try:
            return await self.query.get_all_with_custom_mxid()
        except StorageError as exc:
            logger.error("Failed to load double puppets: %s", exc)
            return []

    async def save(self, puppet: Puppet) -> bool:
        try:
            return await puppet.update(self.db)
        except StorageError as exc:
            logger.warning("Failed to update %s: %s", puppet.remote_id, exc)
            return False

    async def mark_active(self, puppet: Puppet, ts: int) -> bool:
        try:
            return await puppet.update_activity_ts(self.db, ts)
        except StorageError:
            # Already logged per statement; the in-memory window has still advanced.
            return True

    async def update_displayname(self, puppet: Puppet, name: str, quality: int) -> bool:
        name = (name or "").strip()
        if not name or quality < puppet.name_quality:
            return False
        if name == puppet.displayname and puppet.name_set:
            if quality > puppet.name_quality:
                puppet.name_quality = quality
                await self.save(puppet)
            return False
        puppet.displayname = name
        puppet.name_quality = quality
        puppet.name_set = False
        await self.save(puppet)
        logger.debug("Displayname of %s changed to %r (quality=%s)", puppet.remote_id, name, quality)
        return True

    async def update_avatar(self, puppet: Puppet, avatar: str, avatar_url: ContentURI) -> bool:
        if avatar == puppet.avatar and puppet.avatar_set:
            return False
        puppet.avatar = avatar
        puppet.avatar_url = avatar_url
        puppet.avatar_set = False
        await self.save(puppet)
        return True

    async def mark_profile_synced(self, puppet: Puppet, *, now: datetime | None = None) -> bool:
        puppet.name_set = True
        puppet.avatar_set = True
        puppet.last_sync = now or datetime.now(timezone.utc)
        return await self.save(puppet)

    async def clear_double_puppet(self, puppet: Puppet) -> bool:
        if not puppet.is_double_puppeted and not puppet.access_token:
            return False
        logger.info("Clearing double puppet %s for %s", puppet.custom_mxid, puppet.remote_id)
        puppet.custom_mxid = UserID("")
        puppet.access_token = ""
        puppet.next_batch = ""
        return await self.save(puppet)
