from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence

from ..ids import DEFAULT_USER_SERVER, ContentURI, RemoteID, UserID
from .errors import StorageError
from .storage.utils import (
    _bool_or_false,
    _clamp_name_quality,
    _datetime_to_unix,
    _int_or_zero,
    _str_or_empty,
    _unix_to_datetime,
    _zero_to_null,
)


logger = logging.getLogger("puppet_bridge")

_PUPPET_COLUMNS = (
    "username, avatar, avatar_url, displayname, name_quality, name_set, avatar_set, last_sync, "
    "custom_mxid, access_token, next_batch, enable_presence, enable_receipts, first_activity_ts, last_activity_ts"
)
_SELECT_PUPPET = f"SELECT {_PUPPET_COLUMNS} FROM puppet"


class PuppetQuery:
    """Lookups over the puppet table. Rows are always decoded onto the configured user server."""

    def __init__(self, db: Any, *, user_server: str = DEFAULT_USER_SERVER) -> None:
        self.db = db
        self.user_server = user_server

    def new(self) -> Puppet:
        return Puppet()

    def _scan(self, row: Sequence[Any]) -> Puppet:
        return self.new().scan(row, user_server=self.user_server)

    async def get_all(self) -> list[Puppet]:
        rows = await self.db.query(_SELECT_PUPPET)
        return [self._scan(row) for row in rows or []]

    async def get(self, remote_id: RemoteID) -> Puppet | None:
        row = await self.db.query_row(f"{_SELECT_PUPPET} WHERE username=$1", remote_id.user)
        if row is None:
            return None
        return self._scan(row)

    async def get_by_custom_mxid(self, mxid: str) -> Puppet | None:
        if not mxid:
            return None
        row = await self.db.query_row(f"{_SELECT_PUPPET} WHERE custom_mxid=$1", str(mxid))
        if row is None:
            return None
        return self._scan(row)

    async def get_all_with_custom_mxid(self) -> list[Puppet]:
        rows = await self.db.query(f"{_SELECT_PUPPET} WHERE custom_mxid<>''")
        return [self._scan(row) for row in rows or []]


@dataclass(slots=True)
class Puppet:
    """A remote-network user bridged into the local network.

    ``first_activity_ts`` and ``last_activity_ts`` are unix seconds; ``0`` means
    no activity has been recorded yet. ``last_sync`` is ``None`` until the profile
    has been synced once.
    """

    remote_id: RemoteID = RemoteID()
    avatar: str = ""
    avatar_url: ContentURI = ContentURI()
    avatar_set: bool = False
    displayname: str = ""
    name_quality: int = 0
    name_set: bool = False
    last_sync: datetime | None = None

    custom_mxid: UserID = UserID("")
    access_token: str = ""
    next_batch: str = ""
    enable_presence: bool = True
    enable_receipts: bool = True

    first_activity_ts: int = 0
    last_activity_ts: int = 0

    @property
    def is_double_puppeted(self) -> bool:
        return bool(self.custom_mxid)

    def scan(self, row: Sequence[Any], *, user_server: str = DEFAULT_USER_SERVER) -> Puppet:
        try:
            (
                username,
                avatar,
                avatar_url,
                displayname,
                quality,
                name_set,
                avatar_set,
                last_sync,
                custom_mxid,
                access_token,
                next_batch,
                enable_presence,
                enable_receipts,
                first_activity_ts,
                last_activity_ts,
            ) = tuple(row)
            if username is None:
                raise ValueError("username is NULL")
            self.remote_id = RemoteID.new_user(str(username), user_server)
            self.displayname = _str_or_empty(displayname)
            self.avatar = _str_or_empty(avatar)
            self.avatar_url = ContentURI.parse_or_empty(_str_or_empty(avatar_url))
            self.name_quality = _clamp_name_quality(_int_or_zero(quality))
            self.name_set = _bool_or_false(name_set)
            self.avatar_set = _bool_or_false(avatar_set)
            self.last_sync = _unix_to_datetime(last_sync)
            self.custom_mxid = UserID(_str_or_empty(custom_mxid))
            self.access_token = _str_or_empty(access_token)
            self.next_batch = _str_or_empty(next_batch)
            self.enable_presence = _bool_or_false(enable_presence)
            self.enable_receipts = _bool_or_false(enable_receipts)
            self.first_activity_ts = _int_or_zero(first_activity_ts)
            self.last_activity_ts = _int_or_zero(last_activity_ts)
        except (TypeError, ValueError, OverflowError, OSError) as exc:
            raise StorageError(f"failed to decode puppet row: {exc}") from exc
        return self

    async def insert(self, db: Any, *, user_server: str = DEFAULT_USER_SERVER) -> bool:
        if self.remote_id.server != user_server:
            logger.warning("Not inserting %s: not a user", self.remote_id)
            return False
        await db.execute(
            """
            INSERT INTO puppet (
                username, avatar, avatar_url, avatar_set, displayname, name_quality, name_set, last_sync,
                custom_mxid, access_token, next_batch, enable_presence, enable_receipts,
                first_activity_ts, last_activity_ts
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15)
            """,
            self.remote_id.user,
            self.avatar,
            str(self.avatar_url),
            self.avatar_set,
            self.displayname,
            _clamp_name_quality(self.name_quality),
            self.name_set,
            _datetime_to_unix(self.last_sync),
            str(self.custom_mxid),
            self.access_token,
            self.next_batch,
            self.enable_presence,
            self.enable_receipts,
            _zero_to_null(self.first_activity_ts),
            _zero_to_null(self.last_activity_ts),
        )
        return True

    async def update(self, db: Any) -> bool:
        affected = await db.execute(
            """
            UPDATE puppet
            SET displayname=$1, name_quality=$2, name_set=$3, avatar=$4, avatar_url=$5, avatar_set=$6,
                last_sync=$7, custom_mxid=$8, access_token=$9, next_batch=$10,
                enable_presence=$11, enable_receipts=$12
            WHERE username=$13
            """,
            self.displayname,
            _clamp_name_quality(self.name_quality),
            self.name_set,
            self.avatar,
            str(self.avatar_url),
            self.avatar_set,
            _datetime_to_unix(self.last_sync),
            str(self.custom_mxid),
            self.access_token,
            self.next_batch,
            self.enable_presence,
            self.enable_receipts,
            self.remote_id.user,
        )
        return affected > 0

    async def update_activity_ts(self, db: Any, ts: int) -> bool:
        ts = int(ts)
        if ts <= self.last_activity_ts:
            return False
        logger.debug("Updating activity time for %s to %d", self.remote_id, ts)
        self.last_activity_ts = ts
        errors: list[StorageError] = []
        try:
            await db.execute(
                """
                UPDATE puppet SET last_activity_ts=$1
                WHERE username=$2 AND (last_activity_ts IS NULL OR last_activity_ts < $1)
                """,
                ts,
                self.remote_id.user,
            )
        except StorageError as exc:
            logger.warning("Failed to update last_activity_ts for %s: %s", self.remote_id, exc)
            errors.append(exc)

        if self.first_activity_ts == 0:
            self.first_activity_ts = ts
            try:
                await self._claim_first_activity(db, ts)
            except StorageError as exc:
                logger.warning("Failed to update first_activity_ts for %s: %s", self.remote_id, exc)
                errors.append(exc)

        if errors:
            raise StorageError(f"activity update for {self.remote_id} failed: {errors[0]}") from errors[0]
        return True

    async def _claim_first_activity(self, db: Any, ts: int) -> None:
        affected = await db.execute(
            "UPDATE puppet SET first_activity_ts=$1 WHERE username=$2 AND first_activity_ts IS NULL",
            ts,
            self.remote_id.user,
        )
        if affected:
            return
        # Another writer got there first (or the row is missing); converge on the stored value.
        row = await db.query_row("SELECT first_activity_ts FROM puppet WHERE username=$1", self.remote_id.user)
        if row is not None and row[0] is not None:
            self.first_activity_ts = int(row[0])
