from __future__ import annotations

from dataclasses import dataclass


DEFAULT_USER_SERVER = "s.whatsapp.net"

_MXC_PREFIX = "mxc://"


@dataclass(frozen=True, slots=True)
class RemoteID:
    """Identifier of a user or server on the remote network (``user@server``)."""

    user: str = ""
    server: str = ""

    @classmethod
    def new_user(cls, user: str, server: str = DEFAULT_USER_SERVER) -> RemoteID:
        return cls(user=user, server=server)

    @classmethod
    def parse(cls, text: str) -> RemoteID:
        raw = str(text or "").strip()
        if "@" not in raw:
            return cls(user="", server=raw)
        user, server = raw.split("@", 1)
        # Device (user:12) and agent (user.1) suffixes are not part of the identity.
        user = user.split(":", 1)[0].split(".", 1)[0]
        return cls(user=user, server=server)

    @property
    def is_empty(self) -> bool:
        return not self.user and not self.server

    def __str__(self) -> str:
        if not self.user:
            return self.server
        return f"{self.user}@{self.server}"


class UserID(str):
    """Local-network user identifier, ``@localpart:homeserver``. Empty means absent."""

    __slots__ = ()

    @classmethod
    def build(cls, localpart: str, homeserver: str) -> UserID:
        return cls(f"@{localpart}:{homeserver}")

    def parse(self) -> tuple[str, str]:
        if not self.startswith("@") or ":" not in self:
            raise ValueError(f"{str(self)!r} is not a valid user ID")
        localpart, homeserver = self[1:].split(":", 1)
        if not localpart or not homeserver:
            raise ValueError(f"{str(self)!r} is not a valid user ID")
        return localpart, homeserver


@dataclass(frozen=True, slots=True)
class ContentURI:
    """Media repository reference, ``mxc://homeserver/file_id``."""

    homeserver: str = ""
    file_id: str = ""

    @classmethod
    def parse(cls, text: str) -> ContentURI:
        raw = str(text or "")
        if not raw.startswith(_MXC_PREFIX):
            raise ValueError(f"{raw!r} is not an mxc:// URI")
        homeserver, sep, file_id = raw[len(_MXC_PREFIX):].partition("/")
        if not sep or not homeserver or not file_id or "/" in file_id:
            raise ValueError(f"{raw!r} is not a valid mxc:// URI")
        return cls(homeserver=homeserver, file_id=file_id)

    @classmethod
    def parse_or_empty(cls, text: str | None) -> ContentURI:
        try:
            return cls.parse(text or "")
        except ValueError:
            return cls()

    @property
    def is_empty(self) -> bool:
        return not self.homeserver and not self.file_id

    def __str__(self) -> str:
        if self.is_empty:
            return ""
        return f"{_MXC_PREFIX}{self.homeserver}/{self.file_id}"
