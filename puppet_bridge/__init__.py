from .database.puppet import Puppet, PuppetQuery
from .ids import DEFAULT_USER_SERVER, ContentURI, RemoteID, UserID
from .puppets import PuppetManager

__all__ = [
    "DEFAULT_USER_SERVER",
    "ContentURI",
    "Puppet",
    "PuppetManager",
    "PuppetQuery",
    "RemoteID",
    "UserID",
]
