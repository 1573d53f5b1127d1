from .errors import StorageError
from .factory import build_database
from .puppet import Puppet, PuppetQuery
from .store import SQLiteDatabase

__all__ = ["Puppet", "PuppetQuery", "SQLiteDatabase", "StorageError", "build_database"]
