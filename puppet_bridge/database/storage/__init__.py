from .schema import SQLiteSchemaMixin

__all__ = ["SQLiteSchemaMixin"]
