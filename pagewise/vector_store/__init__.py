"""Vector store adapters."""

from .sqlite_store import SQLiteVectorStore

__all__ = ["SQLiteVectorStore"]
