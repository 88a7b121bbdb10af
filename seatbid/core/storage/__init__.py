"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Token balances
- University state (roles, fees, catalog, round, nonces)
- Settlement history
"""

from seatbid.core.storage.sqlite_adapter import SQLiteAdapter
from seatbid.core.storage.storage_manager import StorageManager

__all__ = ["SQLiteAdapter", "StorageManager"]
