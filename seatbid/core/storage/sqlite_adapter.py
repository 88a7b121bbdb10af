import sqlite3
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from seatbid.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent storage.

    Provides:
    1. Balances table (holder -> token balance).
    2. University state: JSON documents keyed by component name.
    3. Settlement history, one row per closed round.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn_local = threading.local()

        # Ensure directory exists
        if not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            self._conn_local.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            self._conn_local.conn.row_factory = sqlite3.Row
            # Enable WAL mode for better concurrency
            self._conn_local.conn.execute("PRAGMA journal_mode=WAL;")
            self._conn_local.conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            # 1. Balances
            # Stored as text: amounts may exceed SQLite's 64-bit signed range
            conn.execute("""
                CREATE TABLE IF NOT EXISTS balances (
                    holder TEXT PRIMARY KEY,
                    balance TEXT NOT NULL
                )
            """)

            # 2. University state (component -> JSON)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS university_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

            # 3. Settlement history
            conn.execute("""
                CREATE TABLE IF NOT EXISTS settlements (
                    round_number INTEGER PRIMARY KEY,
                    closed_at INTEGER NOT NULL,
                    result TEXT NOT NULL
                )
            """)

    def close(self):
        """Close the current thread's connection."""
        conn = getattr(self._conn_local, "conn", None)
        if conn is not None:
            conn.close()
            del self._conn_local.conn

    # =========================================================================
    # Balances
    # =========================================================================

    def get_balance(self, holder: str) -> int:
        conn = self._get_conn()
        cursor = conn.execute("SELECT balance FROM balances WHERE holder = ?", (holder,))
        row = cursor.fetchone()
        return int(row['balance']) if row else 0

    def get_all_balances(self) -> Dict[str, int]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT holder, balance FROM balances")
        return {row['holder']: int(row['balance']) for row in cursor}

    # =========================================================================
    # University State
    # =========================================================================

    def set_state(self, key: str, value: str):
        conn = self._get_conn()
        with conn:
            conn.execute("INSERT OR REPLACE INTO university_state (key, value) VALUES (?, ?)", (key, value))

    def get_state(self, key: str) -> Optional[str]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT value FROM university_state WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row['value'] if row else None

    def get_all_state(self) -> Dict[str, str]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT key, value FROM university_state")
        return {row['key']: row['value'] for row in cursor}

    # =========================================================================
    # Settlements
    # =========================================================================

    def get_all_settlements(self) -> List[Tuple[int, int, str]]:
        """Get all (round_number, closed_at, result) ordered by round."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT round_number, closed_at, result FROM settlements ORDER BY round_number ASC")
        return [(row['round_number'], row['closed_at'], row['result']) for row in cursor]

    # =========================================================================
    # Checkpoint
    # =========================================================================

    def persist_checkpoint(
        self,
        balances: Dict[str, int],
        state: Dict[str, str],
        settlement: Optional[Tuple[int, int, str]] = None
    ):
        """
        Atomically replace balances and state.

        Args:
            balances: Full holder -> balance mapping
            state: Component key -> JSON document
            settlement: Optional (round_number, closed_at, result) row to record
        """
        conn = self._get_conn()
        with conn:
            conn.execute("DELETE FROM balances")
            conn.executemany(
                "INSERT INTO balances (holder, balance) VALUES (?, ?)",
                [(holder, str(amount)) for holder, amount in balances.items()]
            )

            conn.executemany(
                "INSERT OR REPLACE INTO university_state (key, value) VALUES (?, ?)",
                list(state.items())
            )

            if settlement is not None:
                conn.execute(
                    "INSERT OR REPLACE INTO settlements (round_number, closed_at, result) VALUES (?, ?, ?)",
                    settlement
                )
