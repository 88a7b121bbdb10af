import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from seatbid.core.storage.sqlite_adapter import SQLiteAdapter
from seatbid.utils.logger import get_logger

logger = get_logger("storage.manager")


class StorageManager:
    """
    Manages persistent storage for a university.

    Coordinates data persistence using SQLite adapter.
    Handles:
    - Ledger balances and supply totals
    - Component snapshots (roles, fees, catalog, round, nonces, record)
    - Settlement history
    """

    def __init__(self, data_dir: Path, db_name: str = "university.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    def close(self):
        self.adapter.close()

    # =========================================================================
    # Snapshots
    # =========================================================================

    def save_snapshot(self, snapshot: Dict[str, Any], settlement: Optional[Dict[str, Any]] = None):
        """
        Persist a full university snapshot in one transaction.

        The ledger's balances go to the balances table; every other
        component is stored as a JSON document under its own key.
        """
        ledger = dict(snapshot["ledger"])
        balances = ledger.pop("balances")

        state = {key: json.dumps(value, sort_keys=True) for key, value in snapshot.items() if key != "ledger"}
        state["ledger"] = json.dumps(ledger, sort_keys=True)

        row = None
        if settlement is not None:
            row = (settlement["round_number"], settlement["closed_at"], json.dumps(settlement, sort_keys=True))

        self.adapter.persist_checkpoint(balances, state, row)

    def load_snapshot(self) -> Optional[Dict[str, Any]]:
        """
        Load the last persisted snapshot.

        Returns:
            Snapshot in the shape accepted by save_snapshot, or None when
            nothing has been stored yet
        """
        state = self.adapter.get_all_state()
        if not state:
            return None

        snapshot = {key: json.loads(value) for key, value in state.items()}
        snapshot.setdefault("ledger", {})
        snapshot["ledger"]["balances"] = self.adapter.get_all_balances()
        return snapshot

    def has_snapshot(self) -> bool:
        return self.adapter.get_state("meta") is not None

    # =========================================================================
    # Queries
    # =========================================================================

    def get_balance(self, holder: str) -> int:
        return self.adapter.get_balance(holder)

    def get_settlements(self) -> List[Dict[str, Any]]:
        """Recorded settlement summaries, oldest round first."""
        return [json.loads(result) for _, _, result in self.adapter.get_all_settlements()]
