"""
Durable keyed tables for HTLC state.

Each table is a JSON object on disk (one file per table), rewritten
atomically after every mutation. With no path the table lives in memory only.
"""

import json
import os
import copy
import logging
import threading
from typing import Optional, Dict, Any, Iterator, Tuple

log = logging.getLogger(__name__)


class JsonTable:
    """
    Key -> JSON-serializable value map with write-through persistence.

    Values are deep-copied on the way in and out so stored state can only
    change through put().
    """

    def __init__(self, path: Optional[str] = None, name: str = "table"):
        self.name = name
        self.path = os.path.expanduser(path) if path else None
        self._rows: Dict[str, Any] = {}
        self._lock = threading.RLock()
        self._load()

    def _load(self):
        if not self.path or not os.path.exists(self.path):
            return
        with open(self.path, "r") as f:
            self._rows = json.load(f)
        log.info(f"Loaded {len(self._rows)} {self.name} entries from {self.path}")

    def _save(self, rows: Dict[str, Any]):
        if not self.path:
            return
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        try:
            with open(tmp_path, "w") as f:
                json.dump(rows, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            log.error(f"Failed to save {self.name} to {self.path}: {e}")
            raise

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            value = self._rows.get(key)
            return copy.deepcopy(value)

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._rows

    def put(self, key: str, value: Any):
        """Store value under key. Memory changes only once the file is written."""
        with self._lock:
            rows = dict(self._rows)
            rows[key] = copy.deepcopy(value)
            self._save(rows)
            self._rows = rows

    def items(self) -> Iterator[Tuple[str, Any]]:
        with self._lock:
            snapshot = copy.deepcopy(self._rows)
        return iter(snapshot.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)


def table_path(data_dir: Optional[str], name: str) -> Optional[str]:
    """Path of a table file under data_dir, or None for memory-only."""
    if not data_dir:
        return None
    return os.path.join(os.path.expanduser(data_dir), f"{name}.json")
