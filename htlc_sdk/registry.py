"""
Lock Registry: durable mapping from lock id to Lock record.

Insert, lookup and update only. Locks are never deleted; they remain as the
settlement record for every swap.
"""

import logging
from typing import Optional, List

from .core import Lock, LockStatus
from .errors import DuplicateLock, NotFound
from .storage import JsonTable, table_path

log = logging.getLogger(__name__)


class LockRegistry:
    """Keyed store of Lock records, owned by a single contract instance."""

    def __init__(self, data_dir: Optional[str] = None):
        self._table = JsonTable(table_path(data_dir, "locks"), name="lock")

    def insert(self, lock: Lock):
        """Store a new lock. Raises DuplicateLock if the id exists."""
        if self._table.contains(lock.id):
            raise DuplicateLock(f"Lock contract already exists: {lock.id}")
        self._table.put(lock.id, lock.to_dict())

    def get(self, lock_id: str) -> Optional[Lock]:
        data = self._table.get(lock_id)
        if data is None:
            return None
        return Lock.from_dict(data)

    def update(self, lock: Lock):
        """Overwrite an existing lock in place."""
        if not self._table.contains(lock.id):
            raise NotFound(f"Lock contract does not exist: {lock.id}")
        self._table.put(lock.id, lock.to_dict())

    def contains(self, lock_id: str) -> bool:
        return self._table.contains(lock_id)

    def list(self, status: Optional[LockStatus] = None) -> List[Lock]:
        locks = [Lock.from_dict(data) for _, data in self._table.items()]
        if status is not None:
            locks = [lock for lock in locks if lock.status == status]
        return sorted(locks, key=lambda lock: lock.created_at)

    def __len__(self) -> int:
        return len(self._table)
