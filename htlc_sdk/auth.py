"""
Owner and relayer authorization.

The owner is fixed by configuration. Relayers are identities trusted to
attest that a swap completed on a foreign chain; only the owner may change
the set.
"""

import logging
from typing import Optional, List, Iterable

from .errors import Unauthorized, InvalidInput
from .storage import JsonTable, table_path

log = logging.getLogger(__name__)


class Authorization:
    """Answers is_owner / is_relayer and manages relayer membership."""

    def __init__(self, owner_id: str, data_dir: Optional[str] = None,
                 relayers: Iterable[str] = ()):
        if not owner_id:
            raise InvalidInput("owner_id is required")
        self.owner_id = owner_id
        self._relayers = JsonTable(table_path(data_dir, "relayers"), name="relayer")

        # Bootstrap list from config; already-present ids are left untouched
        for identity in relayers:
            if identity and not self._relayers.contains(identity):
                self._relayers.put(identity, True)
                log.info(f"Bootstrapped relayer: {identity}")

    def is_owner(self, identity: str) -> bool:
        return identity == self.owner_id

    def is_relayer(self, identity: str) -> bool:
        return bool(self._relayers.get(identity))

    def assert_owner(self, caller: str):
        if not self.is_owner(caller):
            raise Unauthorized("Not the owner")

    def add_relayer(self, caller: str, identity: str):
        """Add a relayer. Owner only, idempotent."""
        self.assert_owner(caller)
        if not identity:
            raise InvalidInput("Relayer identity is required")
        self._relayers.put(identity, True)
        log.info(f"Added relayer: {identity}")

    def remove_relayer(self, caller: str, identity: str):
        """Remove a relayer. Owner only, idempotent."""
        self.assert_owner(caller)
        # Kept as a revoked entry so the config bootstrap list cannot re-add it
        self._relayers.put(identity, False)
        log.info(f"Removed relayer: {identity}")

    def relayers(self) -> List[str]:
        return sorted(identity for identity, member in self._relayers.items() if member)
