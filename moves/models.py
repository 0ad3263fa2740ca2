"""
moves/models.py -- Domain dataclass for the moves resource.

A move is an opaque JSON object: the backend stores whatever the client sends
and hands it back unchanged. Only id and created_at are owned by the store.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class Move:
    """A stored move payload.

    id is None before the record is written to the database.
    """

    payload: dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert

    def to_dict(self) -> dict[str, Any]:
        """Payload with the store-assigned id on top (a client "id" is overridden)."""
        return {**self.payload, "id": self.id}
