"""MigrationMapping: the id-indirection table built while applying an import.

Every entity the import will create or reuse is reserved a slot up front,
keyed by (kind, export id). The slot is bound to the destination id once the
entity exists. Rewriting a reference is then a single lookup instead of a
walk over the export document.

The table is append-only and written by one coroutine at a time: a slot can
be bound once, and binding it again to a different id is a programming error.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any


class MappingKind(str, Enum):
    ITEM_TYPE = "item_type"
    PLUGIN = "plugin"
    FIELDSET = "fieldset"
    FIELD = "field"


@dataclass
class MappingSlot:
    """One row of the table.

    Attributes:
        kind: Entity kind.
        export_id: Id in the export document.
        destination_id: Id in the destination, once bound.
        reused: True when the destination entity already existed.
    """

    kind: MappingKind
    export_id: str
    destination_id: str | None = None
    reused: bool = False

    @property
    def bound(self) -> bool:
        return self.destination_id is not None


class MigrationMapping:
    """Export id -> destination id table, one slot per (kind, export id)."""

    def __init__(self) -> None:
        self._slots: list[MappingSlot] = []
        self._index: dict[tuple[MappingKind, str], int] = {}

    def reserve(self, kind: MappingKind, export_id: str) -> int:
        """Reserve a slot and return its position. Reserving twice returns the same slot."""
        key = (kind, export_id)
        position = self._index.get(key)
        if position is None:
            position = len(self._slots)
            self._slots.append(MappingSlot(kind=kind, export_id=export_id))
            self._index[key] = position
        return position

    def bind(
        self, kind: MappingKind, export_id: str, destination_id: str, *, reused: bool = False
    ) -> int:
        """Bind a slot to its destination id, reserving it if needed.

        Raises:
            ValueError: If the slot is already bound to a different id.
        """
        position = self.reserve(kind, export_id)
        slot = self._slots[position]
        if slot.destination_id is not None and slot.destination_id != destination_id:
            raise ValueError(
                f"{kind.value} '{export_id}' is already mapped to '{slot.destination_id}'"
            )
        slot.destination_id = destination_id
        slot.reused = reused
        return position

    def slot(self, position: int) -> MappingSlot:
        return self._slots[position]

    def get(self, kind: MappingKind, export_id: str) -> str | None:
        """Destination id for an export id, or None if unreserved or unbound."""
        position = self._index.get((kind, export_id))
        if position is None:
            return None
        return self._slots[position].destination_id

    def rewrite_ids(self, kind: MappingKind, export_ids: Iterable[str]) -> list[str]:
        """Translate ids, dropping the ones with no bound slot."""
        rewritten: list[str] = []
        for export_id in export_ids:
            destination_id = self.get(kind, export_id)
            if destination_id is not None:
                rewritten.append(destination_id)
        return rewritten

    def bound_ids(self, kind: MappingKind) -> dict[str, str]:
        return {
            s.export_id: s.destination_id
            for s in self._slots
            if s.kind is kind and s.destination_id is not None
        }

    def pending_ids(self, kind: MappingKind) -> list[str]:
        """Export ids reserved but never bound (what a failed import did not reach)."""
        return [s.export_id for s in self._slots if s.kind is kind and s.destination_id is None]

    @property
    def item_type_ids(self) -> dict[str, str]:
        return self.bound_ids(MappingKind.ITEM_TYPE)

    @property
    def plugin_ids(self) -> dict[str, str]:
        return self.bound_ids(MappingKind.PLUGIN)

    @property
    def fieldset_ids(self) -> dict[str, str]:
        return self.bound_ids(MappingKind.FIELDSET)

    @property
    def field_ids(self) -> dict[str, str]:
        return self.bound_ids(MappingKind.FIELD)

    def __len__(self) -> int:
        return sum(1 for s in self._slots if s.bound)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        position = self._index.get(key)  # type: ignore[arg-type]
        return position is not None and self._slots[position].bound

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict (bound slots only)."""
        return {
            "item_types": self.item_type_ids,
            "plugins": self.plugin_ids,
            "fieldsets": self.fieldset_ids,
            "fields": self.field_ids,
        }
