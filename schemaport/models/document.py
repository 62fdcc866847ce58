"""ExportDocument: the versioned envelope around exported schema entities.

Version "1" documents do not record which item type the export started
from; they are upcast to version "2" on load by inferring the root.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from schemaport.errors import InvalidExportDocumentError
from schemaport.models.entities import Entity, Field, ItemType, parse_entity

SUPPORTED_VERSIONS: frozenset[str] = frozenset({"1", "2"})


@dataclass
class ExportDocument:
    """A portable snapshot of a schema subset.

    Attributes:
        version: Document format version ("1" or "2").
        entities: Item types, fields, fieldsets and plugins. Order matters
            only for display.
        root_item_type_id: Item type the export was started from (version 2).
    """

    version: str
    entities: list[Entity] = field(default_factory=list)
    root_item_type_id: str | None = None

    def __post_init__(self) -> None:
        """Validate fields after initialization."""
        if self.version not in SUPPORTED_VERSIONS:
            raise InvalidExportDocumentError(f"unsupported version {self.version!r}")

    @property
    def item_types(self) -> list[ItemType]:
        return [e for e in self.entities if isinstance(e, ItemType)]

    @property
    def fields(self) -> list[Field]:
        return [e for e in self.entities if isinstance(e, Field)]

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        result: dict[str, Any] = {
            "version": self.version,
            "entities": [e.to_dict() for e in self.entities],
        }
        if self.root_item_type_id is not None:
            result["rootItemTypeId"] = self.root_item_type_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExportDocument:
        """Create ExportDocument from dict, without normalising.

        Raises:
            InvalidExportDocumentError: If the envelope or an entity is malformed.
        """
        if not isinstance(data, dict):
            raise InvalidExportDocumentError("top-level value must be an object")
        raw_entities = data.get("entities")
        if not isinstance(raw_entities, list):
            raise InvalidExportDocumentError("'entities' must be a list")

        entities: list[Entity] = []
        for index, raw in enumerate(raw_entities):
            if not isinstance(raw, dict):
                raise InvalidExportDocumentError(f"entity #{index} is not an object")
            try:
                entities.append(parse_entity(raw))
            except ValueError as e:
                raise InvalidExportDocumentError(f"entity #{index}: {e}") from e

        root = data.get("rootItemTypeId")
        return cls(
            version=str(data.get("version", "")),
            entities=entities,
            root_item_type_id=str(root) if root is not None else None,
        )


def infer_root_item_type_id(entities: list[Entity]) -> str:
    """Pick the item type a version-1 export most likely started from.

    The root is the first item type (in document order) that no field of
    another item type references. When every item type is referenced (the
    export is one big cycle), the first item type is used.

    Raises:
        InvalidExportDocumentError: If the document holds no item types.
    """
    item_types = [e for e in entities if isinstance(e, ItemType)]
    if not item_types:
        raise InvalidExportDocumentError("document contains no item types")

    targets: set[str] = set()
    for entity in entities:
        if not isinstance(entity, Field):
            continue
        owner = entity.item_type_id
        for linked_id in entity.linked_item_type_ids():
            if linked_id != owner:
                targets.add(linked_id)

    for item_type in item_types:
        if item_type.id not in targets:
            return item_type.id
    return item_types[0].id


def normalize_export_document(document: ExportDocument) -> ExportDocument:
    """Upcast a document to version 2 and check that its root exists.

    Raises:
        InvalidExportDocumentError: If the root cannot be determined or is
            not one of the document's item types.
    """
    if document.version == "2" and document.root_item_type_id is not None:
        root_id = document.root_item_type_id
        if not any(it.id == root_id for it in document.item_types):
            raise InvalidExportDocumentError(f"root item type '{root_id}' is not in the document")
    else:
        root_id = infer_root_item_type_id(document.entities)

    return ExportDocument(version="2", entities=list(document.entities), root_item_type_id=root_id)
