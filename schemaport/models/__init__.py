"""Data models for schemaport.

Models are dataclasses with JSON serialization support.
"""

from __future__ import annotations

from schemaport.models.document import (
    ExportDocument,
    infer_root_item_type_id,
    normalize_export_document,
)
from schemaport.models.entities import (
    Entity,
    Field,
    Fieldset,
    ItemType,
    Plugin,
    parse_entity,
    read_path,
    write_path,
)

__all__ = [
    # Entities
    "Entity",
    "ItemType",
    "Field",
    "Fieldset",
    "Plugin",
    "parse_entity",
    "read_path",
    "write_path",
    # Document
    "ExportDocument",
    "infer_root_item_type_id",
    "normalize_export_document",
]
