"""Schema export/import functionality for schemaport.

This module provides the full round trip:
- Build an export document from a project and write it to JSON
- Read an export document back (version 1 documents are upgraded)
- Detect conflicts between an export and a destination project
- Resolve conflicts and apply the import with ids remapped
"""

from __future__ import annotations

from schemaport.schema.apply import (
    ImportPlan,
    ImportResult,
    PlannedItemType,
    apply_import,
    plan_import,
)
from schemaport.schema.conflicts import (
    ConflictEntry,
    ConflictReport,
    Difference,
    Disposition,
    build_conflicts,
)
from schemaport.schema.export import build_export_document, write_export_document
from schemaport.schema.import_ import read_export_document
from schemaport.schema.mapping import MappingKind, MappingSlot, MigrationMapping
from schemaport.schema.resolutions import (
    ItemTypeResolution,
    ItemTypeStrategy,
    PluginResolution,
    PluginStrategy,
    Resolutions,
    validate_resolutions,
)

__all__: list[str] = [
    "build_export_document",
    "write_export_document",
    "read_export_document",
    "ConflictEntry",
    "ConflictReport",
    "Difference",
    "Disposition",
    "build_conflicts",
    "ItemTypeResolution",
    "ItemTypeStrategy",
    "PluginResolution",
    "PluginStrategy",
    "Resolutions",
    "validate_resolutions",
    "MappingKind",
    "MappingSlot",
    "MigrationMapping",
    "ImportPlan",
    "ImportResult",
    "PlannedItemType",
    "apply_import",
    "plan_import",
]
