"""schemaport - Export, analyze and re-import content schemas."""

from schemaport.backends.memory import InMemorySchemaBackend
from schemaport.models.document import ExportDocument
from schemaport.schema import (
    ConflictReport,
    Resolutions,
    apply_import,
    build_conflicts,
    build_export_document,
    read_export_document,
    write_export_document,
)
from schemaport.sources import ExportSchemaSource, ProjectSchemaSource
from schemaport.tasks import CancellationToken, TaskController

__all__ = [
    "CancellationToken",
    "ConflictReport",
    "ExportDocument",
    "ExportSchemaSource",
    "InMemorySchemaBackend",
    "ProjectSchemaSource",
    "Resolutions",
    "TaskController",
    "apply_import",
    "build_conflicts",
    "build_export_document",
    "read_export_document",
    "write_export_document",
]
