"""Export document building and writing.

An export is a version-2 document holding the selected plugins, then each
selected item type followed by its fieldsets and fields. References that
leave the selection are cut so the document is self-contained:

- reference validators keep only item type ids that are exported
- a plugin editor that is not exported falls back to the field type's
  default appearance
- addons keep only exported plugins
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from schemaport.constants import (
    BUILTIN_EDITORS,
    STRIPPED_FIELD_ATTRIBUTES,
    default_appearance,
    reference_validator_paths,
)
from schemaport.errors import InvalidExportDocumentError
from schemaport.models.document import ExportDocument
from schemaport.models.entities import Entity, Field, read_path, write_path

if TYPE_CHECKING:
    from schemaport.sources.protocol import SchemaSource

logger = logging.getLogger(__name__)


def exportable_appearance(field: Field, allowed_plugin_ids: frozenset[str]) -> dict[str, Any]:
    """Field appearance with every reference to a non-exported plugin removed."""
    original = field.appearance
    editor = original.get("editor")
    if original and (editor is None or editor in BUILTIN_EDITORS or editor in allowed_plugin_ids):
        appearance = copy.deepcopy(original)
    else:
        appearance = default_appearance(field.field_type)
    appearance["addons"] = [
        copy.deepcopy(addon)
        for addon in original.get("addons") or []
        if str(addon.get("id")) in allowed_plugin_ids
    ]
    return appearance


def exportable_field(
    field: Field, item_type_ids: frozenset[str], plugin_ids: frozenset[str]
) -> Field:
    """Copy of a field whose references stay inside the exported selection."""
    exported = Field.from_dict(field.to_dict())
    attributes = exported.attributes
    for key in STRIPPED_FIELD_ATTRIBUTES:
        attributes.pop(key, None)

    validators = attributes.get("validators")
    if isinstance(validators, dict):
        for path in reference_validator_paths(field.field_type):
            linked_ids = read_path(validators, path)
            if linked_ids is not None:
                write_path(
                    validators, path, [i for i in linked_ids if str(i) in item_type_ids]
                )

    attributes["appearance"] = exportable_appearance(field, plugin_ids)
    return exported


async def build_export_document(
    source: SchemaSource,
    item_type_ids: Iterable[str],
    plugin_ids: Iterable[str],
    *,
    root_item_type_id: str | None = None,
) -> ExportDocument:
    """Build a version-2 export document from a schema source.

    Args:
        source: Where the entities are read from (usually a project source).
        item_type_ids: Item types to export, in document order.
        plugin_ids: Plugins to export.
        root_item_type_id: Item type the export starts from. Defaults to the
            first exported item type.

    Returns:
        ExportDocument ready to be written.

    Raises:
        InvalidExportDocumentError: If nothing is selected or the root is
            not part of the selection.
        EntityNotFoundError: If a selected id does not exist in the source.
    """
    selected_item_type_ids = list(dict.fromkeys(item_type_ids))
    selected_plugin_ids = list(dict.fromkeys(plugin_ids))
    if not selected_item_type_ids:
        raise InvalidExportDocumentError("no item types selected for export")

    root_id = root_item_type_id or selected_item_type_ids[0]
    if root_id not in selected_item_type_ids:
        raise InvalidExportDocumentError(f"root item type '{root_id}' is not part of the export")

    allowed_item_type_ids = frozenset(selected_item_type_ids)
    allowed_plugin_ids = frozenset(selected_plugin_ids)
    entities: list[Entity] = []

    for plugin_id in selected_plugin_ids:
        plugin = await source.get_plugin_by_id(plugin_id)
        entities.append(copy.deepcopy(plugin))

    for item_type_id in selected_item_type_ids:
        item_type = await source.get_item_type_by_id(item_type_id)
        fields, fieldsets = await source.get_item_type_fields_and_fieldsets(item_type)
        entities.append(copy.deepcopy(item_type))
        entities.extend(copy.deepcopy(fs) for fs in fieldsets)
        entities.extend(
            exportable_field(f, allowed_item_type_ids, allowed_plugin_ids) for f in fields
        )
        logger.debug(
            "Exported item type %s with %d fields, %d fieldsets",
            item_type.api_key,
            len(fields),
            len(fieldsets),
        )

    logger.info(
        "Built export of %d item types and %d plugins",
        len(selected_item_type_ids),
        len(selected_plugin_ids),
    )
    return ExportDocument(version="2", entities=entities, root_item_type_id=root_id)


def write_export_document(document: ExportDocument, path: Path) -> Path:
    """Write an export document to a JSON file.

    Args:
        document: Document to write.
        path: Output file path.

    Returns:
        Path to written file.
    """
    with open(path, "w", encoding="utf-8") as f:
        json.dump(document.to_dict(), f, indent=2, ensure_ascii=False)
    return path
