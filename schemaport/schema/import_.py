"""Export document reading.

Documents of either version are accepted; version "1" documents are
normalised to version "2" (root item type inferred) on load.
"""

from __future__ import annotations

import json
from pathlib import Path

from schemaport.errors import InvalidExportDocumentError
from schemaport.models.document import ExportDocument, normalize_export_document


def read_export_document(path: Path) -> ExportDocument:
    """Read an export document from a JSON file.

    Args:
        path: Path to JSON file.

    Returns:
        Normalised (version "2") ExportDocument.

    Raises:
        FileNotFoundError: If file doesn't exist.
        InvalidExportDocumentError: If the file is not valid JSON or not a
            valid export document.
    """
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidExportDocumentError(f"not valid JSON ({e.msg})", path=str(path)) from e

    try:
        return normalize_export_document(ExportDocument.from_dict(data))
    except InvalidExportDocumentError as e:
        raise InvalidExportDocumentError(e.reason, path=str(path)) from e  # type: ignore[attr-defined]
