"""Shared constants for schemaport.

Field-type knowledge shared by the graph builder, the export builder and
the import applier lives here so every component agrees on which validators
carry item type ids and which editors are built in.
"""

from __future__ import annotations

import re
from typing import Any

# Validators holding ids of linked records' item types, per field type
VALIDATORS_CONTAINING_LINKS: dict[str, tuple[str, ...]] = {
    "link": ("item_item_type.item_types",),
    "links": ("items_item_type.item_types",),
    "structured_text": ("structured_text_links.item_types",),
}

# Validators holding ids of embeddable block models, per field type
VALIDATORS_CONTAINING_BLOCKS: dict[str, tuple[str, ...]] = {
    "rich_text": ("rich_text_blocks.item_types",),
    "single_block": ("single_block_blocks.item_types",),
    "structured_text": (
        "structured_text_blocks.item_types",
        "structured_text_inline_blocks.item_types",
    ),
}


def reference_validator_paths(field_type: str) -> tuple[str, ...]:
    """Return the dotted validator paths that reference item types for a field type."""
    return VALIDATORS_CONTAINING_LINKS.get(field_type, ()) + VALIDATORS_CONTAINING_BLOCKS.get(
        field_type, ()
    )


# Editors shipped with the content platform; anything else is a plugin id
BUILTIN_EDITORS: frozenset[str] = frozenset(
    {
        "boolean",
        "boolean_radio_group",
        "color_picker",
        "date_picker",
        "date_time_picker",
        "file",
        "float",
        "framed_single_block",
        "frameless_single_block",
        "gallery",
        "integer",
        "json",
        "link_embed",
        "link_select",
        "links_embed",
        "links_select",
        "map",
        "markdown",
        "rich_text",
        "seo",
        "single_line",
        "slug",
        "string_checkbox_group",
        "string_multi_select",
        "string_radio_group",
        "string_select",
        "structured_text",
        "textarea",
        "video",
        "wysiwyg",
    }
)

# Editor used when a field's plugin editor cannot be carried over
DEFAULT_EDITORS: dict[str, str] = {
    "boolean": "boolean",
    "color": "color_picker",
    "date": "date_picker",
    "date_time": "date_time_picker",
    "file": "file",
    "float": "float",
    "gallery": "gallery",
    "integer": "integer",
    "json": "json",
    "lat_lon": "map",
    "link": "link_select",
    "links": "links_select",
    "rich_text": "rich_text",
    "seo": "seo",
    "single_block": "framed_single_block",
    "slug": "slug",
    "string": "single_line",
    "structured_text": "structured_text",
    "text": "textarea",
    "video": "video",
}

# Item type relationships that point at one of the item type's own fields
PRESENTATION_RELATIONSHIPS: tuple[str, ...] = (
    "ordering_field",
    "title_field",
    "image_preview_field",
    "excerpt_field",
    "presentation_title_field",
    "presentation_image_field",
)

# Item type attributes the destination computes itself
READ_ONLY_ITEM_TYPE_ATTRIBUTES: frozenset[str] = frozenset({"has_singleton_item"})

# API key format accepted by the content platform
API_KEY_PATTERN = re.compile(r"^[a-z](([a-z0-9]|_(?![_0-9]))*[a-z0-9])$")

RESERVED_API_KEYS: frozenset[str] = frozenset(
    {
        "id",
        "find",
        "site",
        "environment",
        "available_locales",
        "item_types",
        "single_instance_item_types",
        "collection_item_types",
        "items_of_type",
        "model",
    }
)

# Worker pool size for sibling writes during import
DEFAULT_CONCURRENCY: int = 6

# Concurrent schema reads per project source
DEFAULT_FETCH_CONCURRENCY: int = 2

# Field attributes ignored when deciding identical vs colliding
DEFAULT_IGNORED_FIELD_ATTRIBUTES: tuple[str, ...] = (
    "label",
    "hint",
    "position",
    "appearance",
    "default_value",
)

# Misspelt field attributes some projects carry; dropped wherever fields are copied
STRIPPED_FIELD_ATTRIBUTES: frozenset[str] = frozenset({"appeareance"})


def default_appearance(field_type: str) -> dict[str, Any]:
    """Appearance a field falls back to when its plugin editor is unavailable."""
    appearance: dict[str, Any] = {"parameters": {}, "addons": []}
    editor = DEFAULT_EDITORS.get(field_type)
    if editor is not None:
        appearance["editor"] = editor
    return appearance
