"""Graph builder: turns a schema source into an item type / plugin graph.

Building happens in two steps. ``build_graph`` walks the source
breadth-first from the root item types, fetching every item type and plugin
reachable through field references. ``assemble_graph`` then derives nodes and
edges from the fetched entities; it is synchronous and pure, so the same
entity set always yields the same graph whatever source it came from.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from schemaport.constants import BUILTIN_EDITORS
from schemaport.graph.model import Edge, Graph, Node, NodeKind, node_id
from schemaport.models.entities import Field, Fieldset, ItemType, Plugin

if TYPE_CHECKING:
    from schemaport.sources.protocol import SchemaSource

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def find_linked_item_type_ids(field: Field) -> list[str]:
    """Item type ids a field references through its validators."""
    return field.linked_item_type_ids()


def find_linked_plugin_ids(field: Field, known_plugin_ids: frozenset[str]) -> list[str]:
    """Plugin ids a field uses as editor or addons.

    An editor counts as a plugin when it is not a built-in editor and the
    source knows a plugin with that id. Unknown ids are dangling references
    and are ignored.
    """
    linked: dict[str, None] = {}
    editor = field.editor
    if editor is not None and editor not in BUILTIN_EDITORS:
        if editor in known_plugin_ids:
            linked[editor] = None
        else:
            logger.debug("Field %s uses unknown editor %s", field.api_key, editor)
    for addon_id in field.addon_ids:
        if addon_id in known_plugin_ids:
            linked[addon_id] = None
        else:
            logger.debug("Field %s uses unknown addon %s", field.api_key, addon_id)
    return list(linked)


def build_edges_for_item_type(
    item_type: ItemType,
    fields: list[Field],
    known_plugin_ids: frozenset[str],
) -> tuple[list[Edge], list[str], list[str]]:
    """Build the outgoing edges of one item type.

    Returns:
        Tuple of (edges, linked item type ids, linked plugin ids).
    """
    source = node_id(NodeKind.ITEM_TYPE, item_type.id)
    edges: dict[str, Edge] = {}
    linked_item_type_ids: dict[str, None] = {}
    linked_plugin_ids: dict[str, None] = {}

    def add(target: str, field: Field) -> None:
        edge = edges.get(target)
        if edge is None:
            edges[target] = Edge(source=source, target=target, fields=[field])
        elif field not in edge.fields:
            edge.fields.append(field)

    for field in fields:
        for linked_id in find_linked_item_type_ids(field):
            linked_item_type_ids[linked_id] = None
            add(node_id(NodeKind.ITEM_TYPE, linked_id), field)
        for plugin_id in find_linked_plugin_ids(field, known_plugin_ids):
            linked_plugin_ids[plugin_id] = None
            add(node_id(NodeKind.PLUGIN, plugin_id), field)

    return list(edges.values()), list(linked_item_type_ids), list(linked_plugin_ids)


def _node_sort_key(node: Node) -> tuple[int, str, str]:
    return (0 if node.kind is NodeKind.ITEM_TYPE else 1, node.label.lower(), node.entity_id)


def assemble_graph(
    item_types: Iterable[ItemType],
    fields_by_item_type: dict[str, list[Field]],
    fieldsets_by_item_type: dict[str, list[Fieldset]],
    plugins: Iterable[Plugin],
    known_plugin_ids: frozenset[str],
    item_type_ids_to_skip: Iterable[str] = (),
) -> Graph:
    """Derive nodes and edges from an already-fetched entity set.

    Args:
        item_types: Item types to turn into nodes.
        fields_by_item_type: Fields per item type id.
        fieldsets_by_item_type: Fieldsets per item type id.
        plugins: Plugins to turn into nodes.
        known_plugin_ids: Ids that count as plugins when used as editor/addon.
        item_type_ids_to_skip: Item types whose outgoing edges are left out
            (they still get a node).

    Returns:
        Graph with nodes sorted (item types first, then by label) and edges
        sorted by id.
    """
    skip = set(item_type_ids_to_skip)
    graph = Graph()
    for item_type in item_types:
        fields = fields_by_item_type.get(item_type.id, [])
        graph.nodes.append(
            Node.for_item_type(item_type, fields, fieldsets_by_item_type.get(item_type.id, []))
        )
        if item_type.id not in skip:
            edges, _, _ = build_edges_for_item_type(item_type, fields, known_plugin_ids)
            graph.edges.extend(edges)
    for plugin in plugins:
        graph.nodes.append(Node.for_plugin(plugin))

    present = {n.id for n in graph.nodes}
    dangling = [e for e in graph.edges if e.target not in present]
    for edge in dangling:
        logger.debug("Dropping edge %s: target not in graph", edge.id)
    graph.edges = sorted((e for e in graph.edges if e.target in present), key=lambda e: e.id)
    graph.nodes.sort(key=_node_sort_key)
    return graph


async def build_graph(
    source: SchemaSource,
    root_item_types: Iterable[ItemType] | None = None,
    *,
    item_type_ids_to_skip: Iterable[str] = (),
    on_progress: ProgressCallback | None = None,
) -> Graph:
    """Fetch everything reachable from the roots and build the graph.

    Args:
        source: Export-backed or project-backed schema source.
        root_item_types: Where to start. All item types when None.
        item_type_ids_to_skip: Item types whose references are not followed
            and whose outgoing edges are left out.
        on_progress: Called with (done, total) after each item type is fetched.

    Returns:
        The assembled Graph.
    """
    skip = set(item_type_ids_to_skip)
    roots = list(root_item_types) if root_item_types is not None else await source.get_all_item_types()
    known_plugin_ids = await source.get_known_plugin_ids()

    item_types: dict[str, ItemType] = {it.id: it for it in roots}
    plugins: dict[str, Plugin] = {}
    fields_by_item_type: dict[str, list[Field]] = {}
    fieldsets_by_item_type: dict[str, list[Fieldset]] = {}

    queue = deque(item_types.values())
    done = 0
    while queue:
        current = queue.popleft()
        fields, fieldsets = await source.get_item_type_fields_and_fieldsets(current)
        fields_by_item_type[current.id] = fields
        fieldsets_by_item_type[current.id] = fieldsets

        if current.id not in skip:
            _, linked_item_type_ids, linked_plugin_ids = build_edges_for_item_type(
                current, fields, known_plugin_ids
            )
            for linked_id in linked_item_type_ids:
                if linked_id not in item_types:
                    linked = await source.get_item_type_by_id(linked_id)
                    item_types[linked_id] = linked
                    queue.append(linked)
            for plugin_id in linked_plugin_ids:
                if plugin_id not in plugins:
                    plugins[plugin_id] = await source.get_plugin_by_id(plugin_id)

        done += 1
        if on_progress is not None:
            on_progress(done, done + len(queue))

    logger.debug("Graph scan reached %d item types, %d plugins", len(item_types), len(plugins))
    return assemble_graph(
        item_types.values(),
        fields_by_item_type,
        fieldsets_by_item_type,
        plugins.values(),
        known_plugin_ids,
        skip,
    )
