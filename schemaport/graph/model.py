"""Graph dataclasses: item type and plugin nodes, field-labelled edges."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from schemaport.models.entities import Field, Fieldset, ItemType, Plugin


class NodeKind(str, Enum):
    """What a graph node stands for."""

    ITEM_TYPE = "item_type"
    PLUGIN = "plugin"


def node_id(kind: NodeKind, entity_id: str) -> str:
    """Build the graph id of an entity (``"item_type--123"``)."""
    return f"{kind.value}--{entity_id}"


@dataclass
class Node:
    """A graph node.

    Attributes:
        id: Graph id, see :func:`node_id`.
        kind: Item type or plugin.
        entity: The item type or plugin itself.
        fields: The item type's fields (empty for plugins).
        fieldsets: The item type's fieldsets (empty for plugins and blocks).
    """

    id: str
    kind: NodeKind
    entity: ItemType | Plugin
    fields: list[Field] = field(default_factory=list)
    fieldsets: list[Fieldset] = field(default_factory=list)

    @property
    def entity_id(self) -> str:
        return self.entity.id

    @property
    def label(self) -> str:
        return self.entity.name

    @classmethod
    def for_item_type(
        cls, item_type: ItemType, fields: list[Field], fieldsets: list[Fieldset]
    ) -> Node:
        return cls(
            id=node_id(NodeKind.ITEM_TYPE, item_type.id),
            kind=NodeKind.ITEM_TYPE,
            entity=item_type,
            fields=list(fields),
            fieldsets=list(fieldsets),
        )

    @classmethod
    def for_plugin(cls, plugin: Plugin) -> Node:
        return cls(id=node_id(NodeKind.PLUGIN, plugin.id), kind=NodeKind.PLUGIN, entity=plugin)


@dataclass
class Edge:
    """A directed reference from an item type to an item type or plugin.

    All fields of the source item type that produce the same (source, target)
    pair share one edge.
    """

    source: str
    target: str
    fields: list[Field] = field(default_factory=list)

    @property
    def id(self) -> str:
        return f"{self.source}->{self.target}"

    @property
    def is_self_loop(self) -> bool:
        return self.source == self.target

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "source": self.source,
            "target": self.target,
            "fields": [f.api_key for f in self.fields],
        }


@dataclass
class Graph:
    """Item type / plugin reference graph."""

    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)

    def node(self, graph_id: str) -> Node | None:
        for candidate in self.nodes:
            if candidate.id == graph_id:
                return candidate
        return None

    @property
    def item_type_nodes(self) -> list[Node]:
        return [n for n in self.nodes if n.kind is NodeKind.ITEM_TYPE]

    @property
    def plugin_nodes(self) -> list[Node]:
        return [n for n in self.nodes if n.kind is NodeKind.PLUGIN]

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict (ids and labels only)."""
        return {
            "nodes": [{"id": n.id, "kind": n.kind.value, "label": n.label} for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }
