"""Schema reference graph: model, builder and analysis."""

from __future__ import annotations

from schemaport.graph.analysis import (
    DependencyExpansion,
    connected_components,
    count_cycles,
    cyclic_components,
    cyclic_item_type_ids,
    dependency_order,
    expand_selection_with_dependencies,
    find_inbound_edges,
    find_outbound_edges,
    strongly_connected_components,
)
from schemaport.graph.builder import assemble_graph, build_graph
from schemaport.graph.model import Edge, Graph, Node, NodeKind, node_id

__all__ = [
    # Model
    "Edge",
    "Graph",
    "Node",
    "NodeKind",
    "node_id",
    # Builder
    "assemble_graph",
    "build_graph",
    # Analysis
    "DependencyExpansion",
    "connected_components",
    "count_cycles",
    "cyclic_components",
    "cyclic_item_type_ids",
    "dependency_order",
    "expand_selection_with_dependencies",
    "find_inbound_edges",
    "find_outbound_edges",
    "strongly_connected_components",
]
