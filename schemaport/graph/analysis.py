"""Pure functions over a schema graph.

Nothing here fetches or mutates; every function takes a built Graph and
returns plain lists, sets or dicts of node ids.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from schemaport.graph.model import Edge, Graph, NodeKind, node_id


def _directed_adjacency(graph: Graph, *, item_types_only: bool = False) -> dict[str, list[str]]:
    """Adjacency lists in graph node order, neighbours sorted for determinism."""
    if item_types_only:
        ids = [n.id for n in graph.item_type_nodes]
    else:
        ids = [n.id for n in graph.nodes]
    adjacency: dict[str, set[str]] = {graph_id: set() for graph_id in ids}
    for edge in graph.edges:
        if edge.source in adjacency and edge.target in adjacency:
            adjacency[edge.source].add(edge.target)
    return {graph_id: sorted(targets) for graph_id, targets in adjacency.items()}


def connected_components(graph: Graph) -> list[list[str]]:
    """Partition the graph into weakly connected components.

    Edges are followed in both directions. Every node ends up in exactly one
    component; components come out in graph node order.

    Returns:
        List of components, each a list of node ids.
    """
    neighbours: dict[str, set[str]] = {n.id: set() for n in graph.nodes}
    for edge in graph.edges:
        if edge.source in neighbours and edge.target in neighbours:
            neighbours[edge.source].add(edge.target)
            neighbours[edge.target].add(edge.source)

    visited: set[str] = set()
    components: list[list[str]] = []
    for start in neighbours:
        if start in visited:
            continue
        component: list[str] = []
        queue = deque([start])
        visited.add(start)
        while queue:
            current = queue.popleft()
            component.append(current)
            for neighbour in sorted(neighbours[current]):
                if neighbour not in visited:
                    visited.add(neighbour)
                    queue.append(neighbour)
        components.append(component)
    return components


def strongly_connected_components(
    graph: Graph, *, item_types_only: bool = False
) -> list[list[str]]:
    """Tarjan's algorithm, iterative so deep reference chains cannot overflow the stack.

    Components are emitted dependencies first: a component comes after every
    component reachable from it.

    Args:
        graph: Graph to analyse.
        item_types_only: Restrict to the item type -> item type subgraph.

    Returns:
        List of components, each a list of node ids.
    """
    adjacency = _directed_adjacency(graph, item_types_only=item_types_only)
    index_of: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    stack: list[str] = []
    on_stack: set[str] = set()
    components: list[list[str]] = []
    counter = 0

    for root in adjacency:
        if root in index_of:
            continue
        index_of[root] = lowlink[root] = counter
        counter += 1
        stack.append(root)
        on_stack.add(root)
        work = [(root, iter(adjacency[root]))]

        while work:
            current, neighbours = work[-1]
            descended = False
            for neighbour in neighbours:
                if neighbour not in index_of:
                    index_of[neighbour] = lowlink[neighbour] = counter
                    counter += 1
                    stack.append(neighbour)
                    on_stack.add(neighbour)
                    work.append((neighbour, iter(adjacency[neighbour])))
                    descended = True
                    break
                if neighbour in on_stack:
                    lowlink[current] = min(lowlink[current], index_of[neighbour])
            if descended:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[current])
            if lowlink[current] == index_of[current]:
                component: list[str] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == current:
                        break
                components.append(component)

    return components


def _self_loops(graph: Graph) -> set[str]:
    return {e.source for e in graph.edges if e.is_self_loop}


def cyclic_components(graph: Graph) -> list[list[str]]:
    """Item type SCCs that form a cycle: more than one member, or a self-loop."""
    loops = _self_loops(graph)
    return [
        component
        for component in strongly_connected_components(graph, item_types_only=True)
        if len(component) > 1 or component[0] in loops
    ]


def count_cycles(graph: Graph) -> int:
    """Count cycles in the item type -> item type subgraph.

    Each strongly connected component with more than one item type counts
    once; a self-referencing item type counts as a cycle of length 1. The
    result does not depend on node or edge order.
    """
    return len(cyclic_components(graph))


def cyclic_item_type_ids(graph: Graph) -> dict[str, int]:
    """Map each item type id that sits on a cycle to its cycle's index.

    Two item types share an index exactly when they belong to the same
    cycle, so a reference from A to B must be deferred when both map to the
    same index.
    """
    membership: dict[str, int] = {}
    for index, component in enumerate(cyclic_components(graph)):
        for graph_id in component:
            node = graph.node(graph_id)
            if node is not None:
                membership[node.entity_id] = index
    return membership


def find_inbound_edges(
    graph: Graph, target_id: str, source_whitelist: Iterable[str] | None = None
) -> list[Edge]:
    """Edges pointing at a node ("what depends on me").

    Args:
        graph: Graph to search.
        target_id: Graph id of the target node.
        source_whitelist: When given, only edges from these node ids.
    """
    allowed = set(source_whitelist) if source_whitelist is not None else None
    return [
        e
        for e in graph.edges
        if e.target == target_id and (allowed is None or e.source in allowed)
    ]


def find_outbound_edges(graph: Graph, source_id: str) -> list[Edge]:
    """Edges leaving a node ("what do I depend on")."""
    return [e for e in graph.edges if e.source == source_id]


def dependency_order(graph: Graph) -> list[str]:
    """Order node ids so referenced nodes come before the nodes referencing them.

    Members of one cycle are kept next to each other; their relative order is
    the order Tarjan's algorithm pops them in.
    """
    return [
        graph_id
        for component in strongly_connected_components(graph)
        for graph_id in component
    ]


@dataclass
class DependencyExpansion:
    """Result of closing a selection over its dependencies.

    Attributes:
        item_type_ids: The whole closure of item type ids.
        plugin_ids: The whole closure of plugin ids.
        added_item_type_ids: Item types pulled in that were not selected.
        added_plugin_ids: Plugins pulled in that were not selected.
    """

    item_type_ids: set[str] = field(default_factory=set)
    plugin_ids: set[str] = field(default_factory=set)
    added_item_type_ids: list[str] = field(default_factory=list)
    added_plugin_ids: list[str] = field(default_factory=list)


def expand_selection_with_dependencies(
    graph: Graph, item_type_ids: Iterable[str], plugin_ids: Iterable[str] = ()
) -> DependencyExpansion:
    """Add every item type and plugin the selection references, transitively.

    An export that leaves out a referenced item type would drop the
    reference, so selections are usually closed before exporting.

    Args:
        graph: Graph the selection was made on.
        item_type_ids: Selected item type ids (entity ids, not graph ids).
        plugin_ids: Selected plugin ids.
    """
    expansion = DependencyExpansion(item_type_ids=set(item_type_ids), plugin_ids=set(plugin_ids))
    queue = deque(sorted(expansion.item_type_ids))
    while queue:
        current = queue.popleft()
        for edge in find_outbound_edges(graph, node_id(NodeKind.ITEM_TYPE, current)):
            target = graph.node(edge.target)
            if target is None:
                continue
            if target.kind is NodeKind.ITEM_TYPE:
                if target.entity_id not in expansion.item_type_ids:
                    expansion.item_type_ids.add(target.entity_id)
                    expansion.added_item_type_ids.append(target.entity_id)
                    queue.append(target.entity_id)
            elif target.entity_id not in expansion.plugin_ids:
                expansion.plugin_ids.add(target.entity_id)
                expansion.added_plugin_ids.append(target.entity_id)
    return expansion
