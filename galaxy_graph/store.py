"""
In-memory graph store for the Galaxy Notes knowledge graph.

A directed, attributed graph kept in plain adjacency maps. Nodes are keyed
by id; edges are keyed by (source, target, type), so there is never more
than one edge of a type between an ordered pair.
"""

import copy
from typing import Any, Iterator, Literal

import structlog

from .utils import GraphError

logger = structlog.get_logger(__name__)

Direction = Literal["out", "in"]

_EDGE_KEYS = ("source", "target", "type")


class GraphStore:
    """Directed attributed graph without self-loops or dangling edges.

    Operations on unknown ids are no-ops that return an empty or False
    result; the store is a best-effort cache over possibly stale notes.
    """

    def __init__(self):
        self._nodes: dict[str, dict[str, Any]] = {}
        # node id -> {(other id, edge type): edge}; both maps share edge dicts
        self._out: dict[str, dict[tuple[str, str], dict[str, Any]]] = {}
        self._in: dict[str, dict[tuple[str, str], dict[str, Any]]] = {}
        self._edge_count = 0

    # ============== Nodes ==============

    def add_or_update_node(self, node_id: str, attrs: dict[str, Any] | None = None) -> bool:
        """Create a node, or shallow-merge attributes into an existing one.

        Returns:
            True if the node was created
        """
        attrs = {k: v for k, v in (attrs or {}).items() if k != "id"}
        node = self._nodes.get(node_id)
        if node is not None:
            node.update(attrs)
            return False

        self._nodes[node_id] = {"id": node_id, **attrs}
        self._out[node_id] = {}
        self._in[node_id] = {}
        return True

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: str) -> dict[str, Any] | None:
        node = self._nodes.get(node_id)
        return copy.deepcopy(node) if node is not None else None

    def remove_node(self, node_id: str) -> bool:
        """Remove a node and every edge touching it."""
        if node_id not in self._nodes:
            return False

        for target, edge_type in list(self._out[node_id]):
            self.remove_edge(node_id, target, edge_type)
        for source, edge_type in list(self._in[node_id]):
            self.remove_edge(source, node_id, edge_type)

        del self._nodes[node_id]
        del self._out[node_id]
        del self._in[node_id]
        return True

    def nodes(self, node_type: str | None = None) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(node)
            for node in self._nodes.values()
            if node_type is None or node.get("type") == node_type
        ]

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    # ============== Edges ==============

    def add_or_update_edge(
        self,
        source: str,
        target: str,
        edge_type: str,
        attrs: dict[str, Any] | None = None,
    ) -> bool:
        """Create an edge, or merge attributes into the existing one.

        Both endpoints must already exist; self-loops are refused.

        Returns:
            False if the edge could not be added, True otherwise
        """
        if source == target or source not in self._nodes or target not in self._nodes:
            return False

        attrs = {k: v for k, v in (attrs or {}).items() if k not in _EDGE_KEYS}
        edge = self._out[source].get((target, edge_type))
        if edge is not None:
            edge.update(attrs)
            return True

        edge = {"source": source, "target": target, "type": edge_type, **attrs}
        self._out[source][(target, edge_type)] = edge
        self._in[target][(source, edge_type)] = edge
        self._edge_count += 1
        return True

    def has_edge(self, source: str, target: str, edge_type: str) -> bool:
        return (target, edge_type) in self._out.get(source, {})

    def get_edge(self, source: str, target: str, edge_type: str) -> dict[str, Any] | None:
        edge = self._out.get(source, {}).get((target, edge_type))
        return copy.deepcopy(edge) if edge is not None else None

    def remove_edge(self, source: str, target: str, edge_type: str) -> bool:
        if self._out.get(source, {}).pop((target, edge_type), None) is None:
            return False
        self._in[target].pop((source, edge_type), None)
        self._edge_count -= 1
        return True

    def _iter_edges(
        self,
        node_id: str | None,
        direction: Direction,
        edge_type: str | None,
    ) -> Iterator[dict[str, Any]]:
        if node_id is None:
            adjacency = [edges for edges in self._out.values()]
        else:
            table = self._out if direction == "out" else self._in
            adjacency = [table[node_id]] if node_id in table else []

        for edges in adjacency:
            for (_, kind), edge in edges.items():
                if edge_type is None or kind == edge_type:
                    yield edge

    def edges(
        self,
        node_id: str | None = None,
        direction: Direction = "out",
        edge_type: str | None = None,
    ) -> list[dict[str, Any]]:
        """List edges of one node (by direction) or of the whole graph."""
        return [copy.deepcopy(e) for e in self._iter_edges(node_id, direction, edge_type)]

    def neighbors(
        self,
        node_id: str,
        direction: Direction = "out",
        edge_type: str | None = None,
    ) -> list[dict[str, Any]]:
        """Nodes adjacent to node_id, optionally restricted to one edge type."""
        if node_id not in self._nodes:
            return []

        endpoint = "target" if direction == "out" else "source"
        return [
            copy.deepcopy(self._nodes[edge[endpoint]])
            for edge in self._iter_edges(node_id, direction, edge_type)
        ]

    @property
    def edge_count(self) -> int:
        return self._edge_count

    # ============== Whole Graph ==============

    def clear(self) -> None:
        self._nodes.clear()
        self._out.clear()
        self._in.clear()
        self._edge_count = 0

    def serialize(self) -> dict[str, list[dict[str, Any]]]:
        """Portable copy of every node and edge with all attributes."""
        return {
            "nodes": [copy.deepcopy(node) for node in self._nodes.values()],
            "edges": [copy.deepcopy(edge) for edge in self._iter_edges(None, "out", None)],
        }

    def deserialize(self, data: dict[str, Any]) -> None:
        """Replace the graph with the contents of a serialize() payload.

        Raises:
            GraphError: If the payload is not an object with node and edge lists
        """
        if not isinstance(data, dict):
            raise GraphError("Graph payload must be an object with 'nodes' and 'edges'")
        nodes = data.get("nodes") or []
        edges = data.get("edges") or []
        if not isinstance(nodes, list) or not isinstance(edges, list):
            raise GraphError("Graph payload 'nodes' and 'edges' must be lists")

        self.clear()
        skipped = 0
        for node in nodes:
            if isinstance(node, dict) and isinstance(node.get("id"), str):
                self.add_or_update_node(node["id"], copy.deepcopy(node))
            else:
                skipped += 1

        for edge in edges:
            if not isinstance(edge, dict) or not all(isinstance(edge.get(k), str) for k in _EDGE_KEYS):
                skipped += 1
                continue
            if not self.add_or_update_edge(edge["source"], edge["target"], edge["type"], copy.deepcopy(edge)):
                skipped += 1

        if skipped:
            logger.warning("graph_elements_skipped", skipped=skipped)
