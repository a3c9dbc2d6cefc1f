"""
Knowledge graph for the Galaxy Notes knowledge graph.

KnowledgeGraph owns a GraphStore and a TitleResolver. Its only mutation
path is rebuild(), which clears both and repopulates them from the full
note/folder/cluster collection; everything else is a read-only query.
"""

import time
from collections import Counter
from typing import Any, Iterable

import structlog

from .config import settings
from .models import (
    Cluster,
    EdgeType,
    Entity,
    Folder,
    FolderContents,
    GraphEdge,
    GraphNode,
    Note,
    NodeLink,
    NodeType,
    RebuildReport,
    UnresolvedReference,
    validate_records,
)
from .resolver import TitleResolver
from .scanner import scan_blocks
from .store import Direction, GraphStore
from .utils import (
    concept_node_id,
    entity_id,
    mention_node_id,
    slugify,
    tag_node_id,
    triple_id,
)

logger = structlog.get_logger(__name__)

CONNECTION_KINDS = ("tag", "concept", "mention", "entity", "triple")


def _to_node(attrs: dict[str, Any]) -> GraphNode:
    return GraphNode.model_validate({
        **attrs,
        "type": str(attrs.get("type") or "unknown"),
        "title": str(attrs.get("title") or ""),
    })


def _timestamps(record: Note | Folder | Cluster) -> dict[str, str]:
    return {"createdAt": record.created_at, "updatedAt": record.updated_at}


class KnowledgeGraph:
    """Directed multi-relation graph over notes, folders, clusters and entities."""

    def __init__(
        self,
        relationship_types: Iterable[str] | None = None,
        default_relationship: str | None = None,
        root_folder_id: str | None = None,
        root_path: str | None = None,
    ):
        self._store = GraphStore()
        self._resolver = TitleResolver()
        self.relationship_types = list(relationship_types or settings.relationship_types)
        self.default_relationship = default_relationship or settings.default_relationship
        self.root_folder_id = root_folder_id or settings.root_folder_id
        self.root_path = root_path or settings.root_path
        self.last_report: RebuildReport | None = None

    # ============== Rebuild ==============

    def rebuild(
        self,
        notes: Iterable[Note | dict],
        folders: Iterable[Folder | dict] = (),
        clusters: Iterable[Cluster | dict] | None = None,
    ) -> RebuildReport:
        """Clear the graph and rebuild it from the full collection.

        Unresolvable links, self-links and notes without a folder are not
        errors; they are recorded in the returned report.
        """
        start_time = time.time()
        notes = validate_records(Note, notes, "note")
        folders = validate_records(Folder, folders, "folder")
        clusters = validate_records(Cluster, clusters, "cluster")
        report = RebuildReport(note_count=len(notes), folder_count=len(folders))

        self._store.clear()
        self._resolver.build_index(notes)

        for cluster in clusters:
            self._store.add_or_update_node(cluster.id, {
                "type": NodeType.CLUSTER,
                "title": cluster.title,
                **_timestamps(cluster),
            })

        self._add_folders(folders)
        self._add_notes(notes, folders, report)

        for note in notes:
            self._add_references(note, report)

        report.node_count = self._store.node_count
        report.edge_count = self._store.edge_count
        report.duration_ms = round((time.time() - start_time) * 1000, 2)
        self.last_report = report

        logger.info(
            "graph_rebuilt",
            notes=report.note_count,
            folders=report.folder_count,
            nodes=report.node_count,
            edges=report.edge_count,
            unresolved=len(report.unresolved_links),
            orphans=len(report.orphan_notes),
            duration_ms=report.duration_ms,
        )
        return report

    def _add_folders(self, folders: list[Folder]) -> None:
        for folder in folders:
            attrs = {
                "type": NodeType.FOLDER,
                "title": folder.name,
                "path": folder.path,
                **_timestamps(folder),
            }
            if folder.parent_id:
                attrs["parentId"] = folder.parent_id
            if folder.cluster_id:
                attrs["clusterId"] = folder.cluster_id
            self._store.add_or_update_node(folder.id, attrs)

        for folder in folders:
            if folder.parent_id:
                self._store.add_or_update_edge(folder.parent_id, folder.id, EdgeType.CONTAINS)
            if folder.cluster_id:
                self._store.add_or_update_edge(folder.id, folder.cluster_id, EdgeType.IN_CLUSTER)

    def _add_notes(self, notes: list[Note], folders: list[Folder], report: RebuildReport) -> None:
        for note in notes:
            attrs = {
                "type": NodeType.NOTE,
                "title": note.title,
                "path": note.path,
                **_timestamps(note),
            }
            if note.tags:
                attrs["tags"] = list(note.tags)
            if note.cluster_id:
                attrs["clusterId"] = note.cluster_id
            self._store.add_or_update_node(note.id, attrs)

        # First folder declared for a path owns it
        folder_by_path: dict[str, str] = {}
        for folder in folders:
            folder_by_path.setdefault(folder.path, folder.id)

        for note in notes:
            parent_id = folder_by_path.get(note.path)
            if parent_id is None and note.path == self.root_path and self._store.has_node(self.root_folder_id):
                parent_id = self.root_folder_id

            if not (parent_id and self._store.add_or_update_edge(parent_id, note.id, EdgeType.CONTAINS)):
                report.orphan_notes.append(note.id)

            if note.cluster_id:
                self._store.add_or_update_edge(note.id, note.cluster_id, EdgeType.IN_CLUSTER)

    def _add_auxiliary(self, note_id: str, node_id: str, node_type: str, edge_type: str, title: str, **attrs) -> None:
        """Link a note to a tag/mention/concept node, creating it on first occurrence."""
        existing = self._store.get_node(node_id)
        if existing is None:
            self._store.add_or_update_node(node_id, {"type": node_type, "title": title, **attrs})
        elif existing.get("type") != node_type:
            # A note or folder already owns this id
            logger.warning("auxiliary_id_taken", node_id=node_id, expected=node_type, found=existing.get("type"))
            return
        self._store.add_or_update_edge(note_id, node_id, edge_type)

    def _ensure_entity(self, entity: Entity) -> str:
        node_id = entity_id(entity.kind, entity.label)
        attrs: dict[str, Any] = {
            "type": NodeType.ENTITY,
            "title": entity.label,
            "kind": entity.kind,
            "label": entity.label,
        }
        if entity.attributes:
            existing = self._store.get_node(node_id) or {}
            attrs["attributes"] = {**(existing.get("attributes") or {}), **entity.attributes}
        self._store.add_or_update_node(node_id, attrs)
        return node_id

    def _add_references(self, note: Note, report: RebuildReport) -> None:
        refs = scan_blocks(note.content, self.relationship_types, self.default_relationship)
        report.malformed_attributes.extend(refs.malformed_attributes)

        for link in refs.links:
            target_id = self._resolver.resolve(link.title)
            if target_id is None:
                report.unresolved_links.append(UnresolvedReference(source_id=note.id, title=link.title))
                continue
            if target_id == note.id:
                report.self_links_dropped += 1
                continue
            if not self._store.has_edge(note.id, target_id, EdgeType.LINK):
                self._store.add_or_update_edge(note.id, target_id, EdgeType.LINK, {"relationship": link.relationship})

        for title in refs.backlinks:
            target_id = self._resolver.resolve(title)
            if target_id is None:
                report.unresolved_backlinks.append(UnresolvedReference(source_id=note.id, title=title))
            elif target_id == note.id:
                report.self_links_dropped += 1
            else:
                self._store.add_or_update_edge(note.id, target_id, EdgeType.BACKLINK)

        for tag in [*refs.tags, *note.tags]:
            if slugify(tag):
                self._add_auxiliary(note.id, tag_node_id(tag), NodeType.TAG, EdgeType.TAG, tag)

        for mention in refs.mentions:
            if slugify(mention):
                self._add_auxiliary(note.id, mention_node_id(mention), NodeType.MENTION, EdgeType.MENTION, mention)

        for concept in note.concepts:
            if slugify(concept.name):
                self._add_auxiliary(
                    note.id,
                    concept_node_id(concept.name),
                    NodeType.CONCEPT,
                    EdgeType.CONCEPT,
                    concept.name,
                    conceptType=concept.type,
                )

        for entity in refs.entities:
            self._store.add_or_update_edge(self._ensure_entity(entity), note.id, EdgeType.MENTIONED_IN)

        for triple in refs.triples:
            subject_id = self._ensure_entity(triple.subject)
            object_id = self._ensure_entity(triple.object)
            node_id = triple_id(subject_id, triple.predicate, object_id)
            if not self._store.has_node(node_id):
                self._store.add_or_update_node(node_id, {
                    "type": NodeType.TRIPLE,
                    "title": f"{triple.subject.label} {triple.predicate} {triple.object.label}",
                    "predicate": triple.predicate,
                    "subject": subject_id,
                    "object": object_id,
                    "createdIn": note.id,
                })
            self._store.add_or_update_edge(subject_id, node_id, EdgeType.SUBJECT_OF, {"predicate": triple.predicate})
            self._store.add_or_update_edge(object_id, node_id, EdgeType.OBJECT_OF, {"predicate": triple.predicate})
            self._store.add_or_update_edge(node_id, note.id, EdgeType.MENTIONED_IN)

    # ============== Queries ==============

    @property
    def node_count(self) -> int:
        return self._store.node_count

    @property
    def edge_count(self) -> int:
        return self._store.edge_count

    def get_node(self, node_id: str) -> GraphNode | None:
        node = self._store.get_node(node_id)
        return _to_node(node) if node else None

    def find_note(self, ref: str) -> GraphNode | None:
        """Find a note by id, falling back to a case-insensitive title match."""
        node = self._store.get_node(ref)
        if node is None or node.get("type") != NodeType.NOTE:
            note_id = self._resolver.resolve(ref)
            node = self._store.get_node(note_id) if note_id else None
        return _to_node(node) if node else None

    def nodes(self, node_type: str | None = None) -> list[GraphNode]:
        return [_to_node(n) for n in self._store.nodes(node_type)]

    def edges(self, edge_type: str | None = None) -> list[GraphEdge]:
        return [GraphEdge.model_validate(e) for e in self._store.edges(edge_type=edge_type)]

    def _is_type(self, node_id: str, node_type: str) -> bool:
        node = self._store.get_node(node_id)
        return node is not None and node.get("type") == node_type

    def _links(self, note_id: str, direction: Direction) -> list[NodeLink]:
        if not self._is_type(note_id, NodeType.NOTE):
            return []

        endpoint = "target" if direction == "out" else "source"
        links: list[NodeLink] = []
        for edge in self._store.edges(note_id, direction, EdgeType.LINK):
            other = self._store.get_node(edge[endpoint])
            if other and other.get("type") == NodeType.NOTE:
                links.append(NodeLink(
                    node=_to_node(other),
                    relationship=edge.get("relationship") or self.default_relationship,
                ))
        return links

    def outgoing_links(self, note_id: str) -> list[NodeLink]:
        """Notes this note links to, with each link's relationship."""
        return self._links(note_id, "out")

    def incoming_links(self, note_id: str) -> list[NodeLink]:
        """Notes linking to this note, with each link's relationship."""
        return self._links(note_id, "in")

    def linked_notes(self, note_id: str) -> list[GraphNode]:
        return [link.node for link in self.outgoing_links(note_id)]

    def linking_notes(self, note_id: str) -> list[GraphNode]:
        return [link.node for link in self.incoming_links(note_id)]

    def declared_backlinks(self, note_id: str) -> list[GraphNode]:
        """Notes that name this note in a ``<<Title>>`` backlink."""
        if not self._is_type(note_id, NodeType.NOTE):
            return []
        return [
            _to_node(n)
            for n in self._store.neighbors(note_id, "in", EdgeType.BACKLINK)
            if n.get("type") == NodeType.NOTE
        ]

    def folder_contents(self, folder_id: str) -> FolderContents:
        """Direct child folders and notes of a folder."""
        contents = FolderContents()
        if not self._is_type(folder_id, NodeType.FOLDER):
            return contents

        for child in self._store.neighbors(folder_id, "out", EdgeType.CONTAINS):
            if child.get("type") == NodeType.FOLDER:
                contents.folders.append(_to_node(child))
            elif child.get("type") == NodeType.NOTE:
                contents.notes.append(_to_node(child))
        return contents

    def connections(self, note_id: str) -> dict[str, list[GraphNode]]:
        """Auxiliary nodes attached to a note, grouped by relation kind."""
        grouped: dict[str, list[GraphNode]] = {kind: [] for kind in CONNECTION_KINDS}
        if not self._is_type(note_id, NodeType.NOTE):
            return grouped

        for kind, edge_type in (("tag", EdgeType.TAG), ("concept", EdgeType.CONCEPT), ("mention", EdgeType.MENTION)):
            grouped[kind] = [_to_node(n) for n in self._store.neighbors(note_id, "out", edge_type)]

        for source in self._store.neighbors(note_id, "in", EdgeType.MENTIONED_IN):
            if source.get("type") == NodeType.ENTITY:
                grouped["entity"].append(_to_node(source))
            elif source.get("type") == NodeType.TRIPLE:
                grouped["triple"].append(_to_node(source))
        return grouped

    def notes_with_tag(self, tag: str) -> list[GraphNode]:
        """Notes carrying a tag (with or without the leading #)."""
        tag = tag.lstrip("#")
        if not slugify(tag):
            return []
        return [_to_node(n) for n in self._store.neighbors(tag_node_id(tag), "in", EdgeType.TAG)]

    def cluster_members(self, cluster_id: str) -> list[GraphNode]:
        if not self._is_type(cluster_id, NodeType.CLUSTER):
            return []
        return [_to_node(n) for n in self._store.neighbors(cluster_id, "in", EdgeType.IN_CLUSTER)]

    def entities(self, kind: str | None = None) -> list[GraphNode]:
        return [
            _to_node(n)
            for n in self._store.nodes(NodeType.ENTITY)
            if kind is None or n.get("kind") == kind
        ]

    def entity_notes(self, node_id: str) -> list[GraphNode]:
        """Notes mentioning an entity, directly or through a triple it takes part in."""
        if not self._is_type(node_id, NodeType.ENTITY):
            return []

        seen: dict[str, GraphNode] = {}
        for note in self._store.neighbors(node_id, "out", EdgeType.MENTIONED_IN):
            seen.setdefault(note["id"], _to_node(note))
        for edge_type in (EdgeType.SUBJECT_OF, EdgeType.OBJECT_OF):
            for triple in self._store.neighbors(node_id, "out", edge_type):
                for note in self._store.neighbors(triple["id"], "out", EdgeType.MENTIONED_IN):
                    seen.setdefault(note["id"], _to_node(note))
        return list(seen.values())

    def subgraph(self, center_id: str, depth: int = 2) -> dict[str, Any]:
        """Notes within depth link hops of a note, in either direction.

        Returns:
            dict with center, nodes[], edges[] and stats; empty lists if the note is unknown
        """
        if not self._is_type(center_id, NodeType.NOTE):
            return {"center": center_id, "nodes": [], "edges": [], "stats": {"total_nodes": 0, "total_edges": 0, "depth": depth}}

        visited: set[str] = {center_id}
        frontier: set[str] = {center_id}
        for _ in range(max(depth, 0)):
            new_frontier: set[str] = set()
            for node_id in frontier:
                for direction in ("out", "in"):
                    for other in self._store.neighbors(node_id, direction, EdgeType.LINK):
                        if other["id"] not in visited:
                            visited.add(other["id"])
                            new_frontier.add(other["id"])
            frontier = new_frontier

        edges = [
            e for e in self._store.edges(edge_type=EdgeType.LINK)
            if e["source"] in visited and e["target"] in visited
        ]
        degree = Counter()
        for edge in edges:
            degree[edge["source"]] += 1
            degree[edge["target"]] += 1

        nodes = []
        for node in self._store.nodes(NodeType.NOTE):
            if node["id"] in visited:
                nodes.append({
                    **_to_node(node).model_dump(),
                    "connections": degree[node["id"]],
                    "is_center": node["id"] == center_id,
                })

        return {
            "center": center_id,
            "nodes": nodes,
            "edges": edges,
            "stats": {"total_nodes": len(nodes), "total_edges": len(edges), "depth": depth},
        }

    def hubs(self, top_n: int = 10) -> dict[str, Any]:
        """The most linked notes with their neighbours, plus notes without links."""
        degree = Counter()
        neighbors: dict[str, set[str]] = {}
        for edge in self._store.edges(edge_type=EdgeType.LINK):
            degree[edge["source"]] += 1
            degree[edge["target"]] += 1
            neighbors.setdefault(edge["source"], set()).add(edge["target"])
            neighbors.setdefault(edge["target"], set()).add(edge["source"])

        notes = self._store.nodes(NodeType.NOTE)
        ranked = sorted((n for n in notes if degree[n["id"]]), key=lambda n: degree[n["id"]], reverse=True)
        hubs = [
            {
                "hub": _to_node(node).model_dump(),
                "connections": degree[node["id"]],
                "neighbors": sorted(neighbors.get(node["id"], set())),
            }
            for node in ranked[:top_n]
        ]
        orphans = [_to_node(n).model_dump() for n in notes if not degree[n["id"]]]

        return {
            "hubs": hubs,
            "orphans": orphans,
            "stats": {
                "total_notes": len(notes),
                "total_links": sum(degree.values()) // 2,
                "orphan_count": len(orphans),
            },
        }

    def stats(self) -> dict[str, Any]:
        nodes = self._store.nodes()
        edges = self._store.edges()
        return {
            "total_nodes": len(nodes),
            "total_edges": len(edges),
            "by_node_type": dict(Counter(n.get("type", "unknown") for n in nodes)),
            "by_edge_type": dict(Counter(e["type"] for e in edges)),
        }

    # ============== Interchange ==============

    def to_json(self) -> dict[str, list[dict[str, Any]]]:
        """Export as ``{"nodes": [...], "edges": [...]}``."""
        return self._store.serialize()

    def load_json(self, data: dict[str, Any]) -> None:
        """Replace the graph with an exported one, rebuilding the title index."""
        self._store.deserialize(data)
        self._resolver.clear()
        for node in self._store.nodes(NodeType.NOTE):
            self._resolver.add(str(node.get("title") or ""), node["id"])
        self.last_report = None

    @classmethod
    def from_json(cls, data: dict[str, Any], **kwargs) -> "KnowledgeGraph":
        graph = cls(**kwargs)
        graph.load_json(data)
        return graph
