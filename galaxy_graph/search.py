"""
Search and query functions for the Galaxy Notes knowledge graph.

Thin async layer over the cached knowledge graph and the similarity index,
shaped for the MCP tool handlers.
"""

import structlog

from .cache import store_cache
from .config import settings
from .models import GraphNode, NodeLink, NodeType, SearchResult
from .scanner import extract_text
from .similarity import similarity_index
from .utils import SEARCH_SPLIT_PATTERN

logger = structlog.get_logger(__name__)


def _summary(node: GraphNode) -> dict:
    return {"id": node.id, "title": node.title, "path": getattr(node, "path", "")}


def _link_summary(link: NodeLink) -> dict:
    return {**_summary(link.node), "relationship": link.relationship}


async def search_notes(query: str, max_results: int = 10) -> list[SearchResult]:
    """Search notes by title or content.

    Supports multi-word queries: all words must be present (AND logic).
    """
    results: list[SearchResult] = []

    terms = [t.strip().lower() for t in SEARCH_SPLIT_PATTERN.split(query) if t.strip()]
    if not terms:
        return []

    for note in await store_cache.get_notes():
        body = extract_text(note.content)
        body_lower = body.lower()
        title_lower = note.title.lower()

        if not all(term in title_lower or term in body_lower for term in terms):
            continue

        score = 0
        for term in terms:
            if term in title_lower:
                score += 10
            score += body_lower.count(term)

        snippet_idx = -1
        for term in terms:
            idx = body_lower.find(term)
            if idx >= 0:
                snippet_idx = idx
                break

        if snippet_idx >= 0:
            start = max(0, snippet_idx - 50)
            end = min(len(body), snippet_idx + 150)
            snippet = "..." + body[start:end].replace("\n", " ") + "..."
        else:
            snippet = body[:200].replace("\n", " ")

        results.append(SearchResult(
            id=note.id,
            title=note.title,
            path=note.path,
            score=float(score),
            snippet=snippet,
            tags=note.tags,
            matched_terms=terms,
        ))

    results.sort(key=lambda x: x.score, reverse=True)
    final_results = results[:min(max_results, settings.max_search_results)]
    logger.debug("search_completed", query=query, results=len(final_results))
    return final_results


async def get_outgoing_links(note_ref: str) -> list[dict] | None:
    """Notes linked from a note (by id or title). None if the note is unknown."""
    graph = await store_cache.get_graph()
    note = graph.find_note(note_ref)
    if note is None:
        return None
    return [_link_summary(link) for link in graph.outgoing_links(note.id)]


async def get_backlinks(note_ref: str) -> list[dict] | None:
    """Notes linking to a note (by id or title). None if the note is unknown."""
    graph = await store_cache.get_graph()
    note = graph.find_note(note_ref)
    if note is None:
        return None
    return [_link_summary(link) for link in graph.incoming_links(note.id)]


async def get_declared_backlinks(note_ref: str) -> list[dict] | None:
    """Notes naming a note in a <<Title>> backlink. None if the note is unknown."""
    graph = await store_cache.get_graph()
    note = graph.find_note(note_ref)
    if note is None:
        return None
    return [_summary(n) for n in graph.declared_backlinks(note.id)]


async def get_folder_contents(folder_ref: str) -> dict | None:
    """Child folders and notes of a folder given by id or path."""
    graph = await store_cache.get_graph()
    folder = graph.get_node(folder_ref)
    if folder is None or folder.type != NodeType.FOLDER:
        folder = next(
            (f for f in graph.nodes(NodeType.FOLDER) if getattr(f, "path", None) == folder_ref),
            None,
        )
    if folder is None:
        return None

    contents = graph.folder_contents(folder.id)
    return {
        "folder": _summary(folder),
        "folders": [_summary(f) for f in contents.folders],
        "notes": [_summary(n) for n in contents.notes],
    }


async def get_connections(note_ref: str) -> dict | None:
    """Tags, concepts, mentions, entities and triples attached to a note."""
    graph = await store_cache.get_graph()
    note = graph.find_note(note_ref)
    if note is None:
        return None
    return {
        kind: [node.model_dump() for node in nodes]
        for kind, nodes in graph.connections(note.id).items()
    }


async def explore_by_tag(tag: str) -> list[dict]:
    """Find all notes carrying a tag, from content or declared tags."""
    graph = await store_cache.get_graph()
    return [_summary(note) for note in graph.notes_with_tag(tag)]


async def get_graph_stats() -> dict:
    """Node and edge counts, top tags and rebuild diagnostics."""
    graph = await store_cache.get_graph()
    stats = graph.stats()

    tag_counts = [
        (tag.title, len(graph.notes_with_tag(tag.title)))
        for tag in graph.nodes(NodeType.TAG)
    ]
    stats["top_tags"] = sorted(tag_counts, key=lambda x: x[1], reverse=True)[:20]

    notes = graph.nodes(NodeType.NOTE)
    recent = sorted(notes, key=lambda n: getattr(n, "updatedAt", "") or "", reverse=True)
    stats["recent_notes"] = [_summary(n) for n in recent[:10]]

    report = graph.last_report
    stats["unresolved_links"] = len(report.unresolved_links) if report else 0
    stats["unresolved_backlinks"] = len(report.unresolved_backlinks) if report else 0
    stats["orphan_notes"] = len(report.orphan_notes) if report else 0
    stats["similarity_index"] = similarity_index.stats()
    return stats


async def get_rebuild_report() -> dict:
    """Diagnostics from the last rebuild (unresolved links, orphans, bad attributes)."""
    graph = await store_cache.get_graph()
    if graph.last_report is None:
        return {}
    return graph.last_report.model_dump()


async def find_similar_notes(note_ref: str, k: int = 10) -> list[dict] | None:
    """Notes whose embeddings are closest to a note's own embedding.

    Returns:
        None if the note is unknown, else hits enriched with note titles
    """
    graph = await store_cache.get_graph()
    note = graph.find_note(note_ref)
    if note is None:
        return None

    results: list[dict] = []
    for hit in similarity_index.similar_to(note.id, k):
        other = graph.get_node(hit.note_id)
        if other is None:
            # Stale vector for a note that no longer exists
            continue
        results.append({**_summary(other), "score": round(hit.score, 4)})
    return results


async def index_note_embedding(
    note_ref: str,
    vector: list[float] | None = None,
    remove: bool = False,
) -> dict | None:
    """Store or drop a note's embedding, then persist the index in the background.

    Returns:
        None if the note is unknown, else a summary with ``indexed`` and
        ``changed`` flags, or an ``error`` message
    """
    graph = await store_cache.get_graph()
    note = graph.find_note(note_ref)
    if note is None:
        return None

    result = _summary(note)
    if not similarity_index.is_ready:
        return {**result, "error": "similarity index is not ready"}

    if remove:
        changed = similarity_index.remove(note.id)
    else:
        try:
            changed = similarity_index.upsert(note.id, vector if vector is not None else [])
        except (ValueError, TypeError) as e:
            # wrong dimension (DimensionMismatchError) or non-numeric values
            return {**result, "error": str(e)}
        if not changed:
            return {**result, "error": "vector has zero or non-finite length"}

    if changed:
        similarity_index.schedule_persist()
    logger.info("note_embedding_indexed", note_id=note.id, removed=remove, changed=changed)
    return {**result, "indexed": note.id in similarity_index, "changed": changed}
