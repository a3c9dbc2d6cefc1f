"""
MCP Tools module for the Galaxy Notes knowledge graph.

Contains the MCP tool handlers (list_tools and call_tool) and resources.
"""

import json
from typing import Any

from mcp.server import Server
from mcp.types import (
    Resource,
    TextContent,
    Tool,
)

from .cache import store_cache
from .search import (
    explore_by_tag,
    find_similar_notes,
    get_backlinks,
    get_connections,
    get_declared_backlinks,
    get_folder_contents,
    get_graph_stats,
    get_outgoing_links,
    get_rebuild_report,
    index_note_embedding,
    search_notes,
)

# Initialize server
server = Server("galaxy-notes-graph")


def _note_ref_schema(description: str) -> dict:
    return {
        "type": "object",
        "properties": {
            "note": {
                "type": "string",
                "description": description,
            }
        },
        "required": ["note"],
    }


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="galaxy_search",
            description="Search notes by title or content. Returns matching notes with snippets.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Search query (keywords or phrase)"
                    },
                    "max_results": {
                        "type": "integer",
                        "description": "Maximum number of results (default: 10)",
                        "default": 10
                    }
                },
                "required": ["query"]
            }
        ),
        Tool(
            name="galaxy_links",
            description="List the notes a note links to with [[wiki links]], with each link's relationship.",
            inputSchema=_note_ref_schema("Id or title of the note"),
        ),
        Tool(
            name="galaxy_backlinks",
            description="List the notes that link to a note (backlinks), with each link's relationship, "
                       "plus the notes that name it in a <<Title>> backlink.",
            inputSchema=_note_ref_schema("Id or title of the note"),
        ),
        Tool(
            name="galaxy_folder",
            description="List the folders and notes directly inside a folder.",
            inputSchema={
                "type": "object",
                "properties": {
                    "folder": {
                        "type": "string",
                        "description": "Id or path of the folder (e.g., '/Projects')"
                    }
                },
                "required": ["folder"]
            }
        ),
        Tool(
            name="galaxy_connections",
            description="Show the tags, concepts, mentions, entities and triples attached to a note.",
            inputSchema=_note_ref_schema("Id or title of the note"),
        ),
        Tool(
            name="galaxy_explore_tag",
            description="Find all notes with a specific tag.",
            inputSchema={
                "type": "object",
                "properties": {
                    "tag": {
                        "type": "string",
                        "description": "Tag to search for (with or without #)"
                    }
                },
                "required": ["tag"]
            }
        ),
        Tool(
            name="galaxy_stats",
            description="Get statistics about the knowledge graph (node and edge counts, top tags, diagnostics).",
            inputSchema={
                "type": "object",
                "properties": {}
            }
        ),
        Tool(
            name="galaxy_similar",
            description="Find notes semantically similar to a note using the stored embeddings.",
            inputSchema={
                "type": "object",
                "properties": {
                    "note": {
                        "type": "string",
                        "description": "Id or title of the note"
                    },
                    "k": {
                        "type": "integer",
                        "description": "Number of similar notes to return (default: 10)",
                        "default": 10
                    }
                },
                "required": ["note"]
            }
        ),
        Tool(
            name="galaxy_index_embedding",
            description="Store a note's embedding vector in the similarity index, or remove it. "
                       "The index is saved to disk in the background.",
            inputSchema={
                "type": "object",
                "properties": {
                    "note": {
                        "type": "string",
                        "description": "Id or title of the note"
                    },
                    "vector": {
                        "type": "array",
                        "items": {"type": "number"},
                        "description": "Embedding vector (length must match the index dimension)"
                    },
                    "remove": {
                        "type": "boolean",
                        "description": "Remove the note's embedding instead of storing one (default: false)",
                        "default": False
                    }
                },
                "required": ["note"]
            }
        ),
        Tool(
            name="galaxy_graph",
            description="Graph view of links between notes. Without center_note, returns the most linked hubs. "
                       "With center_note, returns the subgraph around that note. With export=true, returns the "
                       "full graph as {nodes, edges} JSON.",
            inputSchema={
                "type": "object",
                "properties": {
                    "center_note": {
                        "type": "string",
                        "description": "Optional. Id or title of the note to center the graph on."
                    },
                    "depth": {
                        "type": "integer",
                        "description": "Depth of links to include when center_note is provided (default: 2)",
                        "default": 2
                    },
                    "export": {
                        "type": "boolean",
                        "description": "Return the full interchange export instead of a view (default: false)",
                        "default": False
                    }
                }
            }
        ),
    ]


def _format_links(header: str, links: list[dict]) -> str:
    output = f"{header}\n\n"
    for link in links:
        output += f"- **{link['title']}** ({link['id']}) - {link['relationship']}\n"
    return output


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""

    if name == "galaxy_search":
        query = arguments.get("query", "")
        max_results = arguments.get("max_results", 10)
        results = await search_notes(query, max_results)

        if not results:
            return [TextContent(type="text", text=f"No notes found for query: '{query}'")]

        output = f"Found {len(results)} notes for '{query}':\n\n"
        for r in results:
            output += f"**{r.title}** ({r.path})\n"
            tags_str = ', '.join(r.tags[:3]) if r.tags else 'none'
            output += f"  Tags: {tags_str}\n"
            output += f"  {r.snippet}\n\n"

        return [TextContent(type="text", text=output)]

    elif name in ("galaxy_links", "galaxy_backlinks"):
        note_ref = arguments.get("note", "")
        declared: list[dict] = []
        if name == "galaxy_links":
            links = await get_outgoing_links(note_ref)
            header = f"Notes linked from '{note_ref}'"
        else:
            links = await get_backlinks(note_ref)
            declared = await get_declared_backlinks(note_ref) or []
            header = f"Notes linking to '{note_ref}'"

        if links is None:
            return [TextContent(type="text", text=f"Note not found: '{note_ref}'")]
        if not links and not declared:
            return [TextContent(type="text", text=f"No links found for: '{note_ref}'")]

        output = _format_links(f"{header} ({len(links)}):", links)
        if declared:
            output += f"\nNotes declaring <<{note_ref}>> ({len(declared)}):\n\n"
            for note in declared:
                output += f"- **{note['title']}** ({note['id']})\n"

        return [TextContent(type="text", text=output)]

    elif name == "galaxy_folder":
        folder_ref = arguments.get("folder", "")
        contents = await get_folder_contents(folder_ref)

        if contents is None:
            return [TextContent(type="text", text=f"Folder not found: '{folder_ref}'")]

        output = f"# {contents['folder']['title'] or contents['folder']['id']}\n\n"
        output += f"## Folders ({len(contents['folders'])})\n"
        for folder in contents["folders"]:
            output += f"- {folder['title']} ({folder['path']})\n"
        output += f"\n## Notes ({len(contents['notes'])})\n"
        for note in contents["notes"]:
            output += f"- {note['title']} ({note['id']})\n"

        return [TextContent(type="text", text=output)]

    elif name == "galaxy_connections":
        note_ref = arguments.get("note", "")
        connections = await get_connections(note_ref)

        if connections is None:
            return [TextContent(type="text", text=f"Note not found: '{note_ref}'")]

        return [TextContent(type="text", text=json.dumps(connections, indent=2))]

    elif name == "galaxy_explore_tag":
        tag = arguments.get("tag", "")
        results = await explore_by_tag(tag)

        if not results:
            return [TextContent(type="text", text=f"No notes found with tag: '{tag}'")]

        output = f"Found {len(results)} notes with tag '#{tag.lstrip('#')}':\n\n"
        for r in results:
            output += f"- **{r['title']}** ({r['path']})\n"

        return [TextContent(type="text", text=output)]

    elif name == "galaxy_stats":
        stats = await get_graph_stats()

        output = "# Knowledge Graph Statistics\n\n"
        output += f"**Total Nodes:** {stats['total_nodes']}\n"
        output += f"**Total Edges:** {stats['total_edges']}\n"
        output += f"**Unresolved Links:** {stats['unresolved_links']}\n"
        output += f"**Unresolved Backlinks:** {stats['unresolved_backlinks']}\n"
        output += f"**Orphan Notes:** {stats['orphan_notes']}\n\n"

        output += "## Nodes By Type\n"
        for t, count in sorted(stats['by_node_type'].items(), key=lambda x: x[1], reverse=True):
            output += f"- {t}: {count}\n"

        output += "\n## Edges By Type\n"
        for t, count in sorted(stats['by_edge_type'].items(), key=lambda x: x[1], reverse=True):
            output += f"- {t}: {count}\n"

        output += "\n## Top Tags\n"
        for tag, count in stats['top_tags'][:15]:
            output += f"- #{tag}: {count}\n"

        output += "\n## Recent Notes\n"
        for note in stats['recent_notes']:
            output += f"- {note['title']}\n"

        return [TextContent(type="text", text=output)]

    elif name == "galaxy_similar":
        note_ref = arguments.get("note", "")
        k = arguments.get("k", 10)
        results = await find_similar_notes(note_ref, k)

        if results is None:
            return [TextContent(type="text", text=f"Note not found: '{note_ref}'")]
        if not results:
            return [TextContent(type="text", text=f"No similar notes found for: '{note_ref}'")]

        output = f"Notes similar to '{note_ref}':\n\n"
        for r in results:
            output += f"- **{r['title']}** ({r['id']}) - score {r['score']}\n"

        return [TextContent(type="text", text=output)]

    elif name == "galaxy_index_embedding":
        note_ref = arguments.get("note", "")
        remove = bool(arguments.get("remove", False))
        vector = arguments.get("vector")
        if not remove and not vector:
            return [TextContent(type="text", text="Error: vector is required unless remove is true")]

        result = await index_note_embedding(note_ref, vector, remove)

        if result is None:
            return [TextContent(type="text", text=f"Note not found: '{note_ref}'")]
        if result.get("error"):
            return [TextContent(type="text", text=f"Error: {result['error']}")]

        if remove:
            verb = "Removed embedding of" if result["changed"] else "No embedding stored for"
        else:
            verb = "Indexed embedding of"
        return [TextContent(type="text", text=f"{verb} **{result['title']}** ({result['id']})")]

    elif name == "galaxy_graph":
        graph = await store_cache.get_graph()

        if arguments.get("export"):
            return [TextContent(type="text", text=json.dumps(graph.to_json(), indent=2))]

        center_note = arguments.get("center_note")
        if center_note:
            note = graph.find_note(center_note)
            if note is None:
                return [TextContent(type="text", text=f"Error: Note not found: {center_note}")]
            result = graph.subgraph(note.id, arguments.get("depth", 2))
        else:
            result = graph.hubs()

        return [TextContent(type="text", text=json.dumps(result, indent=2))]

    return [TextContent(type="text", text=f"Unknown tool: {name}")]


# ============== Resources ==============

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return [
        Resource(
            uri="graph://json",
            name="Knowledge Graph Export",
            description="The full knowledge graph as {nodes, edges}",
            mimeType="application/json"
        ),
        Resource(
            uri="graph://report",
            name="Rebuild Report",
            description="Unresolved links and backlinks, orphan notes and malformed entity attributes from the last rebuild",
            mimeType="application/json"
        ),
    ]


@server.read_resource()
async def read_resource(uri: str) -> str:
    """Read a resource."""
    uri = str(uri).rstrip("/")
    if uri == "graph://json":
        graph = await store_cache.get_graph()
        return json.dumps(graph.to_json(), indent=2)
    if uri == "graph://report":
        return json.dumps(await get_rebuild_report(), indent=2)

    return json.dumps({"error": f"Unknown resource: {uri}"})
