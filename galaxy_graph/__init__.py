# Galaxy Notes Knowledge Graph
#
# Modular package structure:
# - config.py: Settings (GALAXY_ environment variables)
# - logging.py: structlog configuration
# - utils.py: Regex patterns, exceptions, and identity helpers
# - models.py: Pydantic models for store records, references, and graph results
# - scanner.py: Block text extraction and inline reference scanning
# - resolver.py: Case-insensitive title -> note id index
# - store.py: GraphStore, the in-memory directed attributed graph
# - graph.py: KnowledgeGraph rebuild and query facade
# - similarity.py: Cosine similarity index over note embeddings
# - cache.py: StoreCache, the store export loader that triggers rebuilds
# - search.py: Search and query functions used by the tools
# - tools.py: MCP tool handlers and server instance
# - main.py: Entry point and server initialization
