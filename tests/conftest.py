"""
Pytest configuration and fixtures for galaxy-notes-graph tests.
"""

import copy
import json
from pathlib import Path

import pytest


SAMPLE_CLUSTERS = [
    {"id": "c1", "title": "Research"},
]

SAMPLE_FOLDERS = [
    {"id": "root", "name": "Root", "path": "/"},
    {"id": "f-projects", "name": "Projects", "path": "/Projects", "parentId": "root", "clusterId": "c1"},
]

SAMPLE_NOTES = [
    # Note 1: links with a qualifier, a tag, a mention, an entity and a triple
    {
        "id": "n1",
        "title": "Python",
        "path": "/Projects",
        "clusterId": "c1",
        "tags": ["#language"],
        "createdAt": "2024-01-15T10:00:00Z",
        "updatedAt": "2024-01-20T10:00:00Z",
        "content": [
            {
                "type": "paragraph",
                "content": "Python is a programming language. See [[JavaScript|Supports]] and #coding with @alice.",
            },
            {
                "type": "paragraph",
                "content": [
                    {"type": "text", "text": "Created by "},
                    "[PERSON|Guido van Rossum|{'born': 1956}]",
                ],
                "children": [
                    {"type": "paragraph", "text": "[PERSON|Guido van Rossum](created)[LANGUAGE|Python]"},
                ],
            },
        ],
    },
    # Note 2: one resolvable link, one unresolvable
    {
        "id": "n2",
        "title": "JavaScript",
        "path": "/Projects",
        "createdAt": "2024-01-16T10:00:00Z",
        "updatedAt": "2024-01-16T10:00:00Z",
        "content": [
            {"type": "paragraph", "content": "JavaScript is a web programming language. It links to [[Python]] and [[Docker]]."},
        ],
    },
    # Note 3: lower-case link, self link, note at the root path
    {
        "id": "n3",
        "title": "Daily Log",
        "path": "/",
        "createdAt": "2024-01-25T10:00:00Z",
        "updatedAt": "2024-01-25T10:00:00Z",
        "content": "Talked about [[python]] today in [[Daily Log]]. #coding",
    },
    # Note 4: path with no folder, declared concept
    {
        "id": "n4",
        "title": "Loose",
        "path": "/Archive",
        "createdAt": "2024-01-05T10:00:00Z",
        "updatedAt": "2024-01-05T10:00:00Z",
        "concepts": [{"type": "person", "name": "Ada Lovelace"}],
        "content": [{"type": "paragraph", "content": "A note nobody filed."}],
    },
]


@pytest.fixture
def sample_notes():
    return copy.deepcopy(SAMPLE_NOTES)


@pytest.fixture
def sample_folders():
    return copy.deepcopy(SAMPLE_FOLDERS)


@pytest.fixture
def sample_clusters():
    return copy.deepcopy(SAMPLE_CLUSTERS)


@pytest.fixture
def sample_graph(sample_notes, sample_folders, sample_clusters):
    """A KnowledgeGraph rebuilt from the sample collection."""
    from galaxy_graph.graph import KnowledgeGraph

    graph = KnowledgeGraph()
    graph.rebuild(sample_notes, sample_folders, sample_clusters)
    return graph


@pytest.fixture
def store_file(tmp_path: Path, sample_notes, sample_folders, sample_clusters):
    """Write the sample collection as a store export."""
    path = tmp_path / "store.json"
    path.write_text(json.dumps({
        "notes": sample_notes,
        "folders": sample_folders,
        "clusters": sample_clusters,
    }), encoding="utf-8")
    return path


@pytest.fixture
def store_cache(store_file, similarity_index):
    """Create a StoreCache instance over the sample store export, with its own similarity index."""
    from galaxy_graph.cache import StoreCache
    from galaxy_graph.graph import KnowledgeGraph

    return StoreCache(store_file, ttl=60, graph=KnowledgeGraph(), index=similarity_index)


@pytest.fixture
def similarity_index(tmp_path: Path):
    """An uninitialized 4-dimensional similarity index in a temp dir."""
    from galaxy_graph.similarity import SimilarityIndex

    return SimilarityIndex(tmp_path / "vectors.npz", dimension=4)


@pytest.fixture
def patched_store_cache(store_cache, similarity_index, monkeypatch):
    """Patch the global store_cache and similarity_index used by search and tools."""
    from galaxy_graph import search, tools

    monkeypatch.setattr(search, "store_cache", store_cache)
    monkeypatch.setattr(tools, "store_cache", store_cache)
    monkeypatch.setattr(search, "similarity_index", similarity_index)
    return store_cache
