"""
Utility functions and compiled regex patterns for the Galaxy Notes knowledge graph.

Contains inline syntax patterns, exceptions, and deterministic identity helpers.
"""

import re
import uuid

# Pre-compiled regex patterns for performance
# [[Title]], [[Title|Qualifier]], [[Title|Alias|Qualifier]]
WIKILINK_PATTERN = re.compile(r'\[\[\s*([^\[\]|]+?)\s*((?:\|[^\[\]|]*)*)\]\]')
TAG_PATTERN = re.compile(r'(?<![\w&/])#([A-Za-z0-9_][A-Za-z0-9_-]*)')
MENTION_PATTERN = re.compile(r'(?<![\w.])@([A-Za-z0-9_][A-Za-z0-9_-]*)')
# <<Title>> declares that Title should list this note among its backlinks
BACKLINK_PATTERN = re.compile(r'<<\s*([^<>|\s][^<>|]*?)\s*(?:\|[^<>]*)?>>')

# [KIND|Label] or [KIND|Label|{'attr': 'value'}]
_ENTITY_BODY = r"(\w+)\|([^\[\]|()]+?)(?:\|(\{[^{}]*\}))?"
ENTITY_PATTERN = re.compile(r'\[' + _ENTITY_BODY + r'\]')
# [KIND|Label](predicate)[KIND|Label]
TRIPLE_PATTERN = re.compile(
    r'\[' + _ENTITY_BODY + r'\]\s*\(\s*([^()\[\]]+?)\s*\)\s*\[' + _ENTITY_BODY + r'\]'
)

SLUG_STRIP_PATTERN = re.compile(r'[^\w\s-]')
SLUG_SEPARATOR_PATTERN = re.compile(r'[\s_-]+')
SEARCH_SPLIT_PATTERN = re.compile(r'[\s\-_]+')

# Namespace for entity and triple identities; changing it changes every id.
GALAXY_NAMESPACE = uuid.UUID("6f1c8f0e-2b8a-5d2e-9c53-3f0b7a1d4e21")


# ============== Exceptions ==============

class GraphError(Exception):
    """Base class for knowledge graph errors."""
    pass


class StoreLoadError(GraphError):
    """Raised when a store export cannot be read or parsed."""
    pass


class DimensionMismatchError(GraphError, ValueError):
    """Raised when a vector does not match the index dimension."""
    pass


# ============== Helper Functions ==============

def slugify(text: str) -> str:
    """Lower-case slug used for tag, mention and concept node ids."""
    slug = SLUG_STRIP_PATTERN.sub('', text.strip().lower())
    return SLUG_SEPARATOR_PATTERN.sub('-', slug).strip('-')


def entity_id(kind: str, label: str) -> str:
    """Deterministic identity for an entity.

    The id is a pure function of the exact kind and label: renaming or
    re-casing a label yields a different entity.
    """
    digest = uuid.uuid5(GALAXY_NAMESPACE, f"entity|{kind}|{label}").hex[:16]
    return f"entity-{kind.lower()}-{digest}"


def triple_id(subject_id: str, predicate: str, object_id: str) -> str:
    """Deterministic identity for a subject-predicate-object statement."""
    digest = uuid.uuid5(GALAXY_NAMESPACE, f"triple|{subject_id}|{predicate}|{object_id}").hex[:16]
    return f"triple-{digest}"


def tag_node_id(tag: str) -> str:
    return f"tag-{slugify(tag)}"


def mention_node_id(mention: str) -> str:
    return f"mention-{slugify(mention)}"


def concept_node_id(name: str) -> str:
    return f"concept-{slugify(name)}"
