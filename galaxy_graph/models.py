"""
Pydantic models for the Galaxy Notes knowledge graph.

Contains the store-layer input records (notes, folders, clusters and their
block content), the references extracted from note text, and the graph
elements and query results handed back to tooling layers.
"""

from typing import Any, Iterable, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = structlog.get_logger(__name__)


class NodeType:
    """Discriminant values for the ``type`` field of graph nodes."""

    NOTE = "note"
    FOLDER = "folder"
    CLUSTER = "cluster"
    TAG = "tag"
    MENTION = "mention"
    CONCEPT = "concept"
    ENTITY = "entity"
    TRIPLE = "triple"


class EdgeType:
    """Discriminant values for the ``type`` field of graph edges."""

    CONTAINS = "contains"
    LINK = "link"
    # declaring note -> note named in <<Title>>
    BACKLINK = "backlink"
    TAG = "tag"
    MENTION = "mention"
    CONCEPT = "concept"
    IN_CLUSTER = "in_cluster"
    MENTIONED_IN = "mentioned_in"
    SUBJECT_OF = "subject_of"
    OBJECT_OF = "object_of"


# ============== Block Content ==============

class Block(BaseModel):
    """A node of a note's content tree.

    Blocks and inline items share this shape: a kind, optional flat text,
    optional inline content (a string or a list of strings and nested
    items) and optional child blocks. Fields of the wrong JSON type are
    reduced to their empty value instead of failing validation.
    """

    model_config = ConfigDict(extra="ignore")

    type: str = "paragraph"
    id: str | None = None
    text: str | None = None
    content: str | list[Union["Block", str]] | None = None
    children: list["Block"] = Field(default_factory=list)
    props: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> str:
        return value if isinstance(value, str) and value else "paragraph"

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str | None:
        if value is None or isinstance(value, (dict, list)):
            return None
        return str(value)

    @field_validator("text", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value
        if isinstance(value, list):
            return [item for item in value if isinstance(item, (str, dict, Block))]
        return None

    @field_validator("children", mode="before")
    @classmethod
    def _coerce_children(cls, value: Any) -> list:
        if isinstance(value, list):
            return [item for item in value if isinstance(item, (dict, Block))]
        return []

    @field_validator("props", mode="before")
    @classmethod
    def _coerce_props(cls, value: Any) -> dict:
        return value if isinstance(value, dict) else {}


def parse_blocks(raw: Any) -> list[Block]:
    """Coerce a raw content value into a list of blocks.

    Accepts a list of block dicts, a single block dict, a plain string
    (one paragraph) or anything else (no blocks). Never raises.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        return [Block(content=raw)] if raw else []
    if isinstance(raw, (dict, Block)):
        raw = [raw]
    if not isinstance(raw, list):
        logger.debug("content_ignored", value_type=type(raw).__name__)
        return []

    blocks: list[Block] = []
    for item in raw:
        if isinstance(item, Block):
            blocks.append(item)
        elif isinstance(item, str):
            if item:
                blocks.append(Block(content=item))
        elif isinstance(item, dict):
            try:
                blocks.append(Block.model_validate(item))
            except ValidationError as e:
                logger.warning("block_skipped", error=str(e))
    return blocks


# ============== Store Records ==============

class StoreRecord(BaseModel):
    """Base for records supplied by the store layer (camelCase or snake_case keys)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    created_at: str = ""
    updated_at: str = ""

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> str:
        return "" if value is None else str(value)


class Cluster(StoreRecord):
    """A workspace grouping folders and notes."""

    id: str
    title: str = ""


class Folder(StoreRecord):
    """A folder in the note hierarchy."""

    id: str
    name: str = ""
    path: str = "/"
    parent_id: str | None = None
    cluster_id: str | None = None

    @field_validator("path", mode="before")
    @classmethod
    def _default_path(cls, value: Any) -> str:
        return value if isinstance(value, str) and value else "/"


class Concept(BaseModel):
    """A typed concept declared on a note record."""

    type: str = "concept"
    name: str


class Note(StoreRecord):
    """A note with its raw block content."""

    id: str
    title: str = ""
    path: str = "/"
    cluster_id: str | None = None
    content: list[Block] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    concepts: list[Concept] = Field(default_factory=list)

    @field_validator("path", mode="before")
    @classmethod
    def _default_path(cls, value: Any) -> str:
        return value if isinstance(value, str) and value else "/"

    @field_validator("title", mode="before")
    @classmethod
    def _coerce_title(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("content", mode="before")
    @classmethod
    def _parse_content(cls, value: Any) -> list[Block]:
        return parse_blocks(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [str(t).lstrip("#") for t in value if t is not None and str(t).lstrip("#")]

    @field_validator("concepts", mode="before")
    @classmethod
    def _coerce_concepts(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [c for c in value if isinstance(c, (dict, Concept))]


class StoreSnapshot(BaseModel):
    """The full note/folder/cluster collection handed to a rebuild."""

    notes: list[Note] = Field(default_factory=list)
    folders: list[Folder] = Field(default_factory=list)
    clusters: list[Cluster] = Field(default_factory=list)


def validate_records(model: type[BaseModel], records: Iterable[Any] | None, kind: str) -> list:
    """Validate raw records into model instances, skipping (and logging) invalid ones."""
    result = []
    for record in records or []:
        if isinstance(record, model):
            result.append(record)
            continue
        try:
            result.append(model.model_validate(record))
        except ValidationError as e:
            logger.warning("record_skipped", kind=kind, error=str(e))
    return result


# ============== Extracted References ==============

class Entity(BaseModel):
    """A typed, labeled domain object found in note text."""

    kind: str
    label: str
    attributes: dict[str, Any] | None = None


class Triple(BaseModel):
    """A subject-predicate-object statement between two entities."""

    subject: Entity
    predicate: str
    object: Entity


class LinkReference(BaseModel):
    """A wiki link target together with its relationship label."""

    title: str
    relationship: str


class ExtractedReferences(BaseModel):
    """Everything a single scan found in a piece of text."""

    links: list[LinkReference] = Field(default_factory=list)
    backlinks: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    mentions: list[str] = Field(default_factory=list)
    entities: list[Entity] = Field(default_factory=list)
    triples: list[Triple] = Field(default_factory=list)
    malformed_attributes: list[str] = Field(default_factory=list)


# ============== Graph Elements ==============

class GraphNode(BaseModel):
    """Model for a node in the knowledge graph.

    Kind-specific attributes (path, tags, kind, label, predicate...) are
    carried as extra fields.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    title: str = ""


class GraphEdge(BaseModel):
    """Model for an edge in the knowledge graph."""

    model_config = ConfigDict(extra="allow")

    source: str
    target: str
    type: str
    relationship: str | None = None
    predicate: str | None = None


class NodeLink(BaseModel):
    """A linked note paired with the relationship of the link edge."""

    node: GraphNode
    relationship: str


class FolderContents(BaseModel):
    """Direct children of a folder, split by node kind."""

    folders: list[GraphNode] = Field(default_factory=list)
    notes: list[GraphNode] = Field(default_factory=list)


class UnresolvedReference(BaseModel):
    """A wiki link or backlink whose title matched no note during a rebuild."""

    source_id: str
    title: str


class RebuildReport(BaseModel):
    """Diagnostics collected by a rebuild."""

    node_count: int = 0
    edge_count: int = 0
    note_count: int = 0
    folder_count: int = 0
    unresolved_links: list[UnresolvedReference] = Field(default_factory=list)
    unresolved_backlinks: list[UnresolvedReference] = Field(default_factory=list)
    self_links_dropped: int = 0
    orphan_notes: list[str] = Field(default_factory=list)
    malformed_attributes: list[str] = Field(default_factory=list)
    duration_ms: float = 0.0


# ============== Tooling Results ==============

class SearchResult(BaseModel):
    """Model for a keyword search result."""

    id: str
    title: str
    path: str
    score: float
    snippet: str
    tags: list[str]
    matched_terms: list[str]


class SimilarResult(BaseModel):
    """Model for a similarity index hit."""

    note_id: str
    score: float
