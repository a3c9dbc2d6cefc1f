"""
Content scanner for the Galaxy Notes knowledge graph.

Flattens a note's block tree into plain text and extracts the inline
syntax the graph is built from: wiki links, backlinks, tags, mentions,
typed entities and subject-predicate-object triples.
"""

import json
import re
from typing import Any, Iterable

import structlog

from .config import settings
from .models import Block, Entity, ExtractedReferences, LinkReference, Triple, parse_blocks
from .utils import (
    BACKLINK_PATTERN,
    ENTITY_PATTERN,
    MENTION_PATTERN,
    TAG_PATTERN,
    TRIPLE_PATTERN,
    WIKILINK_PATTERN,
)

logger = structlog.get_logger(__name__)

# Inline items the editor stores with their values in ``props``
INLINE_REFERENCE_TYPES = ("wikilink", "backlink", "tag", "mention", "entity", "triple")
_TRIPLE_PROPS = ("subjectKind", "subjectLabel", "predicate", "objectKind", "objectLabel")


def _is_inline_reference(item: Block) -> bool:
    props = item.props
    if not props or item.type not in INLINE_REFERENCE_TYPES:
        return False
    if item.type == "entity":
        return bool(props.get("kind") and props.get("label"))
    if item.type == "triple":
        return all(props.get(k) for k in _TRIPLE_PROPS)
    return bool(props.get("text"))


def _inline_label(item: Block) -> str:
    """Readable text of an inline reference item, as the editor displays it."""
    props = item.props
    if item.type == "entity":
        return str(props["label"])
    if item.type == "triple":
        return f"{props['subjectLabel']} {props['predicate']} {props['objectLabel']}"

    text = str(props["text"])
    if item.type == "tag":
        return f"#{text.lstrip('#')}"
    if item.type == "mention":
        return f"@{text.lstrip('@')}"
    return text.split("|")[0].strip()


def _walk(blocks: Any) -> list[str | Block]:
    """Text runs and inline reference items of a block tree, in document order.

    ``text``, string ``content`` and list ``content`` are treated alike and
    children follow their parent's own content. Accepts raw (unvalidated)
    content; malformed parts contribute nothing.
    """
    if isinstance(blocks, Block):
        blocks = [blocks]
    elif not (isinstance(blocks, list) and all(isinstance(b, Block) for b in blocks)):
        blocks = parse_blocks(blocks)

    segments: list[str | Block] = []
    # Explicit stack so deeply nested trees cannot exhaust the recursion limit
    stack: list[Block | str] = list(reversed(blocks))
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            if item:
                segments.append(item)
            continue

        if _is_inline_reference(item):
            segments.append(item)
            continue

        if item.text:
            segments.append(item.text)

        pending: list[Block | str] = []
        if isinstance(item.content, str):
            pending.append(item.content)
        elif isinstance(item.content, list):
            pending.extend(item.content)
        pending.extend(item.children)
        stack.extend(reversed(pending))

    return segments


def extract_text(blocks: Any) -> str:
    """Concatenate all text in a block tree, in document order, separated by spaces.

    Inline reference items contribute their displayed label.
    """
    return " ".join(s if isinstance(s, str) else _inline_label(s) for s in _walk(blocks))


def _blank(match: re.Match) -> str:
    # Same-length padding keeps neighbouring tokens apart
    return " " * len(match.group(0))


def _parse_attributes(raw: str | None, refs: ExtractedReferences) -> dict[str, Any] | None:
    """Parse an entity attribute blob, accepting single-quoted JSON."""
    if not raw:
        return None

    for candidate in (raw, raw.replace("'", '"')):
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
        break

    logger.warning("entity_attributes_malformed", attributes=raw)
    refs.malformed_attributes.append(raw)
    return None


class _ReferenceCollector:
    """Accumulates references from text and inline items, deduplicating in order of first sight."""

    def __init__(self, relationship_types: Iterable[str] | None, default_relationship: str | None):
        if relationship_types is None:
            relationship_types = settings.relationship_types
        self.default_relationship = default_relationship or settings.default_relationship
        self.known = {name.lower(): name for name in relationship_types}
        self.refs = ExtractedReferences()
        self._links: set[str] = set()
        self._backlinks: set[str] = set()
        self._tags: set[str] = set()
        self._mentions: set[str] = set()
        self._entities: dict[tuple[str, str], Entity] = {}
        self._triples: set[tuple[str, str, str, str, str]] = set()

    def add_link(self, title: str, qualifiers: Iterable[str] = ()) -> None:
        title = title.strip()
        if not title or title.lower() in self._links:
            return
        self._links.add(title.lower())

        relationship = self.default_relationship
        for qualifier in qualifiers:
            canonical = self.known.get(qualifier.strip().lower())
            if canonical:
                relationship = canonical
                break
        self.refs.links.append(LinkReference(title=title, relationship=relationship))

    def add_backlink(self, title: str) -> None:
        title = title.strip()
        if title and title.lower() not in self._backlinks:
            self._backlinks.add(title.lower())
            self.refs.backlinks.append(title)

    def add_tag(self, tag: str) -> None:
        tag = tag.strip().lstrip("#").strip()
        if tag and tag not in self._tags:
            self._tags.add(tag)
            self.refs.tags.append(tag)

    def add_mention(self, mention: str) -> None:
        mention = mention.strip().lstrip("@").strip()
        if mention and mention not in self._mentions:
            self._mentions.add(mention)
            self.refs.mentions.append(mention)

    def entity(self, kind: str, label: str, attributes: Any = None) -> Entity:
        if isinstance(attributes, dict):
            parsed = attributes or None
        elif isinstance(attributes, str):
            parsed = _parse_attributes(attributes, self.refs)
        else:
            parsed = None
        return Entity(kind=kind.strip(), label=label.strip(), attributes=parsed)

    def add_entity(self, entity: Entity) -> None:
        key = (entity.kind, entity.label)
        existing = self._entities.get(key)
        if existing is None:
            self._entities[key] = entity
            self.refs.entities.append(entity)
        elif entity.attributes:
            existing.attributes = {**(existing.attributes or {}), **entity.attributes}

    def add_triple(self, subject: Entity, predicate: str, obj: Entity) -> None:
        predicate = predicate.strip()
        key = (subject.kind, subject.label, predicate, obj.kind, obj.label)
        if predicate and key not in self._triples:
            self._triples.add(key)
            self.refs.triples.append(Triple(subject=subject, predicate=predicate, object=obj))

    def scan_text(self, text: str) -> None:
        for match in WIKILINK_PATTERN.finditer(text):
            self.add_link(match.group(1), match.group(2).split("|")[1:])
        remaining = WIKILINK_PATTERN.sub(_blank, text)

        for match in BACKLINK_PATTERN.finditer(remaining):
            self.add_backlink(match.group(1))
        remaining = BACKLINK_PATTERN.sub(_blank, remaining)

        # Triples are consumed before entities so their participants are not counted twice
        def _take_triple(match: re.Match) -> str:
            self.add_triple(
                self.entity(match.group(1), match.group(2), match.group(3)),
                match.group(4),
                self.entity(match.group(5), match.group(6), match.group(7)),
            )
            return _blank(match)

        remaining = TRIPLE_PATTERN.sub(_take_triple, remaining)

        def _take_entity(match: re.Match) -> str:
            self.add_entity(self.entity(match.group(1), match.group(2), match.group(3)))
            return _blank(match)

        remaining = ENTITY_PATTERN.sub(_take_entity, remaining)

        for match in TAG_PATTERN.finditer(remaining):
            self.add_tag(match.group(1))
        for match in MENTION_PATTERN.finditer(remaining):
            self.add_mention(match.group(1))

    def add_inline(self, item: Block) -> None:
        """Take the values of an editor inline item as they are, without re-parsing them."""
        props = item.props
        if item.type == "wikilink":
            title, *qualifiers = str(props["text"]).split("|")
            self.add_link(title, qualifiers)
        elif item.type == "backlink":
            self.add_backlink(str(props["text"]).split("|")[0])
        elif item.type == "tag":
            self.add_tag(str(props["text"]))
        elif item.type == "mention":
            self.add_mention(str(props["text"]))
        elif item.type == "entity":
            self.add_entity(self.entity(str(props["kind"]), str(props["label"]), props.get("attributes")))
        elif item.type == "triple":
            self.add_triple(
                self.entity(str(props["subjectKind"]), str(props["subjectLabel"])),
                str(props["predicate"]),
                self.entity(str(props["objectKind"]), str(props["objectLabel"])),
            )


def extract_references(
    text: str,
    relationship_types: Iterable[str] | None = None,
    default_relationship: str | None = None,
) -> ExtractedReferences:
    """Extract links, backlinks, tags, mentions, entities and triples from text.

    Args:
        text: Plain text
        relationship_types: Known relationship names (defaults to settings)
        default_relationship: Relationship for unqualified links (defaults to settings)

    Returns:
        ExtractedReferences with every category deduplicated in order of first sight
    """
    collector = _ReferenceCollector(relationship_types, default_relationship)
    if text:
        collector.scan_text(text)
    return collector.refs


def scan_blocks(
    blocks: Any,
    relationship_types: Iterable[str] | None = None,
    default_relationship: str | None = None,
) -> ExtractedReferences:
    """Extract references from a block tree.

    Raw syntax in the text runs is scanned first. Editor inline items are
    then merged in from their ``props``, under the same deduplication.
    """
    collector = _ReferenceCollector(relationship_types, default_relationship)
    segments = _walk(blocks)
    collector.scan_text(" ".join(s for s in segments if isinstance(s, str)))
    for item in segments:
        if isinstance(item, Block):
            collector.add_inline(item)
    return collector.refs
