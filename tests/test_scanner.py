"""
Tests for block text extraction and inline reference scanning.
"""

import pytest


# ============== Tests for extract_text() ==============

class TestExtractText:
    """Tests for the extract_text function."""

    def test_document_order_with_children(self):
        """Test parents come before their children and siblings stay in order."""
        from galaxy_graph.scanner import extract_text

        blocks = [
            {"type": "heading", "text": "Title", "children": [{"text": "child one"}, {"text": "child two"}]},
            {"type": "paragraph", "content": "after"},
        ]

        assert extract_text(blocks) == "Title child one child two after"

    def test_inline_content_list(self):
        """Test list content mixes strings and inline items."""
        from galaxy_graph.scanner import extract_text

        blocks = [{"content": ["Hello ", {"type": "text", "text": "world"}, {"content": "again"}]}]

        assert extract_text(blocks) == "Hello  world again"

    def test_plain_string(self):
        """Test a bare string is read as a single paragraph."""
        from galaxy_graph.scanner import extract_text

        assert extract_text("just text") == "just text"

    def test_malformed_content_contributes_nothing(self):
        """Test wrong-typed fields are ignored instead of raising."""
        from galaxy_graph.scanner import extract_text

        blocks = [
            {"type": "paragraph", "text": 42, "content": {"odd": True}, "children": "nope"},
            {"type": "paragraph", "content": [None, 7, "kept"]},
            "loose",
            12,
        ]

        assert extract_text(blocks) == "kept loose"

    @pytest.mark.parametrize("value", [None, 5, {}, []])
    def test_empty_inputs(self, value):
        """Test empty or non-block input yields an empty string."""
        from galaxy_graph.scanner import extract_text

        assert extract_text(value) == ""

    def test_deep_nesting(self):
        """Test very deep trees do not hit the recursion limit."""
        from galaxy_graph.models import Block
        from galaxy_graph.scanner import extract_text

        block = Block(text="leaf")
        for _ in range(3000):
            block = Block(children=[block])

        assert extract_text([block]) == "leaf"

    def test_inline_specs_contribute_their_labels(self):
        """Test editor inline items are read as the text the editor displays."""
        from galaxy_graph.scanner import extract_text

        blocks = [{"content": [
            {"type": "wikilink", "props": {"text": "Python|Supports"}},
            {"type": "tag", "props": {"text": "#coding"}},
            {"type": "mention", "props": {"text": "alice"}},
            {"type": "entity", "props": {"kind": "PERSON", "label": "Ada"}},
            {"type": "triple", "props": {
                "subjectKind": "PERSON", "subjectLabel": "Ada",
                "predicate": "wrote", "objectKind": "WORK", "objectLabel": "Notes",
            }},
            {"type": "backlink", "props": {"text": "Index"}},
        ]}]

        assert extract_text(blocks) == "Python #coding @alice Ada Ada wrote Notes Index"

    def test_inline_item_without_props_falls_back_to_text(self):
        """Test an inline item missing its props is read like any other block."""
        from galaxy_graph.scanner import extract_text

        blocks = [{"content": [{"type": "tag", "text": "#raw"}, {"type": "entity", "props": {"kind": "PERSON"}}]}]

        assert extract_text(blocks) == "#raw"


# ============== Tests for extract_references() ==============

class TestExtractLinks:
    """Tests for wiki link extraction."""

    def test_plain_link_uses_default_relationship(self):
        """Test unqualified links get the default relationship."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("See [[Python]] here.")

        assert [(l.title, l.relationship) for l in refs.links] == [("Python", "Mentions")]

    def test_qualifier_is_canonicalized(self):
        """Test a known qualifier matches case-insensitively and keeps its canonical form."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("[[Python|supports]] and [[Go|related to]]")

        assert [l.relationship for l in refs.links] == ["Supports", "Related To"]

    def test_unknown_qualifier_is_an_alias(self):
        """Test an unknown qualifier leaves the default relationship."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("[[Python|the Python language]]")

        assert refs.links[0].title == "Python"
        assert refs.links[0].relationship == "Mentions"

    def test_alias_then_relationship(self):
        """Test the first known qualifier after the title wins."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("[[Python|my alias|Extends]]")

        assert refs.links[0].relationship == "Extends"

    def test_first_occurrence_decides(self):
        """Test duplicate targets keep the first relationship, case-insensitively."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("[[Python|Supports]] then [[python|Contradicts]]")

        assert len(refs.links) == 1
        assert refs.links[0].relationship == "Supports"

    def test_custom_vocabulary(self):
        """Test relationship types and default can be supplied explicitly."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("[[A|Blocks]] [[B]]", relationship_types=["Blocks"], default_relationship="Refs")

        assert [l.relationship for l in refs.links] == ["Blocks", "Refs"]

    def test_empty_link_ignored(self):
        """Test [[ ]] produces no link."""
        from galaxy_graph.scanner import extract_references

        assert extract_references("[[ ]] and [[]]").links == []


class TestExtractTagsAndMentions:
    """Tests for tag and mention extraction."""

    def test_tags_and_mentions(self):
        """Test tags and mentions are found and deduplicated in order."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("#alpha @bob #beta #alpha @bob @carol")

        assert refs.tags == ["alpha", "beta"]
        assert refs.mentions == ["bob", "carol"]

    def test_email_is_not_a_mention(self):
        """Test an @ inside a word is not a mention."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("mail bob@example.com")

        assert refs.mentions == []

    def test_url_fragment_is_not_a_tag(self):
        """Test # after a slash or inside a word is not a tag."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("see http://example.com/#anchor and issue#12")

        assert refs.tags == []

    def test_tag_inside_link_is_ignored(self):
        """Test link titles are not scanned for tags."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("[[C# #notes]] #real")

        assert refs.tags == ["real"]


class TestExtractEntities:
    """Tests for entity and triple extraction."""

    def test_entity_with_attributes(self):
        """Test single-quoted attribute blobs are accepted."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("[PERSON|Ada Lovelace|{'born': 1815}]")

        assert len(refs.entities) == 1
        assert refs.entities[0].kind == "PERSON"
        assert refs.entities[0].label == "Ada Lovelace"
        assert refs.entities[0].attributes == {"born": 1815}

    def test_malformed_attributes_recorded(self):
        """Test a bad attribute blob keeps the entity and records the blob."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("[PERSON|Ada|{born: ???}]")

        assert refs.entities[0].label == "Ada"
        assert refs.entities[0].attributes is None
        assert refs.malformed_attributes == ["{born: ???}"]

    def test_entities_deduplicated_with_merged_attributes(self):
        """Test repeated entities merge their attributes."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references('[ORG|Acme|{"size": 3}] and [ORG|Acme|{"city": "Oslo"}] [ORG|Acme]')

        assert len(refs.entities) == 1
        assert refs.entities[0].attributes == {"size": 3, "city": "Oslo"}

    def test_entity_identity_is_case_sensitive(self):
        """Test labels differing only in case are different entities."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("[ORG|Acme] [ORG|ACME]")

        assert [e.label for e in refs.entities] == ["Acme", "ACME"]

    def test_triple(self):
        """Test a triple yields subject, predicate and object."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("[PERSON|Ada] (wrote) [WORK|Notes]")

        assert len(refs.triples) == 1
        triple = refs.triples[0]
        assert (triple.subject.label, triple.predicate, triple.object.label) == ("Ada", "wrote", "Notes")

    def test_triple_participants_are_not_standalone_entities(self):
        """Test the entities of a triple are not reported again as entities."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("[PERSON|Ada](wrote)[WORK|Notes] and [PERSON|Babbage]")

        assert [e.label for e in refs.entities] == ["Babbage"]

    def test_wikilink_with_alias_is_not_an_entity(self):
        """Test [[A|B]] is read as a link, not an entity."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("[[PERSON|Ada]]")

        assert refs.entities == []
        assert refs.links[0].title == "PERSON"

    def test_any_word_kind_is_an_entity(self):
        """Test entity kinds are not limited to upper case."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("[person|Ada] and [Place_2|Oslo]")

        assert [(e.kind, e.label) for e in refs.entities] == [("person", "Ada"), ("Place_2", "Oslo")]

    def test_attribute_blob_with_list(self):
        """Test attribute values may contain lists."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("[PERSON|Ada|{'allies': ['Bob', 'Cy']}]")

        assert refs.entities[0].attributes == {"allies": ["Bob", "Cy"]}


class TestExtractBacklinks:
    """Tests for <<Title>> backlink extraction."""

    def test_backlinks_deduplicated(self):
        """Test backlinks are found, trimmed and deduplicated case-insensitively."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("<<Index>> and << Reading List >> then <<index>>")

        assert refs.backlinks == ["Index", "Reading List"]
        assert refs.links == []

    def test_backlink_alias_is_dropped(self):
        """Test text after a pipe is not part of the title."""
        from galaxy_graph.scanner import extract_references

        assert extract_references("<<Index|the index>>").backlinks == ["Index"]

    def test_backlink_text_is_not_scanned(self):
        """Test tags and entities inside a backlink are ignored."""
        from galaxy_graph.scanner import extract_references

        refs = extract_references("<<#draft [ORG|Acme]>> #kept")

        assert refs.tags == ["kept"]
        assert refs.entities == []

    def test_empty_backlink_ignored(self):
        """Test << >> and a lone comparison produce no backlink."""
        from galaxy_graph.scanner import extract_references

        assert extract_references("<< >> and a << b").backlinks == []


class TestScanBlocks:
    """Tests for the scan_blocks function."""

    def test_scans_whole_tree(self):
        """Test references are collected across blocks and children."""
        from galaxy_graph.scanner import scan_blocks

        refs = scan_blocks([
            {"content": "[[One]]", "children": [{"text": "#nested"}]},
            {"content": [{"type": "wikilink", "props": {"text": "Two"}}]},
        ])

        assert [l.title for l in refs.links] == ["One", "Two"]
        assert refs.tags == ["nested"]

    def test_empty_content(self):
        """Test empty content yields empty references."""
        from galaxy_graph.scanner import scan_blocks

        refs = scan_blocks([])

        assert refs.links == [] and refs.tags == [] and refs.entities == []

    def test_inline_tag_keeps_spaces(self):
        """Test an inline tag is taken whole rather than cut at the first space."""
        from galaxy_graph.scanner import scan_blocks

        refs = scan_blocks([{"content": [{"type": "tag", "props": {"text": "machine learning"}}]}])

        assert refs.tags == ["machine learning"]

    def test_inline_entity_with_parentheses_and_list_attributes(self):
        """Test inline entity labels and attributes are not limited by the raw syntax."""
        from galaxy_graph.scanner import scan_blocks

        refs = scan_blocks([{"content": [
            {"type": "entity", "props": {"kind": "PLACE", "label": "Paris (France)"}},
            {"type": "entity", "props": {"kind": "PERSON", "label": "Ada", "attributes": {"allies": ["Bob"]}}},
        ]}])

        assert [(e.kind, e.label) for e in refs.entities] == [("PLACE", "Paris (France)"), ("PERSON", "Ada")]
        assert refs.entities[1].attributes == {"allies": ["Bob"]}

    def test_inline_entity_attributes_as_json_string(self):
        """Test attributes stored as a JSON string are parsed like a raw blob."""
        from galaxy_graph.scanner import scan_blocks

        refs = scan_blocks([{"content": [
            {"type": "entity", "props": {"kind": "person", "label": "Ada", "attributes": '{"born": 1815}'}},
            {"type": "entity", "props": {"kind": "ORG", "label": "Acme", "attributes": "{oops"}},
        ]}])

        assert refs.entities[0].kind == "person"
        assert refs.entities[0].attributes == {"born": 1815}
        assert refs.entities[1].attributes is None
        assert refs.malformed_attributes == ["{oops"]

    def test_inline_entity_merges_with_raw_entity(self):
        """Test an inline entity and the same raw entity are one entity with merged attributes."""
        from galaxy_graph.scanner import scan_blocks

        refs = scan_blocks([{"content": [
            "[ORG|Acme|{'size': 3}] ",
            {"type": "entity", "props": {"kind": "ORG", "label": "Acme", "attributes": {"city": "Oslo"}}},
        ]}])

        assert len(refs.entities) == 1
        assert refs.entities[0].attributes == {"size": 3, "city": "Oslo"}

    def test_inline_wikilink_with_qualifier(self):
        """Test an inline wiki link reads its relationship and defers to an earlier raw link."""
        from galaxy_graph.scanner import scan_blocks

        refs = scan_blocks([{"content": [
            "[[Go|Extends]] ",
            {"type": "wikilink", "props": {"text": "Python|Supports"}},
            {"type": "wikilink", "props": {"text": "go|Contradicts"}},
        ]}])

        assert [(l.title, l.relationship) for l in refs.links] == [("Go", "Extends"), ("Python", "Supports")]

    def test_inline_triple_mention_and_backlink(self):
        """Test inline triples, mentions and backlinks are taken from their props."""
        from galaxy_graph.scanner import scan_blocks

        refs = scan_blocks([{"content": [
            {"type": "triple", "props": {
                "subjectKind": "PERSON", "subjectLabel": "Ada (Countess)",
                "predicate": "wrote", "objectKind": "WORK", "objectLabel": "Notes",
            }},
            {"type": "mention", "props": {"text": "@Mary Jane"}},
            {"type": "backlink", "props": {"text": "Reading List"}},
        ]}])

        assert refs.triples[0].subject.label == "Ada (Countess)"
        assert refs.triples[0].predicate == "wrote"
        assert refs.entities == []
        assert refs.mentions == ["Mary Jane"]
        assert refs.backlinks == ["Reading List"]
