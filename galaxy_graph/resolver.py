"""
Title resolver for the Galaxy Notes knowledge graph.

Maps note titles to note ids case-insensitively so wiki links can be
turned into edges.
"""

from typing import Iterable

from .models import Note


def _normalize(title: str) -> str:
    return title.strip().lower()


class TitleResolver:
    """Case-insensitive title -> note id lookup.

    Derived state: rebuilt from the note collection whenever the graph is
    rebuilt. On duplicate titles the note processed last wins.
    """

    def __init__(self):
        self._ids: dict[str, str] = {}

    def build_index(self, notes: Iterable[Note]) -> None:
        """Clear and repopulate the index from a note collection."""
        self._ids.clear()
        for note in notes:
            self.add(note.title, note.id)

    def add(self, title: str, note_id: str) -> None:
        key = _normalize(title or "")
        if key:
            self._ids[key] = note_id

    def resolve(self, title: str) -> str | None:
        """Return the id of the note with this title, or None if there is none."""
        if not title:
            return None
        return self._ids.get(_normalize(title))

    def clear(self) -> None:
        self._ids.clear()

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, title: object) -> bool:
        return isinstance(title, str) and self.resolve(title) is not None
