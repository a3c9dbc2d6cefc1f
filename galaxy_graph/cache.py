"""
Store cache module for the Galaxy Notes knowledge graph.

Contains the StoreCache class, which keeps the note/folder/cluster
collection from a store export in memory and rebuilds the knowledge graph
whenever that collection changes.
"""

import json
import time
from pathlib import Path
from typing import Any, Iterable

import aiofiles
import structlog

from .config import settings
from .graph import KnowledgeGraph
from .models import Cluster, Folder, Note, StoreSnapshot, validate_records
from .similarity import SimilarityIndex, similarity_index
from .utils import StoreLoadError

logger = structlog.get_logger(__name__)


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def parse_store_export(data: Any) -> StoreSnapshot:
    """Parse a store export document into a snapshot.

    Accepts ``{"notes": [...], "folders": [...], "clusters": [...]}``.
    Entries of ``notes`` whose ``type`` is ``"folder"`` are read as folders,
    so single-list exports work too. Invalid entries are skipped.

    Raises:
        StoreLoadError: If the document is not a JSON object
    """
    if not isinstance(data, dict):
        raise StoreLoadError("Store export must be a JSON object")

    raw_notes: list = []
    raw_folders: list = list(_as_list(data.get("folders")))
    for entry in _as_list(data.get("notes")):
        if isinstance(entry, dict) and entry.get("type") == "folder":
            raw_folders.append({"name": entry.get("title", ""), **entry})
        else:
            raw_notes.append(entry)

    return StoreSnapshot(
        notes=validate_records(Note, raw_notes, "note"),
        folders=validate_records(Folder, raw_folders, "folder"),
        clusters=validate_records(Cluster, _as_list(data.get("clusters")), "cluster"),
    )


class StoreCache:
    """In-memory copy of the store export and the graph built from it.

    The export file is checked at most once per TTL and the graph is only
    rebuilt when the file's mtime has changed.
    """

    def __init__(
        self,
        store_path: Path,
        ttl: int = 60,
        graph: KnowledgeGraph | None = None,
        index: SimilarityIndex | None = None,
    ):
        self.store_path = Path(store_path)
        self.ttl = ttl
        self.graph = graph or KnowledgeGraph()
        self.index = index if index is not None else similarity_index
        self._snapshot = StoreSnapshot()
        self._mtime: float | None = None
        self._loaded_at: float = 0

    @property
    def is_stale(self) -> bool:
        return (time.time() - self._loaded_at) > self.ttl

    async def _read_snapshot(self) -> StoreSnapshot:
        async with aiofiles.open(self.store_path, encoding="utf-8") as f:
            text = await f.read()
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StoreLoadError(f"Invalid JSON in store export {self.store_path}: {e}") from e
        return parse_store_export(data)

    def _apply(self, snapshot: StoreSnapshot, prune: bool = True) -> None:
        self._snapshot = snapshot
        self.graph.rebuild(snapshot.notes, snapshot.folders, snapshot.clusters)
        # Embeddings of deleted notes go with them
        if prune and self.index.retain(n.id for n in snapshot.notes):
            self.index.schedule_persist()

    async def refresh(self, force: bool = False) -> None:
        """Reload the store export if the cache is stale and the file changed.

        A missing file yields an empty graph; an unreadable one keeps the
        previous graph.

        Args:
            force: If True, reloads and rebuilds regardless of TTL and mtime.
        """
        if not force and not self.is_stale:
            return

        start_time = time.time()
        self._loaded_at = time.time()

        try:
            mtime = self.store_path.stat().st_mtime
        except OSError:
            if force or self._mtime is not None or self.graph.last_report is None:
                logger.warning("store_missing", path=str(self.store_path))
                self._mtime = None
                self._apply(StoreSnapshot(), prune=False)
            return

        if not force and mtime == self._mtime:
            return

        try:
            snapshot = await self._read_snapshot()
        except (OSError, UnicodeDecodeError, StoreLoadError) as e:
            logger.warning("store_read_failed", path=str(self.store_path), error=str(e))
            return

        self._mtime = mtime
        self._apply(snapshot)

        logger.info(
            "cache_refreshed",
            notes=len(snapshot.notes),
            folders=len(snapshot.folders),
            clusters=len(snapshot.clusters),
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )

    def update(
        self,
        notes: Iterable[Note | dict],
        folders: Iterable[Folder | dict] = (),
        clusters: Iterable[Cluster | dict] | None = None,
    ) -> None:
        """Replace the collection in-process (after a create/rename/move/delete) and rebuild."""
        self._apply(StoreSnapshot(
            notes=validate_records(Note, notes, "note"),
            folders=validate_records(Folder, folders, "folder"),
            clusters=validate_records(Cluster, clusters, "cluster"),
        ))
        self._loaded_at = time.time()

    async def get_graph(self) -> KnowledgeGraph:
        """Get the knowledge graph, refreshing it first if stale."""
        await self.refresh()
        return self.graph

    async def get_snapshot(self) -> StoreSnapshot:
        await self.refresh()
        return self._snapshot

    async def get_notes(self) -> list[Note]:
        await self.refresh()
        return list(self._snapshot.notes)

    async def get_note_count(self) -> int:
        await self.refresh()
        return len(self._snapshot.notes)


# Global cache instance
store_cache = StoreCache(settings.store_path, settings.cache_ttl)
