"""
Similarity index for semantic note search.

Keeps note id -> embedding associations in memory and answers k-nearest
neighbour queries by cosine similarity. Embeddings are produced elsewhere;
this module only stores, searches and persists them.
"""

import asyncio
import io
import os
from pathlib import Path
from typing import Iterable, Sequence

import aiofiles
import numpy as np
import structlog

from .config import settings
from .models import SimilarResult
from .utils import DimensionMismatchError

logger = structlog.get_logger(__name__)


class SimilarityIndex:
    """Exact cosine-similarity index persisted as a single .npz file.

    Until initialize() has completed every operation is a logged no-op:
    writes return False and searches return no results. A file that
    cannot be restored leaves an empty but working index marked degraded.
    """

    def __init__(self, index_path: Path, dimension: int = 384):
        self.index_path = Path(index_path)
        self.dimension = dimension
        self._vectors: dict[str, np.ndarray] = {}
        self._matrix: np.ndarray | None = None
        self._matrix_ids: list[str] = []
        self._ready = False
        self._degraded = False
        self._pending: set[asyncio.Task] = set()

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def is_degraded(self) -> bool:
        return self._degraded

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, note_id: object) -> bool:
        return note_id in self._vectors

    # ============== Lifecycle ==============

    async def initialize(self) -> None:
        """Restore the index from disk, or start empty. Never raises."""
        if self._ready:
            return

        try:
            vectors = await self._restore()
        except Exception as e:
            logger.error("similarity_index_restore_failed", path=str(self.index_path), error=str(e))
            vectors = {}
            self._degraded = True

        self._vectors = vectors
        self._invalidate()
        self._ready = True
        logger.info(
            "similarity_index_ready",
            path=str(self.index_path),
            count=len(self._vectors),
            degraded=self._degraded,
        )

    async def _restore(self) -> dict[str, np.ndarray]:
        if not self.index_path.exists():
            return {}

        async with aiofiles.open(self.index_path, "rb") as f:
            data = await f.read()

        with np.load(io.BytesIO(data), allow_pickle=False) as archive:
            ids = archive["ids"]
            vectors = archive["vectors"]

        if vectors.ndim != 2 or len(ids) != vectors.shape[0]:
            raise ValueError("ids and vectors do not line up")
        if len(ids) and vectors.shape[1] != self.dimension:
            raise DimensionMismatchError(
                f"Stored vectors have dimension {vectors.shape[1]}, expected {self.dimension}"
            )
        return {str(note_id): vectors[row].astype(np.float32) for row, note_id in enumerate(ids)}

    async def persist(self) -> bool:
        """Write the index to disk atomically.

        Returns:
            True on success; failures are logged, not raised
        """
        if not self._ready:
            logger.warning("similarity_index_not_ready", operation="persist")
            return False

        ids = list(self._vectors)
        matrix = (
            np.stack([self._vectors[i] for i in ids])
            if ids
            else np.zeros((0, self.dimension), dtype=np.float32)
        )
        tmp_path = self.index_path.with_name(self.index_path.name + ".tmp")

        try:
            buffer = io.BytesIO()
            np.savez(buffer, ids=np.array(ids, dtype=str), vectors=matrix)
            self.index_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(buffer.getvalue())
            os.replace(tmp_path, self.index_path)
        except Exception as e:
            logger.error("similarity_index_persist_failed", path=str(self.index_path), error=str(e))
            return False

        logger.info("similarity_index_persisted", path=str(self.index_path), count=len(ids))
        return True

    def schedule_persist(self) -> asyncio.Task | None:
        """Persist in the background without making the caller wait."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("similarity_index_persist_skipped", reason="no running event loop")
            return None

        task = loop.create_task(self.persist())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def wait_for_pending(self) -> None:
        """Wait for background persists started by schedule_persist()."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    # ============== Mutation ==============

    def _as_vector(self, vector: Sequence[float] | np.ndarray) -> np.ndarray:
        arr = np.asarray(vector, dtype=np.float32).reshape(-1)
        if arr.shape[0] != self.dimension:
            raise DimensionMismatchError(f"Vector has dimension {arr.shape[0]}, expected {self.dimension}")
        return arr

    def _invalidate(self) -> None:
        self._matrix = None
        self._matrix_ids = []

    def upsert(self, note_id: str, vector: Sequence[float] | np.ndarray) -> bool:
        """Add or replace a note's embedding.

        Raises:
            DimensionMismatchError: If the vector length differs from the index dimension
        """
        if not self._ready:
            logger.warning("similarity_index_not_ready", operation="upsert", note_id=note_id)
            return False

        arr = self._as_vector(vector)
        norm = float(np.linalg.norm(arr))
        if not np.isfinite(norm) or norm == 0:
            logger.warning("similarity_vector_rejected", note_id=note_id, reason="zero or non-finite norm")
            return False

        self._vectors[note_id] = arr / norm
        self._invalidate()
        return True

    def remove(self, note_id: str) -> bool:
        if not self._ready:
            logger.warning("similarity_index_not_ready", operation="remove", note_id=note_id)
            return False
        if self._vectors.pop(note_id, None) is None:
            return False
        self._invalidate()
        return True

    def retain(self, note_ids: Iterable[str]) -> int:
        """Drop the vectors of notes not in note_ids. Returns how many were dropped."""
        if not self._ready:
            return 0

        keep = set(note_ids)
        stale = [note_id for note_id in self._vectors if note_id not in keep]
        for note_id in stale:
            del self._vectors[note_id]
        if stale:
            self._invalidate()
            logger.info("similarity_vectors_pruned", count=len(stale))
        return len(stale)

    def clear(self) -> None:
        self._vectors.clear()
        self._invalidate()

    # ============== Search ==============

    def search(
        self,
        query_vector: Sequence[float] | np.ndarray,
        k: int = 10,
        min_score: float | None = None,
    ) -> list[SimilarResult]:
        """Top-k notes by cosine similarity to the query, best first."""
        if not self._ready:
            logger.warning("similarity_index_not_ready", operation="search")
            return []
        if k <= 0 or not self._vectors:
            return []

        query = self._as_vector(query_vector)
        norm = float(np.linalg.norm(query))
        if not np.isfinite(norm) or norm == 0:
            return []

        if self._matrix is None:
            self._matrix_ids = list(self._vectors)
            self._matrix = np.stack([self._vectors[i] for i in self._matrix_ids])

        scores = self._matrix @ (query / norm)
        order = np.argsort(-scores, kind="stable")[:k]
        return [
            SimilarResult(note_id=self._matrix_ids[i], score=float(scores[i]))
            for i in order
            if min_score is None or scores[i] >= min_score
        ]

    def similar_to(self, note_id: str, k: int = 10, min_score: float | None = None) -> list[SimilarResult]:
        """Nearest neighbours of an indexed note, excluding the note itself."""
        if not self._ready:
            logger.warning("similarity_index_not_ready", operation="similar_to", note_id=note_id)
            return []
        vector = self._vectors.get(note_id)
        if vector is None:
            return []
        results = self.search(vector, k + 1, min_score)
        return [r for r in results if r.note_id != note_id][:k]

    def stats(self) -> dict:
        return {
            "ready": self._ready,
            "degraded": self._degraded,
            "count": len(self._vectors),
            "dimension": self.dimension,
        }


# Global index instance
similarity_index = SimilarityIndex(settings.index_path, settings.embedding_dimension)
