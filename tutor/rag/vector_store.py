"""In-memory vector store with cosine similarity search.

Handles:
- Fixed embedding dimension enforcement
- Linear-scan similarity search with metadata filtering
- CRUD by id and by id prefix
- JSON snapshot export/import and async file persistence
- Near-duplicate detection
"""
import asyncio
import json
import math
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import numpy as np
import structlog

from tutor import config
from tutor.errors import DimensionMismatch, MalformedPersistedEntry

logger = structlog.get_logger()

MetadataFilter = Callable[[Dict[str, Any]], bool]


@dataclass
class VectorEntry:
    """A stored chunk embedding."""

    id: str
    embedding: List[float]
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "embedding": self.embedding,
            "content": self.content,
            "metadata": self.metadata,
            "timestamp": format_timestamp(self.timestamp),
        }


@dataclass
class SearchResult:
    """A scored retrieval hit."""

    id: str
    content: str
    metadata: Dict[str, Any]
    score: float


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """``dot(a, b) / (|a| * |b|)``; NaN when either vector has zero magnitude.

    Raises:
        DimensionMismatch: If the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatch(len(va), len(vb), what="vector")

    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.dot(va, vb) / (np.linalg.norm(va) * np.linalg.norm(vb)))


def rank_key(result: SearchResult):
    """Sort key: score descending, NaN last, ties broken by id ascending."""
    if math.isnan(result.score):
        return (1, 0.0, result.id)
    return (0, -result.score, result.id)


class VectorStore:
    """In-memory store of chunk embeddings keyed by chunk id."""

    def __init__(self, dimensions: int = None):
        """Initialize an empty store.

        Args:
            dimensions: Required embedding length (default from config)
        """
        self.dimensions = dimensions if dimensions is not None else config.EMBEDDING_DIMENSIONS
        self._entries: Dict[str, VectorEntry] = {}

        logger.info("vector_store_initialized", dimensions=self.dimensions)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entry_id: str) -> bool:
        return entry_id in self._entries

    def add(
        self,
        entry_id: str,
        embedding: Sequence[float],
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Insert or replace an entry.

        Raises:
            DimensionMismatch: If ``len(embedding)`` differs from the store dimension
        """
        if len(embedding) != self.dimensions:
            raise DimensionMismatch(self.dimensions, len(embedding))

        self._entries[entry_id] = VectorEntry(
            id=entry_id,
            embedding=[float(v) for v in embedding],
            content=content,
            metadata=dict(metadata or {}),
        )

    def add_batch(self, entries: Iterable[Dict[str, Any]]) -> None:
        """Add entries one by one. Not atomic: earlier entries stay on failure."""
        count = 0
        for entry in entries:
            self.add(
                entry["id"],
                entry["embedding"],
                entry["content"],
                entry.get("metadata") or {},
            )
            count += 1

        logger.info("vectors_added", count=count, total_vectors=len(self._entries))

    def search(
        self,
        query_embedding: Sequence[float],
        top_k: int = 5,
        filter: Optional[MetadataFilter] = None,
    ) -> List[SearchResult]:
        """Return the ``top_k`` entries most similar to ``query_embedding``.

        Args:
            query_embedding: Query vector
            top_k: Maximum number of results
            filter: Optional predicate over entry metadata

        Returns:
            SearchResult list sorted by score (desc), then id (asc)

        Raises:
            DimensionMismatch: If the query length differs from the store dimension
        """
        if len(query_embedding) != self.dimensions:
            raise DimensionMismatch(self.dimensions, len(query_embedding), what="query embedding")

        candidates = [
            entry
            for entry in self._entries.values()
            if filter is None or filter(entry.metadata)
        ]
        if not candidates or top_k <= 0:
            return []

        matrix = np.asarray([entry.embedding for entry in candidates], dtype=np.float64)
        query = np.asarray(query_embedding, dtype=np.float64)

        with np.errstate(divide="ignore", invalid="ignore"):
            scores = (matrix @ query) / (
                np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
            )

        results = [
            SearchResult(
                id=entry.id,
                content=entry.content,
                metadata=entry.metadata,
                score=float(score),
            )
            for entry, score in zip(candidates, scores)
        ]
        results.sort(key=rank_key)

        logger.debug(
            "vector_search_completed",
            candidates=len(candidates),
            top_k=top_k,
            top_score=results[0].score,
        )

        return results[:top_k]

    def get(self, entry_id: str) -> Optional[VectorEntry]:
        return self._entries.get(entry_id)

    def has(self, entry_id: str) -> bool:
        return entry_id in self._entries

    def ids(self) -> List[str]:
        return list(self._entries)

    def delete(self, entry_id: str) -> bool:
        return self._entries.pop(entry_id, None) is not None

    def delete_by_prefix(self, prefix: str) -> int:
        """Delete every entry whose id starts with ``prefix``."""
        doomed = [entry_id for entry_id in self._entries if entry_id.startswith(prefix)]
        for entry_id in doomed:
            del self._entries[entry_id]

        if doomed:
            logger.info("vectors_deleted_by_prefix", prefix=prefix, count=len(doomed))
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()
        logger.info("vector_store_cleared")

    def get_stats(self) -> Dict[str, Any]:
        """Entry count, dimension and a rough memory estimate in MB."""
        total_bytes = sum(
            len(entry.embedding) * 4
            + len(json.dumps(entry.metadata, separators=(",", ":")).encode("utf-8"))
            for entry in self._entries.values()
        )

        return {
            "total_vectors": len(self._entries),
            "dimensions": self.dimensions,
            "approx_memory_usage_mb": round(total_bytes / (1024 * 1024), 2),
        }

    def to_json(self) -> str:
        """Export all entries as a JSON array."""
        return json.dumps([entry.to_dict() for entry in self._entries.values()], indent=2)

    def from_json(self, data: str) -> None:
        """Replace the store contents with the entries in a JSON snapshot.

        Entries that cannot be restored are skipped with a warning.

        Raises:
            ValueError: If the document is not valid JSON or not an array
        """
        try:
            items = json.loads(data)
        except json.JSONDecodeError as e:
            raise ValueError(f"Failed to parse JSON: {e}") from e

        if not isinstance(items, list):
            raise ValueError("Failed to parse JSON: expected array")

        self._entries.clear()
        skipped = 0

        for item in items:
            try:
                entry = self._entry_from_dict(item)
            except MalformedPersistedEntry as e:
                logger.warning("skipping_invalid_entry", entry_id=e.entry_id, reason=e.reason)
                skipped += 1
                continue
            self._entries[entry.id] = entry

        logger.info("vectors_loaded", total_vectors=len(self._entries), skipped=skipped)

    def _entry_from_dict(self, item: Any) -> VectorEntry:
        if not isinstance(item, dict):
            raise MalformedPersistedEntry(None, "entry is not an object")

        entry_id = item.get("id")
        embedding = item.get("embedding")
        content = item.get("content")

        if not entry_id or not content or not isinstance(embedding, list):
            raise MalformedPersistedEntry(entry_id, "missing id, embedding or content")
        if not isinstance(entry_id, str) or not isinstance(content, str):
            raise MalformedPersistedEntry(entry_id, "id and content must be strings")
        if len(embedding) != self.dimensions:
            raise MalformedPersistedEntry(
                entry_id,
                f"expected {self.dimensions} dimensions, got {len(embedding)}",
            )

        timestamp = item.get("timestamp")
        try:
            when = parse_timestamp(timestamp) if timestamp else datetime.now(timezone.utc)
            vector = [float(v) for v in embedding]
        except (TypeError, ValueError) as e:
            raise MalformedPersistedEntry(entry_id, str(e)) from e

        metadata = item.get("metadata")
        return VectorEntry(
            id=entry_id,
            embedding=vector,
            content=content,
            metadata=metadata if isinstance(metadata, dict) else {},
            timestamp=when,
        )

    async def save(self, path: Path) -> None:
        """Write a JSON snapshot to ``path`` (atomically replacing it)."""
        payload = self.to_json()
        await asyncio.to_thread(_write_atomic, Path(path), payload)
        logger.info("vector_snapshot_saved", path=str(path), total_vectors=len(self._entries))

    async def load(self, path: Path) -> None:
        """Replace the store contents with a JSON snapshot read from ``path``.

        Raises:
            FileNotFoundError: If the snapshot does not exist
            ValueError: If the snapshot is not a JSON array
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Snapshot not found: {path}")

        payload = await asyncio.to_thread(path.read_text, encoding="utf-8")
        self.from_json(payload)

    def find_duplicates(self, threshold: float = 0.99) -> List[Dict[str, Any]]:
        """Return every pair of entries with similarity >= ``threshold``."""
        ids = list(self._entries)
        if len(ids) < 2:
            return []

        matrix = np.asarray(
            [entry.embedding for entry in self._entries.values()], dtype=np.float64
        )
        norms = np.linalg.norm(matrix, axis=1)

        with np.errstate(divide="ignore", invalid="ignore"):
            similarities = (matrix @ matrix.T) / np.outer(norms, norms)
            pairs = np.argwhere(np.triu(similarities >= threshold, k=1))

        duplicates = [
            {"id1": ids[i], "id2": ids[j], "similarity": float(similarities[i, j])}
            for i, j in pairs
        ]

        logger.info(
            "duplicate_scan_completed",
            total_vectors=len(ids),
            threshold=threshold,
            duplicates=len(duplicates),
        )
        return duplicates


def _write_atomic(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    os.replace(tmp_path, path)
