"""Ingest pipeline for indexing textbook documents.

Orchestrates:
- Markdown cleanup and chunking
- Embedding generation in batches
- Vector storage (re-ingesting a source replaces its previous chunks)
- Directory discovery for bulk ingestion
"""
import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import structlog

from tutor import config
from tutor.errors import DimensionMismatch
from tutor.llm_client import EmbeddingProvider
from tutor.rag.chunker import TextChunker, chunk_id_prefix, process_document
from tutor.rag.md_parser import MarkdownParser
from tutor.rag.vector_store import VectorStore

logger = structlog.get_logger()

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class IngestResult:
    """Outcome of ingesting one document."""

    source: str
    chunks_processed: int = 0
    vectors_stored: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.vectors_stored == self.chunks_processed:
            return "success"
        if self.vectors_stored > 0:
            return "partial"
        return "failed"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "filepath": self.source,
            "chunksProcessed": self.chunks_processed,
            "vectorsStored": self.vectors_stored,
            "status": self.status,
        }
        if self.errors:
            data["errors"] = self.errors
        return data


class IngestPipeline:
    """Pipeline for ingesting documents into the vector store."""

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingProvider,
        chunker: Optional[TextChunker] = None,
        batch_size: int = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            store: Vector store receiving the chunks
            embedder: Provider used to embed chunk text
            chunker: Chunker (default settings from config)
            batch_size: Number of chunks embedded per provider request
        """
        self.store = store
        self.embedder = embedder
        self.chunker = chunker or TextChunker()
        self.parser = MarkdownParser()
        self.batch_size = batch_size or config.EMBED_BATCH_SIZE

        logger.info(
            "ingest_pipeline_initialized",
            max_words=self.chunker.max_words,
            min_words=self.chunker.min_words,
            overlap_words=self.chunker.overlap_words,
            batch_size=self.batch_size,
        )

    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        """Embed ``texts`` in provider batches, preserving order."""
        embeddings: List[List[float]] = []

        for i in range(0, len(texts), self.batch_size):
            batch = texts[i : i + self.batch_size]
            embeddings.extend(await self.embedder.embed_batch(batch))

            logger.debug(
                "embeddings_batch_generated",
                batch_size=len(batch),
                total_so_far=len(embeddings),
            )

        return embeddings

    async def ingest(self, raw_text: str, source: str) -> IngestResult:
        """Chunk, embed and store one document.

        Chunks previously stored for ``source`` are replaced once the new
        embeddings are ready; if embedding fails the index is left unchanged.

        Raises:
            ValueError: If ``raw_text`` or ``source`` is empty
            ProviderError: If embedding fails
        """
        if not source or not source.strip():
            raise ValueError("source path is required")
        if not raw_text or not raw_text.strip():
            raise ValueError(f"Document is empty: {source}")

        logger.info("ingesting_document", source=source)

        processed = process_document(raw_text, source, chunker=self.chunker, parser=self.parser)
        result = IngestResult(source=source, chunks_processed=processed.total_chunks)

        embeddings = await self.generate_embeddings([c.content for c in processed.chunks])

        replaced = self.store.delete_by_prefix(chunk_id_prefix(source))

        if not processed.chunks:
            logger.warning("no_chunks_created", source=source, replaced=replaced)
            return result

        for chunk, embedding in zip(processed.chunks, embeddings):
            try:
                self.store.add(chunk.id, embedding, chunk.content, chunk.metadata)
                result.vectors_stored += 1
            except DimensionMismatch as e:
                result.errors.append(f"Failed to store chunk {chunk.id}: {e}")

        log = logger.info if result.status == "success" else logger.warning
        log(
            "document_ingested",
            source=source,
            chunks_processed=result.chunks_processed,
            vectors_stored=result.vectors_stored,
            replaced=replaced,
            status=result.status,
        )

        return result

    async def ingest_file(self, file_path: Path, source: Optional[str] = None) -> IngestResult:
        """Read and ingest a markdown file."""
        content = await asyncio.to_thread(file_path.read_text, encoding="utf-8")
        return await self.ingest(content, source or str(file_path))

    def discover_markdown_files(self, notes_dir: Path) -> List[Path]:
        """Find all markdown files under ``notes_dir``.

        Raises:
            FileNotFoundError: If the directory doesn't exist
        """
        if not notes_dir.exists():
            raise FileNotFoundError(f"Notes directory not found: {notes_dir}")

        md_files = sorted(notes_dir.rglob("*.md"))

        logger.info("markdown_files_discovered", count=len(md_files), notes_dir=str(notes_dir))
        return md_files

    async def ingest_directory(
        self,
        notes_dir: Path = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Dict[str, Any]:
        """Ingest every markdown file under ``notes_dir``.

        A failing file is logged and counted; the remaining files are still
        ingested. Sources are recorded relative to ``notes_dir``.

        Returns:
            Dictionary with ingestion statistics and per-file results
        """
        notes_dir = notes_dir or config.NOTES_DIR
        md_files = self.discover_markdown_files(notes_dir)

        stats: Dict[str, Any] = {
            "files_processed": 0,
            "files_failed": 0,
            "chunks_processed": 0,
            "vectors_stored": 0,
            "results": [],
        }

        for idx, file_path in enumerate(md_files, 1):
            source = file_path.relative_to(notes_dir).as_posix()
            if progress_callback:
                progress_callback(idx, len(md_files), source)

            try:
                result = await self.ingest_file(file_path, source)
            except Exception as e:
                logger.error(
                    "file_ingestion_failed",
                    path=str(file_path),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                stats["files_failed"] += 1
                stats["results"].append(
                    {"filepath": source, "status": "failed", "error": str(e)}
                )
                continue

            stats["files_processed"] += 1
            stats["chunks_processed"] += result.chunks_processed
            stats["vectors_stored"] += result.vectors_stored
            stats["results"].append(result.to_dict())

        logger.info(
            "ingest_directory_completed",
            files_processed=stats["files_processed"],
            files_failed=stats["files_failed"],
            chunks_processed=stats["chunks_processed"],
            vectors_stored=stats["vectors_stored"],
        )

        return stats
