"""Paragraph-aware word chunking for the RAG pipeline.

Chunks are built from whole paragraphs and measured in words, so no
tokenizer dependency is needed. A paragraph is never split, which means a
single paragraph longer than ``max_words`` becomes an oversized chunk.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from tutor import config
from tutor.rag.md_parser import MarkdownParser

logger = structlog.get_logger()

PARAGRAPH_BREAK = re.compile(r"\n\n+")


@dataclass
class DocumentChunk:
    """One retrievable unit of a document."""

    id: str
    content: str
    metadata: Dict[str, Any]
    word_count: int


@dataclass
class ProcessedDocument:
    """All chunks produced from one source document."""

    source: str
    chunks: List[DocumentChunk] = field(default_factory=list)

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)


def count_words(text: str) -> int:
    return len(text.split())


def document_id(source: str) -> str:
    """Stable id prefix for a source path (``docs\\a.md`` -> ``docs/a``)."""
    normalized = source.replace("\\", "/")
    if normalized.endswith(".md"):
        normalized = normalized[: -len(".md")]
    return normalized


def chunk_id_prefix(source: str) -> str:
    return f"{document_id(source)}-chunk-"


class TextChunker:
    """Word-based chunker that accumulates paragraphs with overlap."""

    def __init__(
        self,
        max_words: int = None,
        min_words: int = None,
        overlap_words: int = None,
    ):
        """Initialize the text chunker.

        Args:
            max_words: Word limit that triggers a split before the next paragraph
            min_words: Chunks reaching 1.5x this size are closed eagerly;
                chunks under half of it are dropped
            overlap_words: Words carried over from the previous chunk on a split
        """
        self.max_words = max_words if max_words is not None else config.CHUNK_MAX_WORDS
        self.min_words = min_words if min_words is not None else config.CHUNK_MIN_WORDS
        self.overlap_words = (
            overlap_words if overlap_words is not None else config.CHUNK_OVERLAP_WORDS
        )

        if self.max_words < 1:
            raise ValueError(f"max_words must be >= 1, got {self.max_words}")
        if self.min_words < 0 or self.overlap_words < 0:
            raise ValueError("min_words and overlap_words must be >= 0")

    def chunk_text(self, text: str) -> List[str]:
        """Split text into overlapping word-bounded chunks.

        Args:
            text: Document text; paragraphs are separated by blank lines

        Returns:
            List of chunk strings, in document order
        """
        paragraphs = [p.strip() for p in PARAGRAPH_BREAK.split(text)]
        paragraphs = [p for p in paragraphs if p]

        chunks: List[str] = []
        current = ""
        current_words = 0

        for paragraph in paragraphs:
            paragraph_words = count_words(paragraph)

            if current_words + paragraph_words > self.max_words and current_words > 0:
                chunks.append(current.strip())

                # Seed the next chunk with the tail of the one just closed
                overlap = current.split()[-self.overlap_words :] if self.overlap_words else []
                current = " ".join(overlap) + "\n\n" + paragraph if overlap else paragraph
                current_words = len(overlap) + paragraph_words
            else:
                current += ("\n\n" if current else "") + paragraph
                current_words += paragraph_words

            if current_words >= self.min_words * 1.5:
                chunks.append(current.strip())
                current = ""
                current_words = 0

        if current.strip():
            chunks.append(current.strip())

        kept = [c for c in chunks if count_words(c) >= self.min_words / 2]

        if chunks:
            logger.debug(
                "text_chunked",
                paragraph_count=len(paragraphs),
                chunk_count=len(kept),
                dropped=len(chunks) - len(kept),
            )

        return kept

    def get_chunk_stats(self, chunks: List[str]) -> dict:
        """Get word statistics about a set of chunks."""
        if not chunks:
            return {
                "chunk_count": 0,
                "total_words": 0,
                "avg_chunk_words": 0,
                "min_chunk_words": 0,
                "max_chunk_words": 0,
            }

        sizes = [count_words(c) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_words": sum(sizes),
            "avg_chunk_words": sum(sizes) // len(chunks),
            "min_chunk_words": min(sizes),
            "max_chunk_words": max(sizes),
            "overlap_words": self.overlap_words,
        }


def chunk_text(
    text: str,
    max_words: int = 800,
    min_words: int = 200,
    overlap_words: int = 100,
) -> List[str]:
    """Chunk text with explicit size parameters (convenience function)."""
    return TextChunker(max_words, min_words, overlap_words).chunk_text(text)


def process_document(
    content: str,
    source: str,
    chunker: Optional[TextChunker] = None,
    parser: Optional[MarkdownParser] = None,
) -> ProcessedDocument:
    """Turn a markdown document into ``DocumentChunk`` objects.

    Args:
        content: Raw markdown text
        source: Source path; becomes the chunk id prefix and ``metadata.source``
        chunker: Chunker to use (default settings from config)
        parser: Markdown parser to use

    Returns:
        ProcessedDocument with sequentially numbered chunks
    """
    chunker = chunker or TextChunker()
    parser = parser or MarkdownParser()

    doc = parser.parse(content, source)
    texts = chunker.chunk_text(doc.body)

    metadata: Dict[str, Any] = {"source": source}
    if doc.title:
        metadata["chapterTitle"] = doc.title
    if doc.chapter:
        metadata["section"] = doc.chapter

    prefix = chunk_id_prefix(source)
    chunks = [
        DocumentChunk(
            id=f"{prefix}{index}",
            content=text,
            metadata=dict(metadata),
            word_count=count_words(text),
        )
        for index, text in enumerate(texts)
    ]

    logger.info(
        "document_processed",
        source=source,
        chunk_count=len(chunks),
        **{k: v for k, v in chunker.get_chunk_stats(texts).items() if k != "chunk_count"},
    )

    return ProcessedDocument(source=source, chunks=chunks)


def clean_text(text: str) -> str:
    """Collapse runs of whitespace into single spaces."""
    return re.sub(r"\s+", " ", text).strip()


def get_text_stats(text: str) -> Dict[str, int]:
    """Count characters, words, sentences and paragraphs in *text*."""
    return {
        "characters": len(text),
        "words": count_words(text),
        "sentences": len([s for s in re.split(r"[.!?]+", text) if s.strip()]),
        "paragraphs": len([p for p in PARAGRAPH_BREAK.split(text) if p.strip()]),
    }
