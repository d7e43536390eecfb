"""RAG engine: the single handle that wires the index to the providers.

Create one ``RAGEngine`` at process start and pass it to whatever serves
queries or ingests documents (the HTTP app, the CLI scripts, tests).
"""
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from tutor import config
from tutor.llm_client import ChatProvider, EmbeddingProvider, LLMClient
from tutor.rag.chunker import TextChunker
from tutor.rag.generator import AnswerGenerator, GeneratedResponse
from tutor.rag.ingest import IngestPipeline, IngestResult
from tutor.rag.retriever import Retriever
from tutor.rag.vector_store import VectorStore

logger = structlog.get_logger()


class RAGEngine:
    """Ingestion and question-answering over one in-memory index."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        chat: ChatProvider,
        store: Optional[VectorStore] = None,
        chunker: Optional[TextChunker] = None,
        snapshot_path: Optional[Path] = None,
    ):
        self.store = store if store is not None else VectorStore()
        self.embedder = embedder
        self.chat = chat
        self.snapshot_path = Path(snapshot_path or config.SNAPSHOT_PATH)

        self.retriever = Retriever(self.store, embedder)
        self.generator = AnswerGenerator(chat)
        self.pipeline = IngestPipeline(self.store, embedder, chunker=chunker)

    @classmethod
    def from_config(cls, client: Optional[LLMClient] = None) -> "RAGEngine":
        """Build an engine backed by one ``LLMClient`` configured from the environment."""
        client = client or LLMClient()
        return cls(embedder=client, chat=client)

    async def ingest(self, raw_text: str, source: str) -> IngestResult:
        return await self.pipeline.ingest(raw_text, source)

    async def ingest_directory(self, notes_dir: Path = None, progress_callback=None) -> Dict[str, Any]:
        return await self.pipeline.ingest_directory(notes_dir, progress_callback)

    def clear(self) -> None:
        self.store.clear()

    def stats(self) -> Dict[str, Any]:
        return self.store.get_stats()

    async def ask(
        self,
        question: str,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> GeneratedResponse:
        """Retrieve context for ``question`` and generate a cited answer.

        Raises:
            ProviderError: If the question cannot be embedded
            GenerationError: If the chat provider fails
        """
        retrieval = await self.retriever.retrieve(question, top_k=top_k, min_score=min_score)
        return await self.generator.generate(
            question,
            retrieval,
            temperature=temperature,
            max_tokens=max_tokens,
            include_sources=True,
        )

    async def save(self, path: Optional[Path] = None) -> None:
        await self.store.save(path or self.snapshot_path)

    async def load(self, path: Optional[Path] = None) -> bool:
        """Load the snapshot if it exists. Returns whether anything was loaded."""
        path = Path(path or self.snapshot_path)
        if not path.exists():
            logger.info("no_snapshot_found", path=str(path))
            return False

        await self.store.load(path)
        return True
