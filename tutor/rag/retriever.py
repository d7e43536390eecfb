"""Retriever for semantic search over the textbook index.

Handles:
- Query embedding and vector search
- Score filtering and context formatting for the LLM prompt
- Hybrid (semantic + keyword) and multi-query retrieval
- Heuristic reranking and query expansion
"""
import asyncio
import math
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

import structlog

from tutor import config
from tutor.llm_client import EmbeddingProvider
from tutor.rag.vector_store import MetadataFilter, SearchResult, VectorStore, rank_key

logger = structlog.get_logger()

NO_CONTEXT_MESSAGE = "No relevant context found in the knowledge base."
CONTEXT_SEPARATOR = "\n\n---\n\n"


@dataclass
class RetrievalResult:
    """Output of a retrieval strategy."""

    query: str
    results: List[SearchResult] = field(default_factory=list)
    context: str = NO_CONTEXT_MESSAGE
    sources: List[Dict[str, str]] = field(default_factory=list)

    @classmethod
    def from_results(cls, query: str, results: List[SearchResult]) -> "RetrievalResult":
        return cls(
            query=query,
            results=results,
            context=format_context(results),
            sources=extract_sources(results),
        )


def format_context(results: List[SearchResult], include_metadata: bool = True) -> str:
    """Format search results into a context string for the LLM."""
    if not results:
        return NO_CONTEXT_MESSAGE

    parts = []
    for index, result in enumerate(results, 1):
        header = f"[Context {index}"
        title = result.metadata.get("chapterTitle")
        if include_metadata and title:
            header += f" - {title}"
        header += f"] (Relevance: {result.score * 100:.1f}%)"
        parts.append(f"{header}\n{result.content}")

    return CONTEXT_SEPARATOR.join(parts)


def extract_sources(results: List[SearchResult]) -> List[Dict[str, str]]:
    """Unique sources in first-seen order, titled by chapter when known."""
    sources: Dict[str, Dict[str, str]] = {}

    for result in results:
        source = result.metadata.get("source")
        if source and source not in sources:
            sources[source] = {
                "title": result.metadata.get("chapterTitle") or source,
                "source": source,
            }

    return list(sources.values())


def rerank_results(
    results: List[SearchResult],
    similarity_weight: float = 0.7,
    recency_weight: float = 0.2,
    diversity_weight: float = 0.1,
) -> List[SearchResult]:
    """Rescore results by similarity, rank position and source diversity.

    "Recency" is the result's position in the incoming ranking
    (``1 - rank / len``); entry timestamps are not consulted.
    """
    source_counts: Dict[str, int] = {}
    reranked = []

    for rank, result in enumerate(results):
        source = result.metadata.get("source") or ""
        seen = source_counts.get(source, 0)
        source_counts[source] = seen + 1

        diversity_score = 1 / (1 + seen)
        recency_score = 1 - rank / len(results)

        reranked.append(
            replace(
                result,
                score=result.score * similarity_weight
                + recency_score * recency_weight
                + diversity_score * diversity_weight,
            )
        )

    reranked.sort(key=rank_key)
    return reranked


def expand_query(query: str) -> List[str]:
    """Return the query plus its lower-cased variant when different."""
    queries = [query]
    if query != query.lower():
        queries.append(query.lower())
    return queries


def keyword_score(query: str, content: str) -> float:
    """Fraction of lower-cased query terms found as substrings of ``content``."""
    terms = query.lower().split()
    if not terms:
        return 0.0
    text = content.lower()
    return sum(1 for term in terms if term in text) / len(terms)


class Retriever:
    """Semantic retriever for the RAG pipeline."""

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingProvider,
        top_k: int = None,
        min_score: float = None,
    ):
        """Initialize the retriever.

        Args:
            store: Vector store to search
            embedder: Provider used to embed queries
            top_k: Default number of results (default from config)
            min_score: Default minimum similarity (default from config)
        """
        self.store = store
        self.embedder = embedder
        self.top_k = top_k if top_k is not None else config.RETRIEVAL_TOP_K
        self.min_score = min_score if min_score is not None else config.RETRIEVAL_MIN_SCORE

    async def retrieve(
        self,
        query: str,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
        filter: Optional[MetadataFilter] = None,
        include_metadata: bool = True,
    ) -> RetrievalResult:
        """Retrieve relevant chunks for a query.

        Args:
            query: User query text
            top_k: Number of candidates to take from the index
            min_score: Results scoring below this are dropped
            filter: Optional metadata predicate passed to the index
            include_metadata: Include chapter titles in the formatted context

        Returns:
            RetrievalResult with filtered results, context and sources

        Raises:
            ProviderError: If the query cannot be embedded
            DimensionMismatch: If the query embedding does not fit the index
        """
        top_k = self.top_k if top_k is None else top_k
        min_score = self.min_score if min_score is None else min_score

        logger.info("retrieval_started", query_preview=query[:50], top_k=top_k)

        try:
            query_embedding = await self.embedder.embed(query)
            candidates = self.store.search(query_embedding, top_k, filter)
        except Exception as e:
            logger.error(
                "retrieval_failed",
                error=str(e),
                error_type=type(e).__name__,
                query_preview=query[:100],
            )
            raise

        # NaN scores fail this comparison and are dropped
        results = [r for r in candidates if r.score >= min_score]

        logger.info(
            "retrieval_completed",
            candidates=len(candidates),
            results_returned=len(results),
            min_score=min_score,
        )

        return RetrievalResult(
            query=query,
            results=results,
            context=format_context(results, include_metadata),
            sources=extract_sources(results),
        )

    async def hybrid_search(
        self,
        query: str,
        semantic_weight: float = 0.7,
        keyword_weight: float = 0.3,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
        filter: Optional[MetadataFilter] = None,
    ) -> RetrievalResult:
        """Combine semantic similarity with keyword coverage."""
        top_k = self.top_k if top_k is None else top_k

        semantic = await self.retrieve(
            query, top_k=top_k * 2, min_score=min_score, filter=filter
        )

        combined = [
            replace(
                result,
                score=result.score * semantic_weight
                + keyword_score(query, result.content) * keyword_weight,
            )
            for result in semantic.results
        ]
        combined.sort(key=rank_key)
        top_results = combined[:top_k]

        logger.debug("hybrid_search_completed", candidates=len(combined), returned=len(top_results))

        return RetrievalResult.from_results(query, top_results)

    async def multi_query(
        self,
        queries: List[str],
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
        filter: Optional[MetadataFilter] = None,
    ) -> RetrievalResult:
        """Retrieve for several queries and merge, keeping each id's best score."""
        top_k = self.top_k if top_k is None else top_k

        if not queries:
            return RetrievalResult(query="")

        per_query_k = math.ceil(top_k / len(queries)) * 2
        retrievals = await asyncio.gather(
            *(
                self.retrieve(q, top_k=per_query_k, min_score=min_score, filter=filter)
                for q in queries
            )
        )

        merged: Dict[str, SearchResult] = {}
        for retrieval in retrievals:
            for result in retrieval.results:
                best = merged.get(result.id)
                if best is None or best.score < result.score:
                    merged[result.id] = result

        results = sorted(merged.values(), key=rank_key)[:top_k]

        logger.info(
            "multi_query_completed",
            query_count=len(queries),
            unique_results=len(merged),
            returned=len(results),
        )

        return RetrievalResult.from_results(" | ".join(queries), results)

    def rerank(
        self,
        results: List[SearchResult],
        similarity_weight: float = 0.7,
        recency_weight: float = 0.2,
        diversity_weight: float = 0.1,
    ) -> List[SearchResult]:
        return rerank_results(results, similarity_weight, recency_weight, diversity_weight)

    @staticmethod
    def expand(query: str) -> List[str]:
        return expand_query(query)
