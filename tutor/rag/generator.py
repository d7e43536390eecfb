"""Answer generation from retrieved textbook context.

``AnswerGenerator.generate`` is the primary answer path and fails loudly.
The auxiliary helpers (follow-up questions, summaries, relevance check,
query rephrasing) each fall back to a fixed default when the provider
fails, so they never break the main answer.
"""
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import structlog

from tutor import config
from tutor.errors import GenerationError
from tutor.llm_client import ChatProvider
from tutor.rag.retriever import RetrievalResult

logger = structlog.get_logger()

DEFAULT_SYSTEM_PROMPT = """You are a helpful AI assistant for a Physical AI and Humanoid Robotics textbook. Your role is to answer questions based on the provided context from the textbook.

Guidelines:
1. Answer questions accurately using ONLY the information from the provided context
2. If the context doesn't contain enough information, say so clearly
3. Be concise but thorough in your explanations
4. Use technical terms appropriately and explain them when necessary
5. If asked about code, provide clear examples when available in the context
6. Reference specific sections or chapters when relevant
7. For complex topics, break down the explanation into steps
8. If the question is unclear, ask for clarification

Important: Do NOT make up information. If you're unsure or the context doesn't cover the topic, admit it and suggest where the user might find more information."""

_NUMBERING = re.compile(r"^\d+[.)]\s*")


@dataclass
class GeneratedResponse:
    """Final answer returned to the user."""

    answer: str
    sources: List[Dict[str, str]] = field(default_factory=list)
    retrieved_chunks: int = 0

    def to_dict(self) -> Dict:
        return {
            "answer": self.answer,
            "sources": self.sources,
            "retrievedChunks": self.retrieved_chunks,
        }


def build_user_message(query: str, context: str) -> str:
    return (
        f"Context from the textbook:\n{context}\n\n---\n\n"
        f"Question: {query}\n\n"
        "Please answer the question based on the context provided above. "
        "If the context doesn't contain enough information to answer fully, "
        "please say so."
    )


def format_sources(sources: List[Dict[str, str]]) -> str:
    if not sources:
        return ""
    lines = "\n".join(f"{i}. {s['title']}" for i, s in enumerate(sources, 1))
    return f"**Sources:**\n{lines}"


class AnswerGenerator:
    """Generates grounded answers with a chat-completion provider."""

    def __init__(
        self,
        chat: ChatProvider,
        model: Optional[str] = None,
        domain: Optional[str] = None,
    ):
        """Initialize the generator.

        Args:
            chat: Chat-completion provider
            model: Default model for answers (default from config)
            domain: Topic description used by ``is_relevant_query``
        """
        self.chat = chat
        self.model = model or config.CHAT_MODEL
        self.domain = domain or config.KNOWLEDGE_DOMAIN

    async def generate(
        self,
        query: str,
        retrieval: RetrievalResult,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        include_sources: bool = True,
    ) -> GeneratedResponse:
        """Answer ``query`` from the retrieved context.

        Raises:
            GenerationError: If the provider call fails
        """
        user_message = build_user_message(query, retrieval.context)

        logger.info(
            "generation_started",
            context_length=len(retrieval.context),
            retrieved_chunks=len(retrieval.results),
        )

        try:
            answer = await self.chat.complete(
                [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_message},
                ],
                model=model or self.model,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            logger.error("generation_failed", error=str(e), error_type=type(e).__name__)
            raise GenerationError(f"Failed to generate response: {e}") from e

        if include_sources and retrieval.sources:
            answer += "\n\n" + format_sources(retrieval.sources)

        logger.info("generation_completed", answer_length=len(answer))

        return GeneratedResponse(
            answer=answer,
            sources=retrieval.sources,
            retrieved_chunks=len(retrieval.results),
        )

    async def generate_follow_up_questions(
        self, query: str, answer: str, count: int = 3
    ) -> List[str]:
        """Suggest follow-up questions; returns ``[]`` on provider failure."""
        prompt = (
            f"Based on this Q&A pair, suggest {count} relevant follow-up questions "
            "that the user might want to ask:\n\n"
            f"Q: {query}\nA: {answer}\n\n"
            f"Generate {count} follow-up questions (one per line):"
        )

        try:
            response = await self.chat.complete(
                [
                    {
                        "role": "system",
                        "content": "You are a helpful assistant that generates relevant follow-up questions.",
                    },
                    {"role": "user", "content": prompt},
                ],
                temperature=0.8,
                max_tokens=200,
            )
        except Exception as e:
            logger.warning("follow_up_generation_failed", error=str(e))
            return []

        questions = [_NUMBERING.sub("", line.strip()).strip() for line in response.splitlines()]
        return [q for q in questions if q.endswith("?")][:count]

    async def summarize_text(self, text: str, max_length: int = 200) -> str:
        """Summarize ``text``; falls back to a truncated prefix on failure."""
        prompt = f"Summarize the following text in {max_length} words or less:\n\n{text}"

        try:
            return await self.chat.complete(
                [
                    {
                        "role": "system",
                        "content": "You are a helpful assistant that creates concise summaries.",
                    },
                    {"role": "user", "content": prompt},
                ],
                temperature=0.5,
                max_tokens=max_length * 2,
            )
        except Exception as e:
            logger.warning("summarization_failed", error=str(e))
            return text[:max_length] + "..."

    async def is_relevant_query(self, query: str) -> bool:
        """Ask whether ``query`` is on topic; defaults to ``True`` on failure."""
        prompt = (
            f"Is this question related to {self.domain}? "
            'Answer with only "yes" or "no".\n\n'
            f"Question: {query}"
        )

        try:
            response = await self.chat.complete(
                [{"role": "user", "content": prompt}],
                temperature=0.3,
                max_tokens=10,
            )
        except Exception as e:
            logger.warning("relevance_check_failed", error=str(e))
            return True

        return "yes" in response.lower()

    async def rephrase_query(self, query: str) -> str:
        """Rephrase ``query`` for retrieval; returns it unchanged on failure."""
        prompt = (
            "Rephrase this question to be more clear and specific for searching "
            f"a robotics textbook:\n\nOriginal: {query}\n\nRephrased:"
        )

        try:
            rephrased = await self.chat.complete(
                [
                    {
                        "role": "system",
                        "content": "You rephrase questions to be clearer and more specific.",
                    },
                    {"role": "user", "content": prompt},
                ],
                temperature=0.5,
                max_tokens=100,
            )
        except Exception as e:
            logger.warning("query_rephrase_failed", error=str(e))
            return query

        return rephrased.strip()
