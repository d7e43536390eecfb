"""
Pytest configuration for the tutor test suite.

Configures:
- pytest-asyncio for async test support
- In-memory fakes for the embedding and chat providers
"""
from typing import Dict, List, Optional

import pytest

from tutor.errors import ErrorKind, ProviderError
from tutor.rag.vector_store import VectorStore

pytest_plugins = ["pytest_asyncio"]

DIMENSIONS = 4


class FakeEmbedder:
    """Embeds text by lookup; unknown text gets ``default``."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, default=None):
        self.vectors = dict(vectors or {})
        self.default = default or [0.0, 0.0, 0.0, 1.0]
        self.calls: List[List[str]] = []
        self.error: Optional[Exception] = None

    async def embed(self, text: str) -> List[float]:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.error:
            raise self.error
        return [list(self.vectors.get(text, self.default)) for text in texts]


class FakeChat:
    """Returns canned replies in order and records every message list."""

    def __init__(self, replies: Optional[List[str]] = None):
        self.replies = list(replies or ["A grounded answer."])
        self.calls: List[dict] = []
        self.error: Optional[Exception] = None

    async def complete(self, messages, model=None, temperature=0.7, max_tokens=None) -> str:
        self.calls.append(
            {
                "messages": messages,
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if self.error:
            raise self.error
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]


@pytest.fixture
def store():
    return VectorStore(dimensions=DIMENSIONS)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def provider_error():
    return ProviderError("API request failed with status 503", kind=ErrorKind.OVERLOADED, status_code=503)
