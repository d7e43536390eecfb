import pytest

from tutor.engine import RAGEngine
from tutor.errors import GenerationError
from tutor.rag.chunker import TextChunker
from tutor.rag.vector_store import VectorStore
from tests.conftest import FakeChat, FakeEmbedder

DOC = "# ROS 2 Basics\n\n" + " ".join(f"node{i}" for i in range(320))


@pytest.fixture
def engine(tmp_path):
    return RAGEngine(
        embedder=FakeEmbedder(default=[1, 0, 0, 0]),
        chat=FakeChat(["Nodes are processes."]),
        store=VectorStore(dimensions=4),
        chunker=TextChunker(800, 200, 100),
        snapshot_path=tmp_path / "vectors.json",
    )


@pytest.mark.asyncio
async def test_ask_answers_with_sources(engine):
    await engine.ingest(DOC, "chapter1/ros2.md")

    response = await engine.ask("What is a node?", min_score=0.5)

    assert response.answer == "Nodes are processes.\n\n**Sources:**\n1. ROS 2 Basics"
    assert response.sources == [{"title": "ROS 2 Basics", "source": "chapter1/ros2.md"}]
    assert response.retrieved_chunks == 1


@pytest.mark.asyncio
async def test_ask_on_empty_index(engine):
    response = await engine.ask("What is a node?")

    assert response.answer == "Nodes are processes."
    assert response.sources == []


@pytest.mark.asyncio
async def test_ask_surfaces_generation_errors(engine):
    engine.chat.error = RuntimeError("provider down")

    with pytest.raises(GenerationError):
        await engine.ask("What is a node?")


@pytest.mark.asyncio
async def test_save_load_and_clear(engine, tmp_path):
    await engine.ingest(DOC, "ros2.md")
    await engine.save()

    engine.clear()
    assert engine.stats()["total_vectors"] == 0

    assert await engine.load() is True
    assert engine.stats()["total_vectors"] == 1


@pytest.mark.asyncio
async def test_load_without_snapshot(engine):
    assert await engine.load() is False


def test_engines_do_not_share_state():
    first = RAGEngine(FakeEmbedder(), FakeChat(), store=VectorStore(dimensions=4))
    second = RAGEngine(FakeEmbedder(), FakeChat(), store=VectorStore(dimensions=4))

    first.store.add("a", [1, 0, 0, 0], "only in first")

    assert len(second.store) == 0
    assert first.retriever.store is first.store
    assert first.pipeline.store is first.store


def test_injected_empty_store_is_kept():
    injected = VectorStore(dimensions=768)

    engine = RAGEngine(FakeEmbedder(), FakeChat(), store=injected)

    assert engine.store is injected
    assert engine.stats()["dimensions"] == 768
    assert engine.retriever.store is injected
