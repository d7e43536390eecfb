import pytest

from tutor.errors import GenerationError, ProviderError
from tutor.rag.generator import DEFAULT_SYSTEM_PROMPT, AnswerGenerator, GeneratedResponse, format_sources
from tutor.rag.retriever import NO_CONTEXT_MESSAGE, RetrievalResult
from tutor.rag.vector_store import SearchResult
from tests.conftest import FakeChat


@pytest.fixture
def retrieval():
    results = [
        SearchResult("ros2-chunk-0", "Nodes talk over topics.", {"source": "ros2.md", "chapterTitle": "ROS 2"}, 0.9),
        SearchResult("ros2-chunk-1", "Services are request/response.", {"source": "ros2.md", "chapterTitle": "ROS 2"}, 0.8),
    ]
    return RetrievalResult.from_results("What is a node?", results)


@pytest.mark.asyncio
async def test_generate_appends_sources(chat, retrieval):
    generator = AnswerGenerator(chat, model="test-model")

    response = await generator.generate("What is a node?", retrieval, temperature=0.2, max_tokens=300)

    assert response.answer == "A grounded answer.\n\n**Sources:**\n1. ROS 2"
    assert response.sources == [{"title": "ROS 2", "source": "ros2.md"}]
    assert response.retrieved_chunks == 2

    call = chat.calls[0]
    assert call["model"] == "test-model"
    assert call["temperature"] == 0.2
    assert call["max_tokens"] == 300
    system, user = call["messages"]
    assert system == {"role": "system", "content": DEFAULT_SYSTEM_PROMPT}
    assert user["role"] == "user"
    assert user["content"].startswith("Context from the textbook:\n[Context 1 - ROS 2]")
    assert "Question: What is a node?" in user["content"]


@pytest.mark.asyncio
async def test_generate_without_sources_flag(chat, retrieval):
    response = await AnswerGenerator(chat).generate("q", retrieval, include_sources=False)

    assert response.answer == "A grounded answer."


@pytest.mark.asyncio
async def test_generate_with_empty_retrieval(chat):
    response = await AnswerGenerator(chat).generate("What is SLAM?", RetrievalResult(query="What is SLAM?"))

    assert response.answer
    assert "**Sources:**" not in response.answer
    assert response.sources == []
    assert response.retrieved_chunks == 0

    user_message = chat.calls[0]["messages"][1]["content"]
    assert NO_CONTEXT_MESSAGE in user_message
    assert "If the context doesn't contain enough information to answer fully, please say so." in user_message


@pytest.mark.asyncio
async def test_generate_custom_system_prompt(chat, retrieval):
    await AnswerGenerator(chat).generate("q", retrieval, system_prompt="Be brief.")

    assert chat.calls[0]["messages"][0]["content"] == "Be brief."


@pytest.mark.asyncio
async def test_generate_wraps_provider_errors(chat, retrieval):
    chat.error = ProviderError("rate limited")

    with pytest.raises(GenerationError, match="Failed to generate response: rate limited") as excinfo:
        await AnswerGenerator(chat).generate("q", retrieval)

    assert isinstance(excinfo.value.__cause__, ProviderError)


@pytest.mark.asyncio
async def test_follow_up_questions_parsing():
    chat = FakeChat(["1. What is a topic?\n2) How do services work?\nNot a question\n3. What is DDS?\n4. Extra?"])

    questions = await AnswerGenerator(chat).generate_follow_up_questions("q", "a", count=3)

    assert questions == ["What is a topic?", "How do services work?", "What is DDS?"]


@pytest.mark.asyncio
async def test_helpers_fail_soft(provider_error):
    chat = FakeChat()
    chat.error = provider_error
    generator = AnswerGenerator(chat)

    assert await generator.generate_follow_up_questions("q", "a") == []
    assert await generator.summarize_text("x" * 50, max_length=10) == "x" * 10 + "..."
    assert await generator.is_relevant_query("anything") is True
    assert await generator.rephrase_query("original question") == "original question"


@pytest.mark.asyncio
async def test_is_relevant_query():
    generator = AnswerGenerator(FakeChat(["No."]), domain="robotics")

    assert await generator.is_relevant_query("best pizza?") is False
    assert "robotics" in generator.chat.calls[0]["messages"][0]["content"]

    assert await AnswerGenerator(FakeChat(["Yes"])).is_relevant_query("what is ROS?") is True


@pytest.mark.asyncio
async def test_summarize_and_rephrase():
    generator = AnswerGenerator(FakeChat(["  A clearer question  "]))

    assert await generator.rephrase_query("q") == "A clearer question"
    assert await generator.summarize_text("long text") == "  A clearer question  "


def test_format_sources():
    assert format_sources([]) == ""
    assert format_sources([{"title": "A"}, {"title": "B"}]) == "**Sources:**\n1. A\n2. B"


def test_response_to_dict():
    data = GeneratedResponse(answer="x", sources=[], retrieved_chunks=3).to_dict()
    assert data == {"answer": "x", "sources": [], "retrievedChunks": 3}
