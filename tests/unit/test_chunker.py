import itertools

import pytest

from tutor.rag.chunker import (
    TextChunker,
    chunk_id_prefix,
    chunk_text,
    clean_text,
    count_words,
    document_id,
    get_text_stats,
    process_document,
)

_counter = itertools.count()


def paragraph(words: int) -> str:
    """A paragraph of unique words so overlaps can be located exactly."""
    return " ".join(f"w{next(_counter)}" for _ in range(words))


def test_empty_input_yields_no_chunks():
    assert chunk_text("") == []
    assert chunk_text("\n\n   \n\n") == []


def test_three_thousand_words_of_short_paragraphs():
    text = "\n\n".join(paragraph(100) for _ in range(30))

    chunks = chunk_text(text, max_words=800, min_words=200, overlap_words=100)

    assert len(chunks) >= 3
    assert all(count_words(c) >= 100 for c in chunks)
    assert sum(count_words(c) for c in chunks) >= 3000


def test_split_on_max_words_carries_overlap():
    first = paragraph(250)
    second = paragraph(600)

    chunks = chunk_text(f"{first}\n\n{second}", max_words=800, min_words=200, overlap_words=100)

    assert len(chunks) == 2
    tail = chunks[0].split()[-100:]
    assert chunks[1].split()[:100] == tail
    assert chunks[1].endswith(second)


def test_overlap_appears_at_every_max_words_split():
    paragraphs = [paragraph(250) if i % 2 == 0 else paragraph(600) for i in range(8)]

    chunks = chunk_text("\n\n".join(paragraphs))

    assert len(chunks) == 8
    for i in range(0, 8, 2):
        assert chunks[i + 1].split()[:100] == chunks[i].split()[-100:]
        assert count_words(chunks[i + 1]) == 700


def test_greedy_cap_finalizes_without_overlap():
    paragraphs = [paragraph(150) for _ in range(4)]

    chunks = chunk_text("\n\n".join(paragraphs), max_words=800, min_words=200, overlap_words=100)

    assert len(chunks) == 2
    assert chunks[0] == "\n\n".join(paragraphs[:2])
    assert chunks[1] == "\n\n".join(paragraphs[2:])


def test_long_paragraph_is_not_split():
    huge = paragraph(2000)

    chunks = chunk_text(huge)

    assert chunks == [huge]


def test_small_trailing_chunk_is_dropped():
    text = f"{paragraph(300)}\n\n{paragraph(50)}"

    chunks = chunk_text(text, max_words=800, min_words=200, overlap_words=100)

    assert len(chunks) == 1
    assert count_words(chunks[0]) == 300


def test_zero_overlap():
    chunks = chunk_text(f"{paragraph(250)}\n\n{paragraph(600)}", overlap_words=0)
    assert count_words(chunks[1]) == 600


def test_invalid_chunker_settings():
    with pytest.raises(ValueError):
        TextChunker(max_words=0)
    with pytest.raises(ValueError):
        TextChunker(max_words=10, min_words=-1)


def test_chunk_stats():
    chunker = TextChunker(800, 200, 100)
    stats = chunker.get_chunk_stats(["one two three", "four five"])

    assert stats["chunk_count"] == 2
    assert stats["total_words"] == 5
    assert stats["min_chunk_words"] == 2
    assert stats["max_chunk_words"] == 3
    assert chunker.get_chunk_stats([])["chunk_count"] == 0


def test_document_ids():
    assert document_id("docs\\chapter1\\intro.md") == "docs/chapter1/intro"
    assert chunk_id_prefix("chapter1/intro.md") == "chapter1/intro-chunk-"


def test_process_document_ids_and_metadata():
    content = (
        "---\ntitle: Frontmatter Title\nsidebar_position: 1\n---\n"
        "# Introduction to ROS 2\n\n"
        f"{paragraph(320)}\n\n"
        "```python\nprint('hello')\n```\n\n"
        f"{paragraph(320)}"
    )

    doc = process_document(content, "docs\\chapter3\\ros2.md")

    assert doc.total_chunks == 2
    assert [c.id for c in doc.chunks] == ["docs/chapter3/ros2-chunk-0", "docs/chapter3/ros2-chunk-1"]
    meta = doc.chunks[0].metadata
    assert meta == {
        "source": "docs\\chapter3\\ros2.md",
        "chapterTitle": "Introduction to ROS 2",
        "section": "Chapter 3",
    }
    assert "sidebar_position" not in doc.chunks[0].content
    assert "print('hello')" not in "".join(c.content for c in doc.chunks)
    assert doc.chunks[0].word_count == count_words(doc.chunks[0].content)


def test_process_document_without_title_or_chapter():
    doc = process_document(paragraph(300), "notes/misc.md")

    assert doc.chunks[0].metadata == {"source": "notes/misc.md"}


def test_process_document_falls_back_to_frontmatter_title():
    content = f"---\ntitle: Sensors\n---\n{paragraph(300)}"

    doc = process_document(content, "sensors.md")

    assert doc.chunks[0].metadata["chapterTitle"] == "Sensors"


def test_clean_text_and_stats():
    assert clean_text("  a \n\n b\tc  ") == "a b c"

    stats = get_text_stats("One two. Three four!\n\nFive six?")
    assert stats == {"characters": 31, "words": 6, "sentences": 3, "paragraphs": 2}
