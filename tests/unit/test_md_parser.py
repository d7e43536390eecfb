from tutor.rag.md_parser import MarkdownParser

SAMPLE = """---
title: Kinematics
tags: [robotics, math]
---
# Forward Kinematics

Intro paragraph.

```bash
# not a heading
ros2 run demo talker
```

## Denavit-Hartenberg

Details here.
"""


def test_parse_strips_frontmatter_and_marks_code():
    doc = MarkdownParser().parse(SAMPLE, "docs/chapter2/kinematics.md")

    assert doc.frontmatter == {"title": "Kinematics", "tags": ["robotics", "math"]}
    assert not doc.body.startswith("---")
    assert doc.code_blocks == 1
    assert "ros2 run demo talker" not in doc.body
    assert "[CODE BLOCK: " in doc.body


def test_headings_ignore_code_comments():
    doc = MarkdownParser().parse(SAMPLE, "kinematics.md")

    assert [(h.level, h.text) for h in doc.headings] == [
        (1, "Forward Kinematics"),
        (2, "Denavit-Hartenberg"),
    ]
    assert doc.headings[0].line_number == 1


def test_extract_metadata():
    parser = MarkdownParser()

    assert parser.extract_metadata("# Title\ntext", "docs/Chapter12/a.md") == ("Title", "Chapter 12")
    assert parser.extract_metadata("## Only H2", "intro.md") == (None, None)
    assert parser.extract_metadata("text", "intro.md", {"title": "From YAML"}) == ("From YAML", None)


def test_invalid_frontmatter_is_ignored():
    doc = MarkdownParser().parse("---\ntitle: [unclosed\n---\nBody text", "x.md")

    assert doc.frontmatter == {}
    assert doc.body == "Body text"


def test_no_frontmatter():
    doc = MarkdownParser().parse("Just text.", "x.md")

    assert doc.frontmatter == {}
    assert doc.body == "Just text."
    assert doc.title is None


def test_parse_file(tmp_path):
    path = tmp_path / "chapter1.md"
    path.write_text("# Getting Started\n\nHello.", encoding="utf-8")

    doc = MarkdownParser().parse_file(path, "chapter1.md")

    assert doc.title == "Getting Started"
    assert doc.chapter == "Chapter 1"
    assert doc.source == "chapter1.md"
