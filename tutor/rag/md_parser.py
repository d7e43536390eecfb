"""Markdown parser that prepares textbook pages for chunking.

Handles:
- YAML frontmatter parsing and removal
- Heading extraction (the first H1 is the chapter title)
- Chapter number detection from the source path
- Replacing fenced code blocks with a size marker
"""
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog
import yaml

logger = structlog.get_logger()


@dataclass
class Heading:
    """Represents a markdown heading with hierarchy."""

    level: int  # 1-6 for h1-h6
    text: str
    line_number: int


@dataclass
class MarkdownDocument:
    """Parsed markdown document ready for chunking."""

    source: str
    frontmatter: Dict[str, Any]
    headings: List[Heading]
    body: str
    title: Optional[str] = None
    chapter: Optional[str] = None
    code_blocks: int = 0


class MarkdownParser:
    """Parser for markdown documents with frontmatter support."""

    # Regex for YAML frontmatter (must be at start of file)
    FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)

    # Regex for markdown headings
    HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)$", re.MULTILINE)

    # Fenced code blocks
    CODE_BLOCK_PATTERN = re.compile(r"```.*?```", re.DOTALL)

    # "chapter3", "Chapter12" etc. anywhere in the source path
    CHAPTER_PATTERN = re.compile(r"chapter(\d+)", re.IGNORECASE)

    def parse(self, content: str, source: str) -> MarkdownDocument:
        """Parse markdown text that came from *source*.

        Args:
            content: Raw markdown text
            source: Source path of the document (used for chapter detection)

        Returns:
            MarkdownDocument with cleaned body and metadata
        """
        frontmatter, text = self._parse_frontmatter(content)
        body, code_blocks = self._mark_code_blocks(text)
        headings = self._extract_headings(body)
        title, chapter = self.extract_metadata(body, source, frontmatter)

        logger.debug(
            "markdown_parsed",
            source=source,
            has_frontmatter=bool(frontmatter),
            heading_count=len(headings),
            code_blocks=code_blocks,
            content_length=len(body),
        )

        return MarkdownDocument(
            source=source,
            frontmatter=frontmatter,
            headings=headings,
            body=body,
            title=title,
            chapter=chapter,
            code_blocks=code_blocks,
        )

    def parse_file(self, file_path: Path, source: Optional[str] = None) -> MarkdownDocument:
        """Read and parse a markdown file.

        Raises:
            FileNotFoundError: If file doesn't exist
            UnicodeDecodeError: If file encoding is invalid
        """
        if not file_path.exists():
            raise FileNotFoundError(f"Markdown file not found: {file_path}")

        try:
            content = file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            logger.error("markdown_encoding_error", path=str(file_path), error=str(e))
            raise

        return self.parse(content, source or str(file_path))

    def extract_metadata(
        self,
        content: str,
        source: str,
        frontmatter: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Optional[str], Optional[str]]:
        """Return ``(title, chapter)`` for a document.

        The title is the first H1 heading, falling back to a frontmatter
        ``title``. The chapter is ``"Chapter N"`` when the source path
        contains ``chapterN``.
        """
        title = None
        h1 = re.search(r"^#\s+(.+)$", content, re.MULTILINE)
        if h1:
            title = h1.group(1).strip()
        elif frontmatter and frontmatter.get("title"):
            title = str(frontmatter["title"]).strip()

        chapter = None
        chapter_match = self.CHAPTER_PATTERN.search(source)
        if chapter_match:
            chapter = f"Chapter {chapter_match.group(1)}"

        return title, chapter

    def _parse_frontmatter(self, content: str) -> Tuple[Dict[str, Any], str]:
        """Extract YAML frontmatter from markdown content.

        Returns:
            Tuple of (frontmatter_dict, content_without_frontmatter)
        """
        match = self.FRONTMATTER_PATTERN.match(content)

        if not match:
            return {}, content

        yaml_content = match.group(1)
        try:
            frontmatter = yaml.safe_load(yaml_content)
            if not isinstance(frontmatter, dict):
                frontmatter = {}
        except yaml.YAMLError as e:
            logger.warning(
                "frontmatter_parse_error",
                error=str(e),
                yaml_preview=yaml_content[:100],
            )
            frontmatter = {}

        return frontmatter, content[match.end() :]

    def _extract_headings(self, content: str) -> List[Heading]:
        headings = []

        for match in self.HEADING_PATTERN.finditer(content):
            headings.append(
                Heading(
                    level=len(match.group(1)),
                    text=match.group(2).strip(),
                    line_number=content[: match.start()].count("\n") + 1,
                )
            )

        return headings

    def _mark_code_blocks(self, content: str) -> Tuple[str, int]:
        """Replace each fenced code block with ``[CODE BLOCK: <n> chars]``."""
        count = 0

        def _marker(match: "re.Match[str]") -> str:
            nonlocal count
            count += 1
            return f"[CODE BLOCK: {len(match.group(0))} chars]"

        return self.CODE_BLOCK_PATTERN.sub(_marker, content), count
