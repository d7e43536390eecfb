"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Markdown parsing and text extraction
- Paragraph chunking with overlap
- In-memory vector storage with JSON snapshots
- Semantic, hybrid and multi-query retrieval
- Answer generation with cited sources
"""
