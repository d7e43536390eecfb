"""Textbook tutor: retrieval-augmented question answering over markdown notes."""
