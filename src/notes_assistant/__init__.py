"""Retrieval-augmented chat over a personal note corpus, and literature reviews
built from bibliographic search results."""

__version__ = "0.1.0"
