"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Word-window segmentation with page estimates
- Embedding generation with candidate model fallback
- SQLite passage storage
- Cosine similarity ranking
- Retrieval and grounded answering
"""
