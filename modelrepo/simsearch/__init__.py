"""Similarity search for model repositories.

This module provides:
- IndexConfiguration: backend-agnostic index options
- IndexBackend protocol with FAISS and Annoy implementations
- SimilarityIndex: the per-repository facade over the active backend

Backend selection:
    The active backend comes from MODELREPO_SIMSEARCH_BACKEND
    ('faiss', 'annoy' or 'none') unless one is passed explicitly.

Example usage:
    >>> from modelrepo.simsearch import IndexConfiguration, SimilarityIndex, create_backend
    >>> backend = create_backend(256, "models/embedder", IndexConfiguration(nprobe=8))
    >>> sim = SimilarityIndex(backend)
    >>> sim.create_index()
"""

from .backend import (
    ApproximateTreeBackend,
    IndexBackend,
    InvertedFileBackend,
    create_backend,
    resolve_backend_type,
)
from .lib import SimilarityIndex
from .types import BackendType, IndexConfiguration, SearchResult

__all__ = [
    # Types
    "BackendType",
    "IndexConfiguration",
    "SearchResult",
    # Backends
    "IndexBackend",
    "InvertedFileBackend",
    "ApproximateTreeBackend",
    "create_backend",
    "resolve_backend_type",
    # Facade
    "SimilarityIndex",
]
