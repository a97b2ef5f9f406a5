"""Similarity index backends.

Available backends:
- InvertedFileBackend: FAISS indexes (flat, IVF, PQ, ...) with GPU support
- ApproximateTreeBackend: Annoy random-projection forests

Backend libraries are imported when a backend is first used.
"""

from .base import IndexBackend
from .factory import create_backend, resolve_backend_type, resolve_options
from .ivf import InvertedFileBackend
from .tree import ApproximateTreeBackend

__all__ = [
    "IndexBackend",
    "InvertedFileBackend",
    "ApproximateTreeBackend",
    "create_backend",
    "resolve_backend_type",
    "resolve_options",
]
