"""Similarity index facade.

One facade per model repository. It owns the active backend exclusively
and forwards the index lifecycle to it:

    create_index()  -> backend.create_index()
    build_index()   -> backend.update_index()
    remove_index()  -> backend.remove_index()

Without a backend (similarity search disabled) every call is a no-op and
searches return no results.
"""

import logging

import numpy as np

from .backend import IndexBackend
from .types import SearchResult

logger = logging.getLogger(__name__)


class SimilarityIndex:
    """Backend-agnostic similarity index lifecycle.

    Not safe for concurrent use: callers serialize calls per repository.

    Example:
        >>> sim = SimilarityIndex(create_backend(128, "models/resnet"))
        >>> sim.create_index()
        >>> sim.index(vectors, ids)
        >>> sim.build_index()
        >>> sim.search(query, k=3)
    """

    def __init__(self, backend: IndexBackend | None = None):
        self._backend = backend

    @property
    def backend(self) -> IndexBackend | None:
        """The owned backend, None when similarity search is disabled."""
        return self._backend

    @property
    def enabled(self) -> bool:
        return self._backend is not None

    def create_index(self) -> None:
        if self._backend is not None:
            self._backend.create_index()

    def build_index(self) -> None:
        if self._backend is not None:
            self._backend.update_index()

    def remove_index(self) -> None:
        if self._backend is not None:
            self._backend.remove_index()

    def index(self, vectors: np.ndarray, ids: list[str]) -> None:
        """Queue vectors for the next build_index()."""
        if self._backend is not None:
            self._backend.add(vectors, ids)

    def search(self, query: np.ndarray, k: int = 5) -> list[SearchResult]:
        if self._backend is None:
            return []
        return self._backend.search(query, k)

    def close(self) -> None:
        """Release the backend. The facade is disabled afterwards."""
        if self._backend is not None:
            self._backend.close()
            logger.debug(f"Released {type(self._backend).__name__}")
        self._backend = None

    def __enter__(self) -> "SimilarityIndex":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["SimilarityIndex"]
