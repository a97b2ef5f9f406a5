"""Capability protocol for similarity index backends."""

from typing import ClassVar, Protocol, runtime_checkable

import numpy as np

from ..types import SearchResult


@runtime_checkable
class IndexBackend(Protocol):
    """Protocol every similarity index backend implements.

    Backends persist their state under the repository they were created
    for. They are not required to inherit from this class; the factory and
    the facade only rely on the methods below.

    Attributes:
        supported_options: Names of the optional settings the backend
            accepts as constructor keywords (``IndexConfiguration`` fields
            and ``preload``). Other settings are never passed.
    """

    supported_options: ClassVar[frozenset[str]]

    @property
    def dimension(self) -> int:
        """Vector dimension of the index."""
        ...

    @property
    def size(self) -> int:
        """Number of vectors searchable right now."""
        ...

    def create_index(self) -> None:
        """Open the persisted index, or create an empty one."""
        ...

    def update_index(self) -> None:
        """Train if needed, add pending vectors and persist the index."""
        ...

    def remove_index(self) -> None:
        """Delete the persisted index and reset in-memory state."""
        ...

    def add(self, vectors: np.ndarray, ids: list[str]) -> None:
        """Queue vectors for the next ``update_index``.

        Args:
            vectors: Array of shape (n, dimension).
            ids: n string identifiers.
        """
        ...

    def search(self, query: np.ndarray, k: int = 5) -> list[SearchResult]:
        """Return up to k nearest neighbours of ``query``, closest first."""
        ...

    def close(self) -> None:
        """Release the backend's native resources."""
        ...


__all__ = ["IndexBackend"]
