"""Similarity search test fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar

import numpy as np
import pytest

from .types import SearchResult

# =============================================================================
# Recording Backend
# =============================================================================


class RecordingBackend:
    """In-memory backend recording the lifecycle calls it receives."""

    supported_options: ClassVar[frozenset[str]] = frozenset({"preload"})

    def __init__(self, dimension: int = 4, repo_path: str | Path = ".", preload=False):
        self._dimension = dimension
        self.repo_path = Path(repo_path)
        self.preload = preload
        self.calls: list[str] = []
        self.vectors: list[np.ndarray] = []
        self.ids: list[str] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def size(self) -> int:
        return len(self.ids)

    def create_index(self) -> None:
        self.calls.append("create_index")

    def update_index(self) -> None:
        self.calls.append("update_index")

    def remove_index(self) -> None:
        self.calls.append("remove_index")

    def close(self) -> None:
        self.calls.append("close")

    def add(self, vectors: np.ndarray, ids: list[str]) -> None:
        self.calls.append("add")
        self.vectors.extend(np.asarray(vectors, dtype=np.float32))
        self.ids.extend(ids)

    def search(self, query: np.ndarray, k: int = 5) -> list[SearchResult]:
        self.calls.append("search")
        query = np.asarray(query, dtype=np.float32).reshape(-1)
        distances = [float(np.sum((v - query) ** 2)) for v in self.vectors]
        order = np.argsort(distances)[:k]
        return [
            SearchResult(id=self.ids[i], distance=distances[i], rank=rank)
            for rank, i in enumerate(order)
        ]


@pytest.fixture
def recording_backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def clustered_vectors() -> np.ndarray:
    """Reproducible vectors: 4 tight clusters of 64 points in 8 dimensions."""
    rng = np.random.default_rng(42)
    centers = rng.standard_normal((4, 8)).astype(np.float32) * 10
    points = centers.repeat(64, axis=0) + rng.standard_normal((256, 8)).astype(
        np.float32
    ) * 0.01
    return points.astype(np.float32)
