"""Annoy similarity index backend.

Annoy indexes are immutable once built, so ``update_index()`` rebuilds the
forest from the stored vectors plus the pending ones and saves it as
``index.ann`` (memory-mapped on load) with ``index.meta.json`` alongside.
"""

import logging
from pathlib import Path
from typing import Any, ClassVar

import numpy as np

from modelrepo.core.errors import IndexBackendError

from ..types import (
    ANNOY_INDEX_FILENAME,
    DEFAULT_ANNOY_METRIC,
    DEFAULT_ANNOY_TREES,
    INDEX_META_FILENAME,
    SearchResult,
)
from .utils import as_matrix, check_ids, read_meta, write_meta

logger = logging.getLogger(__name__)


def _import_annoy() -> Any:
    try:
        import annoy
    except ImportError as e:
        raise IndexBackendError(
            "Annoy required for the annoy similarity backend. "
            "Install with: pip install annoy"
        ) from e
    return annoy


class ApproximateTreeBackend:
    """Annoy random-projection forest index.

    Only ``preload`` is configurable from the outside: it prefaults the
    memory-mapped index into RAM when it is loaded. The FAISS-specific
    options (index type, nprobe, GPU placement) have no meaning here.
    """

    supported_options: ClassVar[frozenset[str]] = frozenset({"preload"})

    def __init__(
        self,
        dimension: int,
        repo_path: str | Path,
        preload: bool = False,
        metric: str = DEFAULT_ANNOY_METRIC,
        n_trees: int = DEFAULT_ANNOY_TREES,
    ):
        self._dimension = dimension
        self._repo_path = Path(repo_path)
        self.preload = preload
        self.metric = metric
        self.n_trees = n_trees

        self._index: Any = None
        self._loaded = False
        self._id_map: list[str] = []
        self._pending_vectors: list[np.ndarray] = []
        self._pending_ids: list[str] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def size(self) -> int:
        return len(self._id_map) if self._loaded else 0

    @property
    def pending(self) -> int:
        return len(self._pending_ids)

    @property
    def index_path(self) -> Path:
        return self._repo_path / ANNOY_INDEX_FILENAME

    @property
    def meta_path(self) -> Path:
        return self._repo_path / INDEX_META_FILENAME

    def create_index(self) -> None:
        """Load the persisted forest if there is one."""
        annoy = _import_annoy()
        self._index = annoy.AnnoyIndex(self._dimension, self.metric)
        self._loaded = False
        self._id_map = []

        if self.index_path.exists() and self.meta_path.exists():
            meta = read_meta(self.meta_path, self._dimension)
            self._index.load(str(self.index_path), prefault=self.preload)
            self._id_map = list(meta.get("id_map", []))
            self._loaded = True
            logger.info(
                f"Loaded Annoy index from {self.index_path} "
                f"({self.size} vectors, preload={self.preload})"
            )

    def update_index(self) -> None:
        """Rebuild the forest with the pending vectors and save it."""
        annoy = _import_annoy()
        if self._index is None:
            self.create_index()

        if not self._pending_ids:
            logger.debug(f"No pending vectors for {self.index_path}")
            return

        fresh = annoy.AnnoyIndex(self._dimension, self.metric)
        item = 0
        if self._loaded:
            for item in range(self._index.get_n_items()):
                fresh.add_item(item, self._index.get_item_vector(item))
            item = self._index.get_n_items()
        for vector in np.vstack(self._pending_vectors):
            fresh.add_item(item, vector.tolist())
            item += 1

        logger.info(f"Building Annoy index with {self.n_trees} trees ({item} vectors)")
        fresh.build(self.n_trees)

        self._index.unload()
        self._repo_path.mkdir(parents=True, exist_ok=True)
        fresh.save(str(self.index_path), prefault=self.preload)

        id_map = self._id_map + self._pending_ids
        write_meta(
            self.meta_path,
            {
                "dimension": self._dimension,
                "metric": self.metric,
                "size": len(id_map),
                "id_map": id_map,
            },
        )

        self._index = fresh
        self._loaded = True
        self._id_map = id_map
        self._pending_vectors = []
        self._pending_ids = []
        logger.info(f"Saved Annoy index to {self.index_path} ({self.size} vectors)")

    def remove_index(self) -> None:
        """Unload and delete the persisted forest."""
        self.close()
        self._id_map = []
        self._pending_vectors = []
        self._pending_ids = []
        for path in (self.index_path, self.meta_path):
            path.unlink(missing_ok=True)
        logger.info(f"Removed Annoy index from {self._repo_path}")

    def close(self) -> None:
        if self._index is not None:
            self._index.unload()
        self._index = None
        self._loaded = False

    def add(self, vectors: np.ndarray, ids: list[str]) -> None:
        """Queue vectors for the next update_index()."""
        vectors = as_matrix(vectors, self._dimension)
        check_ids(vectors, ids)
        if len(vectors) == 0:
            return
        self._pending_vectors.append(vectors)
        self._pending_ids.extend(str(i) for i in ids)

    def search(self, query: np.ndarray, k: int = 5) -> list[SearchResult]:
        """Search the built forest, closest first."""
        if self._index is None or self.size == 0:
            return []

        query = as_matrix(query, self._dimension)[0]
        items, distances = self._index.get_nns_by_vector(
            query.tolist(), min(k, self.size), include_distances=True
        )
        return [
            SearchResult(id=self._id_map[item], distance=float(distance), rank=rank)
            for rank, (item, distance) in enumerate(zip(items, distances, strict=True))
            if 0 <= item < len(self._id_map)
        ]


__all__ = ["ApproximateTreeBackend"]
