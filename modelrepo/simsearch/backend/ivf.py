"""FAISS similarity index backend.

The index is described by a FAISS factory string (``"Flat"``,
``"IVF256,Flat"``, ``"IVF1024,PQ16"``, ...). Trained index types are trained
on the first ``train_samples`` pending vectors at the first
``update_index()``. The index and its id mapping are persisted as
``index.faiss`` and ``index.meta.json`` in the repository.
"""

import logging
from pathlib import Path
from typing import Any, ClassVar

import numpy as np

from modelrepo.core.errors import IndexBackendError

from ..types import (
    DEFAULT_FAISS_INDEX_TYPE,
    DEFAULT_NPROBE,
    DEFAULT_ONDISK,
    DEFAULT_TRAIN_SAMPLES,
    FAISS_INDEX_FILENAME,
    INDEX_META_FILENAME,
    SearchResult,
)
from .utils import as_matrix, check_ids, read_meta, write_meta

logger = logging.getLogger(__name__)


def _import_faiss() -> Any:
    try:
        import faiss
    except ImportError as e:
        raise IndexBackendError(
            "FAISS required for the faiss similarity backend. "
            "Install with: pip install faiss-cpu or faiss-gpu"
        ) from e
    return faiss


class InvertedFileBackend:
    """FAISS-based similarity index with optional GPU placement.

    Features:
        - Any FAISS factory string, trained on demand
        - nprobe applied to inverted-file indexes
        - Memory-mapped loading of the persisted index (``ondisk``)
        - GPU placement on selected devices with CPU fallback

    Example:
        >>> backend = InvertedFileBackend(128, "models/resnet", index_type="IVF64,Flat")
        >>> backend.create_index()
        >>> backend.add(vectors, ids)
        >>> backend.update_index()
        >>> backend.search(query, k=5)
    """

    supported_options: ClassVar[frozenset[str]] = frozenset(
        {"index_type", "train_samples", "ondisk", "nprobe", "index_gpu", "index_gpuid"}
    )

    def __init__(
        self,
        dimension: int,
        repo_path: str | Path,
        index_type: str | None = None,
        train_samples: int | None = None,
        ondisk: bool | None = None,
        nprobe: int | None = None,
        index_gpu: bool | None = None,
        index_gpuid: list[int] | None = None,
    ):
        """Initialize the backend. Nothing is read or written until create_index().

        Args:
            dimension: Vector dimension size.
            repo_path: Repository directory holding the index files.
            index_type: FAISS factory string.
            train_samples: Maximum number of vectors used for training.
            ondisk: Memory-map the persisted index when opening it.
            nprobe: Inverted lists visited per query.
            index_gpu: Place the index on GPU.
            index_gpuid: GPU devices to use; implies index_gpu.
        """
        self._dimension = dimension
        self._repo_path = Path(repo_path)
        self.index_type = index_type or DEFAULT_FAISS_INDEX_TYPE
        self.train_samples = train_samples or DEFAULT_TRAIN_SAMPLES
        self.ondisk = DEFAULT_ONDISK if ondisk is None else ondisk
        self.nprobe = nprobe or DEFAULT_NPROBE
        self.gpuids = list(index_gpuid or [])
        self.use_gpu = bool(index_gpu) or bool(self.gpuids)

        self._index: Any = None
        self._mmapped = False
        self._is_gpu = False
        self._id_map: list[str] = []
        self._pending_vectors: list[np.ndarray] = []
        self._pending_ids: list[str] = []

    @property
    def dimension(self) -> int:
        """Get vector dimension."""
        return self._dimension

    @property
    def size(self) -> int:
        """Get number of searchable vectors."""
        return len(self._id_map)

    @property
    def pending(self) -> int:
        """Get number of vectors waiting for update_index()."""
        return len(self._pending_ids)

    @property
    def is_gpu(self) -> bool:
        """Check if the live index is on GPU."""
        return self._is_gpu

    @property
    def index_path(self) -> Path:
        return self._repo_path / FAISS_INDEX_FILENAME

    @property
    def meta_path(self) -> Path:
        return self._repo_path / INDEX_META_FILENAME

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create_index(self) -> None:
        """Open the persisted index, or build an empty one from index_type.

        Raises:
            IndexBackendError: If FAISS is missing, the factory string is
                invalid, or the persisted index has another dimension.
        """
        faiss = _import_faiss()

        if self.index_path.exists() and self.meta_path.exists():
            meta = read_meta(self.meta_path, self._dimension)
            cpu_index = self._read_index(mmap=self.ondisk)
            self._id_map = list(meta.get("id_map", []))
            logger.info(
                f"Loaded FAISS index from {self.index_path} ({self.size} vectors)"
            )
        else:
            try:
                cpu_index = faiss.index_factory(self._dimension, self.index_type)
            except (RuntimeError, ValueError) as e:
                raise IndexBackendError(
                    f"Invalid FAISS index type {self.index_type!r}: {e}"
                ) from e
            self._mmapped = False
            self._id_map = []
            logger.info(
                f"Created FAISS index {self.index_type} (dim={self._dimension})"
            )

        self._apply_nprobe(cpu_index)
        self._index = self._place(cpu_index)

    def update_index(self) -> None:
        """Train if needed, add pending vectors and persist the index.

        Raises:
            IndexBackendError: If training fails, e.g. too few samples for
                the number of inverted lists. Pending vectors are kept.
        """
        faiss = _import_faiss()
        if self._index is None:
            self.create_index()

        if not self._pending_ids and self.index_path.exists():
            logger.debug(f"No pending vectors for {self.index_path}")
            return

        cpu_index = self._writable_cpu_index()
        vectors = (
            np.vstack(self._pending_vectors)
            if self._pending_vectors
            else np.empty((0, self._dimension), dtype=np.float32)
        )

        if not cpu_index.is_trained:
            if len(vectors) == 0:
                logger.debug("Index not trained yet and no vectors to train on")
                return
            sample = vectors[: self.train_samples]
            logger.info(f"Training FAISS index {self.index_type} on {len(sample)} vectors")
            try:
                cpu_index.train(sample)
            except RuntimeError as e:
                raise IndexBackendError(f"FAISS training failed: {e}") from e

        if len(vectors):
            cpu_index.add(vectors)

        self._repo_path.mkdir(parents=True, exist_ok=True)
        faiss.write_index(cpu_index, str(self.index_path))
        id_map = self._id_map + self._pending_ids
        write_meta(
            self.meta_path,
            {
                "dimension": self._dimension,
                "index_type": self.index_type,
                "size": len(id_map),
                "id_map": id_map,
            },
        )

        self._id_map = id_map
        self._pending_vectors = []
        self._pending_ids = []
        self._apply_nprobe(cpu_index)
        self._index = self._place(cpu_index)
        logger.info(f"Saved FAISS index to {self.index_path} ({self.size} vectors)")

    def remove_index(self) -> None:
        """Delete the persisted index and reset in-memory state."""
        self.close()
        self._id_map = []
        self._pending_vectors = []
        self._pending_ids = []
        for path in (self.index_path, self.meta_path):
            path.unlink(missing_ok=True)
        logger.info(f"Removed FAISS index from {self._repo_path}")

    def close(self) -> None:
        """Drop the live index; persisted files are untouched."""
        self._index = None
        self._mmapped = False
        self._is_gpu = False

    # =========================================================================
    # Data path
    # =========================================================================

    def add(self, vectors: np.ndarray, ids: list[str]) -> None:
        """Queue vectors for the next update_index().

        Raises:
            IndexBackendError: If vectors and ids mismatch or the
                dimension is wrong.
        """
        vectors = as_matrix(vectors, self._dimension)
        check_ids(vectors, ids)
        if len(vectors) == 0:
            return
        self._pending_vectors.append(vectors)
        self._pending_ids.extend(str(i) for i in ids)

    def search(self, query: np.ndarray, k: int = 5) -> list[SearchResult]:
        """Search the persisted vectors, closest (lowest L2 distance) first."""
        if self._index is None or self.size == 0:
            return []

        query = as_matrix(query, self._dimension)[:1]
        k = min(k, self.size)
        distances, indices = self._index.search(query, k)

        results = []
        for rank, (distance, idx) in enumerate(
            zip(distances[0], indices[0], strict=True)
        ):
            if 0 <= idx < len(self._id_map):
                results.append(
                    SearchResult(id=self._id_map[idx], distance=float(distance), rank=rank)
                )
        return results

    # =========================================================================
    # Internals
    # =========================================================================

    def _read_index(self, mmap: bool) -> Any:
        faiss = _import_faiss()
        if mmap:
            try:
                index = faiss.read_index(
                    str(self.index_path), faiss.IO_FLAG_MMAP | faiss.IO_FLAG_READ_ONLY
                )
                self._mmapped = True
                return index
            except RuntimeError as e:
                logger.warning(f"Memory-mapping {self.index_path} failed, reading it: {e}")
        self._mmapped = False
        return faiss.read_index(str(self.index_path))

    def _writable_cpu_index(self) -> Any:
        faiss = _import_faiss()
        if self._mmapped:
            return self._read_index(mmap=False)
        if self._is_gpu:
            return faiss.index_gpu_to_cpu(self._index)
        return self._index

    def _apply_nprobe(self, cpu_index: Any) -> None:
        faiss = _import_faiss()
        ivf = faiss.try_extract_index_ivf(cpu_index)
        if ivf is not None:
            ivf.nprobe = self.nprobe

    def _place(self, cpu_index: Any) -> Any:
        """Move the index to the configured GPUs, falling back to CPU."""
        self._is_gpu = False
        if not self.use_gpu:
            return cpu_index

        faiss = _import_faiss()
        num_gpus = faiss.get_num_gpus() if hasattr(faiss, "get_num_gpus") else 0
        if num_gpus == 0:
            logger.warning(
                "GPU index requested but no CUDA GPU is visible to FAISS, using CPU"
            )
            return cpu_index

        try:
            index = faiss.index_cpu_to_gpus_list(cpu_index, gpus=self.gpuids or None)
        except Exception as e:
            logger.warning(f"GPU index failed, falling back to CPU: {e}")
            return cpu_index

        self._is_gpu = True
        logger.info(f"Placed FAISS index on GPU(s) {self.gpuids or 'all'}")
        return index


__all__ = ["InvertedFileBackend"]
