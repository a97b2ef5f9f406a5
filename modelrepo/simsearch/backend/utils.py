"""Helpers shared by the similarity index backends."""

import json
from pathlib import Path
from typing import Any

import numpy as np

from modelrepo.core.errors import IndexBackendError


def as_matrix(vectors: np.ndarray, dimension: int) -> np.ndarray:
    """Coerce vectors to a float32 array of shape (n, dimension).

    Raises:
        IndexBackendError: If the vector dimension does not match.
    """
    vectors = np.asarray(vectors, dtype=np.float32)
    if vectors.ndim == 1:
        vectors = vectors.reshape(1, -1)
    if vectors.ndim != 2 or vectors.shape[1] != dimension:
        raise IndexBackendError(
            f"Vector dimension ({vectors.shape[-1]}) "
            f"must match index dimension ({dimension})"
        )
    return np.ascontiguousarray(vectors)


def check_ids(vectors: np.ndarray, ids: list[str]) -> None:
    """Raise IndexBackendError unless there is one id per vector."""
    if len(vectors) != len(ids):
        raise IndexBackendError(
            f"Vector count ({len(vectors)}) must match ID count ({len(ids)})"
        )


def read_meta(path: Path, dimension: int) -> dict[str, Any]:
    """Read index metadata, checking it was written for ``dimension``."""
    with open(path) as f:
        meta = json.load(f)
    if meta.get("dimension") != dimension:
        raise IndexBackendError(
            f"Index at {path.parent} has dimension {meta.get('dimension')}, "
            f"expected {dimension}"
        )
    return meta


def write_meta(path: Path, meta: dict[str, Any]) -> None:
    """Write index metadata next to the index file."""
    with open(path, "w") as f:
        json.dump(meta, f)


__all__ = ["as_matrix", "check_ids", "read_meta", "write_meta"]
