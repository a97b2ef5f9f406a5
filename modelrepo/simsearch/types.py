"""Type definitions and constants for the similarity search module."""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BackendType(str, Enum):
    """Supported similarity index backends."""

    FAISS = "faiss"
    ANNOY = "annoy"
    NONE = "none"


class IndexConfiguration(BaseModel):
    """Backend-agnostic similarity index options.

    Every field is optional; None means "backend default". Backends only
    receive the fields they declare in ``supported_options``.

    Attributes:
        index_type: Backend-specific index key (a FAISS factory string).
        train_samples: Maximum number of vectors used to train the index.
        ondisk: Memory-map the persisted index instead of reading it in.
        nprobe: Inverted lists visited per query.
        index_gpu: Place the index on GPU.
        index_gpuid: GPU device ids; setting them implies ``index_gpu``.
    """

    index_type: str | None = None
    train_samples: int | None = Field(default=None, gt=0)
    ondisk: bool | None = None
    nprobe: int | None = Field(default=None, gt=0)
    index_gpu: bool | None = None
    index_gpuid: list[int] | None = None

    model_config = ConfigDict(frozen=True, extra="ignore")


@dataclass
class SearchResult:
    """Result from a similarity search.

    Attributes:
        id: Identifier given when the vector was added.
        distance: Distance to the query (lower is closer).
        rank: Position in results (0-indexed).
    """

    id: str
    distance: float
    rank: int


# Persisted file names, relative to the repository
INDEX_META_FILENAME = "index.meta.json"
FAISS_INDEX_FILENAME = "index.faiss"
ANNOY_INDEX_FILENAME = "index.ann"

# FAISS defaults
DEFAULT_FAISS_INDEX_TYPE = "Flat"
DEFAULT_TRAIN_SAMPLES = 100000
DEFAULT_NPROBE = 16
DEFAULT_ONDISK = True

# Annoy defaults
DEFAULT_ANNOY_METRIC = "angular"
DEFAULT_ANNOY_TREES = 100


__all__ = [
    "BackendType",
    "IndexConfiguration",
    "SearchResult",
    "INDEX_META_FILENAME",
    "FAISS_INDEX_FILENAME",
    "ANNOY_INDEX_FILENAME",
    "DEFAULT_FAISS_INDEX_TYPE",
    "DEFAULT_TRAIN_SAMPLES",
    "DEFAULT_NPROBE",
    "DEFAULT_ONDISK",
    "DEFAULT_ANNOY_METRIC",
    "DEFAULT_ANNOY_TREES",
]
