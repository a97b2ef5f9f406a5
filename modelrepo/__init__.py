"""modelrepo: on-disk lifecycle of model repositories for model serving."""

from modelrepo.core import BadParameterError, IndexBackendError, ModelRepositoryError
from modelrepo.repository import (
    CorrespondenceTable,
    InitializationOptions,
    ModelRepository,
)
from modelrepo.simsearch import (
    BackendType,
    IndexConfiguration,
    SearchResult,
    SimilarityIndex,
)

__version__ = "0.1.0"

__all__ = [
    # Repository
    "ModelRepository",
    "InitializationOptions",
    "CorrespondenceTable",
    # Similarity search
    "BackendType",
    "IndexConfiguration",
    "SearchResult",
    "SimilarityIndex",
    # Errors
    "ModelRepositoryError",
    "BadParameterError",
    "IndexBackendError",
]
