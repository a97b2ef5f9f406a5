"""Model repository lifecycle.

Constructing a :class:`ModelRepository` runs the load-time sequence:

1. Validate the repository directory (create it when allowed)
2. If ``init`` is given, install the model archive into the repository
3. If ``init`` is given, merge ``config.json`` parameters into the caller's
   outgoing parameters

The first failure aborts the sequence with a :class:`BadParameterError`.
Label correspondences and the similarity index are attached lazily.
"""

import logging
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import numpy as np
from pydantic import ValidationError

from modelrepo.core.errors import BadParameterError
from modelrepo.simsearch import (
    BackendType,
    IndexConfiguration,
    SearchResult,
    SimilarityIndex,
    create_backend,
)

from .bootstrap import bootstrap_repository
from .corresp import CorrespondenceTable
from .models import InitializationOptions
from .paths import ensure_repository_dir
from .persisted import CONFIG_FILENAME, merge_persisted_config

logger = logging.getLogger(__name__)

BEST_MODEL_FILENAME = "best_model.txt"


class ModelRepository:
    """Handle on one model's repository directory.

    Example:
        >>> params = {}
        >>> repo = ModelRepository(
        ...     {"repository": "models/resnet", "create_repository": True,
        ...      "init": "https://example.com/models/resnet.tar.gz"},
        ...     params,
        ... )
        >>> params["parameters"]  # from the archive's config.json
        >>> sim = repo.create_sim_search(512)
        >>> repo.build_index()

    Attributes:
        repo_path: Repository directory.
        index_preload: Prefault similarity indexes on load.
        corresp: Correspondence file, read by read_corresp_file().
        correspondences: Loaded correspondence table.
    """

    def __init__(
        self,
        options: InitializationOptions | Mapping[str, Any],
        params: MutableMapping[str, Any] | None = None,
        *,
        simsearch_backend: str | BackendType | None = None,
    ):
        """Run the repository initialization sequence.

        Args:
            options: Initialization options, or a request mapping holding them.
            params: Caller's outgoing parameters; receives the persisted
                ``parameters`` when ``init`` is given.
            simsearch_backend: Similarity backend to wire instead of
                MODELREPO_SIMSEARCH_BACKEND.

        Raises:
            BadParameterError: If any step of the sequence fails.
        """
        options = self._validate_options(options)

        self.repo_path = ensure_repository_dir(
            options.repository, allow_create=options.create_repository
        )
        self.index_preload = options.index_preload
        self.corresp: str | Path | None = None
        self.correspondences = CorrespondenceTable()
        self._simsearch_backend = simsearch_backend
        self._sim_search: SimilarityIndex | None = None

        if options.init:
            bootstrap_repository(self.repo_path, options.init)
            if params is not None:
                merge_persisted_config(self.repo_path, params)

    @classmethod
    def from_path(
        cls,
        repo_path: str | Path,
        *,
        simsearch_backend: str | BackendType | None = None,
    ) -> "ModelRepository":
        """Handle on an existing repository, skipping the initialization sequence."""
        repo = cls.__new__(cls)
        repo.repo_path = Path(repo_path)
        repo.index_preload = False
        repo.corresp = None
        repo.correspondences = CorrespondenceTable()
        repo._simsearch_backend = simsearch_backend
        repo._sim_search = None
        return repo

    @staticmethod
    def _validate_options(
        options: InitializationOptions | Mapping[str, Any],
    ) -> InitializationOptions:
        if isinstance(options, InitializationOptions):
            return options
        try:
            return InitializationOptions.model_validate(options)
        except ValidationError as e:
            message = f"invalid repository options: {e}"
            logger.error(message)
            raise BadParameterError(message) from e

    # =========================================================================
    # Repository files
    # =========================================================================

    @property
    def config_path(self) -> Path:
        return self.repo_path / CONFIG_FILENAME

    @property
    def best_model_path(self) -> Path:
        return self.repo_path / BEST_MODEL_FILENAME

    def read_best_model(self) -> str | None:
        """Contents of best_model.txt, stripped, or None when absent."""
        if not self.best_model_path.exists():
            return None
        return self.best_model_path.read_text().strip()

    # =========================================================================
    # Label correspondences
    # =========================================================================

    def read_corresp_file(self) -> CorrespondenceTable:
        """Load the correspondence file named by ``corresp``."""
        self.correspondences = CorrespondenceTable.load(self.corresp)
        return self.correspondences

    def get_label(self, index: int) -> str:
        """Label for a class index; the index itself when unmapped."""
        return self.correspondences.lookup(index)

    # =========================================================================
    # Similarity search
    # =========================================================================

    @property
    def sim_search(self) -> SimilarityIndex | None:
        """The similarity facade, None until create_sim_search()."""
        return self._sim_search

    def create_sim_search(
        self, dimension: int, config: IndexConfiguration | None = None
    ) -> SimilarityIndex:
        """Attach the similarity index, once per repository.

        The first call creates the active backend and forwards
        ``create_index()`` to it; later calls return the existing facade.

        Args:
            dimension: Vector dimension.
            config: Index options for the backend.

        Returns:
            The repository's similarity facade.
        """
        if self._sim_search is not None:
            return self._sim_search

        backend = create_backend(
            dimension,
            self.repo_path,
            config,
            backend=self._simsearch_backend,
            preload=self.index_preload,
        )
        sim_search = SimilarityIndex(backend)
        try:
            sim_search.create_index()
        except Exception:
            sim_search.close()
            raise
        self._sim_search = sim_search
        return sim_search

    def create_index(self) -> None:
        if self._sim_search is not None:
            self._sim_search.create_index()

    def build_index(self) -> None:
        if self._sim_search is not None:
            self._sim_search.build_index()

    def remove_index(self) -> None:
        if self._sim_search is not None:
            self._sim_search.remove_index()

    def index(self, vectors: np.ndarray, ids: list[str]) -> None:
        if self._sim_search is not None:
            self._sim_search.index(vectors, ids)

    def search(self, query: np.ndarray, k: int = 5) -> list[SearchResult]:
        if self._sim_search is None:
            return []
        return self._sim_search.search(query, k)

    # =========================================================================
    # Lifetime
    # =========================================================================

    def close(self) -> None:
        """Release the similarity backend. Repository files are kept."""
        if self._sim_search is not None:
            self._sim_search.close()
            self._sim_search = None

    def __enter__(self) -> "ModelRepository":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ModelRepository({str(self.repo_path)!r})"


__all__ = ["ModelRepository", "BEST_MODEL_FILENAME"]
