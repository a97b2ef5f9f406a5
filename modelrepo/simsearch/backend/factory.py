"""Backend factory for similarity indexes.

Exactly one backend is active per deployment. It is chosen by name, from
``MODELREPO_SIMSEARCH_BACKEND`` unless the caller injects one, and is given
only the options it declares in ``supported_options``.
"""

import logging
from pathlib import Path
from typing import Any

from modelrepo.config import EnvVar, get_environment, get_simsearch_backend
from modelrepo.core.errors import IndexBackendError

from ..types import BackendType, IndexConfiguration
from .base import IndexBackend

logger = logging.getLogger(__name__)


def resolve_backend_type(backend: str | BackendType | None = None) -> BackendType:
    """Resolve a backend name, falling back to MODELREPO_SIMSEARCH_BACKEND.

    Raises:
        IndexBackendError: If the name is not a known backend.
    """
    if isinstance(backend, BackendType):
        return backend
    name = get_simsearch_backend(backend)
    try:
        return BackendType(name)
    except ValueError:
        valid = ", ".join(b.value for b in BackendType)
        raise IndexBackendError(
            f"Unknown similarity backend {name!r} (expected one of: {valid})"
        ) from None


def resolve_options(
    config: IndexConfiguration | None = None, preload: bool = False
) -> dict[str, Any]:
    """Flatten an IndexConfiguration into backend keyword options.

    MODELREPO_USE_GPU=false strips GPU placement; MODELREPO_USE_GPU=true
    enables it when the configuration does not say otherwise.
    """
    options = (config or IndexConfiguration()).model_dump()
    options["preload"] = preload

    use_gpu = get_environment(EnvVar.USE_GPU)
    if use_gpu is False:
        options["index_gpu"] = False
        options["index_gpuid"] = None
    elif use_gpu is True and options["index_gpu"] is None:
        options["index_gpu"] = True

    return options


def create_backend(
    dimension: int,
    repo_path: str | Path,
    config: IndexConfiguration | None = None,
    *,
    backend: str | BackendType | None = None,
    preload: bool = False,
) -> IndexBackend | None:
    """Create the active similarity backend for a repository.

    Args:
        dimension: Vector dimension.
        repo_path: Repository directory the backend persists into.
        config: Index options; fields the backend does not support are
            ignored.
        backend: Backend name or type (default: MODELREPO_SIMSEARCH_BACKEND).
        preload: Prefault the index on load, for backends supporting it.

    Returns:
        A configured backend, or None when the backend type is ``none``.

    Raises:
        IndexBackendError: If the backend name is unknown.

    Example:
        >>> backend = create_backend(512, "models/clip", IndexConfiguration(nprobe=8))
        >>> backend.create_index()
    """
    backend_type = resolve_backend_type(backend)

    if backend_type == BackendType.NONE:
        logger.debug("Similarity search disabled (backend=none)")
        return None
    elif backend_type == BackendType.FAISS:
        from .ivf import InvertedFileBackend

        backend_class: Any = InvertedFileBackend
    elif backend_type == BackendType.ANNOY:
        from .tree import ApproximateTreeBackend

        backend_class = ApproximateTreeBackend
    else:
        raise IndexBackendError(f"Unsupported backend type: {backend_type}")

    kwargs = {}
    for key, value in resolve_options(config, preload).items():
        if value is None:
            continue
        if key in backend_class.supported_options:
            kwargs[key] = value
        elif key != "preload" and value:
            logger.debug(f"{backend_type.value} backend ignores option {key}={value!r}")

    logger.info(f"Creating {backend_type.value} similarity backend (dim={dimension})")
    return backend_class(dimension, repo_path, **kwargs)


__all__ = ["create_backend", "resolve_backend_type", "resolve_options"]
