"""Repository directory validation."""

import logging
import os
from pathlib import Path

from modelrepo.core.errors import BadParameterError

logger = logging.getLogger(__name__)

# rwxrwxr-x, before the process umask is applied
REPOSITORY_DIR_MODE = 0o775


def is_directory_writable(path: Path) -> bool:
    """Check that ``path`` is an existing directory the process can write to."""
    return path.is_dir() and os.access(path, os.W_OK | os.X_OK)


def ensure_repository_dir(path: str | Path, allow_create: bool = False) -> Path:
    """Validate a model repository directory, creating it on request.

    Args:
        path: Repository directory.
        allow_create: Create the directory (and missing parents) when absent.

    Returns:
        The repository path.

    Raises:
        BadParameterError: If the path is a non-directory, cannot be created,
            or is not writable.
    """
    path = Path(path)

    exists = path.exists()
    if exists and not path.is_dir():
        message = f"file exists with same name as repository {path}"
        logger.error(message)
        raise BadParameterError(message, path=path)

    if not exists and allow_create:
        try:
            path.mkdir(mode=REPOSITORY_DIR_MODE, parents=True, exist_ok=True)
        except OSError as e:
            message = f"failed creating repository directory {path}: {e}"
            logger.error(message)
            raise BadParameterError(message, path=path) from e
        logger.info(f"Created repository directory {path}")

    if not is_directory_writable(path):
        message = f"destination model directory {path} is not writable"
        logger.error(message)
        raise BadParameterError(message, path=path)

    return path


__all__ = ["ensure_repository_dir", "is_directory_writable", "REPOSITORY_DIR_MODE"]
